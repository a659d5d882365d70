"""Risk Accumulator - cumulative score and derived level."""

import logging
from typing import Iterable, Optional, Tuple

from fraud_sentinel.core.types import ControlState, RiskEvent, RiskLevel
from fraud_sentinel.risk.rules import RiskRules
from fraud_sentinel.risk.state import SessionRiskState

logger = logging.getLogger(__name__)


class RiskAccumulator:
    """Maintains a session's cumulative score.

    The score only grows between resets and is capped at ``max_score``.
    Level boundaries come from the rule tables and are applied on every
    read; no level is ever cached.
    """

    def __init__(self, rules: Optional[RiskRules] = None):
        self.rules = rules or RiskRules()

    def level_for(self, score: int) -> RiskLevel:
        """Map a score to its risk level."""
        levels = self.rules.levels
        if score >= levels.high_min:
            return RiskLevel.HIGH
        if score >= levels.medium_min:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def apply(
        self,
        state: SessionRiskState,
        events: Iterable[RiskEvent],
    ) -> Tuple[int, RiskLevel]:
        """Add event deltas to the session score.

        Returns:
            (new score, new level)
        """
        delta = sum(event.score_delta for event in events)
        if delta < 0:
            raise ValueError("Risk events cannot lower the score")

        new_score = min(self.rules.levels.max_score, state.score + delta)
        if new_score != state.score:
            logger.debug(f"Session {state.session_id}: score {state.score} -> {new_score}")
        state.score = new_score
        return new_score, self.level_for(new_score)

    def reset(self, state: SessionRiskState) -> None:
        """Zero every counter and start a new session generation.

        This is the only operation that lowers a score.
        """
        state.score = 0
        state.otp_attempts = 0
        state.names_claimed = set()
        state.emotion_streak = 0
        state.transaction_request_count = 0
        state.total_amount_requested = 0
        state.suspicious_keyword_hits = 0
        state.message_count = 0
        state.incident_created = False
        state.incident_id = None
        state.control_state = ControlState.MONITORING
        state.event_log = []
        state.generation += 1
