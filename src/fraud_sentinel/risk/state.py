"""Per-session risk state."""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from fraud_sentinel.common.constants import SessionConstants
from fraud_sentinel.core.types import ControlState, RiskEvent


@dataclass
class SessionRiskState:
    """Mutable risk state of one conversation session.

    Owned by the engine's session store and mutated only while the
    session lock is held. The risk level is never stored here; it is
    derived from ``score`` by RiskAccumulator.level_for.
    """
    session_id: str
    score: int = 0
    otp_attempts: int = 0
    names_claimed: Set[str] = field(default_factory=set)
    emotion_streak: int = 0
    transaction_request_count: int = 0
    total_amount_requested: int = 0
    suspicious_keyword_hits: int = 0
    message_count: int = 0
    incident_created: bool = False
    incident_id: Optional[str] = None
    control_state: ControlState = ControlState.MONITORING
    event_log: List[RiskEvent] = field(default_factory=list)
    generation: int = 0

    @property
    def session_ref(self) -> str:
        """Identifier of this session generation, used to key incidents."""
        return f"{self.session_id}{SessionConstants.REF_SEPARATOR}{self.generation}"

    def event_kinds(self) -> List[str]:
        """Distinct event kinds in log order."""
        kinds: List[str] = []
        for event in self.event_log:
            if event.kind.value not in kinds:
                kinds.append(event.kind.value)
        return kinds

    def event_delta_total(self) -> int:
        return sum(event.score_delta for event in self.event_log)
