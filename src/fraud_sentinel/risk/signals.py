"""Signal Extractor - turns one inbound message into risk events.

Evidence sources, scanned in this order:
- tiered keyword table (first hit wins, one event per message)
- OTP mentions, scored by the running session count
- currency amounts, plus a rapid-request bonus
- panic-class emotion streaks
- identity inconsistency across self-declared names

The extractor computes everything against local copies of the session
counters and commits them only after the whole message was processed, so
a failure part way leaves the session untouched.
"""

import logging
import re
from typing import List, Optional

from fraud_sentinel.core.types import (
    PANIC_EMOTIONS,
    RiskEvent,
    RiskEventKind,
    parse_emotion,
)
from fraud_sentinel.risk.rules import RiskRules
from fraud_sentinel.risk.state import SessionRiskState

logger = logging.getLogger(__name__)


OTP_PATTERN = re.compile(r"\botp\b|ओटीपी|one[\s-]+time[\s-]+password", re.IGNORECASE)

_NUMERAL = r"(\d[\d,]*)"
AMOUNT_PREFIX_PATTERN = re.compile(r"(?:₹|\brs\.?|\binr)\s*" + _NUMERAL, re.IGNORECASE)
AMOUNT_SUFFIX_PATTERN = re.compile(_NUMERAL + r"\s*(?:rupees\b|rs\b|inr\b|₹)", re.IGNORECASE)

NAME_PATTERN = re.compile(
    r"(?<!\w)(?P<intro>my name is|i am|i'm|mera naam|माझे नाव|मेरा नाम)\s+(?P<name>[^\s,.!?;:]+)",
    re.IGNORECASE,
)
# "I am X" is only read as a name when X looks like one
BARE_INTRODUCTIONS = {"i am", "i'm"}
PARTICIPLE_PATTERN = re.compile(r"(?:ing|ed)$", re.IGNORECASE)


class SignalExtractor:
    """Stateless rule evaluator over a SessionRiskState.

    Responsibilities:
    - Detect risk evidence in a single message
    - Update session counters and append events to the event log

    Constraints:
    - No scoring (the accumulator owns the score)
    - No side effects beyond the given state
    """

    def __init__(self, rules: Optional[RiskRules] = None):
        self.rules = rules or RiskRules()
        self._stop_words = {w.lower() for w in self.rules.identity.stop_words}

    def extract(self, text: str, emotion, state: SessionRiskState) -> List[RiskEvent]:
        """Extract risk events from one message.

        Args:
            text: Raw message text
            emotion: EmotionLabel or detector label (e.g. "fearful")
            state: Session state, updated in place on success

        Returns:
            Events produced by this message, also appended to state.event_log

        Raises:
            ValidationError: If the emotion label is unknown
        """
        label = parse_emotion(emotion)
        lower = text.lower()
        events: List[RiskEvent] = []

        keyword_event = self._scan_keywords(lower)
        keyword_hits = state.suspicious_keyword_hits
        if keyword_event is not None:
            events.append(keyword_event)
            if keyword_event.kind == RiskEventKind.HIGH_RISK_KEYWORD:
                keyword_hits += 1

        otp_attempts = state.otp_attempts
        if OTP_PATTERN.search(text):
            otp_attempts += 1
            otp_event = self._otp_event(otp_attempts)
            if otp_event is not None:
                events.append(otp_event)

        tx_count = state.transaction_request_count
        total_amount = state.total_amount_requested
        amount = self.parse_amount(lower)
        if amount is not None:
            tx_count += 1
            total_amount += amount
            amount_event = self._amount_event(amount)
            if amount_event is not None:
                events.append(amount_event)
            if tx_count > self.rules.amounts.rapid_threshold:
                events.append(RiskEvent(
                    kind=RiskEventKind.RAPID_TRANSACTIONS,
                    detail=f"{tx_count} requests",
                    score_delta=self.rules.amounts.rapid_delta,
                ))

        streak = state.emotion_streak
        if label in PANIC_EMOTIONS:
            streak += 1
            if streak >= self.rules.emotion.streak_threshold:
                events.append(RiskEvent(
                    kind=RiskEventKind.STRESS_EMOTION,
                    detail=f"{label.value} x{streak}",
                    score_delta=self.rules.emotion.delta,
                ))
        else:
            streak = 0

        name = self.parse_name(text)
        names = state.names_claimed
        if name is not None and name not in names:
            if names:
                events.append(RiskEvent(
                    kind=RiskEventKind.IDENTITY_MISMATCH,
                    detail=f"New name: {name}",
                    score_delta=self.rules.identity.mismatch_delta,
                ))
            names = names | {name}

        # Commit
        state.suspicious_keyword_hits = keyword_hits
        state.otp_attempts = otp_attempts
        state.transaction_request_count = tx_count
        state.total_amount_requested = total_amount
        state.emotion_streak = streak
        state.names_claimed = names
        state.message_count += 1
        state.event_log.extend(events)

        if events:
            logger.debug(
                f"Session {state.session_id}: "
                f"{', '.join(e.kind.value for e in events)}"
            )
        return events

    def _scan_keywords(self, lower: str) -> Optional[RiskEvent]:
        for tier in self.rules.keyword_tiers:
            for phrase in tier.phrases:
                if phrase.lower() in lower:
                    return RiskEvent(kind=tier.kind, detail=phrase, score_delta=tier.delta)
        return None

    def _otp_event(self, attempts: int) -> Optional[RiskEvent]:
        otp = self.rules.otp
        if attempts >= otp.large_from:
            return RiskEvent(
                kind=RiskEventKind.EXCESSIVE_OTP,
                detail=f"{attempts} OTP attempts",
                score_delta=otp.large_delta,
            )
        if attempts >= otp.small_from:
            return RiskEvent(
                kind=RiskEventKind.OTP_ATTEMPT,
                detail=f"{attempts} attempts",
                score_delta=otp.small_delta,
            )
        return None

    def _amount_event(self, amount: int) -> Optional[RiskEvent]:
        rules = self.rules.amounts
        if amount >= rules.high_threshold:
            return RiskEvent(
                kind=RiskEventKind.LARGE_AMOUNT,
                detail=f"₹{amount:,}",
                score_delta=rules.high_delta,
            )
        if amount >= rules.medium_threshold:
            return RiskEvent(
                kind=RiskEventKind.MODERATE_AMOUNT,
                detail=f"₹{amount:,}",
                score_delta=rules.medium_delta,
            )
        return None

    @staticmethod
    def parse_amount(text: str) -> Optional[int]:
        """Largest currency-marked amount in text, or None."""
        amounts: List[int] = []
        for pattern in (AMOUNT_PREFIX_PATTERN, AMOUNT_SUFFIX_PATTERN):
            for match in pattern.finditer(text):
                digits = match.group(1).replace(",", "")
                if digits:
                    amounts.append(int(digits))
        positive = [a for a in amounts if a > 0]
        return max(positive) if positive else None

    def parse_name(self, text: str) -> Optional[str]:
        """First plausible self-declared name, lower-cased.

        "my name is" / "mera naam" introduce a name outright. The bare
        "I am X" / "I'm X" forms only count when X is capitalised (or in
        a caseless script), so "I am being asked..." is not a name.
        """
        for match in NAME_PATTERN.finditer(text):
            raw = match.group("name").strip("'\"")
            candidate = raw.lower()
            if not candidate or candidate in self._stop_words:
                continue
            if not any(ch.isalpha() for ch in candidate):
                continue
            if match.group("intro").lower() in BARE_INTRODUCTIONS and not self._looks_like_name(raw):
                continue
            return candidate
        return None

    @staticmethod
    def _looks_like_name(word: str) -> bool:
        if word[:1].islower():
            return False
        # All-caps text carries no case signal
        if word.isupper() and PARTICIPLE_PATTERN.search(word):
            return False
        return True

