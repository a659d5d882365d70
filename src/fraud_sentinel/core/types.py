"""Core types and enums."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from fraud_sentinel.common.exceptions import ValidationError


class RiskLevel(str, Enum):
    """Discrete risk levels derived from the numeric score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ControlState(str, Enum):
    """Escalation control state of a session."""
    MONITORING = "MONITORING"
    STEP_UP_REQUIRED = "STEP_UP_REQUIRED"
    ESCALATED_BLOCKED = "ESCALATED_BLOCKED"


class RiskEventKind(str, Enum):
    """Kinds of risk evidence produced by the signal extractor."""
    HIGH_RISK_KEYWORD = "high_risk_keyword"
    MEDIUM_RISK_KEYWORD = "medium_risk_keyword"
    OTP_ATTEMPT = "otp_attempt"
    EXCESSIVE_OTP = "excessive_otp"
    LARGE_AMOUNT = "large_amount"
    MODERATE_AMOUNT = "moderate_amount"
    RAPID_TRANSACTIONS = "rapid_transactions"
    STRESS_EMOTION = "stress_emotion"
    IDENTITY_MISMATCH = "identity_mismatch"


class Intent(str, Enum):
    """Coarse conversational intents."""
    FUNDS_TRANSFER = "funds_transfer"
    OTP_REQUEST = "otp_request"
    CARD_BLOCK = "card_block"
    BALANCE_INQUIRY = "balance_inquiry"
    GREETING = "greeting"
    GENERAL = "general"


# Intents that require step-up verification at medium risk
SENSITIVE_INTENTS = frozenset({Intent.FUNDS_TRANSFER, Intent.OTP_REQUEST, Intent.CARD_BLOCK})


class Language(str, Enum):
    """Supported conversation languages."""
    ENGLISH = "en"
    HINDI = "hi"
    MARATHI = "mr"
    HINGLISH = "hinglish"


class EmotionLabel(str, Enum):
    """Out-of-band emotion reading attached to a message."""
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    FEAR = "fear"
    ANGER = "anger"
    SURPRISE = "surprise"
    DISGUST = "disgust"


PANIC_EMOTIONS = frozenset({
    EmotionLabel.FEAR,
    EmotionLabel.ANGER,
    EmotionLabel.SURPRISE,
    EmotionLabel.DISGUST,
})

# Labels emitted by face-expression detectors
_EMOTION_ALIASES = {
    "fearful": EmotionLabel.FEAR,
    "angry": EmotionLabel.ANGER,
    "surprised": EmotionLabel.SURPRISE,
    "disgusted": EmotionLabel.DISGUST,
    "calm": EmotionLabel.NEUTRAL,
}


def parse_emotion(value) -> EmotionLabel:
    """Normalize an emotion label.

    Raises:
        ValidationError: If the label is not recognized
    """
    if value is None:
        return EmotionLabel.NEUTRAL
    if isinstance(value, EmotionLabel):
        return value
    if not isinstance(value, str):
        raise ValidationError("Emotion must be a string", details={"emotion": repr(value)})

    label = value.strip().lower()
    if label in _EMOTION_ALIASES:
        return _EMOTION_ALIASES[label]
    try:
        return EmotionLabel(label)
    except ValueError:
        raise ValidationError(
            f"Unknown emotion label: {value}",
            details={"emotion": value},
        ) from None


class ResponseKind(str, Enum):
    """What the caller should do with the user-visible reply."""
    NORMAL = "normal"
    STEP_UP = "step_up"
    BLOCK = "block"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RiskEvent:
    """A single piece of risk evidence. Immutable once created."""
    kind: RiskEventKind
    detail: str
    score_delta: int
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if self.score_delta < 0:
            raise ValueError("score_delta must be non-negative")


@dataclass
class SessionMeta:
    """Caller-supplied session context used for incidents and alerts."""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    language: Language = Language.ENGLISH


@dataclass
class IntentResult:
    """Output of an intent classifier."""
    intent: Intent
    language: Language


@dataclass
class AnalysisResult:
    """Result of analyzing one inbound message."""
    session_id: str
    risk_score: int
    risk_level: RiskLevel
    events: List[RiskEvent]
    control_state: ControlState
    intent: Intent
    language: Language
    response_kind: ResponseKind
    reply: Optional[str] = None
    incident_id: Optional[str] = None

    @property
    def triggers(self) -> List[str]:
        """Distinct event kinds raised by this message, in order."""
        seen: List[str] = []
        for event in self.events:
            if event.kind.value not in seen:
                seen.append(event.kind.value)
        return seen


@dataclass(frozen=True)
class RiskSnapshot:
    """Read-only view of a session's risk for display."""
    score: int = 0
    level: RiskLevel = RiskLevel.LOW
    control_state: ControlState = ControlState.MONITORING
    incident_id: Optional[str] = None
