"""Risk rule tables - configurable deltas and thresholds.

Rules live in config/risk_rules.yaml and are validated into a RiskRules
model. Every field carries a default so the engine runs without the file.
"""

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator

from fraud_sentinel.common.exceptions import ConfigurationError
from fraud_sentinel.core.types import RiskEventKind

logger = logging.getLogger(__name__)


DEFAULT_RULES_FILE = Path(__file__).parent.parent.parent.parent / "config" / "risk_rules.yaml"


class KeywordTier(BaseModel):
    """One tier of the keyword table. Phrases are scanned in order."""
    kind: RiskEventKind = Field(..., description="Event kind raised on a hit")
    delta: int = Field(..., ge=0, description="Score delta for a hit")
    phrases: List[str] = Field(default_factory=list, description="Ordered phrase list")


def _default_keyword_tiers() -> List[KeywordTier]:
    return [
        KeywordTier(
            kind=RiskEventKind.HIGH_RISK_KEYWORD,
            delta=25,
            phrases=[
                # English
                "transfer all", "send all money", "share otp", "give otp", "tell otp",
                "share password", "give password", "urgent transfer", "emergency transfer",
                "immediately transfer", "full amount", "entire balance", "wire everything",
                "all savings", "empty account", "withdraw all",
                # Hindi
                "सारे पैसे भेजो", "otp बताओ", "otp दो", "पासवर्ड बताओ", "तुरंत ट्रांसफर",
                "पूरा पैसा", "सब पैसे", "जल्दी भेजो", "खाता खाली",
                # Hinglish
                "saare paise bhejo", "otp batao", "otp do", "password batao", "turant transfer",
                "poora paisa", "sab paise", "jaldi bhejo", "khata khaali",
                # Marathi
                "सगळे पैसे पाठवा", "otp सांगा", "पासवर्ड सांगा", "तातडीने ट्रान्सफर",
            ],
        ),
        KeywordTier(
            kind=RiskEventKind.MEDIUM_RISK_KEYWORD,
            delta=8,
            phrases=[
                "otp", "transfer", "send money", "bhejo", "पैसे भेजो", "पाठवा",
                "change password", "change number", "change email", "update phone",
                "password change", "forgot password", "reset password",
                "नंबर बदलो", "पासवर्ड बदलो",
            ],
        ),
    ]


class RiskRules(BaseModel):
    """Parsed risk rules.

    In-memory representation of risk_rules.yaml, consumed by the
    signal extractor and the risk accumulator.
    """

    class OtpRules(BaseModel):
        small_from: int = Field(default=2, ge=1, description="First mention count that scores")
        small_delta: int = Field(default=5, ge=0)
        large_from: int = Field(default=4, ge=1, description="Mention count from which the large delta applies")
        large_delta: int = Field(default=20, ge=0)

    class AmountRules(BaseModel):
        high_threshold: int = Field(default=100000, ge=0)
        high_delta: int = Field(default=15, ge=0)
        medium_threshold: int = Field(default=50000, ge=0)
        medium_delta: int = Field(default=8, ge=0)
        rapid_threshold: int = Field(default=3, ge=0, description="Bonus once the request count exceeds this")
        rapid_delta: int = Field(default=10, ge=0)

    class EmotionRules(BaseModel):
        streak_threshold: int = Field(default=2, ge=1)
        delta: int = Field(default=10, ge=0)

    class IdentityRules(BaseModel):
        mismatch_delta: int = Field(default=20, ge=0)
        stop_words: List[str] = Field(
            default_factory=lambda: [
                "worried", "scared", "afraid", "sure", "not", "sorry", "fine", "ok", "okay",
                "here", "going", "trying", "unable", "confused", "calling", "waiting",
                "looking", "interested", "a", "an", "the", "very", "so", "really", "just",
                "in", "at", "on", "from", "with", "your", "customer", "user", "having",
                "getting", "done", "good", "happy", "angry", "upset", "stuck", "ready",
            ],
            description="Words that follow 'I am' without being a name",
        )

    class LevelRules(BaseModel):
        medium_min: int = Field(default=31, ge=0)
        high_min: int = Field(default=61, ge=0)
        max_score: int = Field(default=100, ge=1)

    version: str = Field(default="1.0.0", description="Rules version")
    keyword_tiers: List[KeywordTier] = Field(default_factory=_default_keyword_tiers)
    otp: OtpRules = Field(default_factory=OtpRules)
    amounts: AmountRules = Field(default_factory=AmountRules)
    emotion: EmotionRules = Field(default_factory=EmotionRules)
    identity: IdentityRules = Field(default_factory=IdentityRules)
    levels: LevelRules = Field(default_factory=LevelRules)

    @model_validator(mode="after")
    def _check_boundaries(self) -> "RiskRules":
        lv = self.levels
        if not 0 < lv.medium_min < lv.high_min <= lv.max_score:
            raise ValueError("levels must satisfy 0 < medium_min < high_min <= max_score")
        if self.otp.large_from <= self.otp.small_from:
            raise ValueError("otp.large_from must be greater than otp.small_from")
        if self.amounts.medium_threshold > self.amounts.high_threshold:
            raise ValueError("amounts.medium_threshold must not exceed high_threshold")
        return self


def load_risk_rules(path: Optional[Path] = None) -> RiskRules:
    """Load risk rules from YAML.

    Args:
        path: Explicit rules file. When None the bundled file is used, and
            a missing bundled file falls back to built-in defaults.

    Raises:
        ConfigurationError: If an explicit file is missing or any file is invalid
    """
    explicit = path is not None
    rules_file = Path(path) if explicit else DEFAULT_RULES_FILE

    if not rules_file.exists():
        if explicit:
            raise ConfigurationError(
                f"Risk rules file not found: {rules_file}",
                details={"path": str(rules_file)},
            )
        logger.warning(f"Risk rules file {rules_file} not found, using defaults")
        return RiskRules()

    try:
        with open(rules_file, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        rules = RiskRules.model_validate(raw)
    except (yaml.YAMLError, PydanticValidationError) as e:
        raise ConfigurationError(
            f"Invalid risk rules file {rules_file}: {e}",
            details={"path": str(rules_file)},
        ) from e

    logger.info(f"Loaded risk rules v{rules.version} from {rules_file}")
    return rules
