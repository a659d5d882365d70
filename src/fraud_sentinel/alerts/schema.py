"""Alert schemas."""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from fraud_sentinel.common.constants import AlertConstants
from fraud_sentinel.core.types import Language


class AlertChannel(str, Enum):
    """Notification channels."""
    SMS = "sms"
    RICH_MESSAGE = "rich_message"
    VOICE = "voice"


class AlertRequest(BaseModel):
    """What to tell the customer."""
    risk_score: int = Field(..., ge=0, le=100)
    incident_id: Optional[str] = Field(default=None)
    customer_name: str = Field(default=AlertConstants.DEFAULT_CUSTOMER_NAME)
    language: Language = Field(default=Language.ENGLISH)


class ProviderReceipt(BaseModel):
    """Provider acknowledgement of a sent notification."""
    model_config = ConfigDict(frozen=True)

    provider_ref: str
    status: str = "queued"
    simulated: bool = False


class AlertOutcome(BaseModel):
    """Final result of one channel in one dispatch call."""
    model_config = ConfigDict(frozen=True)

    channel: AlertChannel
    delivered: bool
    attempts: int = Field(ge=0)
    provider_ref: Optional[str] = None
    simulated: bool = False
    error: Optional[str] = None


class DispatchResult(BaseModel):
    """Per-channel outcomes; None means the channel was not attempted."""
    model_config = ConfigDict(frozen=True)

    sms: Optional[AlertOutcome] = None
    rich_message: Optional[AlertOutcome] = None
    voice: Optional[AlertOutcome] = None

    def outcomes(self) -> Dict[AlertChannel, AlertOutcome]:
        """Attempted channels only."""
        attempted = {
            AlertChannel.SMS: self.sms,
            AlertChannel.RICH_MESSAGE: self.rich_message,
            AlertChannel.VOICE: self.voice,
        }
        return {channel: outcome for channel, outcome in attempted.items() if outcome is not None}

    @property
    def skipped(self) -> bool:
        return not self.outcomes()

    @property
    def all_delivered(self) -> bool:
        outcomes = self.outcomes()
        return bool(outcomes) and all(o.delivered for o in outcomes.values())
