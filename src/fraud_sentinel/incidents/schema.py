"""Incident schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fraud_sentinel.common.constants import IncidentConstants
from fraud_sentinel.core.types import RiskLevel


class IncidentPriority(str, Enum):
    """Ticket priority, as named by the ticketing backend."""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# ServiceNow numeric codes (priority, urgency and impact share the scale)
PRIORITY_CODES = {
    IncidentPriority.CRITICAL: "1",
    IncidentPriority.HIGH: "2",
    IncidentPriority.MEDIUM: "3",
    IncidentPriority.LOW: "4",
}
PRIORITY_BY_CODE = {code: priority for priority, code in PRIORITY_CODES.items()}


def priority_for_level(level: RiskLevel) -> IncidentPriority:
    """Ticket priority for a risk level."""
    return {
        RiskLevel.HIGH: IncidentPriority.CRITICAL,
        RiskLevel.MEDIUM: IncidentPriority.HIGH,
    }.get(RiskLevel(level), IncidentPriority.MEDIUM)


class IncidentDraft(BaseModel):
    """Everything needed to open a ticket, before an id is assigned."""
    model_config = ConfigDict(frozen=True)

    short_description: str = Field(..., min_length=1)
    narrative: str = Field(default="", description="Long description of the triggers")
    priority: IncidentPriority = Field(default=IncidentPriority.HIGH)
    category: str = Field(default=IncidentConstants.CATEGORY)
    subcategory: str = Field(default=IncidentConstants.SUBCATEGORY)
    assignment_target: str = Field(default=IncidentConstants.ASSIGNMENT_TARGET)
    contact_type: str = Field(default=IncidentConstants.CONTACT_TYPE)
    channel: str = Field(default=IncidentConstants.CHANNEL)
    risk_score: int = Field(default=0, ge=0, le=100)
    risk_level: RiskLevel = Field(default=RiskLevel.LOW)
    session_ref: Optional[str] = Field(default=None)
    customer_id: Optional[str] = Field(default=None)
    customer_phone: Optional[str] = Field(default=None)


class Incident(BaseModel):
    """Immutable incident record.

    Shaped identically whether it came from the upstream ticketing
    service or the simulated store; only ``simulated`` differs.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Human-readable number, e.g. INC1001")
    provider_ref: str = Field(..., description="Upstream sys_id or sim_* reference")
    priority: IncidentPriority
    category: str
    subcategory: str = Field(default=IncidentConstants.SUBCATEGORY)
    assignment_target: str
    risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    created_at: datetime
    sla_deadline: datetime
    short_description: str
    narrative: str
    state: str = Field(default="New")
    session_ref: Optional[str] = None
    customer_id: Optional[str] = None
    updated_at: Optional[datetime] = None
    simulated: bool = False


class IncidentPatch(BaseModel):
    """Fields a caller may change on an existing incident."""
    state: Optional[str] = None
    priority: Optional[IncidentPriority] = None
    assignment_target: Optional[str] = None
    short_description: Optional[str] = None
    narrative: Optional[str] = None

    def changes(self) -> dict:
        """Only the fields that were set."""
        return self.model_dump(exclude_none=True)
