"""Governance schemas - type definitions for the audit trail."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from fraud_sentinel.common.constants import SessionConstants


class AuditLevel(str, Enum):
    """Severity of an audit entry."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLogEntry(BaseModel):
    """Immutable audit log entry.

    Every risk event, incident and alert outcome produces one of these.
    Serialized to JSONL for file storage and to a flat item for DynamoDB.
    """
    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(
        default_factory=lambda: f"aud_{uuid4().hex[:16]}",
        description="Unique entry identifier"
    )
    level: AuditLevel = Field(
        default=AuditLevel.INFO,
        description="Severity level"
    )
    action: str = Field(
        ...,
        min_length=1,
        description="Machine-readable action, e.g. FRAUD_DETECTED"
    )
    message: str = Field(
        default="",
        description="Human-readable summary"
    )
    session_ref: Optional[str] = Field(
        default=None,
        description="Session generation the entry belongs to"
    )
    meta: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the entry was recorded (UTC)"
    )

    def to_jsonl(self) -> str:
        """Serialize entry to JSONL format."""
        return json.dumps(self.model_dump(mode="json"), default=str, ensure_ascii=False)

    @classmethod
    def from_jsonl(cls, line: str) -> "AuditLogEntry":
        """Deserialize entry from JSONL format."""
        return cls.model_validate(json.loads(line))


class AuditFilter(BaseModel):
    """Query filter for audit entries. All fields are optional and ANDed."""
    level: Optional[AuditLevel] = Field(
        default=None,
        description="Exact level match"
    )
    action_substring: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring of the action"
    )
    session_ref: Optional[str] = Field(
        default=None,
        description="Exact session ref, or a bare session id matching any generation"
    )
    since: Optional[datetime] = Field(
        default=None,
        description="Only entries at or after this time"
    )

    def matches(self, entry: AuditLogEntry) -> bool:
        """Check whether an entry satisfies this filter."""
        if self.level is not None and entry.level != self.level:
            return False
        if self.action_substring and self.action_substring.lower() not in entry.action.lower():
            return False
        if self.session_ref is not None:
            ref = entry.session_ref or ""
            if ref != self.session_ref and ref.rsplit(SessionConstants.REF_SEPARATOR, 1)[0] != self.session_ref:
                return False
        if self.since is not None and entry.timestamp < self.since:
            return False
        return True
