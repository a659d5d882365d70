"""Governance layer - audit trail and its schemas."""

from fraud_sentinel.governance.schemas import AuditFilter, AuditLevel, AuditLogEntry
from fraud_sentinel.governance.audit import AuditTrail, create_audit_trail

__all__ = [
    "AuditFilter",
    "AuditLevel",
    "AuditLogEntry",
    "AuditTrail",
    "create_audit_trail",
]
