"""Audit trail - ring buffer plus pluggable durable stores."""

from fraud_sentinel.governance.audit.store import AuditStore, FileAuditStore
from fraud_sentinel.governance.audit.background_writer import BackgroundAuditWriter
from fraud_sentinel.governance.audit.trail import AuditTrail
from fraud_sentinel.governance.audit.config import create_audit_store, create_audit_trail

__all__ = [
    "AuditStore",
    "FileAuditStore",
    "BackgroundAuditWriter",
    "AuditTrail",
    "create_audit_store",
    "create_audit_trail",
]
