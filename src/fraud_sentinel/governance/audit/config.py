"""Audit Layer Configuration and Initialization.

Builds the durable audit store and the audit trail from Config.

Storage types (SENTINEL_AUDIT_STORAGE_TYPE):
- memory: ring buffer only (default)
- file: daily JSONL files under SENTINEL_AUDIT_LOG_DIR
- dynamodb: table SENTINEL_AUDIT_DYNAMODB_TABLE with TTL retention
"""

import logging
from typing import Optional

from fraud_sentinel.common.config import AuditStorageType, Config, get_config
from fraud_sentinel.governance.audit.store import AuditStore, FileAuditStore
from fraud_sentinel.governance.audit.trail import AuditTrail

logger = logging.getLogger(__name__)


def create_audit_store(config: Optional[Config] = None, **kwargs) -> Optional[AuditStore]:
    """Factory method to create the durable audit store.

    Args:
        config: Configuration (global config if not provided)
        **kwargs: Extra arguments for store initialization

    Returns:
        Configured AuditStore, or None for memory-only operation. A store
        that cannot be constructed degrades to memory-only.
    """
    config = config or get_config()
    storage_type = config.audit_storage_type

    if storage_type == AuditStorageType.MEMORY:
        return None

    try:
        if storage_type == AuditStorageType.FILE:
            return FileAuditStore(
                log_dir=str(config.audit_log_dir),
                retention_days=config.audit_retention_days,
                **kwargs
            )

        if storage_type == AuditStorageType.DYNAMODB:
            # Import here so boto3 is only loaded when DynamoDB is selected
            from fraud_sentinel.governance.audit.dynamodb_store import DynamoDBAuditStore

            return DynamoDBAuditStore(
                table_name=config.audit_dynamodb_table,
                region=config.aws_region,
                retention_days=config.audit_retention_days,
                **kwargs
            )
    except Exception as e:
        logger.error(f"Cannot initialize {storage_type.value} audit store: {e}")
        logger.warning("Falling back to memory-only audit trail")
        return None

    raise ValueError(f"Unknown storage type: {storage_type}")


def create_audit_trail(config: Optional[Config] = None, store: Optional[AuditStore] = None) -> AuditTrail:
    """Factory method to create the audit trail with its configured backend."""
    config = config or get_config()
    if store is None:
        store = create_audit_store(config)

    return AuditTrail(
        store=store,
        capacity=config.audit_buffer_capacity,
        use_background_writer=config.audit_use_background_writer,
    )


__all__ = [
    "create_audit_store",
    "create_audit_trail",
]
