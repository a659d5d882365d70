"""Logging helpers."""

from fraud_sentinel.common.logging.logger import audit_level_to_logging, get_logger

__all__ = ["get_logger", "audit_level_to_logging"]
