"""Common utilities - logging, config, exceptions, retry."""

from fraud_sentinel.common.logging.logger import get_logger
from fraud_sentinel.common.config import Config, get_config, reset_config
from fraud_sentinel.common.exceptions import (
    FraudSentinelException,
    ConfigurationError,
    ValidationError,
    UpstreamError,
    TransientUpstreamError,
    PermanentUpstreamError,
    IncidentNotFoundError,
    InvariantViolation,
    AuditError,
)
from fraud_sentinel.common.retry import RetryPolicy

__all__ = [
    # Logging
    "get_logger",
    # Config
    "Config",
    "get_config",
    "reset_config",
    # Exceptions
    "FraudSentinelException",
    "ConfigurationError",
    "ValidationError",
    "UpstreamError",
    "TransientUpstreamError",
    "PermanentUpstreamError",
    "IncidentNotFoundError",
    "InvariantViolation",
    "AuditError",
    # Retry
    "RetryPolicy",
]
