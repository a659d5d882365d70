"""Configuration module - Centralized config management."""

from fraud_sentinel.common.config.settings import (
    AuditStorageType,
    Config,
    Environment,
    LogLevel,
    get_config,
    reset_config,
)

__all__ = [
    "AuditStorageType",
    "Config",
    "Environment",
    "LogLevel",
    "get_config",
    "reset_config",
]
