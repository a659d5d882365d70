"""Configuration management - Centralized configuration for Fraud Sentinel.

Provides environment-aware configuration with sensible defaults.
All configuration is loaded from environment variables with fallbacks.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from fraud_sentinel.common.constants import (
    AlertConstants,
    AuditConstants,
    IncidentConstants,
    RetryConstants,
    SessionConstants,
)


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditStorageType(str, Enum):
    """Durable audit storage backend types."""
    MEMORY = "memory"
    FILE = "file"
    DYNAMODB = "dynamodb"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # settings.py -> config -> common -> fraud_sentinel -> src -> project_root
    current = Path(__file__).resolve()
    return current.parent.parent.parent.parent.parent


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class Config:
    """Central configuration object for Fraud Sentinel.

    All settings can be overridden via environment variables prefixed with SENTINEL_.
    Provider credentials keep the vendor's conventional variable names.

    Example:
        SENTINEL_ENVIRONMENT=production
        SENTINEL_AUDIT_STORAGE_TYPE=dynamodb
        SERVICENOW_INSTANCE=acme.service-now.com
    """

    # Core settings
    environment: Environment = field(
        default_factory=lambda: Environment(
            os.getenv("SENTINEL_ENVIRONMENT", "development")
        )
    )
    debug: bool = field(
        default_factory=lambda: _env_bool("SENTINEL_DEBUG", "false")
    )
    log_level: LogLevel = field(
        default_factory=lambda: LogLevel(os.getenv("SENTINEL_LOG_LEVEL", "INFO"))
    )

    # Paths
    project_root: Path = field(default_factory=_get_project_root)
    risk_rules_file: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["SENTINEL_RISK_RULES_FILE"])
            if os.getenv("SENTINEL_RISK_RULES_FILE") else None
        )
    )

    # Audit settings
    audit_storage_type: AuditStorageType = field(
        default_factory=lambda: AuditStorageType(
            os.getenv("SENTINEL_AUDIT_STORAGE_TYPE", "memory")
        )
    )
    audit_log_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("SENTINEL_AUDIT_LOG_DIR", "./logs/audit")
        )
    )
    audit_dynamodb_table: Optional[str] = field(
        default_factory=lambda: os.getenv("SENTINEL_AUDIT_DYNAMODB_TABLE")
    )
    audit_buffer_capacity: int = field(
        default_factory=lambda: int(
            os.getenv("SENTINEL_AUDIT_BUFFER_CAPACITY", str(AuditConstants.BUFFER_CAPACITY))
        )
    )
    audit_retention_days: int = field(
        default_factory=lambda: int(
            os.getenv("SENTINEL_AUDIT_RETENTION_DAYS", str(AuditConstants.RETENTION_DAYS))
        )
    )
    audit_use_background_writer: bool = field(
        default_factory=lambda: _env_bool("SENTINEL_AUDIT_BACKGROUND_WRITER", "true")
    )

    # AWS settings (for DynamoDB)
    aws_region: str = field(
        default_factory=lambda: os.getenv("AWS_DEFAULT_REGION", "us-east-1")
    )

    # Ticketing (ServiceNow)
    servicenow_instance: str = field(
        default_factory=lambda: os.getenv("SERVICENOW_INSTANCE", "")
    )
    servicenow_user: str = field(
        default_factory=lambda: os.getenv("SERVICENOW_USER", "")
    )
    servicenow_password: str = field(
        default_factory=lambda: os.getenv("SERVICENOW_PASSWORD", "")
    )
    ticketing_timeout_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("SENTINEL_TICKETING_TIMEOUT", str(IncidentConstants.REQUEST_TIMEOUT_SECONDS))
        )
    )
    incident_sla_hours: float = field(
        default_factory=lambda: float(
            os.getenv("SENTINEL_INCIDENT_SLA_HOURS", str(IncidentConstants.SLA_HOURS))
        )
    )
    incident_fallback_to_simulated: bool = field(
        default_factory=lambda: _env_bool("SENTINEL_INCIDENT_FALLBACK", "true")
    )

    # Notifications (Twilio)
    twilio_account_sid: str = field(
        default_factory=lambda: os.getenv("TWILIO_ACCOUNT_SID", "")
    )
    twilio_auth_token: str = field(
        default_factory=lambda: os.getenv("TWILIO_AUTH_TOKEN", "")
    )
    twilio_phone_number: str = field(
        default_factory=lambda: os.getenv("TWILIO_PHONE_NUMBER", "")
    )
    twilio_whatsapp_number: str = field(
        default_factory=lambda: os.getenv("TWILIO_WHATSAPP_NUMBER", "")
    )
    alert_timeout_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("SENTINEL_ALERT_TIMEOUT", str(AlertConstants.REQUEST_TIMEOUT_SECONDS))
        )
    )
    dispatch_timeout_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("SENTINEL_DISPATCH_TIMEOUT", str(AlertConstants.DISPATCH_TIMEOUT_SECONDS))
        )
    )
    voice_risk_threshold: int = field(
        default_factory=lambda: int(
            os.getenv("SENTINEL_VOICE_RISK_THRESHOLD", str(AlertConstants.VOICE_RISK_THRESHOLD))
        )
    )

    # Retry policy (shared shape for ticketing and alert channels)
    retry_max_attempts: int = field(
        default_factory=lambda: int(
            os.getenv("SENTINEL_RETRY_MAX_ATTEMPTS", str(RetryConstants.MAX_ATTEMPTS))
        )
    )
    retry_base_delay_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("SENTINEL_RETRY_BASE_DELAY", str(RetryConstants.BASE_DELAY_SECONDS))
        )
    )
    retry_max_jitter_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("SENTINEL_RETRY_MAX_JITTER", str(RetryConstants.MAX_JITTER_SECONDS))
        )
    )

    # Sessions (0 disables idle eviction)
    session_idle_ttl_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("SENTINEL_SESSION_IDLE_TTL", str(SessionConstants.IDLE_TTL_SECONDS))
        )
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.audit_storage_type == AuditStorageType.DYNAMODB:
            if not self.audit_dynamodb_table:
                raise ValueError(
                    "SENTINEL_AUDIT_DYNAMODB_TABLE must be set when using DynamoDB audit storage"
                )

        if self.audit_buffer_capacity <= 0:
            raise ValueError("SENTINEL_AUDIT_BUFFER_CAPACITY must be positive")

        if self.retry_max_attempts < 1:
            raise ValueError("SENTINEL_RETRY_MAX_ATTEMPTS must be at least 1")

        if self.session_idle_ttl_seconds < 0:
            raise ValueError("SENTINEL_SESSION_IDLE_TTL must not be negative")

        # Warn about debug in production
        if self.environment == Environment.PRODUCTION and self.debug:
            import warnings
            warnings.warn(
                "Debug mode is enabled in production environment",
                RuntimeWarning,
                stacklevel=2
            )

    @property
    def config_dir(self) -> Path:
        """Get the config directory path."""
        return self.project_root / "config"

    @property
    def ticketing_configured(self) -> bool:
        """True when ServiceNow credentials are complete."""
        return bool(
            self.servicenow_instance and self.servicenow_user and self.servicenow_password
        )

    @property
    def twilio_configured(self) -> bool:
        """True when Twilio can place SMS and voice traffic."""
        return bool(
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT


# Singleton instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config: The global configuration singleton.
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
