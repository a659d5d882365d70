"""Custom exceptions for Fraud Sentinel.

Provides a hierarchy of exceptions for different error types.
All Fraud Sentinel exceptions inherit from FraudSentinelException.

Upstream errors are split by retry semantics:
- TransientUpstreamError: network failures, timeouts, 5xx, 429. Retried.
- PermanentUpstreamError: 4xx validation or missing configuration. Never retried.
"""

from typing import Any, Dict, Optional


class FraudSentinelException(Exception):
    """Base exception for all Fraud Sentinel errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: str = "SENTINEL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(FraudSentinelException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class ValidationError(FraudSentinelException):
    """Raised when input to analyze/reset is malformed. Never retried."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class UpstreamError(FraudSentinelException):
    """Base for failures of ticketing or notification providers.

    Attributes:
        service: Name of the upstream (e.g. "servicenow", "twilio:sms")
        status_code: HTTP status, if the failure came from a response
        attempts: Number of attempts made before giving up
    """

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        code: str = "UPSTREAM_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["service"] = service
        if status_code is not None:
            details["status_code"] = status_code
        self.service = service
        self.status_code = status_code
        self.attempts = 0
        super().__init__(message, code=code, details=details)


class TransientUpstreamError(UpstreamError):
    """Network/5xx failure. Retried per policy, then downgraded to a logged failure."""

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message, service, status_code=status_code,
            code="TRANSIENT_UPSTREAM_ERROR", details=details,
        )


class PermanentUpstreamError(UpstreamError):
    """4xx/config-missing failure. Fails fast and triggers simulated fallback."""

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message, service, status_code=status_code,
            code="PERMANENT_UPSTREAM_ERROR", details=details,
        )


class IncidentNotFoundError(FraudSentinelException):
    """Raised when an incident id is unknown locally and upstream."""

    def __init__(self, incident_id: str):
        super().__init__(
            f"Incident not found: {incident_id}",
            code="INCIDENT_NOT_FOUND",
            details={"incident_id": incident_id},
        )


class InvariantViolation(FraudSentinelException):
    """A programming defect, e.g. a second incident for one session.

    Never raised across the engine boundary; detected, logged at critical
    and turned into a no-op.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INVARIANT_VIOLATION", details=details)


class AuditError(FraudSentinelException):
    """Raised by durable audit stores when a write or query fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="AUDIT_ERROR", details=details)


def classify_http_status(status_code: int, service: str, body: str = "") -> UpstreamError:
    """Map an unsuccessful HTTP status to the matching upstream error.

    5xx and 429 are transient; every other 4xx is permanent.
    """
    message = f"{service} returned HTTP {status_code}"
    if body:
        message = f"{message}: {body[:200]}"
    if status_code >= 500 or status_code == 429:
        return TransientUpstreamError(message, service, status_code=status_code)
    return PermanentUpstreamError(message, service, status_code=status_code)
