"""Centralized constants for Fraud Sentinel system configuration."""


# ===== AUDIT & LOGGING =====
class AuditConstants:
    BUFFER_CAPACITY = 1000
    RETENTION_DAYS = 90
    QUEUE_SIZE = 10000
    FLUSH_TIMEOUT_SECONDS = 5.0
    QUEUE_GET_TIMEOUT = 1.0
    DEFAULT_QUERY_LIMIT = 100
    LOG_FILENAME_PATTERN = "sentinel_audit_{date}.jsonl"


# ===== AUDIT ACTIONS =====
class AuditActions:
    RISK_EVENT = "RISK_EVENT"
    FRAUD_DETECTED = "FRAUD_DETECTED"
    STEP_UP_REQUIRED = "STEP_UP_REQUIRED"
    SESSION_RESET = "SESSION_RESET"
    SESSION_ENDED = "SESSION_ENDED"
    INCIDENT_CREATED = "INCIDENT_CREATED"
    INCIDENT_UPDATED = "INCIDENT_UPDATED"
    INCIDENT_UPSTREAM_FAILED = "INCIDENT_UPSTREAM_FAILED"
    INCIDENT_CREATE_FAILED = "INCIDENT_CREATE_FAILED"
    ALERT_SENT = "ALERT_SENT"
    ALERT_FAILED = "ALERT_FAILED"
    ALERT_SKIPPED = "ALERT_SKIPPED"
    ALERT_DISPATCH_FAILED = "ALERT_DISPATCH_FAILED"
    AUDIT_STORE_FAILED = "AUDIT_STORE_FAILED"
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"


# ===== RETRY =====
class RetryConstants:
    MAX_ATTEMPTS = 3
    BASE_DELAY_SECONDS = 1.0
    MAX_JITTER_SECONDS = 0.5


# ===== INCIDENTS =====
class IncidentConstants:
    COUNTER_START = 1000
    ID_PREFIX = "INC"
    SLA_HOURS = 2
    CATEGORY = "Financial Fraud"
    SUBCATEGORY = "Account Compromise"
    ASSIGNMENT_TARGET = "Fraud Response Team"
    CONTACT_TYPE = "AI Chatbot"
    CHANNEL = "AI Avatar Chatbot"
    REQUEST_TIMEOUT_SECONDS = 10.0
    DEFAULT_LIST_LIMIT = 20


# ===== ALERTS =====
class AlertConstants:
    VOICE_RISK_THRESHOLD = 61
    REQUEST_TIMEOUT_SECONDS = 10.0
    DISPATCH_TIMEOUT_SECONDS = 30.0
    MAX_WORKERS = 3
    DEFAULT_CUSTOMER_NAME = "Customer"
    DEFAULT_LANGUAGE = "en"


# ===== SESSIONS & INPUT =====
class SessionConstants:
    MAX_MESSAGE_LENGTH = 5000
    MAX_SESSION_ID_LENGTH = 128
    IDLE_TTL_SECONDS = 3600.0
    REF_SEPARATOR = "#"
