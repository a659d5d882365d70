"""Orchestration - session handling and the public risk engine."""

from fraud_sentinel.orchestration.intent import (
    IntentClassifier,
    RuleBasedIntentClassifier,
    detect_language,
)
from fraud_sentinel.orchestration.session_store import SessionRecord, SessionStore
from fraud_sentinel.orchestration.engine import RiskEngine

__all__ = [
    "IntentClassifier",
    "RuleBasedIntentClassifier",
    "detect_language",
    "SessionRecord",
    "SessionStore",
    "RiskEngine",
]
