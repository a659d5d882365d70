"""Fraud Sentinel - Conversational Banking Fraud Risk Engine."""

__version__ = "0.1.0"
__author__ = "Fraud Sentinel Team"

# Core exports
from fraud_sentinel.core.types import (
    AnalysisResult,
    ControlState,
    RiskEvent,
    RiskEventKind,
    RiskLevel,
    RiskSnapshot,
    SessionMeta,
)
from fraud_sentinel.orchestration.engine import RiskEngine

__all__ = [
    "AnalysisResult",
    "ControlState",
    "RiskEvent",
    "RiskEventKind",
    "RiskLevel",
    "RiskSnapshot",
    "SessionMeta",
    "RiskEngine",
]
