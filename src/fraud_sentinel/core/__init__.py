"""Core types shared across the risk engine."""

from fraud_sentinel.core.types import (
    AnalysisResult,
    ControlState,
    EmotionLabel,
    Intent,
    IntentResult,
    Language,
    ResponseKind,
    RiskEvent,
    RiskEventKind,
    RiskLevel,
    RiskSnapshot,
    SessionMeta,
    parse_emotion,
)

__all__ = [
    "AnalysisResult",
    "ControlState",
    "EmotionLabel",
    "Intent",
    "IntentResult",
    "Language",
    "ResponseKind",
    "RiskEvent",
    "RiskEventKind",
    "RiskLevel",
    "RiskSnapshot",
    "SessionMeta",
    "parse_emotion",
]
