"""Risk scoring - rule tables, session state, signal extraction, accumulation."""

from fraud_sentinel.risk.rules import RiskRules, KeywordTier, load_risk_rules
from fraud_sentinel.risk.state import SessionRiskState
from fraud_sentinel.risk.signals import SignalExtractor
from fraud_sentinel.risk.scorer import RiskAccumulator

__all__ = [
    "RiskRules",
    "KeywordTier",
    "load_risk_rules",
    "SessionRiskState",
    "SignalExtractor",
    "RiskAccumulator",
]
