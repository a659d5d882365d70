"""Escalation - control state transitions and protective responses."""

from fraud_sentinel.escalation.responses import (
    HIGH_RISK_BLOCK,
    STEP_UP_VERIFY,
    protective_response,
)
from fraud_sentinel.escalation.state_machine import EscalationStateMachine, build_narrative

__all__ = [
    "HIGH_RISK_BLOCK",
    "STEP_UP_VERIFY",
    "protective_response",
    "EscalationStateMachine",
    "build_narrative",
]
