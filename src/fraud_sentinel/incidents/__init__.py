"""Incident management - ticket creation with retry and simulated fallback."""

from fraud_sentinel.incidents.schema import (
    Incident,
    IncidentDraft,
    IncidentPatch,
    IncidentPriority,
)
from fraud_sentinel.incidents.backends import (
    IncidentBackend,
    ServiceNowBackend,
    SimulatedIncidentStore,
)
from fraud_sentinel.incidents.client import IncidentClient

__all__ = [
    "Incident",
    "IncidentDraft",
    "IncidentPatch",
    "IncidentPriority",
    "IncidentBackend",
    "ServiceNowBackend",
    "SimulatedIncidentStore",
    "IncidentClient",
]
