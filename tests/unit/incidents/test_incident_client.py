"""Unit tests for the Incident Client."""

import httpx
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from fraud_sentinel.common.constants import AuditActions
from fraud_sentinel.common.exceptions import (
    IncidentNotFoundError,
    PermanentUpstreamError,
    TransientUpstreamError,
)
from fraud_sentinel.common.retry import RetryPolicy
from fraud_sentinel.core.types import RiskLevel, SessionMeta
from fraud_sentinel.governance.audit.trail import AuditTrail
from fraud_sentinel.governance.schemas import AuditFilter, AuditLevel
from fraud_sentinel.incidents.backends import ServiceNowBackend, SimulatedIncidentStore
from fraud_sentinel.incidents.client import IncidentClient
from fraud_sentinel.incidents.schema import Incident, IncidentPatch, IncidentPriority


FIXED_NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def audit():
    return AuditTrail(use_background_writer=False)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def retry_policy(sleeps):
    return RetryPolicy(max_attempts=3, base_delay=1.0, max_jitter=0.0, sleep=sleeps.append)


@pytest.fixture
def store():
    return SimulatedIncidentStore(clock=lambda: FIXED_NOW)


@pytest.fixture
def client(store, retry_policy, audit):
    return IncidentClient(simulated_store=store, retry_policy=retry_policy, audit=audit)


def upstream_incident(number="INC0010001"):
    return Incident(
        id=number,
        provider_ref="a" * 32,
        priority=IncidentPriority.CRITICAL,
        category="Financial Fraud",
        assignment_target="Fraud Response Team",
        risk_score=80,
        risk_level=RiskLevel.HIGH,
        created_at=FIXED_NOW,
        sla_deadline=FIXED_NOW + timedelta(hours=2),
        short_description="High fraud risk",
        narrative="triggers",
        session_ref="sess#0",
    )


class TestSimulatedCreate:
    """Creation without an upstream."""

    def test_first_id_and_sla(self, client):
        incident = client.create("narrative", 75, RiskLevel.HIGH, session_ref="sess#0")

        assert incident.id == "INC1001"
        assert incident.simulated is True
        assert incident.provider_ref.startswith("sim_")
        assert incident.priority == IncidentPriority.CRITICAL
        assert incident.category == "Financial Fraud"
        assert incident.assignment_target == "Fraud Response Team"
        assert incident.state == "New"
        assert incident.sla_deadline == FIXED_NOW + timedelta(hours=2)
        assert incident.narrative == "narrative"

    def test_ids_monotonic(self, client):
        ids = [
            client.create("n", 70, RiskLevel.HIGH, session_ref=f"s{i}#0").id
            for i in range(3)
        ]
        assert ids == ["INC1001", "INC1002", "INC1003"]

    @pytest.mark.parametrize("level,priority", [
        (RiskLevel.HIGH, IncidentPriority.CRITICAL),
        (RiskLevel.MEDIUM, IncidentPriority.HIGH),
        (RiskLevel.LOW, IncidentPriority.MEDIUM),
    ])
    def test_priority_mapping(self, client, level, priority):
        assert client.create("n", 50, level).priority == priority

    def test_customer_carried(self, client):
        meta = SessionMeta(customer_id="CUST9", phone="+91123")
        incident = client.create("n", 70, RiskLevel.HIGH, session_meta=meta)
        assert incident.customer_id == "CUST9"

    def test_audited(self, client, audit):
        incident = client.create("n", 70, RiskLevel.HIGH, session_ref="sess#0")

        entries = audit.query(AuditFilter(action_substring=AuditActions.INCIDENT_CREATED))
        assert len(entries) == 1
        assert entries[0].meta["incident_id"] == incident.id
        assert entries[0].meta["simulated"] is True
        assert entries[0].session_ref == "sess#0"


class TestAtMostOncePerSession:
    """Duplicate creation for one session ref."""

    def test_duplicate_returns_existing(self, client, store, audit):
        first = client.create("n", 70, RiskLevel.HIGH, session_ref="sess#0")
        second = client.create("n", 90, RiskLevel.HIGH, session_ref="sess#0")

        assert second.id == first.id
        assert len(store) == 1
        violations = audit.query(AuditFilter(action_substring=AuditActions.INVARIANT_VIOLATION))
        assert len(violations) == 1
        assert violations[0].level == AuditLevel.CRITICAL

    def test_new_generation_allowed(self, client):
        first = client.create("n", 70, RiskLevel.HIGH, session_ref="sess#0")
        second = client.create("n", 70, RiskLevel.HIGH, session_ref="sess#1")

        assert first.id != second.id
        assert client.incident_for_session("sess#1").id == second.id

    def test_release_session_frees_every_generation(self, client, store):
        first = client.create("n", 70, RiskLevel.HIGH, session_ref="sess#0")
        client.create("n", 70, RiskLevel.HIGH, session_ref="sess#1")
        other = client.create("n", 70, RiskLevel.HIGH, session_ref="sess2#0")

        assert client.release_session("sess") == 2
        assert client.incident_for_session("sess#0") is None
        assert client.incident_for_session("sess2#0").id == other.id
        # Simulated tickets stay readable
        assert client.get(first.id).session_ref == "sess#0"

        again = client.create("n", 70, RiskLevel.HIGH, session_ref="sess#0")
        assert again.id != first.id
        assert len(store) == 4

    def test_release_unknown_session(self, client):
        assert client.release_session("nobody") == 0


class TestUpstreamFallback:
    """Retry and simulated fallback."""

    def test_upstream_success(self, store, retry_policy, audit):
        backend = MagicMock()
        backend.create.return_value = upstream_incident()
        client = IncidentClient(backend=backend, simulated_store=store, retry_policy=retry_policy, audit=audit)

        incident = client.create("n", 80, RiskLevel.HIGH, session_ref="sess#0")

        assert incident.id == "INC0010001"
        assert incident.simulated is False
        assert len(store) == 0
        assert client.upstream_configured

    def test_transient_exhaustion_falls_back(self, store, retry_policy, sleeps, audit):
        backend = MagicMock()
        backend.create.side_effect = TransientUpstreamError("HTTP 503", "servicenow", status_code=503)
        client = IncidentClient(backend=backend, simulated_store=store, retry_policy=retry_policy, audit=audit)

        incident = client.create("n", 80, RiskLevel.HIGH, session_ref="sess#0")

        assert incident.simulated is True
        assert incident.id == "INC1001"
        assert backend.create.call_count == 3
        assert sleeps == [1.0, 2.0]

        failures = audit.query(AuditFilter(action_substring=AuditActions.INCIDENT_UPSTREAM_FAILED))
        assert len(failures) == 1
        assert failures[0].meta["attempts"] == 3

    def test_transient_then_success(self, store, retry_policy, sleeps, audit):
        backend = MagicMock()
        backend.create.side_effect = [
            TransientUpstreamError("timeout", "servicenow"),
            upstream_incident(),
        ]
        client = IncidentClient(backend=backend, simulated_store=store, retry_policy=retry_policy, audit=audit)

        incident = client.create("n", 80, RiskLevel.HIGH)

        assert incident.simulated is False
        assert backend.create.call_count == 2
        assert sleeps == [1.0]

    def test_permanent_error_not_retried(self, store, retry_policy, sleeps, audit):
        backend = MagicMock()
        backend.create.side_effect = PermanentUpstreamError("HTTP 401", "servicenow", status_code=401)
        client = IncidentClient(backend=backend, simulated_store=store, retry_policy=retry_policy, audit=audit)

        incident = client.create("n", 80, RiskLevel.HIGH)

        assert incident.simulated is True
        assert backend.create.call_count == 1
        assert sleeps == []

    def test_malformed_upstream_body_falls_back(self, store, retry_policy, sleeps, audit):
        backend = ServiceNowBackend(
            instance="dev12345.service-now.com",
            user="admin",
            password="secret",
            transport=httpx.MockTransport(lambda request: httpx.Response(201, json=["created"])),
        )
        client = IncidentClient(backend=backend, simulated_store=store, retry_policy=retry_policy, audit=audit)

        incident = client.create("n", 80, RiskLevel.HIGH, session_ref="sess#0")

        assert incident.simulated is True
        assert sleeps == []
        failures = audit.query(AuditFilter(action_substring=AuditActions.INCIDENT_UPSTREAM_FAILED))
        assert failures[0].meta["attempts"] == 1
        client.close()

    def test_fallback_disabled_raises(self, store, retry_policy, audit):
        backend = MagicMock()
        backend.create.side_effect = PermanentUpstreamError("HTTP 400", "servicenow", status_code=400)
        client = IncidentClient(
            backend=backend, simulated_store=store, retry_policy=retry_policy,
            audit=audit, fallback_to_simulated=False,
        )

        with pytest.raises(PermanentUpstreamError):
            client.create("n", 80, RiskLevel.HIGH, session_ref="sess#0")

        # The ref is released so a later attempt may succeed
        backend.create.side_effect = None
        backend.create.return_value = upstream_incident()
        assert client.create("n", 80, RiskLevel.HIGH, session_ref="sess#0").id == "INC0010001"


class TestGetUpdateList:
    """Read and update."""

    def test_get_roundtrip(self, client):
        created = client.create("n", 70, RiskLevel.HIGH)
        assert client.get(created.id) == created

    def test_get_unknown_raises(self, client):
        with pytest.raises(IncidentNotFoundError):
            client.get("INC9999")

    def test_update_returns_new_copy(self, client, audit):
        created = client.create("n", 70, RiskLevel.HIGH)

        updated = client.update(created.id, IncidentPatch(state="In Progress"))

        assert updated.state == "In Progress"
        assert updated.updated_at == FIXED_NOW
        assert created.state == "New"
        assert client.get(created.id).state == "In Progress"
        assert audit.query(AuditFilter(action_substring=AuditActions.INCIDENT_UPDATED))

    def test_update_accepts_dict(self, client):
        created = client.create("n", 70, RiskLevel.HIGH)
        updated = client.update(created.id, {"priority": "High"})
        assert updated.priority == IncidentPriority.HIGH

    def test_update_unknown_raises(self, client):
        with pytest.raises(IncidentNotFoundError):
            client.update("INC9999", {"state": "Closed"})

    def test_incident_is_frozen(self, client):
        created = client.create("n", 70, RiskLevel.HIGH)
        with pytest.raises(Exception):
            created.state = "Closed"

    def test_list_newest_first(self, client):
        for i in range(3):
            client.create("n", 70, RiskLevel.HIGH, session_ref=f"s{i}#0")

        assert [i.id for i in client.list_incidents(limit=2)] == ["INC1003", "INC1002"]

    def test_get_falls_back_to_cache(self, store, retry_policy, audit):
        backend = MagicMock()
        backend.create.return_value = upstream_incident()
        backend.get.side_effect = TransientUpstreamError("down", "servicenow")
        client = IncidentClient(backend=backend, simulated_store=store, retry_policy=retry_policy, audit=audit)
        created = client.create("n", 80, RiskLevel.HIGH)

        assert client.get(created.id) == created
