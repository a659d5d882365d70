"""End-to-end tests for the risk engine.

Drives full conversations through RiskEngine with simulated ticketing
and notification providers and checks scoring, escalation, reset,
alerting and the audit trail together.
"""

import threading
import time

import httpx
import pytest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

from fraud_sentinel import (
    ControlState,
    RiskEngine,
    RiskEventKind,
    RiskLevel,
    RiskSnapshot,
    SessionMeta,
)
from fraud_sentinel.alerts import AlertChannel, AlertDispatcher, NotificationProvider
from fraud_sentinel.common.constants import AuditActions
from fraud_sentinel.common.exceptions import (
    IncidentNotFoundError,
    PermanentUpstreamError,
    ValidationError,
)
from fraud_sentinel.common.retry import RetryPolicy
from fraud_sentinel.core.types import Intent, Language, ResponseKind
from fraud_sentinel.escalation.responses import HIGH_RISK_BLOCK, STEP_UP_VERIFY
from fraud_sentinel.governance.audit.trail import AuditTrail
from fraud_sentinel.governance.schemas import AuditFilter, AuditLevel
from fraud_sentinel.incidents import IncidentClient, ServiceNowBackend
from fraud_sentinel.incidents.schema import IncidentPriority


CUSTOMER = SessionMeta(customer_id="CUST-42", customer_name="Asha", phone="+919800000001")


@pytest.fixture
def engine():
    engine = RiskEngine()
    yield engine
    engine.shutdown()


def escalate(engine, session_id, meta=None):
    """Two messages that take a fresh session from 0 to 80."""
    first = engine.analyze(session_id, "share otp now", "fear", session_meta=meta)
    second = engine.analyze(session_id, "give otp, send rs 150000", "fear", session_meta=meta)
    return first, second


def actions(engine, action, session_id):
    return engine.query_audit(AuditFilter(action_substring=action, session_ref=session_id), limit=1000)


class TestScoring:
    """Cumulative score behavior."""

    def test_benign_conversation_stays_low(self, engine):
        for text in ("Hello", "What is my balance?", "Thanks, bye"):
            result = engine.analyze("calm", text)

            assert result.risk_score == 0
            assert result.risk_level == RiskLevel.LOW
            assert result.control_state == ControlState.MONITORING
            assert result.response_kind == ResponseKind.NORMAL
            assert result.reply is None

    def test_score_accumulates(self, engine):
        first, second = escalate(engine, "acc")

        assert first.risk_score == 25
        assert first.triggers == [RiskEventKind.HIGH_RISK_KEYWORD.value]
        assert second.risk_score == 80
        assert second.risk_level == RiskLevel.HIGH

    def test_score_monotonic_and_capped(self, engine):
        scores = []
        for _ in range(8):
            scores.append(engine.analyze("cap", "urgent transfer rs 150000", "anger").risk_score)

        assert scores == sorted(scores)
        assert scores[-1] == 100
        assert all(0 <= s <= 100 for s in scores)

    def test_snapshot_matches_last_result(self, engine):
        _, second = escalate(engine, "snap")
        snapshot = engine.get_risk_snapshot("snap")

        assert snapshot.score == second.risk_score
        assert snapshot.level == RiskLevel.HIGH
        assert snapshot.control_state == ControlState.ESCALATED_BLOCKED
        assert snapshot.incident_id == second.incident_id

    def test_unknown_session_snapshot_is_zero(self, engine):
        assert engine.get_risk_snapshot("never-seen") == RiskSnapshot()
        assert "never-seen" not in engine.sessions

    def test_risk_events_audited(self, engine):
        _, second = escalate(engine, "evt")

        entries = actions(engine, AuditActions.RISK_EVENT, "evt")
        assert len(entries) == 1 + len(second.events)
        assert entries[0].meta["score"] == 80
        assert entries[0].meta["level"] == "high"


class TestStepUp:
    """Medium risk on sensitive and non-sensitive intents."""

    def test_sensitive_intent_requires_step_up(self, engine):
        engine.analyze("step", "change password please")
        result = engine.analyze("step", "transfer all to this account")

        assert result.risk_score == 33
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.intent == Intent.FUNDS_TRANSFER
        assert result.control_state == ControlState.STEP_UP_REQUIRED
        assert result.response_kind == ResponseKind.STEP_UP
        assert result.reply == STEP_UP_VERIFY[Language.ENGLISH]
        assert len(actions(engine, AuditActions.STEP_UP_REQUIRED, "step")) == 1

    def test_non_sensitive_intent_returns_to_monitoring(self, engine):
        engine.analyze("step2", "change password please")
        engine.analyze("step2", "transfer all to this account")
        result = engine.analyze("step2", "what is my balance")

        assert result.risk_level == RiskLevel.MEDIUM
        assert result.intent == Intent.BALANCE_INQUIRY
        assert result.control_state == ControlState.MONITORING
        assert result.reply is None


class TestEscalation:
    """High risk opens exactly one incident per session generation."""

    def test_high_risk_blocks_and_opens_incident(self, engine):
        _, result = escalate(engine, "esc", CUSTOMER)

        assert result.control_state == ControlState.ESCALATED_BLOCKED
        assert result.response_kind == ResponseKind.BLOCK
        assert result.reply == HIGH_RISK_BLOCK[Language.ENGLISH]
        assert result.incident_id is not None

        incident = engine.get_incident(result.incident_id)
        assert incident.priority == IncidentPriority.CRITICAL
        assert incident.risk_score == 80
        assert incident.session_ref == "esc#0"
        assert incident.customer_id == "CUST-42"
        assert incident.simulated is True
        assert "high_risk_keyword" in incident.narrative

    def test_escalation_fires_once(self, engine):
        _, first_block = escalate(engine, "once", CUSTOMER)
        later = [engine.analyze("once", "share otp, rs 150000", "fear") for _ in range(3)]

        assert all(r.control_state == ControlState.ESCALATED_BLOCKED for r in later)
        assert all(r.incident_id == first_block.incident_id for r in later)
        assert len(engine.incident_client.simulated_store) == 1
        assert len(actions(engine, AuditActions.FRAUD_DETECTED, "once")) == 1
        assert len(actions(engine, AuditActions.INCIDENT_CREATED, "once")) == 1

    def test_blocked_session_answers_benign_text_with_block(self, engine):
        escalate(engine, "blk")
        result = engine.analyze("blk", "hello")

        assert result.response_kind == ResponseKind.BLOCK
        assert result.reply == HIGH_RISK_BLOCK[Language.ENGLISH]

    def test_block_reply_in_conversation_language(self, engine):
        engine.analyze("hing", "otp batao jaldi", "fear")
        result = engine.analyze("hing", "mera otp do, rs 150000 bhejo", "fear")

        assert result.language == Language.HINGLISH
        assert result.reply == HIGH_RISK_BLOCK[Language.HINGLISH]

    def test_unknown_incident(self, engine):
        with pytest.raises(IncidentNotFoundError):
            engine.get_incident("INC0")


class TestAlerts:
    """Background alert dispatch after escalation."""

    def test_alerts_sent_on_every_channel(self, engine):
        escalate(engine, "alert", CUSTOMER)
        assert engine.flush(timeout=10.0)

        sent = actions(engine, AuditActions.ALERT_SENT, "alert")
        assert sorted(e.meta["channel"] for e in sent) == ["rich_message", "sms", "voice"]
        assert all(e.meta["to"] == CUSTOMER.phone for e in sent)
        assert all(e.meta["simulated"] for e in sent)
        assert engine.state_machine.pending_dispatches == 0

    def test_first_supplied_meta_is_kept(self, engine):
        engine.analyze("meta", "share otp now", "fear", session_meta=CUSTOMER)
        engine.analyze(
            "meta", "give otp, send rs 150000", "fear",
            session_meta=SessionMeta(phone="+910000000000"),
        )
        engine.flush(timeout=10.0)

        sent = actions(engine, AuditActions.ALERT_SENT, "meta")
        assert {e.meta["to"] for e in sent} == {CUSTOMER.phone}

    def test_no_phone_skips_alerts(self, engine):
        escalate(engine, "nophone")
        engine.flush(timeout=10.0)

        assert len(actions(engine, AuditActions.ALERT_SKIPPED, "nophone")) == 1
        assert actions(engine, AuditActions.ALERT_SENT, "nophone") == []


class TestReset:
    """Session reset starts a new generation."""

    def test_reset_clears_risk(self, engine):
        escalate(engine, "reset", CUSTOMER)
        engine.reset_session("reset")

        snapshot = engine.get_risk_snapshot("reset")
        assert snapshot == RiskSnapshot()

        result = engine.analyze("reset", "hello")
        assert result.risk_score == 0
        assert result.response_kind == ResponseKind.NORMAL

    def test_reset_allows_new_escalation(self, engine):
        _, first = escalate(engine, "gen", CUSTOMER)
        engine.reset_session("gen")
        _, second = escalate(engine, "gen", CUSTOMER)

        assert second.control_state == ControlState.ESCALATED_BLOCKED
        assert second.incident_id != first.incident_id
        assert engine.get_incident(second.incident_id).session_ref == "gen#1"
        assert len(actions(engine, AuditActions.FRAUD_DETECTED, "gen")) == 2

    def test_reset_audited(self, engine):
        escalate(engine, "aud")
        engine.reset_session("aud")

        entries = actions(engine, AuditActions.SESSION_RESET, "aud")
        assert len(entries) == 1
        assert entries[0].session_ref == "aud#0"
        assert entries[0].meta == {"new_session_ref": "aud#1", "previous_score": 80}

    def test_reset_unknown_session_is_noop(self, engine):
        engine.reset_session("fresh")

        assert "fresh" not in engine.sessions
        assert engine.get_risk_snapshot("fresh") == RiskSnapshot()
        assert actions(engine, AuditActions.SESSION_RESET, "fresh") == []


class TestSessionLifecycle:
    """Ending sessions releases their state."""

    def test_end_session_drops_state(self, engine):
        _, result = escalate(engine, "done", CUSTOMER)
        engine.flush(timeout=10.0)

        assert engine.end_session("done") is True
        assert "done" not in engine.sessions
        assert engine.incident_client.incident_for_session("done#0") is None
        assert engine.get_risk_snapshot("done") == RiskSnapshot()
        # The ticket itself outlives the session
        assert engine.get_incident(result.incident_id).session_ref == "done#0"
        assert len(actions(engine, AuditActions.SESSION_ENDED, "done")) == 1

    def test_end_unknown_session(self, engine):
        assert engine.end_session("ghost") is False
        assert "ghost" not in engine.sessions

    def test_ended_id_can_escalate_again(self, engine):
        _, first = escalate(engine, "again", CUSTOMER)
        engine.end_session("again")

        _, second = escalate(engine, "again", CUSTOMER)

        assert second.control_state == ControlState.ESCALATED_BLOCKED
        assert second.incident_id != first.incident_id
        assert engine.query_audit(AuditFilter(action_substring="INVARIANT")) == []

    def test_idle_sessions_evicted(self, engine):
        engine.analyze("idle", "hello")
        engine.analyze("busy", "hello")

        assert sorted(engine.evict_idle_sessions(max_idle=0)) == ["busy", "idle"]
        assert len(engine.sessions) == 0
        assert len(actions(engine, AuditActions.SESSION_ENDED, "idle")) == 1


class TestValidation:
    """Malformed input is rejected without touching state."""

    @pytest.mark.parametrize("session_id", ["", "   ", None, 42, "x" * 129, "cust#1"])
    def test_bad_session_id(self, engine, session_id):
        with pytest.raises(ValidationError):
            engine.analyze(session_id, "hello")

    @pytest.mark.parametrize("text", ["", "   ", None, "a" * 5001])
    def test_bad_text(self, engine, text):
        with pytest.raises(ValidationError):
            engine.analyze("val", text)
        assert "val" not in engine.sessions

    def test_unknown_emotion(self, engine):
        engine.analyze("emo", "share otp now")

        with pytest.raises(ValidationError):
            engine.analyze("emo", "give otp, rs 150000", "bored")

        assert engine.get_risk_snapshot("emo").score == 25

    def test_reset_validates_session_id(self, engine):
        with pytest.raises(ValidationError):
            engine.reset_session("")

    def test_limits_are_inclusive(self, engine):
        result = engine.analyze("s" * 128, "a" * 5000)
        assert result.risk_score == 0


class TestConcurrency:
    """Sessions are isolated and each is processed in order."""

    def test_parallel_sessions_escalate_independently(self, engine):
        session_ids = [f"par_{i}" for i in range(8)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda sid: escalate(engine, sid, CUSTOMER), session_ids))
        engine.flush(timeout=10.0)

        assert len(engine.incident_client.simulated_store) == 8
        for sid in session_ids:
            snapshot = engine.get_risk_snapshot(sid)
            assert snapshot.score == 80
            assert snapshot.control_state == ControlState.ESCALATED_BLOCKED
            assert len(actions(engine, AuditActions.ALERT_SENT, sid)) == 3

    def test_same_session_escalates_once_under_contention(self, engine):
        def send(_):
            return engine.analyze("hot", "give otp, send rs 150000", "fear", session_meta=CUSTOMER)

        with ThreadPoolExecutor(max_workers=10) as pool:
            results = list(pool.map(send, range(20)))
        engine.flush(timeout=10.0)

        assert len(engine.incident_client.simulated_store) == 1
        assert len({r.incident_id for r in results if r.incident_id}) == 1
        assert engine.get_risk_snapshot("hot").score == 100
        assert len(actions(engine, AuditActions.FRAUD_DETECTED, "hot")) == 1
        assert engine.query_audit(AuditFilter(level=AuditLevel.CRITICAL, action_substring="INVARIANT")) == []


class RejectingProvider(NotificationProvider):
    """Provider whose every send is refused by the carrier."""

    def __init__(self, channel):
        self.channel = channel
        self.calls = 0

    def send(self, destination, message, language=Language.ENGLISH):
        self.calls += 1
        raise PermanentUpstreamError("invalid destination", f"twilio:{self.channel.value}", status_code=400)


class TestDownstreamOutage:
    """Ticketing and carrier failures never reach the caller."""

    @pytest.fixture
    def no_sleep_retry(self):
        return RetryPolicy(max_attempts=3, base_delay=0.0, max_jitter=0.0, sleep=lambda _: None)

    def build_engine(self, incident_client=None, dispatcher=None):
        audit = AuditTrail(use_background_writer=False)
        if incident_client is not None:
            incident_client.audit = audit
        if dispatcher is not None:
            dispatcher.audit = audit
        return RiskEngine(audit=audit, incident_client=incident_client, dispatcher=dispatcher)

    def unreachable_backend(self, attempts):
        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        return ServiceNowBackend(
            instance="dev12345.service-now.com",
            user="admin",
            password="secret",
            transport=httpx.MockTransport(handler),
        )

    def test_ticketing_unreachable_falls_back_to_simulated(self, no_sleep_retry):
        attempts = []
        client = IncidentClient(backend=self.unreachable_backend(attempts), retry_policy=no_sleep_retry)
        engine = self.build_engine(incident_client=client)
        try:
            _, result = escalate(engine, "down", CUSTOMER)

            assert len(attempts) == 3
            assert result.control_state == ControlState.ESCALATED_BLOCKED
            assert result.reply == HIGH_RISK_BLOCK[Language.ENGLISH]
            assert engine.get_incident(result.incident_id).simulated is True

            failures = actions(engine, AuditActions.INCIDENT_UPSTREAM_FAILED, "down")
            assert len(failures) == 1
            assert failures[0].meta["attempts"] == 3
        finally:
            engine.shutdown()

    def test_ticketing_unreachable_without_fallback(self, no_sleep_retry):
        client = IncidentClient(
            backend=self.unreachable_backend([]),
            retry_policy=no_sleep_retry,
            fallback_to_simulated=False,
        )
        engine = self.build_engine(incident_client=client)
        try:
            _, result = escalate(engine, "nofb", CUSTOMER)
            engine.flush(timeout=10.0)

            assert result.control_state == ControlState.ESCALATED_BLOCKED
            assert result.response_kind == ResponseKind.BLOCK
            assert result.incident_id is None
            assert len(actions(engine, AuditActions.INCIDENT_CREATE_FAILED, "nofb")) == 1
            # Alerts still go out without an incident id
            assert len(actions(engine, AuditActions.ALERT_SENT, "nofb")) == 3
        finally:
            engine.shutdown()

    def test_snapshot_not_blocked_by_slow_ticketing(self, no_sleep_retry):
        entered = threading.Event()
        release = threading.Event()

        def stalled_create(draft):
            entered.set()
            release.wait(timeout=10.0)
            raise PermanentUpstreamError("HTTP 400", "servicenow", status_code=400)

        backend = MagicMock()
        backend.create.side_effect = stalled_create
        engine = self.build_engine(incident_client=IncidentClient(backend=backend, retry_policy=no_sleep_retry))
        try:
            engine.analyze("slow", "share otp now", "fear", session_meta=CUSTOMER)
            with ThreadPoolExecutor(max_workers=1) as pool:
                turn = pool.submit(engine.analyze, "slow", "give otp, send rs 150000", "fear")
                assert entered.wait(timeout=10.0)

                started = time.monotonic()
                snapshot = engine.get_risk_snapshot("slow")
                elapsed = time.monotonic() - started

                release.set()
                result = turn.result(timeout=10.0)

            assert elapsed < 1.0
            assert snapshot.score == 80
            assert snapshot.level == RiskLevel.HIGH
            assert snapshot.control_state == ControlState.ESCALATED_BLOCKED
            assert snapshot.incident_id is None
            assert engine.get_risk_snapshot("slow").incident_id == result.incident_id
        finally:
            release.set()
            engine.shutdown()

    def test_rejected_alerts_are_audited(self, no_sleep_retry):
        sms = RejectingProvider(AlertChannel.SMS)
        dispatcher = AlertDispatcher(providers={AlertChannel.SMS: sms}, retry_policy=no_sleep_retry)
        engine = self.build_engine(dispatcher=dispatcher)
        try:
            _, result = escalate(engine, "rej", CUSTOMER)
            engine.flush(timeout=10.0)

            assert result.reply == HIGH_RISK_BLOCK[Language.ENGLISH]
            assert sms.calls == 1
            failed = actions(engine, AuditActions.ALERT_FAILED, "rej")
            assert [e.meta["channel"] for e in failed] == ["sms"]
            assert len(actions(engine, AuditActions.ALERT_SENT, "rej")) == 2
        finally:
            engine.shutdown()
