"""Risk Engine - public entry point of the fraud sentinel.

Per message:
1. Validate input
2. Classify intent and language
3. Extract risk signals and accumulate the score
4. Run the escalation state machine
5. Return an AnalysisResult

Every step is audited. A session's whole turn runs under that session's
lock, so messages of one session are processed strictly in order while
different sessions proceed in parallel. Each turn publishes an immutable
RiskSnapshot, which get_risk_snapshot reads without taking the turn lock.

Session records are dropped by end_session or after an idle TTL.
"""

import logging
from typing import List, Optional

from fraud_sentinel.alerts.dispatcher import AlertDispatcher
from fraud_sentinel.common.config import Config, get_config
from fraud_sentinel.common.constants import AuditActions, AuditConstants, SessionConstants
from fraud_sentinel.common.exceptions import ValidationError
from fraud_sentinel.common.retry import RetryPolicy
from fraud_sentinel.core.types import (
    AnalysisResult,
    EmotionLabel,
    RiskSnapshot,
    SessionMeta,
    parse_emotion,
)
from fraud_sentinel.escalation.state_machine import EscalationStateMachine
from fraud_sentinel.governance.audit.config import create_audit_trail
from fraud_sentinel.governance.audit.trail import AuditTrail
from fraud_sentinel.governance.schemas import AuditFilter, AuditLevel, AuditLogEntry
from fraud_sentinel.incidents.client import IncidentClient
from fraud_sentinel.incidents.schema import Incident
from fraud_sentinel.orchestration.intent import IntentClassifier, RuleBasedIntentClassifier
from fraud_sentinel.orchestration.session_store import SessionStore
from fraud_sentinel.risk.rules import RiskRules, load_risk_rules
from fraud_sentinel.risk.scorer import RiskAccumulator
from fraud_sentinel.risk.signals import SignalExtractor

logger = logging.getLogger(__name__)


def _validate_session_id(session_id) -> str:
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValidationError("session_id must be a non-empty string", details={"field": "session_id"})
    if len(session_id) > SessionConstants.MAX_SESSION_ID_LENGTH:
        raise ValidationError(
            f"session_id exceeds {SessionConstants.MAX_SESSION_ID_LENGTH} characters",
            details={"field": "session_id", "length": len(session_id)},
        )
    if SessionConstants.REF_SEPARATOR in session_id:
        raise ValidationError(
            f"session_id must not contain {SessionConstants.REF_SEPARATOR!r}",
            details={"field": "session_id"},
        )
    return session_id


def _validate_text(text) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("text must be a non-empty string", details={"field": "text"})
    if len(text) > SessionConstants.MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"text exceeds {SessionConstants.MAX_MESSAGE_LENGTH} characters",
            details={"field": "text", "length": len(text)},
        )
    return text


class RiskEngine:
    """Scores conversation messages and escalates high-risk sessions.

    Collaborators are injectable; anything not supplied is built with
    defaults (simulated incidents and alerts, memory-only audit).
    """

    def __init__(
        self,
        rules: Optional[RiskRules] = None,
        audit: Optional[AuditTrail] = None,
        incident_client: Optional[IncidentClient] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        classifier: Optional[IntentClassifier] = None,
        state_machine: Optional[EscalationStateMachine] = None,
        session_idle_ttl: Optional[float] = SessionConstants.IDLE_TTL_SECONDS,
    ):
        self.rules = rules or RiskRules()
        self.audit = audit or AuditTrail(use_background_writer=False)
        self.incident_client = incident_client or IncidentClient(audit=self.audit)
        self.dispatcher = dispatcher or AlertDispatcher(audit=self.audit)
        self.classifier = classifier or RuleBasedIntentClassifier()
        self.state_machine = state_machine or EscalationStateMachine(
            incident_client=self.incident_client,
            dispatcher=self.dispatcher,
            audit=self.audit,
        )
        self.extractor = SignalExtractor(self.rules)
        self.accumulator = RiskAccumulator(self.rules)
        self.sessions = SessionStore(idle_ttl=session_idle_ttl, on_evict=self._on_session_evicted)

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "RiskEngine":
        """Build an engine from environment configuration.

        Raises:
            ConfigurationError: If the risk rules file is invalid
        """
        config = config or get_config()
        rules = load_risk_rules(config.risk_rules_file)
        audit = create_audit_trail(config)
        retry_policy = RetryPolicy.from_config(config)
        incident_client = IncidentClient.from_config(config, audit=audit, retry_policy=retry_policy)
        dispatcher = AlertDispatcher.from_config(config, audit=audit, retry_policy=retry_policy)

        logger.info(
            f"Risk engine configured: rules v{rules.version}, "
            f"audit={config.audit_storage_type.value}, "
            f"ticketing={'servicenow' if incident_client.upstream_configured else 'simulated'}, "
            f"alerts={'twilio' if config.twilio_configured else 'simulated'}"
        )
        return cls(
            rules=rules,
            audit=audit,
            incident_client=incident_client,
            dispatcher=dispatcher,
            session_idle_ttl=config.session_idle_ttl_seconds,
        )

    def analyze(
        self,
        session_id: str,
        text: str,
        emotion=EmotionLabel.NEUTRAL,
        session_meta: Optional[SessionMeta] = None,
    ) -> AnalysisResult:
        """Score one inbound message and apply escalation.

        Args:
            session_id: Conversation session id
            text: Message text
            emotion: Emotion label read alongside the message
            session_meta: Customer context, remembered on first supply

        Raises:
            ValidationError: On invalid session id, text or emotion
        """
        session_id = _validate_session_id(session_id)
        text = _validate_text(text)
        label = parse_emotion(emotion)

        intent_result = self.classifier.classify(text)

        while True:
            record = self.sessions.get_or_create(session_id)
            with record.lock:
                if record.evicted:
                    # Ended while this call waited for the lock
                    continue
                return self._process(record, session_id, text, label, intent_result, session_meta)

    def _process(self, record, session_id, text, label, intent_result, session_meta) -> AnalysisResult:
        """One turn of a session. Call with the record lock held."""
        state = record.state
        meta = self.sessions.remember_meta(record, session_meta)

        events = self.extractor.extract(text, label, state)
        score, level = self.accumulator.apply(state, events)
        self._publish(record)

        for event in events:
            self.audit.record(
                AuditLevel.INFO, AuditActions.RISK_EVENT,
                f"{event.kind.value}: {event.detail}",
                session_ref=state.session_ref,
                meta={
                    "kind": event.kind.value,
                    "score_delta": event.score_delta,
                    "score": score,
                    "level": level.value,
                },
            )

        control_state, response_kind, reply = self.state_machine.transition(
            state,
            level,
            intent_result.intent,
            language=intent_result.language,
            meta=meta,
            on_blocked=lambda _state: self._publish(record),
        )
        self._publish(record)

        return AnalysisResult(
            session_id=session_id,
            risk_score=score,
            risk_level=level,
            events=list(events),
            control_state=control_state,
            intent=intent_result.intent,
            language=intent_result.language,
            response_kind=response_kind,
            reply=reply,
            incident_id=state.incident_id,
        )

    def _publish(self, record) -> None:
        state = record.state
        record.publish(RiskSnapshot(
            score=state.score,
            level=self.accumulator.level_for(state.score),
            control_state=state.control_state,
            incident_id=state.incident_id,
        ))

    def reset_session(self, session_id: str) -> None:
        """Clear a session's risk and start a new escalation generation.

        Resetting a session that does not exist is a no-op.

        Raises:
            ValidationError: On an invalid session id
        """
        session_id = _validate_session_id(session_id)
        record = self.sessions.get(session_id)
        if record is None:
            logger.debug(f"Reset of unknown session {session_id} ignored")
            return

        with record.lock:
            if record.evicted:
                return
            previous_ref = record.state.session_ref
            previous_score = record.state.score
            self.accumulator.reset(record.state)
            new_ref = record.state.session_ref
            self._publish(record)

        self.audit.record(
            AuditLevel.INFO, AuditActions.SESSION_RESET,
            f"Session reset (score was {previous_score})",
            session_ref=previous_ref,
            meta={"new_session_ref": new_ref, "previous_score": previous_score},
        )
        logger.info(f"Session {session_id} reset to {new_ref}")

    def end_session(self, session_id: str) -> bool:
        """Forget a finished conversation.

        Waits for a running turn of the session, then drops its state and
        the incident client's bookkeeping for it. Incidents already opened
        stay readable through get_incident.

        Returns:
            True if the session existed

        Raises:
            ValidationError: On an invalid session id
        """
        session_id = _validate_session_id(session_id)
        return self.sessions.evict(session_id) is not None

    def evict_idle_sessions(self, max_idle: Optional[float] = None) -> List[str]:
        """End sessions idle for longer than ``max_idle`` seconds (default: the configured TTL)."""
        return self.sessions.evict_idle(max_idle)

    def _on_session_evicted(self, session_id: str) -> None:
        released = self.incident_client.release_session(session_id)
        self.audit.record(
            AuditLevel.INFO, AuditActions.SESSION_ENDED,
            "Session ended",
            session_ref=session_id,
            meta={"released_incident_refs": released},
        )

    def get_risk_snapshot(self, session_id: str) -> RiskSnapshot:
        """Current score, level and control state. Unknown sessions read as zero.

        Reads the snapshot published by the latest turn, so it never waits
        for a turn that is still opening an incident.
        """
        record = self.sessions.get(session_id)
        if record is None:
            return RiskSnapshot()
        return record.snapshot()

    def query_audit(
        self,
        audit_filter: Optional[AuditFilter] = None,
        limit: int = AuditConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[AuditLogEntry]:
        """Audit entries matching a filter, most recent first."""
        return self.audit.query(audit_filter, limit)

    def get_incident(self, incident_id: str) -> Incident:
        """Raises IncidentNotFoundError for unknown ids."""
        return self.incident_client.get(incident_id)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for background alert dispatches and durable audit writes."""
        dispatched = self.state_machine.flush(timeout)
        written = self.audit.flush(timeout)
        return dispatched and written

    def shutdown(self) -> None:
        """Release executors, HTTP clients and the audit writer."""
        self.state_machine.shutdown()
        self.incident_client.close()
        self.audit.shutdown()
