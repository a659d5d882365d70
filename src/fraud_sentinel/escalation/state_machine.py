"""Escalation State Machine - turns a risk level into a control decision.

States:
- MONITORING: normal conversation
- STEP_UP_REQUIRED: medium risk on a sensitive intent, verify before acting
- ESCALATED_BLOCKED: high risk, incident opened and customer alerted

Escalation side effects fire at most once per session generation. The
caller holds the session lock for the whole transition, so the
``incident_created`` check-and-set is atomic. The ``on_blocked`` hook
lets the caller publish the blocked state before the incident is opened.

Side-effect failures never reach the caller: an incident or dispatch
error is audited and the block still applies.
"""

import atexit
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Optional, Set, Tuple

from fraud_sentinel.alerts.dispatcher import AlertDispatcher
from fraud_sentinel.alerts.schema import AlertRequest, DispatchResult
from fraud_sentinel.common.constants import AlertConstants, AuditActions
from fraud_sentinel.core.types import (
    SENSITIVE_INTENTS,
    ControlState,
    Intent,
    Language,
    ResponseKind,
    RiskLevel,
    SessionMeta,
)
from fraud_sentinel.escalation.responses import protective_response
from fraud_sentinel.governance.audit.trail import AuditTrail
from fraud_sentinel.governance.schemas import AuditLevel
from fraud_sentinel.incidents.client import IncidentClient
from fraud_sentinel.risk.state import SessionRiskState

logger = logging.getLogger(__name__)


Transition = Tuple[ControlState, ResponseKind, Optional[str]]


def build_narrative(state: SessionRiskState) -> str:
    """Incident narrative from the distinct evidence kinds of a session."""
    kinds = state.event_kinds()
    triggers = ", ".join(kinds) if kinds else "none recorded"
    return (
        f"Automated fraud detection for session {state.session_id}. "
        f"Risk score {state.score}/100 after {state.message_count} message(s). "
        f"Triggers: {triggers}. "
        f"OTP mentions: {state.otp_attempts}. "
        f"Transaction requests: {state.transaction_request_count} "
        f"(total requested: {state.total_amount_requested}). "
        f"Claimed names: {len(state.names_claimed)}."
    )


class EscalationStateMachine:
    """Drives a session between MONITORING, STEP_UP_REQUIRED and ESCALATED_BLOCKED."""

    def __init__(
        self,
        incident_client: Optional[IncidentClient] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        audit: Optional[AuditTrail] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize state machine.

        Args:
            incident_client: Client used to open the incident
            dispatcher: Alert dispatcher run in the background after escalation
            audit: Audit trail
            executor: Background executor for dispatches. Owned by the caller if provided.
        """
        self.audit = audit
        self.incident_client = incident_client or IncidentClient(audit=audit)
        self.dispatcher = dispatcher or AlertDispatcher(audit=audit)

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=AlertConstants.MAX_WORKERS,
            thread_name_prefix="AlertDispatch",
        )
        if self._owns_executor:
            atexit.register(self.shutdown)

        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

    def transition(
        self,
        state: SessionRiskState,
        level: RiskLevel,
        intent: Intent,
        language: Language = Language.ENGLISH,
        meta: Optional[SessionMeta] = None,
        on_blocked: Optional[Callable[[SessionRiskState], None]] = None,
    ) -> Transition:
        """Apply one message's risk level to the session.

        Args:
            on_blocked: Called once the session is marked blocked, before
                the incident is opened

        Returns:
            (control state, response kind, protective reply or None)
        """
        if state.control_state == ControlState.ESCALATED_BLOCKED:
            return state.control_state, ResponseKind.BLOCK, protective_response(ResponseKind.BLOCK, language)

        if level == RiskLevel.HIGH and not state.incident_created:
            self._escalate(state, level, language, meta or SessionMeta(), on_blocked)
            return state.control_state, ResponseKind.BLOCK, protective_response(ResponseKind.BLOCK, language)

        if level == RiskLevel.MEDIUM and intent in SENSITIVE_INTENTS:
            state.control_state = ControlState.STEP_UP_REQUIRED
            self._audit(
                AuditLevel.WARN, AuditActions.STEP_UP_REQUIRED,
                f"Step-up verification required for {intent.value}",
                session_ref=state.session_ref,
                risk_score=state.score,
                intent=intent.value,
            )
            return state.control_state, ResponseKind.STEP_UP, protective_response(ResponseKind.STEP_UP, language)

        state.control_state = ControlState.MONITORING
        return state.control_state, ResponseKind.NORMAL, None

    def _escalate(
        self,
        state: SessionRiskState,
        level: RiskLevel,
        language: Language,
        meta: SessionMeta,
        on_blocked: Optional[Callable[[SessionRiskState], None]] = None,
    ) -> None:
        state.incident_created = True
        state.control_state = ControlState.ESCALATED_BLOCKED
        session_ref = state.session_ref
        triggers = state.event_kinds()

        if on_blocked is not None:
            try:
                on_blocked(state)
            except Exception:
                logger.exception(f"on_blocked hook failed for {session_ref}")

        logger.critical(f"Fraud detected in session {session_ref} (score {state.score})")
        self._audit(
            AuditLevel.CRITICAL, AuditActions.FRAUD_DETECTED,
            f"High fraud risk detected - score {state.score}/100",
            session_ref=session_ref,
            risk_score=state.score,
            triggers=triggers,
            customer_id=meta.customer_id,
        )

        try:
            incident = self.incident_client.create(
                build_narrative(state),
                state.score,
                level,
                session_meta=meta,
                session_ref=session_ref,
            )
            state.incident_id = incident.id
        except Exception as e:
            logger.error(f"Incident creation failed for {session_ref}: {e}")
            self._audit(
                AuditLevel.ERROR, AuditActions.INCIDENT_CREATE_FAILED,
                f"Incident creation failed: {e}",
                session_ref=session_ref,
                error=type(e).__name__,
            )

        request = AlertRequest(
            risk_score=state.score,
            incident_id=state.incident_id,
            customer_name=meta.customer_name or AlertConstants.DEFAULT_CUSTOMER_NAME,
            language=language,
        )
        try:
            future = self._executor.submit(self._dispatch, meta.phone, request, session_ref)
        except RuntimeError as e:
            # Executor already shut down
            logger.error(f"Alert dispatch not scheduled for {session_ref}: {e}")
            self._audit(
                AuditLevel.ERROR, AuditActions.ALERT_DISPATCH_FAILED,
                f"Alert dispatch could not be scheduled: {e}",
                session_ref=session_ref,
                incident_id=state.incident_id,
            )
            return

        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _dispatch(self, destination: Optional[str], request: AlertRequest, session_ref: str) -> Optional[DispatchResult]:
        try:
            return self.dispatcher.dispatch(destination, request, session_ref=session_ref)
        except Exception as e:
            logger.exception(f"Alert dispatch failed for {session_ref}")
            self._audit(
                AuditLevel.ERROR, AuditActions.ALERT_DISPATCH_FAILED,
                f"Alert dispatch failed: {e}",
                session_ref=session_ref,
                incident_id=request.incident_id,
                error=type(e).__name__,
            )
            return None

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _audit(self, level: AuditLevel, action: str, message: str, session_ref=None, **meta) -> None:
        if self.audit is not None:
            self.audit.record(level, action, message, session_ref=session_ref, meta=meta)

    @property
    def pending_dispatches(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for scheduled alert dispatches.

        Returns:
            True if nothing is left pending
        """
        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        done, not_done = wait(pending, timeout=timeout)
        with self._pending_lock:
            self._pending.difference_update(done)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        """Release the owned executor and the dispatcher."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
        self.dispatcher.shutdown(wait=wait)
