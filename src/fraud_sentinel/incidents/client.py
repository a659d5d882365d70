"""Incident Client - opens fraud tickets with bounded retry and simulated fallback."""

import logging
import threading
from typing import Dict, List, Optional, Set, Union

from fraud_sentinel.common.config import Config
from fraud_sentinel.common.constants import AuditActions, IncidentConstants, SessionConstants
from fraud_sentinel.common.exceptions import (
    IncidentNotFoundError,
    InvariantViolation,
    UpstreamError,
)
from fraud_sentinel.common.retry import RetryPolicy
from fraud_sentinel.core.types import RiskLevel, SessionMeta
from fraud_sentinel.governance.audit.trail import AuditTrail
from fraud_sentinel.governance.schemas import AuditLevel
from fraud_sentinel.incidents.backends import (
    IncidentBackend,
    ServiceNowBackend,
    SimulatedIncidentStore,
)
from fraud_sentinel.incidents.schema import (
    Incident,
    IncidentDraft,
    IncidentPatch,
    priority_for_level,
)

logger = logging.getLogger(__name__)


class IncidentClient:
    """Creates, reads and updates fraud incidents.

    Uses the upstream backend when one is configured and the simulated
    store otherwise. After retry exhaustion or a permanent upstream
    error, creation falls back to the simulated store so callers always
    get an Incident of the same shape.

    At most one incident exists per session ref. A second create for the
    same ref is a programming defect: it is logged at critical, audited
    and answered with the existing incident.
    """

    def __init__(
        self,
        backend: Optional[IncidentBackend] = None,
        simulated_store: Optional[SimulatedIncidentStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        audit: Optional[AuditTrail] = None,
        fallback_to_simulated: bool = True,
    ):
        self.backend = backend
        self.simulated_store = simulated_store or SimulatedIncidentStore()
        self.retry_policy = retry_policy or RetryPolicy()
        self.audit = audit
        self.fallback_to_simulated = fallback_to_simulated

        self._lock = threading.Lock()
        self._incidents: Dict[str, Incident] = {}
        self._by_session: Dict[str, str] = {}
        self._pending_sessions: Set[str] = set()

    @classmethod
    def from_config(
        cls,
        config: Config,
        audit: Optional[AuditTrail] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "IncidentClient":
        """Build a client, wiring ServiceNow only when fully configured."""
        backend = None
        if config.ticketing_configured:
            backend = ServiceNowBackend(
                instance=config.servicenow_instance,
                user=config.servicenow_user,
                password=config.servicenow_password,
                timeout=config.ticketing_timeout_seconds,
                sla_hours=config.incident_sla_hours,
            )
        else:
            logger.info("ServiceNow not configured, incidents will be simulated")

        return cls(
            backend=backend,
            simulated_store=SimulatedIncidentStore(sla_hours=config.incident_sla_hours),
            retry_policy=retry_policy or RetryPolicy.from_config(config),
            audit=audit,
            fallback_to_simulated=config.incident_fallback_to_simulated,
        )

    @property
    def upstream_configured(self) -> bool:
        return self.backend is not None

    def _audit(self, level: AuditLevel, action: str, message: str, session_ref=None, **meta) -> None:
        if self.audit is not None:
            self.audit.record(level, action, message, session_ref=session_ref, meta=meta)

    def _reserve_session(self, session_ref: Optional[str]) -> Optional[Incident]:
        """Claim a session ref for creation; returns the existing incident on conflict."""
        if session_ref is None:
            return None
        with self._lock:
            existing_id = self._by_session.get(session_ref)
            if existing_id is None and session_ref not in self._pending_sessions:
                self._pending_sessions.add(session_ref)
                return None
            existing = self._incidents.get(existing_id) if existing_id else None

        violation = InvariantViolation(
            f"Second incident requested for session {session_ref}",
            details={"session_ref": session_ref, "existing_incident_id": existing_id},
        )
        logger.critical(violation.message)
        self._audit(
            AuditLevel.CRITICAL, AuditActions.INVARIANT_VIOLATION, violation.message,
            session_ref=session_ref, **violation.details,
        )
        if existing is None:
            # Concurrent creation in flight for this ref
            raise violation
        return existing

    def create(
        self,
        narrative: str,
        risk_score: int,
        risk_level: RiskLevel,
        session_meta: Optional[SessionMeta] = None,
        session_ref: Optional[str] = None,
    ) -> Incident:
        """Open a fraud incident.

        Returns:
            The created incident (or the existing one for a duplicate ref)

        Raises:
            UpstreamError: Only when upstream fails and fallback is disabled
        """
        existing = self._reserve_session(session_ref)
        if existing is not None:
            return existing

        meta = session_meta or SessionMeta()
        draft = IncidentDraft(
            short_description=f"High fraud risk detected - Risk Score: {risk_score}/100",
            narrative=narrative,
            priority=priority_for_level(risk_level),
            risk_score=risk_score,
            risk_level=risk_level,
            session_ref=session_ref,
            customer_id=meta.customer_id,
            customer_phone=meta.phone,
        )

        try:
            incident = self._create_with_fallback(draft)
        except Exception:
            with self._lock:
                self._pending_sessions.discard(session_ref)
            raise

        with self._lock:
            self._incidents[incident.id] = incident
            if session_ref is not None:
                self._pending_sessions.discard(session_ref)
                self._by_session[session_ref] = incident.id

        self._audit(
            AuditLevel.INFO, AuditActions.INCIDENT_CREATED,
            f"Incident {incident.id} created - {incident.short_description}",
            session_ref=session_ref,
            incident_id=incident.id,
            priority=incident.priority.value,
            category=incident.category,
            risk_score=incident.risk_score,
            simulated=incident.simulated,
        )
        return incident

    def _create_with_fallback(self, draft: IncidentDraft) -> Incident:
        if self.backend is None:
            return self.simulated_store.create(draft)

        try:
            incident, attempts = self.retry_policy.call(
                lambda: self.backend.create(draft), operation="ServiceNow incident create"
            )
            logger.debug(f"Incident {incident.id} created upstream in {attempts} attempt(s)")
            return incident
        except UpstreamError as e:
            self._audit(
                AuditLevel.ERROR, AuditActions.INCIDENT_UPSTREAM_FAILED,
                f"Ticketing upstream failed after {e.attempts} attempt(s): {e.message}",
                session_ref=draft.session_ref,
                error=e.code,
                attempts=e.attempts,
                status_code=e.status_code,
                fallback=self.fallback_to_simulated,
            )
            if not self.fallback_to_simulated:
                raise
            logger.warning(f"Ticketing upstream failed ({e.message}), using simulated incident")
            return self.simulated_store.create(draft)

    def _is_simulated(self, incident_id: str) -> bool:
        with self._lock:
            cached = self._incidents.get(incident_id)
        if cached is not None:
            return cached.simulated
        return self.simulated_store.get(incident_id) is not None

    def get(self, incident_id: str) -> Incident:
        """Fetch an incident by id.

        Raises:
            IncidentNotFoundError: If the id is unknown
        """
        if self.backend is None or self._is_simulated(incident_id):
            incident = self.simulated_store.get(incident_id)
        else:
            try:
                incident, _ = self.retry_policy.call(
                    lambda: self.backend.get(incident_id), operation="ServiceNow incident get"
                )
            except UpstreamError as e:
                with self._lock:
                    incident = self._incidents.get(incident_id)
                if incident is None:
                    raise
                logger.warning(f"Ticketing upstream failed ({e.message}), returning cached {incident_id}")

        if incident is None:
            raise IncidentNotFoundError(incident_id)
        with self._lock:
            if incident.id in self._incidents:
                self._incidents[incident.id] = incident
        return incident

    def update(self, incident_id: str, patch: Union[IncidentPatch, dict]) -> Incident:
        """Apply a patch and return the new incident copy.

        Raises:
            IncidentNotFoundError: If the id is unknown
            UpstreamError: If the upstream update fails
        """
        if isinstance(patch, dict):
            patch = IncidentPatch.model_validate(patch)

        if self.backend is None or self._is_simulated(incident_id):
            updated = self.simulated_store.update(incident_id, patch)
        else:
            try:
                updated, _ = self.retry_policy.call(
                    lambda: self.backend.update(incident_id, patch), operation="ServiceNow incident update"
                )
            except UpstreamError as e:
                self._audit(
                    AuditLevel.ERROR, AuditActions.INCIDENT_UPSTREAM_FAILED,
                    f"Ticketing update of {incident_id} failed: {e.message}",
                    incident_id=incident_id, error=e.code, attempts=e.attempts,
                )
                raise

        if updated is None:
            raise IncidentNotFoundError(incident_id)

        with self._lock:
            self._incidents[updated.id] = updated
        self._audit(
            AuditLevel.INFO, AuditActions.INCIDENT_UPDATED,
            f"Incident {updated.id} updated",
            session_ref=updated.session_ref,
            incident_id=updated.id,
            changes=patch.changes(),
            simulated=updated.simulated,
        )
        return updated

    def list_incidents(self, limit: int = IncidentConstants.DEFAULT_LIST_LIMIT) -> List[Incident]:
        """Most recent incidents first.

        Reads upstream when configured, falling back to locally known
        incidents when the upstream is unavailable.
        """
        if self.backend is not None:
            try:
                incidents, _ = self.retry_policy.call(
                    lambda: self.backend.list(limit), operation="ServiceNow incident list"
                )
                return incidents
            except UpstreamError as e:
                logger.warning(f"Ticketing upstream list failed ({e.message}), using local incidents")
                with self._lock:
                    local = list(self._incidents.values())
                local.sort(key=lambda i: i.created_at, reverse=True)
                return local[:limit]

        return self.simulated_store.list(limit)

    def incident_for_session(self, session_ref: str) -> Optional[Incident]:
        with self._lock:
            incident_id = self._by_session.get(session_ref)
            return self._incidents.get(incident_id) if incident_id else None

    def release_session(self, session_id: str) -> int:
        """Forget the per-session bookkeeping of an ended session.

        Drops the duplicate guard for every generation of ``session_id``
        and the cached copies of upstream incidents it opened. Simulated
        incidents stay readable through the simulated store.

        Returns:
            Number of session refs released
        """
        with self._lock:
            refs = [
                ref for ref in self._by_session
                if ref.rsplit(SessionConstants.REF_SEPARATOR, 1)[0] == session_id
            ]
            for ref in refs:
                self._incidents.pop(self._by_session.pop(ref), None)
        if refs:
            logger.debug(f"Released incident bookkeeping for {len(refs)} ref(s) of {session_id}")
        return len(refs)

    def close(self) -> None:
        if isinstance(self.backend, ServiceNowBackend):
            self.backend.close()
