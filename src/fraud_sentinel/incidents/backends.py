"""Ticketing backends: ServiceNow Table API and a simulated in-memory store."""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

import httpx

from fraud_sentinel.common.constants import IncidentConstants
from fraud_sentinel.common.exceptions import (
    PermanentUpstreamError,
    TransientUpstreamError,
    classify_http_status,
)
from fraud_sentinel.core.types import RiskLevel
from fraud_sentinel.incidents.schema import (
    PRIORITY_BY_CODE,
    PRIORITY_CODES,
    Incident,
    IncidentDraft,
    IncidentPatch,
    IncidentPriority,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncidentBackend(ABC):
    """Interface of a ticketing backend. One call per method, no retry."""

    simulated: bool = False

    @abstractmethod
    def create(self, draft: IncidentDraft) -> Incident:
        """Open a ticket."""

    @abstractmethod
    def get(self, incident_id: str) -> Optional[Incident]:
        """Fetch a ticket by number or provider ref, None if unknown."""

    @abstractmethod
    def update(self, incident_id: str, patch: IncidentPatch) -> Optional[Incident]:
        """Apply a patch, None if the ticket is unknown."""

    @abstractmethod
    def list(self, limit: int = IncidentConstants.DEFAULT_LIST_LIMIT) -> List[Incident]:
        """Most recent tickets first."""


class SimulatedIncidentStore(IncidentBackend):
    """Deterministic in-memory stand-in for the ticketing service.

    Ids are ``INC<n>`` from an atomically incremented counter; the SLA
    deadline is creation time plus a fixed window.
    """

    simulated = True

    def __init__(
        self,
        sla_hours: float = IncidentConstants.SLA_HOURS,
        counter_start: int = IncidentConstants.COUNTER_START,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.sla_hours = sla_hours
        self._counter = counter_start
        self._clock = clock
        self._lock = threading.Lock()
        self._incidents: Dict[str, Incident] = {}
        self._order: List[str] = []

    def create(self, draft: IncidentDraft) -> Incident:
        with self._lock:
            self._counter += 1
            number = f"{IncidentConstants.ID_PREFIX}{self._counter}"
            now = self._clock()
            incident = Incident(
                id=number,
                provider_ref=f"sim_{uuid4().hex[:16]}",
                priority=draft.priority,
                category=draft.category,
                subcategory=draft.subcategory,
                assignment_target=draft.assignment_target,
                risk_score=draft.risk_score,
                risk_level=draft.risk_level,
                created_at=now,
                sla_deadline=now + timedelta(hours=self.sla_hours),
                short_description=draft.short_description,
                narrative=draft.narrative,
                state="New",
                session_ref=draft.session_ref,
                customer_id=draft.customer_id,
                simulated=True,
            )
            self._incidents[number] = incident
            self._order.append(number)

        logger.info(f"Simulated incident {number} - {draft.short_description}")
        return incident

    def _find(self, incident_id: str) -> Optional[Incident]:
        found = self._incidents.get(incident_id)
        if found is not None:
            return found
        for incident in self._incidents.values():
            if incident.provider_ref == incident_id:
                return incident
        return None

    def get(self, incident_id: str) -> Optional[Incident]:
        with self._lock:
            return self._find(incident_id)

    def update(self, incident_id: str, patch: IncidentPatch) -> Optional[Incident]:
        with self._lock:
            current = self._find(incident_id)
            if current is None:
                return None
            updated = current.model_copy(update={**patch.changes(), "updated_at": self._clock()})
            self._incidents[current.id] = updated
            return updated

    def list(self, limit: int = IncidentConstants.DEFAULT_LIST_LIMIT) -> List[Incident]:
        with self._lock:
            return [self._incidents[n] for n in reversed(self._order)][:limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._incidents)


# ServiceNow incident state codes
_STATE_NAMES = {
    "1": "New",
    "2": "In Progress",
    "3": "On Hold",
    "6": "Resolved",
    "7": "Closed",
    "8": "Canceled",
}
_STATE_CODES = {name: code for code, name in _STATE_NAMES.items()}


class ServiceNowBackend(IncidentBackend):
    """ServiceNow Table API client (``/api/now/table/incident``).

    Every request carries an explicit timeout. Network errors, timeouts,
    5xx and 429 raise TransientUpstreamError; any other non-2xx raises
    PermanentUpstreamError.
    """

    SERVICE = "servicenow"
    TABLE_PATH = "/api/now/table/incident"

    def __init__(
        self,
        instance: str,
        user: str,
        password: str,
        timeout: float = IncidentConstants.REQUEST_TIMEOUT_SECONDS,
        sla_hours: float = IncidentConstants.SLA_HOURS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not (instance and user and password):
            raise PermanentUpstreamError("ServiceNow credentials are not configured", self.SERVICE)

        base_url = instance if instance.startswith("http") else f"https://{instance}"
        self.instance = instance
        self.sla_hours = sla_hours
        self._client = httpx.Client(
            base_url=base_url,
            auth=(user, password),
            timeout=timeout,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientUpstreamError(f"ServiceNow request timed out: {e}", self.SERVICE) from e
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"ServiceNow unreachable: {e}", self.SERVICE) from e

        if not response.is_success:
            raise classify_http_status(response.status_code, self.SERVICE, response.text)

        try:
            body = response.json()
        except ValueError as e:
            raise TransientUpstreamError(
                f"ServiceNow returned invalid JSON: {e}", self.SERVICE,
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise PermanentUpstreamError(
                f"ServiceNow returned a {type(body).__name__} body instead of an object",
                self.SERVICE, status_code=response.status_code,
            )
        return body.get("result")

    @staticmethod
    def build_payload(draft: IncidentDraft) -> Dict[str, Any]:
        code = PRIORITY_CODES[draft.priority]
        return {
            "short_description": draft.short_description,
            "description": draft.narrative or draft.short_description,
            "caller_id": draft.customer_id or "",
            "urgency": code,
            "impact": code,
            "priority": code,
            "category": draft.category,
            "subcategory": draft.subcategory,
            "assignment_group": draft.assignment_target,
            "contact_type": draft.contact_type,
            "u_risk_score": draft.risk_score,
            "u_risk_level": draft.risk_level.value,
            "u_channel": draft.channel,
            "u_session_ref": draft.session_ref or "",
            "u_caller_phone": draft.customer_phone or "",
        }

    @staticmethod
    def _field(record: Dict[str, Any], name: str) -> Any:
        # Reference fields come back as {"display_value": ..., "value": ...}
        value = record.get(name)
        if isinstance(value, dict):
            return value.get("display_value") or value.get("value")
        return value

    def _parse_time(self, value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S"):
            try:
                return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None

    @staticmethod
    def _parse_score(value: Any, fallback: int) -> int:
        if value in (None, ""):
            return fallback
        try:
            return int(float(value))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring unparseable u_risk_score {value!r}")
            return fallback

    def _to_incident(self, record: Any, draft: Optional[IncidentDraft] = None) -> Incident:
        """Convert a Table API record; malformed records are permanent upstream errors."""
        if not isinstance(record, dict):
            raise PermanentUpstreamError(
                f"ServiceNow returned a {type(record).__name__} record", self.SERVICE
            )
        try:
            return self._build_incident(record, draft)
        except (TypeError, ValueError) as e:
            raise PermanentUpstreamError(f"ServiceNow record could not be parsed: {e}", self.SERVICE) from e

    def _build_incident(self, record: Dict[str, Any], draft: Optional[IncidentDraft] = None) -> Incident:
        def f(name):
            return self._field(record, name)

        priority_raw = str(f("priority") or "")
        try:
            priority = PRIORITY_BY_CODE.get(priority_raw) or IncidentPriority(priority_raw)
        except ValueError:
            priority = draft.priority if draft else IncidentPriority.LOW

        state_raw = str(f("state") or "1")
        created_at = self._parse_time(f("sys_created_on")) or _utcnow()

        try:
            risk_level = RiskLevel(f("u_risk_level"))
        except ValueError:
            risk_level = draft.risk_level if draft else RiskLevel.LOW
        risk_score = self._parse_score(f("u_risk_score"), draft.risk_score if draft else 0)

        return Incident(
            id=f("number"),
            provider_ref=f("sys_id"),
            priority=priority,
            category=f("category") or (draft.category if draft else IncidentConstants.CATEGORY),
            subcategory=f("subcategory") or (draft.subcategory if draft else IncidentConstants.SUBCATEGORY),
            assignment_target=(
                f("assignment_group")
                or (draft.assignment_target if draft else IncidentConstants.ASSIGNMENT_TARGET)
            ),
            risk_score=max(0, min(100, risk_score)),
            risk_level=risk_level,
            created_at=created_at,
            sla_deadline=created_at + timedelta(hours=self.sla_hours),
            short_description=f("short_description") or (draft.short_description if draft else ""),
            narrative=f("description") or (draft.narrative if draft else ""),
            state=_STATE_NAMES.get(state_raw, state_raw),
            session_ref=f("u_session_ref") or (draft.session_ref if draft else None),
            customer_id=(draft.customer_id if draft else None),
            updated_at=self._parse_time(f("sys_updated_on")),
            simulated=False,
        )

    def create(self, draft: IncidentDraft) -> Incident:
        record = self._request("POST", self.TABLE_PATH, json=self.build_payload(draft))
        if not isinstance(record, dict) or not record.get("number"):
            raise PermanentUpstreamError("ServiceNow create returned no incident number", self.SERVICE)
        incident = self._to_incident(record, draft)
        logger.info(f"ServiceNow incident {incident.id} created")
        return incident

    def _lookup(self, incident_id: str) -> Optional[Dict[str, Any]]:
        field = "sys_id" if len(incident_id) == 32 and not incident_id.upper().startswith("INC") else "number"
        records = self._request(
            "GET", self.TABLE_PATH,
            params={"sysparm_query": f"{field}={incident_id}", "sysparm_limit": 1},
        )
        if not records:
            return None
        if not isinstance(records, list):
            raise PermanentUpstreamError("ServiceNow lookup returned a non-list result", self.SERVICE)
        return records[0]

    def get(self, incident_id: str) -> Optional[Incident]:
        record = self._lookup(incident_id)
        return self._to_incident(record) if record else None

    def update(self, incident_id: str, patch: IncidentPatch) -> Optional[Incident]:
        record = self._lookup(incident_id)
        if record is None:
            return None

        body: Dict[str, Any] = {}
        changes = patch.changes()
        if "state" in changes:
            body["state"] = _STATE_CODES.get(changes["state"], changes["state"])
        if "priority" in changes:
            code = PRIORITY_CODES[IncidentPriority(changes["priority"])]
            body.update(priority=code, urgency=code, impact=code)
        if "assignment_target" in changes:
            body["assignment_group"] = changes["assignment_target"]
        if "short_description" in changes:
            body["short_description"] = changes["short_description"]
        if "narrative" in changes:
            body["description"] = changes["narrative"]

        sys_id = self._field(record, "sys_id")
        updated = self._request("PATCH", f"{self.TABLE_PATH}/{sys_id}", json=body)
        return self._to_incident(updated or record)

    def list(self, limit: int = IncidentConstants.DEFAULT_LIST_LIMIT) -> List[Incident]:
        records = self._request(
            "GET", self.TABLE_PATH,
            params={
                "sysparm_limit": limit,
                "sysparm_query": f"contact_type={IncidentConstants.CONTACT_TYPE}^ORDERBYDESCsys_created_on",
            },
        ) or []
        incidents = []
        for record in records:
            try:
                incidents.append(self._to_incident(record))
            except PermanentUpstreamError as e:
                logger.warning(f"Skipping unparseable ServiceNow record: {e.message}")
        return incidents
