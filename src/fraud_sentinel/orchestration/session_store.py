"""Session store - per-session risk state behind per-session locks."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from fraud_sentinel.core.types import RiskSnapshot, SessionMeta
from fraud_sentinel.risk.state import SessionRiskState

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    """Risk state and caller metadata of one session.

    ``lock`` must be held while reading or mutating ``state``. Readers that
    must not wait for a running turn use the published snapshot instead.
    """
    state: SessionRiskState
    meta: SessionMeta = field(default_factory=SessionMeta)
    meta_supplied: bool = False
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    last_seen: float = field(default_factory=time.monotonic)
    evicted: bool = False
    _snapshot: RiskSnapshot = field(default_factory=RiskSnapshot, repr=False)
    _snapshot_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def publish(self, snapshot: RiskSnapshot) -> None:
        with self._snapshot_lock:
            self._snapshot = snapshot

    def snapshot(self) -> RiskSnapshot:
        with self._snapshot_lock:
            return self._snapshot


class SessionStore:
    """Maps session ids to records.

    Record creation is serialized by a store-wide lock; everything after
    that is guarded by the record's own lock, so unrelated sessions never
    contend.

    With ``idle_ttl`` set, records untouched for that many seconds are
    evicted by an opportunistic sweep on lookup. ``on_evict`` is called
    with the session id of every evicted record.
    """

    def __init__(
        self,
        idle_ttl: Optional[float] = None,
        on_evict: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_ttl = idle_ttl if idle_ttl and idle_ttl > 0 else None
        self.on_evict = on_evict
        self._clock = clock
        self._records: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def get_or_create(self, session_id: str) -> SessionRecord:
        self._maybe_sweep()
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                record = SessionRecord(
                    state=SessionRiskState(session_id=session_id),
                    last_seen=self._clock(),
                )
                self._records[session_id] = record
            else:
                record.last_seen = self._clock()
            return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._records.get(session_id)

    def remember_meta(self, record: SessionRecord, meta: Optional[SessionMeta]) -> SessionMeta:
        """Keep the first metadata supplied for a session.

        Call with the record lock held.
        """
        if meta is not None and not record.meta_supplied:
            record.meta = meta
            record.meta_supplied = True
        return record.meta

    def evict(self, session_id: str) -> Optional[SessionRecord]:
        """Remove a session, waiting for its running turn to finish.

        Returns:
            The removed record, or None if the session was unknown
        """
        with self._lock:
            record = self._records.get(session_id)
        if record is None:
            return None

        with record.lock:
            with self._lock:
                if self._records.get(session_id) is not record:
                    return None
                del self._records[session_id]
            record.evicted = True

        self._notify(session_id)
        return record

    def evict_idle(self, max_idle: Optional[float] = None) -> List[str]:
        """Evict records idle for longer than ``max_idle`` seconds.

        Sessions whose turn is running right now are skipped.
        """
        max_idle = max_idle if max_idle is not None else self.idle_ttl
        if max_idle is None:
            return []
        cutoff = self._clock() - max_idle

        with self._lock:
            candidates = [
                (sid, record) for sid, record in self._records.items()
                if record.last_seen <= cutoff
            ]

        evicted = []
        for session_id, record in candidates:
            if not record.lock.acquire(blocking=False):
                continue
            try:
                with self._lock:
                    if self._records.get(session_id) is not record or record.last_seen > cutoff:
                        continue
                    del self._records[session_id]
                record.evicted = True
            finally:
                record.lock.release()
            evicted.append(session_id)

        for session_id in evicted:
            self._notify(session_id)
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle session(s)")
        return evicted

    def _maybe_sweep(self) -> None:
        if self.idle_ttl is None:
            return
        now = self._clock()
        with self._lock:
            if now - self._last_sweep < self.idle_ttl:
                return
            self._last_sweep = now
        self.evict_idle()

    def _notify(self, session_id: str) -> None:
        if self.on_evict is None:
            return
        try:
            self.on_evict(session_id)
        except Exception:
            logger.exception(f"Eviction callback failed for session {session_id}")

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._records
