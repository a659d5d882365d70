"""Audit Trail - append-only record of every risk decision and side effect.

Dual write:
- synchronous append to a bounded in-memory ring buffer (always)
- best-effort durable write through an AuditStore, optionally queued on
  a BackgroundAuditWriter

Recording never raises into the caller. A durable-store failure is noted
once per failure streak in the ring buffer as AUDIT_STORE_FAILED.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from fraud_sentinel.common.constants import AuditActions, AuditConstants
from fraud_sentinel.common.logging import audit_level_to_logging
from fraud_sentinel.governance.audit.background_writer import BackgroundAuditWriter
from fraud_sentinel.governance.audit.store import AuditStore
from fraud_sentinel.governance.schemas import AuditFilter, AuditLevel, AuditLogEntry

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = "fraud_sentinel.audit"


class AuditTrail:
    """Queryable audit trail shared by every session."""

    def __init__(
        self,
        store: Optional[AuditStore] = None,
        capacity: int = AuditConstants.BUFFER_CAPACITY,
        use_background_writer: bool = True,
        flush_timeout: float = AuditConstants.FLUSH_TIMEOUT_SECONDS,
    ):
        """Initialize the trail.

        Args:
            store: Durable store, or None for memory-only operation
            capacity: Ring buffer size; the oldest entry is evicted first
            use_background_writer: Queue durable writes on a daemon thread
            flush_timeout: Max wait for pending durable writes before a query
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")

        self.store = store
        self.capacity = capacity
        self.flush_timeout = flush_timeout
        self._buffer: Deque[AuditLogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._store_failing = False
        self._audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)

        self._writer: Optional[BackgroundAuditWriter] = None
        if store is not None and use_background_writer:
            self._writer = BackgroundAuditWriter(
                store,
                flush_timeout=flush_timeout,
                on_success=self._on_store_success,
                on_failure=self._on_store_failure,
            )

    @property
    def durable(self) -> bool:
        return self.store is not None

    def record(
        self,
        level: AuditLevel,
        action: str,
        message: str = "",
        session_ref: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLogEntry]:
        """Record an audit entry. Never raises.

        Returns:
            The recorded entry, or None if it could not be built
        """
        try:
            entry = AuditLogEntry(
                level=AuditLevel(level),
                action=action,
                message=message,
                session_ref=session_ref,
                meta=dict(meta or {}),
            )
        except Exception as e:
            logger.error(f"Dropping malformed audit entry {action!r}: {e}")
            return None

        with self._lock:
            self._buffer.append(entry)
        self._mirror(entry)

        if self.store is not None:
            self._write_durable(entry)
        return entry

    def info(self, action: str, message: str = "", **kwargs) -> Optional[AuditLogEntry]:
        return self.record(AuditLevel.INFO, action, message, **kwargs)

    def warn(self, action: str, message: str = "", **kwargs) -> Optional[AuditLogEntry]:
        return self.record(AuditLevel.WARN, action, message, **kwargs)

    def error(self, action: str, message: str = "", **kwargs) -> Optional[AuditLogEntry]:
        return self.record(AuditLevel.ERROR, action, message, **kwargs)

    def critical(self, action: str, message: str = "", **kwargs) -> Optional[AuditLogEntry]:
        return self.record(AuditLevel.CRITICAL, action, message, **kwargs)

    def _mirror(self, entry: AuditLogEntry) -> None:
        suffix = f" [{entry.session_ref}]" if entry.session_ref else ""
        self._audit_logger.log(
            audit_level_to_logging(entry.level.value),
            f"{entry.action}: {entry.message}{suffix}",
        )

    def _write_durable(self, entry: AuditLogEntry) -> None:
        if self._writer is not None:
            try:
                self._writer.append_entry(entry)
            except Exception as e:
                self._on_store_failure(entry, e)
            return

        try:
            self.store.append_entry(entry)
        except Exception as e:
            self._on_store_failure(entry, e)
        else:
            self._on_store_success(entry)

    def _on_store_success(self, entry: AuditLogEntry) -> None:
        with self._lock:
            recovered = self._store_failing
            self._store_failing = False
        if recovered:
            logger.info("Durable audit store recovered")

    def _on_store_failure(self, entry: AuditLogEntry, error: Exception) -> None:
        with self._lock:
            if self._store_failing:
                return
            self._store_failing = True
            notice = AuditLogEntry(
                level=AuditLevel.WARN,
                action=AuditActions.AUDIT_STORE_FAILED,
                message=f"Durable audit write failed: {error}",
                session_ref=entry.session_ref,
                meta={"failed_entry_id": entry.entry_id, "failed_action": entry.action},
            )
            self._buffer.append(notice)
        logger.warning(f"Durable audit write failed, continuing memory-only: {error}")

    def query(
        self,
        audit_filter: Optional[AuditFilter] = None,
        limit: int = AuditConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[AuditLogEntry]:
        """Matching entries, most recent first.

        With a durable store configured, its results are merged with the
        ring buffer so entries whose durable write failed (and the
        AUDIT_STORE_FAILED notice itself) stay visible. Entries present in
        both are returned once.
        """
        if limit <= 0:
            return []
        audit_filter = audit_filter or AuditFilter()
        buffered = self.query_buffer(audit_filter, limit)

        if self.store is None:
            return buffered

        if self._writer is not None:
            self._writer.flush(self.flush_timeout)
        try:
            stored = self.store.query(audit_filter, limit)
        except Exception as e:
            logger.warning(f"Durable audit query failed, using in-memory buffer: {e}")
            return buffered

        merged: Dict[str, AuditLogEntry] = {entry.entry_id: entry for entry in stored}
        for entry in buffered:
            merged.setdefault(entry.entry_id, entry)
        results = sorted(merged.values(), key=lambda e: e.timestamp, reverse=True)
        return results[:limit]

    def query_buffer(
        self,
        audit_filter: Optional[AuditFilter] = None,
        limit: int = AuditConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[AuditLogEntry]:
        """Query the in-memory ring buffer only."""
        audit_filter = audit_filter or AuditFilter()
        if limit <= 0:
            return []
        with self._lock:
            snapshot = list(self._buffer)

        results = []
        for entry in reversed(snapshot):
            if audit_filter.matches(entry):
                results.append(entry)
                if len(results) >= limit:
                    break
        return results

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Remove expired entries from durable storage.

        The ring buffer has no time-based expiry.
        """
        if self.store is None:
            return 0
        return self.store.purge_expired(now)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued durable writes."""
        if self._writer is None:
            return True
        return self._writer.flush(timeout if timeout is not None else self.flush_timeout)

    def shutdown(self) -> None:
        if self._writer is not None:
            self._writer.shutdown()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def get_stats(self) -> dict:
        stats = {
            "buffer_size": len(self),
            "capacity": self.capacity,
            "durable": self.durable,
            "store_failing": self._store_failing,
        }
        if self._writer is not None:
            stats["writer"] = self._writer.get_stats()
        return stats
