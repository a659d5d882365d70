"""Background Audit Writer - non-blocking durable audit writes."""

import atexit
import logging
import queue
import threading
from typing import Callable, Optional

from fraud_sentinel.common.constants import AuditConstants
from fraud_sentinel.governance.audit.store import AuditStore
from fraud_sentinel.governance.schemas import AuditLogEntry

logger = logging.getLogger(__name__)


class BackgroundAuditWriter:
    """Drains a bounded queue of audit entries into a durable store.

    The caller never blocks on the store. Write outcomes are reported
    through ``on_success`` / ``on_failure`` so the audit trail can track
    failure streaks.
    """

    DEFAULT_QUEUE_SIZE = AuditConstants.QUEUE_SIZE
    DEFAULT_FLUSH_TIMEOUT = AuditConstants.FLUSH_TIMEOUT_SECONDS

    def __init__(
        self,
        store: AuditStore,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        flush_timeout: float = DEFAULT_FLUSH_TIMEOUT,
        on_success: Optional[Callable[[AuditLogEntry], None]] = None,
        on_failure: Optional[Callable[[AuditLogEntry, Exception], None]] = None,
    ):
        """Initialize background audit writer.

        Args:
            store: Durable audit store backend.
            max_queue_size: Maximum number of entries to buffer.
            flush_timeout: Timeout for draining the queue on shutdown.
            on_success: Called after each successful write.
            on_failure: Called with the entry and error after a failed write
                or when an entry is dropped because the queue is full.
        """
        self.store = store
        self.max_queue_size = max_queue_size
        self.flush_timeout = flush_timeout
        self._on_success = on_success
        self._on_failure = on_failure

        self._queue: "queue.Queue[Optional[AuditLogEntry]]" = queue.Queue(
            maxsize=max_queue_size
        )

        self._shutdown_event = threading.Event()
        self._writer_thread: Optional[threading.Thread] = None

        self._entries_written = 0
        self._entries_failed = 0
        self._entries_dropped = 0
        self._stats_lock = threading.Lock()

        self._start_writer()
        atexit.register(self.shutdown)

    def _start_writer(self) -> None:
        self._writer_thread = threading.Thread(
            target=self._writer_loop,
            name="SentinelAuditWriter",
            daemon=True,
        )
        self._writer_thread.start()
        logger.debug("Background audit writer started")

    def _write(self, entry: AuditLogEntry) -> None:
        try:
            self.store.append_entry(entry)
        except Exception as e:
            with self._stats_lock:
                self._entries_failed += 1
            self._notify_failure(entry, e)
            return
        with self._stats_lock:
            self._entries_written += 1
        if self._on_success is not None:
            try:
                self._on_success(entry)
            except Exception as cb_error:
                logger.error(f"Audit success callback failed: {cb_error}")

    def _notify_failure(self, entry: AuditLogEntry, error: Exception) -> None:
        if self._on_failure is None:
            logger.error(f"Failed to write audit entry {entry.entry_id}: {error}")
            return
        try:
            self._on_failure(entry, error)
        except Exception as cb_error:
            logger.error(f"Audit failure callback failed: {cb_error}")

    def _writer_loop(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                entry = self._queue.get(timeout=AuditConstants.QUEUE_GET_TIMEOUT)
            except queue.Empty:
                continue

            try:
                if entry is None:
                    break
                self._write(entry)
            finally:
                self._queue.task_done()

        self._drain_queue()
        logger.debug("Background audit writer stopped")

    def _drain_queue(self) -> None:
        drained = 0
        while True:
            try:
                entry = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                if entry is not None:
                    self._write(entry)
                    drained += 1
            finally:
                self._queue.task_done()

        if drained > 0:
            logger.info(f"Drained {drained} audit entries during shutdown")

    def append_entry(self, entry: AuditLogEntry) -> None:
        """Queue an entry for durable write. Never blocks.

        After shutdown entries are written synchronously.
        """
        if self._shutdown_event.is_set():
            self._write(entry)
            return

        try:
            self._queue.put_nowait(entry)
        except queue.Full:
            with self._stats_lock:
                self._entries_dropped += 1
            self._notify_failure(entry, RuntimeError("audit queue full, entry dropped"))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued entry has been processed.

        Returns:
            True if the queue drained, False on timeout.
        """
        if self._shutdown_event.is_set():
            return True

        done = threading.Event()

        def _join():
            self._queue.join()
            done.set()

        waiter = threading.Thread(target=_join, name="SentinelAuditFlush", daemon=True)
        waiter.start()
        return done.wait(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the writer, draining what is queued."""
        if self._shutdown_event.is_set():
            return

        timeout = timeout if timeout is not None else self.flush_timeout
        self._shutdown_event.set()

        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass  # writer will see the shutdown event

        if self._writer_thread and self._writer_thread.is_alive():
            self._writer_thread.join(timeout=timeout)
            if self._writer_thread.is_alive():
                logger.warning("Audit writer did not stop cleanly")

        stats = self.get_stats()
        logger.info(
            f"Audit writer shutdown complete. "
            f"Written: {stats['entries_written']}, "
            f"Failed: {stats['entries_failed']}, "
            f"Dropped: {stats['entries_dropped']}"
        )

    def get_stats(self) -> dict:
        """Get writer statistics."""
        with self._stats_lock:
            return {
                "entries_written": self._entries_written,
                "entries_failed": self._entries_failed,
                "entries_dropped": self._entries_dropped,
                "queue_size": self._queue.qsize(),
                "max_queue_size": self.max_queue_size,
            }

    @property
    def is_running(self) -> bool:
        """Whether the background writer is accepting queued writes."""
        return not self._shutdown_event.is_set()
