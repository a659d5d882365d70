"""Audit Store - Abstraction for durable audit log persistence.

This module provides an interface for audit log storage backends,
decoupling the audit trail from specific persistence mechanisms.

Design principles:
- Append-only writes
- Time-bounded read-back queries, newest first
- Retention-based expiry owned by the store
- Thread-safe operations
"""

import fcntl
import logging
import os
import re
import threading
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from fraud_sentinel.common.constants import AuditConstants
from fraud_sentinel.common.exceptions import AuditError
from fraud_sentinel.governance.schemas import AuditFilter, AuditLogEntry

logger = logging.getLogger(__name__)


class AuditStore(ABC):
    """Abstract base class for durable audit storage backends."""

    @abstractmethod
    def append_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append an audit entry to the store.

        Raises:
            AuditError: If the write fails
        """

    @abstractmethod
    def query(
        self,
        audit_filter: Optional[AuditFilter] = None,
        limit: int = AuditConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[AuditLogEntry]:
        """Return matching entries, most recent first.

        Raises:
            AuditError: If the read fails
        """

    @abstractmethod
    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Remove entries older than the retention window.

        Returns:
            Number of removed entries or files
        """


class FileAuditStore(AuditStore):
    """File-based audit store with JSONL format.

    Features:
    - Append-only JSONL files with daily rotation
    - Exclusive flock around each append for cross-process safety
    - Retention enforced by deleting whole daily files
    """

    DEFAULT_LOG_DIR = Path(__file__).parent.parent.parent.parent.parent / "logs" / "audit"

    def __init__(
        self,
        log_dir: Optional[str] = None,
        log_filename_pattern: str = AuditConstants.LOG_FILENAME_PATTERN,
        retention_days: int = AuditConstants.RETENTION_DAYS,
        fsync_on_write: bool = False,
    ):
        """Initialize file audit store.

        Args:
            log_dir: Directory for audit logs. Uses default if not provided.
            log_filename_pattern: Pattern for log filename. {date} is replaced.
            retention_days: Days a daily file is kept before purge.
            fsync_on_write: Whether to fsync after each write (slower but safer).
        """
        if "{date}" not in log_filename_pattern:
            raise ValueError("log_filename_pattern must contain {date}")

        self.log_dir = Path(log_dir) if log_dir else self.DEFAULT_LOG_DIR
        self.log_filename_pattern = log_filename_pattern
        self.retention_days = retention_days
        self.fsync_on_write = fsync_on_write

        self._lock = threading.Lock()
        prefix, suffix = log_filename_pattern.split("{date}", 1)
        self._file_regex = re.compile(
            re.escape(prefix) + r"(\d{4}-\d{2}-\d{2})" + re.escape(suffix) + "$"
        )

        self.log_dir.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.log_dir, 0o700)
        except OSError:
            pass  # May fail on some systems; proceed anyway

    def _log_path_for(self, day: date) -> Path:
        filename = self.log_filename_pattern.replace("{date}", day.strftime("%Y-%m-%d"))
        return self.log_dir / filename

    def _dated_files(self) -> List[tuple]:
        """(date, path) for every daily file, newest first."""
        files = []
        for path in self.log_dir.iterdir():
            match = self._file_regex.match(path.name)
            if not match:
                continue
            try:
                day = datetime.strptime(match.group(1), "%Y-%m-%d").date()
            except ValueError:
                continue
            files.append((day, path))
        files.sort(key=lambda item: item[0], reverse=True)
        return files

    def append_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append entry to the daily file of its timestamp."""
        log_path = self._log_path_for(entry.timestamp.astimezone(timezone.utc).date())
        line = entry.to_jsonl() + "\n"

        with self._lock:
            try:
                fd = os.open(
                    str(log_path),
                    os.O_WRONLY | os.O_CREAT | os.O_APPEND,
                    0o600
                )
            except OSError as e:
                raise AuditError(
                    f"Cannot open audit log {log_path}: {e}",
                    details={"path": str(log_path)},
                ) from e
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                try:
                    os.write(fd, line.encode("utf-8"))
                    if self.fsync_on_write:
                        os.fsync(fd)
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            except OSError as e:
                raise AuditError(
                    f"Failed to write audit entry: {e}",
                    details={"path": str(log_path)},
                ) from e
            finally:
                os.close(fd)

        return entry

    def _read_file(self, path: Path) -> List[AuditLogEntry]:
        entries = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditLogEntry.from_jsonl(line))
                except ValueError as e:
                    logger.warning(f"Skipped malformed audit entry in {path.name}: {e}")
        return entries

    def query(
        self,
        audit_filter: Optional[AuditFilter] = None,
        limit: int = AuditConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[AuditLogEntry]:
        """Scan daily files newest first until limit matches are found."""
        audit_filter = audit_filter or AuditFilter()
        since_day = audit_filter.since.date() if audit_filter.since else None
        results: List[AuditLogEntry] = []

        try:
            for day, path in self._dated_files():
                if since_day is not None and day < since_day:
                    break
                entries = self._read_file(path)
                entries.sort(key=lambda e: e.timestamp, reverse=True)
                for entry in entries:
                    if audit_filter.matches(entry):
                        results.append(entry)
                        if len(results) >= limit:
                            return results
        except OSError as e:
            raise AuditError(f"Failed to read audit logs: {e}") from e

        return results

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete daily files older than the retention window."""
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(days=self.retention_days)).date()
        removed = 0

        with self._lock:
            for day, path in self._dated_files():
                if day < cutoff:
                    try:
                        path.unlink()
                        removed += 1
                    except FileNotFoundError:
                        continue
                    except OSError as e:
                        raise AuditError(
                            f"Failed to delete expired audit log {path}: {e}",
                            details={"path": str(path)},
                        ) from e

        if removed:
            logger.info(f"Purged {removed} expired audit log file(s) older than {cutoff}")
        return removed

    def get_log_files(self) -> List[Path]:
        """Get list of all audit log files, oldest first."""
        return [path for _, path in reversed(self._dated_files())]
