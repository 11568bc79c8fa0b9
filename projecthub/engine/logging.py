"""
ProjectHub Logging — Structured JSON file-based audit log with async queue.

Implements:
- FileLogger: Per-object-type, per-category log files (daily files)
- AsyncLogQueue: In-memory queue with background flush (100ms / 50 entries)
- Log entry builders for record operations, backend calls, security events,
  realtime notifications and system events

Module loggers (``logging.getLogger("projecthub.…")``) remain the primary
diagnostic channel; this pipeline is the queryable audit trail.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

from projecthub.engine.context import get_current_user

logger = logging.getLogger("projecthub.engine.logging")

# Valid object types and their permitted categories
OBJECT_TYPE_CATEGORIES = {
    "projects": ["execution", "security"],
    "stages": ["execution"],
    "tasks": ["execution"],
    "comments": ["execution"],
    "files": ["execution", "security"],
    "brochure": ["execution", "security"],
    "leads": ["execution"],
    "users": ["execution", "security"],
    "backend": ["execution"],
    "realtime": ["execution"],
    "system": ["execution", "security"],
}

# Table name → object type folder
TABLE_OBJECT_TYPES = {
    "projects": "projects",
    "stages": "stages",
    "tasks": "tasks",
    "comment_tasks": "comments",
    "global_comments": "comments",
    "meetings": "tasks",
    "files": "files",
    "brochure_projects": "brochure",
    "brochure_pages": "brochure",
    "page_comments": "brochure",
    "leads": "leads",
    "profiles": "users",
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Writes structured JSON log entries to per-object-type, per-category files.
    Files rotate daily: logs/{object_type}/{category}/{YYYY-MM-DD}.jsonl

    Thread-safe — uses a lock per file path.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    def write(self, entry: LogEntry) -> None:
        """Write a single log entry to the appropriate file."""
        file_path = self._resolve_path(entry.object_type, entry.category)
        with self._file_locks[str(file_path)]:
            with open(file_path, "a", encoding="utf-8") as f:
                f.write(entry.to_json())
                f.write("\n")

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Write a batch of log entries, grouping by file path."""
        grouped: Dict[str, List[LogEntry]] = defaultdict(list)
        for entry in entries:
            grouped[str(self._resolve_path(entry.object_type, entry.category))].append(entry)

        for file_path, batch in grouped.items():
            with self._file_locks[file_path]:
                with open(file_path, "a", encoding="utf-8") as f:
                    for entry in batch:
                        f.write(entry.to_json())
                        f.write("\n")

    def _resolve_path(self, object_type: str, category: str) -> Path:
        if category not in OBJECT_TYPE_CATEGORIES.get(object_type, ()):
            object_type, category = "system", "execution"
        today = date.today().isoformat()
        return self._log_dir / object_type / category / f"{today}.jsonl"

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def read_today(self, object_type: str, category: str) -> List[Dict[str, Any]]:
        """Read today's entries for one object_type/category (oldest first)."""
        path = self._resolve_path(object_type, category)
        if not path.exists():
            return []
        entries: List[Dict[str, Any]] = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return entries


class AsyncLogQueue:
    """
    In-memory queue with a background flush thread.

    Entries are pushed non-blocking. A background thread flushes to FileLogger
    every flush_interval_ms OR when flush_batch_size entries accumulate,
    whichever comes first.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._logger = file_logger
        self._flush_interval = flush_interval_ms / 1000.0
        self._flush_batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._running = False
        self._flush_thread: Optional[threading.Thread] = None
        self._dropped_count = 0

    def start(self) -> None:
        """Start the background flush thread."""
        if self._running:
            return
        self._running = True
        self._flush_thread = threading.Thread(
            target=self._flush_loop,
            name="projecthub-log-flush",
            daemon=True,
        )
        self._flush_thread.start()
        logger.info("Async log queue started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the flush thread and drain remaining entries."""
        self._running = False
        if self._flush_thread and self._flush_thread.is_alive():
            self._flush_thread.join(timeout=timeout)
        self._drain()
        logger.info(f"Async log queue stopped (dropped: {self._dropped_count})")

    def push(self, entry: LogEntry) -> bool:
        """
        Push a log entry to the queue. Non-blocking.

        Returns:
            True if queued, False if dropped (queue full).
        """
        try:
            self._queue.put_nowait(entry)
            return True
        except Full:
            self._dropped_count += 1
            return False

    def _flush_loop(self) -> None:
        while self._running:
            batch = self._collect_batch()
            if batch:
                try:
                    self._logger.write_batch(batch)
                except Exception as e:
                    logger.error(f"Log flush error: {e}")
            else:
                time.sleep(self._flush_interval)

    def _collect_batch(self) -> List[LogEntry]:
        batch: List[LogEntry] = []
        deadline = time.monotonic() + self._flush_interval

        while len(batch) < self._flush_batch_size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                batch.append(self._queue.get(timeout=min(remaining, 0.01)))
            except Empty:
                if batch:
                    break
                continue

        return batch

    def _drain(self) -> None:
        batch: List[LogEntry] = []
        while not self._queue.empty():
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        if batch:
            try:
                self._logger.write_batch(batch)
            except Exception as e:
                logger.error(f"Log drain error: {e}")

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    object_ref: str,
    user_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build a base log entry; user defaults to the current user."""
    if user_id is None:
        user = get_current_user()
        user_id = user.user_id if user else None
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        "object_ref": object_ref,
    }
    if user_id is not None:
        entry["user_id"] = user_id
    entry.update(extra)
    return entry


def log_record_operation(
    operation: str,
    table: str,
    record_id: Optional[str] = None,
    fields_changed: Optional[List[str]] = None,
    optimistic: bool = False,
    success: bool = True,
    error: Optional[str] = None,
    user_id: Optional[str] = None,
) -> LogEntry:
    """Build a record create/update/delete log entry."""
    data = _base_entry(
        event=f"record_{operation}",
        level="INFO" if success else "ERROR",
        object_ref=f"{table}.{record_id}" if record_id else table,
        user_id=user_id,
        table=table,
        operation=operation,
        optimistic=optimistic,
        success=success,
    )
    if record_id is not None:
        data["record_id"] = record_id
    if fields_changed:
        data["fields_changed"] = fields_changed
    if error:
        data["error"] = error
    return LogEntry(TABLE_OBJECT_TYPES.get(table, "system"), "execution", data)


def log_backend_call(
    method: str,
    url: str,
    status_code: int,
    duration_ms: float,
    success: bool,
    table: Optional[str] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a backend HTTP call log entry (body never logged)."""
    data = _base_entry(
        event="backend_called",
        level="INFO" if success else "ERROR",
        object_ref=table or "backend",
        method=method,
        url=url,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        success=success,
    )
    if error:
        data["error"] = error
    return LogEntry("backend", "execution", data)


def log_security_event(
    event: str,
    object_type: str,
    object_ref: str,
    role: Optional[str] = None,
    reason: Optional[str] = None,
    user_id: Optional[str] = None,
    level: str = "WARNING",
) -> LogEntry:
    """Build a security event log entry (denial, lock conflict)."""
    data = _base_entry(
        event=event,
        level=level,
        object_ref=object_ref,
        user_id=user_id,
        object_type=object_type,
    )
    if role:
        data["role"] = role
    if reason:
        data["reason"] = reason
    if "security" not in OBJECT_TYPE_CATEGORIES.get(object_type, ()):
        object_type = "system"
    return LogEntry(object_type, "security", data)


def log_realtime_event(
    table: str,
    event_type: str,
    reloaded: bool,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a change-feed notification log entry."""
    data = _base_entry(
        event="realtime_change",
        level="INFO" if error is None else "ERROR",
        object_ref=table,
        table=table,
        event_type=event_type,
        reloaded=reloaded,
    )
    if error:
        data["error"] = error
    return LogEntry("realtime", "execution", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a system event log entry (startup, shutdown, fallback switches)."""
    data = _base_entry(event=event, level=level, object_ref="system")
    if details:
        data["details"] = details
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Convenience: Global Log Queue Singleton
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Initialize the global async log queue."""
    global _global_queue
    file_logger = FileLogger(log_dir=log_dir)
    _global_queue = AsyncLogQueue(
        file_logger=file_logger,
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    """Get the global async log queue."""
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push a log entry to the global queue. Non-blocking."""
    if _global_queue is None:
        logger.debug("Log queue not initialized — entry dropped")
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global log queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
