"""
collabcore Logging — Structured JSON event log with async queue.

Implements:
- FileLogger: Per-object-type, per-category JSONL files (daily rotation)
- AsyncLogQueue: In-memory queue with background flush (100ms / 50 entries)
- Log entry builders for writes, conflicts, resolutions and history reads

Layout: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl
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

logger = logging.getLogger("collabcore.engine.logging")

# Valid object types and their permitted categories
OBJECT_TYPE_CATEGORIES = {
    "documents": ["writes", "conflicts", "resolutions"],
    "history": ["reads"],
    "system": ["execution"],
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
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Write a batch of log entries, grouping by file path."""
        grouped: Dict[str, List[LogEntry]] = defaultdict(list)
        for entry in entries:
            file_path = str(self._resolve_path(entry.object_type, entry.category))
            grouped[file_path].append(entry)

        for file_path, batch in grouped.items():
            with self._file_locks[file_path]:
                with open(file_path, "a", encoding="utf-8") as f:
                    for entry in batch:
                        f.write(entry.to_json())
                        f.write("\n")

    def _resolve_path(self, object_type: str, category: str) -> Path:
        today = date.today().isoformat()
        path = self._log_dir / object_type / category
        path.mkdir(parents=True, exist_ok=True)
        return path / f"{today}.jsonl"

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def read_today(
        self,
        object_type: str,
        category: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Read today's entries for one object_type/category, oldest first."""
        path = self._resolve_path(object_type, category)
        if not path.exists():
            return []
        entries: List[Dict[str, Any]] = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if filters and not all(data.get(k) == v for k, v in filters.items()):
                        continue
                    entries.append(data)
        except OSError as exc:
            logger.warning("Could not read log file %s: %s", path, exc)
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
            name="collabcore-log-flush",
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
        """Push a log entry. Returns False if dropped (queue full)."""
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
                entry = self._queue.get(timeout=min(remaining, 0.01))
                batch.append(entry)
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
    document_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    if document_id is not None:
        entry["document_id"] = document_id
    if actor_id is not None:
        entry["actor_id"] = actor_id
    entry.update(extra)
    return entry


def log_write_event(
    document_id: str,
    actor_id: str,
    expected_version: int,
    version: int,
    change_type: str,
    change_id: str,
    fields_changed: Optional[List[str]] = None,
    duration_ms: Optional[float] = None,
) -> LogEntry:
    """Build an accepted-write log entry."""
    data = _base_entry(
        event="write_accepted",
        level="INFO",
        document_id=document_id,
        actor_id=actor_id,
        expected_version=expected_version,
        version=version,
        change_type=change_type,
        change_id=change_id,
    )
    if fields_changed:
        data["fields_changed"] = fields_changed
    if duration_ms is not None:
        data["duration_ms"] = duration_ms
    return LogEntry("documents", "writes", data)


def log_conflict_event(
    document_id: str,
    actor_id: str,
    your_version: int,
    current_version: int,
    last_edited_by: Optional[str] = None,
    fields_changed: Optional[List[str]] = None,
) -> LogEntry:
    """Build a version-conflict log entry."""
    data = _base_entry(
        event="write_conflicted",
        level="WARNING",
        document_id=document_id,
        actor_id=actor_id,
        your_version=your_version,
        current_version=current_version,
    )
    if last_edited_by:
        data["last_edited_by"] = last_edited_by
    if fields_changed:
        data["fields_changed"] = fields_changed
    return LogEntry("documents", "conflicts", data)


def log_resolution_event(
    document_id: str,
    actor_id: str,
    strategy: str,
    wrote: bool,
    outcome: str,
    version: Optional[int] = None,
) -> LogEntry:
    """Build a conflict-resolution log entry (keep-mine/keep-theirs/merge-manually)."""
    data = _base_entry(
        event="conflict_resolved",
        level="INFO" if outcome != "conflicted" else "WARNING",
        document_id=document_id,
        actor_id=actor_id,
        strategy=strategy,
        wrote=wrote,
        outcome=outcome,
    )
    if version is not None:
        data["version"] = version
    return LogEntry("documents", "resolutions", data)


def log_history_read(
    document_id: str,
    limit: int,
    returned: int,
    skipped: int = 0,
    cursor: Optional[str] = None,
) -> LogEntry:
    """Build a history page read log entry."""
    data = _base_entry(
        event="history_read",
        level="WARNING" if skipped else "INFO",
        document_id=document_id,
        limit=limit,
        returned=returned,
        skipped=skipped,
    )
    if cursor:
        data["cursor"] = cursor
    return LogEntry("history", "reads", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a system event log entry (startup, shutdown, schema init)."""
    data = _base_entry(event=event, level=level)
    if details:
        data["details"] = details
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Global Log Queue Singleton
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
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push a log entry to the global queue. Non-blocking."""
    if _global_queue is None:
        logger.debug("Log queue not initialized — %s entry dropped", entry.data.get("event"))
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global log queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
