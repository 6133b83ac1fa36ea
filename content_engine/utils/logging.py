"""
Centralized logging for the content engine.

Every AppLogger call goes to the stdlib logger and to an in-memory ring
buffer. The buffer backs the admin log endpoints, so an operator can pull
up what happened to one job (worker pickup, webhook, transfers) without an
external log aggregator.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Optional, List, Dict, Any, Iterator


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def is_error(self) -> bool:
        return self in (LogLevel.ERROR, LogLevel.CRITICAL)


@dataclass
class LogEntry:
    level: LogLevel
    message: str
    source: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def job_id(self) -> Optional[str]:
        return self.metadata.get("job_id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "source": self.source,
            "job_id": self.job_id,
            "metadata": self.metadata,
        }


class LogBuffer:
    """
    Bounded, thread-safe store of recent log entries.

    Entries come back newest first. The RQ transfer worker runs in its own
    process, so its entries only show up in that process's buffer.
    """

    def __init__(self, max_size: int = 1000):
        self._entries: deque = deque(maxlen=max_size)
        self._lock = Lock()
        self._level_totals: Counter = Counter()

    def add(self, entry: LogEntry):
        with self._lock:
            self._entries.append(entry)
            self._level_totals[entry.level] += 1

    def _newest_first(self) -> Iterator[LogEntry]:
        with self._lock:
            snapshot = list(self._entries)
        return reversed(snapshot)

    def get_recent(
        self,
        limit: int = 100,
        level: Optional[LogLevel] = None,
        source: Optional[str] = None,
        job_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Recent entries, optionally narrowed to a level, source or job."""
        matches = []
        for entry in self._newest_first():
            if level and entry.level != level:
                continue
            if source and entry.source != source:
                continue
            if job_id and entry.job_id != job_id:
                continue
            matches.append(entry.to_dict())
            if len(matches) >= limit:
                break
        return matches

    def get_errors(self, limit: int = 50) -> List[Dict[str, Any]]:
        errors = (e.to_dict() for e in self._newest_first() if e.level.is_error)
        return [entry for _, entry in zip(range(limit), errors)]

    def get_stats(self) -> Dict[str, Any]:
        """Counts over the buffered entries; error/warning counts cover every entry since the last clear."""
        with self._lock:
            entries = list(self._entries)
            totals = dict(self._level_totals)

        return {
            "total": len(entries),
            "by_level": dict(Counter(e.level.value for e in entries)),
            "by_source": dict(Counter(e.source for e in entries)),
            "error_count": totals.get(LogLevel.ERROR, 0) + totals.get(LogLevel.CRITICAL, 0),
            "warning_count": totals.get(LogLevel.WARNING, 0),
        }

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._level_totals.clear()


_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    """Process-wide log buffer."""
    return _log_buffer


class AppLogger:
    """
    Logger for one pipeline stage.

    Keyword arguments become structured metadata, e.g.
    ``logger.info("Job completed", job_id=job_id, type=job_type)``.
    """

    def __init__(self, source: str):
        self.source = source
        self._logger = logging.getLogger(f"content_engine.{source}")

    def _log(self, level: LogLevel, message: str, metadata: Dict[str, Any]):
        _log_buffer.add(LogEntry(level, message, self.source, metadata))

        if metadata:
            details = " ".join(f"{key}={value}" for key, value in metadata.items())
            message = f"{message} | {details}"
        self._logger.log(getattr(logging, level.name), message)

    def debug(self, message: str, **metadata):
        self._log(LogLevel.DEBUG, message, metadata)

    def info(self, message: str, **metadata):
        self._log(LogLevel.INFO, message, metadata)

    def warning(self, message: str, **metadata):
        self._log(LogLevel.WARNING, message, metadata)

    def error(self, message: str, **metadata):
        self._log(LogLevel.ERROR, message, metadata)

    def critical(self, message: str, **metadata):
        self._log(LogLevel.CRITICAL, message, metadata)


def get_logger(source: str) -> AppLogger:
    return AppLogger(source)


def configure_logging(level: str = "INFO"):
    """Configure the root handler once per process (web, worker, sweeper)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )


# One logger per pipeline stage
job_logger = AppLogger("job_queue")
worker_logger = AppLogger("worker")
webhook_logger = AppLogger("webhook")
transfer_logger = AppLogger("transfer")
api_logger = AppLogger("api")
