"""Bounded operator log, injected into every component that reports state."""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, List, Optional

logger = logging.getLogger("worker_gateway")


@dataclass(frozen=True)
class LogEntry:
    """Single timestamped log line."""
    message: str
    created_at: datetime = field(default_factory=datetime.now)


class LogStore:
    """
    Keeps the most recent operator-facing messages.

    Safe to call from any thread or task. Every entry is also forwarded
    to the ``worker_gateway`` logger so console output and the in-memory
    view agree.
    """

    def __init__(self, max_entries: int = 200):
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def add(self, message: str, level: int = logging.INFO) -> LogEntry:
        """Record a message and return the stored entry."""
        now = datetime.now()
        stamp = now.strftime("[%H:%M:%S.") + f"{now.microsecond // 1000:03d}]"
        entry = LogEntry(message=f"{stamp} {message}", created_at=now)

        with self._lock:
            self._entries.append(entry)

        logger.log(level, message)
        return entry

    def entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Snapshot of stored entries, oldest first."""
        with self._lock:
            items = list(self._entries)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
