"""Bounded in-memory transaction log, most recent first."""

from __future__ import annotations

import threading
from collections import deque

from smartrelay.models import TransactionLogEntry

DEFAULT_CAPACITY = 50


class TransactionLog:
    """Fixed-capacity ring buffer of finalized transaction entries.

    New entries go to the front; once capacity is reached the oldest entry
    is evicted. Contents live only in process memory.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._entries: deque[TransactionLogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, entry: TransactionLogEntry) -> None:
        """Record a finalized entry. In-progress entries are rejected."""
        if not entry.status.is_terminal:
            raise ValueError(f"Transaction {entry.id} is not finalized")
        with self._lock:
            self._entries.appendleft(entry)

    def recent(self) -> list[TransactionLogEntry]:
        """Snapshot of the buffer, newest first."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
