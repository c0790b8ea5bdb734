from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Deque, Dict, List, Optional


@dataclass(frozen=True)
class HistoryEntry:
    question: str
    table: str
    sql: str
    row_count: int
    timestamp: float = field(default_factory=time.time)


class QueryHistory:
    """Answered questions, newest first, capped at ``capacity`` entries.

    Shared between threads answering on the same engine, so every access
    holds the lock.
    """

    def __init__(self, capacity: int = 100) -> None:
        self._entries: Deque[HistoryEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, question: str, table: str, sql: str, row_count: int) -> HistoryEntry:
        entry = HistoryEntry(question=question, table=table, sql=sql, row_count=row_count)
        with self._lock:
            self._entries.appendleft(entry)
        return entry

    def latest(self) -> Optional[HistoryEntry]:
        with self._lock:
            return self._entries[0] if self._entries else None

    def for_table(self, table: str) -> List[HistoryEntry]:
        with self._lock:
            return [entry for entry in self._entries if entry.table == table]

    def as_dicts(self) -> List[Dict[str, object]]:
        with self._lock:
            return [asdict(entry) for entry in self._entries]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
