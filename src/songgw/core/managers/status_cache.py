"""Short-lived memo of status answers, keyed by job id.

Absorbs client poll bursts. Non-terminal answers expire after the TTL;
terminal answers are kept until invalidated. The store stays the source
of truth: a miss here only costs a store lookup.
"""

import time
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass
class CacheEntry:
    timestamp: float
    payload: Dict[str, Any]
    terminal: bool = False


class StatusCache:
    def __init__(self, ttl: float = 1.5, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def _fresh(self, entry: CacheEntry) -> bool:
        return entry.terminal or (self._clock() - entry.timestamp) < self.ttl

    def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(job_id)
        if entry is None:
            return None
        if not self._fresh(entry):
            del self._entries[job_id]
            return None
        return deepcopy(entry.payload)

    def set(self, job_id: str, payload: Dict[str, Any], terminal: bool = False) -> None:
        self._entries[job_id] = CacheEntry(self._clock(), deepcopy(payload), terminal)

    def invalidate(self, job_id: str) -> bool:
        return self._entries.pop(job_id, None) is not None

    def inspect(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Entry metadata for operators; does not evict."""
        entry = self._entries.get(job_id)
        if entry is None:
            return None
        return {
            "ageSeconds": round(self._clock() - entry.timestamp, 3),
            "terminal": entry.terminal,
            "fresh": self._fresh(entry),
            "payload": deepcopy(entry.payload),
        }

    def __len__(self) -> int:
        return len(self._entries)
