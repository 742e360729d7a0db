"""Expiring, size-bounded cache for EMR lookup results.

Provider lists from the EMR change rarely but do change, so every entry
carries a deadline.  Expired entries are dropped lazily on access; when
the entry limit is reached the least recently used one goes first.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

logger = logging.getLogger(__name__)


class TTLCache:
    """Thread-safe mapping whose entries expire ``ttl_seconds`` after insertion."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 128,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        # key -> (deadline, value)
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            deadline, value = entry
            if self._clock() >= deadline:
                del self._entries[key]
                logger.debug("Cache: %s expired", key)
                return None
            self._entries.move_to_end(key)
            return value

    def put(self, key: str, value: Any) -> None:
        if self._ttl <= 0 or self._max_entries <= 0:
            return
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache: evicted %s", evicted)
            self._entries[key] = (self._clock() + self._ttl, value)

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with *prefix*; returns how many went."""
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def __len__(self) -> int:
        return len(self._entries)
