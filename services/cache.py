"""Expiring key/value store used by station sources."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


@dataclass(slots=True)
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float


class TTLCache:
    """Key/value store whose entries expire ``expiration_time`` seconds after insertion.

    Expiration is checked lazily on read and expired entries are never evicted,
    so memory grows with the number of distinct keys. The cache is not
    synchronized; callers serialize access themselves.
    """

    def __init__(
        self,
        expiration_time: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if expiration_time <= 0:
            raise ValueError("expiration_time must be positive.")
        self.expiration_time = expiration_time
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}

    def put(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """Store ``value`` under ``key``; ``ttl`` overrides the default lifetime."""
        self._entries[key] = CacheEntry(
            value=value,
            stored_at=self._clock(),
            ttl=self.expiration_time if ttl is None else ttl,
        )

    def lookup(self, key: Hashable) -> Tuple[bool, Any]:
        """Return ``(found, value)`` for ``key`` from a single clock read.

        ``None`` is a legitimate stored value, so callers that cache ``None``
        must branch on ``found`` rather than on the value.
        """
        entry = self._entries.get(key)
        if entry is None or (self._clock() - entry.stored_at) >= entry.ttl:
            return False, None
        return True, entry.value

    def has(self, key: Hashable) -> bool:
        return self.lookup(key)[0]

    def get(self, key: Hashable) -> Any:
        """Return the live value for ``key``, or ``None`` when absent or expired."""
        return self.lookup(key)[1]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
