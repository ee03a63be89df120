"""Single-flight access to a station's cache."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Callable, Hashable, Optional

from logging_config import log_elapsed
from services.cache import TTLCache

logger = logging.getLogger(__name__)


class RequestCoalescer:
    """Runs at most one loader per cache key at a time and caches its result.

    The lock is held across the whole check, load and store sequence, so a
    caller arriving while a load is in flight waits for it and then reads the
    cached result instead of loading again. Loader exceptions are not cached.
    A ``None`` result is stored as a negative entry with ``negative_ttl``.
    """

    def __init__(
        self,
        cache: TTLCache,
        name: str,
        negative_ttl: Optional[float] = None,
    ) -> None:
        self.cache = cache
        self.name = name
        self.negative_ttl = negative_ttl
        self._lock = Lock()

    def run(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        with self._lock:
            found, cached = self.cache.lookup(key)
            if found:
                logger.debug("Cache hit", extra={"station": self.name, "cache_key": key})
                return cached

            with log_elapsed(
                logger, "Loaded cache entry", station=self.name, cache_key=key
            ) as context:
                value = loader()
                context["status"] = "empty" if value is None else "stored"

            ttl = self.negative_ttl if value is None else None
            self.cache.put(key, value, ttl=ttl)
            return value
