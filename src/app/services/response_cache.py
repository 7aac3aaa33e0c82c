"""Process-local caches for generated content responses."""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional

logger = logging.getLogger(__name__)


class ResponseCache(ABC):
    @abstractmethod
    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value, or None when missing or expired."""
        pass

    @abstractmethod
    def set(self, key: Hashable, value: Any) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class InMemoryTTLCache(ResponseCache):
    """
    Bounded TTL cache.

    Entries expire ``ttl_seconds`` after insertion. When the cache is full
    the oldest inserted entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[Hashable, tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("cache.evicted key=%r", evicted)
            self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class NullCache(ResponseCache):
    """Never stores anything."""

    def get(self, key: Hashable) -> Optional[Any]:
        return None

    def set(self, key: Hashable, value: Any) -> None:
        return None

    def clear(self) -> None:
        return None
