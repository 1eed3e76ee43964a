"""TTL-bounded, key-scoped, single-flight cache."""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


class CacheReadType(enum.Enum):
    """How a read treats an entry that may be stale."""

    DEFAULT = "default"  # refetch once the TTL has elapsed
    UNSAFE = "unsafe"  # return whatever is cached, fetch only on a miss
    FORCE_REFRESH = "force_refresh"  # always fetch


@dataclass
class CacheEntry:
    key: str
    data: Any = None
    created_at: float | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def populated(self) -> bool:
        # a None payload means the resource did not exist; always refetch it
        return self.created_at is not None and self.data is not None


class TimedCache:
    """Caches getter results per key for ``ttl_seconds``.

    Each key owns a lock, so at most one getter call per key is in flight;
    callers arriving during a fetch wait and then read the stored result.
    A getter exception propagates and leaves the entry as it was. A None
    result is stored but never served, so the next read fetches again.
    """

    def __init__(
        self,
        ttl_seconds: float,
        getter: Callable[[str], Any],
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("cache TTL must be greater than zero")
        self._ttl = ttl_seconds
        self._getter = getter
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str, read_type: CacheReadType = CacheReadType.DEFAULT) -> Any:
        entry = self._get_entry(key)

        with entry.lock:
            if entry.populated and read_type is not CacheReadType.FORCE_REFRESH:
                if read_type is CacheReadType.UNSAFE or not self._expired(entry):
                    return entry.data

            logger.debug("Cache miss for key %s (read type %s)", key, read_type.value)
            data = self._getter(key)
            entry.data = data
            entry.created_at = self._clock()
            return data

    def set(self, key: str, data: Any) -> None:
        """Prime the entry for ``key`` with ``data``."""
        entry = self._get_entry(key)
        with entry.lock:
            entry.data = data
            entry.created_at = self._clock()

    def delete(self, key: str) -> None:
        """Drop the entry so the next read fetches again."""
        with self._lock:
            self._entries.pop(key, None)

    def _get_entry(self, key: str) -> CacheEntry:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = CacheEntry(key=key)
                self._entries[key] = entry
            return entry

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.created_at >= self._ttl
