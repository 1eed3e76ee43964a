"""TTL caches and per-key locks fronting expensive list/get calls."""

from .lock_map import LockMap
from .timed_cache import CacheReadType, TimedCache

__all__ = ["CacheReadType", "LockMap", "TimedCache"]
