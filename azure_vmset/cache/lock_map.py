"""A map of per-key mutexes created on demand."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class LockMap:
    """Hands out one lock per key so unrelated keys never contend."""

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_entry(self, key: str) -> None:
        self._entry(key).acquire()

    def unlock_entry(self, key: str) -> None:
        with self._mutex:
            lock = self._locks.get(key)
        if lock is None:
            raise RuntimeError(f"unlock of unknown key {key!r}")
        lock.release()

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        lock = self._entry(key)
        with lock:
            yield

    def _entry(self, key: str) -> threading.Lock:
        with self._mutex:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock
