"""Success/failure counters and latency for batch operations."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from types import TracebackType

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_results: Counter[tuple[str, bool]] = Counter()


def observed(operation: str, succeeded: bool) -> int:
    """Number of observations recorded for (operation, succeeded)."""
    with _lock:
        return _results[(operation, succeeded)]


def reset() -> None:
    with _lock:
        _results.clear()


class MetricContext:
    """Times an operation and records whether it succeeded.

    Usage:
        with MetricContext("vmas_ensure_hosts_in_pool", rg, sub, "default/web"):
            ...
        # Recorded as a failure when the block raises.
    """

    def __init__(self, operation: str, resource_group: str = "", subscription_id: str = "", source: str = ""):
        self.operation = operation
        self.resource_group = resource_group
        self.subscription_id = subscription_id
        self.source = source
        self._start = 0.0

    def __enter__(self) -> MetricContext:
        self._start = time.monotonic()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        self.observe(exc_type is None, exc_val)
        return False

    def observe(self, succeeded: bool, error: BaseException | None = None) -> None:
        elapsed = time.monotonic() - self._start
        with _lock:
            _results[(self.operation, succeeded)] += 1
        extra = {
            "operation": self.operation,
            "succeeded": succeeded,
            "resource_group": self.resource_group,
            "elapsed_seconds": round(elapsed, 3),
        }
        target = self.source or self.resource_group
        if error is None:
            logger.debug("Observed %s for %s", self.operation, target, extra=extra)
        else:
            logger.warning(
                "%s failed for %s", self.operation, target,
                exc_info=(type(error), error, error.__traceback__), extra=extra,
            )
