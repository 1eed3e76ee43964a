"""Run one task per item on its own worker thread and gather every failure."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Sequence

from ..exceptions import AggregateError, flatten

logger = logging.getLogger(__name__)

Task = Callable[[], Any]


def collect_errors(tasks: Sequence[Task]) -> list[Exception]:
    """Run every task concurrently, wait for all of them and return their errors.

    There is no cap on the worker count and no ordering between tasks; one
    failure never cancels the others.
    """
    if not tasks:
        return []

    errors: list[Exception] = []
    with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
        futures = [executor.submit(task) for task in tasks]
        for future in as_completed(futures):
            try:
                future.result()
            except Exception as exc:
                errors.append(exc)

    if errors:
        logger.debug("%d of %d tasks failed", len(errors), len(tasks))
    return flatten(errors)


def run_concurrently(tasks: Sequence[Task]) -> None:
    """Like :func:`collect_errors`, but raise AggregateError if any task failed."""
    errors = collect_errors(tasks)
    if errors:
        raise AggregateError(errors)
