"""
Per-call timeouts and all-settled fan-out for collaborator calls.

Collaborators (gh, content generators, the store) are blocking calls.
A call that hangs must not hold the cycle lock forever, so each one runs
on a worker thread and the caller stops waiting after ``timeout``.
The worker itself cannot be killed; it is abandoned and finishes on
its own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class StageTimeout(Exception):
    """A collaborator call exceeded its time budget."""

    def __init__(self, label: str, timeout: float):
        self.label = label
        self.timeout = timeout
        super().__init__(f"{label} timed out after {timeout:g}s")


def call_with_timeout(
    fn: Callable[..., R],
    *args: Any,
    timeout: float,
    label: str = "call",
    **kwargs: Any,
) -> R:
    """Run ``fn(*args, **kwargs)`` and wait at most ``timeout`` seconds.

    Raises:
        StageTimeout: If the call did not finish in time.
        Exception: Whatever ``fn`` raised.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"fw-{label}")
    future = pool.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as e:
        logger.warning("%s exceeded %.1fs — abandoning", label, timeout)
        raise StageTimeout(label, timeout) from e
    finally:
        pool.shutdown(wait=False)


@dataclass
class Settled(Generic[T]):
    """Outcome of one fan-out branch."""

    item: T
    ok: bool
    value: Any = None
    error: str | None = None


def fan_out(
    items: Iterable[T],
    fn: Callable[[T], Any],
    *,
    timeout: float,
    max_workers: int = 4,
    label: str = "fan-out",
) -> list[Settled[T]]:
    """Run ``fn`` over ``items`` concurrently and wait for every branch.

    A failing or slow branch never cancels its siblings. Results come
    back in input order.
    """
    items = list(items)
    if not items:
        return []

    results: dict[int, Settled[T]] = {}
    pool = ThreadPoolExecutor(max_workers=min(max_workers, len(items)), thread_name_prefix=f"fw-{label}")
    try:
        futures = {pool.submit(fn, item): i for i, item in enumerate(items)}
        try:
            for future in as_completed(futures, timeout=timeout):
                i = futures[future]
                try:
                    results[i] = Settled(item=items[i], ok=True, value=future.result())
                except Exception as e:
                    logger.warning("%s: %s failed: %s", label, items[i], e)
                    results[i] = Settled(item=items[i], ok=False, error=str(e))
        except FutureTimeout:
            logger.warning("%s: %d branch(es) exceeded %.1fs", label, len(items) - len(results), timeout)
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    return [
        results.get(i) or Settled(item=item, ok=False, error=f"timed out after {timeout:g}s")
        for i, item in enumerate(items)
    ]
