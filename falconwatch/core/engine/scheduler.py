"""
Ticker — cancellable repeating timer on a daemon thread.

Design decisions
────────────────
1. **Event wait, not sleep**: the loop waits on a ``threading.Event``,
   so ``stop()`` wakes it immediately instead of after the interval.
2. **Interval re-read per arm**: ``interval_fn`` is called each time
   the timer is armed. A config change never shortens or restarts the
   current wait; it applies from the next natural boundary.
3. **Callback runs on the ticker thread**: the next wait starts only
   after the callback returns, so ticks never overlap.
4. **Daemon thread**: does not keep the process alive.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Ticker:
    """Calls ``callback`` every ``interval_fn()`` seconds until stopped."""

    def __init__(
        self,
        interval_fn: Callable[[], float],
        callback: Callable[[], object],
        name: str = "falconwatch-ticker",
        clock: Callable[[], float] = time.monotonic,
    ):
        self._interval_fn = interval_fn
        self._callback = callback
        self._name = name
        self._clock = clock
        self._stop = threading.Event()
        self._deadline: float | None = None
        self._thread: threading.Thread | None = None
        self._ticks = 0

    @property
    def ticks(self) -> int:
        """Callbacks fired so far."""
        return self._ticks

    @property
    def armed(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError(f"{self._name} already started")
        self._thread = threading.Thread(target=self._loop, daemon=True, name=self._name)
        self._thread.start()
        logger.info("%s armed (every %.0fs)", self._name, self._interval_fn())

    def stop(self, timeout: float | None = None) -> None:
        """Disarm. A callback already running is not interrupted.

        Args:
            timeout: If given, wait up to this long for the thread to exit.
        """
        self._stop.set()
        thread = self._thread
        if timeout is not None and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("%s disarmed", self._name)

    def remaining(self) -> float | None:
        """Seconds until the next fire, or None when stopped."""
        if self._stop.is_set() or self._thread is None:
            return None
        deadline = self._deadline
        if deadline is None:
            # Callback in progress; the next wait is a full interval.
            return self._interval_fn()
        return max(0.0, deadline - self._clock())

    def _loop(self) -> None:
        while not self._stop.is_set():
            interval = self._interval_fn()
            self._deadline = self._clock() + interval
            if self._stop.wait(interval):
                break
            self._deadline = None
            self._ticks += 1
            try:
                self._callback()
            except Exception:
                logger.exception("%s callback failed", self._name)
        self._deadline = None
