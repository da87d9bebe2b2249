"""A single event-loop timer multiplexing many timeouts."""

from __future__ import annotations

import asyncio
import bisect
import itertools
from datetime import timedelta
from typing import Any, Callable, Optional, Union

Duration = Union[float, int, timedelta]


def _seconds(timeout: Duration) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


class Timer:
    """Runs callbacks once their timeout expires.

    Only one wake-up is scheduled on the event loop at a time: the one for
    the earliest pending expiration. When it fires, every callback sharing
    that expiration time runs, then the next earliest one is scheduled.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        self._timeouts: list[tuple[float, int, Callable[[], Any]]] = []
        self._sequence = itertools.count()
        self._handle: Optional[asyncio.TimerHandle] = None

    def expires_from_now(
        self, timeout: Duration, callback: Callable[[], Any]
    ) -> None:
        """Call ``callback`` once ``timeout`` (seconds or timedelta) elapses."""
        expiration = self._loop.time() + _seconds(timeout)

        if not self._timeouts or expiration < self._timeouts[0][0]:
            self._schedule_next_tick(expiration)

        bisect.insort(self._timeouts, (expiration, next(self._sequence), callback))

    def pending_count(self) -> int:
        """Number of callbacks still waiting to run."""
        return len(self._timeouts)

    def _schedule_next_tick(self, expiration: float) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_at(expiration, self._on_fire)

    def _on_fire(self) -> None:
        self._handle = None
        if not self._timeouts:
            return

        first = self._timeouts[0][0]
        count = bisect.bisect_right(self._timeouts, (first, float("inf")))
        batch = self._timeouts[:count]
        del self._timeouts[:count]

        for _, _, callback in batch:
            callback()

        if self._timeouts:
            self._schedule_next_tick(self._timeouts[0][0])
        elif self._handle is not None:
            self._handle.cancel()
            self._handle = None