"""Cancellable timers and a debouncer built on top of them."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Any, Callable, List, Optional, Protocol, Tuple

DEFAULT_QUIET_PERIOD = 0.3


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs an action once after a delay, unless the returned handle is cancelled."""

    def schedule(self, delay: float, action: Callable[[], None]) -> TimerHandle: ...

    def cancel(self, handle: TimerHandle) -> None: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def schedule(self, delay: float, action: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(delay, 0.0), action)

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancel()


class ScheduledCall:
    """A pending action registered with a :class:`ManualScheduler`."""

    def __init__(self, when: float, action: Callable[[], None]) -> None:
        self.when = when
        self.action = action
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Simulated clock: actions fire only when :meth:`advance` moves time past them."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: List[Tuple[float, int, ScheduledCall]] = []
        self._counter = itertools.count()

    def schedule(self, delay: float, action: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(self.now + max(delay, 0.0), action)
        heapq.heappush(self._queue, (call.when, next(self._counter), call))
        return call

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancel()

    @property
    def pending(self) -> int:
        return sum(1 for _, _, call in self._queue if not call.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward and run every due action; return how many ran."""

        target = self.now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, call = heapq.heappop(self._queue)
            self.now = max(self.now, when)
            if call.cancelled:
                continue
            call.action()
            fired += 1
        self.now = target
        return fired


class Debouncer:
    """Coalesce bursts of calls into one dispatch after a quiet period.

    Only the arguments of the most recent call are dispatched, and only once
    no new call has arrived for ``quiet_period`` seconds.
    """

    def __init__(
        self,
        dispatch: Callable[..., Any],
        *,
        scheduler: Scheduler,
        quiet_period: float = DEFAULT_QUIET_PERIOD,
    ) -> None:
        if quiet_period < 0:
            raise ValueError("quiet_period must not be negative")
        self._dispatch = dispatch
        self._scheduler = scheduler
        self._quiet_period = quiet_period
        self._handle: Optional[TimerHandle] = None
        self._pending: Optional[Tuple[tuple, dict]] = None

    @property
    def quiet_period(self) -> float:
        return self._quiet_period

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        self._cancel_timer()
        self._pending = (args, kwargs)
        self._handle = self._scheduler.schedule(self._quiet_period, self._fire)

    def cancel(self) -> None:
        """Drop the pending dispatch, if any."""

        self._cancel_timer()
        self._pending = None

    def flush(self) -> bool:
        """Dispatch the pending call immediately; return whether one was pending."""

        if self._pending is None:
            return False
        self._cancel_timer()
        self._fire()
        return True

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._scheduler.cancel(self._handle)
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        pending, self._pending = self._pending, None
        if pending is None:
            return
        args, kwargs = pending
        self._dispatch(*args, **kwargs)


__all__ = [
    "DEFAULT_QUIET_PERIOD",
    "Debouncer",
    "LoopScheduler",
    "ManualScheduler",
    "ScheduledCall",
    "Scheduler",
]
