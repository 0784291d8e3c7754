"""Cancellable one-shot timers polled from the main loop.

Every suspension point of a round (game clock, judgment window, feedback
auto-clear, countdown steps) is a ``TimerHandle`` owned by the component
that armed it. Nothing here uses threads: ``Scheduler.run_due()`` is called
once per frame (or by tests after advancing a fake clock) and fires the
callbacks whose deadline has passed, in deadline order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .clock import Clock

logger = logging.getLogger(__name__)


class TimerHandle:
    __slots__ = ("_deadline_s", "_callback", "_seq", "_cancelled", "_fired")

    def __init__(self, deadline_s: float, callback: Callable[[], None], seq: int) -> None:
        self._deadline_s = float(deadline_s)
        self._callback = callback
        self._seq = seq
        self._cancelled = False
        self._fired = False

    @property
    def deadline_s(self) -> float:
        return self._deadline_s

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        self._cancelled = True

    def _fire(self) -> None:
        self._fired = True
        self._callback()


class Scheduler:
    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._pending: list[TimerHandle] = []
        self._seq = 0

    @property
    def clock(self) -> Clock:
        return self._clock

    def now(self) -> float:
        return self._clock.now()

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self.schedule_at(self._clock.now() + max(0.0, float(delay_s)), callback)

    def schedule_at(self, deadline_s: float, callback: Callable[[], None]) -> TimerHandle:
        self._seq += 1
        handle = TimerHandle(deadline_s, callback, self._seq)
        self._pending.append(handle)
        return handle

    def pending_count(self) -> int:
        return sum(1 for h in self._pending if h.active)

    def run_due(self) -> int:
        """Fire every timer whose deadline has passed. Returns the number fired.

        Callbacks may schedule or cancel other timers; newly scheduled timers
        that are already due fire within the same call.
        """

        fired = 0
        while True:
            now = self._clock.now()
            self._pending = [h for h in self._pending if h.active]
            due = [h for h in self._pending if h.deadline_s <= now]
            if not due:
                return fired
            handle = min(due, key=lambda h: (h.deadline_s, h._seq))
            self._pending.remove(handle)
            handle._fire()
            fired += 1

    def cancel_all(self) -> None:
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()
        logger.debug("scheduler: cancelled all timers")
