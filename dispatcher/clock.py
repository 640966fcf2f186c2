"""
Clock and timer facility used by the dispatcher.

The dispatcher never sleeps or spawns timers itself; it asks a Clock for
the current time and for delayed callbacks. Two implementations are
provided:
- ManualClock: time only moves when advance() is called (tests, simulations)
- ThreadingClock: wall-clock time with threading.Timer callbacks
"""

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    """
    Handle to a scheduled callback.

    Attributes:
        due: Clock time at which the callback fires
        callback: Function called with no arguments
    """

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False
        self._timer: Optional[threading.Timer] = None

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self):
        """Cancel the callback. No-op if it already fired or was cancelled."""
        if not self.active:
            return
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "fired" if self.fired else "active"
        return f"TimerHandle(due={self.due}, {state})"


class Clock:
    """Abstract clock: a time source plus delayed callbacks."""

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


class ManualClock(Clock):
    """
    Deterministic clock driven by explicit calls to advance().

    Callbacks fire in due-time order, ties broken by the order they were
    scheduled. Callbacks scheduled by a firing callback are honored within
    the same advance() if they fall due inside the window.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: list = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        if delay < 0:
            raise ValueError(f"Delay cannot be negative, got {delay}")
        handle = TimerHandle(self._now + delay, callback)
        heapq.heappush(self._queue, (handle.due, next(self._counter), handle))
        return handle

    def advance(self, delta: float) -> int:
        """
        Move time forward and fire every callback that falls due.

        Args:
            delta: Amount of time to advance

        Returns:
            Number of callbacks fired
        """
        if delta < 0:
            raise ValueError(f"Cannot move time backwards, got {delta}")

        target = self._now + delta
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if not handle.active:
                continue
            self._now = due
            handle.fired = True
            handle.callback()
            fired += 1

        self._now = target
        return fired

    def pending_timers(self) -> List[TimerHandle]:
        """Scheduled callbacks that have neither fired nor been cancelled."""
        return [handle for _, _, handle in sorted(self._queue) if handle.active]


class ThreadingClock(Clock):
    """
    Wall-clock time with callbacks run on threading.Timer threads.

    Callbacks run on their own threads; the code they call must serialize
    access to shared state.
    """

    def __init__(self):
        self._handles = set()
        self._lock = threading.Lock()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        if delay < 0:
            raise ValueError(f"Delay cannot be negative, got {delay}")
        handle = TimerHandle(self.now() + delay, callback)
        timer = threading.Timer(delay, self._fire, args=(handle,))
        timer.daemon = True
        handle._timer = timer
        with self._lock:
            self._handles.add(handle)
        timer.start()
        return handle

    def _fire(self, handle: TimerHandle):
        with self._lock:
            self._handles.discard(handle)
        if not handle.active:
            return
        handle.fired = True
        try:
            handle.callback()
        except Exception as e:
            logger.error(f"Timer callback failed: {e}", exc_info=True)

    def shutdown(self):
        """Cancel every outstanding timer."""
        with self._lock:
            handles = list(self._handles)
            self._handles.clear()
        for handle in handles:
            handle.cancel()
        if handles:
            logger.info(f"Cancelled {len(handles)} outstanding timers")
