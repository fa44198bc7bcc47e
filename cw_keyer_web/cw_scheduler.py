"""
Scheduler - delayed callbacks with cancelable handles

All keyer timing goes through a scheduler so the same state machine can run
on the asyncio loop (AsyncioScheduler) or on a virtual clock that tests
fast-forward deterministically (ManualScheduler).

Both schedulers run callbacks one at a time on a single thread. Callbacks
never preempt each other, which is what makes the keyer's plain boolean
flags safe.
"""

import asyncio
import heapq
import itertools


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop"""

    def __init__(self, loop=None):
        self.loop = loop or asyncio.get_running_loop()

    def now(self):
        """Monotonic time in milliseconds"""
        return self.loop.time() * 1000.0

    def call_later(self, delay_ms, callback, *args):
        """
        Run callback(*args) after delay_ms

        Returns:
            asyncio.TimerHandle (supports cancel())
        """
        return self.loop.call_later(max(delay_ms, 0) / 1000.0, callback, *args)

    def call_soon(self, callback, *args):
        return self.loop.call_soon(callback, *args)


class ManualHandle:
    """Handle returned by ManualScheduler.call_later"""

    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    def cancelled(self):
        return self._cancelled


class ManualScheduler:
    """
    Virtual-clock scheduler

    Time only moves when advance() or run_until_idle() is called. Callbacks
    due at the same instant run in the order they were scheduled.
    """

    def __init__(self, start_ms=0.0):
        self._now = float(start_ms)
        self._queue = []
        self._counter = itertools.count()

    def now(self):
        return self._now

    def call_later(self, delay_ms, callback, *args):
        handle = ManualHandle(self._now + max(delay_ms, 0), callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def call_soon(self, callback, *args):
        return self.call_later(0, callback, *args)

    def pending(self):
        """Number of scheduled, non-cancelled callbacks"""
        return sum(1 for _, _, h in self._queue if not h.cancelled())

    def next_due(self):
        """Time of the next pending callback, or None"""
        self._drop_cancelled()
        return self._queue[0][0] if self._queue else None

    def advance(self, ms):
        """
        Move the clock forward by ms, running every callback that falls due

        Callbacks scheduled while advancing also run if they fall inside the
        window.
        """
        target = self._now + ms
        while True:
            self._drop_cancelled()
            if not self._queue or self._queue[0][0] > target:
                break
            when, _, handle = heapq.heappop(self._queue)
            self._now = when
            handle.callback(*handle.args)
        self._now = target

    def run_until_idle(self, limit_ms=60_000):
        """
        Run callbacks until nothing is pending or limit_ms of virtual time passes

        Returns:
            True if the queue drained, False if the limit was hit
        """
        deadline = self._now + limit_ms
        while True:
            due = self.next_due()
            if due is None:
                return True
            if due > deadline:
                self._now = deadline
                return False
            self.advance(due - self._now)

    def _drop_cancelled(self):
        while self._queue and self._queue[0][2].cancelled():
            heapq.heappop(self._queue)
