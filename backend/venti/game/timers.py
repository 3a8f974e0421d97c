from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Any, Callable, Protocol


log = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class TimerService(Protocol):
    def schedule(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class BackgroundTimers:
    """Fires timers from a single Socket.IO background task.

    Pending timers sit in a deadline heap; the task polls it every ``tick``
    seconds and exits once the heap is empty, so a cancelled timer costs a
    heap entry rather than a sleeping task. Cancellation can still race with
    firing, which is why the session re-checks the timer identity on fire.
    """

    COMPACT_THRESHOLD = 64

    def __init__(self, socketio, tick: float = 0.25, clock: Callable[[], float] = time.monotonic) -> None:
        self.socketio = socketio
        self.tick = tick
        self.clock = clock
        self._lock = threading.Lock()
        self._heap: list[tuple[float, int, TimerHandle, Callable[..., Any], tuple]] = []
        self._seq = itertools.count()
        self._running = False

    def schedule(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(delay)
        with self._lock:
            heapq.heappush(self._heap, (self.clock() + delay, next(self._seq), handle, callback, args))
            start = not self._running
            self._running = True

        if start:
            self.socketio.start_background_task(self._run)
        return handle

    def pending(self) -> int:
        with self._lock:
            return sum(1 for entry in self._heap if not entry[2].cancelled)

    def _take_due(self) -> tuple[list, bool]:
        now = self.clock()
        due = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                entry = heapq.heappop(self._heap)
                if not entry[2].cancelled:
                    due.append(entry)

            if len(self._heap) > self.COMPACT_THRESHOLD:
                live = [entry for entry in self._heap if not entry[2].cancelled]
                if len(live) * 2 < len(self._heap):
                    heapq.heapify(live)
                    self._heap = live

            if not self._heap:
                self._running = False
                return due, False
        return due, True

    def _run(self) -> None:
        while True:
            due, keep_running = self._take_due()
            for _, _, handle, callback, args in due:
                if handle.cancelled:
                    continue
                try:
                    callback(*args)
                except Exception:
                    log.exception("timer callback failed")
            if not keep_running:
                return
            self.socketio.sleep(self.tick)
