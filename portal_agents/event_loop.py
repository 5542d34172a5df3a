"""
Single-threaded event loop that owns all orchestrator state.

Other threads hand work to the loop with `post`; planner calls run on a
worker pool and their results are posted back before any state is touched.
"""

from __future__ import annotations

import heapq
import itertools
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Tuple

_STOP = object()


class EventLoop:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._inbox: queue.Queue[Any] = queue.Queue()
        self._timers: List[Tuple[float, int, Callable[[], None]]] = []
        self._timers_lock = threading.Lock()
        self._seq = itertools.count()

    def post(self, fn: Callable[[], None]) -> None:
        """Thread-safe: schedule fn to run on the loop thread."""
        self._inbox.put(fn)

    def post_delayed(self, fn: Callable[[], None], delay: float) -> None:
        with self._timers_lock:
            heapq.heappush(self._timers, (self._clock() + max(0.0, delay), next(self._seq), fn))

    def stop(self) -> None:
        self._inbox.put(_STOP)

    def _pop_due(self, now: float) -> Optional[Callable[[], None]]:
        with self._timers_lock:
            if self._timers and self._timers[0][0] <= now:
                return heapq.heappop(self._timers)[2]
            return None

    def _next_due(self) -> Optional[float]:
        with self._timers_lock:
            return self._timers[0][0] if self._timers else None

    def run_until(self, done: Callable[[], bool], timeout: Optional[float] = None) -> bool:
        """
        Runs posted callbacks and due timers until done() is true.
        Returns False on timeout or stop() before done() became true.
        """
        deadline = None if timeout is None else self._clock() + timeout
        while not done():
            now = self._clock()
            due = self._pop_due(now)
            if due is not None:
                due()
                continue

            wait: Optional[float] = None
            next_due = self._next_due()
            if next_due is not None:
                wait = max(0.0, next_due - now)
            if deadline is not None:
                remaining = deadline - now
                if remaining <= 0:
                    return False
                wait = remaining if wait is None else min(wait, remaining)

            try:
                item = self._inbox.get(timeout=wait)
            except queue.Empty:
                continue
            if item is _STOP:
                return done()
            item()
        return True


class BackgroundDispatcher:
    """Runs blocking work off the loop thread and posts the result back onto it."""

    def __init__(self, loop: EventLoop, max_workers: int = 2) -> None:
        self._loop = loop
        self.max_workers = max_workers
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="portal-planner")

    def submit(self, work: Callable[[], Any], on_done: Callable[[Any], None]) -> None:
        def run() -> None:
            try:
                result = work()
            except Exception as exc:  # noqa: BLE001
                # Surface the worker exception on the loop thread.
                def reraise(error: Exception = exc) -> None:
                    raise error

                self._loop.post(reraise)
                return
            self._loop.post(lambda: on_done(result))

        self._pool.submit(run)

    def shutdown(self, wait: bool = False) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=True)
