"""Timed callback scheduling on a dedicated background thread."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class ScheduledHandle:
    """A pending callback. ``done`` is set once it ran, ``cancelled`` if it never will."""

    due_ms: float
    callback: Callable[[], None]
    label: str = ""
    cancelled: bool = False
    done: bool = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)


class Scheduler(Protocol):
    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], None], *, label: str = "") -> ScheduledHandle: ...

    def cancel(self, handle: ScheduledHandle) -> bool: ...


@dataclass(order=True, slots=True)
class _Entry:
    due_ms: float
    sequence: int
    handle: ScheduledHandle = field(compare=False)


class ThreadScheduler:
    """Runs callbacks at monotonic offsets on one daemon thread.

    Callbacks are serialized: a slow callback delays the ones behind it but
    never runs concurrently with them. Exceptions raised by a callback are
    logged and do not stop the loop.
    """

    def __init__(self, name: str = "PlaybackScheduler") -> None:
        self.name = name
        self._heap: list[_Entry] = []
        self._counter = itertools.count()
        self._condition = threading.Condition()
        self._thread: threading.Thread | None = None
        self._closed = False

    def now_ms(self) -> float:
        return time.monotonic() * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None], *, label: str = "") -> ScheduledHandle:
        handle = ScheduledHandle(due_ms=self.now_ms() + max(0.0, delay_ms), callback=callback, label=label)
        with self._condition:
            if self._closed:
                raise RuntimeError(f"Scheduler '{self.name}' has been shut down.")
            heapq.heappush(self._heap, _Entry(handle.due_ms, next(self._counter), handle))
            self._ensure_thread()
            self._condition.notify()
        return handle

    def cancel(self, handle: ScheduledHandle) -> bool:
        with self._condition:
            if not handle.pending:
                return False
            handle.cancelled = True
            self._condition.notify()
            return True

    def cancel_all(self) -> int:
        """Cancel every pending callback and return how many were cancelled."""
        with self._condition:
            cancelled = 0
            for entry in self._heap:
                if entry.handle.pending:
                    entry.handle.cancelled = True
                    cancelled += 1
            self._heap.clear()
            self._condition.notify()
            return cancelled

    def pending_count(self) -> int:
        with self._condition:
            return sum(1 for entry in self._heap if entry.handle.pending)

    def shutdown(self, timeout: float | None = 1.0) -> None:
        with self._condition:
            self._closed = True
            for entry in self._heap:
                entry.handle.cancelled = True
            self._heap.clear()
            self._condition.notify_all()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _ensure_thread(self) -> None:
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()

    def _next_due(self) -> ScheduledHandle | None:
        """Pop the next runnable handle, waiting until it is due. Called with the lock held."""
        while not self._closed:
            while self._heap and not self._heap[0].handle.pending:
                heapq.heappop(self._heap)
            if not self._heap:
                self._condition.wait()
                continue
            wait_ms = self._heap[0].due_ms - self.now_ms()
            if wait_ms > 0:
                self._condition.wait(wait_ms / 1000)
                continue
            return heapq.heappop(self._heap).handle
        return None

    def _run(self) -> None:
        while True:
            with self._condition:
                handle = self._next_due()
                if handle is None:
                    return
            try:
                handle.callback()
            except Exception:
                logger.exception(f"Scheduled callback '{handle.label}' failed")
            finally:
                handle.done = True
