"""Cancelable scheduled tasks and the single-owner timer slot built on them.

Every timer in the pipeline (selection debounce, auto-dismiss, leave grace)
goes through ``TimerSlot.start``, which always cancels the slot's previous
task first, so a timer kind can never have two live instances.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class ScheduledTask:
    """Handle returned by a scheduler; ``cancel()`` is idempotent."""

    __slots__ = ("_cancel", "cancelled", "fired")

    def __init__(self, cancel: Optional[Callback] = None):
        self._cancel = cancel
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        if self.cancelled or self.fired:
            return
        self.cancelled = True
        if self._cancel is not None:
            self._cancel()

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)


class Scheduler(Protocol):
    def schedule(self, delay_ms: float, callback: Callback) -> ScheduledTask:
        ...


class VirtualScheduler:
    """Manual clock: tasks run only when ``advance`` moves time past them."""

    def __init__(self, start_ms: float = 0.0):
        self.now_ms = start_ms
        self._queue: List[Tuple[float, int, ScheduledTask, Callback]] = []
        self._seq = itertools.count()

    def schedule(self, delay_ms: float, callback: Callback) -> ScheduledTask:
        task = ScheduledTask()
        heapq.heappush(self._queue, (self.now_ms + max(0.0, delay_ms), next(self._seq), task, callback))
        return task

    def advance(self, delta_ms: float) -> None:
        self.advance_to(self.now_ms + delta_ms)

    def advance_to(self, target_ms: float) -> None:
        while self._queue and self._queue[0][0] <= target_ms:
            due, _, task, callback = heapq.heappop(self._queue)
            if not task.pending:
                continue
            self.now_ms = due
            task.fired = True
            callback()
        self.now_ms = max(self.now_ms, target_ms)

    def run_until_idle(self) -> None:
        while any(task.pending for _, _, task, _ in self._queue):
            self.advance_to(min(due for due, _, task, _ in self._queue if task.pending))

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, task, _ in self._queue if task.pending)


class AsyncioScheduler:
    """Real timers on an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()

    def schedule(self, delay_ms: float, callback: Callback) -> ScheduledTask:
        task: ScheduledTask

        def run() -> None:
            if not task.pending:
                return
            task.fired = True
            callback()

        handle = self.loop.call_later(max(0.0, delay_ms) / 1000.0, run)
        task = ScheduledTask(cancel=handle.cancel)
        return task


class TimerSlot:
    """Owns at most one pending task of one timer kind."""

    def __init__(self, scheduler: Scheduler, name: str):
        self.scheduler = scheduler
        self.name = name
        self._task: Optional[ScheduledTask] = None

    @property
    def active(self) -> bool:
        return self._task is not None and self._task.pending

    def start(self, delay_ms: float, callback: Callback) -> None:
        self.cancel()

        def fire() -> None:
            self._task = None
            try:
                callback()
            except Exception:
                logger.exception("Timer %s callback failed", self.name)

        self._task = self.scheduler.schedule(delay_ms, fire)

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
