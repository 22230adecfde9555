"""Single background timeline running fixed-rate jobs for every session logger."""

from __future__ import annotations

import atexit
import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class ScheduledTask:
    """Handle for one fixed-rate job."""

    def __init__(
        self,
        scheduler: "FlushScheduler",
        name: str,
        callback: Callback,
        period: float,
        run_on_shutdown: bool,
    ):
        self.name = name
        self.callback = callback
        self.period = period
        self.run_on_shutdown = run_on_shutdown
        self._scheduler = scheduler
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._scheduler._cancel(self)

    def __repr__(self) -> str:
        return f"ScheduledTask(name={self.name!r}, period={self.period}, cancelled={self._cancelled})"


class FlushScheduler:
    """One daemon thread, a heap of jobs ordered by next run time.

    Runs are fixed-rate: each next run is the previous scheduled time plus
    the period, so a late run fires immediately. Jobs run one at a time,
    and a job that raises is logged and stays scheduled.
    """

    def __init__(self, name: str = "packet-log-flush"):
        self.name = name
        self._cond = threading.Condition()
        self._heap: List[Tuple[float, int, ScheduledTask]] = []
        self._tasks: List[ScheduledTask] = []
        self._sequence = itertools.count()
        self._thread: Optional[threading.Thread] = None
        self._shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    @property
    def task_count(self) -> int:
        with self._cond:
            return len(self._tasks)

    def schedule_at_fixed_rate(
        self,
        callback: Callback,
        initial_delay: float,
        period: float,
        name: Optional[str] = None,
        run_on_shutdown: bool = False,
    ) -> ScheduledTask:
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        if initial_delay < 0:
            raise ValueError(f"initial_delay must not be negative, got {initial_delay}")

        task = ScheduledTask(
            self,
            name or getattr(callback, "__qualname__", "task"),
            callback,
            period,
            run_on_shutdown,
        )
        with self._cond:
            if self._shutdown:
                raise RuntimeError(f"Scheduler {self.name} is shut down")
            self._tasks.append(task)
            heapq.heappush(self._heap, (time.monotonic() + initial_delay, next(self._sequence), task))
            self._ensure_thread()
            self._cond.notify_all()

        logger.debug("Scheduled %s every %.3fs on %s", task.name, period, self.name)
        return task

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop the timeline, then run each live ``run_on_shutdown`` job once more."""
        with self._cond:
            if self._shutdown:
                return
            self._shutdown = True
            final = [task for task in self._tasks if task.run_on_shutdown and not task.cancelled]
            for task in self._tasks:
                task._cancelled = True
            self._tasks.clear()
            self._heap.clear()
            self._cond.notify_all()
            thread = self._thread

        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

        for task in final:
            self._run_task(task)
        logger.debug("Scheduler %s shut down (%d final runs)", self.name, len(final))

    def _cancel(self, task: ScheduledTask) -> None:
        with self._cond:
            if task.cancelled:
                return
            task._cancelled = True
            if task in self._tasks:
                self._tasks.remove(task)
            self._cond.notify_all()

    def _ensure_thread(self) -> None:
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()

    def _run(self) -> None:
        while True:
            with self._cond:
                task = self._next_due()
                if task is None:
                    return
            self._run_task(task)

    def _next_due(self) -> Optional[ScheduledTask]:
        """Block until a job is due; None once shut down. Caller holds the lock."""
        while not self._shutdown:
            if not self._heap:
                self._cond.wait()
                continue

            due_at, _, task = self._heap[0]
            if task.cancelled:
                heapq.heappop(self._heap)
                continue

            delay = due_at - time.monotonic()
            if delay > 0:
                self._cond.wait(delay)
                continue

            heapq.heapreplace(self._heap, (due_at + task.period, next(self._sequence), task))
            return task
        return None

    @staticmethod
    def _run_task(task: ScheduledTask) -> None:
        try:
            task.callback()
        except Exception:
            logger.exception("Scheduled task %s failed", task.name)


_shared_lock = threading.Lock()
_shared_scheduler: Optional[FlushScheduler] = None
_atexit_registered = False


def get_shared_scheduler() -> FlushScheduler:
    """Return the process-wide scheduler, creating it on first use."""
    global _shared_scheduler, _atexit_registered
    with _shared_lock:
        if _shared_scheduler is None or _shared_scheduler.is_shutdown:
            _shared_scheduler = FlushScheduler()
        if not _atexit_registered:
            atexit.register(shutdown_shared_scheduler)
            _atexit_registered = True
        return _shared_scheduler


def shutdown_shared_scheduler(timeout: Optional[float] = 10.0) -> None:
    """Stop the process-wide scheduler and give every logger a final flush."""
    global _shared_scheduler
    with _shared_lock:
        scheduler = _shared_scheduler
        _shared_scheduler = None
    if scheduler is not None:
        scheduler.shutdown(wait=True, timeout=timeout)


__all__ = [
    "FlushScheduler",
    "ScheduledTask",
    "get_shared_scheduler",
    "shutdown_shared_scheduler",
]
