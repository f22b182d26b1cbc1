"""Bounded task scheduler shared by a contestant group.

Runs coroutines as asyncio tasks gated by a fixed number of slots. Delayed
tasks sleep outside their slot and only claim one when they become due, so
a contestant's deferred relinquish never waits on its own running task.

Example:
    scheduler = TaskScheduler(max_workers=4)
    scheduler.submit(contestant.start)
    scheduler.schedule(7.5, contestant.relinquish)

    await scheduler.shutdown()  # cancels whatever is still pending
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

TaskFactory = Callable[[], Awaitable[T]]


class SchedulerClosedError(RuntimeError):
    """Raised when submitting to a scheduler that has been shut down."""


class TaskScheduler:
    """Semaphore-bounded pool of asyncio tasks.

    Args:
        max_workers: Number of tasks allowed to run at once
        name: Prefix for task names
    """

    def __init__(self, max_workers: int, name: str = "scheduler"):
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers
        self.name = name
        self._slots = asyncio.Semaphore(max_workers)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False
        self._counter = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of submitted tasks that have not finished."""
        return len(self._tasks)

    def submit(self, factory: TaskFactory[T], name: str | None = None) -> asyncio.Task[T]:
        """Run ``factory()`` as soon as a slot is free."""
        return self.schedule(0.0, factory, name=name)

    def schedule(
        self,
        delay: float,
        factory: TaskFactory[T],
        name: str | None = None,
    ) -> asyncio.Task[T]:
        """Run ``factory()`` after ``delay`` seconds, once a slot is free.

        Raises:
            SchedulerClosedError: If the scheduler has been shut down
        """
        if self._closed:
            raise SchedulerClosedError(f"Scheduler '{self.name}' is shut down")

        self._counter += 1
        task = asyncio.create_task(
            self._run(delay, factory),
            name=name or f"{self.name}-{self._counter}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def shutdown(self, cancel: bool = True) -> None:
        """Stop accepting work and wait for outstanding tasks.

        Args:
            cancel: Cancel outstanding tasks instead of draining them
        """
        self._closed = True
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]

        if cancel:
            for task in tasks:
                task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.debug(f"Scheduler '{self.name}' shut down ({len(tasks)} outstanding tasks)")

    async def _run(self, delay: float, factory: TaskFactory[T]) -> T:
        if delay > 0:
            await asyncio.sleep(delay)
        async with self._slots:
            return await factory()

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug(f"Task {task.get_name()} finished with {type(exc).__name__}: {exc}")
