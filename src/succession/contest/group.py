"""Contestant group lifecycle.

Owns a fixed number of contestants and the scheduler they share. Starting
the group is fire-and-forget: each contestant's start runs as a scheduler
task, and a contestant that cannot connect is recorded in ``failures``
without affecting the others.

Example:
    group = ContestantGroup(config, size=3)
    await group.start()
    ...
    await group.stop()

    # Or as context manager
    async with ContestantGroup(config, size=3) as group:
        await asyncio.sleep(60)
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from types import TracebackType

from succession.config import ContestConfig
from succession.contest.contestant import Contestant, HoldInterval
from succession.contest.scheduler import TaskScheduler
from succession.coordination.factory import ClientFactory, create_client

logger = logging.getLogger(__name__)


class ContestantGroup:
    """A group of contestants rotating leadership among themselves.

    The scheduler gets one slot per contestant plus ``config.pool_slack``,
    so a contestant's deferred relinquish can always claim a slot while
    other contestants are busy.

    Args:
        config: Election configuration shared by all contestants
        size: Number of contestants
        client_factory: Builds one unconnected session per contestant
        hold_interval: Leadership hold source shared by all contestants
        max_workers: Scheduler slots (default size + pool_slack)
    """

    def __init__(
        self,
        config: ContestConfig,
        size: int,
        client_factory: ClientFactory = create_client,
        hold_interval: HoldInterval | None = None,
        max_workers: int | None = None,
    ):
        if size < 1:
            raise ValueError(f"A contestant group needs at least one member, got {size}")

        self.config = config
        self.size = size
        self.client_factory = client_factory
        self.hold_interval = hold_interval
        self.max_workers = max_workers if max_workers is not None else size + config.pool_slack

        self.contestants: list[Contestant] = []
        self.failures: dict[str, BaseException] = {}
        self._scheduler: TaskScheduler | None = None
        self._start_tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return self._scheduler is not None and not self._scheduler.closed

    @property
    def scheduler(self) -> TaskScheduler | None:
        return self._scheduler

    @property
    def leaders(self) -> list[Contestant]:
        """Contestants currently holding the leadership flag."""
        return [contestant for contestant in self.contestants if contestant.is_leader]

    async def start(self) -> None:
        """Create the scheduler and launch every contestant.

        Returns without waiting for the contestants to register.

        Raises:
            ValueError: If the scheduler would have fewer slots than contestants
            RuntimeError: If the group was already started
        """
        if self._scheduler is not None:
            raise RuntimeError("Contestant group already started")
        if self.max_workers < self.size:
            raise ValueError(
                f"Scheduler needs at least {self.size} slots, configured {self.max_workers}"
            )

        self._scheduler = TaskScheduler(max_workers=self.max_workers, name="contest")

        for index in range(self.size):
            contestant = Contestant(
                name=f"contestant-{index}",
                config=self.config,
                client=self.client_factory(self.config),
                scheduler=self._scheduler,
                hold_interval=self.hold_interval,
            )
            self.contestants.append(contestant)
            task = self._scheduler.submit(contestant.start, name=f"{contestant.name}-start")
            task.add_done_callback(partial(self._on_started, contestant))
            self._start_tasks.append(task)

        logger.info(
            f"Started {self.size} contestants on {self.config.parent_path} "
            f"({self.max_workers} scheduler slots)"
        )

    async def wait_started(self) -> None:
        """Wait until every contestant's start has finished or failed."""
        if self._start_tasks:
            await asyncio.gather(*self._start_tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Stop every contestant, then shut the scheduler down."""
        if self._scheduler is None:
            return

        await asyncio.gather(*(contestant.stop() for contestant in self.contestants))
        await self._scheduler.shutdown(cancel=True)
        logger.info(f"Stopped {len(self.contestants)} contestants")

    def _on_started(self, contestant: Contestant, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failures[contestant.name] = exc
            logger.error(f"Contestant {contestant.name} failed to start: {exc}")

    async def __aenter__(self) -> ContestantGroup:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
