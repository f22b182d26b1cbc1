"""Leader election contestant.

Each contestant registers an ephemeral sequential node under the election
namespace. The contestant owning the smallest sequence is the leader; every
other contestant watches only the node immediately before its own, so a
departure wakes exactly one waiter instead of the whole group.

Leaders hold the role for a hold interval, then delete their node and
register again at the back of the queue. The rotation continues until the
contestant is stopped.

State machine:
    UNREGISTERED -> REGISTERED -> LEADER -> RELINQUISHING -> REGISTERED ...
    any state -> TERMINATED (stop or session loss)
    UNREGISTERED -> FAILED (could not connect)

Example:
    contestant = Contestant("contestant-0", config, client, scheduler)
    await contestant.start()

    if await contestant.wait_for_leadership(timeout=30):
        ...

    await contestant.stop()
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from collections.abc import Awaitable, Callable
from enum import Enum

from succession.config import ContestConfig
from succession.contest.scheduler import SchedulerClosedError, TaskScheduler
from succession.coordination.base import (
    CoordinationClient,
    CreateMode,
    NodeEvent,
    NodeWatch,
    SessionState,
    join_path,
    sequence_of,
)
from succession.coordination.errors import (
    CoordinationError,
    NodeExistsError,
    NoNodeError,
    ServiceConnectionError,
)
from succession.observability.logging import LogContext

logger = logging.getLogger(__name__)

HoldInterval = Callable[[], float]

SEQUENCE_HISTORY = 32


class ContestantState(str, Enum):
    """Contestant lifecycle states."""

    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    LEADER = "leader"
    RELINQUISHING = "relinquishing"
    TERMINATED = "terminated"
    FAILED = "failed"


def random_hold_interval(
    low: float, high: float, rng: random.Random | None = None
) -> HoldInterval:
    """Return a hold interval source drawing uniformly from [low, high]."""
    source = rng or random.Random()

    def draw() -> float:
        return source.uniform(low, high)

    return draw


def fixed_hold_interval(seconds: float) -> HoldInterval:
    """Return a hold interval source that always yields ``seconds``."""
    return lambda: seconds


class Contestant:
    """One participant in the leader election.

    The contestant's state is only written by its own tasks and watch
    callbacks. Every leadership decision re-reads the children of the
    election namespace, so racing callbacks converge on the same answer.

    Args:
        name: Identity used in logs
        config: Election configuration
        client: Unconnected coordination session owned by this contestant
        scheduler: Shared scheduler for deferred work
        hold_interval: Source of leadership hold durations (seconds)
    """

    def __init__(
        self,
        name: str,
        config: ContestConfig,
        client: CoordinationClient,
        scheduler: TaskScheduler,
        hold_interval: HoldInterval | None = None,
    ):
        self.name = name
        self.config = config
        self.client = client
        self.scheduler = scheduler
        self.hold_interval = hold_interval or random_hold_interval(
            config.hold_min, config.hold_max
        )

        self._state = ContestantState.UNREGISTERED
        self._node_path: str | None = None
        self._is_leader = False
        # Bumped on every registration; callbacks carrying an older value are stale
        self._generation = 0
        self._suspended = False
        self._closed = False
        self._relinquish_task: asyncio.Task[None] | None = None
        self._on_elected: list[asyncio.Future[bool]] = []

        self.terms = 0
        # Most recent registrations only; the rotation never ends
        self.sequences: deque[int] = deque(maxlen=SEQUENCE_HISTORY)

    def __repr__(self) -> str:
        return f"Contestant({self.name!r}, state={self._state.value}, node={self._node_path!r})"

    @property
    def state(self) -> ContestantState:
        return self._state

    @property
    def is_leader(self) -> bool:
        return self._is_leader

    @property
    def node_path(self) -> str | None:
        return self._node_path

    @property
    def sequence(self) -> int | None:
        return sequence_of(self._node_path) if self._node_path else None

    @property
    def stopped(self) -> bool:
        return self._state in (ContestantState.TERMINATED, ContestantState.FAILED)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Connect, bootstrap the election namespace and join the contest.

        Raises:
            ServiceConnectionError: If the session cannot be established
            CoordinationError: If the election namespace cannot be created
        """
        with LogContext(self.name):
            self.client.add_session_listener(self._on_session_state)
            try:
                await self.client.connect()
            except CoordinationError as e:
                self._state = ContestantState.FAILED
                logger.error(f"Failed to connect to coordination service: {e}")
                if isinstance(e, ServiceConnectionError):
                    raise
                raise ServiceConnectionError(f"Failed to connect: {e}") from e

            if self._closed:
                # Stopped while connecting
                await self._close_quietly()
                return

            try:
                await self._ensure_namespace()
            except CoordinationError as e:
                if self._closed:
                    return
                self._state = ContestantState.FAILED
                logger.error(
                    f"Failed to create election namespace {self.config.parent_path}: {e}"
                )
                raise

            await self.contest()

    async def stop(self) -> None:
        """Leave the contest and close the session.

        Safe to call while a leadership check or relinquish is in flight;
        callbacks that arrive afterwards are ignored.
        """
        with LogContext(self.name):
            if self._closed:
                return
            self._closed = True

            was_leader = self._is_leader
            self._state = ContestantState.TERMINATED
            self._is_leader = False
            self._node_path = None
            self._generation += 1
            self._cancel_relinquish()
            self._resolve_waiters(False)

            await self._close_quietly()
            logger.info(f"Stopped (was leader: {was_leader}, terms served: {self.terms})")

    async def _close_quietly(self) -> None:
        try:
            await self.client.close()
        except CoordinationError as e:
            logger.error(f"Error closing coordination session: {e}")

    async def _ensure_namespace(self) -> None:
        """Create the election namespace and its ancestors, tolerating races."""
        parts = self.config.parent_path.strip("/").split("/")
        for depth in range(1, len(parts) + 1):
            path = "/" + "/".join(parts[:depth])
            try:
                await self.client.create(path, mode=CreateMode.PERSISTENT)
                logger.info(f"Created election namespace node {path}")
            except NodeExistsError:
                logger.debug(f"Namespace node {path} already exists")

    # -------------------------------------------------------------------------
    # Election
    # -------------------------------------------------------------------------

    async def contest(self) -> None:
        """Register a fresh election node and check for leadership."""
        if self.stopped:
            return

        try:
            path = await self.client.create(
                self.config.node_path, mode=CreateMode.EPHEMERAL_SEQUENTIAL
            )
        except CoordinationError as e:
            logger.warning(f"Failed to register election node: {e}; retrying")
            self._retry(self.contest)
            return

        if self.stopped:
            return

        self._generation += 1
        self._node_path = path
        self._is_leader = False
        self._state = ContestantState.REGISTERED
        sequence = sequence_of(path)
        if sequence is not None:
            self.sequences.append(sequence)
        logger.info(f"Registered election node {path}")

        await self.check_leader()

    async def check_leader(self) -> None:
        """Decide leadership from a fresh listing of the election namespace.

        The smallest sequence leads. Otherwise a single watch is placed on the
        immediate predecessor; if that node is already gone the check runs
        again straight away.
        """
        while not self.stopped and self._node_path is not None:
            if self._state == ContestantState.RELINQUISHING:
                return
            generation = self._generation
            node_path = self._node_path

            try:
                children = await self.client.get_children(self.config.parent_path)
            except CoordinationError as e:
                logger.warning(f"Leadership check failed to list contenders: {e}; retrying")
                self._retry_check(generation)
                return

            if generation != self._generation or self.stopped:
                return

            contenders = self._contenders(children)
            own = node_path.rsplit("/", 1)[-1]

            if own not in contenders:
                await self._recover_missing_node(generation, node_path)
                return

            index = contenders.index(own)
            if index == 0:
                self._elect(generation)
                return

            predecessor = join_path(self.config.parent_path, contenders[index - 1])
            try:
                present = await self.client.exists(
                    predecessor, watch=self._predecessor_watch(generation, predecessor)
                )
            except CoordinationError as e:
                logger.warning(f"Failed to watch predecessor {predecessor}: {e}; retrying")
                self._retry_check(generation)
                return

            if generation != self._generation or self.stopped:
                return

            if present:
                self._is_leader = False
                self._state = ContestantState.REGISTERED
                logger.debug(f"Waiting behind {predecessor} (position {index})")
                return

            logger.debug(f"Predecessor {predecessor} left before it could be watched")

    async def relinquish(self) -> None:
        """Give up leadership and rejoin at the back of the queue."""
        with LogContext(self.name):
            if self.stopped or not self._is_leader or self._node_path is None:
                return

            node_path = self._node_path
            self._state = ContestantState.RELINQUISHING
            # Cleared before the node goes so no successor overlaps this term
            self._is_leader = False
            # Checks and retries still in flight for this node are now stale
            self._generation += 1
            self._node_path = None
            generation = self._generation
            logger.info(f"Relinquishing leadership of {node_path}")

            try:
                await self.client.delete(node_path)
            except NoNodeError:
                logger.debug(f"Election node {node_path} was already gone")
            except CoordinationError as e:
                logger.warning(f"Failed to delete {node_path}: {e}; re-checking leadership")
                if generation == self._generation and not self.stopped:
                    self._node_path = node_path
                    self._state = ContestantState.REGISTERED
                    self._retry_check(generation)
                return

            if generation != self._generation or self.stopped:
                return

            await self.contest()

    async def wait_for_leadership(self, timeout: float | None = None) -> bool:
        """Wait until this contestant next becomes leader.

        Args:
            timeout: Maximum time to wait in seconds (None = wait forever)

        Returns:
            True if leadership was acquired, False on timeout or stop
        """
        if self._is_leader:
            return True
        if self.stopped:
            return False

        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._on_elected.append(future)

        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            return False
        finally:
            if future in self._on_elected:
                self._on_elected.remove(future)

    def _contenders(self, children: list[str]) -> list[str]:
        prefix = self.config.node_prefix
        named = [
            child
            for child in children
            if child.startswith(prefix) and sequence_of(child) is not None
        ]
        return sorted(named, key=lambda child: sequence_of(child) or 0)

    def _elect(self, generation: int) -> None:
        if self._is_leader or self._state == ContestantState.RELINQUISHING:
            return

        self._is_leader = True
        self._state = ContestantState.LEADER
        self.terms += 1
        hold = self.hold_interval()
        logger.info(f"Elected leader with {self._node_path}; holding for {hold:.2f}s")

        self._resolve_waiters(True)
        self._cancel_relinquish()
        try:
            self._relinquish_task = self.scheduler.schedule(
                hold,
                lambda: self._relinquish_if_current(generation),
                name=f"{self.name}-relinquish",
            )
        except SchedulerClosedError:
            logger.debug("Scheduler closed; leadership will end with the session")

    async def _relinquish_if_current(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._relinquish_task = None
        await self.relinquish()

    async def _recover_missing_node(self, generation: int, node_path: str) -> None:
        """Handle an own node absent from a fresh listing."""
        try:
            still_there = await self.client.exists(node_path)
        except CoordinationError as e:
            logger.warning(f"Could not confirm election node {node_path}: {e}; retrying")
            self._retry_check(generation)
            return

        if generation != self._generation or self.stopped:
            return

        if still_there:
            logger.warning(f"Election node {node_path} missing from listing; re-checking")
            self._retry_check(generation)
            return

        logger.warning(f"Election node {node_path} disappeared; registering again")
        self._is_leader = False
        self._node_path = None
        self._state = ContestantState.UNREGISTERED
        await self.contest()

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def _predecessor_watch(self, generation: int, predecessor: str) -> NodeWatch:
        def on_event(event: NodeEvent) -> None:
            if self.stopped or generation != self._generation:
                return
            with LogContext(self.name):
                logger.debug(f"Predecessor {predecessor} {event.kind.value}; re-checking")
            self._spawn(self.check_leader, f"{self.name}-check")

        return on_event

    def _on_session_state(self, state: SessionState) -> None:
        if self.stopped:
            return

        with LogContext(self.name):
            if state == SessionState.LOST:
                logger.warning("Coordination session lost; leaving the contest")
                self._state = ContestantState.TERMINATED
                self._is_leader = False
                self._node_path = None
                self._generation += 1
                self._cancel_relinquish()
                self._resolve_waiters(False)
            elif state == SessionState.SUSPENDED:
                self._suspended = True
                if self._is_leader:
                    logger.warning("Session suspended; leadership is no longer certain")
                    self._is_leader = False
                    self._state = ContestantState.REGISTERED
                    self._cancel_relinquish()
            elif state == SessionState.CONNECTED and self._suspended:
                self._suspended = False
                logger.info("Session reconnected; re-checking leadership")
                self._spawn(self.check_leader, f"{self.name}-check")

    # -------------------------------------------------------------------------
    # Scheduling helpers
    # -------------------------------------------------------------------------

    def _spawn(
        self,
        action: Callable[[], Awaitable[None]],
        name: str,
        delay: float = 0.0,
    ) -> None:
        if self.stopped:
            return

        async def run() -> None:
            with LogContext(self.name):
                await action()

        try:
            self.scheduler.schedule(delay, run, name=name)
        except SchedulerClosedError:
            logger.debug(f"Scheduler closed; dropping {name}")

    def _retry(self, action: Callable[[], Awaitable[None]]) -> None:
        self._spawn(action, f"{self.name}-retry", delay=self.config.retry_delay)

    def _retry_check(self, generation: int) -> None:
        async def recheck() -> None:
            if generation == self._generation:
                await self.check_leader()

        self._retry(recheck)

    def _cancel_relinquish(self) -> None:
        task = self._relinquish_task
        self._relinquish_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _resolve_waiters(self, elected: bool) -> None:
        for future in self._on_elected:
            if not future.done():
                future.set_result(elected)
        self._on_elected.clear()
