"""Coordination client interface.

Defines the abstract interface every coordination backend implements, along
with the typed watch events it delivers. Watches are one-shot: a callback is
invoked at most once, on the client's event loop, and must be re-registered
to keep observing.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from succession.coordination.errors import OperationTimeoutError

T = TypeVar("T")

# Width of the counter the service appends to sequential node names
SEQUENCE_WIDTH = 10


class CreateMode(str, Enum):
    """Node creation modes."""

    PERSISTENT = "persistent"
    EPHEMERAL = "ephemeral"
    PERSISTENT_SEQUENTIAL = "persistent_sequential"
    EPHEMERAL_SEQUENTIAL = "ephemeral_sequential"

    @property
    def ephemeral(self) -> bool:
        return self in (CreateMode.EPHEMERAL, CreateMode.EPHEMERAL_SEQUENTIAL)

    @property
    def sequential(self) -> bool:
        return self in (CreateMode.PERSISTENT_SEQUENTIAL, CreateMode.EPHEMERAL_SEQUENTIAL)


class NodeEventKind(str, Enum):
    """Change kinds delivered to node watches."""

    CREATED = "created"
    DELETED = "deleted"
    CHANGED = "changed"


class SessionState(str, Enum):
    """Session states reported to session listeners."""

    CONNECTED = "connected"
    SUSPENDED = "suspended"
    LOST = "lost"


@dataclass(frozen=True)
class NodeEvent:
    """A node watch fired for ``path``."""

    path: str
    kind: NodeEventKind


@dataclass(frozen=True)
class ChildrenEvent:
    """A children watch fired because the children of ``path`` changed."""

    path: str


NodeWatch = Callable[[NodeEvent], None]
ChildrenWatch = Callable[[ChildrenEvent], None]
SessionListener = Callable[[SessionState], None]


def sequence_of(name: str) -> int | None:
    """Return the sequence number suffixed to a node name, if any."""
    suffix = name.rsplit("/", 1)[-1][-SEQUENCE_WIDTH:]
    if len(suffix) != SEQUENCE_WIDTH or not suffix.isdigit():
        return None
    return int(suffix)


def join_path(parent: str, child: str) -> str:
    """Join a parent path and a child name."""
    return f"{parent.rstrip('/')}/{child}"


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: float | None,
    operation: str,
    path: str | None = None,
) -> T:
    """Await a remote call, raising OperationTimeoutError past ``timeout``."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as e:
        raise OperationTimeoutError(operation, timeout or 0.0, path=path) from e


class CoordinationClient(ABC):
    """One session against a hierarchical coordination service."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the session.

        Raises:
            ServiceConnectionError: If the service cannot be reached
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the session; the service removes its ephemeral nodes.

        Raises:
            SessionTeardownError: If the session could not be closed cleanly
        """
        ...

    @abstractmethod
    async def create(
        self,
        path: str,
        data: bytes = b"",
        mode: CreateMode = CreateMode.PERSISTENT,
    ) -> str:
        """Create a node and return its actual path.

        Sequential modes append a zero padded counter to ``path``.

        Raises:
            NodeExistsError: If the node already exists
            NoNodeError: If the parent does not exist
        """
        ...

    @abstractmethod
    async def delete(self, path: str, version: int = -1) -> None:
        """Delete a node; ``version=-1`` matches any version.

        Raises:
            NoNodeError: If the node does not exist
            BadVersionError: If the node's version differs from ``version``
        """
        ...

    @abstractmethod
    async def get_children(self, path: str, watch: ChildrenWatch | None = None) -> list[str]:
        """List the child names of ``path`` in sorted order.

        Args:
            path: Parent node path
            watch: Optional one-shot callback for the next change to the children

        Raises:
            NoNodeError: If the parent does not exist
        """
        ...

    @abstractmethod
    async def exists(self, path: str, watch: NodeWatch | None = None) -> bool:
        """Check whether a node exists.

        The watch is registered whether or not the node currently exists.
        """
        ...

    @abstractmethod
    async def get_data(self, path: str) -> bytes:
        """Fetch the data stored at ``path``.

        Raises:
            NoNodeError: If the node does not exist
        """
        ...

    @abstractmethod
    def add_session_listener(self, listener: SessionListener) -> None:
        """Register a callback for session state transitions."""
        ...
