"""In-process coordination service.

Implements the node semantics the election relies on: persistent and
ephemeral nodes, per-parent sequence counters, one-shot node and children
watches delivered asynchronously on the event loop, and removal of a
session's ephemeral nodes when the session closes or expires.

Example:
    service = InMemoryCoordinationService()
    client = service.session()
    await client.connect()

    path = await client.create("/contest/contestant", mode=CreateMode.EPHEMERAL_SEQUENTIAL)
    # "/contest/contestant0000000000"
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from succession.coordination.base import (
    SEQUENCE_WIDTH,
    ChildrenEvent,
    ChildrenWatch,
    CoordinationClient,
    CreateMode,
    NodeEvent,
    NodeEventKind,
    NodeWatch,
    SessionListener,
    SessionState,
    with_timeout,
)
from succession.coordination.errors import (
    BadVersionError,
    CoordinationError,
    NodeExistsError,
    NoNodeError,
    ServiceConnectionError,
)

logger = logging.getLogger(__name__)


@dataclass
class _Node:
    data: bytes = b""
    version: int = 0
    owner: int | None = None  # session id for ephemeral nodes
    children: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class Delivery:
    """A watch event delivered to a session."""

    session_id: int
    event: NodeEvent | ChildrenEvent


def _parent_of(path: str) -> str:
    parent = path.rsplit("/", 1)[0]
    return parent or "/"


def _name_of(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _validate_path(path: str) -> None:
    if not path.startswith("/") or (path != "/" and path.endswith("/")) or "//" in path:
        raise ValueError(f"Invalid node path: {path!r}")


class InMemoryCoordinationService:
    """A single-process namespace shared by any number of sessions.

    Args:
        latency: Seconds every call waits before touching the tree
        available: When False, sessions fail to connect
        record_deliveries: Keep every delivered watch event in ``deliveries``
    """

    def __init__(
        self,
        latency: float = 0.0,
        available: bool = True,
        record_deliveries: bool = False,
    ):
        self.latency = latency
        self.available = available
        self.record_deliveries = record_deliveries
        self.deliveries: list[Delivery] = []

        self._nodes: dict[str, _Node] = {"/": _Node()}
        self._counters: dict[str, int] = {}
        self._node_watches: dict[str, list[tuple[int, NodeWatch]]] = {}
        self._child_watches: dict[str, list[tuple[int, ChildrenWatch]]] = {}
        self._sessions: dict[int, InMemoryClient] = {}
        self._ids = itertools.count(1)

    def session(self, request_timeout: float | None = None) -> InMemoryClient:
        """Create a new (not yet connected) client session."""
        return InMemoryClient(self, next(self._ids), request_timeout=request_timeout)

    @property
    def open_sessions(self) -> int:
        return len(self._sessions)

    def node_exists(self, path: str) -> bool:
        """Synchronous inspection helper."""
        return path in self._nodes

    def children_of(self, path: str) -> list[str]:
        """Synchronous inspection helper."""
        node = self._nodes.get(path)
        return sorted(node.children) if node else []

    def deliveries_for(self, session_id: int) -> list[NodeEvent | ChildrenEvent]:
        return [d.event for d in self.deliveries if d.session_id == session_id]

    def pending_watches(self, session_id: int) -> int:
        """Count registered, undelivered watches held by a session."""
        count = 0
        for watches in (*self._node_watches.values(), *self._child_watches.values()):
            count += sum(1 for owner, _ in watches if owner == session_id)
        return count

    async def expire_session(self, client: InMemoryClient) -> None:
        """Drop a session as if it had timed out on the service side."""
        if client.session_id not in self._sessions:
            return
        self._end_session(client.session_id)
        client._notify(SessionState.LOST)

    # -------------------------------------------------------------------------
    # Tree operations
    # -------------------------------------------------------------------------

    async def _delay(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    def _open(self, client: InMemoryClient) -> None:
        if not self.available:
            raise ServiceConnectionError("Coordination service unavailable")
        self._sessions[client.session_id] = client

    def _end_session(self, session_id: int) -> None:
        self._sessions.pop(session_id, None)

        for path, node in sorted(self._nodes.items(), key=lambda item: -len(item[0])):
            if node.owner == session_id:
                self._remove(path)

        for table in (self._node_watches, self._child_watches):
            for path in list(table):
                table[path] = [(owner, cb) for owner, cb in table[path] if owner != session_id]
                if not table[path]:
                    del table[path]

    def _create(self, session_id: int, path: str, data: bytes, mode: CreateMode) -> str:
        _validate_path(path)
        parent = _parent_of(path)
        parent_node = self._nodes.get(parent)
        if parent_node is None:
            raise NoNodeError(parent)

        if mode.sequential:
            counter = self._counters.get(parent, 0)
            self._counters[parent] = counter + 1
            path = f"{path}{counter:0{SEQUENCE_WIDTH}d}"

        if path in self._nodes:
            raise NodeExistsError(path)

        self._nodes[path] = _Node(data=data, owner=session_id if mode.ephemeral else None)
        parent_node.children.add(_name_of(path))

        self._fire_node(path, NodeEventKind.CREATED)
        self._fire_children(parent)
        return path

    def _delete(self, path: str, version: int) -> None:
        node = self._nodes.get(path)
        if node is None or path == "/":
            raise NoNodeError(path)
        if version != -1 and version != node.version:
            raise BadVersionError(path, version, node.version)
        if node.children:
            raise CoordinationError(f"Node has children: {path}", path=path)
        self._remove(path)

    def _remove(self, path: str) -> None:
        del self._nodes[path]
        parent = _parent_of(path)
        parent_node = self._nodes.get(parent)
        if parent_node is not None:
            parent_node.children.discard(_name_of(path))

        self._fire_node(path, NodeEventKind.DELETED)
        self._fire_children(parent)

    def _get_children(
        self, session_id: int, path: str, watch: ChildrenWatch | None
    ) -> list[str]:
        node = self._nodes.get(path)
        if node is None:
            raise NoNodeError(path)
        if watch is not None:
            self._child_watches.setdefault(path, []).append((session_id, watch))
        return sorted(node.children)

    def _exists(self, session_id: int, path: str, watch: NodeWatch | None) -> bool:
        if watch is not None:
            self._node_watches.setdefault(path, []).append((session_id, watch))
        return path in self._nodes

    def _get_data(self, path: str) -> bytes:
        node = self._nodes.get(path)
        if node is None:
            raise NoNodeError(path)
        return node.data

    # -------------------------------------------------------------------------
    # Watch delivery
    # -------------------------------------------------------------------------

    def _fire_node(self, path: str, kind: NodeEventKind) -> None:
        for session_id, callback in self._node_watches.pop(path, []):
            self._schedule(session_id, callback, NodeEvent(path=path, kind=kind))

    def _fire_children(self, path: str) -> None:
        for session_id, callback in self._child_watches.pop(path, []):
            self._schedule(session_id, callback, ChildrenEvent(path=path))

    def _schedule(
        self,
        session_id: int,
        callback: Callable[[Any], None],
        event: NodeEvent | ChildrenEvent,
    ) -> None:
        asyncio.get_running_loop().call_soon(self._deliver, session_id, callback, event)

    def _deliver(
        self,
        session_id: int,
        callback: Callable[[Any], None],
        event: NodeEvent | ChildrenEvent,
    ) -> None:
        if session_id not in self._sessions:
            return
        if self.record_deliveries:
            self.deliveries.append(Delivery(session_id=session_id, event=event))
        try:
            callback(event)
        except Exception:
            logger.exception(f"Watch callback for {event.path} failed")


class InMemoryClient(CoordinationClient):
    """A session against an InMemoryCoordinationService."""

    def __init__(
        self,
        service: InMemoryCoordinationService,
        session_id: int,
        request_timeout: float | None = None,
    ):
        self.service = service
        self.session_id = session_id
        self.request_timeout = request_timeout
        self._connected = False
        self._listeners: list[SessionListener] = []

    @property
    def connected(self) -> bool:
        return self._connected and self.session_id in self.service._sessions

    async def connect(self) -> None:
        await with_timeout(self.service._delay(), self.request_timeout, "connect")
        self.service._open(self)
        self._connected = True
        self._notify(SessionState.CONNECTED)

    async def close(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self.service._end_session(self.session_id)

    async def create(
        self,
        path: str,
        data: bytes = b"",
        mode: CreateMode = CreateMode.PERSISTENT,
    ) -> str:
        await self._ready("create", path)
        return self.service._create(self.session_id, path, data, mode)

    async def delete(self, path: str, version: int = -1) -> None:
        await self._ready("delete", path)
        self.service._delete(path, version)

    async def get_children(self, path: str, watch: ChildrenWatch | None = None) -> list[str]:
        await self._ready("get_children", path)
        return self.service._get_children(self.session_id, path, watch)

    async def exists(self, path: str, watch: NodeWatch | None = None) -> bool:
        await self._ready("exists", path)
        return self.service._exists(self.session_id, path, watch)

    async def get_data(self, path: str) -> bytes:
        await self._ready("get_data", path)
        return self.service._get_data(path)

    def add_session_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    async def _ready(self, operation: str, path: str) -> None:
        await with_timeout(self.service._delay(), self.request_timeout, operation, path)
        if not self.connected:
            raise ServiceConnectionError(f"Session {self.session_id} is not connected", path=path)

    def _notify(self, state: SessionState) -> None:
        if state == SessionState.LOST:
            self._connected = False
        for listener in self._listeners:
            listener(state)
