"""ZooKeeper client backed by kazoo.

kazoo is a threaded client: its calls block and its watch callbacks run on
kazoo's own event thread. Calls are pushed to worker threads and bounded by
the request timeout; callbacks are relayed onto the owning asyncio loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from kazoo import exceptions as kz_errors
from kazoo.client import KazooClient, KazooState
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import EventType, WatchedEvent

from succession.coordination.base import (
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
    OperationTimeoutError,
    ServiceConnectionError,
    SessionTeardownError,
)

logger = logging.getLogger(__name__)

_NODE_EVENT_KINDS = {
    EventType.CREATED: NodeEventKind.CREATED,
    EventType.DELETED: NodeEventKind.DELETED,
    EventType.CHANGED: NodeEventKind.CHANGED,
}

_SESSION_STATES = {
    KazooState.CONNECTED: SessionState.CONNECTED,
    KazooState.SUSPENDED: SessionState.SUSPENDED,
    KazooState.LOST: SessionState.LOST,
}


def _translate(exc: Exception, path: str | None) -> CoordinationError:
    """Map a kazoo exception onto the coordination error taxonomy."""
    if isinstance(exc, kz_errors.NodeExistsError):
        return NodeExistsError(path or "")
    if isinstance(exc, kz_errors.NoNodeError):
        return NoNodeError(path or "")
    if isinstance(exc, kz_errors.BadVersionError):
        return BadVersionError(path or "", expected=-1, actual=-1)
    if isinstance(exc, (kz_errors.ConnectionLoss, kz_errors.SessionExpiredError)):
        return ServiceConnectionError(f"Session unavailable: {exc!r}", path=path)
    return CoordinationError(f"ZooKeeper call failed: {exc!r}", path=path)


class ZooKeeperClient(CoordinationClient):
    """Coordination client for an Apache ZooKeeper ensemble.

    Args:
        hosts: Comma separated host:port list
        session_timeout: ZooKeeper session timeout in seconds
        request_timeout: Upper bound for every call, in seconds
    """

    def __init__(
        self,
        hosts: str,
        session_timeout: float = 3.0,
        request_timeout: float = 10.0,
    ):
        self.hosts = hosts
        self.session_timeout = session_timeout
        self.request_timeout = request_timeout
        self._zk: KazooClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._listeners: list[SessionListener] = []

    async def connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        zk = KazooClient(hosts=self.hosts, timeout=self.session_timeout)
        zk.add_listener(self._on_state)

        try:
            await with_timeout(
                asyncio.to_thread(zk.start, timeout=self.request_timeout),
                # kazoo enforces the start timeout itself; allow it to report first
                self.request_timeout + 1.0,
                "connect",
            )
        except (KazooTimeoutError, OperationTimeoutError) as e:
            raise ServiceConnectionError(
                f"Timed out connecting to ZooKeeper at {self.hosts}"
            ) from e
        except Exception as e:
            raise ServiceConnectionError(
                f"Failed to connect to ZooKeeper at {self.hosts}: {e}"
            ) from e

        self._zk = zk
        logger.debug(f"Connected to ZooKeeper at {self.hosts}")

    async def close(self) -> None:
        if self._zk is None:
            return
        zk, self._zk = self._zk, None
        try:
            await with_timeout(asyncio.to_thread(zk.stop), self.request_timeout, "close")
            zk.close()
        except Exception as e:
            raise SessionTeardownError(f"Error closing ZooKeeper session: {e}") from e

    async def create(
        self,
        path: str,
        data: bytes = b"",
        mode: CreateMode = CreateMode.PERSISTENT,
    ) -> str:
        zk = self._require()
        result: str = await self._call(
            "create",
            path,
            zk.create,
            path,
            value=data,
            ephemeral=mode.ephemeral,
            sequence=mode.sequential,
        )
        return result

    async def delete(self, path: str, version: int = -1) -> None:
        zk = self._require()
        await self._call("delete", path, zk.delete, path, version=version)

    async def get_children(self, path: str, watch: ChildrenWatch | None = None) -> list[str]:
        zk = self._require()
        relay = self._children_relay(watch) if watch is not None else None
        children: list[str] = await self._call(
            "get_children", path, zk.get_children, path, watch=relay
        )
        return sorted(children)

    async def exists(self, path: str, watch: NodeWatch | None = None) -> bool:
        zk = self._require()
        relay = self._node_relay(watch) if watch is not None else None
        stat = await self._call("exists", path, zk.exists, path, watch=relay)
        return stat is not None

    async def get_data(self, path: str) -> bytes:
        zk = self._require()
        data, _stat = await self._call("get_data", path, zk.get, path)
        return data or b""

    def add_session_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def _require(self) -> KazooClient:
        if self._zk is None:
            raise ServiceConnectionError("ZooKeeper client is not connected")
        return self._zk

    async def _call(
        self,
        operation: str,
        path: str,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        try:
            return await with_timeout(
                asyncio.to_thread(fn, *args, **kwargs),
                self.request_timeout,
                operation,
                path,
            )
        except CoordinationError:
            raise
        except (KazooTimeoutError, kz_errors.OperationTimeoutError) as e:
            raise OperationTimeoutError(operation, self.request_timeout, path=path) from e
        except kz_errors.KazooException as e:
            raise _translate(e, path) from e

    # -------------------------------------------------------------------------
    # Relays from kazoo's thread onto the event loop
    # -------------------------------------------------------------------------

    def _post(self, callback: Callable[[Any], None], arg: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, arg)
        except RuntimeError:
            logger.debug("Event loop closed; dropping ZooKeeper notification")

    def _node_relay(self, watch: NodeWatch) -> Callable[[WatchedEvent], None]:
        def relay(event: WatchedEvent) -> None:
            kind = _NODE_EVENT_KINDS.get(event.type)
            if kind is None:
                return
            self._post(watch, NodeEvent(path=event.path, kind=kind))

        return relay

    def _children_relay(self, watch: ChildrenWatch) -> Callable[[WatchedEvent], None]:
        def relay(event: WatchedEvent) -> None:
            if event.type != EventType.CHILD:
                return
            self._post(watch, ChildrenEvent(path=event.path))

        return relay

    def _on_state(self, state: str) -> None:
        mapped = _SESSION_STATES.get(state)
        if mapped is None:
            return
        for listener in self._listeners:
            self._post(listener, mapped)
