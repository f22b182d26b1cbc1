"""Tests for the in-memory coordination service."""

from __future__ import annotations

import pytest

from succession.coordination import (
    BadVersionError,
    ChildrenEvent,
    CreateMode,
    InMemoryCoordinationService,
    NodeEvent,
    NodeEventKind,
    NodeExistsError,
    NoNodeError,
    OperationTimeoutError,
    ServiceConnectionError,
    SessionState,
)


async def _connected(service: InMemoryCoordinationService):
    client = service.session()
    await client.connect()
    return client


class TestNodes:
    """Tests for node creation, reads and deletion."""

    @pytest.mark.asyncio
    async def test_create_and_read_persistent_node(
        self, service: InMemoryCoordinationService
    ) -> None:
        """Persistent node stores its data."""
        client = await _connected(service)

        path = await client.create("/config", b"value")

        assert path == "/config"
        assert await client.get_data("/config") == b"value"
        assert await client.exists("/config") is True

    @pytest.mark.asyncio
    async def test_sequential_names_are_padded_and_increasing(
        self, service: InMemoryCoordinationService
    ) -> None:
        """Sequential nodes get a ten digit, increasing suffix."""
        client = await _connected(service)
        await client.create("/contest")

        first = await client.create("/contest/contestant", mode=CreateMode.EPHEMERAL_SEQUENTIAL)
        second = await client.create("/contest/contestant", mode=CreateMode.EPHEMERAL_SEQUENTIAL)

        assert first == "/contest/contestant0000000000"
        assert second == "/contest/contestant0000000001"

    @pytest.mark.asyncio
    async def test_sequence_keeps_increasing_after_delete(
        self, service: InMemoryCoordinationService
    ) -> None:
        """Deleting a sequential node never frees its number."""
        client = await _connected(service)
        await client.create("/contest")

        first = await client.create("/contest/n", mode=CreateMode.EPHEMERAL_SEQUENTIAL)
        await client.delete(first)
        second = await client.create("/contest/n", mode=CreateMode.EPHEMERAL_SEQUENTIAL)

        assert second > first

    @pytest.mark.asyncio
    async def test_create_existing_node_fails(self, service: InMemoryCoordinationService) -> None:
        """Creating an existing node raises NodeExistsError."""
        client = await _connected(service)
        await client.create("/contest")

        with pytest.raises(NodeExistsError):
            await client.create("/contest")

    @pytest.mark.asyncio
    async def test_create_without_parent_fails(self, service: InMemoryCoordinationService) -> None:
        """Creating under a missing parent raises NoNodeError."""
        client = await _connected(service)

        with pytest.raises(NoNodeError) as exc_info:
            await client.create("/missing/child")

        assert exc_info.value.path == "/missing"

    @pytest.mark.asyncio
    async def test_delete_missing_node_fails(self, service: InMemoryCoordinationService) -> None:
        """Deleting an absent node raises NoNodeError."""
        client = await _connected(service)

        with pytest.raises(NoNodeError):
            await client.delete("/nothing")

    @pytest.mark.asyncio
    async def test_delete_with_wrong_version_fails(
        self, service: InMemoryCoordinationService
    ) -> None:
        """A conditional delete checks the node version."""
        client = await _connected(service)
        await client.create("/versioned")

        with pytest.raises(BadVersionError):
            await client.delete("/versioned", version=3)

        await client.delete("/versioned", version=0)
        assert await client.exists("/versioned") is False

    @pytest.mark.asyncio
    async def test_get_data_missing_node_fails(self, service: InMemoryCoordinationService) -> None:
        """Reading an absent node raises NoNodeError."""
        client = await _connected(service)

        with pytest.raises(NoNodeError):
            await client.get_data("/nothing")

    @pytest.mark.asyncio
    async def test_children_are_sorted(self, service: InMemoryCoordinationService) -> None:
        """Children are listed in sorted order."""
        client = await _connected(service)
        await client.create("/p")
        for name in ("c", "a", "b"):
            await client.create(f"/p/{name}")

        assert await client.get_children("/p") == ["a", "b", "c"]


class TestSessions:
    """Tests for session lifecycle."""

    @pytest.mark.asyncio
    async def test_unavailable_service_refuses_connection(self) -> None:
        """Connecting to an unavailable service raises ServiceConnectionError."""
        service = InMemoryCoordinationService(available=False)
        client = service.session()

        with pytest.raises(ServiceConnectionError):
            await client.connect()

    @pytest.mark.asyncio
    async def test_calls_before_connect_fail(self, service: InMemoryCoordinationService) -> None:
        """An unconnected session cannot issue calls."""
        client = service.session()

        with pytest.raises(ServiceConnectionError):
            await client.exists("/")

    @pytest.mark.asyncio
    async def test_close_removes_ephemeral_nodes(
        self, service: InMemoryCoordinationService
    ) -> None:
        """Ephemeral nodes disappear with their session."""
        owner = await _connected(service)
        observer = await _connected(service)
        await owner.create("/contest")
        path = await owner.create("/contest/n", mode=CreateMode.EPHEMERAL_SEQUENTIAL)

        await owner.close()

        assert await observer.exists(path) is False
        assert await observer.exists("/contest") is True
        assert service.open_sessions == 1

    @pytest.mark.asyncio
    async def test_expire_session_notifies_listeners(
        self, service: InMemoryCoordinationService
    ) -> None:
        """Session expiry reports LOST and drops ephemeral nodes."""
        client = await _connected(service)
        states: list[SessionState] = []
        client.add_session_listener(states.append)
        await client.create("/e", mode=CreateMode.EPHEMERAL)

        await service.expire_session(client)

        assert states == [SessionState.LOST]
        assert service.node_exists("/e") is False
        with pytest.raises(ServiceConnectionError):
            await client.exists("/e")

    @pytest.mark.asyncio
    async def test_latency_beyond_timeout_raises(self) -> None:
        """Calls slower than the request timeout raise OperationTimeoutError."""
        service = InMemoryCoordinationService()
        client = service.session(request_timeout=0.05)
        await client.connect()
        service.latency = 0.5

        with pytest.raises(OperationTimeoutError) as exc_info:
            await client.exists("/")

        assert exc_info.value.operation == "exists"


class TestWatches:
    """Tests for one-shot watch delivery."""

    @pytest.mark.asyncio
    async def test_node_watch_fires_once_on_delete(
        self, service: InMemoryCoordinationService, settle
    ) -> None:
        """Node watch delivers a single DELETED event."""
        client = await _connected(service)
        await client.create("/n")
        events: list[NodeEvent] = []

        assert await client.exists("/n", watch=events.append) is True
        await client.delete("/n")
        await client.create("/n")
        await client.delete("/n")
        await settle()

        assert events == [NodeEvent(path="/n", kind=NodeEventKind.DELETED)]

    @pytest.mark.asyncio
    async def test_watch_on_absent_node_fires_on_create(
        self, service: InMemoryCoordinationService, settle
    ) -> None:
        """A watch set on an absent node reports its creation."""
        client = await _connected(service)
        events: list[NodeEvent] = []

        assert await client.exists("/later", watch=events.append) is False
        await client.create("/later")
        await settle()

        assert events == [NodeEvent(path="/later", kind=NodeEventKind.CREATED)]

    @pytest.mark.asyncio
    async def test_children_watch_is_one_shot(
        self, service: InMemoryCoordinationService, settle
    ) -> None:
        """Children watch fires on the first change only."""
        client = await _connected(service)
        await client.create("/p")
        events: list[ChildrenEvent] = []

        await client.get_children("/p", watch=events.append)
        await client.create("/p/a")
        await client.create("/p/b")
        await settle()

        assert events == [ChildrenEvent(path="/p")]

    @pytest.mark.asyncio
    async def test_watch_delivery_is_asynchronous(
        self, service: InMemoryCoordinationService, settle
    ) -> None:
        """Callbacks run after the triggering call returns."""
        client = await _connected(service)
        await client.create("/n")
        events: list[NodeEvent] = []
        await client.exists("/n", watch=events.append)

        await client.delete("/n")
        assert events == []

        await settle()
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_deliveries_are_recorded_per_session(
        self, service: InMemoryCoordinationService, settle
    ) -> None:
        """Only the watching session records a delivery."""
        watcher = await _connected(service)
        bystander = await _connected(service)
        await watcher.create("/n")
        await watcher.exists("/n", watch=lambda event: None)

        await bystander.delete("/n")
        await settle()

        assert len(service.deliveries_for(watcher.session_id)) == 1
        assert service.deliveries_for(bystander.session_id) == []

    @pytest.mark.asyncio
    async def test_closed_session_receives_nothing(
        self, service: InMemoryCoordinationService, settle
    ) -> None:
        """Watches die with their session."""
        watcher = await _connected(service)
        other = await _connected(service)
        await other.create("/n")
        events: list[NodeEvent] = []
        await watcher.exists("/n", watch=events.append)

        await watcher.close()
        await other.delete("/n")
        await settle()

        assert events == []
        assert service.pending_watches(watcher.session_id) == 0

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_delivery(
        self, service: InMemoryCoordinationService, settle
    ) -> None:
        """A raising callback does not stop other deliveries."""
        client = await _connected(service)
        await client.create("/n")
        events: list[NodeEvent] = []

        def explode(event: NodeEvent) -> None:
            raise RuntimeError("boom")

        await client.exists("/n", watch=explode)
        await client.exists("/n", watch=events.append)
        await client.delete("/n")
        await settle()

        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_deliveries_not_recorded_by_default(self, settle) -> None:
        """Without opting in, delivered events are not kept."""
        service = InMemoryCoordinationService()
        client = await _connected(service)
        await client.create("/n")
        events: list[NodeEvent] = []
        await client.exists("/n", watch=events.append)

        await client.delete("/n")
        await settle()

        assert len(events) == 1
        assert service.deliveries == []
