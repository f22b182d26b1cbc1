"""Coordination service clients.

Provides one interface over hierarchical coordination services:
- ZooKeeper sessions via kazoo
- An in-process service with the same node and watch semantics

Example:
    from succession.coordination import CreateMode, create_client

    client = create_client(config)
    await client.connect()
    path = await client.create("/contest/contestant", mode=CreateMode.EPHEMERAL_SEQUENTIAL)
"""

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
    join_path,
    sequence_of,
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
from succession.coordination.factory import (
    ClientFactory,
    create_client,
    get_memory_service,
    reset_memory_service,
)
from succession.coordination.memory import InMemoryClient, InMemoryCoordinationService
from succession.coordination.zookeeper import ZooKeeperClient

__all__ = [
    # Interface
    "CoordinationClient",
    "CreateMode",
    "NodeEvent",
    "NodeEventKind",
    "ChildrenEvent",
    "NodeWatch",
    "ChildrenWatch",
    "SessionListener",
    "SessionState",
    "join_path",
    "sequence_of",
    # Errors
    "CoordinationError",
    "ServiceConnectionError",
    "NodeExistsError",
    "NoNodeError",
    "BadVersionError",
    "SessionTeardownError",
    "OperationTimeoutError",
    # Backends
    "InMemoryCoordinationService",
    "InMemoryClient",
    "ZooKeeperClient",
    "ClientFactory",
    "create_client",
    "get_memory_service",
    "reset_memory_service",
]
