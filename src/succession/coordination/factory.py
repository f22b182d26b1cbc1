"""Coordination client factory."""

from __future__ import annotations

from collections.abc import Callable

from succession.config import ContestConfig
from succession.coordination.base import CoordinationClient
from succession.coordination.memory import InMemoryCoordinationService
from succession.coordination.zookeeper import ZooKeeperClient

ClientFactory = Callable[[ContestConfig], CoordinationClient]

_memory_service: InMemoryCoordinationService | None = None


def get_memory_service() -> InMemoryCoordinationService:
    """Return the process-wide in-memory service."""
    global _memory_service
    if _memory_service is None:
        _memory_service = InMemoryCoordinationService()
    return _memory_service


def reset_memory_service() -> None:
    global _memory_service
    _memory_service = None


def create_client(config: ContestConfig) -> CoordinationClient:
    """Return a new, unconnected session for the configured backend."""
    backend = config.backend.lower()
    if backend == "zookeeper":
        return ZooKeeperClient(
            hosts=config.zookeeper_hosts,
            session_timeout=config.session_timeout,
            request_timeout=config.request_timeout,
        )
    if backend == "memory":
        return get_memory_service().session(request_timeout=config.request_timeout)
    raise ValueError("Unsupported backend. Supported values: zookeeper, memory.")
