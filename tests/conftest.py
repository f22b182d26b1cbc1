"""Global pytest configuration and fixtures.

Election tests run against the in-process coordination service, so no
ZooKeeper ensemble is needed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator

import pytest

from succession.config import ContestConfig
from succession.coordination import (
    CoordinationClient,
    InMemoryCoordinationService,
    reset_memory_service,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "soak: longer-running election rotation tests"
    )


@pytest.fixture(autouse=True)
def _fresh_memory_service() -> Iterator[None]:
    """Give every test its own process-wide in-memory service."""
    reset_memory_service()
    yield
    reset_memory_service()


@pytest.fixture
def service() -> InMemoryCoordinationService:
    """In-memory service that records watch deliveries for inspection."""
    return InMemoryCoordinationService(record_deliveries=True)


@pytest.fixture
def config() -> ContestConfig:
    """Election configuration with test-sized timings."""
    return ContestConfig(
        backend="memory",
        request_timeout=1.0,
        parent_path="/contest",
        hold_min=0.01,
        hold_max=0.02,
        retry_delay=0.01,
    )


@pytest.fixture
def client_factory(
    service: InMemoryCoordinationService,
) -> Callable[[ContestConfig], CoordinationClient]:
    def factory(cfg: ContestConfig) -> CoordinationClient:
        return service.session(request_timeout=cfg.request_timeout)

    return factory


@pytest.fixture
def settle() -> Callable[..., Awaitable[None]]:
    """Let pending callbacks and tasks run."""

    async def run(rounds: int = 50) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return run
