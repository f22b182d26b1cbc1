"""Latency harness for coordination service calls.

Creates, reads and deletes a set of nodes from ``k`` parallel sessions and
reports the distribution of per-call latencies.

Paths are split into ``k`` contiguous shards: each shard gets ``n // k``
paths and the first ``n % k`` shards get one more.

Example:
    harness = LatencyHarness(config)
    paths = await harness.write(k=4, n=10_000)
    await harness.read(paths, k=4)
    await harness.delete(paths, k=4)

    print(harness.reports["read"].summary())
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar
from uuid import uuid4

from succession.config import ContestConfig
from succession.coordination.base import CoordinationClient, CreateMode
from succession.coordination.errors import CoordinationError, NodeExistsError
from succession.coordination.factory import ClientFactory, create_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

REPORTED_PERCENTILES = (50.0, 90.0, 99.99)

Operation = Callable[[CoordinationClient, str], Awaitable[object]]


def percentile(sorted_samples: Sequence[int], p: float) -> int:
    """Nearest-rank percentile of already sorted samples.

    Returns the sample at index ``ceil(p / 100 * count) - 1``; no
    interpolation.
    """
    if not sorted_samples:
        raise ValueError("Cannot compute a percentile of no samples")
    if not 0 < p <= 100:
        raise ValueError(f"Percentile must be in (0, 100], got {p}")
    index = math.ceil(p * len(sorted_samples) / 100) - 1
    return sorted_samples[max(index, 0)]


def shard(items: Sequence[T], k: int) -> list[list[T]]:
    """Split items into k contiguous shards of near-equal size."""
    if k < 1:
        raise ValueError(f"Shard count must be at least 1, got {k}")

    size, extra = divmod(len(items), k)
    shards: list[list[T]] = []
    start = 0
    for index in range(k):
        end = start + size + (1 if index < extra else 0)
        shards.append(list(items[start:end]))
        start = end
    return shards


@dataclass
class LatencyReport:
    """Latency samples (nanoseconds) for one operation."""

    operation: str
    samples: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.samples = sorted(self.samples)

    @property
    def count(self) -> int:
        return len(self.samples)

    @property
    def total(self) -> int:
        return sum(self.samples)

    @property
    def mean(self) -> float:
        if not self.samples:
            return 0.0
        return self.total / len(self.samples)

    def percentile(self, p: float) -> int:
        return percentile(self.samples, p)

    def summary(self) -> dict[str, float]:
        """Return total, mean and the reported percentiles."""
        result: dict[str, float] = {
            "count": self.count,
            "total_ns": self.total,
            "mean_ns": self.mean,
        }
        if self.samples:
            for p in REPORTED_PERCENTILES:
                result[f"p{p:g}_ns"] = self.percentile(p)
        return result

    def log(self) -> None:
        if not self.samples:
            logger.info(f"No {self.operation} samples recorded")
            return
        logger.info(f"Total {self.operation} latency: {self.total} ns")
        logger.info(f"Average {self.operation} latency: {self.mean:.1f} ns")
        for p in REPORTED_PERCENTILES:
            logger.info(f"{p:g}th percentile {self.operation} latency: {self.percentile(p)} ns")


class LatencyHarness:
    """Parallel create/read/delete workload against the coordination service.

    Every shard runs on its own session, so ``k`` is also the number of
    concurrent clients.

    Args:
        config: Connection and path configuration
        client_factory: Builds one unconnected session per shard
    """

    def __init__(
        self,
        config: ContestConfig,
        client_factory: ClientFactory = create_client,
    ):
        self.config = config
        self.client_factory = client_factory
        self.reports: dict[str, LatencyReport] = {}

    def paths(self, n: int) -> list[str]:
        root = self.config.latency_root.rstrip("/")
        return [f"{root}/{index}" for index in range(n)]

    async def write(self, k: int, n: int) -> list[str]:
        """Create ``n`` nodes from ``k`` sessions and return their paths."""
        if n < 0:
            raise ValueError(f"Node count must be non-negative, got {n}")
        paths = self.paths(n)
        await self._ensure_root()
        await self._measure("write", paths, k, _create_node)
        return paths

    async def read(self, paths: Sequence[str], k: int) -> LatencyReport:
        """Fetch the data of every path from ``k`` sessions.

        Raises:
            NoNodeError: If a path does not exist
        """
        return await self._measure("read", paths, k, _read_node)

    async def delete(self, paths: Sequence[str], k: int) -> LatencyReport:
        """Delete every path from ``k`` sessions.

        Raises:
            NoNodeError: If a path does not exist
        """
        return await self._measure("delete", paths, k, _delete_node)

    async def _ensure_root(self) -> None:
        root = self.config.latency_root.rstrip("/")
        if not root:
            return

        client = self.client_factory(self.config)
        await client.connect()
        try:
            parts = root.strip("/").split("/")
            for depth in range(1, len(parts) + 1):
                try:
                    await client.create("/" + "/".join(parts[:depth]))
                except NodeExistsError:
                    logger.debug(f"Latency root {root} already exists")
        finally:
            await _close(client)

    async def _measure(
        self,
        operation: str,
        paths: Sequence[str],
        k: int,
        call: Operation,
    ) -> LatencyReport:
        shards = [part for part in shard(paths, k) if part]
        started = time.perf_counter()
        results = await asyncio.gather(*(self._worker(part, call) for part in shards))

        report = LatencyReport(operation, [sample for result in results for sample in result])
        self.reports[operation] = report
        logger.info(
            f"{operation}: {report.count} calls from {len(shards)} clients "
            f"in {time.perf_counter() - started:.2f}s"
        )
        report.log()
        return report

    async def _worker(self, paths: Sequence[str], call: Operation) -> list[int]:
        client = self.client_factory(self.config)
        await client.connect()
        samples: list[int] = []
        try:
            for path in paths:
                started = time.perf_counter_ns()
                await call(client, path)
                samples.append(time.perf_counter_ns() - started)
        finally:
            await _close(client)
        return samples


async def _create_node(client: CoordinationClient, path: str) -> str:
    return await client.create(path, uuid4().hex.encode(), CreateMode.PERSISTENT)


async def _read_node(client: CoordinationClient, path: str) -> bytes:
    return await client.get_data(path)


async def _delete_node(client: CoordinationClient, path: str) -> None:
    await client.delete(path)


async def _close(client: CoordinationClient) -> None:
    try:
        await client.close()
    except CoordinationError as e:
        logger.warning(f"Error closing harness session: {e}")
