"""Tests for the latency harness."""

from __future__ import annotations

import pytest

from succession.config import ContestConfig
from succession.coordination import InMemoryCoordinationService, NoNodeError
from succession.latency.harness import LatencyHarness, LatencyReport, percentile, shard


class TestPercentile:
    """Tests for nearest-rank percentiles."""

    def test_nearest_rank(self) -> None:
        """Percentiles pick an actual sample without interpolation."""
        samples = list(range(1, 11))

        assert percentile(samples, 50) == 5
        assert percentile(samples, 90) == 9
        assert percentile(samples, 99.99) == 10
        assert percentile(samples, 100) == 10

    def test_single_sample(self) -> None:
        """A single sample is every percentile."""
        assert percentile([7], 1) == 7
        assert percentile([7], 99.99) == 7

    def test_empty_samples_rejected(self) -> None:
        with pytest.raises(ValueError):
            percentile([], 50)

    @pytest.mark.parametrize("p", [0, -1, 100.5])
    def test_out_of_range_rejected(self, p: float) -> None:
        with pytest.raises(ValueError):
            percentile([1, 2, 3], p)


class TestShard:
    """Tests for path sharding."""

    def test_remainder_goes_to_first_shards(self) -> None:
        """The first n % k shards get one extra item."""
        shards = shard(list(range(10)), 3)

        assert [len(part) for part in shards] == [4, 3, 3]
        assert [item for part in shards for item in part] == list(range(10))

    def test_more_shards_than_items(self) -> None:
        """Surplus shards are empty."""
        assert shard(["a", "b"], 4) == [["a"], ["b"], [], []]

    def test_zero_shards_rejected(self) -> None:
        with pytest.raises(ValueError):
            shard([1], 0)


class TestLatencyReport:
    """Tests for LatencyReport."""

    def test_summary(self) -> None:
        """Summary carries totals, mean and the reported percentiles."""
        report = LatencyReport("read", [30, 10, 20, 40])

        summary = report.summary()

        assert report.samples == [10, 20, 30, 40]
        assert summary["count"] == 4
        assert summary["total_ns"] == 100
        assert summary["mean_ns"] == 25.0
        assert summary["p50_ns"] == 20
        assert summary["p90_ns"] == 40
        assert summary["p99.99_ns"] == 40

    def test_empty_report(self) -> None:
        """An empty report has no percentiles."""
        report = LatencyReport("write")

        assert report.mean == 0.0
        assert "p50_ns" not in report.summary()
        report.log()


class TestLatencyHarness:
    """Tests for the write/read/delete workload."""

    @pytest.mark.asyncio
    async def test_write_read_delete(
        self,
        config: ContestConfig,
        client_factory,
        service: InMemoryCoordinationService,
    ) -> None:
        """Nodes are created, read back and removed by parallel sessions."""
        harness = LatencyHarness(config, client_factory=client_factory)

        paths = await harness.write(k=2, n=10)

        assert paths == [f"/{i}" for i in range(10)]
        assert all(service.node_exists(path) for path in paths)
        assert harness.reports["write"].count == 10

        read = await harness.read(paths, k=2)
        deleted = await harness.delete(paths, k=2)

        assert read.count == 10
        assert deleted.count == 10
        assert not any(service.node_exists(path) for path in paths)
        assert service.open_sessions == 0

    @pytest.mark.asyncio
    async def test_written_data_is_unique(
        self,
        config: ContestConfig,
        client_factory,
        service: InMemoryCoordinationService,
    ) -> None:
        """Every node gets its own payload."""
        harness = LatencyHarness(config, client_factory=client_factory)
        paths = await harness.write(k=2, n=5)
        admin = service.session()
        await admin.connect()

        payloads = {await admin.get_data(path) for path in paths}

        assert len(payloads) == 5
        assert all(payloads)

    @pytest.mark.asyncio
    async def test_reading_missing_nodes_fails(
        self, config: ContestConfig, client_factory
    ) -> None:
        """Reading deleted nodes raises NoNodeError."""
        harness = LatencyHarness(config, client_factory=client_factory)
        paths = await harness.write(k=2, n=4)
        await harness.delete(paths, k=2)

        with pytest.raises(NoNodeError):
            await harness.read(paths, k=2)

    @pytest.mark.asyncio
    async def test_latency_root_is_created(
        self, client_factory, service: InMemoryCoordinationService
    ) -> None:
        """Nodes go under a configured root, created on demand."""
        config = ContestConfig(backend="memory", latency_root="/bench/run")
        harness = LatencyHarness(config, client_factory=client_factory)

        paths = await harness.write(k=2, n=3)

        assert paths == ["/bench/run/0", "/bench/run/1", "/bench/run/2"]
        assert service.children_of("/bench/run") == ["0", "1", "2"]

        await harness.write(k=1, n=0)
        assert service.node_exists("/bench/run")

    @pytest.mark.asyncio
    async def test_more_clients_than_nodes(
        self, config: ContestConfig, client_factory, service: InMemoryCoordinationService
    ) -> None:
        """Empty shards do not open sessions."""
        harness = LatencyHarness(config, client_factory=client_factory)

        paths = await harness.write(k=5, n=2)

        assert len(paths) == 2
        assert service.open_sessions == 0

    @pytest.mark.asyncio
    async def test_negative_node_count_rejected(
        self, config: ContestConfig, client_factory
    ) -> None:
        harness = LatencyHarness(config, client_factory=client_factory)

        with pytest.raises(ValueError):
            await harness.write(k=1, n=-1)
