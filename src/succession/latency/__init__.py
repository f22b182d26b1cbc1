"""Latency measurement for coordination service calls."""

from succession.latency.harness import (
    REPORTED_PERCENTILES,
    LatencyHarness,
    LatencyReport,
    percentile,
    shard,
)

__all__ = [
    "LatencyHarness",
    "LatencyReport",
    "REPORTED_PERCENTILES",
    "percentile",
    "shard",
]
