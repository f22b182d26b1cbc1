"""Command-line entry point for succession.

Measures coordination service latency, then runs a group of contestants
rotating leadership until interrupted.

Usage:
    succession CONTESTANTS NODES
    succession 3 10000

Connection, namespace and timing settings come from SUCCESSION_* environment
variables (see succession.config.Settings).
"""

from __future__ import annotations

import asyncio
import logging
import signal

import typer

from succession.config import ContestConfig, settings
from succession.contest.group import ContestantGroup
from succession.latency.harness import LatencyHarness
from succession.observability.logging import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="succession",
    help="Leader election rotation and latency harness for ZooKeeper-style services",
    add_completion=False,
)


@app.command()
def run(
    contestants: int = typer.Argument(
        ...,
        min=1,
        help="Number of contestants, also the number of latency harness clients",
    ),
    nodes: int = typer.Argument(
        ...,
        min=0,
        help="Number of nodes the latency harness writes, reads and deletes",
    ),
) -> None:
    """Run the latency harness, then rotate leadership until interrupted."""
    configure_logging(json_format=settings.log_json, level=settings.log_level)
    config = ContestConfig.from_settings(settings)
    asyncio.run(_run(config, contestants, nodes))


async def _run(config: ContestConfig, contestants: int, nodes: int) -> None:
    harness = LatencyHarness(config)
    paths = await harness.write(contestants, nodes)
    await harness.read(paths, contestants)
    await harness.delete(paths, contestants)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    group = ContestantGroup(config, size=contestants)
    await group.start()
    try:
        await shutdown.wait()
        logger.info("Shutdown requested")
    finally:
        await group.stop()


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
