"""Command-line interface for SeqHarvest."""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any, Optional, Set

import click
import structlog
import uvicorn

from seqharvest import __version__
from seqharvest.config import Config, load_config
from seqharvest.container import DependencyContainer
from seqharvest.errors import SearchToolFailure, SeqHarvestError, StoreError
from seqharvest.observability import configure_logging

logger = structlog.get_logger(__name__)


class ShutdownManager:
    """Routes SIGINT/SIGTERM to the harvester's scheduler and running tasks."""

    def __init__(self, container: DependencyContainer) -> None:
        self.container = container
        self.is_shutting_down = False
        self._tasks_to_cancel: Set[asyncio.Task[Any]] = set()
        self._shutdown_signals = (signal.SIGINT, signal.SIGTERM)

    def add_task(self, task: asyncio.Task[Any]) -> None:
        if not self.is_shutting_down:
            self._tasks_to_cancel.add(task)

    def _initiate_shutdown(self, signum: int) -> None:
        if self.is_shutting_down:
            return
        self.is_shutting_down = True
        logger.info("Received signal, shutting down", signal=signum)
        self.container.scheduler.cancel()
        for task in self._tasks_to_cancel:
            task.cancel()

    def install(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._shutdown_signals:
            loop.add_signal_handler(sig, self._initiate_shutdown, sig)


def _load(ctx: click.Context) -> Config:
    config = load_config(ctx.obj["config_path"])
    if ctx.obj["log_level"]:
        config.monitoring.log_level = ctx.obj["log_level"]
    configure_logging(config.monitoring)
    return config


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (overrides the configuration file)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """SeqHarvest - deduplicating sequence harvester with similarity search."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option("--max-cycles", type=int, default=None, help="Stop after this many cycles (default: run forever)")
@click.pass_context
def harvest(ctx: click.Context, max_cycles: Optional[int]) -> None:
    """Harvest sequences from the upstream source into the dedup stores."""
    config = _load(ctx)

    async def run_harvest() -> int:
        container = DependencyContainer(config)
        async with container.lifecycle():
            shutdown = ShutdownManager(container)
            shutdown.install()
            task = asyncio.ensure_future(container.harvester.run(max_cycles=max_cycles))
            shutdown.add_task(task)
            try:
                return await task
            except asyncio.CancelledError:
                logger.info("Harvest interrupted; cursor left at last committed page")
                return container.harvester.cycles_completed

    try:
        cycles = asyncio.run(run_harvest())
    except SeqHarvestError as e:
        logger.error("Harvest stopped", error_type=type(e).__name__, error=str(e))
        sys.exit(1)

    click.echo(f"Completed {cycles} harvest cycle(s)")


@cli.command()
@click.option("--host", default=None, help="Host to bind (overrides configuration)")
@click.option("--port", default=None, type=int, help="Port to bind (overrides configuration)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Serve the search front end."""
    from seqharvest.web.main import create_app

    config = _load(ctx)
    if host:
        config.web.host = host
    if port:
        config.web.port = port

    app = create_app(DependencyContainer(config))
    uvicorn.run(app, host=config.web.host, port=config.web.port, log_config=None)


@cli.command()
@click.argument("sequence")
@click.pass_context
def search(ctx: click.Context, sequence: str) -> None:
    """Search SEQUENCE against the corpus ('-' reads it from stdin)."""
    config = _load(ctx)
    if sequence == "-":
        sequence = sys.stdin.read()

    async def run_search() -> dict:
        container = DependencyContainer(config)
        async with container.lifecycle():
            results = await container.search_service.search(sequence)
            return results.to_dict()

    try:
        payload = asyncio.run(run_search())
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="SEQUENCE") from e
    except (SearchToolFailure, StoreError) as e:
        click.echo(f"Search failed: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(payload, indent=2))


@cli.command("build-corpus")
@click.pass_context
def build_corpus(ctx: click.Context) -> None:
    """Build the search database from every stored sequence file."""
    config = _load(ctx)

    async def run_build():
        container = DependencyContainer(config)
        await container.sequence_store.initialize()
        return await container.corpus_builder.build()

    try:
        result = asyncio.run(run_build())
    except SeqHarvestError as e:
        click.echo(f"Corpus build failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"Built {result.db_path} from {result.sequence_files} sequence file(s) in {result.duration_seconds:.1f}s")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show ingestion progress."""
    config = _load(ctx)

    async def run_status() -> dict:
        container = DependencyContainer(config)
        try:
            await container.wait_for_store()
            return await container.get_status()
        finally:
            await container.shutdown()

    try:
        payload = asyncio.run(run_status())
    except StoreError as e:
        click.echo(f"Store unavailable: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(payload, indent=2))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
