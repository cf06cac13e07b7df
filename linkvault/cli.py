"""
Command-line interface for linkvault.

Provides commands to run the metadata refresh scheduler, run single
cycles, refresh individual links, initialize the database and serve
the health API.

Usage:
    linkvault scheduler         # Run the refresh loop until SIGINT/SIGTERM
    linkvault run-once          # Run a single refresh cycle
    linkvault refresh LINK_ID   # Refresh one link now
    linkvault init-db           # Initialize database schema
    linkvault health            # Check dependencies
    linkvault serve             # Start the API server (with scheduler)
"""

import asyncio
import json
import signal
import sys
from uuid import UUID

import click

from linkvault.config.settings import get_settings
from linkvault.errors import ConfigError, LinkvaultError
from linkvault.observability.logging import setup_logging
from linkvault.observability.metrics import get_metrics


def _load_config(**overrides):
    from linkvault.scheduler.config import load_scheduler_config

    try:
        return load_scheduler_config(**overrides)
    except ConfigError as e:
        click.echo(click.style(str(e), fg="red"), err=True)
        sys.exit(2)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """linkvault - background metadata refresh for saved links."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    # Initialize tracing if enabled
    settings = get_settings()
    if settings.tracing_enabled:
        from linkvault.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


@main.command()
@click.option("--run-on-start", is_flag=True, help="Run the first cycle immediately")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def scheduler(run_on_start: bool, metrics: bool, metrics_port: int | None) -> None:
    """Run the refresh scheduler until interrupted."""
    from linkvault.scheduler.service import RefreshScheduler
    from linkvault.storage.database import Database

    overrides = {}
    if run_on_start:
        overrides["run_on_start"] = True
    config = _load_config(**overrides)

    async def run():
        if metrics:
            get_metrics().start_server(port=metrics_port)

        async with Database() as db:
            service = RefreshScheduler(database=db, config=config)

            # Handle shutdown signals
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(service.stop()))

            await service.start()

    asyncio.run(run())


@main.command("run-once")
@click.option("--batch-size", default=None, type=int, help="Override links per cycle")
def run_once(batch_size: int | None) -> None:
    """Run a single refresh cycle and print its report."""
    from linkvault.scheduler.service import RefreshScheduler
    from linkvault.storage.database import Database

    overrides = {}
    if batch_size is not None:
        overrides["batch_size"] = batch_size
    config = _load_config(**overrides)

    async def run():
        async with Database() as db:
            service = RefreshScheduler(database=db, config=config)

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(service.stop()))

            return await service.run_once()

    report = asyncio.run(run())

    click.echo(json.dumps(report.to_dict(), indent=2))
    if report.failed:
        click.echo(click.style(f"Cycle failed: {report.error}", fg="red"), err=True)
        sys.exit(1)


@main.command()
@click.argument("link_id", type=click.UUID)
def refresh(link_id: UUID) -> None:
    """Refresh a single link now (any status except archived)."""
    from linkvault.scheduler.service import RefreshScheduler
    from linkvault.storage.database import Database

    config = _load_config()

    async def run():
        async with Database() as db:
            service = RefreshScheduler(database=db, config=config)
            return await service.refresh_link(link_id)

    try:
        result = asyncio.run(run())
    except LinkvaultError as e:
        click.echo(click.style(str(e), fg="red"), err=True)
        sys.exit(1)

    click.echo(json.dumps(result.to_dict(), indent=2))


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from linkvault.links.repository import LinkRepository
    from linkvault.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        repo = LinkRepository(db)
        await repo.create_table()

        click.echo("Database initialized successfully")

        await db.close()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    from linkvault.observability.logging import get_logger
    logger = get_logger(__name__)

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from linkvault.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check scheduler configuration
        from linkvault.scheduler.config import load_scheduler_config
        try:
            load_scheduler_config()
            results["scheduler_config"] = True
        except ConfigError as e:
            results["scheduler_config"] = False
            logger.error("Scheduler configuration invalid", error=str(e))

        settings = get_settings()
        results["github_token_configured"] = settings.github_configured

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("postgres", "scheduler_config") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the API server; the refresh scheduler runs inside it."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "linkvault.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
