"""Click-based CLI for carbon-collector.

Thin wrapper around library modules. Every operation delegates to the
scheduler runtime or to a single adapter.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)

_STATUS_STYLES = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from carbon_collector.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as e:
            console.print(f"[red]Invalid configuration: {e}[/red]")
            raise SystemExit(1) from e
    return ctx.obj["config"]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _styled(state: str) -> str:
    style = _STATUS_STYLES.get(state, "white")
    return f"[{style}]{state}[/{style}]"


def _results_table(results, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Task", style="bold")
    table.add_column("Result")
    table.add_column("Records", justify="right")
    table.add_column("Warnings", justify="right")
    table.add_column("Time (s)", justify="right")
    table.add_column("Errors")
    for result in results:
        table.add_row(
            result.task_id,
            "[green]success[/green]" if result.success else "[red]failed[/red]",
            str(result.record_count),
            str(len(result.warnings)),
            f"{result.execution_time:.2f}",
            "; ".join(result.errors)[:120],
        )
    return table


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="CARBON_COLLECTOR_CONFIG",
    default=None,
    help="Path to carbon-collector.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="carbon-price-collector")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Carbon Collector: scheduled carbon-market price collection with QA."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# start / stop
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """Run the scheduler in the foreground until SIGINT or SIGTERM."""
    config = _load_config(ctx)
    pid_file = Path(config.scheduler.pid_file)

    async def _run():
        from carbon_collector.scheduler import open_runtime

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        async with open_runtime(config) as runtime:
            runtime.scheduler.start()
            pid_file.parent.mkdir(parents=True, exist_ok=True)
            pid_file.write_text(str(os.getpid()))
            console.print(
                f"[green]✓[/green] Scheduler running with "
                f"{len(runtime.scheduler.get_tasks())} tasks (pid {os.getpid()})"
            )
            try:
                await stop_event.wait()
            finally:
                pid_file.unlink(missing_ok=True)
                console.print("Shutting down scheduler...")

    _run_async(_run())


@cli.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Signal a running scheduler to shut down."""
    config = _load_config(ctx)
    pid_file = Path(config.scheduler.pid_file)
    if not pid_file.exists():
        console.print(f"[yellow]No scheduler running (no PID file at {pid_file}).[/yellow]")
        raise SystemExit(1)

    try:
        pid = int(pid_file.read_text().strip())
    except ValueError:
        console.print(f"[red]Corrupt PID file: {pid_file}[/red]")
        raise SystemExit(1)

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pid_file.unlink(missing_ok=True)
        console.print(f"[yellow]Process {pid} not found; removed stale PID file.[/yellow]")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] Sent SIGTERM to scheduler (pid {pid})")


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show adapter health and each task's last known result."""
    config = _load_config(ctx)

    async def _run():
        from carbon_collector.scheduler import open_runtime

        async with open_runtime(config) as runtime:
            scheduler = runtime.scheduler
            health = await scheduler.get_health_status()

            table = Table(title=f"Carbon Collector Status: {_styled(health.scheduler)}")
            table.add_column("Task", style="bold")
            table.add_column("Schedule")
            table.add_column("Enabled")
            table.add_column("Health")
            table.add_column("Message")
            table.add_column("Last run")

            for task in scheduler.get_tasks():
                task_health = health.tasks[task.id]
                last = "N/A"
                if runtime.store is not None:
                    recent = await runtime.store.get_execution_history(task.id, limit=1)
                    if recent:
                        outcome = "ok" if recent[0].success else "failed"
                        last = f"{recent[0].timestamp:%Y-%m-%d %H:%M} ({outcome})"
                table.add_row(
                    task.id,
                    task.schedule,
                    "yes" if task.enabled else "no",
                    _styled(task_health.status),
                    task_health.message,
                    last,
                )

            console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("task_id", required=False)
@click.pass_context
def run(ctx: click.Context, task_id: str | None) -> None:
    """Run TASK_ID now, or every enabled task when omitted."""
    config = _load_config(ctx)

    async def _run():
        from carbon_collector.scheduler import open_runtime

        async with open_runtime(config) as runtime:
            scheduler = runtime.scheduler
            if task_id is None:
                return await scheduler.execute_all_tasks()
            return [await scheduler.execute_task(task_id)]

    from carbon_collector.core import TaskNotFoundError

    try:
        results = _run_async(_run())
    except TaskNotFoundError as e:
        known = ", ".join(e.context.get("known", []))
        console.print(f"[red]{e}[/red] (known tasks: {known})")
        raise SystemExit(1) from e
    console.print(_results_table(results, "Execution Results"))
    if ctx.obj["verbose"]:
        for result in results:
            for warning in result.warnings:
                console.print(f"[yellow]{result.task_id}: {warning}[/yellow]")
    if not all(r.success for r in results):
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--task-id", "-t", type=str, default=None, help="Only this task.")
@click.option("--limit", "-n", type=int, default=10, help="Number of results to show.")
@click.option(
    "--evidence", "show_evidence", is_flag=True, help="Show stored evidence (needs --task-id)."
)
@click.pass_context
def history(ctx: click.Context, task_id: str | None, limit: int, show_evidence: bool) -> None:
    """Show recent execution results, or evidence, from the run store."""
    if show_evidence and task_id is None:
        raise click.UsageError("--evidence requires --task-id")
    config = _load_config(ctx)
    if not config.storage.enabled:
        console.print("[yellow]Run store disabled (storage.enabled=false); no history.[/yellow]")
        raise SystemExit(1)

    async def _run():
        from carbon_collector.scheduler import create_run_store

        store = await create_run_store(config.storage)
        try:
            if show_evidence:
                return await store.get_evidence(task_id, limit=limit)
            return await store.get_execution_history(task_id=task_id, limit=limit)
        finally:
            await store.close()

    results = _run_async(_run())
    if show_evidence:
        _print_evidence(task_id, results)
        return
    if not results:
        console.print("No executions recorded.")
        return

    table = Table(title="Execution History")
    table.add_column("Timestamp")
    table.add_column("Task", style="bold")
    table.add_column("Result")
    table.add_column("Records", justify="right")
    table.add_column("Errors")
    for result in results:
        table.add_row(
            f"{result.timestamp:%Y-%m-%d %H:%M:%S}",
            result.task_id,
            "[green]success[/green]" if result.success else "[red]failed[/red]",
            str(result.record_count),
            "; ".join(result.errors)[:120],
        )
    console.print(table)


def _print_evidence(task_id: str, items: list) -> None:
    if not items:
        console.print(f"No evidence recorded for {task_id}.")
        return

    table = Table(title=f"Evidence: {task_id}")
    table.add_column("Timestamp")
    table.add_column("Source", style="bold")
    table.add_column("Kind")
    table.add_column("SHA-256")
    table.add_column("URL / Error")
    for item in items:
        if not item.success:
            kind = "[red]failure[/red]"
        elif item.screenshot:
            kind = "screenshot"
        else:
            kind = "payload"
        table.add_row(
            f"{item.timestamp:%Y-%m-%d %H:%M:%S}",
            item.source,
            kind,
            (item.sha256 or "-")[:12],
            (item.error if not item.success else item.url) or "-",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# test-adapter
# ---------------------------------------------------------------------------


@cli.command("test-adapter")
@click.argument("name")
@click.pass_context
def test_adapter(ctx: click.Context, name: str) -> None:
    """Smoke-test one adapter: health check, collect, validate.

    NAME is a market code or alias (cea, ccer, carb, cdr).
    """
    from carbon_collector.adapters import resolve_market

    try:
        market = resolve_market(name)
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    config = _load_config(ctx)

    async def _run():
        from carbon_collector.adapters import create_adapter
        from carbon_collector.collection import SourceFetcher, build_renderer

        async with SourceFetcher(config.fetch) as fetcher:
            renderer = build_renderer(config.fetch, fetcher)
            try:
                adapter = create_adapter(market, fetcher, renderer)
                console.print(f"Testing [bold]{adapter.name}[/bold] ({market})")

                health = await adapter.get_health_status()
                console.print(f"  Health: {_styled(health.status)} - {health.message}")

                collection = await adapter.collect_data()
                validation = adapter.validate_data(collection.records)
            finally:
                await renderer.close()
            return collection, validation

    collection, validation = _run_async(_run())

    table = Table(title="Adapter Test")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Records", str(len(collection.records)))
    table.add_row("Evidence", str(len(collection.evidence)))
    table.add_row(
        "Failed sources", str(sum(1 for e in collection.evidence if not e.success))
    )
    table.add_section()
    table.add_row("Valid", "[green]yes[/green]" if validation.is_valid else "[red]no[/red]")
    table.add_row("Errors", str(len(validation.errors)))
    table.add_row("Warnings", str(len(validation.warnings)))
    table.add_row("Quality score", f"{validation.quality_score:.1f}")
    console.print(table)

    for error in validation.errors:
        console.print(f"[red]  ✗ {error}[/red]")
    if ctx.obj["verbose"]:
        for warning in validation.warnings:
            console.print(f"[yellow]  ! {warning}[/yellow]")
        for record in collection.records[:5]:
            console.print(
                f"  {record.date} {record.instrument_code} "
                f"{record.price} {record.currency}"
            )


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: api.host).")
@click.option("--port", "-p", type=int, default=None, help="Port (default: api.port).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the operator REST API (and, by default, the scheduler)."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port
    if ctx.obj.get("config_path"):
        # The app factory re-reads configuration in the server process
        os.environ["CARBON_COLLECTOR_CONFIG"] = str(ctx.obj["config_path"])

    console.print(f"Starting carbon-collector API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "carbon_collector.api.app:create_app",
        factory=True,
        host=host,
        port=port,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
