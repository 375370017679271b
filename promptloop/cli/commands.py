"""promptloop CLI — Typer-based command-line interface."""

from __future__ import annotations

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from promptloop import __version__

app = typer.Typer(
    name="promptloop",
    help="promptloop - scheduled prompt runner with Discord/Telegram delivery",
    no_args_is_help=True,
)

console = Console()

_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to config.yaml")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"promptloop v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
) -> None:
    """promptloop - scheduled prompt runner."""


def setup_logging(level: str = "INFO") -> None:
    """Single stderr sink at ``level``."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _load(config_path: str | None, require: bool = False):
    from promptloop.core.config.loader import load_config
    from promptloop.core.errors import ConfigError

    try:
        config = load_config(config_path)
        if require:
            config.require()
        elif not config.database.url:
            raise ConfigError("Missing required configuration: DATABASE_URL")
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    setup_logging(config.logging.level)
    return config


def _open_store(config):
    from promptloop.storage.store import JobStore

    return JobStore.open(config.database.url)


def _fmt(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


# ════════════════════════════════════════════════════════════
# run / once — execution loop
# ════════════════════════════════════════════════════════════


@app.command()
def run(config_path: str | None = _CONFIG_OPTION) -> None:
    """Start the worker loop (one job per tick) until interrupted."""
    from promptloop.core.background.worker import JobWorker

    config = _load(config_path, require=True)
    worker = JobWorker.from_config(config)
    console.print(
        f"[green]Starting promptloop worker (every {config.worker.interval_s}s)[/green]"
    )
    try:
        asyncio.run(worker.run_forever())
    except KeyboardInterrupt:
        console.print("Bye!")


@app.command()
def once(
    config_path: str | None = _CONFIG_OPTION,
    max_jobs: int | None = typer.Option(None, "--max-jobs", "-n", help="Stop after N jobs"),
    time_budget: float | None = typer.Option(
        None, "--time-budget", "-t", help="Stop after this many seconds"
    ),
) -> None:
    """Drain due jobs once and print the counters."""
    from promptloop.core.background.worker import JobWorker

    config = _load(config_path, require=True)
    worker = JobWorker.from_config(config)
    stats = asyncio.run(
        worker.drain(
            max_jobs=max_jobs if max_jobs is not None else config.worker.max_jobs_per_run,
            time_budget_s=(
                time_budget if time_budget is not None else config.worker.time_budget_s
            ),
        )
    )

    table = Table(title="promptloop run")
    table.add_column("Processed", style="cyan")
    table.add_column("Success", style="green")
    table.add_column("Fail", style="red")
    table.add_column("Disabled", style="yellow")
    table.add_row(str(stats.processed), str(stats.success), str(stats.fail), str(stats.disabled))
    console.print(table)


# ════════════════════════════════════════════════════════════
# status / history — inspection
# ════════════════════════════════════════════════════════════


@app.command()
def status(config_path: str | None = _CONFIG_OPTION) -> None:
    """List jobs with their state and next run."""
    config = _load(config_path)
    jobs = _open_store(config).list_jobs()

    if not jobs:
        console.print("[dim]No jobs found.[/dim]")
        return

    table = Table(title="Jobs")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Schedule", style="yellow")
    table.add_column("Channel", style="blue")
    table.add_column("Enabled", style="green")
    table.add_column("Fails", style="red")
    table.add_column("Next run (UTC)", style="magenta")

    for job in jobs:
        if job.schedule_type == "cron":
            schedule = job.schedule_cron or "-"
        elif job.schedule_type == "weekly":
            schedule = f"weekly {job.schedule_day_of_week} {job.schedule_time}"
        else:
            schedule = f"{job.schedule_type} {job.schedule_time}"
        table.add_row(
            job.id,
            job.name,
            schedule,
            job.channel_type,
            str(job.enabled),
            str(job.fail_count),
            _fmt(job.next_run_at),
        )

    console.print(table)


@app.command()
def history(
    job_id: str = typer.Argument(help="Job ID"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of rows"),
    config_path: str | None = _CONFIG_OPTION,
) -> None:
    """Show the most recent runs of a job."""
    config = _load(config_path)
    rows = _open_store(config).get_run_histories(job_id, limit=limit)

    if not rows:
        console.print(f"[dim]No runs found for job {job_id}.[/dim]")
        return

    table = Table(title=f"Runs of {job_id}")
    table.add_column("Run at (UTC)", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Output / error", style="white")

    for row in rows:
        detail = row.output_preview if row.status == "success" else row.error_message
        style = "green" if row.status == "success" else "red"
        table.add_row(
            _fmt(row.run_at), f"[{style}]{row.status}[/{style}]", (detail or "")[:120]
        )

    console.print(table)


# ════════════════════════════════════════════════════════════
# enable / disable — operator control
# ════════════════════════════════════════════════════════════


@app.command()
def enable(
    job_id: str = typer.Argument(help="Job ID to enable"),
    config_path: str | None = _CONFIG_OPTION,
) -> None:
    """Re-enable a job: clears its failure streak and recomputes the next run."""
    from promptloop.core.cron.schedule import compute_next_run
    from promptloop.core.errors import ScheduleError

    config = _load(config_path)
    store = _open_store(config)
    job = store.get_job(job_id)
    if job is None:
        console.print(f"[red]Job not found:[/red] {job_id}")
        raise typer.Exit(code=1)

    try:
        next_run_at = compute_next_run(job, tz=config.worker.timezone)
    except ScheduleError as e:
        console.print(f"[red]Cannot schedule job {job_id}:[/red] {e}")
        raise typer.Exit(code=1)

    store.set_enabled(job_id, True, next_run_at)
    console.print(f"[green]Enabled job:[/green] {job_id} (next run {_fmt(next_run_at)} UTC)")


@app.command()
def disable(
    job_id: str = typer.Argument(help="Job ID to disable"),
    config_path: str | None = _CONFIG_OPTION,
) -> None:
    """Disable a job."""
    config = _load(config_path)
    if _open_store(config).set_enabled(job_id, False):
        console.print(f"[green]Disabled job:[/green] {job_id}")
    else:
        console.print(f"[red]Job not found:[/red] {job_id}")
        raise typer.Exit(code=1)


# ════════════════════════════════════════════════════════════
# encrypt — prepare channel configuration
# ════════════════════════════════════════════════════════════


@app.command()
def encrypt(
    value: str = typer.Argument(help="Plaintext credential (webhook URL, bot token, chat id)"),
    config_path: str | None = _CONFIG_OPTION,
) -> None:
    """Encrypt a channel credential with the configured secret."""
    from promptloop.core.config.loader import load_config
    from promptloop.core.errors import ConfigError
    from promptloop.core.vault import SecretVault

    try:
        vault = SecretVault.from_config(load_config(config_path))
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    console.print(vault.encrypt(value), soft_wrap=True)
