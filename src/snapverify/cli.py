"""
Snapverify Command Line Interface.

This module provides the CLI entry point for snapshot backup verification.
It is meant to be scheduled (cron, systemd timer) on every cluster node;
only the elected master does any work.

Exit codes:
    0: Backup verified, or this node is not the master
    1: Verification failed (on-call has been notified)
    2: Configuration error
    130: Interrupted
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Any

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from snapverify.cluster import ClusterApi, ClusterGateway, RetryingCaller
from snapverify.config import ConfigurationError, LoggingConfig, SnapverifyConfig, load_config
from snapverify.notify import FailureNotifier, init_sentry
from snapverify.orchestrator import (
    BackupVerificationOrchestrator,
    RunContext,
    RunOutcome,
    RunReport,
)
from snapverify.version import __version__

console = Console()
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130

PACKAGE_LOGGER = "snapverify"


def configure_logging(config: LoggingConfig, verbose: bool = False) -> logging.Logger:
    """Configure the package logger once per process.

    Timestamps are rendered in UTC. Records go to stderr, and also to
    ``config.file`` when one is set.

    Args:
        config: Logging settings
        verbose: Force DEBUG level

    Returns:
        The configured package logger
    """
    formatter = logging.Formatter(config.format)
    formatter.converter = time.gmtime

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    package_logger.setLevel(logging.DEBUG if verbose else config.level.value)
    package_logger.propagate = False

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return package_logger


def _load_config_or_exit(config_path: str | None) -> SnapverifyConfig:
    """Load configuration, exiting with EXIT_CONFIG_ERROR on failure."""
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(EXIT_CONFIG_ERROR)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(EXIT_CONFIG_ERROR)


def _cancel_on_sigterm(task: asyncio.Task[Any]) -> None:
    """Cancel the running task on SIGTERM so cleanup still runs."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
    except NotImplementedError:
        logger.debug("SIGTERM handling not supported on this platform")


async def _execute(
    config: SnapverifyConfig,
    command: str,
    retention_months: int | None = None,
) -> RunReport:
    """Build the components and run one orchestrator command.

    Args:
        config: Validated configuration
        command: "run" for the full pipeline, "prune" for retention only
        retention_months: Retention override for "prune"

    Returns:
        RunReport of the finished run
    """
    task = asyncio.current_task()
    if task is not None:
        _cancel_on_sigterm(task)

    context = RunContext.create(
        probe_prefix=config.probe.index_prefix,
        restore_prefix=config.probe.restore_prefix,
    )
    notifier = FailureNotifier.from_config(config)

    async with ClusterGateway(config.cluster) as gateway:
        api = ClusterApi(RetryingCaller(gateway))
        orchestrator = BackupVerificationOrchestrator(
            config=config,
            context=context,
            api=api,
            notifier=notifier,
        )
        if command == "prune":
            return await orchestrator.prune_expired(retention_months)
        return await orchestrator.run()


def _run_command(
    config: SnapverifyConfig,
    command: str,
    verbose: bool,
    retention_months: int | None = None,
) -> RunReport:
    """Run a command and map failures to exit codes."""
    try:
        return asyncio.run(_execute(config, command, retention_months))
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("[yellow]Interrupted.[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        console.print(f"[red]Backup verification failed:[/red] {e}")
        if verbose:
            console.print_exception()
        sys.exit(EXIT_FAILURE)


@click.group()
@click.version_option(version=__version__, prog_name="snapverify")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Snapverify: Snapshot Backup Verification for Elasticsearch.

    Proves that the cluster's snapshots can actually be restored by
    snapshotting, restoring and comparing a probe dataset.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def run(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Run a full backup verification.

    Exits quietly unless this node is the elected master.
    """
    verbose = verbose or ctx.obj.get("verbose", False)
    cfg = _load_config_or_exit(config)
    configure_logging(cfg.logging, verbose)
    init_sentry(cfg)

    report = _run_command(cfg, "run", verbose)
    _display_report(report)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration file",
)
@click.option(
    "--months",
    type=click.IntRange(min=1),
    default=None,
    help="Months of repositories to keep (overrides configuration)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def prune(ctx: click.Context, config: str | None, months: int | None, verbose: bool) -> None:
    """Remove monthly repositories older than the retention window."""
    verbose = verbose or ctx.obj.get("verbose", False)
    cfg = _load_config_or_exit(config)
    configure_logging(cfg.logging, verbose)
    init_sentry(cfg)

    report = _run_command(cfg, "prune", verbose, retention_months=months)
    _display_report(report)


@main.command("validate-config")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration file",
)
def validate_config(config: str | None) -> None:
    """Load, validate and display the effective configuration."""
    cfg = _load_config_or_exit(config)

    console.print(
        Panel(
            "[bold blue]Snapverify Configuration[/bold blue]",
            title="Configuration",
        )
    )
    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for key, value in _flatten(cfg.to_display_dict()):
        table.add_row(key, "" if value is None else str(value))
    console.print(table)

    if cfg.is_production:
        console.print("[dim]Production environment: failures page on-call.[/dim]")
    console.print("[green]Configuration is valid.[/green]")


def _flatten(data: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    """Flatten nested settings into dotted keys."""
    rows: list[tuple[str, Any]] = []
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, f"{dotted}."))
        else:
            rows.append((dotted, value))
    return rows


def _display_report(report: RunReport) -> None:
    """Display a summary of the run."""
    if report.outcome is RunOutcome.NOT_MASTER:
        console.print("[dim]Not the elected master; nothing to do.[/dim]")
        return

    console.print()
    title = "Backup Verified" if report.outcome is RunOutcome.VERIFIED else "Pruning Complete"
    console.print(Panel(f"[bold green]{title}[/bold green]"))

    summary_table = Table(title="Run Summary", show_header=False, box=None)
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Value", style="green")

    summary_table.add_row("Outcome", report.outcome.value if report.outcome else "-")
    if report.outcome is RunOutcome.VERIFIED:
        context = report.context
        summary_table.add_row("Repository", context.repository)
        summary_table.add_row("Repository Created", "Yes" if report.repository_created else "No")
        summary_table.add_row("Snapshot", context.snapshot)
        if report.snapshot:
            summary_table.add_row("Snapshot State", report.snapshot.state)
            summary_table.add_row(
                "Shards",
                f"{report.snapshot.shards_successful}/{report.snapshot.shards_total}",
            )
            if report.snapshot.duration_ms is not None:
                summary_table.add_row("Snapshot Duration", f"{report.snapshot.duration_ms / 1000:.1f}s")
        summary_table.add_row("Documents Verified", str(report.documents_verified))
        if report.stale_indices_removed:
            summary_table.add_row("Stale Indices Removed", ", ".join(report.stale_indices_removed))

    pruned = ", ".join(report.pruned_repositories) if report.pruned_repositories else "none"
    summary_table.add_row("Pruned Repositories", pruned)
    if report.duration_seconds is not None:
        duration = report.duration_seconds
        summary_table.add_row("Duration", f"{int(duration // 60)}m {int(duration % 60)}s")

    console.print(summary_table)


if __name__ == "__main__":
    main()
