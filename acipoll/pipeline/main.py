"""CLI entry point for the fabric poller.

This module provides the command-line interface for running one poll of
every configured controller, with progress display and a results summary.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from acipoll import __version__
from acipoll.models.config import ConfigManager, PollerConfig
from acipoll.models.data_models import PollResult
from acipoll.pipeline.orchestrator import PollOrchestrator


console = Console()

STAGE_DESCRIPTIONS = {
    "identify": "Resolving nodes and logging in...",
    "collect": "Collecting capacity, faults and topology...",
    "events": "Forwarding fault events...",
    "statistics": "Collecting interface statistics...",
    "output": "Writing capacity files...",
}


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default="config/config.yaml",
    help="Path to configuration YAML file",
)
@click.option(
    "--concurrency",
    "-k",
    type=int,
    help="Statistics requests in flight per controller (overrides config)",
)
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    help="Base output directory (overrides config)",
)
@click.option(
    "--timeout",
    "-t",
    type=float,
    help="Per-request read timeout in seconds (overrides config)",
)
@click.option(
    "--no-timeout",
    is_flag=True,
    help="Wait indefinitely for connections and responses",
)
@click.option(
    "--no-events",
    is_flag=True,
    help="Collect faults without forwarding events",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Disable progress display (useful for cron)",
)
@click.version_option(version=__version__, prog_name="acipoll")
def main(
    config: Path,
    concurrency: Optional[int],
    output_dir: Optional[Path],
    timeout: Optional[float],
    no_timeout: bool,
    no_events: bool,
    log_level: Optional[str],
    no_progress: bool,
) -> None:
    """
    ACI Capacity Poller - staged collection from fabric controllers.

    Logs in to every configured controller, collects capacity, faults,
    topology and interface statistics, forwards fault events to the
    monitoring system and writes per-controller capacity files.

    Examples:

        # Run with default configuration
        $ acipoll

        # Limit statistics requests to 4 per controller
        $ acipoll --concurrency 4

        # Reproduce the unbounded wait of requests
        $ acipoll --no-timeout
    """
    if timeout is not None and no_timeout:
        raise click.UsageError("--timeout and --no-timeout are mutually exclusive")

    try:
        cli_overrides = {}
        if concurrency is not None:
            cli_overrides["max_concurrent_requests"] = concurrency
        if output_dir is not None:
            cli_overrides["output_directory"] = str(output_dir)
        if timeout is not None:
            cli_overrides["request_timeout"] = timeout
        if no_timeout:
            cli_overrides["connect_timeout"] = None
            cli_overrides["request_timeout"] = None
            cli_overrides["_explicit_none"] = ["connect_timeout", "request_timeout"]
        if no_events:
            cli_overrides["forward_events"] = False
        if log_level is not None:
            cli_overrides["log_level"] = log_level.upper()

        config_manager = ConfigManager(config)
        poller_config = config_manager.load_config(cli_overrides)

        _display_config_summary(poller_config, no_progress)

        result = asyncio.run(_run_with_progress(poller_config, no_progress))

        _display_results(result, no_progress)

        sys.exit(0)

    except KeyboardInterrupt:
        console.print("\n[yellow]Poll interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}", style="bold red")
        if "--debug" in sys.argv:
            console.print_exception()
        sys.exit(1)


async def _run_with_progress(config: PollerConfig, no_progress: bool) -> PollResult:
    """
    Run the poll, showing the current stage unless disabled.

    Args:
        config: Poller configuration
        no_progress: Whether to disable the progress display

    Returns:
        Poll result
    """
    if no_progress:
        orchestrator = PollOrchestrator(config)
        return await orchestrator.run()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("[cyan]Starting...", total=None)

        def on_stage(stage: str) -> None:
            progress.update(task_id, description=f"[cyan]{STAGE_DESCRIPTIONS.get(stage, stage)}")

        orchestrator = PollOrchestrator(config, on_stage=on_stage)
        result = await orchestrator.run()
        progress.update(task_id, description="[green]Done", completed=1, total=1)
        return result


def _display_config_summary(config: PollerConfig, no_progress: bool) -> None:
    """Display configuration summary before running."""
    if no_progress:
        return

    timeout = f"{config.request_timeout}s" if config.request_timeout is not None else "none"
    console.print("\n[bold cyan]Poller Configuration[/bold cyan]")
    console.print(f"  Controllers: {len(config.controllers)}")
    console.print(f"  Concurrency: {config.max_concurrent_requests} requests per controller")
    console.print(f"  Request timeout: {timeout}")
    console.print(f"  Output: {config.output_directory}")
    console.print(f"  Events: {'forwarded to ' + config.event_host + ':' + str(config.event_port) if config.forward_events else 'disabled'}")
    console.print()


def _display_results(result: PollResult, no_progress: bool) -> None:
    """Display final results summary."""
    if no_progress:
        written = sum(c.interfaces_written for c in result.controllers)
        console.print(f"✓ Poll complete: {len(result.controllers)} controllers, {written} interfaces written")
        return

    console.print("\n[bold green]Poll Complete![/bold green]\n")

    table = Table(title=f"Per-Controller Results ({result.duration_seconds:.2f}s)")
    table.add_column("Controller", style="cyan")
    table.add_column("Login", justify="center")
    table.add_column("Node ID", justify="right")
    table.add_column("Nodes", justify="right", style="green")
    table.add_column("Interfaces", justify="right", style="green")
    table.add_column("Faults", justify="right", style="yellow")
    table.add_column("Events", justify="right", style="yellow")
    table.add_column("Stat Jobs", justify="right", style="magenta")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Written", justify="right", style="green")

    for summary in result.controllers:
        table.add_row(
            summary.name,
            "✓" if summary.logged_in else "✗",
            summary.node_id or "-",
            str(summary.nodes),
            str(summary.interfaces),
            str(summary.faults),
            str(summary.events_sent),
            str(summary.jobs_scheduled),
            str(summary.jobs_failed),
            str(summary.interfaces_written),
        )

    console.print(table)
    console.print()

    for summary in result.controllers:
        for path in summary.output_files:
            console.print(f"[bold]Output saved to:[/bold] {path}")
    console.print()


if __name__ == "__main__":
    main()
