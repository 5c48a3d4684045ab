"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
from datetime import timedelta
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from peertrack import __version__
from peertrack.core.recovery import CrashRecoveryService
from peertrack.exceptions import PeerTrackError
from peertrack.models.config import RecoveryConfig
from peertrack.storage.config_manager import ConfigManager
from peertrack.storage.dead_letter import DeadLetterLog
from peertrack.storage.journal import CheckpointJournal
from peertrack.utils.structured_logger import create_structured_logger

from .formatters import (
    print_checkpoint_table,
    print_config,
    print_dead_letter_table,
    print_health_table,
    print_recovery_summary,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("peertrack")

app = typer.Typer(
    name="peertrack",
    help=(
        "Crash recovery and transfer health tools for the peertrack download"
        " pipeline. Use 'peertrack <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "peertrack"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config() -> RecoveryConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config()
    except PeerTrackError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


def _open_journal(config: RecoveryConfig) -> CheckpointJournal:
    try:
        return CheckpointJournal(config.data_path, config.journal_pool_size)
    except PeerTrackError as e:
        console.print(f"[red]✗ Could not open recovery journal: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Show debug logs (-vv to include third-party libraries).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """PeerTrack recovery CLI"""
    if version:
        console.print(f"[bold]peertrack[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    if verbose >= 1:
        logging.getLogger("peertrack").setLevel("DEBUG")
    if verbose >= 2:
        logging.getLogger().setLevel("DEBUG")

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]peertrack init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config = _load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing config without asking."
    ),
):
    """Write a default configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(CONFIG_FILE).save_new_config({"data_dir": str(CONFIG_DIR)})
    except PeerTrackError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


@app.command()
def recover():
    """Run the crash recovery sweep once and print a summary."""
    config = _load_config()

    async def _recover_async():
        journal = _open_journal(config)
        base_events, recovery_events, _ = create_structured_logger(
            log_dir=config.data_path / "logs", enable_json=config.json_logs
        )
        base_events.set_session_context(command="recover", data_dir=config.data_dir)
        service = CrashRecoveryService(
            journal, DeadLetterLog(config.data_path), config, events=recovery_events
        )
        console.print("[bold cyan]🔧 Starting recovery sweep...[/bold cyan]")
        start_time = time.monotonic()
        try:
            stats = await service.run_recovery_sweep()
        finally:
            base_events.close()
        print_recovery_summary(stats, time.monotonic() - start_time)
        if stats.failed:
            raise typer.Exit(code=1)

    asyncio.run(_recover_async())


@app.command()
def pending():
    """List pending checkpoints in the order recovery will process them."""
    config = _load_config()

    async def _pending_async():
        journal = _open_journal(config)
        try:
            checkpoints = await journal.pending_checkpoints()
        except PeerTrackError as e:
            console.print(f"[red]Error accessing journal: {e}[/red]")
            raise typer.Exit(code=1) from e
        print_checkpoint_table(checkpoints)

    asyncio.run(_pending_async())


@app.command()
def health():
    """Show journal counts per status and the dead-letter count."""
    config = _load_config()

    async def _health_async():
        journal = _open_journal(config)
        try:
            report = await journal.get_health()
        except PeerTrackError as e:
            console.print(f"[red]Error accessing journal: {e}[/red]")
            raise typer.Exit(code=1) from e
        report.dead_letters = await DeadLetterLog(config.data_path).count()
        print_health_table(report)

    asyncio.run(_health_async())


@app.command(name="dead-letters")
def dead_letters(
    limit: int | None = typer.Option(
        None, "--limit", "-n", min=1, help="Show only the most recent N records."
    ),
):
    """Show checkpoints that exhausted their recovery attempts."""
    config = _load_config()

    async def _dead_letters_async():
        entries = await DeadLetterLog(config.data_path).entries(limit)
        print_dead_letter_table(entries)

    asyncio.run(_dead_letters_async())


@app.command(name="reset-failures")
def reset_failures(
    target_path: str = typer.Argument(..., help="Target path of the checkpoint(s)."),
):
    """Re-arm checkpoints for a target so the next sweep retries them."""
    config = _load_config()

    async def _reset_async():
        journal = _open_journal(config)
        try:
            count = await journal.reset_failure_count(target_path)
        except PeerTrackError as e:
            console.print(f"[red]Error accessing journal: {e}[/red]")
            raise typer.Exit(code=1) from e
        if count:
            console.print(f"[green]✓ Reset {count} checkpoint(s).[/green]")
        else:
            console.print(f"[yellow]No checkpoints found for '{target_path}'.[/yellow]")

    asyncio.run(_reset_async())


@app.command()
def prune(
    max_age_hours: int | None = typer.Option(
        None,
        "--max-age-hours",
        min=1,
        help="Prune checkpoints older than this (defaults to the configured value).",
    ),
):
    """Delete stale checkpoints without recovering them."""
    config = _load_config()
    hours = max_age_hours or config.stale_checkpoint_hours

    async def _prune_async():
        journal = _open_journal(config)
        try:
            count = await journal.prune_stale(timedelta(hours=hours))
        except PeerTrackError as e:
            console.print(f"[red]Error accessing journal: {e}[/red]")
            raise typer.Exit(code=1) from e
        console.print(
            f"[green]✓ Pruned {count} checkpoint(s) older than {hours}h.[/green]"
        )

    asyncio.run(_prune_async())


@app.command()
def vacuum():
    """Purge completed checkpoints and optimize the journal database."""
    config = _load_config()

    async def _vacuum():
        console.print("[cyan]Optimizing recovery journal...[/cyan]")
        journal = _open_journal(config)
        try:
            purged = await journal.purge_completed()
            await journal.vacuum()
        except PeerTrackError as e:
            console.print(f"[red]✗ Optimization failed: {e}[/red]")
            raise typer.Exit(code=1) from e
        console.print(
            f"[green]✓ Database optimized ({purged} completed row(s) purged).[/green]"
        )

    asyncio.run(_vacuum())
