"""
Functions for formatting and displaying data in the console using Rich.
"""

import json
from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from peertrack.models.checkpoint import Checkpoint
from peertrack.models.stats import JournalHealth, RecoveryStats
from peertrack.utils.formatting import format_age, format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `peertrack init --force` to write a fresh default config.",
        ],
        "PersistenceError": [
            "• The recovery journal could not be read or written.",
            "• Check that the data directory exists and is writable.",
            "• Run `peertrack vacuum` if the database was left fragmented.",
        ],
        "UnsafePathError": [
            "• A checkpoint references a path outside the library.",
            "• The checkpoint was discarded and no file was touched.",
        ],
        "PermissionError": [
            "• The data directory or a download folder is not writable.",
            "• Check file ownership and permissions.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_recovery_summary(stats: RecoveryStats, duration_s: float):
    """Displays the outcome of a recovery sweep in a summary panel."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(justify="right")

    table.add_row("✓ Resumed:", f"[bold green]{stats.resumed}[/bold green]")
    table.add_row("○ Cleaned:", f"[cyan]{stats.cleaned}[/cyan]")
    if stats.failed > 0:
        table.add_row("✗ Failed:", f"[bold red]{stats.failed}[/bold red]")
    if stats.dead_lettered > 0:
        table.add_row(
            "⚠ Dead-lettered:", f"[yellow]{stats.dead_lettered}[/yellow]"
        )
    if stats.pruned > 0:
        table.add_row("Pruned (stale):", f"[dim]{stats.pruned}[/dim]")

    table.add_row("", "")
    table.add_row("Resolved:", f"[bold]{stats.total_resolved}[/bold]")
    table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    if stats.failed or stats.dead_lettered:
        title = "⚠ [bold]Recovery Finished With Issues[/bold]"
        border_color = "yellow"
    else:
        title = "✓ [bold]Recovery Complete[/bold]"
        border_color = "green"

    console.print()
    console.print(
        Panel(
            table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )


def _download_size_hint(checkpoint: Checkpoint) -> str:
    try:
        state = json.loads(checkpoint.state_json)
    except json.JSONDecodeError:
        return "[red]unreadable[/red]"
    if not isinstance(state, dict):
        return "-"
    expected = state.get("expected_size_bytes")
    if not isinstance(expected, int):
        return "-"
    received = state.get("bytes_downloaded", 0)
    if isinstance(received, int) and received > 0:
        return f"{format_size(received)} / {format_size(expected)}"
    return format_size(expected)


def print_checkpoint_table(checkpoints: list[Checkpoint]):
    """Displays pending checkpoints in the order the sweep will process them."""
    console = Console()
    if not checkpoints:
        console.print("[green]✓ No pending checkpoints.[/green]")
        return

    table = Table(
        title=f"Pending Checkpoints ({len(checkpoints)})",
        box=box.ROUNDED,
        header_style="bold cyan",
    )
    table.add_column("Type")
    table.add_column("Target")
    table.add_column("Priority", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Age", style="dim")

    for cp in checkpoints:
        failures = (
            f"[red]{cp.failure_count}[/red]" if cp.failure_count else "0"
        )
        table.add_row(
            cp.type_name,
            cp.target_path,
            str(cp.priority),
            failures,
            _download_size_hint(cp),
            format_age(cp.created_at),
        )
    console.print(table)


def print_health_table(health: JournalHealth):
    """Displays journal row counts per status."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column(justify="right")

    table.add_row("Pending:", f"[yellow]{health.pending}[/yellow]")
    table.add_row("Completed:", f"[green]{health.completed}[/green]")
    table.add_row("Total Rows:", str(health.total))
    dead_style = "red" if health.dead_letters else "dim"
    table.add_row("Dead Letters:", f"[{dead_style}]{health.dead_letters}[/{dead_style}]")

    console.print(
        Panel(
            table,
            title="[bold]Recovery Journal[/bold]",
            border_style="cyan",
            expand=False,
        )
    )


def print_dead_letter_table(entries: list[dict[str, Any]]):
    """Displays dead-letter records."""
    console = Console()
    if not entries:
        console.print("[green]✓ Dead-letter log is empty.[/green]")
        return

    table = Table(
        title=f"Dead Letters ({len(entries)})",
        box=box.ROUNDED,
        header_style="bold red",
    )
    table.add_column("Logged At", style="dim")
    table.add_column("Type")
    table.add_column("Target")
    table.add_column("Failures", justify="right")

    for entry in entries:
        table.add_row(
            entry["timestamp"],
            entry["operation_type"],
            entry["target_path"],
            str(entry["failure_count"]),
        )
    console.print(table)
