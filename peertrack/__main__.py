"""
Entry point for `peertrack` and `python -m peertrack`.

Anything that escapes a command is rendered as a panel with suggestions and
turned into a non-zero exit status.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from peertrack.cli.app import app
from peertrack.cli.formatters import format_error_with_suggestions
from peertrack.exceptions import PeerTrackError, PersistenceError

log = logging.getLogger("peertrack")


def _use_utf8_streams() -> None:
    # Windows consoles default to a legacy code page that cannot print the status glyphs
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass


def main() -> None:
    if os.name == "nt":
        _use_utf8_streams()

    console = Console(stderr=True)
    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]⚠️  Interrupted. Pending checkpoints are kept.[/yellow]")
        sys.exit(130)
    except PersistenceError as e:
        console.print(format_error_with_suggestions(e, {"component": "journal"}))
        sys.exit(1)
    except PeerTrackError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
