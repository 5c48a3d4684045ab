"""
Append-only log of checkpoints that exhausted their automatic recovery budget.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles

from peertrack.models.checkpoint import Checkpoint

log = logging.getLogger(__name__)

DEAD_LETTER_TAG = "DEAD_LETTER"

_ENTRY_PATTERN = re.compile(
    r"^\[(?P<timestamp>[^\]]+)\] DEAD_LETTER \| Type: (?P<type>.*?) \| "
    r"Path: (?P<path>.*?) \| Failures: (?P<failures>\d+) \| State: (?P<state>.*)$"
)


def format_entry(checkpoint: Checkpoint, timestamp: datetime | None = None) -> str:
    """Formats a single dead-letter line (without the trailing newline)."""
    when = (timestamp or datetime.now(timezone.utc)).isoformat()
    # Payloads and paths are kept on one line so the log stays line-oriented
    target = checkpoint.target_path.replace("\n", " ")
    state = checkpoint.state_json.replace("\n", " ")
    return (
        f"[{when}] {DEAD_LETTER_TAG} | Type: {checkpoint.type_name} | "
        f"Path: {target} | Failures: {checkpoint.failure_count} | State: {state}"
    )


class DeadLetterLog:
    """Writes and reads `dead_letters.log` under the application data directory."""

    def __init__(self, data_dir_path: Path):
        self.log_path = data_dir_path / "dead_letters.log"
        self._write_lock = asyncio.Lock()

    async def record(self, checkpoint: Checkpoint) -> None:
        """
        Appends a dead-letter record for a checkpoint.

        Raises:
            OSError: If the log cannot be written. Callers decide whether the
            checkpoint may be completed without its record.
        """
        line = format_entry(checkpoint) + "\n"
        async with self._write_lock:
            await asyncio.to_thread(
                self.log_path.parent.mkdir, parents=True, exist_ok=True
            )
            async with aiofiles.open(self.log_path, "a", encoding="utf-8") as f:
                await f.write(line)
        log.warning(f"Dead-letter logged to: {self.log_path}")

    async def entries(self, limit: int | None = None) -> list[dict[str, Any]]:
        """
        Parses the log into dictionaries, newest last. Lines that do not match the
        record format are skipped.
        """
        if not await asyncio.to_thread(self.log_path.is_file):
            return []

        records = []
        async with aiofiles.open(self.log_path, encoding="utf-8") as f:
            async for line in f:
                match = _ENTRY_PATTERN.match(line.rstrip("\n"))
                if not match:
                    continue
                records.append(
                    {
                        "timestamp": match.group("timestamp"),
                        "operation_type": match.group("type"),
                        "target_path": match.group("path"),
                        "failure_count": int(match.group("failures")),
                        "state_json": match.group("state"),
                    }
                )
        if limit is not None:
            return records[-limit:] if limit > 0 else []
        return records

    async def count(self) -> int:
        return len(await self.entries())
