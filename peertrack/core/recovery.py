"""
Recovers interrupted operations on application startup.

The sweep reconciles the checkpoint journal against the filesystem, one
checkpoint at a time, and resolves each entry to resumed, cleaned, kept pending
or dead-lettered.
"""

import asyncio
import logging
import os
import time
from collections.abc import Awaitable, Callable
from datetime import timedelta
from pathlib import Path

from peertrack.exceptions import CheckpointStateError, UnsafePathError
from peertrack.media.integrity import verify_audio_format
from peertrack.models.checkpoint import (
    Checkpoint,
    DownloadState,
    HydrationState,
    OperationType,
    TagWriteState,
)
from peertrack.models.config import RecoveryConfig
from peertrack.models.stats import RecoveryStats
from peertrack.storage.dead_letter import DeadLetterLog
from peertrack.storage.journal import CheckpointJournal
from peertrack.utils.formatting import format_size
from peertrack.utils.path import create_dir, ensure_safe_path
from peertrack.utils.structured_logger import RecoveryLogger, StructuredLogger

log = logging.getLogger(__name__)

FormatVerifier = Callable[..., Awaitable[bool]]


class CrashRecoveryService:
    """
    Runs the startup recovery sweep over pending checkpoints.

    Checkpoints are processed sequentially in priority order. A failure while
    processing one checkpoint is recorded against that checkpoint and never
    aborts the sweep.
    """

    def __init__(
        self,
        journal: CheckpointJournal,
        dead_letters: DeadLetterLog,
        config: RecoveryConfig,
        verifier: FormatVerifier = verify_audio_format,
        events: RecoveryLogger | None = None,
    ):
        self.journal = journal
        self.dead_letters = dead_letters
        self.config = config
        self._verify = verifier
        self.events = events or RecoveryLogger(
            StructuredLogger(__name__, enable_json=False, enable_console=False)
        )

    async def run_recovery_sweep(self) -> RecoveryStats:
        """
        Called once on application startup to recover from crashes.

        Never raises: an error that escapes per-checkpoint isolation (such as the
        journal becoming unreadable) is logged and ends the run, and the tallies
        gathered so far are returned.
        """
        log.info("Starting crash recovery sweep...")
        stats = RecoveryStats()
        try:
            await self._sweep(stats)
        except Exception as e:
            log.error(f"[red]Fatal error during crash recovery: {e}[/red]", exc_info=True)
            self.events.sweep_aborted(str(e))
        return stats

    async def _sweep(self, stats: RecoveryStats) -> None:
        started = time.monotonic()

        stats.pruned = await self.journal.prune_stale(
            timedelta(hours=self.config.stale_checkpoint_hours)
        )

        pending = await self.journal.pending_checkpoints()
        if not pending:
            log.info("[green]No pending operations to recover.[/green]")
            return

        log.info(f"Recovering {len(pending)} interrupted operation(s)...")
        self.events.sweep_started(pending=len(pending), pruned=stats.pruned)

        for checkpoint in pending:
            try:
                await self._recover_checkpoint(checkpoint, stats)
            except Exception as e:
                log.error(
                    f"[red]Recovery failed for checkpoint {checkpoint.id}: {e}[/red]",
                    exc_info=log.getEffectiveLevel() == logging.DEBUG,
                )
                checkpoint.failure_count += 1
                await self.journal.upsert(checkpoint)
                stats.failed += 1
                self.events.checkpoint_failed(
                    checkpoint.id, str(e), checkpoint.failure_count
                )

        log.info(
            f"[green]Recovery complete:[/green] {stats.resumed} resumed, "
            f"{stats.cleaned} cleaned, {stats.failed} failed, "
            f"{stats.dead_lettered} dead-lettered"
        )
        self.events.sweep_completed(
            duration_s=time.monotonic() - started,
            resumed=stats.resumed,
            cleaned=stats.cleaned,
            failed=stats.failed,
            dead_lettered=stats.dead_lettered,
        )

    async def _recover_checkpoint(
        self, checkpoint: Checkpoint, stats: RecoveryStats
    ) -> None:
        if checkpoint.failure_count >= self.config.max_recovery_failures:
            log.warning(
                f"[yellow]Checkpoint {checkpoint.id} failed "
                f"{checkpoint.failure_count} times, moving to dead-letter.[/yellow]"
            )
            await self.dead_letters.record(checkpoint)
            await self.journal.complete(checkpoint.id)
            stats.dead_lettered += 1
            self.events.checkpoint_dead_lettered(
                checkpoint.id,
                checkpoint.type_name,
                checkpoint.target_path,
                checkpoint.failure_count,
            )
            return

        match checkpoint.operation_type:
            case OperationType.DOWNLOAD:
                await self._recover_download(checkpoint, stats)
            case OperationType.TAG_WRITE:
                await self._recover_tag_write(checkpoint, stats)
            case OperationType.METADATA_HYDRATION:
                await self._recover_hydration(checkpoint, stats)
            case _:
                log.warning(f"Unknown operation type: {checkpoint.type_name}")
                await self._discard(checkpoint, "unknown operation type")

    async def _discard(self, checkpoint: Checkpoint, reason: str) -> None:
        """Completes a checkpoint that cannot inform any recovery decision."""
        await self.journal.complete(checkpoint.id)
        self.events.checkpoint_discarded(checkpoint.id, checkpoint.type_name, reason)

    async def _mark_cleaned(
        self, checkpoint: Checkpoint, stats: RecoveryStats, reason: str
    ) -> None:
        await self.journal.complete(checkpoint.id)
        stats.cleaned += 1
        self.events.checkpoint_cleaned(checkpoint.id, checkpoint.target_path, reason)

    async def _recover_download(
        self, checkpoint: Checkpoint, stats: RecoveryStats
    ) -> None:
        try:
            state: DownloadState = checkpoint.load_state(DownloadState)
        except CheckpointStateError as e:
            log.warning(f"Invalid checkpoint state for {checkpoint.id}: {e}")
            await self._discard(checkpoint, "unreadable payload")
            return

        log.info(f"Recovering download: {state.artist} - {state.title}")

        try:
            part_path = ensure_safe_path(state.part_file_path)
            final_path = ensure_safe_path(state.final_path)
        except UnsafePathError as e:
            log.warning(f"[yellow]Suspicious path detected in checkpoint: {e}[/yellow]")
            await self._discard(checkpoint, "unsafe path")
            return

        if not await asyncio.to_thread(part_path.is_file):
            log.info(
                f"Cleaning up orphaned checkpoint (no partial file): {part_path}"
            )
            await self._mark_cleaned(checkpoint, stats, "partial file missing")
            return

        part_size = (await asyncio.to_thread(part_path.stat)).st_size
        expected = state.expected_size_bytes

        if part_size >= expected * self.config.completion_threshold:
            log.info(
                f"Download appears complete ({format_size(part_size)}/"
                f"{format_size(expected)}), verifying..."
            )
            if await self._verify(part_path, final_path.suffix):
                await asyncio.to_thread(self._finalize_download, part_path, final_path)
                log.info(f"[green]Recovered and finalized download: {final_path}[/green]")
                await self.journal.complete(checkpoint.id)
                stats.resumed += 1
                self.events.checkpoint_resumed(
                    checkpoint.id, checkpoint.target_path, str(final_path)
                )
            else:
                log.warning(
                    f"[yellow]Downloaded file failed verification, deleting: "
                    f"{part_path}[/yellow]"
                )
                await asyncio.to_thread(part_path.unlink, missing_ok=True)
                await self._mark_cleaned(checkpoint, stats, "failed verification")
            return

        percent = part_size * 100.0 / expected if expected > 0 else 0.0
        log.info(
            f"Partial download found: {part_path} ({percent:.1f}%). "
            "Keeping checkpoint for a future session."
        )

    @staticmethod
    def _finalize_download(part_path: Path, final_path: Path) -> None:
        """Moves a verified partial file into place, replacing any existing file."""
        create_dir(final_path.parent)
        os.replace(part_path, final_path)

    async def _recover_tag_write(
        self, checkpoint: Checkpoint, stats: RecoveryStats
    ) -> None:
        try:
            state: TagWriteState = checkpoint.load_state(TagWriteState)
        except CheckpointStateError as e:
            log.warning(f"Invalid checkpoint state for {checkpoint.id}: {e}")
            await self._discard(checkpoint, "unreadable payload")
            return

        log.info(f"Recovering tag write: {state.file_path}")

        if state.temp_path:
            try:
                temp_path = ensure_safe_path(state.temp_path)
            except UnsafePathError as e:
                log.warning(f"[yellow]Not touching suspicious temp path: {e}[/yellow]")
                temp_path = None

            if temp_path and await asyncio.to_thread(temp_path.is_file):
                try:
                    await asyncio.to_thread(temp_path.unlink)
                    log.info(f"Cleaned up orphaned temp file: {temp_path}")
                    stats.cleaned += 1
                    self.events.checkpoint_cleaned(
                        checkpoint.id, checkpoint.target_path, "temp file removed"
                    )
                except OSError as e:
                    log.warning(f"Failed to delete temp file {temp_path}: {e}")

        await self.journal.complete(checkpoint.id)

    async def _recover_hydration(
        self, checkpoint: Checkpoint, stats: RecoveryStats
    ) -> None:
        try:
            state: HydrationState = checkpoint.load_state(HydrationState)
        except CheckpointStateError as e:
            log.warning(f"Invalid checkpoint state for {checkpoint.id}: {e}")
            await self._discard(checkpoint, "unreadable payload")
            return

        log.info(
            f"Recovering metadata hydration: track {state.track_id}, step {state.step}"
        )
        # The enrichment worker re-discovers unhydrated tracks on its own pass
        await self._mark_cleaned(checkpoint, stats, "hydration cleared")
