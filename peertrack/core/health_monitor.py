"""
Watchdog for live transfers.

Polls the download manager on a fixed interval, detects transfers that stop
receiving bytes, and asks the manager to retry them.
"""

import asyncio
import logging
from contextlib import suppress

from peertrack.core.transfers import DownloadManager, TransferContext
from peertrack.models.config import RecoveryConfig
from peertrack.utils.structured_logger import HealthLogger, StructuredLogger

log = logging.getLogger(__name__)


class DownloadHealthMonitor:
    """
    Detects stalled transfers and triggers automatic retries.

    A transfer is stalled once it has made no progress for a number of
    consecutive ticks. Transfers close to completion get twice the patience,
    since peers often pause briefly before sending the last chunk.
    """

    def __init__(
        self,
        download_manager: DownloadManager,
        config: RecoveryConfig,
        events: HealthLogger | None = None,
    ):
        self._download_manager = download_manager
        self.interval = config.health_check_interval
        self.stall_tick_threshold = config.stall_tick_threshold
        self.late_stage_stall_tick_threshold = config.late_stage_stall_tick_threshold
        self.late_stage_ratio = config.late_stage_ratio
        self.events = events or HealthLogger(
            StructuredLogger(__name__, enable_json=False, enable_console=False)
        )

        self._stall_counters: dict[str, int] = {}
        self._previous_bytes: dict[str, int] = {}
        self._monitor_task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    @property
    def stall_counts(self) -> dict[str, int]:
        """A copy of the consecutive no-progress tick counts per transfer."""
        return dict(self._stall_counters)

    @property
    def previous_bytes(self) -> dict[str, int]:
        """A copy of the byte counts observed on the previous tick."""
        return dict(self._previous_bytes)

    def start(self) -> None:
        """Starts the monitoring loop on the running event loop."""
        if self.is_running:
            log.debug("Health monitor already running.")
            return

        self._stop_event = asyncio.Event()
        self._monitor_task = asyncio.create_task(
            self._monitor_loop(self._stop_event), name="peertrack-health-monitor"
        )
        log.info(f"Download health monitor started (interval {self.interval:g}s).")
        self.events.monitor_started(self.interval)

    async def stop(self) -> None:
        """Signals the loop to exit and waits for the current tick to finish."""
        if self._monitor_task is None:
            return

        self._stop_event.set()
        with suppress(asyncio.CancelledError):
            await self._monitor_task
        self._monitor_task = None
        self._stop_event = None

        log.info("Download health monitor stopped.")
        self.events.monitor_stopped(self.ticks)

    async def _monitor_loop(self, stop_event: asyncio.Event) -> None:
        # Ticks run inline and never overlap
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.check_health()
            except Exception as e:
                log.error(f"[red]Health check failed: {e}[/red]", exc_info=True)

    async def check_health(self) -> list[str]:
        """
        Runs a single health tick.

        Returns:
            The ids of transfers that received a stall intervention this tick.
        """
        snapshot = await self._download_manager.active_downloads()
        active = [ctx for ctx in snapshot if ctx.is_downloading]
        self.ticks += 1

        active_ids = {ctx.id for ctx in active}
        for transfer_id in self._stall_counters.keys() | self._previous_bytes.keys():
            if transfer_id not in active_ids:
                self._stall_counters.pop(transfer_id, None)
                self._previous_bytes.pop(transfer_id, None)

        intervened: list[str] = []
        for ctx in active:
            try:
                if await self._check_transfer(ctx):
                    intervened.append(ctx.id)
            except Exception as e:
                log.error(f"Error checking health of transfer {ctx.id}: {e}")

        return intervened

    async def _check_transfer(self, ctx: TransferContext) -> bool:
        current = ctx.bytes_received
        previous = self._previous_bytes.setdefault(ctx.id, current)
        self._previous_bytes[ctx.id] = current

        if current - previous > 0:
            if ctx.id in self._stall_counters:
                self._stall_counters[ctx.id] = 0
            return False

        # A restarted transfer reports fewer bytes; that is no progress either
        stalls = self._stall_counters.get(ctx.id, 0) + 1
        self._stall_counters[ctx.id] = stalls

        threshold = self.calculate_stall_threshold(ctx.total_bytes, current)
        if stalls < threshold:
            log.debug(f"Transfer {ctx.id} idle for {stalls}/{threshold} ticks.")
            return False

        await self._handle_stalled_download(ctx, stalls * self.interval)
        return True

    def calculate_stall_threshold(self, total_bytes: int, bytes_received: int) -> int:
        """Number of idle ticks tolerated before a transfer counts as stalled."""
        if total_bytes > 0 and bytes_received > total_bytes * self.late_stage_ratio:
            return self.late_stage_stall_tick_threshold
        return self.stall_tick_threshold

    async def _handle_stalled_download(
        self, ctx: TransferContext, stalled_seconds: float
    ) -> None:
        name = ctx.title or ctx.id
        log.warning(
            f"[yellow]Transfer '{name}' stalled for {stalled_seconds:.0f}s at "
            f"{ctx.progress:.0%}. Triggering auto-retry.[/yellow]"
        )
        self.events.stall_intervention(
            ctx.id, stalled_seconds, ctx.bytes_received, ctx.total_bytes
        )
        try:
            # The retry runs to completion even if the monitor is cancelled
            await asyncio.shield(self._download_manager.retry_stalled_download(ctx.id))
        except Exception as e:
            log.error(f"[red]Failed to handle stalled download {ctx.id}: {e}[/red]")
            self.events.intervention_failed(ctx.id, str(e))
        finally:
            self._stall_counters.pop(ctx.id, None)
