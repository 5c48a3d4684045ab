"""
Wires the recovery components together for one application run.
"""

import asyncio
import logging

from peertrack.core.health_monitor import DownloadHealthMonitor
from peertrack.core.recovery import CrashRecoveryService, FormatVerifier
from peertrack.core.transfers import DownloadManager
from peertrack.media.integrity import verify_audio_format
from peertrack.models.config import RecoveryConfig
from peertrack.models.stats import RecoveryStats
from peertrack.storage.dead_letter import DeadLetterLog
from peertrack.storage.journal import CheckpointJournal
from peertrack.utils.structured_logger import HealthLogger, RecoveryLogger

log = logging.getLogger(__name__)


class RecoverySession:
    """
    Owns the journal, the dead-letter log, the recovery sweep and the health
    monitor for the lifetime of the host application.

    Usage:
        async with RecoverySession(config, manager) as session:
            ...  # recovery runs in the background, monitoring is live
    """

    def __init__(
        self,
        config: RecoveryConfig,
        download_manager: DownloadManager,
        verifier: FormatVerifier = verify_audio_format,
        recovery_events: RecoveryLogger | None = None,
        health_events: HealthLogger | None = None,
    ):
        self.config = config
        self.journal = CheckpointJournal(config.data_path, config.journal_pool_size)
        self.dead_letters = DeadLetterLog(config.data_path)
        self.recovery = CrashRecoveryService(
            self.journal, self.dead_letters, config, verifier, recovery_events
        )
        self.health_monitor = DownloadHealthMonitor(
            download_manager, config, health_events
        )
        self._recovery_task: asyncio.Task | None = None

    async def run_recovery_sweep(self) -> RecoveryStats:
        return await self.recovery.run_recovery_sweep()

    def schedule_recovery(self) -> asyncio.Task:
        """Starts the sweep in the background so startup is not blocked."""
        if self._recovery_task is None:
            self._recovery_task = asyncio.create_task(
                self.run_recovery_sweep(), name="peertrack-recovery"
            )
        return self._recovery_task

    async def wait_for_recovery(self) -> RecoveryStats | None:
        if self._recovery_task is None:
            return None
        return await self._recovery_task

    def start_health_monitoring(self) -> None:
        self.health_monitor.start()

    async def stop_health_monitoring(self) -> None:
        await self.health_monitor.stop()

    async def __aenter__(self) -> "RecoverySession":
        self.schedule_recovery()
        self.start_health_monitoring()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.stop_health_monitoring()
        stats = await self.wait_for_recovery()
        if stats is not None:
            log.debug(f"Session closed after recovery: {stats.as_dict()}")
        return False
