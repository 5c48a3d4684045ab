# ============================================================================
# RECOVERY SESSION TESTS
# ============================================================================

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from peertrack.core.session import RecoverySession
from peertrack.models.config import RecoveryConfig
from peertrack.models.stats import RecoveryStats


@pytest.fixture
def manager():
    mgr = MagicMock()
    mgr.active_downloads = AsyncMock(return_value=[])
    mgr.retry_stalled_download = AsyncMock()
    return mgr


@pytest.fixture
def fast_config(data_dir):
    return RecoveryConfig(data_dir=str(data_dir), health_check_interval=0.01)


class TestRecoverySession:

    def test_context_manager_runs_recovery_and_monitoring(
        self, fast_config, manager, make_download
    ):
        session = RecoverySession(fast_config, manager, verifier=AsyncMock(return_value=True))
        cp, _, final = make_download()

        async def run():
            await session.journal.upsert(cp)
            async with session:
                running = session.health_monitor.is_running
                await asyncio.sleep(0.05)
            return running, await session.wait_for_recovery()

        running, stats = asyncio.run(run())

        assert running is True
        assert session.health_monitor.is_running is False
        assert stats == RecoveryStats(resumed=1)
        assert final.exists()
        assert manager.active_downloads.await_count >= 1

    def test_schedule_recovery_is_idempotent(self, fast_config, manager):
        session = RecoverySession(fast_config, manager)

        async def run():
            first = session.schedule_recovery()
            second = session.schedule_recovery()
            await first
            return first is second

        assert asyncio.run(run()) is True

    def test_wait_without_schedule_returns_none(self, fast_config, manager):
        session = RecoverySession(fast_config, manager)
        assert asyncio.run(session.wait_for_recovery()) is None

    def test_components_share_data_dir(self, fast_config, manager, data_dir):
        session = RecoverySession(fast_config, manager)
        assert session.journal.db_path.parent == data_dir
        assert session.dead_letters.log_path.parent == data_dir
