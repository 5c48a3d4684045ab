# ============================================================================
# CHECKPOINT JOURNAL TESTS
# ============================================================================
"""
Checkpoint Journal Tests

Covers:
1. Upsert by id (insert, replace, creation time preserved)
2. Pending ordering: priority DESC, then created_at ASC
3. Idempotent completion
4. Stale pruning
5. Progress heartbeats and confirmed bytes
6. Failure-count reset, health counts, purge and vacuum
7. The checkpoint() context manager

Run with:
    pytest tests/test_journal.py -v
"""

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from peertrack.exceptions import PersistenceError
from peertrack.models.checkpoint import (
    Checkpoint,
    CheckpointStatus,
    DownloadState,
    OperationType,
    TagWriteState,
)
from peertrack.storage.journal import CheckpointJournal


def _tag_checkpoint(target: str, priority: int = 0, created_at=None) -> Checkpoint:
    cp = Checkpoint.for_operation(
        OperationType.TAG_WRITE,
        target,
        TagWriteState(file_path=target),
        priority,
    )
    if created_at is not None:
        cp.created_at = created_at
    return cp


# ============================================================================
# SCHEMA
# ============================================================================

class TestInitialization:

    def test_creates_database_and_indexes(self, data_dir):
        journal = CheckpointJournal(data_dir)
        assert journal.db_path == data_dir / "recovery_journal.sqlite"
        assert journal.db_path.is_file()

        conn = sqlite3.connect(journal.db_path)
        try:
            indexes = {
                row[0]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'index'"
                )
            }
        finally:
            conn.close()
        assert {"idx_recovery_order", "idx_recovery_target"} <= indexes

    def test_creates_missing_data_dir(self, tmp_path):
        journal = CheckpointJournal(tmp_path / "nested" / "data")
        assert journal.db_path.is_file()

    def test_unusable_location_raises_persistence_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(PersistenceError):
            CheckpointJournal(blocker / "data")


# ============================================================================
# UPSERT / GET
# ============================================================================

class TestUpsert:

    def test_insert_and_get(self, journal):
        cp = _tag_checkpoint("/music/a.flac", priority=3)

        async def run():
            await journal.upsert(cp)
            return await journal.get(cp.id)

        stored = asyncio.run(run())
        assert stored is not None
        assert stored.id == cp.id
        assert stored.operation_type == OperationType.TAG_WRITE
        assert stored.target_path == "/music/a.flac"
        assert stored.priority == 3
        assert stored.status == CheckpointStatus.PENDING
        assert stored.state_json == cp.state_json

    def test_upsert_replaces_and_keeps_created_at(self, journal):
        created = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        cp = _tag_checkpoint("/music/a.flac", created_at=created)

        async def run():
            await journal.upsert(cp)
            cp.failure_count = 2
            cp.created_at = datetime.now(timezone.utc)
            await journal.upsert(cp)
            return await journal.get(cp.id), await journal.pending_checkpoints()

        stored, pending = asyncio.run(run())
        assert stored.failure_count == 2
        assert stored.created_at == created
        assert len(pending) == 1

    def test_get_unknown_returns_none(self, journal):
        assert asyncio.run(journal.get("missing")) is None

    def test_unknown_operation_type_round_trips_as_text(self, journal):
        cp = Checkpoint(operation_type="Transcode", target_path="x", state_json="{}")

        async def run():
            await journal.upsert(cp)
            return await journal.get(cp.id)

        stored = asyncio.run(run())
        assert stored.operation_type == "Transcode"
        assert stored.type_name == "Transcode"


# ============================================================================
# ORDERING
# ============================================================================

class TestPendingOrder:

    def test_priority_then_age(self, journal):
        base = datetime.now(timezone.utc) - timedelta(hours=1)
        low_old = _tag_checkpoint("low-old", priority=0, created_at=base)
        high_new = _tag_checkpoint(
            "high-new", priority=5, created_at=base + timedelta(minutes=30)
        )
        high_old = _tag_checkpoint(
            "high-old", priority=5, created_at=base + timedelta(minutes=10)
        )
        low_new = _tag_checkpoint(
            "low-new", priority=0, created_at=base + timedelta(minutes=40)
        )

        async def run():
            for cp in (low_old, high_new, high_old, low_new):
                await journal.upsert(cp)
            return await journal.pending_checkpoints()

        pending = asyncio.run(run())
        assert [cp.target_path for cp in pending] == [
            "high-old",
            "high-new",
            "low-old",
            "low-new",
        ]

    def test_completed_rows_excluded(self, journal):
        a = _tag_checkpoint("a")
        b = _tag_checkpoint("b")

        async def run():
            await journal.upsert(a)
            await journal.upsert(b)
            await journal.complete(a.id)
            return await journal.pending_checkpoints()

        pending = asyncio.run(run())
        assert [cp.id for cp in pending] == [b.id]


# ============================================================================
# COMPLETION & PRUNING
# ============================================================================

class TestCompleteAndPrune:

    def test_complete_is_idempotent(self, journal):
        cp = _tag_checkpoint("a")

        async def run():
            await journal.upsert(cp)
            first = await journal.complete(cp.id)
            second = await journal.complete(cp.id)
            unknown = await journal.complete("missing")
            return first, second, unknown, await journal.get(cp.id)

        first, second, unknown, stored = asyncio.run(run())
        assert first is True
        assert second is False
        assert unknown is False
        assert stored.status == CheckpointStatus.COMPLETED

    def test_prune_stale_completes_old_pending_rows(self, journal):
        now = datetime.now(timezone.utc)
        stale = _tag_checkpoint("stale", created_at=now - timedelta(hours=25))
        fresh = _tag_checkpoint("fresh", created_at=now - timedelta(hours=23))

        async def run():
            await journal.upsert(stale)
            await journal.upsert(fresh)
            pruned = await journal.prune_stale(timedelta(hours=24))
            return pruned, await journal.pending_checkpoints()

        pruned, pending = asyncio.run(run())
        assert pruned == 1
        assert [cp.target_path for cp in pending] == ["fresh"]

    def test_prune_ignores_completed_rows(self, journal):
        old = _tag_checkpoint(
            "old", created_at=datetime.now(timezone.utc) - timedelta(days=3)
        )

        async def run():
            await journal.upsert(old)
            await journal.complete(old.id)
            return await journal.prune_stale(timedelta(hours=24))

        assert asyncio.run(run()) == 0


# ============================================================================
# PROGRESS HEARTBEATS
# ============================================================================

class TestProgress:

    def _download(self, received: int = 0) -> Checkpoint:
        state = DownloadState(
            part_file_path="/music/a.flac.part",
            final_path="/music/a.flac",
            expected_size_bytes=1000,
            bytes_downloaded=received,
        )
        return Checkpoint.for_operation(OperationType.DOWNLOAD, "a", state)

    def test_update_progress_skips_when_no_new_bytes(self, journal):
        cp = self._download()
        new_state = cp.load_state(DownloadState).model_copy(
            update={"bytes_downloaded": 500}
        )

        async def run():
            await journal.upsert(cp)
            skipped = await journal.update_progress(
                cp.id, new_state.model_dump_json(), 0, 0
            )
            confirmed_before = await journal.confirmed_bytes(cp.id)
            written = await journal.update_progress(
                cp.id, new_state.model_dump_json(), 0, 500
            )
            confirmed_after = await journal.confirmed_bytes(cp.id)
            return skipped, confirmed_before, written, confirmed_after

        skipped, before, written, after = asyncio.run(run())
        assert skipped is False
        assert before == 0
        assert written is True
        assert after == 500

    def test_confirmed_bytes_defaults_to_zero(self, journal):
        broken = Checkpoint(
            operation_type=OperationType.DOWNLOAD,
            target_path="x",
            state_json="not json",
        )

        async def run():
            await journal.upsert(broken)
            return (
                await journal.confirmed_bytes("missing"),
                await journal.confirmed_bytes(broken.id),
            )

        assert asyncio.run(run()) == (0, 0)


# ============================================================================
# MAINTENANCE
# ============================================================================

class TestMaintenance:

    def test_reset_failure_count_rearms_checkpoint(self, journal):
        cp = _tag_checkpoint("/music/a.flac")
        cp.failure_count = 3

        async def run():
            await journal.upsert(cp)
            await journal.complete(cp.id)
            reset = await journal.reset_failure_count("/music/a.flac")
            none = await journal.reset_failure_count("/music/other.flac")
            return reset, none, await journal.get(cp.id)

        reset, none, stored = asyncio.run(run())
        assert reset == 1
        assert none == 0
        assert stored.failure_count == 0
        assert stored.status == CheckpointStatus.PENDING

    def test_reset_failure_count_refreshes_creation_time(self, journal):
        old = datetime.now(timezone.utc) - timedelta(hours=30)
        cp = _tag_checkpoint("/music/old.flac", created_at=old)
        cp.failure_count = 3

        async def run():
            await journal.upsert(cp)
            await journal.complete(cp.id)
            await journal.reset_failure_count("/music/old.flac")
            pruned = await journal.prune_stale(timedelta(hours=24))
            return pruned, await journal.get(cp.id)

        pruned, stored = asyncio.run(run())
        assert pruned == 0
        assert stored.status == CheckpointStatus.PENDING
        assert stored.created_at > old + timedelta(hours=29)

    def test_health_purge_and_vacuum(self, journal):
        a, b, c = _tag_checkpoint("a"), _tag_checkpoint("b"), _tag_checkpoint("c")

        async def run():
            for cp in (a, b, c):
                await journal.upsert(cp)
            await journal.complete(a.id)
            before = await journal.get_health()
            purged = await journal.purge_completed()
            await journal.vacuum()
            after = await journal.get_health()
            return before, purged, after

        before, purged, after = asyncio.run(run())
        assert (before.pending, before.completed, before.total) == (2, 1, 3)
        assert purged == 1
        assert (after.pending, after.completed) == (2, 0)


# ============================================================================
# CONTEXT MANAGER
# ============================================================================

class TestCheckpointContext:

    def test_completes_on_success(self, journal):
        state = TagWriteState(file_path="/music/a.flac", temp_path="/music/a.tmp")

        async def run():
            async with journal.checkpoint(
                OperationType.TAG_WRITE, "/music/a.flac", state
            ) as cp:
                inside = await journal.pending_checkpoints()
            return cp, inside, await journal.pending_checkpoints()

        cp, inside, after = asyncio.run(run())
        assert [p.id for p in inside] == [cp.id]
        assert after == []

    def test_stays_pending_on_error(self, journal):
        state = TagWriteState(file_path="/music/a.flac")

        async def run():
            with pytest.raises(RuntimeError):
                async with journal.checkpoint(
                    OperationType.TAG_WRITE, "/music/a.flac", state
                ):
                    raise RuntimeError("tag write crashed")
            return await journal.pending_checkpoints()

        pending = asyncio.run(run())
        assert len(pending) == 1
        assert pending[0].target_path == "/music/a.flac"

    def test_rejects_mismatched_payload(self, journal):
        state = TagWriteState(file_path="/music/a.flac")

        async def run():
            async with journal.checkpoint(OperationType.DOWNLOAD, "x", state):
                pass

        with pytest.raises(TypeError):
            asyncio.run(run())
