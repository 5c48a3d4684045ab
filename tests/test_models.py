# ============================================================================
# CHECKPOINT MODEL TESTS
# ============================================================================

import json

import pytest

from peertrack.exceptions import CheckpointStateError
from peertrack.models.checkpoint import (
    Checkpoint,
    CheckpointStatus,
    DownloadState,
    HydrationState,
    OperationType,
    parse_operation_type,
)
from peertrack.models.stats import JournalHealth, RecoveryStats


class TestCheckpoint:

    def test_for_operation_serializes_payload(self):
        state = DownloadState(
            artist="Artist",
            title="Song",
            part_file_path="/music/song.flac.part",
            final_path="/music/song.flac",
            expected_size_bytes=1234,
        )

        cp = Checkpoint.for_operation(OperationType.DOWNLOAD, "Artist - Song", state, 7)

        assert cp.status == CheckpointStatus.PENDING
        assert cp.priority == 7
        assert cp.failure_count == 0
        assert cp.type_name == "Download"
        assert json.loads(cp.state_json)["expected_size_bytes"] == 1234
        assert cp.created_at.tzinfo is not None

    def test_ids_are_unique(self):
        state = HydrationState(track_id="t")
        a = Checkpoint.for_operation(OperationType.METADATA_HYDRATION, "t", state)
        b = Checkpoint.for_operation(OperationType.METADATA_HYDRATION, "t", state)
        assert a.id != b.id

    def test_load_state_round_trips(self):
        state = HydrationState(track_id="t", step=2, collected_data={"bpm": 120})
        cp = Checkpoint.for_operation(OperationType.METADATA_HYDRATION, "t", state)
        assert cp.load_state(HydrationState) == state

    def test_load_state_wraps_validation_errors(self):
        cp = Checkpoint(
            operation_type=OperationType.DOWNLOAD,
            target_path="x",
            state_json='{"artist": "missing paths"}',
        )
        with pytest.raises(CheckpointStateError):
            cp.load_state(DownloadState)

    def test_parse_operation_type(self):
        assert parse_operation_type("TagWrite") is OperationType.TAG_WRITE
        assert parse_operation_type("Transcode") == "Transcode"


class TestStats:

    def test_recovery_stats(self):
        stats = RecoveryStats(resumed=2, cleaned=3, failed=1, dead_lettered=1, pruned=4)
        assert stats.total_resolved == 6
        assert stats.as_dict()["pruned"] == 4

    def test_journal_health_total(self):
        assert JournalHealth(pending=2, completed=5, dead_letters=1).total == 7
