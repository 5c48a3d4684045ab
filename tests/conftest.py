"""Shared fixtures for the peertrack test suite."""

import struct
from pathlib import Path

import pytest

from peertrack.models.checkpoint import Checkpoint, DownloadState, OperationType
from peertrack.models.config import RecoveryConfig
from peertrack.storage.dead_letter import DeadLetterLog
from peertrack.storage.journal import CheckpointJournal


# ============================================================================
# CONFIG & STORAGE
# ============================================================================

@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def config(data_dir) -> RecoveryConfig:
    return RecoveryConfig(data_dir=str(data_dir))


@pytest.fixture
def journal(data_dir) -> CheckpointJournal:
    return CheckpointJournal(data_dir)


@pytest.fixture
def dead_letters(data_dir) -> DeadLetterLog:
    return DeadLetterLog(data_dir)


# ============================================================================
# CHECKPOINT FACTORIES
# ============================================================================

@pytest.fixture
def make_download(tmp_path):
    """
    Factory for download checkpoints. Writes `part_size` bytes to the partial
    file unless `part_size` is None.
    """
    library = tmp_path / "library"
    library.mkdir(exist_ok=True)

    def _make(
        name: str = "track",
        part_size: int | None = 10_000,
        expected_size: int = 10_000,
        priority: int = 0,
        failure_count: int = 0,
    ) -> tuple[Checkpoint, Path, Path]:
        part_path = library / f"{name}.flac.part"
        final_path = library / f"{name}.flac"
        if part_size is not None:
            part_path.write_bytes(b"\x00" * part_size)
        state = DownloadState(
            artist="Artist",
            title=name,
            part_file_path=str(part_path),
            final_path=str(final_path),
            expected_size_bytes=expected_size,
        )
        checkpoint = Checkpoint.for_operation(
            OperationType.DOWNLOAD, f"Artist - {name}", state, priority
        )
        checkpoint.failure_count = failure_count
        return checkpoint, part_path, final_path

    return _make


# ============================================================================
# MEDIA
# ============================================================================

def build_flac_bytes(total_samples: int = 44_100, sample_rate: int = 44_100) -> bytes:
    """A minimal FLAC stream: magic, one STREAMINFO block, some frame padding."""
    channels, bits_per_sample = 2, 16
    packed = (
        (sample_rate << 44)
        | ((channels - 1) << 41)
        | ((bits_per_sample - 1) << 36)
        | total_samples
    )
    streaminfo = (
        struct.pack(">HH", 4096, 4096)
        + b"\x00" * 6
        + packed.to_bytes(8, "big")
        + b"\x00" * 16
    )
    header = bytes([0x80]) + len(streaminfo).to_bytes(3, "big")
    return b"fLaC" + header + streaminfo + b"\x00" * 256


@pytest.fixture
def flac_bytes() -> bytes:
    return build_flac_bytes()


@pytest.fixture
def flac_factory():
    return build_flac_bytes
