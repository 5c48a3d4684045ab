"""
Data Models Layer.

This package contains the checkpoint records, payload models, configuration and
statistics structures used throughout the application.
"""

from .checkpoint import (
    Checkpoint,
    CheckpointStatus,
    DownloadState,
    HydrationState,
    OperationType,
    TagWriteState,
)
from .config import RecoveryConfig
from .stats import JournalHealth, RecoveryStats

__all__ = [
    "Checkpoint",
    "CheckpointStatus",
    "DownloadState",
    "HydrationState",
    "JournalHealth",
    "OperationType",
    "RecoveryConfig",
    "RecoveryStats",
    "TagWriteState",
]
