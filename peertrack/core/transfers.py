"""
Live transfer state shared between the download manager and the health monitor.
"""

import threading
from collections.abc import Sequence
from enum import Enum
from typing import Protocol


class TransferState(str, Enum):
    """States a live transfer moves through."""

    PENDING = "Pending"
    SEARCHING = "Searching"
    QUEUED = "Queued"
    DOWNLOADING = "Downloading"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class TransferContext:
    """
    In-memory context for one transfer, owned by the download manager.

    The byte counter is advanced from the transfer engine's thread and polled by
    the health monitor, so access goes through a lock.
    """

    def __init__(
        self,
        transfer_id: str,
        title: str = "",
        total_bytes: int = 0,
        state: TransferState = TransferState.PENDING,
    ):
        self.id = transfer_id
        self.title = title
        self.total_bytes = total_bytes
        self.state = state
        self._bytes_received = 0
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return (
            f"TransferContext(id={self.id!r}, state={self.state.value}, "
            f"bytes={self.bytes_received}/{self.total_bytes})"
        )

    @property
    def bytes_received(self) -> int:
        with self._lock:
            return self._bytes_received

    def add_bytes(self, count: int) -> int:
        """Records newly received bytes and returns the running total."""
        with self._lock:
            self._bytes_received += count
            return self._bytes_received

    def reset_progress(self) -> None:
        """Used when a transfer restarts from scratch with a new peer."""
        with self._lock:
            self._bytes_received = 0

    @property
    def progress(self) -> float:
        """Completion ratio in [0, 1], or 0 when the size is unknown."""
        if self.total_bytes <= 0:
            return 0.0
        return min(self.bytes_received / self.total_bytes, 1.0)

    @property
    def is_downloading(self) -> bool:
        return self.state == TransferState.DOWNLOADING


class DownloadManager(Protocol):
    """The operations the recovery core calls on the download manager."""

    async def active_downloads(self) -> Sequence[TransferContext]:
        """Returns a snapshot of transfers the manager is currently tracking."""
        ...

    async def retry_stalled_download(self, transfer_id: str) -> None:
        """
        Restarts a stalled transfer. Safe to call on a transfer that has
        already recovered on its own.
        """
        ...
