from .health_monitor import DownloadHealthMonitor
from .recovery import CrashRecoveryService
from .session import RecoverySession
from .transfers import DownloadManager, TransferContext, TransferState

__all__ = [
    "CrashRecoveryService",
    "DownloadHealthMonitor",
    "DownloadManager",
    "RecoverySession",
    "TransferContext",
    "TransferState",
]
