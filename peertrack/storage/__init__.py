"""
Storage Layer.

This package handles all data persistence: the checkpoint journal database, the
dead-letter log and the configuration file.
"""

from .config_manager import ConfigManager
from .dead_letter import DeadLetterLog
from .journal import CheckpointJournal

__all__ = ["CheckpointJournal", "ConfigManager", "DeadLetterLog"]
