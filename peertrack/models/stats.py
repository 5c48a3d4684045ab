"""
Dataclasses for recovery sweep results and journal health counts.
"""

from dataclasses import asdict, dataclass


@dataclass
class RecoveryStats:
    """Tallies for a single crash recovery sweep."""

    resumed: int = 0
    cleaned: int = 0
    failed: int = 0
    dead_lettered: int = 0
    pruned: int = 0

    @property
    def total_resolved(self) -> int:
        """Checkpoints that reached a terminal outcome during this sweep."""
        return self.resumed + self.cleaned + self.dead_lettered

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class JournalHealth:
    """Row counts per checkpoint status, plus dead-letter log size."""

    pending: int = 0
    completed: int = 0
    dead_letters: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.completed
