"""
Checkpoint records and the operation-specific payloads stored inside them.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from peertrack.exceptions import CheckpointStateError


class OperationType(str, Enum):
    """Kinds of in-flight operations that can be checkpointed."""

    DOWNLOAD = "Download"
    TAG_WRITE = "TagWrite"
    METADATA_HYDRATION = "MetadataHydration"


class CheckpointStatus(int, Enum):
    """Lifecycle status of a checkpoint row."""

    PENDING = 0
    COMPLETED = 1


class DownloadState(BaseModel):
    """Payload for a download that was interrupted mid-transfer."""

    artist: str = ""
    title: str = ""
    part_file_path: str
    final_path: str
    expected_size_bytes: int = 0
    source_username: str = ""
    track_id: str = ""
    source_filename: str = ""
    bytes_downloaded: int = 0


class TagWriteState(BaseModel):
    """Payload for an atomic tag write (write to temp, then swap)."""

    file_path: str
    temp_path: str = ""
    original_timestamp: datetime | None = None


class HydrationState(BaseModel):
    """Payload for a multi-step metadata enrichment run."""

    track_id: str
    step: int = 0  # 1: metadata, 2: artwork, 3: audio features
    provider_id: str = ""
    collected_data: dict[str, Any] = Field(default_factory=dict)


PAYLOAD_TYPES: dict[OperationType, type[BaseModel]] = {
    OperationType.DOWNLOAD: DownloadState,
    OperationType.TAG_WRITE: TagWriteState,
    OperationType.METADATA_HYDRATION: HydrationState,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_operation_type(value: str) -> OperationType | str:
    """
    Maps a stored operation type onto the enum. Values written by a newer or
    older client are returned unchanged so they can still be swept.
    """
    try:
        return OperationType(value)
    except ValueError:
        return value


@dataclass
class Checkpoint:
    """A durable record of one in-flight operation."""

    operation_type: OperationType | str
    target_path: str
    state_json: str
    priority: int = 0
    failure_count: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    status: CheckpointStatus = CheckpointStatus.PENDING

    @classmethod
    def for_operation(
        cls,
        operation_type: OperationType,
        target_path: str,
        state: BaseModel,
        priority: int = 0,
    ) -> "Checkpoint":
        """Builds a pending checkpoint with its payload serialized to JSON."""
        expected = PAYLOAD_TYPES[operation_type]
        if not isinstance(state, expected):
            raise TypeError(
                f"{operation_type.value} checkpoints require a {expected.__name__} "
                f"payload, got {type(state).__name__}."
            )
        return cls(
            operation_type=operation_type,
            target_path=target_path,
            state_json=state.model_dump_json(),
            priority=priority,
        )

    @property
    def type_name(self) -> str:
        if isinstance(self.operation_type, OperationType):
            return self.operation_type.value
        return str(self.operation_type)

    def load_state(self, model: type[BaseModel]) -> Any:
        """
        Deserializes the payload into the given model.

        Raises:
            CheckpointStateError: If the payload is not valid JSON for the model.
        """
        try:
            return model.model_validate_json(self.state_json)
        except ValidationError as e:
            raise CheckpointStateError(
                f"Unreadable {self.type_name} payload for checkpoint {self.id}: "
                f"{e.error_count()} validation error(s)"
            ) from e
