"""
Pydantic model for recovery and health-monitoring configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator


class RecoveryConfig(BaseModel):
    """A validated configuration model for the recovery subsystem."""

    # Storage
    data_dir: str
    journal_pool_size: int = 5

    # Crash recovery sweep
    stale_checkpoint_hours: int = 24
    max_recovery_failures: int = 3
    completion_threshold: float = 0.95

    # Download health monitor
    health_check_interval: float = 15.0
    stall_tick_threshold: int = 4
    late_stage_stall_tick_threshold: int = 8
    late_stage_ratio: float = 0.9

    # Logging
    json_logs: bool = False

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("data_dir")
    @classmethod
    def validate_data_dir(cls, v: str) -> str:
        if not v:
            raise ValueError("Data directory cannot be empty.")
        return v

    @field_validator("journal_pool_size")
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        """Ensures a reasonable number of concurrent journal connections."""
        if v < 1 or v > 32:
            raise ValueError("Journal pool size must be between 1 and 32.")
        return v

    @field_validator(
        "stale_checkpoint_hours", "max_recovery_failures", "stall_tick_threshold"
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be at least 1.")
        return v

    @field_validator("completion_threshold")
    @classmethod
    def validate_completion_threshold(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("Completion threshold must be in (0, 1].")
        return v

    @field_validator("late_stage_ratio")
    @classmethod
    def validate_late_stage_ratio(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError("Late-stage ratio must be in (0, 1).")
        return v

    @field_validator("health_check_interval")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Health check interval must be positive.")
        return v

    @model_validator(mode="after")
    def validate_stall_thresholds(self) -> "RecoveryConfig":
        """Late-stage transfers must never get less slack than normal ones."""
        if self.late_stage_stall_tick_threshold < self.stall_tick_threshold:
            raise ValueError(
                "late_stage_stall_tick_threshold must be >= stall_tick_threshold."
            )
        return self

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
