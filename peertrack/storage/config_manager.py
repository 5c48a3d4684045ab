"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from peertrack.exceptions import ConfigurationError
from peertrack.models.config import RecoveryConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    @property
    def config_dir(self) -> Path:
        return self.config_file_path.parent

    def _defaults(self) -> RecoveryConfig:
        return RecoveryConfig.model_construct(data_dir=str(self.config_dir))

    def load_config(self, cli_options: dict[str, Any] | None = None) -> RecoveryConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.
        A missing file is not an error: the defaults are used.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated RecoveryConfig object.

        Raises:
            ConfigurationError: If the config file is unreadable or validation fails.
        """
        config_from_file: dict[str, Any] = {"data_dir": str(self.config_dir)}

        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_from_file.update(self._get_config_as_dict())
        else:
            log.debug(
                f"No configuration file at '{self.config_file_path}', using defaults."
            )

        if cli_options:
            config_from_file.update(cli_options)

        try:
            return RecoveryConfig(
                **config_from_file, config_path=str(self.config_file_path)
            )
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: Values that override the model defaults.
        """
        settings = settings or {}
        config = configparser.ConfigParser()
        config["DEFAULT"] = {}

        defaults = self._defaults()
        for key in sorted(RecoveryConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if isinstance(value, bool):
                config["DEFAULT"][key] = "true" if value else "false"
            elif value is not None:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = self._defaults()
        try:
            return {
                "data_dir": section.get("data_dir", defaults.data_dir),
                "journal_pool_size": section.getint(
                    "journal_pool_size", defaults.journal_pool_size
                ),
                "stale_checkpoint_hours": section.getint(
                    "stale_checkpoint_hours", defaults.stale_checkpoint_hours
                ),
                "max_recovery_failures": section.getint(
                    "max_recovery_failures", defaults.max_recovery_failures
                ),
                "completion_threshold": section.getfloat(
                    "completion_threshold", defaults.completion_threshold
                ),
                "health_check_interval": section.getfloat(
                    "health_check_interval", defaults.health_check_interval
                ),
                "stall_tick_threshold": section.getint(
                    "stall_tick_threshold", defaults.stall_tick_threshold
                ),
                "late_stage_stall_tick_threshold": section.getint(
                    "late_stage_stall_tick_threshold",
                    defaults.late_stage_stall_tick_threshold,
                ),
                "late_stage_ratio": section.getfloat(
                    "late_stage_ratio", defaults.late_stage_ratio
                ),
                "json_logs": section.getboolean("json_logs", defaults.json_logs),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = self._defaults()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(RecoveryConfig.get_ini_keys()):
            if key not in config_section:
                default_value = getattr(defaults, key)
                if isinstance(default_value, bool):
                    config_section[key] = "true" if default_value else "false"
                else:
                    config_section[key] = str(default_value)

                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
