"""Provide configuration management for the risk gate.

This module handles loading, validating, and accessing configuration from YAML
files. The file may carry several environment profiles under ``environments``;
the active profile is chosen by the top-level ``environment`` key, then by the
``RISK_GATE_ENV`` environment variable, and falls back to ``development``.

Configuration changes require an explicit reload.
"""

import logging
import operator
import os
from decimal import Decimal, InvalidOperation
from functools import reduce
from pathlib import Path
from typing import Any

import yaml

log = logging.getLogger(__name__)

ENVIRONMENT_VARIABLE = "RISK_GATE_ENV"
DEFAULT_ENVIRONMENT = "development"
KNOWN_ENVIRONMENTS = ("development", "staging", "production")


class ConfigManager:
    """Manage loading, accessing, and explicit reloading of risk gate configuration."""

    _RATIO_FIELDS = (
        "max_risk_per_trade",
        "max_daily_loss",
        "max_drawdown",
        "max_position_size",
        "circuit_breaker_threshold",
    )

    def __init__(
        self,
        config_path: str = "config/risk_gate.yaml",
        logger_service: logging.Logger | None = None,
        environment: str | None = None,
    ) -> None:
        """Initialize the ConfigManager and load configuration.

        Args:
            config_path: Path to the YAML configuration file.
            logger_service: Optional logger instance.
            environment: Optional explicit profile name, overriding the file and
                the environment variable.
        """
        self._config_path_str = config_path
        self._config_file_path = Path(self._config_path_str).resolve()
        self._config: dict | None = None
        self._requested_environment = environment
        self.environment: str = DEFAULT_ENVIRONMENT
        self.validation_errors: list[str] = []

        self._logger: logging.Logger = logger_service or logging.getLogger(__name__)
        self._logger.info(
            "Initializing ConfigManager with path: %s",
            self._config_file_path,
        )

        self.load_config()
        self.validation_errors = self.validate_configuration()
        if not self.is_valid():
            self._logger.error("Initial configuration is invalid. Please check errors above.")

    @classmethod
    def from_dict(
        cls,
        config: dict[str, Any],
        logger_service: logging.Logger | None = None,
    ) -> "ConfigManager":
        """Build a manager around an in-memory mapping instead of a file."""
        instance = cls.__new__(cls)
        instance._config_path_str = "<memory>"
        instance._config_file_path = None
        instance._requested_environment = None
        instance._logger = logger_service or logging.getLogger(__name__)
        instance._config = dict(config)
        instance.environment = instance._resolve_environment()
        instance.validation_errors = instance.validate_configuration()
        return instance

    def load_config(self) -> None:
        """Load or reload the configuration from the specified YAML file."""
        self._logger.info(
            "Attempting to load configuration from: %s",
            self._config_file_path,
        )
        try:
            if not self._config_file_path.exists():
                self._logger.error(
                    "Configuration file not found at: %s",
                    self._config_file_path,
                )
                self._config = {}
                return

            with self._config_file_path.open("r") as f:
                self._config = yaml.safe_load(f)
            self._logger.info(
                "Successfully loaded configuration from %s",
                self._config_file_path,
            )
        except yaml.YAMLError as e:
            self._logger.exception(
                "Error parsing YAML configuration file: %s",
                self._config_file_path,
                exc_info=e,
            )
            self._config = {}
        except OSError as e:
            self._logger.exception(
                "Error reading configuration file: %s",
                self._config_file_path,
                exc_info=e,
            )
            self._config = {}
        finally:
            if not isinstance(self._config, dict):
                self._logger.error(
                    "Configuration file %s did not load as a dictionary. "
                    "Loaded type: %s. Setting config to empty dict.",
                    self._config_file_path,
                    type(self._config),
                )
                self._config = {}
            self.environment = self._resolve_environment()

    def _resolve_environment(self) -> str:
        """Pick the active environment profile name."""
        candidates = (
            self._requested_environment,
            (self._config or {}).get("environment"),
            os.getenv(ENVIRONMENT_VARIABLE),
        )
        for candidate in candidates:
            if candidate:
                return str(candidate).strip().lower()
        return DEFAULT_ENVIRONMENT

    def get(self, key: str, default: Any | None = None) -> Any:  # noqa: ANN401
        """Retrieve a configuration value using a dot-separated key.

        Example:
            config.get('logging.file.directory', 'logs')

        Args:
            key: The dot-separated key string.
            default: The value to return if the key is not found.

        Returns:
            The configuration value or the default.
        """
        if self._config is None:
            self._logger.warning(
                "Configuration accessed before it was loaded or after a loading error.",
            )
            return default

        try:
            return reduce(operator.getitem, key.split("."), self._config)
        except (KeyError, TypeError):
            # KeyError if a key in the path doesn't exist
            # TypeError if trying to index into a non-dictionary
            self._logger.debug(
                "Key '%s' not found in configuration. Returning default: %s",
                key,
                default,
            )
            return default

    def get_int(self, key: str, default: int = 0) -> int:
        """Retrieve a config value and attempt to cast it to an integer."""
        value = self.get(key, default)
        try:
            return int(value)
        except (ValueError, TypeError) as e:
            self._logger.warning(
                "Could not convert value for key '%s' ('%s') to int. "
                "Returning default %s. Error: %s",
                key,
                value,
                default,
                e,
            )
            return default

    def get_bool(self, key: str, *, default: bool = False) -> bool:
        """Retrieve a config value and attempt to cast it to a boolean."""
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    def get_dict(self, key: str, default: dict | None = None) -> dict:
        """Retrieve a config value and ensure it's a dictionary."""
        if default is None:
            default = {}
        value = self.get(key, default)
        if isinstance(value, dict):
            return value
        return default

    def get_profile(self, section: str) -> dict[str, Any]:
        """Return a section of the active profile merged over the top-level section.

        ``environments.<active>.<section>`` wins over ``<section>``.
        """
        merged = dict(self.get_dict(section))
        merged.update(self.get_dict(f"environments.{self.environment}.{section}"))
        return merged

    def get_risk_parameters(self) -> dict[str, Any]:
        """Get the risk limits for the active environment."""
        return self.get_profile("risk")

    def get_monitoring_parameters(self) -> dict[str, Any]:
        """Get the monitoring intervals for the active environment."""
        return self.get_profile("monitoring")

    def validate_configuration(self) -> list[str]:
        """Validate the loaded configuration and return a list of errors."""
        errors: list[str] = []
        if self._config is None or not isinstance(self._config, dict):
            errors.append("Configuration could not be loaded or is not a valid dictionary")
            return errors

        environments = self.get("environments", {})
        if not isinstance(environments, dict):
            errors.append("'environments' section must be a dictionary")
        elif environments and self.environment not in environments:
            errors.append(
                f"Active environment '{self.environment}' has no profile "
                f"(known: {sorted(environments)})",
            )
        if self.environment not in KNOWN_ENVIRONMENTS:
            self._logger.warning(
                "Environment '%s' is not one of %s",
                self.environment,
                KNOWN_ENVIRONMENTS,
            )

        self._validate_risk_section(errors)
        return errors

    def _validate_risk_section(self, errors: list[str]) -> None:
        """Validate the risk limits of the active profile."""
        risk_config = self.get_risk_parameters()
        for field in self._RATIO_FIELDS:
            value = risk_config.get(field)
            if value is None:
                continue
            try:
                ratio = Decimal(str(value))
            except (InvalidOperation, ValueError, TypeError):
                errors.append(f"'risk.{field}' must be a valid number")
                continue
            if not Decimal(0) < ratio <= Decimal(1):
                errors.append(f"'risk.{field}' must be in (0, 1]")

    def reload_config(self) -> list[str]:
        """Explicitly reload configuration from file.

        Returns:
            List of validation errors (empty if successful)
        """
        self._logger.info("Explicitly reloading configuration...")

        backup_config = self._config
        backup_environment = self.environment
        backup_errors = self.validation_errors

        if self._config_file_path is None:
            self._logger.warning("Configuration was built in memory; nothing to reload.")
            return []

        try:
            self.load_config()
            new_validation_errors = self.validate_configuration()

            if new_validation_errors:
                self._config = backup_config
                self.environment = backup_environment
                self.validation_errors = backup_errors
                self._logger.error(
                    "Configuration reload failed validation. Restored previous configuration.",
                )
                return new_validation_errors
        except Exception as e:
            self._config = backup_config
            self.environment = backup_environment
            self.validation_errors = backup_errors
            self._logger.exception("Configuration reload failed. Restored previous configuration.")
            return [f"Configuration reload failed: {e!s}"]
        else:
            self.validation_errors = new_validation_errors
            self._logger.info("Configuration reloaded successfully.")
            return []

    def is_valid(self) -> bool:
        """Check if the current configuration is valid."""
        return len(self.validation_errors) == 0
