"""Logging service for the risk gate.

Configures the ``risk_gate`` logger hierarchy with a human readable console
handler and a rotating JSON file handler, and scrubs sensitive values from the
structured context attached to each record.
"""

import logging
import logging.handlers
import re
import sys
import types
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol, TypeVar

from pythonjsonlogger import jsonlogger

_T = TypeVar("_T")

ExcInfoType = (
    bool
    | BaseException
    | tuple[type[BaseException], BaseException, types.TracebackType | None]
    | tuple[None, None, None]
    | None
)

ROOT_LOGGER_NAME = "risk_gate"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s - [%(context)s]"


class ConfigManagerProtocol(Protocol):
    """Minimal configuration interface consumed by the logger."""

    def get(self, key: str, default: Any | None = None) -> Any:  # noqa: ANN401
        """Return the value stored under a dot-separated key."""
        ...

    def get_int(self, key: str, default: int = 0) -> int:
        """Return the value under ``key`` as an int."""
        ...

    def get_bool(self, key: str, *, default: bool = False) -> bool:
        """Return the value under ``key`` as a bool."""
        ...


class ContextFormatter(logging.Formatter):
    """Format log records with context dictionary information.

    Replaces a literal ``[%(context)s]`` placeholder with ``key=value`` pairs,
    or drops it entirely when the record carries no context.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with context information."""
        if not hasattr(record, "context"):
            record.context = {}

        s = super().format(record)

        context_str = ""
        if record.context:
            if isinstance(record.context, dict):
                context_str = ", ".join(f"{k}={v}" for k, v in record.context.items())
            else:
                context_str = str(record.context)

        if self._fmt is not None and "[%(context)s]" in self._fmt:
            rendered = f"[{record.context}]"
            if context_str:
                s = s.replace(rendered, f"[{context_str}]")
            else:
                s = s.replace(f" - {rendered}", "").replace(rendered, "")

        return s


class LoggerService:
    """Configure and front the risk gate logging handlers.

    Components hold a reference to one ``LoggerService`` and call
    ``info``/``warning``/... with ``source_module`` and ``context`` keywords.
    """

    _SENSITIVE_KEYS = (
        "api_key",
        "secret",
        "password",
        "token",
        "credentials",
        "private_key",
        "auth",
        "access_key",
        "secret_key",
    )
    # Base64-like strings longer than 20 chars
    _SENSITIVE_VALUE_PATTERN = re.compile(r"^[A-Za-z0-9/+]{20,}$")
    _MASK = "********"

    def __init__(self, config_manager: ConfigManagerProtocol) -> None:
        """Initialize the logger service.

        Args:
            config_manager: Configuration provider for logger settings.
        """
        self._config_manager = config_manager
        self._log_level = str(self._config_manager.get("logging.level", "INFO")).upper()
        self._log_format = self._config_manager.get("logging.format", DEFAULT_LOG_FORMAT)
        self._log_date_format = self._config_manager.get(
            "logging.date_format",
            "%Y-%m-%d %H:%M:%S")
        self._root_logger: logging.Logger = logging.getLogger(ROOT_LOGGER_NAME)

        self._setup_logging()
        self.info("LoggerService initialized.", source_module="LoggerService")

    def _setup_logging(self) -> None:
        """Configure the package logger and its handlers."""
        self._root_logger.setLevel(self._log_level)

        for handler in self._root_logger.handlers[:]:
            self._root_logger.removeHandler(handler)
            handler.close()

        # --- Console Handler (Human-Readable) ---
        if self._config_manager.get_bool("logging.console.enabled", default=True):
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(
                ContextFormatter(self._log_format, datefmt=self._log_date_format))
            console_handler.setLevel(self._log_level)
            self._root_logger.addHandler(console_handler)

        # --- File Handler (JSON Format) ---
        if self._config_manager.get_bool("logging.file.enabled"):
            log_dir = Path(str(self._config_manager.get("logging.file.directory", "logs")))
            log_filename = str(self._config_manager.get("logging.file.filename", "risk_gate.log"))
            log_dir.mkdir(parents=True, exist_ok=True)

            json_formatter = jsonlogger.JsonFormatter(
                self._log_format,
                datefmt=self._log_date_format,
                rename_fields={"levelname": "level"})

            file_handler = logging.handlers.RotatingFileHandler(
                str(log_dir / log_filename),
                maxBytes=self._config_manager.get_int("logging.file.max_bytes", 10 * 1024 * 1024),
                backupCount=self._config_manager.get_int("logging.file.backup_count", 5),
                encoding="utf-8")
            file_handler.setFormatter(json_formatter)
            file_handler.setLevel(self._log_level)
            self._root_logger.addHandler(file_handler)

    def close(self) -> None:
        """Flush and detach every handler installed by this service."""
        for handler in self._root_logger.handlers[:]:
            handler.flush()
            self._root_logger.removeHandler(handler)
            handler.close()

    def _filter_sensitive_data(
        self,
        context: Mapping[str, object] | None,
    ) -> dict[str, object] | None:
        """Recursively filter sensitive data from log context.

        Args:
            context: Dictionary containing log context data to be filtered

        Returns:
            Filtered dictionary with sensitive data redacted, or None if input is None/empty
        """
        if not context:
            return None

        filtered: dict[str, object] = {}
        for key, value in context.items():
            key_lower = str(key).lower()
            is_sensitive = any(pattern in key_lower for pattern in self._SENSITIVE_KEYS)

            if isinstance(value, dict):
                filtered[key] = self._MASK if is_sensitive else self._filter_sensitive_data(value)
            elif isinstance(value, list):
                filtered[key] = [
                    self._filter_sensitive_data(item) if isinstance(item, dict) else item
                    for item in value
                ]
            elif is_sensitive or (
                isinstance(value, str) and self._SENSITIVE_VALUE_PATTERN.match(value)
            ):
                filtered[key] = self._MASK
            else:
                filtered[key] = value
        return filtered

    def log(
        self,
        level: int,
        message: str,
        *args: object,
        source_module: str | None = None,
        context: Mapping[str, object] | None = None,
        exc_info: ExcInfoType = None) -> None:
        """Log a message to the configured handlers.

        Args:
            level: The logging level (e.g., logging.INFO, logging.WARNING)
            message: The primary log message string (can be a format string)
            *args: Arguments for the format string in 'message'
            source_module: Optional name of the module generating the log
            context: Optional dictionary of key-value pairs for extra context
            exc_info: Optional exception info
        """
        logger_name = f"{ROOT_LOGGER_NAME}.{source_module}" if source_module else ROOT_LOGGER_NAME
        logger = logging.getLogger(logger_name)

        filtered_context = self._filter_sensitive_data(context)
        extra_data = {"context": filtered_context if filtered_context is not None else {}}

        # stacklevel=3 reports the caller of the level helper, not this method
        logger.log(
            level,
            message,
            *args,
            exc_info=exc_info,
            extra=extra_data,
            stacklevel=3)

    def debug(
        self,
        message: str,
        *args: object,
        source_module: str | None = None,
        context: Mapping[str, object] | None = None) -> None:
        """Log a message with DEBUG level."""
        self.log(logging.DEBUG, message, *args, source_module=source_module, context=context)

    def info(
        self,
        message: str,
        *args: object,
        source_module: str | None = None,
        context: Mapping[str, object] | None = None) -> None:
        """Log a message with INFO level."""
        self.log(logging.INFO, message, *args, source_module=source_module, context=context)

    def warning(
        self,
        message: str,
        *args: object,
        source_module: str | None = None,
        context: Mapping[str, object] | None = None) -> None:
        """Log a message with WARNING level."""
        self.log(logging.WARNING, message, *args, source_module=source_module, context=context)

    def error(
        self,
        message: str,
        *args: object,
        source_module: str | None = None,
        context: Mapping[str, object] | None = None,
        exc_info: ExcInfoType = None) -> None:
        """Log a message with ERROR level.

        Args:
            message: The message to log
            *args: Arguments for the format string in 'message'
            source_module: Optional module name generating the log
            context: Optional context information
            exc_info: Optional exception info
        """
        self.log(
            logging.ERROR,
            message,
            *args,
            source_module=source_module,
            context=context,
            exc_info=exc_info)

    def exception(
        self,
        message: str,
        *args: object,
        source_module: str | None = None,
        context: Mapping[str, object] | None = None) -> None:
        """Log a message with ERROR level and include exception information.

        This method should only be called from an exception handler.
        """
        self.log(
            logging.ERROR,
            message,
            *args,
            source_module=source_module,
            context=context,
            exc_info=True)

    def critical(
        self,
        message: str,
        *args: object,
        source_module: str | None = None,
        context: Mapping[str, object] | None = None,
        exc_info: ExcInfoType = None) -> None:
        """Log a message with CRITICAL level."""
        self.log(
            logging.CRITICAL,
            message,
            *args,
            source_module=source_module,
            context=context,
            exc_info=exc_info)
