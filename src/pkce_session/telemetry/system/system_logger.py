"""System logger for operational events.

This module provides a singleton system logger for operational events
(token refresh attempts, storage backend selection, remote logout failures).

Logging strategy:
- Console (stderr): operational messages at the configured level (default INFO)
- File (system.jsonl): Only issues (WARNING, ERROR, CRITICAL)

Messages are dicts with an "event" key; token values are never logged.
The file handler is configured separately via configure_system_logger()
once the user's log_dir from config is available.
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "configure_system_logger",
    "get_system_logger",
]

import logging
import sys
from pathlib import Path

from pkce_session.constants import APP_NAME
from pkce_session.utils.logging.logger_setup import jsonl_file_handler


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts 'message' or 'event' field from dict messages for cleaner stderr output.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human-readable console output.

        Args:
            record: The log record to format.

        Returns:
            str: Formatted log message with level prefix.
        """
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


# Module-level singleton logger
_system_logger: logging.Logger | None = None
_file_handler_configured: bool = False


def get_system_logger() -> logging.Logger:
    """Get the singleton system logger instance.

    Creates the logger on first call with stderr handler only.
    File handler is added later via configure_system_logger().

    Returns:
        logging.Logger: Configured system logger instance.

    Example:
        >>> logger = get_system_logger()
        >>> logger.warning({"event": "remote_logout_failed", "error": "..."})
    """
    global _system_logger

    if _system_logger is not None:
        return _system_logger

    _system_logger = logging.getLogger(f"{APP_NAME}.system")
    _system_logger.setLevel(logging.INFO)
    _system_logger.propagate = False  # Don't propagate to root logger

    for handler in _system_logger.handlers:
        handler.close()
    _system_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.INFO)
    stderr_handler.setFormatter(ConsoleFormatter())
    _system_logger.addHandler(stderr_handler)

    return _system_logger


def configure_system_logger(log_path: Path | None = None, console_level: str = "INFO") -> None:
    """Apply the configured console level and attach the JSONL file handler.

    The file handler logs WARNING, ERROR, CRITICAL only and is attached once.

    Args:
        log_path: Path to system.jsonl (None to keep console-only logging).
        console_level: Level name for the stderr handler ("DEBUG", "INFO", "WARNING").
    """
    global _file_handler_configured

    logger = get_system_logger()
    level = logging.getLevelName(console_level)
    if isinstance(level, int):
        logger.setLevel(min(level, logging.WARNING))
        for handler in logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(level)

    if log_path is None or _file_handler_configured:
        return

    try:
        file_handler = jsonl_file_handler(log_path, logging.WARNING)
    except OSError:
        return  # stderr logging still works
    logger.addHandler(file_handler)

    _file_handler_configured = True
