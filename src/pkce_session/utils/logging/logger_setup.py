"""JSONL file logging setup shared by system.jsonl and auth.jsonl."""

from __future__ import annotations

__all__ = ["jsonl_file_handler", "setup_jsonl_logger"]

import logging
from pathlib import Path

from pkce_session.utils.file_helpers import set_secure_permissions
from pkce_session.utils.logging.iso_formatter import ISO8601Formatter


def jsonl_file_handler(log_file: Path, level: int) -> logging.FileHandler:
    """Create an appending JSONL handler, creating its directory owner-only (700).

    Raises:
        OSError: If the directory or file cannot be created.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    set_secure_permissions(log_file.parent, is_directory=True)

    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(ISO8601Formatter())
    return handler


def setup_jsonl_logger(logger_name: str, log_file: Path, log_level: int = logging.INFO) -> logging.Logger:
    """Return a non-propagating logger whose only handler writes log_file.

    Re-running it for the same name replaces (and closes) the old handler, so
    a second AuthLogger on the same path does not duplicate lines.

    Args:
        logger_name: e.g. "pkce-session.audit.auth".
        log_file: JSONL destination.
        log_level: Minimum level written.

    Raises:
        OSError: If the log directory or file cannot be created.
    """
    handler = jsonl_file_handler(log_file, log_level)

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    logger.propagate = False

    for old in logger.handlers:
        old.close()
    logger.handlers.clear()
    logger.addHandler(handler)
    return logger
