"""Logging utilities (formatters and JSONL logger setup)."""

from pkce_session.utils.logging.iso_formatter import ISO8601Formatter, redact_secrets
from pkce_session.utils.logging.logger_setup import jsonl_file_handler, setup_jsonl_logger

__all__ = ["ISO8601Formatter", "jsonl_file_handler", "redact_secrets", "setup_jsonl_logger"]
