"""JSONL log formatting.

Every line is one JSON object: ``time`` (UTC, millisecond ISO 8601 with a
trailing Z), ``level``, then the fields of the dict message. Fields that would
carry session secrets are replaced with a marker before serialization.
"""

from __future__ import annotations

__all__ = ["ISO8601Formatter", "REDACTED", "redact_secrets"]

import json
import logging
from datetime import datetime, timezone
from typing import Any

from pkce_session.constants import SECRET_LOG_FIELDS

REDACTED = "[redacted]"


def redact_secrets(data: dict[str, Any]) -> dict[str, Any]:
    """Copy of data with secret-bearing fields masked, recursing into dicts."""
    cleaned: dict[str, Any] = {}
    for key, value in data.items():
        if key in SECRET_LOG_FIELDS and value is not None:
            cleaned[key] = REDACTED
        elif isinstance(value, dict):
            cleaned[key] = redact_secrets(value)
        else:
            cleaned[key] = value
    return cleaned


def _utc_timestamp(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


class ISO8601Formatter(logging.Formatter):
    """JSONL formatter used by system.jsonl and auth.jsonl.

    Example line:
        {"time": "2026-10-19T10:48:37.123Z", "level": "INFO", "event": "token_refreshed", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            fields = redact_secrets(record.msg)
        else:
            fields = {"message": record.getMessage()}

        entry = {"time": _utc_timestamp(record.created), "level": record.levelname, **fields}
        if record.exc_info and record.exc_info[1] is not None:
            entry.setdefault("error_type", type(record.exc_info[1]).__name__)
        return json.dumps(entry, default=str)
