"""Audit log record models.

AuthEvent describes one line of audit/auth.jsonl. Token values never appear in
these records; only metadata such as expiry and the OAuth error code.
"""

from __future__ import annotations

__all__ = ["AuthEvent"]

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AuthEvent(BaseModel):
    """
    One authentication log entry (logs/audit/auth.jsonl).

    Note: 'time' is None when created, populated by ISO8601Formatter during logging.
    """

    time: str | None = Field(
        None,
        description="ISO 8601 timestamp, added by formatter during serialization",
    )

    event_type: Literal[
        "login_started",
        "login_succeeded",
        "login_failed",
        "token_refreshed",
        "token_refresh_failed",
        "logout",
    ]
    status: Literal["Success", "Failure"]
    message: str | None = None

    # --- token metadata ---
    expires_at: str | None = None  # ISO 8601 expiry of the new access token

    # --- logout details ---
    remote_logout: Literal["completed", "failed", "skipped"] | None = None

    # --- errors / extra details ---
    error_type: str | None = None  # e.g. "StateMismatchError"
    error_message: str | None = None
    details: dict[str, Any] | None = None

    model_config = ConfigDict(extra="forbid")
