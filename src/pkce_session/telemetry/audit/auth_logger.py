"""Authentication audit logger.

Logs authentication events to audit/auth.jsonl:
- Login attempts (success/failure, including state mismatch and cancellation)
- Token refresh attempts (success/failure)
- Logout (with the outcome of the remote end-session step)

If writing the audit line fails, the failure is reported on the system logger
and the auth operation itself continues.
"""

from __future__ import annotations

__all__ = [
    "AuthLogger",
    "create_auth_logger",
]

import logging
from datetime import datetime
from pathlib import Path
from typing import Literal

from pkce_session.constants import APP_NAME
from pkce_session.telemetry.models.audit import AuthEvent
from pkce_session.telemetry.system.system_logger import get_system_logger
from pkce_session.utils.logging.logger_setup import setup_jsonl_logger

_system_logger = get_system_logger()


class AuthLogger:
    """Audit logger for authentication events.

    Provides typed methods for logging auth events.

    Usage:
        logger = create_auth_logger(log_path=get_auth_log_path(config))
        logger.log_login_succeeded(expires_at=token_set.expires_at)
    """

    def __init__(self, logger: logging.Logger) -> None:
        """Initialize auth logger.

        Args:
            logger: Configured JSONL logger.
        """
        self._logger = logger

    def _log_event(self, event: AuthEvent) -> bool:
        """Write one event.

        Returns:
            True if written, False if the write failed.
        """
        event_data = event.model_dump(mode="json", exclude_none=True)
        try:
            self._logger.info(event_data)
        except Exception as e:
            _system_logger.error(
                {
                    "event": "auth_audit_write_failed",
                    "audit_event": event.event_type,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return False
        return True

    def log_login_started(self) -> bool:
        """Log that an interactive login was started."""
        return self._log_event(AuthEvent(event_type="login_started", status="Success"))

    def log_login_succeeded(self, *, expires_at: datetime) -> bool:
        """Log a successful code exchange.

        Args:
            expires_at: Expiry of the new access token.
        """
        return self._log_event(
            AuthEvent(
                event_type="login_succeeded",
                status="Success",
                expires_at=expires_at.isoformat(),
            )
        )

    def log_login_failed(self, *, error: Exception) -> bool:
        """Log a failed login attempt (cancel, callback error, state mismatch, exchange failure)."""
        return self._log_event(
            AuthEvent(
                event_type="login_failed",
                status="Failure",
                error_type=type(error).__name__,
                error_message=str(error),
            )
        )

    def log_token_refreshed(self, *, expires_at: datetime) -> bool:
        """Log a successful refresh exchange."""
        return self._log_event(
            AuthEvent(
                event_type="token_refreshed",
                status="Success",
                expires_at=expires_at.isoformat(),
            )
        )

    def log_token_refresh_failed(self, *, error_type: str, error_message: str, terminal: bool) -> bool:
        """Log a failed refresh.

        Args:
            error_type: Exception class name or "NoRefreshToken".
            error_message: Human-readable description.
            terminal: True if the session was cleared as a result.
        """
        return self._log_event(
            AuthEvent(
                event_type="token_refresh_failed",
                status="Failure",
                error_type=error_type,
                error_message=error_message,
                details={"session_cleared": terminal},
            )
        )

    def log_logout(self, *, remote_logout: Literal["completed", "failed", "skipped"]) -> bool:
        """Log a logout. Local credentials are always cleared."""
        return self._log_event(
            AuthEvent(
                event_type="logout",
                status="Success",
                remote_logout=remote_logout,
            )
        )


def create_auth_logger(log_path: Path) -> AuthLogger:
    """Create an auth logger writing to log_path.

    Args:
        log_path: Path to auth.jsonl (from get_auth_log_path()).

    Returns:
        AuthLogger: Configured logger for authentication events.
    """
    logger = setup_jsonl_logger(f"{APP_NAME}.audit.auth", log_path, log_level=logging.INFO)
    return AuthLogger(logger)
