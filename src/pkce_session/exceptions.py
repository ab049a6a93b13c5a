"""Custom exceptions for pkce-session.

All authentication failures derive from AuthError so callers can catch the
whole family in one place. Each subclass names one failure kind:

Login:
    - UserCancelledError: User dismissed the browser before completing login
    - CallbackError: Identity provider redirected back with an error
    - StateMismatchError: Callback state differs from the one we generated

Token endpoint:
    - MalformedResponseError: Response JSON lacks a required field
    - ExchangeRejectedError: Non-2xx status from the token endpoint
    - TransportFailureError: DNS, TLS, connect or timeout failure

Session:
    - NotAuthenticatedError: No credentials stored
    - SessionExpiredError: Refresh impossible, user must log in again

Infrastructure:
    - StorageError: Secure credential store failed
    - ConfigurationError: Config file missing or invalid

Usage:
    from pkce_session.exceptions import AuthError, SessionExpiredError
"""

from __future__ import annotations

__all__ = [
    "AuthError",
    "CallbackError",
    "ConfigurationError",
    "ExchangeRejectedError",
    "MalformedResponseError",
    "NotAuthenticatedError",
    "SessionExpiredError",
    "StateMismatchError",
    "StorageError",
    "TransportFailureError",
    "UserCancelledError",
]

from typing import Any


class AuthError(Exception):
    """Base exception for authentication session failures.

    Attributes:
        exit_code: Process exit code used by the CLI.
        failure_type: Category string for logging.
    """

    exit_code: int = 1
    failure_type: str = "auth_error"


class NotAuthenticatedError(AuthError):
    """No credentials are stored - the user has never logged in or logged out."""

    exit_code = 10
    failure_type = "not_authenticated"


class UserCancelledError(AuthError):
    """The interactive login (or logout) was dismissed by the user.

    Also raised when a pending login attempt is superseded by logout().
    """

    exit_code = 11
    failure_type = "user_cancelled"


class CallbackError(AuthError):
    """The redirect callback carried an error or could not be used.

    Attributes:
        error: OAuth error code from the callback (e.g., "access_denied").
        description: Optional error_description from the callback.
    """

    exit_code = 12
    failure_type = "callback_error"

    def __init__(self, message: str, *, error: str | None = None, description: str | None = None) -> None:
        super().__init__(message)
        self.error = error
        self.description = description


class StateMismatchError(AuthError):
    """Callback state does not match the state generated for this attempt.

    Always fatal to the login attempt (CSRF / replay defense).
    """

    exit_code = 13
    failure_type = "state_mismatch"


class MalformedResponseError(AuthError):
    """Token endpoint returned a body missing required fields or not JSON."""

    exit_code = 14
    failure_type = "malformed_response"


class ExchangeRejectedError(AuthError):
    """Token endpoint answered with a non-2xx status.

    Attributes:
        status: HTTP status code.
        body: Provider error body (parsed JSON dict, raw text, or None).
        error: OAuth "error" value when the body carried one.
        error_description: OAuth "error_description" when present.
    """

    exit_code = 15
    failure_type = "exchange_rejected"

    def __init__(self, status: int, body: Any = None) -> None:
        self.status = status
        self.body = body
        self.error: str | None = None
        self.error_description: str | None = None
        if isinstance(body, dict):
            error = body.get("error")
            description = body.get("error_description")
            self.error = str(error) if error is not None else None
            self.error_description = str(description) if description is not None else None

        detail = self.error_description or self.error
        message = f"Token endpoint rejected the request (HTTP {status})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    @property
    def is_invalid_grant(self) -> bool:
        """True when the provider says the grant (code or refresh token) is unusable."""
        from pkce_session.constants import INVALID_GRANT_ERRORS

        return self.error in INVALID_GRANT_ERRORS

    def __repr__(self) -> str:
        return f"ExchangeRejectedError(status={self.status!r}, error={self.error!r})"


class TransportFailureError(AuthError):
    """Network failure talking to the identity provider (DNS, TLS, timeout)."""

    exit_code = 16
    failure_type = "transport_failure"


class SessionExpiredError(AuthError):
    """The session cannot be refreshed - the user must log in again.

    Raised after all credential slots have been cleared.
    """

    exit_code = 17
    failure_type = "session_expired"


class StorageError(AuthError):
    """Secure credential storage failed (permission denied, store unavailable)."""

    exit_code = 18
    failure_type = "storage_error"


class ConfigurationError(AuthError):
    """Configuration is invalid or incomplete.

    Raised when:
    - Config file does not exist (not initialized)
    - Config file contains invalid JSON
    - Config file fails Pydantic validation
    """

    exit_code = 19
    failure_type = "configuration_failure"
