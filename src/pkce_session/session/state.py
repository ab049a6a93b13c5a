"""Session states and the observable authentication status signal."""

from __future__ import annotations

__all__ = [
    "SessionState",
    "StatusListener",
    "StatusSignal",
]

from collections.abc import Callable
from enum import Enum

from pkce_session.telemetry.system.system_logger import get_system_logger

StatusListener = Callable[[bool], None]


class SessionState(str, Enum):
    """Lifecycle states of an authentication session.

    - LOGGED_OUT: no credentials held
    - AUTHENTICATING: interactive login in progress
    - AUTHENTICATED: valid TokenSet held
    - REFRESHING_SILENTLY: refresh exchange in flight
    - LOGGING_OUT: local and remote teardown in progress
    """

    LOGGED_OUT = "logged_out"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING_SILENTLY = "refreshing_silently"
    LOGGING_OUT = "logging_out"

    @property
    def is_authenticated(self) -> bool:
        """True while a TokenSet is held (a silent refresh keeps the session)."""
        return self in (SessionState.AUTHENTICATED, SessionState.REFRESHING_SILENTLY)


class StatusSignal:
    """Notifies listeners when the authenticated flag flips.

    Listeners are called synchronously with the new value. A listener that
    raises is logged and does not stop the others.
    """

    def __init__(self, initial: bool = False) -> None:
        self._value = initial
        self._listeners: list[StatusListener] = []

    @property
    def value(self) -> bool:
        return self._value

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            Function that removes the listener again (safe to call twice).
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set(self, value: bool) -> None:
        """Update the flag, notifying listeners only on change."""
        if value == self._value:
            return
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                get_system_logger().error(
                    {
                        "event": "status_listener_failed",
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    }
                )
