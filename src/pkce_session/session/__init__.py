"""Authentication session: state machine, browser broker and httpx hook."""

from pkce_session.session.broker import ConsoleAuthBroker, InteractiveAuthBroker
from pkce_session.session.http_auth import SessionBearerAuth
from pkce_session.session.manager import AuthSessionManager
from pkce_session.session.state import SessionState, StatusSignal

__all__ = [
    "AuthSessionManager",
    "ConsoleAuthBroker",
    "InteractiveAuthBroker",
    "SessionBearerAuth",
    "SessionState",
    "StatusSignal",
]
