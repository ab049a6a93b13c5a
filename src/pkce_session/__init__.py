"""pkce-session: OAuth2 Authorization Code + PKCE session manager.

Runs the PKCE login against an OIDC identity provider, keeps the resulting
tokens in secure storage, refreshes them before they expire and tears the
session down on logout.

Usage:
    from pkce_session import AuthSessionManager

    manager = AuthSessionManager.from_config(config, broker=my_broker)
    await manager.start_login()
    token = await manager.with_fresh_token()
"""

__version__ = "0.1.0"

from pkce_session.session.manager import AuthSessionManager
from pkce_session.session.state import SessionState

__all__ = [
    "AuthSessionManager",
    "SessionState",
    "__version__",
]
