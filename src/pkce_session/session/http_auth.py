"""httpx authentication hook backed by the session manager.

Every outbound request asks the manager for a fresh access token (refreshing
first when needed) and carries it as a Bearer header:

    async with httpx.AsyncClient(auth=SessionBearerAuth(manager)) as client:
        response = await client.get("https://api.example.com/items")
"""

from __future__ import annotations

__all__ = [
    "SessionBearerAuth",
]

from collections.abc import AsyncGenerator, Generator
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from pkce_session.session.manager import AuthSessionManager


class SessionBearerAuth(httpx.Auth):
    """Sets Authorization: Bearer <access token> from AuthSessionManager.

    Errors from with_fresh_token() (NotAuthenticatedError, SessionExpiredError,
    ...) propagate out of the request call unchanged.
    """

    def __init__(self, manager: "AuthSessionManager") -> None:
        self._manager = manager

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        raise RuntimeError("SessionBearerAuth requires httpx.AsyncClient")
        yield request  # pragma: no cover

    async def async_auth_flow(self, request: httpx.Request) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await self._manager.with_fresh_token()
        request.headers["Authorization"] = f"Bearer {token}"
        yield request
