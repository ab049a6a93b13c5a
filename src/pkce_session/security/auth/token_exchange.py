"""Token endpoint exchanges for a public PKCE client.

Two grants, both POSTed form-encoded to the provider's token endpoint:
1. authorization_code: code + code_verifier -> TokenSet (id_token required)
2. refresh_token: refresh token -> TokenSet

No retries are performed here - retry policy belongs to the caller.
"""

from __future__ import annotations

__all__ = [
    "TokenExchangeClient",
]

from typing import TYPE_CHECKING, Any

import httpx

from pkce_session.constants import DEFAULT_HTTP_TIMEOUT_SECONDS
from pkce_session.exceptions import (
    ExchangeRejectedError,
    MalformedResponseError,
    TransportFailureError,
)
from pkce_session.security.auth.token_parser import parse_token_response
from pkce_session.security.auth.token_set import TokenSet
from pkce_session.telemetry.system.system_logger import get_system_logger

if TYPE_CHECKING:
    from pkce_session.config import OIDCConfig


class TokenExchangeClient:
    """Performs the code and refresh exchanges against the token endpoint.

    Usage:
        async with TokenExchangeClient(oidc_config) as client:
            token_set = await client.exchange_code(code, verifier)
            token_set = await client.refresh(token_set.refresh_token)
    """

    def __init__(
        self,
        config: "OIDCConfig",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the exchange client.

        Args:
            config: OIDC configuration (client_id, redirect_uri, token endpoint).
            http_client: Optional httpx client (for testing).
            timeout_seconds: Bound for each exchange when we create the client.
        """
        self._config = config
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = http_client is None
        self._token_url = config.token_url
        self._logger = get_system_logger()

    async def __aenter__(self) -> "TokenExchangeClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    async def exchange_code(self, code: str, verifier: str) -> TokenSet:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the redirect callback.
            verifier: PKCE code_verifier generated for this login attempt.

        Returns:
            TokenSet with access, refresh and id token.

        Raises:
            ExchangeRejectedError: Non-2xx response.
            MalformedResponseError: Missing/invalid fields (including id_token).
            TransportFailureError: Network failure or timeout.
        """
        data = await self._post(
            {
                "grant_type": "authorization_code",
                "client_id": self._config.client_id,
                "code": code,
                "redirect_uri": self._config.redirect_uri,
                "code_verifier": verifier,
            },
            grant="authorization_code",
        )
        return parse_token_response(data, require_id_token=True)

    async def refresh(self, refresh_token: str) -> TokenSet:
        """Obtain new tokens with the refresh_token grant.

        Args:
            refresh_token: Current refresh token (may be single-use at the provider).

        Returns:
            TokenSet with the new access and refresh token (id_token if sent).

        Raises:
            ExchangeRejectedError: Non-2xx response (check is_invalid_grant).
            MalformedResponseError: Missing/invalid fields.
            TransportFailureError: Network failure or timeout.
        """
        data = await self._post(
            {
                "grant_type": "refresh_token",
                "client_id": self._config.client_id,
                "refresh_token": refresh_token,
            },
            grant="refresh_token",
        )
        return parse_token_response(data, require_id_token=False)

    def clear_cookies(self, host: str) -> int:
        """Drop cookies the identity provider set on this client.

        Args:
            host: Identity provider host; cookies for it and its subdomains are removed.

        Returns:
            Number of cookies removed.
        """
        host = host.lower()
        removed = 0
        jar = self._client.cookies.jar
        for cookie in list(jar):
            domain = cookie.domain.lstrip(".").lower()
            if domain == host or host.endswith(f".{domain}") or domain.endswith(f".{host}"):
                jar.clear(cookie.domain, cookie.path, cookie.name)
                removed += 1
        return removed

    async def _post(self, form: dict[str, str], *, grant: str) -> Any:
        """POST a form to the token endpoint and return the decoded JSON body."""
        try:
            response = await self._client.post(
                self._token_url,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise TransportFailureError(f"Token endpoint timed out ({grant}): {e}") from e
        except httpx.HTTPError as e:
            raise TransportFailureError(f"HTTP error during {grant} exchange: {e}") from e

        if not response.is_success:
            body = self._error_body(response)
            self._logger.warning(
                {
                    "event": "token_exchange_rejected",
                    "grant_type": grant,
                    "status": response.status_code,
                    "error": body.get("error") if isinstance(body, dict) else None,
                }
            )
            raise ExchangeRejectedError(response.status_code, body)

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Token endpoint returned non-JSON body ({grant})") from e

    @staticmethod
    def _error_body(response: httpx.Response) -> Any:
        """Provider error body: parsed JSON when possible, raw text otherwise, None if empty."""
        try:
            return response.json()
        except ValueError:
            text = response.text
            return text or None
