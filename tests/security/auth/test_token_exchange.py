"""Tests for TokenExchangeClient against a mocked token endpoint."""

from __future__ import annotations

from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest
from conftest import token_response

from pkce_session.config import OIDCConfig
from pkce_session.exceptions import (
    ExchangeRejectedError,
    MalformedResponseError,
    TransportFailureError,
)
from pkce_session.security.auth.token_exchange import TokenExchangeClient

TOKEN_URL = "https://sso.example.com/realms/test/protocol/openid-connect/token"


def _client(
    oidc_config: OIDCConfig,
    handler: Callable[[httpx.Request], httpx.Response],
) -> TokenExchangeClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TokenExchangeClient(oidc_config, http_client=http_client)


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


class TestExchangeCode:
    """Tests for the authorization_code grant."""

    @pytest.mark.asyncio
    async def test_posts_pkce_form_to_token_endpoint(self, oidc_config: OIDCConfig) -> None:
        """Given a code and verifier, the request carries the full PKCE form."""
        # Arrange
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=token_response())

        client = _client(oidc_config, handler)

        # Act
        token_set = await client.exchange_code("the-code", "the-verifier")

        # Assert
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == TOKEN_URL
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert _form(request) == {
            "grant_type": "authorization_code",
            "client_id": "test-client",
            "code": "the-code",
            "redirect_uri": "com.example.app:/oauth2redirect",
            "code_verifier": "the-verifier",
        }
        assert token_set.access_token == "access-new"
        assert token_set.refresh_token == "refresh-new"
        assert token_set.id_token == "id-new"

    @pytest.mark.asyncio
    async def test_missing_id_token_is_malformed(self, oidc_config: OIDCConfig) -> None:
        """Given a code exchange response without id_token, MalformedResponseError is raised."""
        # Arrange
        client = _client(oidc_config, lambda request: httpx.Response(200, json=token_response(id_token=None)))

        # Act / Assert
        with pytest.raises(MalformedResponseError):
            await client.exchange_code("c", "v")

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self, oidc_config: OIDCConfig) -> None:
        """Given a 200 with an HTML body, MalformedResponseError is raised."""
        # Arrange
        client = _client(oidc_config, lambda request: httpx.Response(200, text="<html>oops</html>"))

        # Act / Assert
        with pytest.raises(MalformedResponseError):
            await client.exchange_code("c", "v")

    @pytest.mark.asyncio
    async def test_rejection_carries_provider_error(self, oidc_config: OIDCConfig) -> None:
        """Given a 400 invalid_grant, ExchangeRejectedError carries status and error."""
        # Arrange
        body = {"error": "invalid_grant", "error_description": "Code not valid"}
        client = _client(oidc_config, lambda request: httpx.Response(400, json=body))

        # Act
        with pytest.raises(ExchangeRejectedError) as exc_info:
            await client.exchange_code("c", "v")

        # Assert
        assert exc_info.value.status == 400
        assert exc_info.value.error == "invalid_grant"
        assert exc_info.value.error_description == "Code not valid"
        assert exc_info.value.is_invalid_grant is True


class TestRefresh:
    """Tests for the refresh_token grant."""

    @pytest.mark.asyncio
    async def test_posts_refresh_form(self, oidc_config: OIDCConfig) -> None:
        """Given a refresh token, the form carries grant_type, client_id and refresh_token."""
        # Arrange
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=token_response(id_token=None))

        client = _client(oidc_config, handler)

        # Act
        token_set = await client.refresh("refresh-1")

        # Assert
        assert _form(seen[0]) == {
            "grant_type": "refresh_token",
            "client_id": "test-client",
            "refresh_token": "refresh-1",
        }
        assert token_set.id_token is None

    @pytest.mark.asyncio
    async def test_server_error_is_not_invalid_grant(self, oidc_config: OIDCConfig) -> None:
        """Given a 503 with a text body, the rejection keeps the text and is not terminal."""
        # Arrange
        client = _client(oidc_config, lambda request: httpx.Response(503, text="maintenance"))

        # Act
        with pytest.raises(ExchangeRejectedError) as exc_info:
            await client.refresh("r")

        # Assert
        assert exc_info.value.status == 503
        assert exc_info.value.body == "maintenance"
        assert exc_info.value.is_invalid_grant is False

    @pytest.mark.asyncio
    async def test_timeout_is_transport_failure(self, oidc_config: OIDCConfig) -> None:
        """Given a read timeout, TransportFailureError is raised."""

        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(oidc_config, handler)

        # Act / Assert
        with pytest.raises(TransportFailureError, match="timed out"):
            await client.refresh("r")

    @pytest.mark.asyncio
    async def test_connect_error_is_transport_failure(self, oidc_config: OIDCConfig) -> None:
        """Given a DNS/connect failure, TransportFailureError is raised."""

        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("name resolution failed", request=request)

        client = _client(oidc_config, handler)

        # Act / Assert
        with pytest.raises(TransportFailureError):
            await client.refresh("r")


class TestClientLifecycle:
    """Tests for client ownership and cookie clearing."""

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, oidc_config: OIDCConfig) -> None:
        """Given an injected httpx client, aclose leaves it open."""
        # Arrange
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        # Act
        async with TokenExchangeClient(oidc_config, http_client=http_client):
            pass

        # Assert
        assert http_client.is_closed is False
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self, oidc_config: OIDCConfig) -> None:
        """Given no injected client, aclose closes the one it created."""
        # Arrange
        client = TokenExchangeClient(oidc_config, timeout_seconds=5)

        # Act
        await client.aclose()

        # Assert
        assert client._client.is_closed is True

    @pytest.mark.asyncio
    async def test_clear_cookies_only_removes_provider_cookies(self, oidc_config: OIDCConfig) -> None:
        """Given cookies for the provider and another site, only the provider's are removed."""
        # Arrange
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        http_client.cookies.set("KEYCLOAK_SESSION", "s", domain="sso.example.com")
        http_client.cookies.set("AUTH_SESSION_ID", "a", domain=".example.com")
        http_client.cookies.set("other", "o", domain="api.other.org")
        client = TokenExchangeClient(oidc_config, http_client=http_client)

        # Act
        removed = client.clear_cookies("sso.example.com")

        # Assert
        assert removed == 2
        assert [cookie.name for cookie in http_client.cookies.jar] == ["other"]
        await http_client.aclose()
