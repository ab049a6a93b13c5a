"""Shared fixtures for pkce-session tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlencode, urlsplit

import pytest

from pkce_session.config import AppConfig, AuthConfig, LoggingConfig, OIDCConfig
from pkce_session.exceptions import StorageError
from pkce_session.security.auth.token_set import TokenSet
from pkce_session.security.credential_store import SecureCredentialStore

NAMESPACE = "pkce-session-test"
REDIRECT_URI = "com.example.app:/oauth2redirect"


class InMemoryCredentialStore(SecureCredentialStore):
    """Dict-backed store that records every call and can be told to fail."""

    def __init__(self) -> None:
        self.data: dict[tuple[str, str], str] = {}
        self.saves: list[tuple[str, str]] = []
        self.deletes: list[tuple[str, str]] = []
        self.fail_on_save: set[str] = set()
        self.fail_on_delete: set[str] = set()

    def save(self, namespace: str, key: str, value: str) -> None:
        if key in self.fail_on_save:
            raise StorageError(f"save failed for {key}")
        self.saves.append((namespace, key))
        self.data[(namespace, key)] = value

    def read(self, namespace: str, key: str) -> str | None:
        return self.data.get((namespace, key))

    def delete(self, namespace: str, key: str) -> None:
        if key in self.fail_on_delete:
            raise StorageError(f"delete failed for {key}")
        self.deletes.append((namespace, key))
        self.data.pop((namespace, key), None)

    def keys(self, namespace: str) -> set[str]:
        return {key for (ns, key) in self.data if ns == namespace}


class FakeBroker:
    """Broker that answers the authorization page with a scripted callback.

    By default it echoes the state from the authorization URL back together
    with a fixed code, like a provider after a successful sign-in.
    """

    def __init__(self) -> None:
        self.presented: list[str] = []
        self.end_session_urls: list[str] = []
        self.cleared_hosts: list[str] = []
        self.callback_state: str | None = None
        self.callback_params: dict[str, str] | None = None
        self.error: BaseException | None = None
        self.end_session_error: BaseException | None = None

    async def present(self, url: str, redirect_uri: str) -> str:
        self.presented.append(url)
        if self.error is not None:
            raise self.error
        if self.callback_params is not None:
            return f"{redirect_uri}?{urlencode(self.callback_params)}"
        state = self.callback_state or parse_qs(urlsplit(url).query)["state"][0]
        return f"{redirect_uri}?{urlencode({'code': 'auth-code-123', 'state': state})}"

    async def present_end_session(self, url: str) -> None:
        self.end_session_urls.append(url)
        if self.end_session_error is not None:
            raise self.end_session_error

    async def clear_site_data(self, host: str) -> None:
        self.cleared_hosts.append(host)


@pytest.fixture
def oidc_config() -> OIDCConfig:
    """Keycloak-style realm configuration for tests."""
    return OIDCConfig(
        issuer="https://sso.example.com/realms/test",
        client_id="test-client",
        redirect_uri=REDIRECT_URI,
    )


@pytest.fixture
def app_config(oidc_config: OIDCConfig, tmp_path) -> AppConfig:
    """Full app config logging into tmp_path."""
    return AppConfig(
        auth=AuthConfig(oidc=oidc_config),
        logging=LoggingConfig(log_dir=str(tmp_path / "logs")),
    )


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def fresh_token_set() -> TokenSet:
    """TokenSet valid for one hour."""
    return TokenSet(
        access_token="access-1",
        refresh_token="refresh-1",
        id_token="id-1",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def expired_token_set() -> TokenSet:
    """TokenSet that expired a minute ago."""
    return TokenSet(
        access_token="access-old",
        refresh_token="refresh-old",
        id_token="id-old",
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )


def token_response(
    access_token: str = "access-new",
    refresh_token: str = "refresh-new",
    expires_in: int = 300,
    id_token: str | None = "id-new",
) -> dict:
    """Token endpoint JSON body."""
    body: dict = {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_in": expires_in,
        "token_type": "Bearer",
    }
    if id_token is not None:
        body["id_token"] = id_token
    return body
