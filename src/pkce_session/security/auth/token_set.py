"""TokenSet model and its four-slot persistence.

A TokenSet is persisted as four entries under one credential namespace:
access token, refresh token, expiry (epoch seconds as text) and id token.
It is always written and cleared as a whole.
"""

from __future__ import annotations

__all__ = [
    "TokenSet",
    "clear_token_set",
    "load_id_token",
    "load_token_set",
    "save_token_set",
]

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from pkce_session.constants import (
    ACCESS_TOKEN_KEY,
    CREDENTIAL_KEYS,
    EXPIRES_AT_KEY,
    ID_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
)
from pkce_session.exceptions import StorageError
from pkce_session.security.credential_store import SecureCredentialStore


class TokenSet(BaseModel):
    """OAuth tokens for the current session.

    Attributes:
        access_token: Bearer token for resource servers.
        refresh_token: Token for obtaining new access tokens (None if the provider sent none).
        id_token: OIDC ID token, used as id_token_hint at logout.
        expires_at: UTC instant the access token expires (issue time + expires_in).
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    expires_at: datetime

    @property
    def seconds_until_expiry(self) -> float:
        """Seconds until access token expires (negative if expired)."""
        return (self.expires_at - datetime.now(timezone.utc)).total_seconds()

    @property
    def is_expired(self) -> bool:
        """Check if access token has expired."""
        return self.seconds_until_expiry <= 0

    def is_fresh(self, margin_seconds: float) -> bool:
        """True if the access token is still valid margin_seconds from now."""
        return self.seconds_until_expiry > margin_seconds

    def __repr__(self) -> str:
        return (
            f"TokenSet(expires_at={self.expires_at.isoformat()!r}, "
            f"has_refresh_token={self.refresh_token is not None})"
        )

    __str__ = __repr__


def save_token_set(store: SecureCredentialStore, namespace: str, token_set: TokenSet) -> None:
    """Persist all four slots, replacing any previous TokenSet.

    A TokenSet without id token deletes the id slot so no stale value remains.

    Raises:
        StorageError: If any slot cannot be written.
    """
    store.save(namespace, ACCESS_TOKEN_KEY, token_set.access_token)
    if token_set.refresh_token is not None:
        store.save(namespace, REFRESH_TOKEN_KEY, token_set.refresh_token)
    else:
        store.delete(namespace, REFRESH_TOKEN_KEY)
    if token_set.id_token is not None:
        store.save(namespace, ID_TOKEN_KEY, token_set.id_token)
    else:
        store.delete(namespace, ID_TOKEN_KEY)
    store.save(namespace, EXPIRES_AT_KEY, repr(token_set.expires_at.timestamp()))


def load_token_set(store: SecureCredentialStore, namespace: str) -> TokenSet | None:
    """Read the persisted TokenSet.

    Returns:
        TokenSet, or None when the access token or expiry slot is missing.

    Raises:
        StorageError: If the store fails or the expiry slot is corrupted.
    """
    access_token = store.read(namespace, ACCESS_TOKEN_KEY)
    expires_raw = store.read(namespace, EXPIRES_AT_KEY)
    if access_token is None or expires_raw is None:
        return None

    try:
        expires_at = datetime.fromtimestamp(float(expires_raw), tz=timezone.utc)
    except (ValueError, OverflowError, OSError) as e:
        raise StorageError(f"Stored token expiry is corrupted: {expires_raw!r}") from e

    return TokenSet(
        access_token=access_token,
        refresh_token=store.read(namespace, REFRESH_TOKEN_KEY),
        id_token=store.read(namespace, ID_TOKEN_KEY),
        expires_at=expires_at,
    )


def load_id_token(store: SecureCredentialStore, namespace: str) -> str | None:
    """Read only the id token slot (logout path)."""
    return store.read(namespace, ID_TOKEN_KEY)


def clear_token_set(store: SecureCredentialStore, namespace: str) -> None:
    """Delete all four slots.

    Every slot is attempted even if an earlier delete fails; the first
    failure is raised afterwards.

    Raises:
        StorageError: If any slot could not be deleted.
    """
    first_error: StorageError | None = None
    for key in CREDENTIAL_KEYS:
        try:
            store.delete(namespace, key)
        except StorageError as e:
            first_error = first_error or e
    if first_error is not None:
        raise first_error
