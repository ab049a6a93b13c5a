"""Shared OAuth token response parsing.

Used by both token endpoint exchanges (authorization_code and refresh_token).
"""

from __future__ import annotations

__all__ = ["parse_token_response"]

from datetime import datetime, timedelta, timezone
from typing import Any

from pkce_session.exceptions import MalformedResponseError
from pkce_session.security.auth.token_set import TokenSet


def _require_string(data: dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value:
        raise MalformedResponseError(f"Token response is missing '{field}'")
    return value


def parse_token_response(
    data: Any,
    *,
    require_id_token: bool,
    issued_at: datetime | None = None,
) -> TokenSet:
    """Parse a token endpoint JSON body into a TokenSet.

    Required fields:
    - access_token, refresh_token (non-empty strings)
    - expires_in (integer seconds, not negative)
    - id_token (only when require_id_token is True)

    Args:
        data: Decoded JSON body.
        require_id_token: True for the authorization_code exchange.
        issued_at: Time of the exchange (default: now). expires_at is
            issued_at + expires_in and is never recomputed later.

    Returns:
        TokenSet built from the response.

    Raises:
        MalformedResponseError: If the body is not an object or a field is missing/invalid.
    """
    if not isinstance(data, dict):
        raise MalformedResponseError("Token response is not a JSON object")

    access_token = _require_string(data, "access_token")
    refresh_token = _require_string(data, "refresh_token")

    expires_in = data.get("expires_in")
    # bool is an int subclass; "expires_in": true is not a lifetime
    if not isinstance(expires_in, int) or isinstance(expires_in, bool) or expires_in < 0:
        raise MalformedResponseError("Token response has no valid integer 'expires_in'")

    if require_id_token:
        id_token: str | None = _require_string(data, "id_token")
    else:
        raw_id_token = data.get("id_token")
        id_token = raw_id_token if isinstance(raw_id_token, str) and raw_id_token else None

    now = issued_at or datetime.now(timezone.utc)
    return TokenSet(
        access_token=access_token,
        refresh_token=refresh_token,
        id_token=id_token,
        expires_at=now + timedelta(seconds=expires_in),
    )
