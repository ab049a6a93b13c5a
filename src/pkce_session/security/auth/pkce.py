"""PKCE (Proof Key for Code Exchange) generation.

RFC 7636: https://www.rfc-editor.org/rfc/rfc7636

PKCE binds an authorization code to the client that requested it:
1. Client generates code_verifier (secret) and code_challenge (derived)
2. Client sends code_challenge with the authorization request
3. Client sends code_verifier with the token exchange
4. Server verifies SHA256(code_verifier) == code_challenge

The state parameter generated alongside is the anti-CSRF token checked when
the callback comes back.
"""

from __future__ import annotations

__all__ = [
    "PKCEContext",
    "PKCEGenerator",
    "compute_code_challenge",
]

import base64
import hashlib
import secrets
from dataclasses import dataclass, field

from pkce_session.constants import PKCE_STATE_BYTES, PKCE_VERIFIER_BYTES


def _b64url_nopad(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def compute_code_challenge(code_verifier: str) -> str:
    """Compute code_challenge from code_verifier using the S256 method.

    code_challenge = BASE64URL(SHA256(ASCII(code_verifier)))

    Args:
        code_verifier: The PKCE code verifier string.

    Returns:
        Base64URL-encoded SHA256 hash without padding.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url_nopad(digest)


@dataclass(frozen=True)
class PKCEContext:
    """Secrets for one login attempt. Held in memory only, never persisted.

    Attributes:
        verifier: 43-128 chars from the unreserved charset.
        challenge: base64url(SHA-256(verifier)) without padding.
        state: Anti-CSRF token echoed back by the provider.
    """

    verifier: str = field(repr=False)
    challenge: str
    state: str = field(repr=False)


class PKCEGenerator:
    """Produces PKCE contexts from the `secrets` CSPRNG.

    Args:
        verifier_bytes: Random bytes in the verifier (32..96, giving 43..128 chars).
        state_bytes: Random bytes in the state token (at least verifier_bytes).
    """

    def __init__(
        self,
        verifier_bytes: int = PKCE_VERIFIER_BYTES,
        state_bytes: int = PKCE_STATE_BYTES,
    ) -> None:
        if not 32 <= verifier_bytes <= 96:
            raise ValueError("verifier_bytes must be between 32 and 96")
        if state_bytes < verifier_bytes:
            raise ValueError("state_bytes must be at least verifier_bytes")
        self._verifier_bytes = verifier_bytes
        self._state_bytes = state_bytes

    def generate(self) -> PKCEContext:
        """Generate a fresh verifier, its S256 challenge and an independent state."""
        verifier = _b64url_nopad(secrets.token_bytes(self._verifier_bytes))
        return PKCEContext(
            verifier=verifier,
            challenge=compute_code_challenge(verifier),
            state=_b64url_nopad(secrets.token_bytes(self._state_bytes)),
        )
