"""Application-wide constants for pkce-session.

Constants that define application behavior.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    "CONFIG_PATH_ENV_VAR",
    # Protected directories
    "PROTECTED_CONFIG_DIR",
    # Credential storage
    "DEFAULT_CREDENTIAL_NAMESPACE",
    "ACCESS_TOKEN_KEY",
    "REFRESH_TOKEN_KEY",
    "EXPIRES_AT_KEY",
    "ID_TOKEN_KEY",
    "CREDENTIAL_KEYS",
    "ENCRYPTED_CREDENTIAL_FILE",
    # OAuth HTTP exchanges
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "MIN_HTTP_TIMEOUT_SECONDS",
    "MAX_HTTP_TIMEOUT_SECONDS",
    # Session
    "DEFAULT_REFRESH_MARGIN_SECONDS",
    "INVALID_GRANT_ERRORS",
    # Logging
    "SECRET_LOG_FIELDS",
    # PKCE
    "PKCE_VERIFIER_BYTES",
    "PKCE_STATE_BYTES",
    "PKCE_CHALLENGE_METHOD",
    # Keycloak endpoint paths
    "OIDC_AUTHORIZATION_PATH",
    "OIDC_TOKEN_PATH",
    "OIDC_END_SESSION_PATH",
]

import os

from platformdirs import user_config_dir

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names, service names, etc.
APP_NAME: str = "pkce-session"

# Environment variable pointing at an alternative config.json
CONFIG_PATH_ENV_VAR: str = "PKCE_SESSION_CONFIG"

# ============================================================================
# Protected Configuration Directory
# ============================================================================

# OS-specific config directory holding the encrypted credential fallback file.
# - macOS: ~/Library/Application Support/pkce-session/
# - Linux: ~/.config/pkce-session/
# - Windows: %APPDATA%\pkce-session\
PROTECTED_CONFIG_DIR: str = os.path.realpath(user_config_dir(APP_NAME))

# ============================================================================
# Credential Storage
# ============================================================================

# Keyring service / namespace that scopes all credential slots
DEFAULT_CREDENTIAL_NAMESPACE: str = APP_NAME

# The four logical slots of a persisted TokenSet
ACCESS_TOKEN_KEY: str = "access_token"
REFRESH_TOKEN_KEY: str = "refresh_token"
EXPIRES_AT_KEY: str = "expires_at"  # epoch seconds as text
ID_TOKEN_KEY: str = "id_token"  # read at logout for id_token_hint

CREDENTIAL_KEYS: tuple[str, ...] = (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    EXPIRES_AT_KEY,
    ID_TOKEN_KEY,
)

# Fernet-encrypted fallback file (used when no keyring backend is available)
ENCRYPTED_CREDENTIAL_FILE: str = "credentials.enc"

# ============================================================================
# OAuth HTTP Exchanges
# ============================================================================

# Timeout for token endpoint requests (code exchange, refresh)
DEFAULT_HTTP_TIMEOUT_SECONDS: int = 20
MIN_HTTP_TIMEOUT_SECONDS: int = 1
MAX_HTTP_TIMEOUT_SECONDS: int = 120

# ============================================================================
# Session
# ============================================================================

# Never hand out an access token that expires within this many seconds
DEFAULT_REFRESH_MARGIN_SECONDS: int = 30

# Token endpoint "error" values that make a refresh token unusable
INVALID_GRANT_ERRORS: frozenset[str] = frozenset({"invalid_grant", "expired_token", "invalid_token"})

# ============================================================================
# Logging
# ============================================================================

# Dict message fields masked by the JSONL formatter
SECRET_LOG_FIELDS: frozenset[str] = frozenset(
    {
        ACCESS_TOKEN_KEY,
        REFRESH_TOKEN_KEY,
        ID_TOKEN_KEY,
        "code",
        "code_verifier",
        "client_secret",
    }
)

# ============================================================================
# PKCE (RFC 7636)
# ============================================================================

# 32 random bytes -> 43 char base64url verifier (RFC 7636 minimum length)
PKCE_VERIFIER_BYTES: int = 32
PKCE_STATE_BYTES: int = 32
PKCE_CHALLENGE_METHOD: str = "S256"

# ============================================================================
# Keycloak OIDC endpoint paths (relative to the realm issuer)
# ============================================================================

OIDC_AUTHORIZATION_PATH: str = "/protocol/openid-connect/auth"
OIDC_TOKEN_PATH: str = "/protocol/openid-connect/token"
OIDC_END_SESSION_PATH: str = "/protocol/openid-connect/logout"
