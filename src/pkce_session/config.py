"""Application configuration for pkce-session.

Defines configuration models for the identity provider, session behavior and
logging. User creates config via `pkce-session init`. Config is stored at the
OS-appropriate location (via click.get_app_dir) unless the
PKCE_SESSION_CONFIG environment variable points elsewhere.

Example usage:
    # Load from config file
    config = AppConfig.load_from_files(get_config_path())

    # Save new configuration
    config.save_to_file(get_config_path())
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_LOG_DIR",
    "AppConfig",
    "AuthConfig",
    "LoggingConfig",
    "OIDCConfig",
    "SessionConfig",
    "get_auth_log_path",
    "get_config_path",
    "get_system_log_path",
    "load_config",
]

import json
import os
import sys
from pathlib import Path
from typing import Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

from pkce_session.constants import (
    APP_NAME,
    CONFIG_PATH_ENV_VAR,
    DEFAULT_CREDENTIAL_NAMESPACE,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_REFRESH_MARGIN_SECONDS,
    MAX_HTTP_TIMEOUT_SECONDS,
    MIN_HTTP_TIMEOUT_SECONDS,
    OIDC_AUTHORIZATION_PATH,
    OIDC_END_SESSION_PATH,
    OIDC_TOKEN_PATH,
)
from pkce_session.exceptions import ConfigurationError
from pkce_session.utils.file_helpers import (
    atomic_write_bytes,
    get_app_dir,
    load_validated_json,
    require_file_exists,
)


# =============================================================================
# Platform-specific defaults
# =============================================================================


def _get_platform_log_dir() -> str:
    """Get platform-appropriate base log directory following OS conventions.

    Returns:
        Platform-specific base log directory path (unexpanded).

    Platform conventions:
        - macOS: ~/Library/Logs
        - Linux: ~/.local/state (XDG Base Directory Specification)
        - Windows: ~/AppData/Local
    """
    if sys.platform == "darwin":
        return "~/Library/Logs"
    elif sys.platform == "win32":
        return "~/AppData/Local"
    else:
        return os.environ.get("XDG_STATE_HOME", "~/.local/state")


# Default base log directory (platform-specific, follows OS conventions)
DEFAULT_LOG_DIR = _get_platform_log_dir()


# =============================================================================
# Identity Provider
# =============================================================================


class OIDCConfig(BaseModel):
    """OIDC identity provider configuration for a public PKCE client.

    Endpoints default to Keycloak paths under the realm issuer and can be
    overridden one by one for other providers.

    Attributes:
        issuer: Realm issuer URL (e.g., "https://sso.example.com/realms/main").
        client_id: Public client ID registered at the provider.
        redirect_uri: Custom-scheme callback URI (e.g., "com.example.app:/oauth2redirect").
        scopes: OAuth scopes to request.
        prompt: Value for the "prompt" authorization parameter (None to omit).
        authorization_endpoint: Override for the authorization endpoint.
        token_endpoint: Override for the token endpoint.
        end_session_endpoint: Override for the end-session endpoint.
        post_logout_redirect_uri: Redirect after remote logout (defaults to redirect_uri).
    """

    issuer: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    redirect_uri: str = Field(min_length=1)
    scopes: list[str] = Field(
        default=["openid", "profile"],
        description="OAuth scopes to request",
    )
    prompt: str | None = "login"
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None
    end_session_endpoint: str | None = None
    post_logout_redirect_uri: str | None = None

    @field_validator("issuer")
    @classmethod
    def _issuer_must_be_https_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("https", "http") or not parts.netloc:
            raise ValueError("issuer must be an absolute http(s) URL")
        return value.rstrip("/")

    @field_validator("redirect_uri")
    @classmethod
    def _redirect_uri_must_have_scheme(cls, value: str) -> str:
        if not urlsplit(value).scheme:
            raise ValueError("redirect_uri must include a scheme")
        return value

    @property
    def authorization_url(self) -> str:
        """Authorization endpoint URL."""
        return self.authorization_endpoint or f"{self.issuer}{OIDC_AUTHORIZATION_PATH}"

    @property
    def token_url(self) -> str:
        """Token endpoint URL."""
        return self.token_endpoint or f"{self.issuer}{OIDC_TOKEN_PATH}"

    @property
    def end_session_url(self) -> str:
        """End-session (RP-initiated logout) endpoint URL."""
        return self.end_session_endpoint or f"{self.issuer}{OIDC_END_SESSION_PATH}"

    @property
    def logout_redirect_uri(self) -> str:
        """Where the provider sends the browser after remote logout."""
        return self.post_logout_redirect_uri or self.redirect_uri

    @property
    def provider_host(self) -> str:
        """Host name of the identity provider (scope for cookies / site data)."""
        return urlsplit(self.issuer).hostname or ""


class AuthConfig(BaseModel):
    """Authentication configuration.

    Attributes:
        oidc: Identity provider configuration.
    """

    oidc: OIDCConfig


# =============================================================================
# Session Configuration
# =============================================================================


class SessionConfig(BaseModel):
    """Session manager behavior.

    Attributes:
        refresh_margin_seconds: Access tokens expiring within this window are refreshed first.
        http_timeout_seconds: Timeout for each token endpoint request.
        credential_namespace: Keyring service / namespace for the credential slots.
        storage_backend: "auto" (keychain, else encrypted file), "keychain" or "encrypted_file".
    """

    refresh_margin_seconds: int = Field(default=DEFAULT_REFRESH_MARGIN_SECONDS, ge=0)
    http_timeout_seconds: int = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        ge=MIN_HTTP_TIMEOUT_SECONDS,
        le=MAX_HTTP_TIMEOUT_SECONDS,
    )
    credential_namespace: str = Field(default=DEFAULT_CREDENTIAL_NAMESPACE, min_length=1)
    storage_backend: Literal["auto", "keychain", "encrypted_file"] = "auto"


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration settings.

    Logs are stored in <log_dir>/pkce-session/ with this structure:
        <log_dir>/
        └── pkce-session/
            ├── system/
            │   └── system.jsonl     # WARNING and above
            └── audit/
                └── auth.jsonl       # login, refresh, logout events

    Attributes:
        log_dir: Base directory for logs.
        log_level: Console logging level.
        audit_enabled: Whether to write auth.jsonl.
    """

    log_dir: str = Field(default=DEFAULT_LOG_DIR, min_length=1)
    log_level: Literal["DEBUG", "INFO", "WARNING"] = "INFO"
    audit_enabled: bool = True


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Top-level configuration for pkce-session.

    Attributes:
        auth: Identity provider configuration.
        session: Session manager behavior.
        logging: Logging configuration.
    """

    auth: AuthConfig
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def save_to_file(self, config_path: Path) -> None:
        """Write the config atomically: 0700 directory, 0600 file.

        Raises:
            OSError: If the directory is not writable.
        """
        payload = json.dumps(self.model_dump(), indent=2) + "\n"
        atomic_write_bytes(config_path, payload.encode("utf-8"))

    @classmethod
    def load_from_files(cls, config_path: Path) -> "AppConfig":
        """Load configuration from JSON file.

        Args:
            config_path: Path to the config JSON file.

        Returns:
            AppConfig instance with loaded configuration.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config file is invalid or missing required fields.
        """
        require_file_exists(config_path, file_type="configuration")
        return load_validated_json(
            config_path,
            cls,
            file_type="config",
            recovery_hint="Run 'pkce-session init' to reconfigure.",
            encoding="utf-8",
        )


def get_config_path() -> Path:
    """Get the config file path.

    Honours the PKCE_SESSION_CONFIG environment variable, otherwise uses
    <app_dir>/config.json.

    Returns:
        Path to config.json.
    """
    override = os.environ.get(CONFIG_PATH_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return get_app_dir() / "config.json"


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration, converting file problems into ConfigurationError.

    Args:
        config_path: Explicit path (default: get_config_path()).

    Returns:
        Validated AppConfig.

    Raises:
        ConfigurationError: If the file is missing or invalid.
    """
    path = config_path or get_config_path()
    try:
        return AppConfig.load_from_files(path)
    except (FileNotFoundError, ValueError) as e:
        raise ConfigurationError(str(e)) from e


def _get_log_base(config: AppConfig) -> Path:
    return Path(config.logging.log_dir).expanduser() / APP_NAME


def get_system_log_path(config: AppConfig) -> Path:
    """Path of the system JSONL log (WARNING and above)."""
    return _get_log_base(config) / "system" / "system.jsonl"


def get_auth_log_path(config: AppConfig) -> Path:
    """Path of the authentication audit log."""
    return _get_log_base(config) / "audit" / "auth.jsonl"
