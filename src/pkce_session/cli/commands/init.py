"""Init command for pkce-session CLI.

Handles interactive and non-interactive configuration initialization.
"""

from __future__ import annotations

__all__ = ["init"]

import sys
from typing import Literal, cast

import click
from pydantic import ValidationError

from pkce_session.config import (
    DEFAULT_LOG_DIR,
    AppConfig,
    AuthConfig,
    LoggingConfig,
    OIDCConfig,
    SessionConfig,
    get_config_path,
)
from pkce_session.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_REFRESH_MARGIN_SECONDS,
    MAX_HTTP_TIMEOUT_SECONDS,
    MIN_HTTP_TIMEOUT_SECONDS,
)
from pkce_session.exceptions import StorageError
from pkce_session.security.auth.token_set import load_token_set
from pkce_session.security.credential_store import create_credential_store

from ..styling import style_dim, style_error, style_header, style_success, style_warning


def _require_flag(value: str | None, flag_name: str) -> str:
    """Validate a required CLI flag, exit with error if missing."""
    if not value:
        click.echo(style_error(f"Error: --{flag_name} is required"), err=True)
        sys.exit(1)
    return value


def _check_oidc_change_warning(old_config: AppConfig | None, new_oidc: OIDCConfig) -> None:
    """Warn if the identity provider changed while a session is stored.

    Tokens issued by a different issuer or for a different client cannot be
    refreshed against the new settings.
    """
    if old_config is None:
        return

    old_oidc = old_config.auth.oidc
    if old_oidc.issuer == new_oidc.issuer and old_oidc.client_id == new_oidc.client_id:
        return

    try:
        store = create_credential_store(old_config.session.storage_backend)
        has_session = load_token_set(store, old_config.session.credential_namespace) is not None
    except StorageError:
        # Can't check the store - not critical for init
        return

    if has_session:
        click.echo()
        click.echo(style_warning("Identity provider settings changed"))
        click.echo("  Your stored session was created with different settings.")
        click.echo("  Run 'pkce-session auth logout' and 'auth login' to re-authenticate.")
        click.echo()


def _prompt_oidc(
    issuer: str | None,
    client_id: str | None,
    redirect_uri: str | None,
    scopes: str | None,
) -> tuple[str, str, str, str]:
    click.echo(style_header("Identity Provider"))
    issuer = issuer or click.prompt("  Issuer URL (e.g., https://sso.example.com/realms/main)")
    client_id = client_id or click.prompt("  Client ID")
    redirect_uri = redirect_uri or click.prompt("  Redirect URI (e.g., com.example.app:/oauth2redirect)")
    scopes = scopes or click.prompt("  Scopes", default="openid profile")
    click.echo()
    return issuer, client_id, redirect_uri, scopes


@click.command()
@click.option(
    "--non-interactive",
    is_flag=True,
    help="Skip prompts, require all options via flags",
)
@click.option("--issuer", help="OIDC issuer URL (e.g., https://sso.example.com/realms/main)")
@click.option("--client-id", help="Public client ID registered at the identity provider")
@click.option("--redirect-uri", help="Redirect URI registered for the client")
@click.option("--scopes", help="Space-separated scopes (default: 'openid profile')")
@click.option(
    "--post-logout-redirect-uri",
    help="Redirect after remote logout (default: the redirect URI)",
)
@click.option(
    "--refresh-margin",
    type=click.IntRange(min=0),
    default=DEFAULT_REFRESH_MARGIN_SECONDS,
    help=f"Refresh tokens expiring within this many seconds (default: {DEFAULT_REFRESH_MARGIN_SECONDS})",
)
@click.option(
    "--timeout",
    type=click.IntRange(MIN_HTTP_TIMEOUT_SECONDS, MAX_HTTP_TIMEOUT_SECONDS),
    default=DEFAULT_HTTP_TIMEOUT_SECONDS,
    help=f"Token endpoint timeout in seconds (default: {DEFAULT_HTTP_TIMEOUT_SECONDS})",
)
@click.option(
    "--storage",
    type=click.Choice(["auto", "keychain", "encrypted_file"], case_sensitive=False),
    default="auto",
    help="Credential storage backend (default: auto)",
)
@click.option(
    "--log-dir",
    help=f"Log directory path (default: {DEFAULT_LOG_DIR})",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING"], case_sensitive=False),
    default="INFO",
    help="Console logging verbosity (default: INFO)",
)
@click.option("--force", is_flag=True, help="Overwrite existing config without prompting")
def init(
    non_interactive: bool,
    issuer: str | None,
    client_id: str | None,
    redirect_uri: str | None,
    scopes: str | None,
    post_logout_redirect_uri: str | None,
    refresh_margin: int,
    timeout: int,
    storage: str,
    log_dir: str | None,
    log_level: str,
    force: bool,
) -> None:
    """Initialize pkce-session configuration.

    Creates configuration at the OS-appropriate location (override with
    the PKCE_SESSION_CONFIG environment variable):
    - macOS: ~/Library/Application Support/pkce-session/
    - Linux: ~/.config/pkce-session/
    - Windows: C:\\Users\\<user>\\AppData\\Roaming\\pkce-session/

    Use --non-interactive with required flags for scripted setup.
    """
    config_path = get_config_path()
    config_exists = config_path.exists()

    if config_exists and not force:
        if non_interactive:
            click.echo(style_error("Error: Config already exists. Use --force to overwrite."), err=True)
            sys.exit(1)
        if not click.confirm("Config already exists. Overwrite?", default=False):
            click.echo(style_dim("Aborted."))
            sys.exit(0)

    # Load existing config to check for provider changes later
    old_config: AppConfig | None = None
    if config_exists:
        try:
            old_config = AppConfig.load_from_files(config_path)
        except (OSError, ValueError):
            # Unreadable old config - skip the warning
            pass

    if non_interactive:
        issuer = _require_flag(issuer, "issuer")
        client_id = _require_flag(client_id, "client-id")
        redirect_uri = _require_flag(redirect_uri, "redirect-uri")
        scopes = scopes or "openid profile"
    else:
        issuer, client_id, redirect_uri, scopes = _prompt_oidc(issuer, client_id, redirect_uri, scopes)
        if log_dir is None:
            log_dir = click.prompt("  Log directory", default=DEFAULT_LOG_DIR)

    try:
        oidc = OIDCConfig(
            issuer=issuer,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scopes=scopes.split(),
            post_logout_redirect_uri=post_logout_redirect_uri,
        )
        config = AppConfig(
            auth=AuthConfig(oidc=oidc),
            session=SessionConfig(
                refresh_margin_seconds=refresh_margin,
                http_timeout_seconds=timeout,
                storage_backend=cast(Literal["auto", "keychain", "encrypted_file"], storage.lower()),
            ),
            logging=LoggingConfig(
                log_dir=log_dir or DEFAULT_LOG_DIR,
                log_level=cast(Literal["DEBUG", "INFO", "WARNING"], log_level.upper()),
            ),
        )
    except ValidationError as e:
        click.echo(style_error("Error: Invalid configuration"), err=True)
        for error in e.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            click.echo(f"  - {field}: {error['msg']}", err=True)
        sys.exit(1)

    _check_oidc_change_warning(old_config, oidc)

    try:
        config.save_to_file(config_path)
    except OSError as e:
        click.echo(style_error(f"Error: Failed to save configuration: {e}"), err=True)
        sys.exit(1)

    click.echo(style_success(f"Configuration saved to {config_path}"))
    click.echo()
    click.echo("Next step: run 'pkce-session auth login' to authenticate.")
