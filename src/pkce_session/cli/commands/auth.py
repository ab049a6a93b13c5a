"""Authentication commands for pkce-session CLI.

Commands:
    auth login    - Authenticate via browser (Authorization Code + PKCE)
    auth logout   - End the session locally and at the identity provider
    auth status   - Show authentication status
    auth token    - Print a fresh access token
"""

from __future__ import annotations

__all__ = ["auth"]

import json as json_module
from typing import TYPE_CHECKING, Any

import click
import jwt

from pkce_session.exceptions import AuthError, SessionExpiredError, StorageError, UserCancelledError
from pkce_session.security.auth.token_set import TokenSet, load_token_set
from pkce_session.security.credential_store import create_credential_store, get_credential_store_info
from pkce_session.session.broker import ConsoleAuthBroker
from pkce_session.utils.cli import (
    auth_error_exit,
    load_config_or_exit,
    run_with_manager,
    setup_cli_logging,
)

from ..styling import style_dim, style_success, style_warning

if TYPE_CHECKING:
    from pkce_session.config import OIDCConfig
    from pkce_session.security.credential_store import SecureCredentialStore
    from pkce_session.session.manager import AuthSessionManager


@click.group()
def auth() -> None:
    """Authentication commands."""
    pass


@auth.command()
@click.option(
    "--no-browser",
    is_flag=True,
    help="Don't automatically open browser",
)
def login(no_browser: bool) -> None:
    """Authenticate via browser using Authorization Code + PKCE.

    Opens the identity provider's login page. After signing in, paste the
    URL the browser was redirected to. Tokens are stored securely in your
    OS keychain.
    """
    config = load_config_or_exit()
    setup_cli_logging(config)

    async def _login(manager: "AuthSessionManager") -> tuple[TokenSet, SecureCredentialStore] | None:
        if manager.is_authenticated:
            return None
        await manager.start_login()
        assert manager.token_set is not None
        return manager.token_set, manager.store

    try:
        result = run_with_manager(config, _login, broker=ConsoleAuthBroker(open_browser=not no_browser))
    except UserCancelledError:
        click.echo()
        raise click.ClickException("Login cancelled.")
    except AuthError as e:
        raise auth_error_exit(e, "Authentication failed") from e

    if result is None:
        click.echo(style_dim("Already authenticated."))
        click.echo("Run 'pkce-session auth logout' first to switch accounts.")
        return

    click.echo()
    click.echo(click.style(style_success("Authentication successful!"), bold=True))
    click.echo()

    token_set, store = result
    storage_info = get_credential_store_info(store)
    click.echo(f"  Token stored in: {storage_info['backend']}")
    minutes_until_expiry = token_set.seconds_until_expiry / 60
    click.echo(f"  Access token expires in: {minutes_until_expiry:.1f} minutes")


@auth.command()
@click.option(
    "--local-only",
    is_flag=True,
    help="Only clear local credentials, skip the identity provider logout page",
)
def logout(local_only: bool) -> None:
    """End the session.

    Opens the identity provider's logout page (when an ID token is stored)
    and always removes the tokens from your OS keychain.
    """
    config = load_config_or_exit()
    setup_cli_logging(config)

    async def _logout(manager: "AuthSessionManager") -> bool:
        had_session = manager.is_authenticated
        await manager.logout(remote=not local_only)
        return had_session

    try:
        had_session = run_with_manager(config, _logout, broker=ConsoleAuthBroker())
    except StorageError as e:
        raise auth_error_exit(e, "Failed to clear credentials") from e

    if had_session:
        click.echo(style_success("Local credentials cleared."))
    else:
        click.echo(style_dim("No stored credentials found."))
    click.echo()
    click.echo("Run 'pkce-session auth login' to authenticate again.")


@auth.command()
def token() -> None:
    """Print a fresh access token, refreshing it first if needed.

    Useful for scripts: curl -H "Authorization: Bearer $(pkce-session auth token)" ...
    """
    config = load_config_or_exit()
    setup_cli_logging(config)

    async def _token(manager: "AuthSessionManager") -> str:
        return await manager.with_fresh_token()

    try:
        access_token = run_with_manager(config, _token)
    except SessionExpiredError as e:
        raise auth_error_exit(e, "Session expired, run 'pkce-session auth login'") from e
    except AuthError as e:
        raise auth_error_exit(e, "Could not obtain access token") from e

    click.echo(access_token)


def _id_token_claims(id_token: str) -> dict[str, Any]:
    """Decode ID token claims for display only. The signature is NOT verified."""
    try:
        claims = jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return {}

    user: dict[str, Any] = {}
    if "email" in claims:
        user["email"] = claims["email"]
    if "name" in claims:
        user["name"] = claims["name"]
    if "preferred_username" in claims:
        user["username"] = claims["preferred_username"]
    if "sub" in claims:
        user["subject"] = claims["sub"]
    return user


@auth.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(as_json: bool) -> None:
    """Show authentication status.

    Displays token validity, user info, and storage backend.
    """
    config = load_config_or_exit()
    oidc_config = config.auth.oidc
    store = create_credential_store(config.session.storage_backend)

    storage_info = get_credential_store_info(store)
    result: dict[str, Any] = {
        "authenticated": False,
        "status": "not_authenticated",
        "storage": storage_info,
        "oidc": {
            "issuer": oidc_config.issuer,
            "client_id": oidc_config.client_id,
        },
    }

    try:
        token_set = load_token_set(store, config.session.credential_namespace)
    except StorageError as e:
        result["status"] = "storage_error"
        result["error"] = str(e)
        if as_json:
            click.echo(json_module.dumps(result, indent=2))
        else:
            click.echo(click.style("Status: Stored credentials unreadable", fg="red"))
            click.echo(f"  Error: {e}")
            click.echo()
            click.echo("Run 'pkce-session auth logout' then 'auth login' to fix.")
        return

    if token_set is not None:
        result["token"] = {
            "expires_at": token_set.expires_at.isoformat(),
            "expires_in_seconds": round(token_set.seconds_until_expiry),
            "has_refresh_token": bool(token_set.refresh_token),
            "has_id_token": bool(token_set.id_token),
        }
        if token_set.is_expired:
            result["status"] = "token_expired"
        else:
            result["status"] = "authenticated"
        # An expired access token with a refresh token is still a session
        result["authenticated"] = not token_set.is_expired or bool(token_set.refresh_token)

        if token_set.id_token:
            user = _id_token_claims(token_set.id_token)
            if user:
                result["user"] = user

    if as_json:
        click.echo(json_module.dumps(result, indent=2))
    else:
        _print_status_formatted(result, storage_info, oidc_config)


def _print_status_formatted(
    result: dict[str, Any],
    storage_info: dict[str, str],
    oidc_config: "OIDCConfig",
) -> None:
    """Print auth status in human-readable format."""
    click.echo(click.style("Storage", fg="cyan", bold=True))
    click.echo(f"  Backend: {storage_info['backend']}")
    if "keyring_backend" in storage_info:
        click.echo(f"  Keyring: {storage_info['keyring_backend']}")
    if "location" in storage_info:
        click.echo(f"  Location: {storage_info['location']}")
    click.echo()

    click.echo(click.style("Identity Provider", fg="cyan", bold=True))
    click.echo(f"  Issuer: {oidc_config.issuer}")
    click.echo(f"  Client ID: {oidc_config.client_id}")
    click.echo()

    status_val = result.get("status", "unknown")

    if status_val == "not_authenticated":
        click.echo(click.style("Status: Not authenticated", fg="yellow"))
        click.echo()
        click.echo("Run 'pkce-session auth login' to authenticate.")
        return

    token_info = result.get("token", {})
    if status_val == "token_expired":
        click.echo(click.style("Status: Access token expired", fg="yellow"))
        if token_info.get("has_refresh_token"):
            click.echo(style_dim("  It will be refreshed automatically on next use."))
        else:
            click.echo(style_warning("No refresh token stored, run 'pkce-session auth login'."))
    else:
        click.echo(click.style("Status: Authenticated", fg="green", bold=True))
    click.echo()

    click.echo(click.style("Token", fg="cyan", bold=True))
    expires_in = token_info.get("expires_in_seconds", 0)
    if expires_in > 0:
        click.echo(f"  Expires in: {expires_in / 60:.1f} minutes")
    click.echo(f"  Expires at: {token_info.get('expires_at')}")
    click.echo(f"  Has refresh token: {'Yes' if token_info.get('has_refresh_token') else 'No'}")
    click.echo(f"  Has ID token: {'Yes' if token_info.get('has_id_token') else 'No'}")

    user_info = result.get("user")
    if user_info:
        click.echo()
        click.echo(click.style("User", fg="cyan", bold=True))
        if "email" in user_info:
            click.echo(f"  Email: {user_info['email']}")
        if "name" in user_info:
            click.echo(f"  Name: {user_info['name']}")
        if "username" in user_info:
            click.echo(f"  Username: {user_info['username']}")
        if "subject" in user_info:
            click.echo(f"  Subject: {user_info['subject']}")
