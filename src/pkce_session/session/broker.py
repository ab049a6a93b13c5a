"""Interactive browser broker: the boundary to the user-facing login UI.

The session manager never renders anything itself. It hands URLs to an
InteractiveAuthBroker and gets back the redirect URL the provider sent the
browser to (or an error). Hosting applications plug in their own broker
(embedded web view, system browser with a custom-scheme handler, ...).

ConsoleAuthBroker is the shim used by the CLI: it opens the system browser
and asks the user to paste the redirect URL.
"""

from __future__ import annotations

__all__ = [
    "ConsoleAuthBroker",
    "InteractiveAuthBroker",
]

import asyncio
import webbrowser
from typing import Protocol, runtime_checkable

import click

from pkce_session.exceptions import UserCancelledError
from pkce_session.telemetry.system.system_logger import get_system_logger


@runtime_checkable
class InteractiveAuthBroker(Protocol):
    """Protocol for presenting provider pages to the user.

    Required methods:
    - present(): authorization page, returns the callback URL
    - present_end_session(): remote logout page, result ignored
    - clear_site_data(): drop browser cookies/site data for the provider
    """

    async def present(self, url: str, redirect_uri: str) -> str:
        """Show the authorization page and wait for the redirect.

        Args:
            url: Authorization URL to open.
            redirect_uri: Callback URI prefix the broker should intercept.

        Returns:
            Full callback URL including its query string.

        Raises:
            UserCancelledError: User closed or cancelled the page.
            CallbackError: Browser reported an error before reaching the redirect.
        """
        ...

    async def present_end_session(self, url: str) -> None:
        """Show the provider's end-session page.

        Raises:
            Exception: Any failure; the caller logs it and continues the logout.
        """
        ...

    async def clear_site_data(self, host: str) -> None:
        """Remove cookies and site data the broker holds for host."""
        ...


class ConsoleAuthBroker:
    """Broker for terminals: system browser plus pasted redirect URL.

    Custom-scheme redirects usually cannot be captured from a terminal, so
    the user copies the URL the browser was sent to (from the address bar or
    the "cannot open" dialog) and pastes it back.
    """

    def __init__(self, open_browser: bool = True) -> None:
        self._open_browser = open_browser
        self._logger = get_system_logger()

    def _open(self, url: str) -> bool:
        if not self._open_browser:
            return False
        try:
            return webbrowser.open(url)
        except (OSError, webbrowser.Error) as e:
            click.echo(f"  (Could not open browser automatically: {e})")
            return False

    async def present(self, url: str, redirect_uri: str) -> str:
        click.echo(click.style("Authentication Required", fg="cyan", bold=True))
        click.echo()
        click.echo("  Open this URL in your browser:")
        click.echo(f"  {click.style(url, fg='blue', underline=True)}")
        click.echo()
        if self._open(url):
            click.echo("  Browser opened automatically.")
            click.echo()

        click.echo(f"After signing in, the browser is sent to {redirect_uri}...")
        pasted = await asyncio.to_thread(
            click.prompt,
            "Paste the full redirect URL (leave empty to cancel)",
            default="",
            show_default=False,
        )
        pasted = pasted.strip()
        if not pasted:
            raise UserCancelledError("Login cancelled")
        return pasted

    async def present_end_session(self, url: str) -> None:
        click.echo("Opening browser to log out of the identity provider...")
        if not self._open(url):
            click.echo(f"Open this URL manually: {url}")

    async def clear_site_data(self, host: str) -> None:
        # The system browser's cookie jar is out of reach from a terminal
        self._logger.debug({"event": "site_data_not_cleared", "host": host})
