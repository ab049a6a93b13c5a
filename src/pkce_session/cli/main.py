"""Main CLI entry point for pkce-session.

Defines the CLI group and registers all subcommands.

Commands:
    auth      - Authentication commands (login, logout, status, token)
    init      - Initialize configuration

Subcommand help:
    pkce-session COMMAND -h    Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli"]

import sys

import click

from pkce_session import __version__

from .commands.auth import auth
from .commands.init import init


class ReorderedGroup(click.Group):
    """Custom group that shows commands before custom help text."""

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Add extra help after commands section."""
        formatter.write(
            """
Quick Start (Interactive):
  pkce-session init                Configure the identity provider
  pkce-session auth login          Sign in through the browser
  pkce-session auth token          Print a fresh access token

Non-Interactive Setup:
  pkce-session init --non-interactive \\
    --issuer https://sso.example.com/realms/main \\
    --client-id my-app \\
    --redirect-uri com.example.app:/oauth2redirect
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """pkce-session: OAuth2 Authorization Code + PKCE session manager."""
    if version:
        click.echo(f"pkce-session {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(auth)
cli.add_command(init)


def main() -> None:
    """CLI entry point."""
    cli()
