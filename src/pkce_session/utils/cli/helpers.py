"""CLI helper functions shared by pkce-session commands."""

from __future__ import annotations

__all__ = [
    "auth_error_exit",
    "load_config_or_exit",
    "run_with_manager",
    "setup_cli_logging",
]

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import click

from pkce_session.config import AppConfig, get_config_path, get_system_log_path, load_config
from pkce_session.exceptions import AuthError, ConfigurationError

if TYPE_CHECKING:
    from pkce_session.session.broker import InteractiveAuthBroker
    from pkce_session.session.manager import AuthSessionManager

T = TypeVar("T")


def load_config_or_exit() -> AppConfig:
    """Load configuration, exiting with a hint on failure.

    Returns:
        Validated AppConfig.

    Raises:
        click.ClickException: If config not found or invalid.
    """
    config_path = get_config_path()

    if not config_path.exists():
        raise click.ClickException(
            f"Configuration not found at {config_path}\n" "Run 'pkce-session init' to create configuration."
        )

    try:
        return load_config(config_path)
    except ConfigurationError as e:
        raise auth_error_exit(e, "Failed to load configuration") from e


def setup_cli_logging(config: AppConfig) -> None:
    """Apply console level and system.jsonl file logging from config."""
    from pkce_session.telemetry.system.system_logger import configure_system_logger

    configure_system_logger(get_system_log_path(config), console_level=config.logging.log_level)


def auth_error_exit(error: AuthError, prefix: str) -> click.ClickException:
    """Build a ClickException carrying the error's exit code."""
    exc = click.ClickException(f"{prefix}: {error}")
    exc.exit_code = error.exit_code
    return exc


def run_with_manager(
    config: AppConfig,
    action: Callable[["AuthSessionManager"], Awaitable[T]],
    broker: "InteractiveAuthBroker | None" = None,
) -> T:
    """Create a manager from config, run one async action and close it.

    Raises:
        AuthError: Whatever the action raises (including StorageError on restore).
    """
    from pkce_session.session.manager import AuthSessionManager

    async def _run() -> T:
        async with AuthSessionManager.from_config(config, broker=broker) as manager:
            return await action(manager)

    return asyncio.run(_run())
