"""CLI utility functions.

Re-exports helpers for convenient importing.
"""

from .helpers import (
    auth_error_exit,
    load_config_or_exit,
    run_with_manager,
    setup_cli_logging,
)

__all__ = [
    "auth_error_exit",
    "load_config_or_exit",
    "run_with_manager",
    "setup_cli_logging",
]
