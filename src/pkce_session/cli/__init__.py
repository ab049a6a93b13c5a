"""Command-line interface for pkce-session.

Provides commands for initializing configuration and managing the
authentication session.
"""

from .main import cli, main

__all__ = ["cli", "main"]
