"""CLI output styling helpers.

Visual language used by pkce-session commands:
- Cyan bold for section headers
- Green with checkmark for success
- Red with cross for errors
- Yellow bold for warnings
- Dim for neutral/empty state
"""

from __future__ import annotations

__all__ = [
    "style_dim",
    "style_error",
    "style_header",
    "style_success",
    "style_warning",
]

import click


def style_header(title: str) -> str:
    """Section header, e.g. "--- Identity Provider ---"."""
    return click.style(f"--- {title} ---", fg="cyan", bold=True)


def style_success(message: str) -> str:
    """Success line, e.g. "✓ Local credentials cleared"."""
    return click.style(f"✓ {message}", fg="green")


def style_error(message: str) -> str:
    """Error line, e.g. "✗ Error: --issuer is required". Echo with err=True."""
    return click.style(f"✗ {message}", fg="red")


def style_dim(message: str) -> str:
    return click.style(message, dim=True)


def style_warning(message: str) -> str:
    """Warning line prefixed with "Warning:"."""
    return click.style(f"Warning: {message}", fg="yellow", bold=True)
