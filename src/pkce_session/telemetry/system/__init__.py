"""System logger for operational events."""

from pkce_session.telemetry.system.system_logger import (
    ConsoleFormatter,
    configure_system_logger,
    get_system_logger,
)

__all__ = ["ConsoleFormatter", "configure_system_logger", "get_system_logger"]
