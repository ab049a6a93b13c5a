"""Telemetry: operational system logger and the authentication audit log."""
