"""Pydantic models for telemetry records."""

from pkce_session.telemetry.models.audit import AuthEvent

__all__ = ["AuthEvent"]
