"""OS keychain probing.

The "auto" storage backend only picks the keychain when a round trip through
it actually works: headless Linux sessions often have keyring installed but
no reachable Secret Service.
"""

from __future__ import annotations

__all__ = [
    "KeyringStatus",
    "keyring_backend_name",
    "probe_keyring",
]

from dataclasses import dataclass

from pkce_session.constants import APP_NAME
from pkce_session.telemetry.system.system_logger import get_system_logger

PROBE_SLOT = "keychain-probe"


@dataclass(frozen=True, slots=True)
class KeyringStatus:
    """Outcome of a keychain probe.

    Attributes:
        usable: Whether a secret survived a save/read/delete cycle.
        backend: Class name of the active keyring backend ("" if keyring is missing).
        reason: Why the keychain is unusable, None when usable.
    """

    usable: bool
    backend: str
    reason: str | None = None


def keyring_backend_name() -> str:
    """Class name of the active keyring backend, for status output."""
    import keyring

    return type(keyring.get_keyring()).__name__


def probe_keyring(service: str = f"{APP_NAME}-probe") -> KeyringStatus:
    """Round-trip a throwaway secret through the OS keychain.

    Args:
        service: Keyring service used for the probe slot. Kept apart from the
            credential namespace so a probe never touches real tokens.

    Returns:
        KeyringStatus; never raises.
    """
    logger = get_system_logger()

    try:
        import keyring
        from keyring.backends.fail import Keyring as FailKeyring
        from keyring.errors import KeyringError
    except ImportError as e:
        return KeyringStatus(usable=False, backend="", reason=f"keyring not importable: {e}")

    backend = keyring.get_keyring()
    backend_name = type(backend).__name__
    if isinstance(backend, FailKeyring):
        logger.debug({"event": "keyring_unavailable", "reason": "fail_backend"})
        return KeyringStatus(usable=False, backend=backend_name, reason="no usable keyring backend")

    try:
        keyring.set_password(service, PROBE_SLOT, "ok")
        value = keyring.get_password(service, PROBE_SLOT)
        keyring.delete_password(service, PROBE_SLOT)
    except KeyringError as e:
        reason = f"{type(e).__name__}: {e}"
    except Exception as e:
        # DBus and permission errors surface as arbitrary exception types
        reason = f"unexpected {type(e).__name__}: {e}"
    else:
        if value == "ok":
            return KeyringStatus(usable=True, backend=backend_name)
        reason = "probe value did not round-trip"

    logger.debug({"event": "keyring_unavailable", "backend": backend_name, "reason": reason})
    return KeyringStatus(usable=False, backend=backend_name, reason=reason)
