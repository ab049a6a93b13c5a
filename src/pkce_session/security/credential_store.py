"""Secure credential storage for OAuth session secrets.

Provides two storage backends behind one key/value contract scoped by a
namespace (the keyring "service"):

1. KeychainCredentialStore (primary): Uses OS keychain via keyring library
   - macOS: Keychain
   - Windows: Credential Locker
   - Linux: Secret Service (GNOME Keyring, KDE Wallet)

2. EncryptedFileCredentialStore (fallback): Fernet-encrypted file storage
   - Used when keyring is unavailable
   - Key derived from machine-specific identifiers

Secrets are never stored in plaintext. A missing key reads as None; every
other failure raises StorageError.
"""

from __future__ import annotations

__all__ = [
    "EncryptedFileCredentialStore",
    "KeychainCredentialStore",
    "SecureCredentialStore",
    "create_credential_store",
    "get_credential_store_info",
]

import base64
import hashlib
import json
import platform
import socket
import subprocess
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pkce_session.constants import APP_NAME, ENCRYPTED_CREDENTIAL_FILE, PROTECTED_CONFIG_DIR
from pkce_session.exceptions import StorageError
from pkce_session.telemetry.system.system_logger import get_system_logger
from pkce_session.utils.file_helpers import atomic_write_bytes

if TYPE_CHECKING:
    from cryptography.fernet import Fernet

StorageBackend = Literal["auto", "keychain", "encrypted_file"]


class SecureCredentialStore(ABC):
    """Abstract base class for credential storage backends."""

    @abstractmethod
    def save(self, namespace: str, key: str, value: str) -> None:
        """Store value under (namespace, key), replacing any previous value.

        Raises:
            StorageError: If the store cannot be written.
        """

    @abstractmethod
    def read(self, namespace: str, key: str) -> str | None:
        """Read the value stored under (namespace, key).

        Returns:
            The value, or None if nothing is stored.

        Raises:
            StorageError: If the store cannot be read.
        """

    @abstractmethod
    def delete(self, namespace: str, key: str) -> None:
        """Delete (namespace, key). Deleting a missing key is not an error.

        Raises:
            StorageError: If the store cannot be modified.
        """


class KeychainCredentialStore(SecureCredentialStore):
    """Credential storage using OS keychain via keyring library.

    The namespace maps to the keyring service name and the key to the
    username, so every slot is its own keychain item. set_password replaces
    an existing item in place; the OS store serializes concurrent access.
    """

    def save(self, namespace: str, key: str, value: str) -> None:
        """Save value to keychain."""
        import keyring

        try:
            keyring.set_password(namespace, key, value)
        except Exception as e:
            raise StorageError(f"Failed to save '{key}' to keychain: {e}") from e

    def read(self, namespace: str, key: str) -> str | None:
        """Read value from keychain."""
        import keyring

        try:
            return keyring.get_password(namespace, key)
        except Exception as e:
            raise StorageError(f"Failed to access keychain: {e}") from e

    def delete(self, namespace: str, key: str) -> None:
        """Delete value from keychain."""
        import keyring
        from keyring.errors import PasswordDeleteError

        try:
            keyring.delete_password(namespace, key)
        except PasswordDeleteError:
            # Item doesn't exist, that's fine
            pass
        except Exception as e:
            raise StorageError(f"Failed to delete '{key}' from keychain: {e}") from e


class EncryptedFileCredentialStore(SecureCredentialStore):
    """Fallback credential storage using a Fernet-encrypted file.

    All namespaces live in one encrypted JSON document
    ({namespace: {key: value}}). Uses symmetric encryption with a key derived
    from machine-specific identifiers. This is less secure than keychain but
    works when keyring is unavailable.

    Key derivation uses:
    - Hostname
    - Machine ID (platform-specific)
    - Static salt for this application

    Every mutation is a read-modify-write under a thread lock, and the file
    is replaced atomically, so concurrent callers never corrupt an entry.
    """

    def __init__(self, storage_path: Path | None = None) -> None:
        """Initialize encrypted file storage.

        Args:
            storage_path: File location (default: protected config dir).
        """
        self._storage_path = storage_path or Path(PROTECTED_CONFIG_DIR) / ENCRYPTED_CREDENTIAL_FILE
        self._key: bytes | None = None
        self._lock = threading.Lock()

    @property
    def storage_path(self) -> Path:
        """Location of the encrypted file."""
        return self._storage_path

    def _get_machine_id(self) -> str:
        """Get platform-specific machine identifier.

        Returns:
            String that's unique and stable for this machine.
        """
        system = platform.system()

        if system == "Darwin":
            try:
                result = subprocess.run(
                    ["ioreg", "-rd1", "-c", "IOPlatformExpertDevice"],
                    capture_output=True,
                    text=True,
                    timeout=5,
                )
                for line in result.stdout.split("\n"):
                    if "IOPlatformUUID" in line:
                        parts = line.split("=")
                        if len(parts) >= 2:
                            return parts[1].strip().strip('"')
            except (subprocess.SubprocessError, OSError):
                pass

        elif system == "Linux":
            for path in ["/etc/machine-id", "/var/lib/dbus/machine-id"]:
                try:
                    with open(path) as f:
                        return f.read().strip()
                except OSError:
                    continue

        elif system == "Windows":
            try:
                winreg = __import__("winreg")
                key = winreg.OpenKey(
                    winreg.HKEY_LOCAL_MACHINE,
                    r"SOFTWARE\Microsoft\Cryptography",
                    0,
                    winreg.KEY_READ | winreg.KEY_WOW64_64KEY,
                )
                value, _ = winreg.QueryValueEx(key, "MachineGuid")
                winreg.CloseKey(key)
                return str(value)
            except (OSError, ImportError, AttributeError):
                pass

        # Fallback: hostname (less unique but always available)
        return socket.gethostname()

    def _derive_key(self) -> bytes:
        """Derive encryption key from machine-specific data.

        Uses PBKDF2 with machine ID and hostname as input.

        Returns:
            URL-safe base64 encoded 32-byte key suitable for Fernet.
        """
        if self._key is not None:
            return self._key

        machine_id = self._get_machine_id()
        hostname = socket.gethostname()
        combined = f"{machine_id}:{hostname}:{APP_NAME}-credential-storage"

        # Static per-application salt keeps the key stable across restarts
        salt = f"{APP_NAME}-v1".encode()
        key = hashlib.pbkdf2_hmac(
            "sha256",
            combined.encode(),
            salt,
            iterations=100_000,
            dklen=32,
        )

        self._key = base64.urlsafe_b64encode(key)
        return self._key

    def _get_fernet(self) -> "Fernet":
        """Get Fernet instance with derived key."""
        from cryptography.fernet import Fernet

        return Fernet(self._derive_key())

    def _load_document(self) -> dict[str, dict[str, str]]:
        """Decrypt and parse the whole file. Caller holds the lock."""
        if not self._storage_path.exists():
            return {}

        try:
            encrypted = self._storage_path.read_bytes()
            decrypted = self._get_fernet().decrypt(encrypted)
        except Exception as e:
            raise StorageError(
                f"Failed to decrypt credential file (may be corrupted or key changed): {e}"
            ) from e

        try:
            document = json.loads(decrypted.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to parse credential file (may be corrupted): {e}") from e

        if not isinstance(document, dict):
            raise StorageError("Credential file has an unexpected layout")
        return document

    def _write_document(self, document: dict[str, dict[str, str]]) -> None:
        """Encrypt and atomically replace the file. Caller holds the lock."""
        try:
            encrypted = self._get_fernet().encrypt(json.dumps(document).encode())
            atomic_write_bytes(self._storage_path, encrypted)
        except Exception as e:
            raise StorageError(f"Failed to write encrypted credential file: {e}") from e

    def save(self, namespace: str, key: str, value: str) -> None:
        """Save value to the encrypted file."""
        with self._lock:
            document = self._load_document()
            document.setdefault(namespace, {})[key] = value
            self._write_document(document)

    def read(self, namespace: str, key: str) -> str | None:
        """Read value from the encrypted file."""
        with self._lock:
            document = self._load_document()
        value = document.get(namespace, {}).get(key)
        return value if isinstance(value, str) else None

    def delete(self, namespace: str, key: str) -> None:
        """Delete value from the encrypted file."""
        with self._lock:
            document = self._load_document()
            entries = document.get(namespace)
            if not entries or key not in entries:
                return
            del entries[key]
            if not entries:
                del document[namespace]
            if document:
                self._write_document(document)
                return
            try:
                self._storage_path.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to delete encrypted credential file: {e}") from e


def _is_keyring_available() -> bool:
    """Check if keyring backend is available and functional."""
    from pkce_session.security.keyring_utils import probe_keyring

    status = probe_keyring()
    if not status.usable:
        get_system_logger().info(
            {"event": "keychain_probe_failed", "backend": status.backend, "reason": status.reason}
        )
    return status.usable


def create_credential_store(
    backend: StorageBackend = "auto",
    storage_path: Path | None = None,
) -> SecureCredentialStore:
    """Create the configured credential storage backend.

    "auto" prefers keychain storage when available and falls back to the
    encrypted file.

    Args:
        backend: "auto", "keychain" or "encrypted_file".
        storage_path: Location for the encrypted file backend.

    Returns:
        SecureCredentialStore instance.
    """
    if backend == "keychain":
        return KeychainCredentialStore()
    if backend == "encrypted_file":
        return EncryptedFileCredentialStore(storage_path)

    if _is_keyring_available():
        return KeychainCredentialStore()

    get_system_logger().warning(
        {
            "event": "credential_store_fallback",
            "message": "OS keychain unavailable, using encrypted file credential storage",
        }
    )
    return EncryptedFileCredentialStore(storage_path)


def get_credential_store_info(store: SecureCredentialStore) -> dict[str, str]:
    """Describe a credential store backend for status display.

    Args:
        store: The active store.

    Returns:
        Dict with a 'backend' key plus backend-specific details.
    """
    if isinstance(store, KeychainCredentialStore):
        from pkce_session.security.keyring_utils import keyring_backend_name

        return {"backend": "keychain", "keyring_backend": keyring_backend_name()}
    if isinstance(store, EncryptedFileCredentialStore):
        return {
            "backend": "encrypted_file",
            "location": str(store.storage_path),
        }
    return {"backend": type(store).__name__}
