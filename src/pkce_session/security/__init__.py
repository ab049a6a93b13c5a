"""Security primitives: secure credential storage and OAuth/PKCE helpers."""

from pkce_session.security.credential_store import (
    EncryptedFileCredentialStore,
    KeychainCredentialStore,
    SecureCredentialStore,
    create_credential_store,
    get_credential_store_info,
)

__all__ = [
    "EncryptedFileCredentialStore",
    "KeychainCredentialStore",
    "SecureCredentialStore",
    "create_credential_store",
    "get_credential_store_info",
]
