"""Security helpers for StrongBox.

This package provides:
- AES-256-CTR symmetric encryption of whole payloads (one process-wide key)
- credential format validation and Argon2id hardening of client digests
- optional storage of the symmetric key in the OS keyring
"""

from .cipher import SymmetricCipher, generate_key, KEY_SIZE, NONCE_SIZE
from .credentials import (
    CredentialValidator,
    CredentialHardener,
    prehash_password,
    b64url_encode,
    b64url_decode,
)
from .keystore import save_key, load_key, delete_key

__all__ = [
    "SymmetricCipher",
    "generate_key",
    "KEY_SIZE",
    "NONCE_SIZE",
    "CredentialValidator",
    "CredentialHardener",
    "prehash_password",
    "b64url_encode",
    "b64url_decode",
    "save_key",
    "load_key",
    "delete_key",
]
