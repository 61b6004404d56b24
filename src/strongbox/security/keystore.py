"""OS keystore integration for the symmetric storage key.

A small wrapper around `keyring` that stores the binary key base64-encoded
under a service/account pair. Configuration falls back to this when no key
is given in the config file or the environment. Do not assume keyring is
hardware-backed on every platform.
"""
import base64
import binascii
from typing import Optional

try:
    import keyring
    from keyring.errors import KeyringError, PasswordDeleteError
except ImportError:
    keyring = None

DEFAULT_SERVICE = "strongbox"
DEFAULT_ACCOUNT = "aes-key"


def _require_keyring():
    if keyring is None:
        raise RuntimeError("keyring package is not available; install keyring to use keystore features")


def save_key(key_bytes: bytes, service: str = DEFAULT_SERVICE, account: str = DEFAULT_ACCOUNT) -> None:
    """Persist key_bytes in the OS keystore under (service, account)."""
    _require_keyring()
    secret = base64.b64encode(key_bytes).decode("ascii")
    try:
        keyring.set_password(service, account, secret)
    except KeyringError as e:
        raise RuntimeError(f"keyring backend failed: {e}") from e


def load_key(service: str = DEFAULT_SERVICE, account: str = DEFAULT_ACCOUNT) -> Optional[bytes]:
    """Load a persisted key; returns raw bytes or None if nothing usable is stored."""
    _require_keyring()
    try:
        secret = keyring.get_password(service, account)
    except KeyringError as e:
        raise RuntimeError(f"keyring backend failed: {e}") from e
    if secret is None:
        return None
    try:
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError):
        return None


def delete_key(service: str = DEFAULT_SERVICE, account: str = DEFAULT_ACCOUNT) -> bool:
    """Remove the key from the OS keystore. Returns False if there was none."""
    _require_keyring()
    try:
        keyring.delete_password(service, account)
    except PasswordDeleteError:
        return False
    return True
