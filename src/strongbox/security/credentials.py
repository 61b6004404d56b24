"""Credential validation and hardening.

Clients never send a raw password. They send ``base64url(hex(sha512(pw)))``
and the server stretches the decoded digest with Argon2id, then encrypts
the resulting hash string with the process-wide symmetric cipher:

    stored = base64url(cipher.encrypt(argon2id(decoded_digest)))
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from argon2.exceptions import HashingError as Argon2HashingError

from ..core.exceptions import (
    DecodingError,
    HashingError,
    InvalidPasswordError,
    InvalidUsernameError,
)
from ..core.models import Credentials
from .cipher import SymmetricCipher

logger = logging.getLogger(__name__)

USERNAME_PATTERN = r"[a-z\d](?:[a-z\d]|_([a-z\d])){6,20}"
SHA512_HEX_PATTERN = rb"[A-Fa-f0-9]{128}"

INVALID_USERNAME_MESSAGE = (
    "invalid username (must be a valid nickname -letters, digits and single "
    "underscores- with a length between 7 and 41 characters)"
)
INVALID_PASSWORD_MESSAGE = "password input is not SHA-512 hashed"

_URLSAFE_ALPHABET = re.compile(r"[A-Za-z0-9_-]*={0,2}")


def b64url_decode(value: str) -> bytes:
    """Strict padded base64url decode; anything else raises DecodingError."""
    if not isinstance(value, str) or not _URLSAFE_ALPHABET.fullmatch(value):
        raise DecodingError("illegal base64url data")
    try:
        return base64.urlsafe_b64decode(value)
    except (binascii.Error, ValueError) as e:
        raise DecodingError(f"illegal base64url data: {e}") from e


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


def prehash_password(password: str) -> str:
    """Client-side step: SHA-512 hex digest of ``password``, base64url encoded."""
    digest = hashlib.sha512(password.encode("utf-8")).hexdigest()
    return b64url_encode(digest.encode("ascii"))


class CredentialValidator:
    """Format checks run before any hashing happens."""

    __slots__ = ("_username_re", "_password_re")

    def __init__(self):
        self._username_re = re.compile(USERNAME_PATTERN, re.IGNORECASE | re.ASCII)
        self._password_re = re.compile(SHA512_HEX_PATTERN)

    def validate(self, credentials: Credentials) -> None:
        """
        Raise if ``credentials`` is malformed.

        Order is fixed: password decoding first, then the username pattern,
        then the decoded password pattern.
        """
        decoded = b64url_decode(credentials.password)
        if not isinstance(credentials.username, str) or not self._username_re.fullmatch(
            credentials.username
        ):
            raise InvalidUsernameError(INVALID_USERNAME_MESSAGE)
        if not self._password_re.fullmatch(decoded):
            raise InvalidPasswordError(INVALID_PASSWORD_MESSAGE)


class CredentialHardener:
    """
    Turns validated client credentials into their at-rest form.

    Argon2 cost parameters are fixed per instance; the salt is random per
    hash and embedded in the encoded hash string.
    """

    def __init__(
        self,
        cipher: SymmetricCipher,
        validator: Optional[CredentialValidator] = None,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 1,
    ):
        self.cipher = cipher
        self.validator = validator if validator is not None else CredentialValidator()
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )

    def stretch(self, digest: bytes) -> str:
        try:
            return self._hasher.hash(digest)
        except Argon2HashingError as e:
            raise HashingError(f"password stretching failed: {e}") from e

    def harden(self, credentials: Credentials) -> Credentials:
        """
        Validate ``credentials`` and return a copy whose password is
        ``base64url(encrypt(argon2id(decoded digest)))``.
        """
        self.validator.validate(credentials)
        digest = b64url_decode(credentials.password)
        stretched = self.stretch(digest)
        sealed = self.cipher.encrypt(stretched.encode("ascii"))
        logger.debug("Hardened credentials for %s", credentials.username)
        return Credentials(credentials.username, b64url_encode(sealed))

    def verify(self, credentials: Credentials, stored_password: str) -> bool:
        """
        Check client ``credentials`` against a stored hardened password.

        Malformed credentials still raise; a wrong password returns False.
        """
        self.validator.validate(credentials)
        digest = b64url_decode(credentials.password)
        sealed = b64url_decode(stored_password)
        try:
            stretched = self.cipher.decrypt(sealed).decode("ascii")
        except UnicodeDecodeError as e:
            raise DecodingError("stored password does not decrypt to a hash") from e
        try:
            return self._hasher.verify(stretched, digest)
        except InvalidHashError as e:
            raise DecodingError("stored password does not decrypt to a hash") from e
        except VerificationError:
            return False
