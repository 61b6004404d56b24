"""
Symmetric cipher shared by the file store and the credential hardener.

Blob layout:
- 16 bytes: random nonce (initial counter block)
- N bytes: AES-256-CTR ciphertext, same length as the plaintext

There is no authentication tag. Flipping a ciphertext bit flips the same
plaintext bit and decryption still succeeds; tampering is not detected.
"""

from __future__ import annotations

import os

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..core.exceptions import DecodingError, InvalidKeyError


KEY_SIZE = 32
NONCE_SIZE = 16


def generate_key() -> bytes:
    return os.urandom(KEY_SIZE)


class SymmetricCipher:
    """
    Stateless AES-CTR encrypt/decrypt over whole byte payloads.

    The key is checked once at construction. Instances hold no other state
    and are safe to share between threads.
    """

    __slots__ = ("_key",)

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)):
            raise InvalidKeyError("Key must be bytes")
        if len(key) != KEY_SIZE:
            raise InvalidKeyError(
                f"Key must be exactly {KEY_SIZE} bytes, got {len(key)}"
            )
        self._key = bytes(key)

    def _cipher(self, nonce: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CTR(nonce))

    def encrypt(self, plaintext: bytes) -> bytes:
        """
        Encrypt ``plaintext`` under a fresh random nonce.

        Returns ``nonce || ciphertext``; encrypting the same payload twice
        gives different blobs.
        """
        nonce = os.urandom(NONCE_SIZE)
        encryptor = self._cipher(nonce).encryptor()
        return nonce + encryptor.update(plaintext) + encryptor.finalize()

    def decrypt(self, blob: bytes) -> bytes:
        """
        Decrypt a blob produced by :meth:`encrypt`.

        Raises :class:`DecodingError` if the blob cannot hold a nonce.
        """
        if len(blob) < NONCE_SIZE:
            raise DecodingError("Ciphertext too short to contain nonce")

        nonce, body = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        decryptor = self._cipher(nonce).decryptor()
        return decryptor.update(body) + decryptor.finalize()

    def __repr__(self):
        return "SymmetricCipher(algorithm='AES-256-CTR')"
