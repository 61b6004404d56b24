"""
Unit tests for credential validation and hardening.
"""

import hashlib
from unittest.mock import patch

import pytest
from argon2 import PasswordHasher
from argon2.exceptions import HashingError as Argon2HashingError

from strongbox.core.exceptions import (
    DecodingError,
    HashingError,
    InvalidPasswordError,
    InvalidUsernameError,
    ValidationError,
)
from strongbox.core.models import Credentials
from strongbox.security.cipher import SymmetricCipher
from strongbox.security.credentials import (
    CredentialHardener,
    CredentialValidator,
    b64url_decode,
    b64url_encode,
    prehash_password,
)

# Very low Argon2 costs keep the suite fast
FAST_HASHING = {"time_cost": 1, "memory_cost": 8, "parallelism": 1}


def digest_for(password):
    return hashlib.sha512(password.encode("utf-8")).hexdigest().encode("ascii")


@pytest.fixture
def validator():
    return CredentialValidator()


@pytest.fixture
def cipher():
    return SymmetricCipher(b"\x42" * 32)


@pytest.fixture
def hardener(cipher):
    return CredentialHardener(cipher, **FAST_HASHING)


@pytest.fixture
def good():
    return Credentials("abcdefg1", prehash_password("correct horse"))


# ==============================================================================
# Tests: base64url helpers
# ==============================================================================

def test_prehash_password_is_b64url_of_hex_sha512():
    encoded = prehash_password("pw")
    assert b64url_decode(encoded) == digest_for("pw")
    assert len(b64url_decode(encoded)) == 128


@pytest.mark.parametrize("bad", ["abc", "a+b/", "!!!!", "ab=c", "é", None])
def test_b64url_decode_rejects_malformed(bad):
    with pytest.raises(DecodingError):
        b64url_decode(bad)


def test_b64url_roundtrip_uses_url_alphabet():
    data = b"\xfb\xff\xfe"
    encoded = b64url_encode(data)
    assert "+" not in encoded and "/" not in encoded
    assert b64url_decode(encoded) == data


# ==============================================================================
# Tests: CredentialValidator
# ==============================================================================

def test_valid_credentials_pass(validator, good):
    validator.validate(good)


@pytest.mark.parametrize(
    "username",
    ["abcdefg", "abcdefg1", "UserName1", "user_name_1", "a" * 21, "a_b_c_d_e_f_g"],
)
def test_usernames_accepted(validator, username):
    validator.validate(Credentials(username, prehash_password("pw")))


@pytest.mark.parametrize(
    "username",
    ["ab", "abcdef", "a" * 22, "_username", "username_", "user__name", "user-name", "usér_name", ""],
)
def test_usernames_rejected(validator, username):
    with pytest.raises(InvalidUsernameError):
        validator.validate(Credentials(username, prehash_password("pw")))


def test_non_hex_password_rejected(validator):
    creds = Credentials("abcdefg1", b64url_encode(b"not-hex"))
    with pytest.raises(InvalidPasswordError, match="SHA-512"):
        validator.validate(creds)


def test_wrong_length_hex_password_rejected(validator):
    short = hashlib.sha256(b"pw").hexdigest().encode("ascii")
    with pytest.raises(InvalidPasswordError):
        validator.validate(Credentials("abcdefg1", b64url_encode(short)))


def test_trailing_newline_password_rejected(validator):
    with pytest.raises(InvalidPasswordError):
        validator.validate(Credentials("abcdefg1", b64url_encode(digest_for("pw") + b"\n")))


def test_decoding_checked_before_username(validator):
    """A bad password encoding wins over a bad username."""
    with pytest.raises(DecodingError):
        validator.validate(Credentials("ab", "%%%"))


def test_username_checked_before_password(validator):
    creds = Credentials("ab", b64url_encode(b"not-hex"))
    with pytest.raises(InvalidUsernameError):
        validator.validate(creds)


def test_validation_errors_share_a_base(validator):
    with pytest.raises(ValidationError):
        validator.validate(Credentials("ab", prehash_password("pw")))


# ==============================================================================
# Tests: CredentialHardener
# ==============================================================================

def test_harden_keeps_username_and_seals_password(hardener, cipher, good):
    hardened = hardener.harden(good)

    assert hardened.username == good.username
    assert hardened.password != good.password

    stretched = cipher.decrypt(b64url_decode(hardened.password)).decode("ascii")
    assert stretched.startswith("$argon2id$")
    # the stretch is over the decoded digest, not the base64 text
    assert PasswordHasher().verify(stretched, digest_for("correct horse"))


def test_harden_is_salted(hardener, cipher, good):
    first = cipher.decrypt(b64url_decode(hardener.harden(good).password))
    second = cipher.decrypt(b64url_decode(hardener.harden(good).password))
    assert first != second


def test_harden_invalid_credentials_never_hashes(hardener):
    with patch.object(CredentialHardener, "stretch") as stretch:
        with pytest.raises(InvalidUsernameError):
            hardener.harden(Credentials("ab", prehash_password("pw")))
        with pytest.raises(DecodingError):
            hardener.harden(Credentials("abcdefg1", "not base64!"))
    stretch.assert_not_called()


def test_harden_wraps_hashing_failures(hardener, good):
    with patch.object(PasswordHasher, "hash", side_effect=Argon2HashingError("out of memory")):
        with pytest.raises(HashingError, match="stretching failed"):
            hardener.harden(good)


def test_verify_accepts_matching_password(hardener, good):
    stored = hardener.harden(good).password
    assert hardener.verify(good, stored) is True


def test_verify_rejects_other_password(hardener, good):
    stored = hardener.harden(good).password
    other = Credentials(good.username, prehash_password("wrong horse"))
    assert hardener.verify(other, stored) is False


def test_verify_with_garbage_stored_value_raises(hardener, cipher, good):
    stored = b64url_encode(cipher.encrypt(b"not an argon2 hash"))
    with pytest.raises(DecodingError):
        hardener.verify(good, stored)


def test_verify_with_undecodable_stored_value_raises(hardener, cipher, good):
    stored = b64url_encode(cipher.encrypt(b"\xff\xfe\xfd"))
    with pytest.raises(DecodingError):
        hardener.verify(good, stored)
