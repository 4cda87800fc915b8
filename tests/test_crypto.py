"""Tests for otpkeep.crypto."""

import pytest

from otpkeep import crypto
from otpkeep.crypto import BadPasswordError, derive_key, generate_salt, protect, unprotect


@pytest.fixture
def fast_kdf(monkeypatch):
    monkeypatch.setattr(crypto, "PBKDF2_ITERATIONS", 1_000)


def test_generate_salt_returns_32_bytes():
    salt = generate_salt()
    assert len(salt) == 32


def test_generate_salt_is_random():
    salts = {generate_salt() for _ in range(20)}
    assert len(salts) == 20, "Salts should be unique"


def test_derive_key_is_deterministic(fast_kdf):
    salt = generate_salt()
    assert derive_key("password", salt) == derive_key("password", salt)


def test_derive_key_differs_with_different_password(fast_kdf):
    salt = generate_salt()
    assert derive_key("pw1", salt) != derive_key("pw2", salt)


def test_protect_unprotect_roundtrip(fast_kdf):
    secret = b"12345678901234567890"
    blob = protect(secret, "correcthorsebatterystaple")
    assert unprotect(blob, "correcthorsebatterystaple") == secret


def test_unprotect_wrong_password_raises(fast_kdf):
    blob = protect(b"data", "correct")
    with pytest.raises(BadPasswordError, match="Decryption failed"):
        unprotect(blob, "wrong")


def test_bad_password_error_is_a_value_error():
    assert issubclass(BadPasswordError, ValueError)


def test_protect_uses_fresh_salt_each_call(fast_kdf):
    assert protect(b"same", "pw") != protect(b"same", "pw")


def test_protected_text_does_not_contain_secret(fast_kdf):
    secret = b"plainsecret"
    assert secret.hex() not in protect(secret, "pw")
    assert "plainsecret" not in protect(secret, "pw")


@pytest.mark.parametrize("blob", ["", "no-separator", "!!!notbase64$token"])
def test_unprotect_malformed_raises(blob, fast_kdf):
    with pytest.raises(BadPasswordError):
        unprotect(blob, "pw")


def test_full_strength_kdf_roundtrip():
    # one pass at the real iteration count
    blob = protect(b"secret", "pw")
    assert unprotect(blob, "pw") == b"secret"
