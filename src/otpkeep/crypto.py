"""Secret protection for otpkeep.

Key derivation: PBKDF2-HMAC-SHA256 (600 000 iterations, 32-byte salt).
Encryption:     Fernet (AES-128-CBC + HMAC-SHA256).

A protected secret is stored as ``<urlsafe-b64 salt>$<fernet token>`` so it
fits in a single text element of a record document.
"""

from __future__ import annotations

import base64
import os

from cryptography.exceptions import InvalidSignature
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

SALT_SIZE = 32
PBKDF2_ITERATIONS = 600_000

# Value of the ``encrypted`` attribute on a protected ``secretdata`` element
PASSWORD_TYPE = "PBKDF2"

_SEPARATOR = "$"


class BadPasswordError(ValueError):
    """Raised when a protected secret cannot be opened with the given password."""


def generate_salt() -> bytes:
    """Return a cryptographically-random 32-byte salt."""
    return os.urandom(SALT_SIZE)


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive a 32-byte Fernet-compatible key from *password* and *salt*."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    raw = kdf.derive(password.encode("utf-8"))
    return base64.urlsafe_b64encode(raw)


def protect(plaintext: bytes, password: str) -> str:
    """Encrypt *plaintext* under *password* with a fresh salt."""
    salt = generate_salt()
    token = Fernet(derive_key(password, salt)).encrypt(plaintext)
    return base64.urlsafe_b64encode(salt).decode("ascii") + _SEPARATOR + token.decode("ascii")


def unprotect(data: str, password: str) -> bytes:
    """Reverse :func:`protect`; raises :class:`BadPasswordError` on failure."""
    salt_b64, sep, token = data.strip().partition(_SEPARATOR)
    if not sep or not token:
        raise BadPasswordError("Protected secret is malformed.")
    try:
        salt = base64.urlsafe_b64decode(salt_b64)
    except ValueError as exc:
        raise BadPasswordError("Protected secret is malformed.") from exc

    try:
        return Fernet(derive_key(password, salt)).decrypt(token.encode("ascii"))
    except (InvalidToken, InvalidSignature) as exc:
        raise BadPasswordError("Decryption failed: wrong password or corrupted secret.") from exc
