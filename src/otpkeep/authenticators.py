"""Authenticator variants: the secret and the code arithmetic behind a record.

Four variants are supported: plain time-based (TOTP), counter-based (HOTP),
Battle.net (TOTP with a serial number) and Steam (TOTP with a device id,
session data and a five-character alphabet). Each is a pydantic model that
reads and writes its own ``authenticatordata`` element.

Element layout::

    <authenticatordata>
      <servertimediff>0</servertimediff>
      <lastservertime>0</lastservertime>
      <issuer>Example</issuer>
      <hmactype>SHA1</hmactype>
      <digits>6</digits>
      <period>30</period>
      ...variant fields...
      <secretdata encrypted="PBKDF2">...</secretdata>
    </authenticatordata>
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import time
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Optional

import pyotp
import structlog
from pydantic import BaseModel

from .crypto import PASSWORD_TYPE, protect, unprotect
from .xmlutil import add_text, read_int, read_optional, read_text

logger = structlog.get_logger(__name__)

ELEMENT_NAME = "authenticatordata"


class HMACType(str, Enum):
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def digest(self):
        return getattr(hashlib, self.value.lower())


DEFAULT_HMAC_TYPE = HMACType.SHA1
DEFAULT_PERIOD = 30
DEFAULT_CODE_DIGITS = 6


class EncryptedSecretError(Exception):
    """Raised when the secret is still protected and no usable password was given."""


class UnknownVariantError(KeyError):
    """Raised when a document names an authenticator type that is not registered."""


_REGISTRY: dict[str, type["Authenticator"]] = {}


def register(cls: type["Authenticator"]) -> type["Authenticator"]:
    _REGISTRY[cls.__name__.lower()] = cls
    return cls


def resolve_variant(name: str) -> type["Authenticator"]:
    """Look up a variant class by type name.

    Only the last dotted component is significant and the match ignores
    case, so ``otpkeep.authenticators.HOTPAuthenticator`` and older
    ``WinAuth.HOTPAuthenticator`` names resolve to the same class.
    """
    key = name.strip().rsplit(".", 1)[-1].lower()
    try:
        return _REGISTRY[key]
    except KeyError:
        raise UnknownVariantError(name) from None


def variant_name(authenticator: "Authenticator") -> str:
    """Return the fully-qualified type name written to documents."""
    cls = type(authenticator)
    return f"{cls.__module__}.{cls.__name__}"


class Authenticator(BaseModel):
    """Common secret state shared by every variant."""

    issuer: Optional[str] = None
    hmac_type: HMACType = DEFAULT_HMAC_TYPE
    code_digits: int = DEFAULT_CODE_DIGITS
    period: int = DEFAULT_PERIOD
    secret_key: Optional[bytes] = None
    encrypted_secret: Optional[str] = None
    server_time_diff: int = 0
    last_server_time: int = 0

    # ------------------------------------------------------------------
    # Secret access
    # ------------------------------------------------------------------

    @property
    def is_locked(self) -> bool:
        return self.secret_key is None and self.encrypted_secret is not None

    def require_secret(self) -> bytes:
        if self.secret_key is None:
            raise EncryptedSecretError("Secret is locked; unlock it with its password first.")
        return self.secret_key

    def unlock(self, password: str) -> None:
        """Decrypt the protected secret in place; protection is kept for saving."""
        if self.encrypted_secret is None:
            return
        self.secret_key = unprotect(self.encrypted_secret, password)

    def lock(self, password: str) -> None:
        """Protect the secret with *password* from now on."""
        self.encrypted_secret = protect(self.require_secret(), password)

    def remove_protection(self) -> None:
        self.require_secret()
        self.encrypted_secret = None

    def clone(self) -> "Authenticator":
        return self.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    def server_time(self) -> float:
        """Current time in seconds, corrected by the last server sync."""
        return time.time() + self.server_time_diff / 1000.0

    def current_code(self) -> str:
        totp = pyotp.TOTP(
            encode_base32(self.require_secret()),
            digits=self.code_digits,
            digest=self.hmac_type.digest,
            interval=self.period,
        )
        return totp.at(self.server_time())

    def sync(self, server_time: Optional[float] = None) -> None:
        """Record the drift between local time and *server_time* (epoch seconds).

        Without a server time there is nothing to compare against, but the
        secret must still be accessible.
        """
        self.require_secret()
        if server_time is None:
            return
        now_ms = int(time.time() * 1000)
        self.server_time_diff = int(server_time * 1000) - now_ms
        self.last_server_time = now_ms

    # ------------------------------------------------------------------
    # Document I/O
    # ------------------------------------------------------------------

    def read_element(self, node: ET.Element, password: Optional[str] = None) -> bool:
        """Load fields from *node*; returns True if legacy data was migrated.

        Every plain field is applied before the secret is opened, so a locked
        or wrong-password secret still leaves the rest of the state loaded.
        Unknown children are ignored.
        """
        changed = False
        secret_node = None
        for child in node:
            tag = child.tag
            if tag == "servertimediff":
                self.server_time_diff = read_int(child)
            elif tag == "lastservertime":
                self.last_server_time = read_int(child)
            elif tag == "issuer":
                self.issuer = read_optional(child)
            elif tag == "hmactype":
                self.hmac_type = HMACType(read_text(child).upper())
            elif tag == "digits":
                self.code_digits = read_int(child)
            elif tag == "period":
                self.period = read_int(child)
            elif tag == "secretdata":
                secret_node = child
            else:
                changed = self._read_field(child) or changed

        if secret_node is not None:
            changed = self._read_secret(secret_node, password) or changed
        return changed

    def write_element(self, parent: ET.Element) -> ET.Element:
        node = ET.SubElement(parent, ELEMENT_NAME)
        add_text(node, "servertimediff", self.server_time_diff)
        add_text(node, "lastservertime", self.last_server_time)
        add_text(node, "issuer", self.issuer or "")
        add_text(node, "hmactype", self.hmac_type.value)
        add_text(node, "digits", self.code_digits)
        add_text(node, "period", self.period)
        self._write_fields(node)

        if self.encrypted_secret is not None:
            secret = add_text(node, "secretdata", self.encrypted_secret)
            secret.set("encrypted", PASSWORD_TYPE)
        elif self.secret_key is not None:
            add_text(node, "secretdata", self.secret_key.hex())
        return node

    def _read_field(self, child: ET.Element) -> bool:
        return False

    def _write_fields(self, node: ET.Element) -> None:
        pass

    def _read_secret(self, node: ET.Element, password: Optional[str]) -> bool:
        text = read_text(node)
        if node.get("encrypted"):
            self.encrypted_secret = text
            self.secret_key = None
            if password is None:
                raise EncryptedSecretError("Secret is protected and no password was supplied.")
            self.unlock(password)
            return False

        self.encrypted_secret = None
        if node.get("encoding", "").lower() == "base32":
            self.secret_key = decode_base32(text)
            logger.info("secret_migrated", variant=type(self).__name__, source="base32")
            return True
        try:
            self.secret_key = bytes.fromhex(text) if text else None
        except ValueError as exc:
            raise ValueError("<secretdata> is not valid hex.") from exc
        return False


@register
class TOTPAuthenticator(Authenticator):
    """RFC 6238 time-based codes."""


@register
class HOTPAuthenticator(Authenticator):
    """RFC 4226 counter-based codes; every code read consumes the counter."""

    counter: int = 0

    def current_code(self) -> str:
        hotp = pyotp.HOTP(
            encode_base32(self.require_secret()),
            digits=self.code_digits,
            digest=self.hmac_type.digest,
        )
        code = hotp.at(self.counter)
        self.counter += 1
        return code

    def _read_field(self, child: ET.Element) -> bool:
        if child.tag == "counter":
            self.counter = read_int(child)
        return False

    def _write_fields(self, node: ET.Element) -> None:
        add_text(node, "counter", self.counter)


_SERIAL_RE = re.compile(r"^([A-Z]{2})(\d{4})(\d{4})(\d{4})$")


@register
class BattleNetAuthenticator(Authenticator):
    """Battle.net authenticator: 8-digit TOTP identified by a serial like ``US-1234-5678-9012``."""

    code_digits: int = 8
    serial: str = ""

    def _read_field(self, child: ET.Element) -> bool:
        if child.tag != "serial":
            return False
        serial = read_text(child).upper()
        match = _SERIAL_RE.match(serial)
        if match:
            # older files stored the serial without separators
            self.serial = "-".join(match.groups())
            logger.info("serial_migrated", variant=type(self).__name__)
            return True
        self.serial = serial
        return False

    def _write_fields(self, node: ET.Element) -> None:
        add_text(node, "serial", self.serial)


STEAM_CHARS = "23456789BCDFGHJKMNPQRTVWXY"


@register
class SteamAuthenticator(Authenticator):
    """Steam Guard: TOTP truncated into a five-character alphabet."""

    issuer: Optional[str] = "Steam"
    code_digits: int = 5
    device_id: str = ""
    steam_data: str = ""

    def current_code(self) -> str:
        step = int(self.server_time()) // self.period
        digest = hmac.new(self.require_secret(), step.to_bytes(8, "big"), self.hmac_type.digest).digest()
        offset = digest[-1] & 0x0F
        full = int.from_bytes(digest[offset : offset + 4], "big") & 0x7FFFFFFF

        chars = []
        for _ in range(self.code_digits):
            full, index = divmod(full, len(STEAM_CHARS))
            chars.append(STEAM_CHARS[index])
        return "".join(chars)

    def _read_field(self, child: ET.Element) -> bool:
        if child.tag == "deviceid":
            self.device_id = read_text(child)
        elif child.tag == "steamdata":
            self.steam_data = read_text(child)
        return False

    def _write_fields(self, node: ET.Element) -> None:
        add_text(node, "deviceid", self.device_id)
        add_text(node, "steamdata", self.steam_data)


# Variant assumed by v2 documents whose <authenticator> carries no type
LEGACY_DEFAULT_VARIANT = BattleNetAuthenticator


# ---------------------------------------------------------------------------
# Base32 helpers
# ---------------------------------------------------------------------------


def encode_base32(secret: bytes) -> str:
    return base64.b32encode(secret).decode("ascii").rstrip("=")


def decode_base32(text: str) -> bytes:
    cleaned = text.replace(" ", "").replace("-", "").upper()
    cleaned += "=" * (-len(cleaned) % 8)
    try:
        return base64.b32decode(cleaned)
    except binascii.Error as exc:
        raise ValueError("<secretdata> is not valid base32.") from exc
