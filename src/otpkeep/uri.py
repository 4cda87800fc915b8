"""Export a record as a Key URI (``otpauth://``) for other authenticator apps.

See https://github.com/google/google-authenticator/wiki/Key-Uri-Format
"""

from __future__ import annotations

import re
from urllib.parse import quote, quote_plus

from .authenticators import (
    DEFAULT_HMAC_TYPE,
    DEFAULT_PERIOD,
    BattleNetAuthenticator,
    HOTPAuthenticator,
    SteamAuthenticator,
    encode_base32,
)
from .record import Record

# "Issuer (account) rest" as users commonly name their entries
_NAMED_ISSUER_RE = re.compile(r"^([^(]+)\s+\((.*?)\)(.*)")


def to_uri(record: Record, compat: bool = False) -> str:
    """Build the ``otpauth://`` URI for *record*.

    With *compat* the Steam-only ``deviceid`` and ``data`` parameters are
    left out, for apps that reject unknown parameters.

    Raises :class:`ValueError` if the record has no authenticator and
    :class:`~otpkeep.authenticators.EncryptedSecretError` if its secret is
    locked.
    """
    data = record.authenticator_data
    if data is None:
        raise ValueError("Record has no authenticator to export.")

    otp_type = "totp"
    extra = ""

    issuer = data.issuer or ""
    label = record.name or ""
    if not issuer:
        match = _NAMED_ISSUER_RE.match(label)
        if match:
            issuer = match.group(1)
            label = match.group(2) + match.group(3)
    if issuer:
        match = re.match(r"^" + re.escape(issuer) + r"\s+\((.*?)\)(.*)", label)
        if match:
            label = match.group(1) + match.group(2)
        extra += "&issuer=" + quote_plus(issuer)

    if data.hmac_type != DEFAULT_HMAC_TYPE:
        extra += "&algorithm=" + data.hmac_type.value

    if isinstance(data, BattleNetAuthenticator):
        extra += "&serial=" + quote_plus(data.serial.replace("-", ""))
    elif isinstance(data, SteamAuthenticator):
        if not compat:
            extra += "&deviceid=" + quote_plus(data.device_id)
            extra += "&data=" + quote_plus(data.steam_data)
    elif isinstance(data, HOTPAuthenticator):
        otp_type = "hotp"
        extra += f"&counter={data.counter}"

    secret = quote_plus(encode_base32(data.require_secret()))

    if data.period != DEFAULT_PERIOD:
        extra += f"&period={data.period}"

    path = quote(label, safe="")
    if issuer:
        path = quote(issuer, safe="") + ":" + path

    return f"otpauth://{otp_type}/{path}?secret={secret}&digits={data.code_digits}{extra}"
