"""otpkeep: one-time password authenticator records, stored and exported."""

__version__ = "0.1.0"

from .authenticators import (  # noqa: E402
    Authenticator,
    BattleNetAuthenticator,
    EncryptedSecretError,
    HMACType,
    HOTPAuthenticator,
    SteamAuthenticator,
    TOTPAuthenticator,
    UnknownVariantError,
)
from .crypto import BadPasswordError  # noqa: E402
from .document import ReadResult, dumps, loads, read_record, write_record  # noqa: E402
from .record import Record, RecordChange, SyncResult  # noqa: E402
from .uri import to_uri  # noqa: E402

__all__ = [
    "Authenticator",
    "BadPasswordError",
    "BattleNetAuthenticator",
    "EncryptedSecretError",
    "HMACType",
    "HOTPAuthenticator",
    "ReadResult",
    "Record",
    "RecordChange",
    "SteamAuthenticator",
    "SyncResult",
    "TOTPAuthenticator",
    "UnknownVariantError",
    "dumps",
    "loads",
    "read_record",
    "to_uri",
    "write_record",
]
