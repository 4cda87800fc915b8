"""Record documents: reading and writing a record as an XML element.

Document layout (current format)::

    <OtpRecord id="<uuid>" type="otpkeep.authenticators.TOTPAuthenticator">
      <name>Example (alice@example.com)</name>
      <created>1700000000000</created>       <!-- UTC epoch milliseconds -->
      <autorefresh>true</autorefresh>
      <allowcopy>false</allowcopy>
      <copyoncode>false</copyoncode>
      <hideserial>false</hideserial>
      <authenticatordata>...</authenticatordata>
    </OtpRecord>

Older (v2) documents carry a self-contained ``<authenticator type="...">``
block and a bare ``<servertimediff>`` instead of ``<authenticatordata>``;
both are still read. Children are dispatched by tag, so their order does
not matter and unknown children are skipped.
"""

from __future__ import annotations

import os
import uuid
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import NamedTuple, Optional

import structlog

from .authenticators import (
    ELEMENT_NAME,
    LEGACY_DEFAULT_VARIANT,
    Authenticator,
    EncryptedSecretError,
    resolve_variant,
    variant_name,
)
from .crypto import BadPasswordError
from .record import Record
from .xmlutil import add_text, read_bool, read_int, read_text

logger = structlog.get_logger(__name__)

RECORD_TAG = "OtpRecord"
LEGACY_TAG = "authenticator"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FLAG_TAGS = {
    "autorefresh": "auto_refresh",
    "allowcopy": "allow_copy",
    "copyoncode": "copy_on_code",
    "hideserial": "hide_serial",
}


class ReadResult(NamedTuple):
    """Outcome of :func:`read_record`.

    ``changed`` is True when the authenticator migrated legacy data and the
    document should be written back; ``locked`` is True when the secret
    could not be opened (still encrypted, or wrong password).
    """

    changed: bool
    locked: bool = False


# ---------------------------------------------------------------------------
# Time conversion
# ---------------------------------------------------------------------------


def to_epoch_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.astimezone()
    return (value - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(millis: int) -> datetime:
    """Return *millis* as an aware datetime in local time."""
    try:
        return (_EPOCH + timedelta(milliseconds=millis)).astimezone()
    except OverflowError as exc:
        raise ValueError(f"Timestamp out of range: {millis}") from exc


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def read_record(record: Record, node: ET.Element, password: Optional[str] = None) -> ReadResult:
    """Load *node* into *record* in place.

    Raises :class:`~otpkeep.authenticators.UnknownVariantError` if the
    ``type`` attribute names no known authenticator. A secret that cannot be
    opened is not an error; it is reported through ``ReadResult.locked``.
    """
    record_id = node.get("id")
    if record_id:
        try:
            record.id = uuid.UUID(record_id)
        except ValueError:
            logger.warning("record_id_malformed", value=record_id)

    type_name = node.get("type")
    if type_name:
        record.authenticator_data = resolve_variant(type_name)()

    if len(node) == 0:
        return ReadResult(changed=False)

    changed = False
    locked = False
    legacy_time_diff = None
    for child in node:
        tag = child.tag
        if tag == "name":
            record.name = child.text or ""
        elif tag == "created":
            record.created = from_epoch_millis(read_int(child))
        elif tag in _FLAG_TAGS:
            record.restore_flags(**{_FLAG_TAGS[tag]: read_bool(child)})
        elif tag == ELEMENT_NAME:
            if record.authenticator_data is None:
                logger.warning("authenticatordata_without_type", record_id=str(record.id))
                continue
            migrated, opened = _read_authenticator(record.authenticator_data, child, password, record)
            changed = changed or migrated
            locked = locked or not opened
        elif tag == LEGACY_TAG:
            legacy_type = child.get("type")
            data = resolve_variant(legacy_type)() if legacy_type else LEGACY_DEFAULT_VARIANT()
            record.authenticator_data = data
            migrated, opened = _read_authenticator(data, child, password, record)
            changed = changed or migrated
            locked = locked or not opened
        elif tag == "servertimediff":
            legacy_time_diff = read_int(child)
        else:
            logger.debug("element_skipped", tag=tag)

    # the v2 diff belongs to whichever authenticator the document ends up with
    if legacy_time_diff is not None:
        if record.authenticator_data is None:
            logger.warning("servertimediff_without_authenticator", record_id=str(record.id))
        else:
            record.authenticator_data.server_time_diff = legacy_time_diff

    return ReadResult(changed=changed, locked=locked)


def _read_authenticator(
    data: Authenticator,
    node: ET.Element,
    password: Optional[str],
    record: Record,
) -> tuple[bool, bool]:
    """Return *(migrated, opened)* for one authenticator block."""
    try:
        return data.read_element(node, password), True
    except EncryptedSecretError:
        logger.info("secret_locked", record_id=str(record.id))
    except BadPasswordError:
        logger.info("secret_bad_password", record_id=str(record.id))
    return False, False


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def write_record(record: Record, parent: Optional[ET.Element] = None) -> ET.Element:
    """Serialise *record* as a new element, appended to *parent* if given."""
    if parent is None:
        node = ET.Element(RECORD_TAG)
    else:
        node = ET.SubElement(parent, RECORD_TAG)

    node.set("id", str(record.id))
    if record.authenticator_data is not None:
        node.set("type", variant_name(record.authenticator_data))

    add_text(node, "name", record.name or "")
    add_text(node, "created", to_epoch_millis(record.created))
    add_text(node, "autorefresh", record.auto_refresh)
    add_text(node, "allowcopy", record.allow_copy)
    add_text(node, "copyoncode", record.copy_on_code)
    add_text(node, "hideserial", record.hide_serial)

    if record.authenticator_data is not None:
        record.authenticator_data.write_element(node)
    return node


# ---------------------------------------------------------------------------
# Text and file helpers
# ---------------------------------------------------------------------------


def dumps(record: Record) -> str:
    node = write_record(record)
    ET.indent(node)
    return ET.tostring(node, encoding="unicode")


def loads(text: str, password: Optional[str] = None) -> tuple[Record, ReadResult]:
    try:
        node = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ValueError(f"Not a valid record document: {exc}") from exc
    record = Record()
    result = read_record(record, node, password)
    return record, result


def load(path: Path, password: Optional[str] = None) -> tuple[Record, ReadResult]:
    return loads(path.read_text(encoding="utf-8"), password)


def save(record: Record, path: Path) -> None:
    """Write *record* to *path* atomically, readable by the owner only."""
    data = '<?xml version="1.0" encoding="utf-8"?>\n' + dumps(record) + "\n"
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp = path.with_suffix(".tmp")
    tmp.write_text(data, encoding="utf-8")
    tmp.replace(path)

    os.chmod(path, 0o600)
