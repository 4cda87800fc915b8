"""Small helpers over :mod:`xml.etree.ElementTree` shared by the codecs."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Optional

# anything outside the XML 1.0 Char production
_INVALID_XML_CHARS = re.compile(r"[^\x09\x0A\x0D\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")

_TRUE = {"true", "1"}
_FALSE = {"false", "0"}


def add_text(parent: ET.Element, tag: str, value: object) -> ET.Element:
    """Append ``<tag>value</tag>`` to *parent*; booleans are written lowercase.

    Raises :class:`ValueError`, leaving *parent* untouched, if the text holds
    characters an XML document cannot carry.
    """
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    match = _INVALID_XML_CHARS.search(text)
    if match:
        raise ValueError(f"<{tag}> contains a character XML cannot store: {match.group()!r}")
    node = ET.SubElement(parent, tag)
    node.text = text
    return node


def read_text(node: ET.Element) -> str:
    return (node.text or "").strip()


def read_int(node: ET.Element) -> int:
    text = read_text(node)
    try:
        return int(text)
    except ValueError as exc:
        raise ValueError(f"<{node.tag}> is not an integer: {text!r}") from exc


def read_bool(node: ET.Element) -> bool:
    """Parse an XML schema boolean (``true``/``false``/``1``/``0``)."""
    text = read_text(node).lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"<{node.tag}> is not a boolean: {text!r}")


def read_optional(node: ET.Element) -> Optional[str]:
    return read_text(node) or None
