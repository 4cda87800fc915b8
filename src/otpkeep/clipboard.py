"""Delivering codes through the system clipboard.

The clipboard is shared with every other process on the desktop and can be
held open by one of them at any moment. Writes here never raise: a code
that could not be copied is logged and reported as ``False``.
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Protocol

import pyperclip
import structlog

logger = structlog.get_logger(__name__)

# Pause between clearing and writing; some clipboard owners report a
# failure for a write issued immediately after a clear even when it lands.
WRITE_DELAY = 0.1
DEFAULT_BACKOFF = 0.25


class ExchangeBufferError(Exception):
    """Raised by a buffer implementation when the underlying clipboard fails."""


class ExchangeBuffer(Protocol):
    def probe_owner(self) -> Optional[str]:
        """Return a description of whoever holds the buffer open, or None if free."""

    def clear(self) -> None: ...

    def write(self, text: str) -> None: ...


class PyperclipBuffer:
    """:class:`ExchangeBuffer` backed by :mod:`pyperclip`.

    pyperclip offers no way to ask who holds the clipboard, so the buffer
    always probes as free and contention shows up as a write error instead.
    """

    def probe_owner(self) -> Optional[str]:
        return None

    def clear(self) -> None:
        self.write("")

    def write(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            raise ExchangeBufferError(str(exc)) from exc


def copy_to_buffer(
    buffer: ExchangeBuffer,
    text: str,
    *,
    retries: int = 0,
    backoff: float = DEFAULT_BACKOFF,
    on_busy: Optional[Callable[[str], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Write *text* into *buffer*, returning True once a write went through.

    When the buffer is held by someone else the attempt fails. If *on_busy*
    is given it is asked (with the owner description) whether to try again;
    otherwise up to *retries* further attempts are made. Either way the
    n-th retry waits ``backoff * 2**n`` seconds first. Any error raised by
    the buffer is logged and ends the copy with False.
    """
    attempt = 0
    while True:
        try:
            owner = buffer.probe_owner()
            if owner is None:
                buffer.clear()
                sleep(WRITE_DELAY)
                buffer.write(text)
                return True
        except Exception:
            logger.exception("clipboard_write_failed", attempt=attempt)
            return False

        logger.info("clipboard_busy", owner=owner, attempt=attempt)
        if on_busy is not None:
            if not on_busy(owner):
                return False
        elif attempt >= retries:
            return False
        sleep(backoff * 2**attempt)
        attempt += 1
