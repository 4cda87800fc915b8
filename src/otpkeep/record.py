"""The record: one named OTP credential and its display settings."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

import structlog

from .authenticators import Authenticator, EncryptedSecretError, HOTPAuthenticator
from .clipboard import ExchangeBuffer, PyperclipBuffer, copy_to_buffer

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    # whole milliseconds, the resolution documents store
    now = datetime.now().astimezone()
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


@dataclass(frozen=True)
class RecordChange:
    """What changed: a property name, and the authenticator for counter reads."""

    property: Optional[str] = None
    authenticator: Optional[Authenticator] = None


Listener = Callable[["Record", RecordChange], None]


class SyncResult(str, Enum):
    SYNCED = "synced"
    LOCKED = "locked"
    SKIPPED = "skipped"


class Record:
    """Wrapper around an :class:`Authenticator` with a name and display flags.

    Assigning ``name``, ``auto_refresh``, ``allow_copy``, ``copy_on_code`` or
    ``hide_serial`` notifies every listener synchronously, in the order they
    were added.
    """

    def __init__(
        self,
        name: str = "",
        authenticator_data: Optional[Authenticator] = None,
    ) -> None:
        self.id: uuid.UUID = uuid.uuid4()
        self.index = 0
        self.created: datetime = _now()
        self.authenticator_data = authenticator_data
        self._listeners: list[Listener] = []
        self._name = name
        self._auto_refresh = True
        self._allow_copy = False
        self._copy_on_code = False
        self._hide_serial = False

    def __repr__(self) -> str:
        kind = type(self.authenticator_data).__name__ if self.authenticator_data else None
        return f"Record(id={self.id!s}, name={self._name!r}, type={kind})"

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def mark_changed(self) -> None:
        """Notify listeners that something not covered by a property changed."""
        self._notify(RecordChange())

    def _notify(self, change: RecordChange) -> None:
        for listener in list(self._listeners):
            listener(self, change)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_counter_based(self) -> bool:
        return isinstance(self.authenticator_data, HOTPAuthenticator)

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = value
        self._notify(RecordChange("Name"))

    @property
    def auto_refresh(self) -> bool:
        # counter-based codes only advance when explicitly asked for
        if self.is_counter_based:
            return False
        return self._auto_refresh

    @auto_refresh.setter
    def auto_refresh(self, value: bool) -> None:
        self._auto_refresh = value
        self._notify(RecordChange("AutoRefresh"))

    @property
    def allow_copy(self) -> bool:
        return self._allow_copy

    @allow_copy.setter
    def allow_copy(self, value: bool) -> None:
        self._allow_copy = value
        self._notify(RecordChange("AllowCopy"))

    @property
    def copy_on_code(self) -> bool:
        return self._copy_on_code

    @copy_on_code.setter
    def copy_on_code(self, value: bool) -> None:
        self._copy_on_code = value
        self._notify(RecordChange("CopyOnCode"))

    @property
    def hide_serial(self) -> bool:
        return self._hide_serial

    @hide_serial.setter
    def hide_serial(self, value: bool) -> None:
        self._hide_serial = value
        self._notify(RecordChange("HideSerial"))

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    def current_code(self) -> Optional[str]:
        """Return the current code, or None without an unlocked authenticator.

        Reading a counter-based code consumes the counter, so listeners are
        told (property ``"HOTP"``) that the authenticator needs saving.
        """
        data = self.authenticator_data
        if data is None:
            return None
        try:
            code = data.current_code()
        except EncryptedSecretError:
            return None

        if isinstance(data, HOTPAuthenticator):
            self._notify(RecordChange("HOTP", data))
        return code

    def sync(self, server_time: Optional[float] = None) -> SyncResult:
        """Correct the authenticator's clock drift against *server_time*.

        A locked secret is not an error: the sync is simply left for after
        the next unlock.
        """
        if self.authenticator_data is None:
            return SyncResult.SKIPPED
        try:
            self.authenticator_data.sync(server_time)
        except EncryptedSecretError:
            logger.debug("sync_deferred", record_id=str(self.id))
            return SyncResult.LOCKED
        return SyncResult.SYNCED

    def unlock(self, password: str) -> bool:
        """Open a protected secret; returns False if there is nothing to open."""
        if self.authenticator_data is None or not self.authenticator_data.is_locked:
            return False
        self.authenticator_data.unlock(password)
        return True

    def copy_code_to_clipboard(
        self,
        buffer: Optional[ExchangeBuffer] = None,
        code: Optional[str] = None,
        *,
        retries: int = 0,
        on_busy: Optional[Callable[[str], bool]] = None,
    ) -> bool:
        """Put *code* (the current code by default) on the clipboard.

        Never raises; returns False if there was no code or it could not be
        copied.
        """
        if code is None:
            code = self.current_code()
        if code is None:
            return False
        if buffer is None:
            buffer = PyperclipBuffer()
        return copy_to_buffer(buffer, code, retries=retries, on_busy=on_busy)

    # ------------------------------------------------------------------
    # Cloning and restoring
    # ------------------------------------------------------------------

    def clone(self) -> "Record":
        """Return an independent copy with a new id and no listeners."""
        clone = copy.copy(self)
        clone.id = uuid.uuid4()
        clone._listeners = []
        clone.authenticator_data = (
            self.authenticator_data.clone() if self.authenticator_data is not None else None
        )
        return clone

    def restore_flags(
        self,
        *,
        auto_refresh: Optional[bool] = None,
        allow_copy: Optional[bool] = None,
        copy_on_code: Optional[bool] = None,
        hide_serial: Optional[bool] = None,
    ) -> None:
        """Set stored flags without notifying listeners; None leaves a flag as is."""
        if auto_refresh is not None:
            self._auto_refresh = auto_refresh
        if allow_copy is not None:
            self._allow_copy = allow_copy
        if copy_on_code is not None:
            self._copy_on_code = copy_on_code
        if hide_serial is not None:
            self._hide_serial = hide_serial
