"""Tests for otpkeep.record."""

from datetime import timezone

import pytest

from otpkeep.authenticators import HOTPAuthenticator, TOTPAuthenticator
from otpkeep.record import Record, RecordChange, SyncResult

RFC_KEY = b"12345678901234567890"


class FakeBuffer:
    def __init__(self):
        self.writes = []

    def probe_owner(self):
        return None

    def clear(self):
        pass

    def write(self, text):
        self.writes.append(text)


def _events(record):
    seen = []
    record.add_listener(lambda rec, change: seen.append((rec, change)))
    return seen


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_record_defaults():
    r = Record()
    assert r.id
    assert r.name == ""
    assert r.index == 0
    assert r.authenticator_data is None
    assert r.auto_refresh is True
    assert r.allow_copy is False
    assert r.copy_on_code is False
    assert r.hide_serial is False
    assert r.created.tzinfo is not None
    assert r.created.microsecond % 1000 == 0


def test_record_ids_are_unique():
    ids = {Record().id for _ in range(100)}
    assert len(ids) == 100


# ---------------------------------------------------------------------------
# Change notification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "attr, prop, value",
    [
        ("name", "Name", "GitHub"),
        ("auto_refresh", "AutoRefresh", False),
        ("allow_copy", "AllowCopy", True),
        ("copy_on_code", "CopyOnCode", True),
        ("hide_serial", "HideSerial", True),
    ],
)
def test_setters_notify(attr, prop, value):
    r = Record()
    seen = _events(r)
    setattr(r, attr, value)
    assert getattr(r, attr) == value
    assert seen == [(r, RecordChange(prop))]


def test_listeners_called_in_registration_order():
    r = Record()
    order = []
    r.add_listener(lambda rec, change: order.append("first"))
    r.add_listener(lambda rec, change: order.append("second"))
    r.name = "x"
    assert order == ["first", "second"]


def test_removed_listener_is_not_called():
    r = Record()
    seen = []

    def listener(rec, change):
        seen.append(change)

    r.add_listener(listener)
    r.remove_listener(listener)
    r.name = "x"
    assert seen == []


def test_mark_changed_has_no_property():
    r = Record()
    seen = _events(r)
    r.mark_changed()
    assert seen == [(r, RecordChange())]


def test_setters_without_listeners_do_not_fail():
    r = Record()
    r.name = "quiet"
    r.hide_serial = True
    assert r.name == "quiet"


# ---------------------------------------------------------------------------
# HOTP auto refresh
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("value", [True, False])
def test_hotp_auto_refresh_always_false(value):
    r = Record(authenticator_data=HOTPAuthenticator(secret_key=RFC_KEY))
    r.auto_refresh = value
    assert r.auto_refresh is False


def test_hotp_auto_refresh_still_notifies():
    r = Record(authenticator_data=HOTPAuthenticator(secret_key=RFC_KEY))
    seen = _events(r)
    r.auto_refresh = True
    assert seen[0][1].property == "AutoRefresh"


def test_auto_refresh_is_computed_from_current_variant():
    r = Record(authenticator_data=HOTPAuthenticator(secret_key=RFC_KEY))
    r.auto_refresh = True
    assert r.auto_refresh is False
    r.authenticator_data = TOTPAuthenticator(secret_key=RFC_KEY)
    assert r.auto_refresh is True


# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------


def test_current_code_without_authenticator():
    assert Record().current_code() is None


def test_hotp_code_read_fires_counter_event():
    data = HOTPAuthenticator(secret_key=RFC_KEY)
    r = Record(authenticator_data=data)
    seen = _events(r)

    assert r.current_code() == "755224"
    assert data.counter == 1
    assert seen == [(r, RecordChange("HOTP", data))]


def test_totp_code_read_is_silent():
    r = Record(authenticator_data=TOTPAuthenticator(secret_key=RFC_KEY))
    seen = _events(r)
    assert len(r.current_code()) == 6
    assert seen == []


def test_locked_code_is_none_and_silent():
    r = Record(authenticator_data=HOTPAuthenticator(encrypted_secret="salt$token"))
    seen = _events(r)
    assert r.current_code() is None
    assert seen == []


def test_sync_results():
    assert Record().sync() is SyncResult.SKIPPED
    assert Record(authenticator_data=TOTPAuthenticator(secret_key=RFC_KEY)).sync() is SyncResult.SYNCED
    assert Record(authenticator_data=TOTPAuthenticator(encrypted_secret="x$y")).sync() is SyncResult.LOCKED


def test_unlock_without_locked_secret_returns_false():
    assert Record().unlock("pw") is False
    assert Record(authenticator_data=TOTPAuthenticator(secret_key=RFC_KEY)).unlock("pw") is False


# ---------------------------------------------------------------------------
# Clipboard
# ---------------------------------------------------------------------------


def test_copy_current_code_to_clipboard():
    r = Record(authenticator_data=HOTPAuthenticator(secret_key=RFC_KEY))
    buffer = FakeBuffer()
    assert r.copy_code_to_clipboard(buffer) is True
    assert buffer.writes == ["755224"]


def test_copy_explicit_code_does_not_read_counter():
    data = HOTPAuthenticator(secret_key=RFC_KEY)
    r = Record(authenticator_data=data)
    buffer = FakeBuffer()
    assert r.copy_code_to_clipboard(buffer, code="123456") is True
    assert buffer.writes == ["123456"]
    assert data.counter == 0


def test_copy_without_code_returns_false():
    buffer = FakeBuffer()
    assert Record().copy_code_to_clipboard(buffer) is False
    assert buffer.writes == []


class UnplugBuffer(FakeBuffer):
    def clear(self):
        raise OSError("clipboard device gone")


def test_copy_never_raises_on_buffer_os_error():
    r = Record(authenticator_data=TOTPAuthenticator(secret_key=RFC_KEY))
    buffer = UnplugBuffer()
    assert r.copy_code_to_clipboard(buffer) is False
    assert buffer.writes == []


# ---------------------------------------------------------------------------
# Clone
# ---------------------------------------------------------------------------


def test_clone_gets_new_id_and_same_fields():
    r = Record(name="GitHub", authenticator_data=TOTPAuthenticator(secret_key=RFC_KEY))
    r.allow_copy = True
    c = r.clone()
    assert c.id != r.id
    assert c.name == "GitHub"
    assert c.allow_copy is True
    assert c.created == r.created
    assert c.authenticator_data == r.authenticator_data


def test_clone_authenticator_is_independent():
    r = Record(authenticator_data=HOTPAuthenticator(secret_key=RFC_KEY, counter=5))
    c = r.clone()
    assert c.authenticator_data is not r.authenticator_data
    c.authenticator_data.counter = 99
    c.authenticator_data.issuer = "Changed"
    assert r.authenticator_data.counter == 5
    assert r.authenticator_data.issuer is None


def test_clone_drops_listeners():
    r = Record()
    seen = _events(r)
    c = r.clone()
    c.name = "clone"
    assert seen == []
    r.name = "original"
    assert len(seen) == 1


def test_clone_without_authenticator():
    assert Record().clone().authenticator_data is None


def test_restore_flags_is_silent():
    r = Record()
    seen = _events(r)
    r.restore_flags(allow_copy=True, hide_serial=True)
    assert r.allow_copy is True
    assert r.hide_serial is True
    assert r.copy_on_code is False
    assert seen == []


def test_created_is_local_aware_time():
    r = Record()
    assert r.created.astimezone(timezone.utc).tzinfo == timezone.utc
