import pytest

from jabterm.config import WIN_BUFFER_MAX
from jabterm.form import DataForm, FormField
from jabterm.session import (
    ChatSessions,
    ChatState,
    ChatStateMachine,
    EncMode,
    EncryptionConflict,
    end_encryption,
    start_otr,
    start_pgp,
)
from jabterm.windows import ChatWindow, PrivateWindow, RoomConfigWindow, TraceWindow


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

def test_buffer_is_bounded():
    win = ChatWindow("bob@example.org")
    for i in range(WIN_BUFFER_MAX + 5):
        win.print(str(i))
    assert len(win.lines) == WIN_BUFFER_MAX
    assert win.lines[0].text == "5"


def test_print_error_line():
    win = ChatWindow("bob@example.org")
    line = win.print_error("boom")
    assert (line.ch, line.theme) == ("!", "error")


def test_mark_received_matches_latest_line():
    win = ChatWindow("bob@example.org")
    win.print("one", receipt_id="a1")
    win.print("two", receipt_id="b2")
    assert win.mark_received("a1")
    assert win.lines[0].received
    assert not win.lines[1].received
    assert not win.mark_received("zz")


def test_private_window_parts():
    pw = PrivateWindow("room@muc.example.org/bob")
    assert pw.roomjid == "room@muc.example.org"
    assert pw.nick == "bob"


def test_room_config_unsaved_changes():
    form = DataForm(fields=[FormField(var="name")])
    win = RoomConfigWindow("room@muc.example.org", form)
    assert not win.has_unsaved_changes()
    form.set_value("field1", "Lobby")
    assert win.has_unsaved_changes()


def test_trace_window_label():
    assert TraceWindow().label() == "xmlconsole"


# ---------------------------------------------------------------------------
# Chat states
# ---------------------------------------------------------------------------

def test_state_progression():
    sm = ChatStateMachine()
    assert sm.state is ChatState.GONE
    assert sm.activity(now=0) is ChatState.COMPOSING
    assert sm.activity(now=1) is None
    assert sm.tick(now=5) is None
    assert sm.tick(now=12) is ChatState.PAUSED
    assert sm.tick(now=43) is ChatState.INACTIVE
    assert sm.tick(now=100, gone_after_s=0) is None
    assert sm.tick(now=100, gone_after_s=30) is ChatState.GONE


def test_sending_makes_active_without_announcing():
    sm = ChatStateMachine()
    sm.activity(now=0)
    assert sm.active(now=1) is None
    assert sm.state is ChatState.ACTIVE
    assert sm.tick(now=20) is None
    assert sm.tick(now=40) is ChatState.INACTIVE


def test_gone_is_reported_once():
    sm = ChatStateMachine()
    sm.activity(now=0)
    assert sm.gone(now=1) is ChatState.GONE
    assert sm.gone(now=2) is None


def test_sessions_bind_to_latest_resource():
    sessions = ChatSessions()
    sessions.on_message("bob@example.org", "phone", send_states=False)
    assert sessions.resource_for("bob@example.org") == "phone"
    session = sessions.on_message("bob@example.org", "laptop", send_states=True)
    assert session.resource == "laptop"
    assert session.send_states
    sessions.remove("bob@example.org")
    assert "bob@example.org" not in sessions
    assert sessions.resource_for("bob@example.org") == ""


# ---------------------------------------------------------------------------
# Encryption modes
# ---------------------------------------------------------------------------

def test_encryption_modes_are_exclusive():
    win = ChatWindow("bob@example.org")
    start_pgp(win)
    with pytest.raises(EncryptionConflict):
        start_otr(win)
    assert end_encryption(win) is EncMode.PGP
    start_otr(win, trusted=True)
    assert win.otr_trusted
    with pytest.raises(EncryptionConflict):
        start_pgp(win)
    end_encryption(win)
    assert win.enc_mode is EncMode.NONE
    assert not win.otr_trusted
