import pytest

from jabterm.context import Autocompleter
from jabterm.form import DataForm, FormField
from jabterm.registry import (
    CapacityExceeded,
    NotFound,
    WindowError,
    WindowRegistry,
    display_num,
    parse_num,
)
from jabterm.windows import ChatWindow, WinKind


@pytest.fixture
def reg():
    return WindowRegistry()


def _fill(reg, count):
    return [reg.create(WinKind.CHAT, f"user{i}@example.org") for i in range(count)]


def test_console_always_in_slot_one(reg):
    assert reg.console().slot == 1
    assert reg.current() is reg.console()
    assert reg.create(WinKind.CONSOLE) is reg.console()


def test_create_takes_lowest_free_slot(reg):
    a, b, c = _fill(reg, 3)
    assert [a.slot, b.slot, c.slot] == [2, 3, 4]
    reg.close(3)
    d = reg.create(WinKind.CHAT, "dave@example.org")
    assert d.slot == 3


def test_create_is_idempotent_per_key(reg):
    first = reg.create(WinKind.CHAT, "bob@example.org")
    again = reg.create(WinKind.CHAT, "bob@example.org")
    assert first is again
    assert len(reg) == 2


def test_same_key_different_kind_gets_own_window(reg):
    room = reg.create(WinKind.ROOM, "room@muc.example.org")
    cfg = reg.create(WinKind.ROOM_CONFIG, "room@muc.example.org", form=DataForm())
    assert room is not cfg
    assert cfg.key == "room@muc.example.org config"
    assert reg.room_config("room@muc.example.org") is cfg
    assert reg.lookup_by_key(WinKind.ROOM_CONFIG, "room@muc.example.org") is cfg


def test_capacity(reg):
    _fill(reg, 9)
    assert len(reg) == 10
    with pytest.raises(CapacityExceeded):
        reg.create(WinKind.CHAT, "late@example.org")
    assert len(reg) == 10


def test_close_current_returns_focus_to_console(reg):
    win = reg.create(WinKind.CHAT, "bob@example.org")
    reg.focus(win)
    reg.close(win.slot)
    assert reg.current() is reg.console()
    assert reg.chat("bob@example.org") is None
    assert reg.close(7) is None


def test_console_cannot_be_closed(reg):
    with pytest.raises(WindowError):
        reg.close(1)


def test_set_current_clears_unread(reg):
    win = reg.create(WinKind.CHAT, "bob@example.org")
    win.mark_unread()
    win.mark_unread()
    assert reg.total_unread() == 2
    reg.set_current(win.slot)
    assert win.unread_count() == 0
    with pytest.raises(NotFound):
        reg.set_current(9)


def test_swap_keeps_current_window(reg):
    a, b = _fill(reg, 2)
    reg.focus(a)
    reg.swap(2, 3)
    assert reg.lookup_by_slot(2) is b
    assert reg.lookup_by_slot(3) is a
    assert reg.current() is a
    assert reg.current_slot == 3


def test_swap_refuses_console_and_empty_slots(reg):
    _fill(reg, 1)
    with pytest.raises(NotFound):
        reg.swap(1, 2)
    with pytest.raises(NotFound):
        reg.swap(2, 5)


def test_tidy_closes_gaps_in_order(reg):
    a, b, c = _fill(reg, 3)
    reg.close(b.slot)
    assert reg.tidy() is True
    assert [a.slot, c.slot] == [2, 3]
    assert reg.tidy() is False


def test_prune_candidates(reg):
    a, b = _fill(reg, 2)
    room = reg.create(WinKind.ROOM, "room@muc.example.org")
    b.mark_unread()
    reg.focus(a)
    assert reg.prune() == []
    reg.focus(room)
    assert reg.prune() == [a]


def test_rekey_private_window(reg):
    pw = reg.create(WinKind.PRIVATE, "room@muc.example.org/old")
    reg.rekey(pw, "room@muc.example.org/new")
    assert reg.private("room@muc.example.org/old") is None
    assert reg.private("room@muc.example.org/new") is pw
    assert pw.nick == "new"


def test_rekey_onto_open_key_merges(reg):
    stale = reg.create(WinKind.PRIVATE, "room@muc.example.org/rob2")
    stale.print("old conversation", ts=1.0)
    pw = reg.create(WinKind.PRIVATE, "room@muc.example.org/bob")
    pw.print("recent", ts=2.0)
    pw.mark_unread()
    reg.focus(pw)

    survivor = reg.rekey(pw, "room@muc.example.org/rob2")
    assert survivor is stale
    assert pw.slot == 0
    assert [line.text for line in stale.lines] == ["old conversation", "recent"]
    assert stale.unread_count() == 1
    assert reg.current() is stale
    assert [w.key for w in reg.windows() if w.kind is WinKind.PRIVATE] == ["room@muc.example.org/rob2"]

    reg.close(stale.slot)
    fresh = reg.create(WinKind.PRIVATE, "room@muc.example.org/rob2")
    assert [w for w in reg.windows() if w.kind is WinKind.PRIVATE] == [fresh]


def test_form_field_completions_follow_focus():
    completer = Autocompleter(["/help"])
    reg = WindowRegistry(completer=completer)
    form = DataForm(fields=[FormField(var="muc#roomconfig_roomname")])
    cfg = reg.create(WinKind.ROOM_CONFIG, "room@muc.example.org", form=form)
    reg.focus(cfg)
    assert completer.complete("/fie") == "/field1"
    reg.set_current(1)
    assert completer.complete("/fie") is None


def test_on_change_called():
    calls = []
    reg = WindowRegistry(on_change=lambda: calls.append(1))
    reg.create(WinKind.CHAT, "bob@example.org")
    assert calls


def test_windows_are_typed(reg):
    win = reg.create(WinKind.CHAT, "bob@example.org")
    assert isinstance(win, ChatWindow)
    assert reg.chat_recipients() == ["bob@example.org"]


@pytest.mark.parametrize("text,slot", [("0", 10), ("1", 1), ("9", 9), ("10", None), ("x", None), ("", None)])
def test_parse_num(text, slot):
    assert parse_num(text) == slot


def test_display_num():
    assert display_num(10) == "0"
    assert display_num(3) == "3"


class CountingCompleter:
    def __init__(self):
        self.calls = []

    def add_form_fields(self, form):
        self.calls.append("add")

    def remove_form_fields(self, form):
        self.calls.append("remove")


def test_switching_to_same_window_twice_registers_fields_once():
    completer = CountingCompleter()
    reg = WindowRegistry(completer=completer)
    form = DataForm(fields=[FormField(var="muc#roomconfig_roomname")])
    cfg = reg.create(WinKind.ROOM_CONFIG, "room@muc.example.org", form=form)
    reg.focus(cfg)
    reg.focus(cfg)
    assert completer.calls == ["add"]
    reg.set_current(1)
    reg.set_current(1)
    assert completer.calls == ["add", "remove"]
