import pytest
from pydantic import ValidationError

from jabterm.events import MessageEvent, RoomSelfPresenceEvent, RoomsEvent, parse_event
from jabterm.prefs import Pref
from jabterm.routing import ensure_chat, resolve_target
from jabterm.windows import WinKind


# ---------------------------------------------------------------------------
# Event frames
# ---------------------------------------------------------------------------

def test_parse_message_frame():
    ev = parse_event('{"type": "message", "jid": "bob@example.org/x", "body": "hi", "extra": 1}')
    assert isinstance(ev, MessageEvent)
    assert ev.body == "hi"
    assert ev.carbon == "none"
    assert ev.delay is None


def test_parse_room_self_presence_defaults():
    ev = parse_event({"type": "room_self_presence", "room": "r@muc.example.org", "nick": "me"})
    assert isinstance(ev, RoomSelfPresenceEvent)
    assert (ev.role, ev.affiliation, ev.config_required) == ("none", "none", False)


def test_parse_rooms_frame():
    ev = parse_event({"type": "rooms", "service": "muc.example.org",
                      "items": [{"jid": "lobby@muc.example.org", "name": "Lobby"}]})
    assert isinstance(ev, RoomsEvent)
    assert [(i.jid, i.name) for i in ev.items] == [("lobby@muc.example.org", "Lobby")]


@pytest.mark.parametrize("frame", [
    {"type": "nope"},
    {"type": "message"},
    {"type": "presence", "jid": "a@b", "show": "sleepy"},
])
def test_invalid_frames(frame):
    with pytest.raises(ValidationError):
        parse_event(frame)


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

def test_resolve_target_precedence(ctx):
    reg = ctx.registry
    assert resolve_target(ctx, "bob@example.org/x") is reg.console()

    room = reg.create(WinKind.ROOM, "room@muc.example.org")
    assert resolve_target(ctx, "room@muc.example.org/bob") is room

    chat = reg.create(WinKind.CHAT, "room@muc.example.org")
    assert resolve_target(ctx, "room@muc.example.org/bob") is chat

    private = reg.create(WinKind.PRIVATE, "room@muc.example.org/bob")
    assert resolve_target(ctx, "room@muc.example.org/bob") is private
    assert resolve_target(ctx, "room@muc.example.org/carol") is chat


def test_resolve_target_focused_only(ctx):
    chat = ctx.registry.create(WinKind.CHAT, "bob@example.org")
    assert resolve_target(ctx, "bob@example.org", focused_only=True) is ctx.registry.console()
    ctx.registry.focus(chat)
    assert resolve_target(ctx, "bob@example.org", focused_only=True) is chat


def test_resolve_target_bad_address(ctx):
    assert resolve_target(ctx, "@@") is ctx.registry.console()


def test_new_chat_window_replays_history_once(ctx):
    ctx.chatlog.log_chat("bob@example.org", "bob@example.org", "earlier", ts=1.0)
    ctx.chatlog.log_chat("bob@example.org", "me", "reply", ts=2.0, direction="out")
    win = ensure_chat(ctx, "bob@example.org")
    assert [(l.text, l.who, l.theme) for l in win.lines] == [
        ("earlier", "bob@example.org", "history"),
        ("reply", "me", "history"),
    ]
    ensure_chat(ctx, "bob@example.org")
    assert len(win.lines) == 2


def test_history_replay_disabled(ctx):
    ctx.prefs.set(Pref.HISTORY, False)
    ctx.chatlog.log_chat("bob@example.org", "bob@example.org", "earlier", ts=1.0)
    assert len(ensure_chat(ctx, "bob@example.org").lines) == 0
