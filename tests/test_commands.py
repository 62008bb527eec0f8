import json

from jabterm.config import DEFAULT_GATEWAY
from jabterm.crypto import PgpEngine
from jabterm.events import RoomConfigFormEvent, RoomSelfPresenceEvent
from jabterm.form import DataForm, FormField
from jabterm.models import Invite
from jabterm.prefs import Pref
from jabterm.session import EncMode
from jabterm.windows import WinKind

from conftest import texts

BOB = "bob@example.org"
ROOM = "room@conference.example.org"


def _last(ctx):
    return ctx.registry.current().lines[-1].text


def _chat(ctx, barejid=BOB):
    win = ctx.registry.create(WinKind.CHAT, barejid)
    ctx.registry.focus(win)
    return win


def _joined_room(ctx, inbound):
    ctx.rooms.join(ROOM, "me")
    inbound.dispatch(RoomSelfPresenceEvent(room=ROOM, nick="me", role="moderator", affiliation="owner"))
    return ctx.registry.room(ROOM)


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

def test_text_in_console_is_refused(ctx, commands):
    commands.handle_input("hello")
    assert _last(ctx) == "Unknown command: hello"
    assert ctx.protocol.sent == []


def test_text_when_offline(offline_ctx, commands):
    _chat(offline_ctx)
    commands.handle_input("hello")
    assert _last(offline_ctx) == "You are not currently connected."
    assert offline_ctx.protocol.sent == []


def test_send_chat_message(ctx, commands):
    win = _chat(ctx)
    commands.handle_input("hello bob")
    frame = ctx.protocol.last("message")
    assert frame["jid"] == BOB
    assert frame["body"] == "hello bob"
    assert frame["state"] == "active"
    assert frame["receipt_request"] is True
    line = win.lines[-1]
    assert (line.text, line.who, line.receipt_id) == ("hello bob", "me", frame["id"])
    (logged,) = ctx.chatlog.history(BOB)
    assert (logged.text, logged.direction) == ("hello bob", "out")


def test_send_goes_to_bound_resource(ctx, commands):
    _chat(ctx)
    ctx.sessions.on_message(BOB, "phone", send_states=False)
    commands.handle_input("hi")
    frame = ctx.protocol.last("message")
    assert frame["jid"] == f"{BOB}/phone"
    assert frame["state"] is None


def test_double_slash_sends_literal_text(ctx, commands):
    _chat(ctx)
    commands.handle_input("//help is a command")
    assert ctx.protocol.last("message")["body"] == "/help is a command"


def test_otr_policy_always_refuses_plaintext(ctx, commands):
    ctx.prefs.otr_policies[BOB] = "always"
    _chat(ctx)
    commands.handle_input("hello")
    assert _last(ctx) == "Failed to send message. Please check OTR policy"
    assert ctx.protocol.sent == []


def test_room_text_requires_join(ctx, commands):
    ctx.registry.focus(ctx.registry.create(WinKind.ROOM, ROOM))
    commands.handle_input("hello room")
    assert _last(ctx) == "You are not currently in the room."
    assert ctx.protocol.sent == []


def test_room_text_sent_without_local_echo(ctx, inbound, commands):
    win = _joined_room(ctx, inbound)
    count = len(win.lines)
    commands.handle_input("hello room")
    frame = ctx.protocol.last("room_message")
    assert (frame["room"], frame["body"]) == (ROOM, "hello room")
    assert len(win.lines) == count


# ---------------------------------------------------------------------------
# Connection and general
# ---------------------------------------------------------------------------

def test_connect_when_connected(ctx, commands):
    commands.handle_input("/connect me@example.org")
    assert _last(ctx) == "You are either connected already, or a login is in process."


def test_connect(offline_ctx, commands):
    calls = []
    offline_ctx.connect = lambda jid, url: calls.append((jid, url))
    commands.handle_input("/connect nope")
    assert _last(offline_ctx) == "Invalid jid: nope"
    commands.handle_input("/connect me@example.org/desk")
    assert calls == [("me@example.org/desk", DEFAULT_GATEWAY)]
    commands.handle_input("/connect me@example.org server ws://localhost:9000/v1/ws")
    assert calls[-1] == ("me@example.org", "ws://localhost:9000/v1/ws")


def test_network_commands_need_connection(offline_ctx, commands):
    for line in ("/join lobby", "/msg bob@example.org hi", "/away"):
        commands.handle_input(line)
        assert _last(offline_ctx) == "You are not currently connected."
    assert offline_ctx.protocol.sent == []


def test_unknown_command(ctx, commands):
    commands.handle_input("/frobnicate")
    assert _last(ctx) == "Unknown command: /frobnicate"


def test_help_uses_popup_when_available(ctx, commands):
    shown = []
    ctx.show_help = lambda lines, title: shown.append((title, lines))
    commands.handle_input("/help join")
    title, lines = shown[0]
    assert title == "jabterm: /help join"
    assert lines[0] == "Synopsis: /join [<room>] [nick <nick>] [password <password>]"


def test_presence(ctx, commands):
    commands.handle_input("/away out for lunch")
    assert ctx.protocol.last("presence") == {"show": "away", "status": "out for lunch", "priority": 0}
    assert (ctx.show, ctx.status) == ("away", "out for lunch")
    assert _last(ctx) == 'Status set to away, "out for lunch"'


def test_subscription_commands(ctx, commands):
    commands.handle_input("/sub allow carol@example.org")
    assert ctx.protocol.last("subscription") == {"jid": "carol@example.org", "kind": "subscribed"}
    assert _last(ctx) == "Accepted subscription for carol@example.org"
    commands.handle_input("/sub allow")
    assert _last(ctx) == "You must specify a contact."


def test_priority(ctx, commands):
    ctx.show, ctx.status = "dnd", "busy"
    commands.handle_input("/priority 10")
    assert ctx.protocol.last("presence") == {"show": "dnd", "status": "busy", "priority": 10}
    assert _last(ctx) == "Priority set to 10."
    commands.handle_input("/away")
    assert ctx.protocol.last("presence")["priority"] == 10

    commands.handle_input("/priority 200")
    assert _last(ctx) == "Value 200 out of range. Must be in -128..127."
    commands.handle_input("/priority high")
    assert _last(ctx) == "Invalid value: high"
    assert ctx.priority == 10


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------

def _contacts(ctx):
    ctx.roster.update(BOB, name="Bob", subscription="both")
    ctx.roster.update_presence(f"{BOB}/phone", "away", "brb", priority=5)
    ctx.roster.update("carol@example.org", subscription="none", pending_out=True)


def test_roster_show_and_online(ctx, commands):
    commands.handle_input("/roster")
    assert _last(ctx) == "No contacts in roster."
    _contacts(ctx)
    commands.handle_input("/roster")
    assert texts(ctx.registry.console())[-3:] == [
        "Roster:",
        f"  Bob ({BOB}) - both",
        "  carol@example.org - none, request sent",
    ]
    commands.handle_input("/roster online")
    assert texts(ctx.registry.console())[-2:] == ["Roster:", f"  Bob ({BOB}) - both"]


def test_roster_add_remove_and_nick(ctx, commands):
    commands.handle_input("/roster add dave@example.org Dave Smith")
    assert ctx.protocol.last("roster_set") == {"jid": "dave@example.org", "name": "Dave Smith"}
    commands.handle_input("/roster remove dave@example.org")
    assert _last(ctx) == "Contact not found in roster: dave@example.org"
    assert "roster_remove" not in ctx.protocol.actions()

    _contacts(ctx)
    commands.handle_input(f"/roster nick {BOB} Bobby B")
    assert ctx.protocol.last("roster_set") == {"jid": BOB, "name": "Bobby B"}
    assert ctx.roster.get(BOB).name == "Bobby B"
    assert _last(ctx) == f"Nickname for {BOB} set to: Bobby B."
    commands.handle_input(f"/roster clearnick {BOB}")
    assert ctx.roster.get(BOB).name == ""
    assert _last(ctx) == f"Nickname for {BOB} removed."
    commands.handle_input(f"/roster remove {BOB}")
    assert ctx.protocol.last("roster_remove") == {"jid": BOB}
    commands.handle_input("/roster rename")
    assert _last(ctx).startswith("Usage: /roster")


def test_who_in_console(ctx, commands):
    commands.handle_input("/who")
    assert _last(ctx) == "No contacts in roster."
    _contacts(ctx)
    commands.handle_input("/who")
    assert texts(ctx.registry.console())[-3:] == [
        "All contacts:",
        '  Bob is away, "brb"',
        "  carol@example.org is offline",
    ]
    commands.handle_input("/who unavailable")
    assert texts(ctx.registry.console())[-3:] == [
        "Contacts (unavailable):",
        '  Bob is away, "brb"',
        "  carol@example.org is offline",
    ]
    commands.handle_input("/who online")
    assert texts(ctx.registry.console())[-2:] == ["Contacts (online):", '  Bob is away, "brb"']
    commands.handle_input("/who dnd")
    assert _last(ctx) == "No contacts are dnd."
    commands.handle_input("/who sleepy")
    assert _last(ctx).startswith("Usage: /who")


def test_who_in_room(ctx, inbound, commands):
    win = _joined_room(ctx, inbound)
    ctx.rooms.add_occupant(ROOM, "bob", role="participant", show="away")
    commands.handle_input("/who")
    assert texts(win)[-1] == "2 occupants: bob, me"
    commands.handle_input("/who moderator")
    assert texts(win)[-1] == "1 moderator: me"
    commands.handle_input("/who away")
    assert texts(win)[-1] == "1 away: bob"
    commands.handle_input("/who dnd")
    assert texts(win)[-1] == "No occupants dnd."


def test_status_and_info_in_console(ctx, commands):
    commands.handle_input("/status")
    assert _last(ctx) == "Usage: /status [<jid>|<nick>]"
    commands.handle_input("/status nobody@example.org")
    assert _last(ctx) == 'No such contact "nobody@example.org" in roster.'
    _contacts(ctx)
    commands.handle_input("/status Bob")
    assert _last(ctx) == 'Bob is away, "brb"'
    commands.handle_input("/info carol@example.org")
    assert texts(ctx.registry.console())[-4:] == [
        "carol@example.org:",
        "Subscription: none",
        "Subscription request pending.",
        "No resources online.",
    ]
    commands.handle_input(f"/info {BOB}")
    assert texts(ctx.registry.console())[-3:] == [
        f"Bob ({BOB}):",
        "Subscription: both",
        '  phone (5), away, "brb"',
    ]


def test_status_in_chat_and_room(ctx, inbound, commands):
    _contacts(ctx)
    _chat(ctx)
    commands.handle_input(f"/status {BOB}")
    assert _last(ctx) == "No parameter required when in chat."
    commands.handle_input("/status")
    assert _last(ctx) == 'Bob is away, "brb"'

    win = _joined_room(ctx, inbound)
    ctx.registry.focus(win)
    ctx.rooms.add_occupant(ROOM, "bob", jid=f"{BOB}/phone", role="participant", status="here")
    commands.handle_input("/status")
    assert _last(ctx) == "You must specify a nickname."
    commands.handle_input("/status zed")
    assert _last(ctx) == 'No such participant "zed" in room.'
    commands.handle_input("/status bob")
    assert _last(ctx) == 'bob is online, "here"'
    commands.handle_input("/info bob")
    assert texts(win)[-5:] == [
        "bob:",
        f"Jid: {BOB}/phone",
        "Role: participant",
        "Affiliation: none",
        'Status: online, "here"',
    ]


def test_rooms_request(ctx, commands):
    commands.handle_input("/rooms")
    assert ctx.protocol.last("room_list_request") == {"service": "conference.example.org"}
    commands.handle_input("/rooms chat.example.net")
    assert ctx.protocol.last("room_list_request") == {"service": "chat.example.net"}


def test_roster_commands_need_connection(offline_ctx, commands):
    for line in ("/roster", "/who", "/info bob@example.org", "/status bob@example.org",
                 "/rooms", "/priority 1"):
        commands.handle_input(line)
        assert _last(offline_ctx) == "You are not currently connected."
    assert offline_ctx.protocol.sent == []


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

def test_close_console_refused(ctx, commands):
    commands.handle_input("/close")
    assert _last(ctx) == "Cannot close console window."


def test_close_chat_sends_gone(ctx, commands):
    _chat(ctx)
    ctx.sessions.on_message(BOB, "phone", send_states=True)
    commands.handle_input("hi")
    commands.handle_input("/close")
    assert ctx.registry.chat(BOB) is None
    assert ctx.protocol.last("chat_state") == {"jid": BOB, "state": "gone"}
    assert BOB not in ctx.sessions
    assert _last(ctx) == "Closed window 2"


def test_close_refuses_unsaved_form(ctx, commands):
    form = DataForm(fields=[FormField(var="name")])
    form.set_value("field1", "x")
    cfg = ctx.registry.create(WinKind.ROOM_CONFIG, ROOM, form=form)
    ctx.registry.focus(cfg)
    commands.handle_input("/close")
    assert ctx.registry.room_config(ROOM) is cfg
    assert _last(ctx) == "You have unsaved changes, use /form submit or /form cancel"


def test_close_all(ctx, commands):
    ctx.registry.create(WinKind.CHAT, BOB)
    ctx.registry.create(WinKind.CHAT, "carol@example.org")
    commands.handle_input("/close all")
    assert len(ctx.registry) == 1
    assert _last(ctx) == "Closed 2 windows."


def test_win_switch(ctx, commands):
    win = ctx.registry.create(WinKind.CHAT, BOB)
    commands.handle_input(f"/win {win.slot}")
    assert ctx.registry.current() is win
    commands.handle_input("/win 0")
    assert _last(ctx) == "Window 0 does not exist."


def test_wins_swap_messages(ctx, commands):
    ctx.registry.create(WinKind.CHAT, BOB)
    ctx.registry.create(WinKind.CHAT, "carol@example.org")
    commands.handle_input("/wins swap 1 2")
    assert _last(ctx) == "Cannot move console window."
    commands.handle_input("/wins swap 2 2")
    assert _last(ctx) == "Same source and target window supplied."
    commands.handle_input("/wins swap 2 5")
    assert _last(ctx) == "Window 5 does not exist"
    commands.handle_input("/wins swap 2 3")
    assert _last(ctx) == "Swapped windows 2 <-> 3"
    assert ctx.registry.lookup_by_slot(2).key == "carol@example.org"


def test_wins_listing(ctx, commands):
    ctx.registry.create(WinKind.CHAT, BOB).mark_unread()
    commands.handle_input("/wins")
    assert texts(ctx.registry.console())[-3:] == [
        "Active windows:",
        "*1: Console",
        f" 2: Chat {BOB}, 1 unread",
    ]


def test_xmlconsole(ctx, commands):
    commands.handle_input("/xmlconsole")
    assert ctx.registry.current() is ctx.registry.trace()


# ---------------------------------------------------------------------------
# Messaging and rooms
# ---------------------------------------------------------------------------

def test_msg_opens_chat_and_sends(ctx, commands):
    commands.handle_input(f"/msg {BOB} hello there")
    win = ctx.registry.chat(BOB)
    assert ctx.registry.current() is win
    assert ctx.protocol.last("message")["body"] == "hello there"


def test_msg_by_roster_name(ctx, commands):
    ctx.roster.update(BOB, name="Bob")
    commands.handle_input("/msg Bob")
    assert ctx.registry.current() is ctx.registry.chat(BOB)


def test_msg_in_room_opens_private_window(ctx, inbound, commands):
    _joined_room(ctx, inbound)
    commands.handle_input("/msg zed hi")
    assert _last(ctx) == 'No such participant "zed" in room.'
    ctx.rooms.add_occupant(ROOM, "bob")
    commands.handle_input("/msg bob psst")
    pw = ctx.registry.private(f"{ROOM}/bob")
    assert ctx.registry.current() is pw
    assert ctx.protocol.last("private_message")["body"] == "psst"


def test_msg_opportunistic_otr(ctx, commands):
    ctx.otr.generate_key()
    ctx.prefs.set(Pref.OTR_POLICY, "opportunistic")
    commands.handle_input(f"/msg {BOB}")
    assert ctx.protocol.last("message")["body"].startswith("?JTOTR:HELLO:")
    assert _last(ctx) == "Attempting to start OTR session..."


def test_join_defaults(ctx, commands):
    commands.handle_input("/join lobby")
    assert ctx.protocol.last("join_room") == {"room": "lobby@conference.example.org", "nick": "me", "password": ""}
    assert ctx.rooms.active("lobby@conference.example.org")


def test_join_with_options_and_invite_password(ctx, commands):
    ctx.rooms.add_invite(Invite(roomjid=ROOM, invitor=BOB, password="sesame"))
    commands.handle_input(f"/join {ROOM} nick Boss")
    assert ctx.protocol.last("join_room") == {"room": ROOM, "nick": "Boss", "password": "sesame"}
    commands.handle_input(f"/join {ROOM} nick")
    assert _last(ctx) == "Usage: /join [<room>] [nick <nick>] [password <password>]"


def test_join_private_room(ctx, commands):
    commands.handle_input("/join")
    room = ctx.protocol.last("join_room")["room"]
    assert room.startswith("private-chat-")
    assert room.endswith("@conference.example.org")


def test_room_commands_need_room_window(ctx, commands):
    commands.handle_input("/kick bob")
    assert _last(ctx) == "Command '/kick' only applies in chat rooms."


def test_kick_unknown_occupant(ctx, inbound, commands):
    _joined_room(ctx, inbound)
    commands.handle_input("/kick zed")
    assert _last(ctx) == "Occupant does not exist: zed"
    ctx.rooms.add_occupant(ROOM, "bob")
    commands.handle_input("/kick bob flooding the room")
    assert ctx.protocol.last("kick") == {"room": ROOM, "nick": "bob", "reason": "flooding the room"}


def test_leave_closes_room_windows(ctx, inbound, commands):
    _joined_room(ctx, inbound)
    commands.handle_input("/leave")
    assert ctx.protocol.last("leave_room") == {"room": ROOM}
    assert ctx.registry.room(ROOM) is None
    assert not ctx.rooms.active(ROOM)


def test_room_accept_defaults(ctx, inbound, commands):
    win = _joined_room(ctx, inbound)
    commands.handle_input("/room accept")
    assert _last(ctx) == "Current room does not require configuration."
    ctx.rooms.set_requires_config(ROOM, True)
    commands.handle_input("/room accept")
    assert ctx.protocol.last("room_accept_defaults") == {"room": ROOM}
    assert texts(win)[-1] == "Room unlocked."
    assert ctx.registry.room(ROOM) is win
    assert not ctx.rooms.requires_config(ROOM)


# ---------------------------------------------------------------------------
# Room configuration forms
# ---------------------------------------------------------------------------

FORM = {
    "fields": [
        {"var": "muc#roomconfig_roomname", "type": "text-single", "label": "Room name", "values": []},
        {"var": "muc#roomconfig_persistentroom", "type": "boolean", "label": "Persistent", "values": ["0"]},
    ],
}


def test_form_editing_and_submit(ctx, inbound, commands):
    room_win = _joined_room(ctx, inbound)
    inbound.dispatch(RoomConfigFormEvent(room=ROOM, form=FORM))
    cfg = ctx.registry.room_config(ROOM)

    commands.handle_input("/field2 maybe")
    assert "Invalid command, usage:" in texts(cfg)
    commands.handle_input("/field2 on")
    assert texts(cfg)[-2:] == ["Field updated...", "[field2] Persistent: TRUE"]
    commands.handle_input("/field1 The Lobby")
    assert cfg.form.values("field1") == ["The Lobby"]

    commands.handle_input("/form submit")
    submitted = ctx.protocol.last("room_config_submit")["form"]
    assert submitted["fields"][0]["values"] == ["The Lobby"]
    assert ctx.registry.room_config(ROOM) is None
    assert ctx.registry.current() is room_win


def test_form_cancel(ctx, inbound, commands):
    _joined_room(ctx, inbound)
    inbound.dispatch(RoomConfigFormEvent(room=ROOM, form=FORM))
    commands.handle_input("/form cancel")
    assert ctx.protocol.last("room_config_cancel") == {"room": ROOM}
    assert ctx.registry.room_config(ROOM) is None


def test_close_refuses_modified_form_until_cancelled(ctx, inbound, commands):
    room_win = _joined_room(ctx, inbound)
    inbound.dispatch(RoomConfigFormEvent(room=ROOM, form=FORM))
    cfg = ctx.registry.room_config(ROOM)
    commands.handle_input("/field1 The Lobby")
    assert cfg.has_unsaved_changes()

    commands.handle_input(f"/close {cfg.slot}")
    assert _last(ctx) == "You have unsaved changes, use /form submit or /form cancel"
    assert ctx.registry.room_config(ROOM) is cfg

    commands.handle_input("/form cancel")
    assert ctx.registry.room_config(ROOM) is None
    assert ctx.registry.current() is room_win


def test_form_outside_config_window(ctx, commands):
    commands.handle_input("/form submit")
    assert _last(ctx) == "Command '/form' does not apply to this window."


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

def test_otr_start_refusals(ctx, commands):
    commands.handle_input("/otr start")
    assert _last(ctx) == "You must be in a regular chat window to start an OTR session."
    _chat(ctx)
    commands.handle_input("/otr start")
    assert _last(ctx) == "You have not generated or loaded a private key, use '/otr gen'"
    commands.handle_input("/otr end")
    assert _last(ctx) == "You are not currently in an OTR session."


def test_otr_start(ctx, commands):
    commands.handle_input("/otr gen")
    assert _last(ctx).startswith("Your OTR fingerprint: ")
    win = _chat(ctx)
    commands.handle_input("/otr start")
    assert ctx.protocol.last("message")["body"].startswith("?JTOTR:HELLO:")
    assert texts(win)[-1] == "Attempting to start OTR session..."


def test_unwritable_key_file_reported(tmp_path, ctx, commands):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    ctx.otr.key_file = blocker / "otr.json"
    commands.handle_input("/otr gen")
    console = ctx.registry.console()
    assert console.lines[-1].theme == "error"
    assert _last(ctx).startswith("Could not complete command: ")
    assert "Private key generation complete." not in texts(console)

    ctx.pgp.key_file = blocker / "pgp.json"
    commands.handle_input(f"/pgp setkey {BOB} {PgpEngine(key_file=tmp_path / 'peer.json').public_key()}")
    assert _last(ctx).startswith("Could not complete command: ")


def test_otr_policy_per_contact(ctx, commands):
    commands.handle_input(f"/otr policy always {BOB}")
    assert _last(ctx) == f"OTR policy for {BOB} set to: always"
    assert ctx.prefs.otr_policy(BOB) == "always"
    commands.handle_input("/otr policy sometimes")
    assert _last(ctx) == "OTR policy must be one of: manual, opportunistic or always."


def test_pgp_start_and_send(tmp_path, ctx, commands):
    win = _chat(ctx)
    commands.handle_input("/pgp start")
    assert _last(ctx) == f"No PGP key found for {BOB}."

    peer = PgpEngine(key_file=tmp_path / "bob-pgp.json")
    commands.handle_input(f"/pgp setkey {BOB} {peer.public_key()}")
    assert _last(ctx) == f"Key {peer.fingerprint()} set for {BOB}."
    commands.handle_input("/pgp start")
    assert win.enc_mode is EncMode.PGP
    assert _last(ctx) == "PGP encryption enabled."

    commands.handle_input("top secret")
    frame = ctx.protocol.last("message")
    assert frame["body"] == "This message is encrypted (PGP)."
    assert peer.decode("me@example.org", frame["encrypted"]) == "top secret"
    assert [l.text for l in ctx.chatlog.history(BOB)] == ["[redacted]"]

    commands.handle_input("/otr start")
    assert _last(ctx) == "You must disable PGP encryption before starting an OTR session."
    commands.handle_input("/pgp end")
    assert win.enc_mode is EncMode.NONE


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

def test_toggle_saves_preference(ctx, commands):
    commands.handle_input("/beep on")
    assert _last(ctx) == "Sound enabled."
    stored = json.loads(ctx.prefs.path.read_text())
    assert stored["prefs"]["beep"] is True
    commands.handle_input("/beep loud")
    assert _last(ctx) == "Usage: /beep on|off"


def test_gone_minutes(ctx, commands):
    commands.handle_input("/gone 1")
    assert _last(ctx) == "Leaving conversations after 1 minute of inactivity."
    commands.handle_input("/gone 0")
    assert _last(ctx) == "Automatic leaving conversations after period disabled."
    assert ctx.prefs.get_int(Pref.GONE) == 0


def test_notify_room_mention(ctx, commands):
    commands.handle_input("/notify room mention")
    assert ctx.prefs.get_string(Pref.NOTIFY_ROOM) == "mention"
    assert _last(ctx) == "Room notifications enabled on mention."


def test_autoaway_settings(ctx, commands):
    commands.handle_input("/autoaway mode away")
    commands.handle_input("/autoaway time 1")
    assert _last(ctx) == "Auto away time set to: 1 minute."
    commands.handle_input("/autoaway message gone fishing")
    assert ctx.prefs.get_string(Pref.AUTOAWAY_MESSAGE) == "gone fishing"
    assert ctx.prefs.get_string(Pref.AUTOAWAY_MODE) == "away"


def test_time_format(ctx, commands):
    commands.handle_input("/time %H:%M")
    assert _last(ctx) == "Time format set to '%H:%M'."
    commands.handle_input("/time off")
    assert _last(ctx) == "Time display disabled."
