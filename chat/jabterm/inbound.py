"""Inbound event dispatcher.

Each protocol event resolves to a window, updates session and room state,
and decides on unread counts and notifications.  Handlers run one at a time
from the main loop, so a handler sees state exactly as the previous one left
it.  A failing handler reports into the most relevant window and the next
event is handled normally.
"""
from __future__ import annotations

import logging
import platform
import re
from typing import Any, List, Optional

from jabterm.chatlog import loggable_text
from jabterm.config import APP_NAME, APP_VERSION
from jabterm.context import AppContext
from jabterm.crypto import EngineError, OtrEngine, OtrResult
from jabterm.events import (
    ChatStateEvent,
    ConnectionEvent,
    DiscoInfoEvent,
    ErrorEvent,
    MessageEvent,
    PresenceEvent,
    PrivateMessageEvent,
    ReceiptEvent,
    RoomBroadcastEvent,
    RoomConfigFormEvent,
    RoomConfigResultEvent,
    RoomErrorEvent,
    RoomInviteEvent,
    RoomListEvent,
    RoomMessageEvent,
    RoomsEvent,
    RoomOccupantNickEvent,
    RoomOccupantOfflineEvent,
    RoomOccupantPresenceEvent,
    RosterEvent,
    RoomSelfLeftEvent,
    RoomSelfPresenceEvent,
    RoomSubjectEvent,
    SoftwareVersionEvent,
    SoftwareVersionRequestEvent,
    SubscriptionEvent,
    TraceEvent,
)
from jabterm.form import DataForm
from jabterm.jid import Jid, room_nick
from jabterm.models import Invite, Room
from jabterm.prefs import Pref
from jabterm.protocol import ConnStatus
from jabterm.registry import CapacityExceeded, display_num
from jabterm.routing import WINDOWS_FULL, ensure_chat, ensure_private, resolve_target
from jabterm.session import EncMode, EncryptionConflict, end_encryption, start_otr, start_pgp
from jabterm.windows import ChatWindow, RoomWindow, WinKind, Window

log = logging.getLogger(__name__)

REQUIRES_CONFIG_BLOCK = (
    "Room locked, requires configuration.",
    "Use '/room accept' to accept the defaults",
    "Use '/room destroy' to cancel and destroy the room",
    "Use '/room config' to edit the room configuration",
)

FORM_HINTS = (
    "Use '/form submit' to save changes.",
    "Use '/form cancel' to cancel changes.",
    "See '/form help' for more information.",
)


def _by_reason(actor: str, reason: str, by_word: str = " by ") -> str:
    out = f"{by_word}{actor}" if actor else ""
    if reason:
        out += f", reason: {reason}"
    return out


def privilege_change_text(who: str, old_role: str, old_aff: str, role: str, affiliation: str,
                          actor: str = "", reason: str = "") -> Optional[str]:
    """Describe a role/affiliation change, naming only what changed.

    *who* is "" for ourselves, otherwise the occupant's nick.
    """
    role_changed = old_role != role
    aff_changed = old_aff != affiliation
    if not role_changed and not aff_changed:
        return None
    subject = f"{who}'s" if who else "Your"
    if role_changed and aff_changed:
        text = f"{subject} role and affiliation have been changed, role: {role}, affiliation: {affiliation}"
    elif role_changed:
        text = f"{subject} role has been changed to: {role}"
    else:
        text = f"{subject} affiliation has been changed to: {affiliation}"
    return text + _by_reason(actor, reason, by_word=", by: ")


def mentions(nick: str, body: str) -> bool:
    if not nick:
        return False
    return re.search(rf"(?<!\w){re.escape(nick)}(?!\w)", body, re.IGNORECASE) is not None


class InboundDispatcher:
    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx

    @property
    def reg(self):
        return self.ctx.registry

    @property
    def prefs(self):
        return self.ctx.prefs

    def _console(self) -> Window:
        return self.ctx.registry.console()

    # ── Boundary ──────────────────────────────────────────────────────────────

    def dispatch(self, event: Any) -> None:
        handler = getattr(self, f"_on_{event.type}", None)
        if handler is None:
            log.warning("no handler for %s events", event.type)
            return
        try:
            handler(event)
        except EngineError as e:
            log.error("encryption failure handling %s: %s", event.type, e)
            self._target_for(event).print_error(str(e))
        except Exception as e:
            log.exception("failed to handle %s event", event.type)
            self._target_for(event).print_error(f"Error handling {event.type}: {e}")
        finally:
            self.ctx.mark_dirty()

    def _target_for(self, event: Any) -> Window:
        jid = getattr(event, "jid", "") or getattr(event, "room", "")
        return resolve_target(self.ctx, jid) if jid else self._console()

    # ── Shared helpers ────────────────────────────────────────────────────────

    def _open_chat(self, barejid: str) -> Optional[ChatWindow]:
        try:
            return ensure_chat(self.ctx, barejid)
        except CapacityExceeded:
            self._console().print_error(WINDOWS_FULL)
            return None

    def _open_room(self, roomjid: str) -> Optional[RoomWindow]:
        win = self.reg.room(roomjid)
        if win is not None:
            return win
        try:
            return self.reg.create(
                WinKind.ROOM,
                roomjid,
                occupants_visible=self.prefs.get_bool(Pref.OCCUPANTS),
                show_jid=self.prefs.get_bool(Pref.OCCUPANTS_JID),
            )  # type: ignore[return-value]
        except CapacityExceeded:
            self._console().print_error(WINDOWS_FULL)
            return None

    def _incoming(self, win: Window, label: str) -> None:
        """Unread and console bookkeeping for a new line in *win*."""
        if self.reg.is_current(win):
            return
        win.mark_unread()
        self._console().print(f"<- incoming message from {label} ({display_num(win.slot)})", ch="-")
        if self.prefs.get_bool(Pref.FLASH):
            self.ctx.notifier.flash(win)

    def _notify_message(self, win: Window, name: str, text: str) -> None:
        p = self.prefs
        if p.get_bool(Pref.BEEP):
            self.ctx.notifier.beep()
        if not p.get_bool(Pref.NOTIFY_MESSAGE):
            return
        if self.reg.is_current(win) and not p.get_bool(Pref.NOTIFY_MESSAGE_CURRENT):
            return
        body = f"{name}: {text}" if p.get_bool(Pref.NOTIFY_MESSAGE_TEXT) else f"Message from {name}"
        self.ctx.notifier.desktop(APP_NAME, body)

    def _display_name(self, jid: Jid) -> str:
        name = self.ctx.roster.display_name(jid.bare)
        if jid.resource and self.prefs.get_bool(Pref.RESOURCE_MESSAGE):
            return f"{name}/{jid.resource}"
        return name

    def _drop_conversations(self, notice: str) -> None:
        for win in self.reg.windows():
            if isinstance(win, ChatWindow):
                if win.enc_mode is EncMode.OTR:
                    self.ctx.otr.end(win.barejid)
                    end_encryption(win)
                win.typing = False
                win.state.reset()
            if win.kind in (WinKind.CHAT, WinKind.PRIVATE, WinKind.ROOM):
                win.print_error(notice)
        self.ctx.roster.clear()
        self.ctx.rooms.clear()
        self.ctx.sessions.clear()

    # ── Connection ────────────────────────────────────────────────────────────

    def _on_connection(self, ev: ConnectionEvent) -> None:
        proto = self.ctx.protocol
        if ev.status == "connected":
            proto.status = ConnStatus.CONNECTED
            self.ctx.account = ev.jid or proto.jid
            self.ctx.chatlog.account = Jid.parse(self.ctx.account).bare
            self._console().print_system(
                f"{self.ctx.account} logged in successfully, {self.ctx.show} (priority {self.ctx.priority})."
            )
            proto.send_presence(self.ctx.show, self.ctx.status, self.ctx.priority)
            log.info("logged in as %s", self.ctx.account)
        elif ev.status == "failed":
            proto.status = ConnStatus.DISCONNECTED
            self._console().print_error("Login failed.")
            log.error("login failed: %s", ev.message)
        elif ev.status == "lost":
            proto.status = ConnStatus.DISCONNECTED
            self._console().print_error("Lost connection.")
            self._drop_conversations("Lost connection.")
            log.warning("lost connection to gateway")
        else:
            proto.status = ConnStatus.DISCONNECTED
            self._console().print_system(f"{self.ctx.account} logged out successfully.")
            self._drop_conversations("Disconnected.")

    def _on_roster(self, ev: RosterEvent) -> None:
        roster = self.ctx.roster
        for item in ev.items:
            barejid = Jid.parse(item.jid).bare
            if item.subscription == "remove":
                if ev.push and barejid in roster:
                    self._console().print_system(f"Roster item removed: {barejid}")
                roster.remove(barejid)
                continue
            if ev.push and barejid not in roster:
                added = f"{barejid} ({item.name})" if item.name else barejid
                self._console().print_system(f"Roster item added: {added}")
            roster.update(barejid, name=item.name, subscription=item.subscription,
                          groups=item.groups, pending_out=item.pending_out)
        if not ev.push:
            roster.complete = True

    # ── Chat messages ─────────────────────────────────────────────────────────

    def _on_message(self, ev: MessageEvent) -> None:
        jid = Jid.parse(ev.jid)
        if ev.carbon == "sent":
            self._outgoing_carbon(jid, ev)
            return

        if ev.state is not None:
            self.ctx.sessions.on_message(jid.bare, jid.resource, send_states=True)
        elif ev.body or ev.encrypted:
            self.ctx.sessions.on_message(jid.bare, jid.resource, send_states=False)
        if not ev.body and ev.encrypted is None:
            return

        win = self._open_chat(jid.bare)
        if win is None:
            if ev.encrypted is not None or OtrEngine.is_otr_message(ev.body):
                log.warning("no window for encrypted message from %s, dropped", jid.bare)
            else:
                self.ctx.chatlog.log_chat(jid.bare, jid.bare, ev.body, ts=ev.delay)
            return

        decoded = self._decode(win, jid, ev)
        if decoded is None:
            return
        text, mode = decoded

        name = self._display_name(jid)
        if ev.delay is not None:
            win.print(text, who=name, ts=ev.delay, theme="history")
        else:
            win.print(text, who=name, theme="otr" if mode is not EncMode.NONE else "incoming")
        win.typing = False
        self._incoming(win, name)
        if ev.delay is None:
            self._notify_message(win, name, text)

        if ev.receipt_request and ev.id and self.prefs.get_bool(Pref.RECEIPTS_SEND):
            self.ctx.protocol.send_receipt(ev.jid, ev.id)

        stored = loggable_text(self.prefs, mode, text)
        if stored is not None:
            self.ctx.chatlog.log_chat(jid.bare, jid.bare, stored, ts=ev.delay)

    def _decode(self, win: ChatWindow, jid: Jid, ev: MessageEvent) -> Optional[tuple]:
        """Run the body through the engines.  Returns ``(text, mode)`` or
        None when there is nothing to display."""
        ctx = self.ctx
        if ev.encrypted is not None:
            if win.enc_mode is EncMode.OTR:
                win.print_error("PGP encrypted message received whilst in OTR session.")
                return None
            try:
                text = ctx.pgp.decode(jid.bare, ev.encrypted)
            except EngineError as e:
                log.error("could not decrypt PGP message from %s: %s", jid.bare, e)
                win.print_error(f"Could not decrypt PGP message: {e}")
                return (ev.body, EncMode.NONE) if ev.body else None
            if win.enc_mode is not EncMode.PGP:
                start_pgp(win)
                win.print("PGP encryption enabled.", ch="!", theme="otr")
            return text, EncMode.PGP

        if OtrEngine.is_otr_message(ev.body) and ctx.otr.available:
            result: OtrResult = ctx.otr.decode(jid.bare, ev.body)
            return self._apply_otr(win, jid, result)

        if win.enc_mode is EncMode.PGP:
            end_encryption(win)
            win.print("PGP encryption disabled.", ch="!", theme="otr")
        return ev.body, EncMode.NONE

    def _apply_otr(self, win: ChatWindow, jid: Jid, result: OtrResult) -> Optional[tuple]:
        ctx = self.ctx
        if result.reply:
            ctx.protocol.send_message(jid.full, result.reply)
        for notice in result.notices:
            win.print(notice, ch="!", theme="otr")
        if result.went_secure:
            self.otr_started(win)
        if result.went_insecure:
            end_encryption(win)
            win.print("OTR session ended.", ch="!", theme="otr")
        if result.trust_changed is not None and win.enc_mode is EncMode.OTR:
            win.otr_trusted = ctx.otr.is_trusted(win.barejid)
        if result.text is None:
            return None
        return result.text, EncMode.OTR if result.encrypted else EncMode.NONE

    def otr_started(self, win: ChatWindow) -> None:
        ctx = self.ctx
        trusted = ctx.otr.is_trusted(win.barejid)
        try:
            start_otr(win, trusted=trusted)
        except EncryptionConflict as e:
            end = ctx.otr.end(win.barejid)
            if end:
                ctx.protocol.send_message(win.barejid, end)
            win.print_error(str(e))
            return
        state = "trusted" if trusted else "untrusted"
        win.print(f"OTR session started ({state}).", ch="!", theme="otr")

    def _outgoing_carbon(self, jid: Jid, ev: MessageEvent) -> None:
        if OtrEngine.is_otr_message(ev.body) or not ev.body:
            return
        win = self._open_chat(jid.bare)
        if win is None:
            return
        win.print(ev.body, who="me", theme="me", ts=ev.delay)
        self.ctx.chatlog.log_chat(jid.bare, "me", ev.body, direction="out")

    def _on_private_message(self, ev: PrivateMessageEvent) -> None:
        jid = Jid.parse(ev.jid)
        try:
            win = ensure_private(self.ctx, jid.full)
        except CapacityExceeded:
            self._console().print_error(WINDOWS_FULL)
            return
        win.occupant_offline = False
        if ev.delay is not None:
            win.print(ev.body, who=jid.resource, ts=ev.delay, theme="history")
        else:
            win.print(ev.body, who=jid.resource, theme="incoming")
        self._incoming(win, jid.full)
        if ev.delay is None:
            self._notify_message(win, jid.full, ev.body)

    def _on_receipt(self, ev: ReceiptEvent) -> None:
        win = self.reg.chat(Jid.parse(ev.jid).bare)
        if win is None or not win.mark_received(ev.id):
            log.debug("receipt %s from %s matched no line", ev.id, ev.jid)

    def _on_chat_state(self, ev: ChatStateEvent) -> None:
        jid = Jid.parse(ev.jid)
        win = self.reg.chat(jid.bare)
        name = self.ctx.roster.display_name(jid.bare)
        p = self.prefs

        if ev.state == "gone":
            self.ctx.sessions.remove(jid.bare)
            if win is None:
                return
            win.typing = False
            if win.resource_override and win.resource_override != jid.resource:
                return
            win.print(f"<- {name} has left the conversation.", ch="!", theme="system")
            return

        self.ctx.sessions.on_message(jid.bare, jid.resource, send_states=True)
        if ev.state != "composing":
            if win is not None:
                win.typing = False
            return

        current = win is not None and self.reg.is_current(win)
        if p.get_bool(Pref.INTYPE):
            if current:
                win.typing = True  # type: ignore[union-attr]
            else:
                self._console().print(f"{name} is typing a message...", theme="typing")
        if p.get_bool(Pref.NOTIFY_TYPING) and (not current or p.get_bool(Pref.NOTIFY_TYPING_CURRENT)):
            self.ctx.notifier.desktop(APP_NAME, f"{name}: typing...")

    # ── Presence and subscriptions ────────────────────────────────────────────

    @staticmethod
    def _status_visible(setting: str, announces_online_change: bool) -> bool:
        if setting == "all":
            return True
        if setting == "online":
            return announces_online_change
        return False

    def _on_presence(self, ev: PresenceEvent) -> None:
        jid = Jid.parse(ev.jid)
        roster = self.ctx.roster
        contact = roster.get(jid.bare)
        if contact is None:
            log.debug("presence from %s, not in roster", ev.jid)
            return

        win = self.reg.chat(jid.bare)
        if ev.show == "offline":
            changed = roster.remove_resource(ev.jid)
            self.ctx.sessions.remove(jid.bare)
            if win is not None and win.resource_override == jid.resource:
                win.resource_override = ""
            if not changed:
                return
            online_change = True
        else:
            online_change = roster.update_presence(ev.jid, ev.show, ev.status, ev.priority)

        if contact.subscription == "none":
            return

        name = contact.display_name
        label = f"{name} ({jid.resource})" if jid.resource else name
        text = f"{label} is {ev.show}"
        if ev.status:
            text += f', "{ev.status}"'
        ch = "-" if ev.show == "offline" else "+"
        if self._status_visible(self.prefs.get_string(Pref.STATUSES_CONSOLE), online_change):
            self._console().print(text, ch=ch, theme="system")
        if win is not None and self._status_visible(self.prefs.get_string(Pref.STATUSES_CHAT), online_change):
            win.print(text, ch=ch, theme="system")

    def _on_subscription(self, ev: SubscriptionEvent) -> None:
        jid = Jid.parse(ev.jid).bare
        if ev.kind == "subscribe":
            lines = [f"Received authorization request from {jid}"]
            hint = f"Use '/sub allow {jid}' to accept or '/sub deny {jid}' to reject"
            notice = f"Subscription request: {jid}"
        elif ev.kind == "subscribed":
            lines = [f"Subscription received from {jid}"]
            hint = ""
            notice = f"Subscription received from {jid}"
        else:
            lines = [f"{jid} deleted subscription"]
            hint = ""
            notice = f"{jid} deleted subscription"

        console = self._console()
        for line in lines:
            console.print(line, ch="!", theme="system")
        if hint:
            console.print(hint)
        win = self.reg.chat(jid)
        if win is not None:
            for line in lines:
                win.print(line, ch="!", theme="system")
        if self.prefs.get_bool(Pref.NOTIFY_SUB):
            self.ctx.notifier.desktop(APP_NAME, notice)

    # ── Rooms: our own presence ───────────────────────────────────────────────

    def _on_room_self_presence(self, ev: RoomSelfPresenceEvent) -> None:
        rooms = self.ctx.rooms
        room = rooms.get(ev.room)
        if room is None:
            log.warning("self presence for unknown room %s", ev.room)
            return

        rooms.add_occupant(ev.room, ev.nick, jid=self.ctx.account, role=ev.role,
                           affiliation=ev.affiliation, show=ev.show, status=ev.status)

        if room.roster_complete and room.pending_nick == ev.nick:
            rooms.complete_nick_change(ev.room, ev.nick)
            win = self.reg.room(ev.room)
            if win is not None:
                win.print(f"** You are now known as {ev.nick}", ch="!", theme="system")
            return

        if not room.roster_complete:
            room.roster_complete = True
            rooms.set_self_privileges(ev.room, ev.role, ev.affiliation)
            if ev.config_required:
                rooms.set_requires_config(ev.room, True)
            self._room_joined(room)
            return

        old_role, old_aff = rooms.set_self_privileges(ev.room, ev.role, ev.affiliation)
        if not self.prefs.get_bool(Pref.PRIVILEGES):
            return
        text = privilege_change_text("", old_role, old_aff, ev.role, ev.affiliation, ev.actor, ev.reason)
        win = self.reg.room(ev.room)
        if text and win is not None:
            win.print(text, ch="!", theme="system")

    def _room_joined(self, room: Room) -> None:
        ctx = self.ctx
        win = self._open_room(room.roomjid)
        if win is None:
            return
        win.print(
            f"-> You have joined the room as {room.nick}, role: {room.role}, "
            f"affiliation: {room.affiliation}",
            ch="!", theme="system",
        )
        if room.autojoin:
            self._console().print(f"-> Autojoined {room.roomjid} as {room.nick} ({display_num(win.slot)})")
        else:
            self.reg.focus(win)
        ctx.protocol.request_disco_info(room.roomjid)
        ctx.rooms.remove_invite(room.roomjid)
        if not win.occupants_visible:
            self.print_occupants(win)

        if room.subject is not None:
            self._print_subject(win, room)
        for text in ctx.rooms.take_broadcasts(room.roomjid):
            win.print(f"Room message: {text}", ch="!", theme="system")
        if room.requires_config:
            self.print_requires_config(win)

    def print_requires_config(self, win: Window) -> None:
        for line in REQUIRES_CONFIG_BLOCK:
            win.print(line, ch="!", theme="system")

    def print_occupants(self, win: RoomWindow) -> None:
        occupants = self.ctx.rooms.occupants(win.roomjid)
        if win.show_jid:
            names = [f"{o.nick} ({o.jid})" if o.jid else o.nick for o in occupants]
        else:
            names = [o.nick for o in occupants]
        win.print(f"Occupants: {', '.join(names)}", ch="!", theme="system")

    @staticmethod
    def _print_subject(win: Window, room: Room) -> None:
        if room.subject:
            if room.subject_by:
                win.print(f"*{room.subject_by} has set the room subject: {room.subject}", ch="!", theme="system")
            else:
                win.print(f"Room subject: {room.subject}", ch="!", theme="system")
        else:
            win.print("Room subject cleared", ch="!", theme="system")

    def _on_room_self_left(self, ev: RoomSelfLeftEvent) -> None:
        self.ctx.rooms.leave(ev.room)
        for pw in self.reg.privates_for_room(ev.room):
            self.reg.close(pw.slot)
        for win in (self.reg.room_config(ev.room), self.reg.room(ev.room)):
            if win is not None:
                self.reg.close(win.slot)
        if self.prefs.get_bool(Pref.WINS_AUTOTIDY):
            self.reg.tidy()

        console = self._console()
        if ev.kind == "kicked":
            console.print(f"<- Kicked from {ev.room}{_by_reason(ev.actor, ev.reason)}", ch="!", theme="system")
        elif ev.kind == "banned":
            console.print(f"<- Banned from {ev.room}{_by_reason(ev.actor, ev.reason)}", ch="!", theme="system")
        elif ev.kind == "destroyed":
            console.print(f"<- Room destroyed: {ev.room}{_by_reason('', ev.reason)}", ch="!", theme="system")
            if ev.alternate:
                extra = f", password: {ev.password}" if ev.password else ""
                console.print(f"Replacement room: {ev.alternate}{extra}", ch="!", theme="system")

    # ── Rooms: occupants ──────────────────────────────────────────────────────

    def _on_room_occupant_presence(self, ev: RoomOccupantPresenceEvent) -> None:
        rooms = self.ctx.rooms
        room = rooms.get(ev.room)
        if room is None:
            log.warning("occupant presence for unknown room %s", ev.room)
            return
        previous, _ = rooms.add_occupant(ev.room, ev.nick, jid=ev.jid, role=ev.role,
                                         affiliation=ev.affiliation, show=ev.show, status=ev.status)
        renamed_from = rooms.take_occupant_nick_change(ev.room, ev.nick)
        if not room.roster_complete:
            return
        win = self.reg.room(ev.room)
        if win is None:
            log.warning("no window for joined room %s", ev.room)
            return

        muc_statuses = self.prefs.get_string(Pref.STATUSES_MUC)
        if previous is None:
            if renamed_from:
                return
            if muc_statuses != "none":
                win.print(
                    f"-> {ev.nick} has joined the room, role: {ev.role}, affiliation: {ev.affiliation}",
                    ch="!", theme="system",
                )
            pw = self.reg.private(room_nick(ev.room, ev.nick))
            if pw is not None and pw.occupant_offline:
                pw.occupant_offline = False
                pw.print(f"-> {ev.nick} has joined the room.", ch="!", theme="system")
            return

        if previous.show != ev.show or previous.status != ev.status:
            if muc_statuses == "all":
                text = f"{ev.nick} is {ev.show}"
                if ev.status:
                    text += f', "{ev.status}"'
                win.print(text, ch="+", theme="system")
            return

        if self.prefs.get_bool(Pref.PRIVILEGES):
            text = privilege_change_text(ev.nick, previous.role, previous.affiliation,
                                         ev.role, ev.affiliation, ev.actor, ev.reason)
            if text:
                win.print(text, ch="!", theme="system")

    def _on_room_occupant_offline(self, ev: RoomOccupantOfflineEvent) -> None:
        self.ctx.rooms.remove_occupant(ev.room, ev.nick)
        win = self.reg.room(ev.room)
        if win is None:
            log.warning("occupant left unknown room %s", ev.room)
            return
        if ev.kind == "kicked":
            win.print(f"<- {ev.nick} has been kicked from the room{_by_reason(ev.actor, ev.reason)}",
                      ch="!", theme="system")
        elif ev.kind == "banned":
            win.print(f"<- {ev.nick} has been banned from the room{_by_reason(ev.actor, ev.reason)}",
                      ch="!", theme="system")
        elif self.prefs.get_string(Pref.STATUSES_MUC) != "none":
            win.print(f"<- {ev.nick} has left the room.", ch="!", theme="system")

        pw = self.reg.private(room_nick(ev.room, ev.nick))
        if pw is not None:
            pw.occupant_offline = True
            pw.print(f"<- {ev.nick} has left the room.", ch="!", theme="system")

    def _on_room_occupant_nick(self, ev: RoomOccupantNickEvent) -> None:
        self.ctx.rooms.occupant_nick_change(ev.room, ev.old_nick, ev.new_nick)
        text = f"** {ev.old_nick} is now known as {ev.new_nick}"
        win = self.reg.room(ev.room)
        if win is not None:
            win.print(text, ch="!", theme="system")
        pw = self.reg.private(room_nick(ev.room, ev.old_nick))
        if pw is not None:
            pw = self.reg.rekey(pw, room_nick(ev.room, ev.new_nick))
            pw.print(text, ch="!", theme="system")

    # ── Rooms: messages and subject ───────────────────────────────────────────

    def _on_room_broadcast(self, ev: RoomBroadcastEvent) -> None:
        room = self.ctx.rooms.get(ev.room)
        if room is not None and not room.roster_complete:
            self.ctx.rooms.queue_broadcast(ev.room, ev.body)
            return
        win = self.reg.room(ev.room) or self._console()
        win.print(f"Room message: {ev.body}", ch="!", theme="system")

    def _on_room_subject(self, ev: RoomSubjectEvent) -> None:
        room = self.ctx.rooms.get(ev.room)
        if room is None:
            log.warning("subject for unknown room %s", ev.room)
            return
        self.ctx.rooms.set_subject(ev.room, ev.subject, ev.nick)
        win = self.reg.room(ev.room)
        if room.roster_complete and win is not None:
            self._print_subject(win, room)

    def _on_room_message(self, ev: RoomMessageEvent) -> None:
        room = self.ctx.rooms.get(ev.room)
        if room is None:
            log.warning("message for unknown room %s", ev.room)
            return
        win = self._open_room(ev.room)
        if win is None:
            return

        own = ev.nick == room.nick
        mentioned = not own and mentions(room.nick, ev.body)
        if ev.delay is not None:
            win.print(ev.body, who=ev.nick, ts=ev.delay, theme="history")
            return
        theme = "me" if own else ("mention" if mentioned else "incoming")
        win.print(ev.body, who=ev.nick, theme=theme)
        if self.prefs.get_bool(Pref.GRLOG):
            self.ctx.chatlog.log_room(ev.room, ev.nick, ev.body)
        if own:
            return

        current = self.reg.is_current(win)
        if not current:
            win.mark_unread()
            self._console().print(
                f"<- incoming room message from {ev.nick} in {ev.room} ({display_num(win.slot)})"
            )
            if self.prefs.get_bool(Pref.FLASH):
                self.ctx.notifier.flash(win)

        setting = self.prefs.get_string(Pref.NOTIFY_ROOM)
        if setting == "off" or (setting == "mention" and not mentioned):
            return
        if current and not self.prefs.get_bool(Pref.NOTIFY_ROOM_CURRENT):
            return
        if self.prefs.get_bool(Pref.BEEP):
            self.ctx.notifier.beep()
        if self.prefs.get_bool(Pref.NOTIFY_ROOM_TEXT):
            body = f"{ev.room} {ev.nick}: {ev.body}"
        else:
            body = f"Room message from {ev.nick} in {ev.room}"
        self.ctx.notifier.desktop(APP_NAME, body)

    def _on_room_invite(self, ev: RoomInviteEvent) -> None:
        self.ctx.rooms.add_invite(
            Invite(roomjid=ev.room, invitor=ev.invitor, reason=ev.reason, password=ev.password)
        )
        name = self.ctx.roster.display_name(ev.invitor)
        text = f"{name} has invited you to join {ev.room}"
        if ev.reason:
            text += f", reason: {ev.reason}"
        console = self._console()
        console.print(text, ch="!", theme="system")
        console.print(f"Use '/join {ev.room}' to accept the invitation")
        if self.prefs.get_bool(Pref.NOTIFY_INVITE):
            self.ctx.notifier.desktop(APP_NAME, f"Room invite from {name}: {ev.room}")

    # ── Rooms: configuration and administration ───────────────────────────────

    def _on_room_config_form(self, ev: RoomConfigFormEvent) -> None:
        form = DataForm.from_dict(ev.form)
        existing = self.reg.room_config(ev.room)
        if existing is not None:
            self.reg.close(existing.slot)
        try:
            win = self.reg.create(WinKind.ROOM_CONFIG, ev.room, form=form)
        except CapacityExceeded:
            (self.reg.room(ev.room) or self._console()).print_error(WINDOWS_FULL)
            return
        self.reg.focus(win)
        for line in form.render():
            win.print(line)
        for hint in FORM_HINTS:
            win.print(hint, ch="!", theme="system")

    def _on_room_config_result(self, ev: RoomConfigResultEvent) -> None:
        cfg = self.reg.room_config(ev.room)
        room_win = self.reg.room(ev.room)
        if not ev.ok:
            target = cfg or room_win or self._console()
            target.print_error(f"Configuration error: {ev.message}")
            return
        self.ctx.rooms.set_requires_config(ev.room, False)
        if cfg is not None:
            self.reg.close(cfg.slot)
        if room_win is not None:
            self.reg.focus(room_win)
            room_win.print("Room configuration successful", ch="!", theme="system")
        else:
            self._console().print(f"Room configuration successful: {ev.room}", ch="!", theme="system")

    def _on_room_list(self, ev: RoomListEvent) -> None:
        win = self.reg.room(ev.room) or self._console()
        if ev.list_kind == "affiliation":
            if not ev.items:
                win.print(f"No users found with affiliation: {ev.value}", ch="!", theme="system")
                return
            win.print(f"Affiliation: {ev.value}", ch="!", theme="system")
        else:
            if not ev.items:
                win.print(f"No occupants found with role: {ev.value}", ch="!", theme="system")
                return
            win.print(f"Role: {ev.value}", ch="!", theme="system")
        for item in ev.items:
            win.print(f"  {item}", ch="!", theme="system")

    def _on_rooms(self, ev: RoomsEvent) -> None:
        console = self._console()
        if not ev.items:
            console.print_system(f"No chat rooms at {ev.service}")
            return
        console.print_system(f"Chat rooms at {ev.service}:")
        for item in ev.items:
            console.print_system(f"  {item.jid}, ({item.name})" if item.name else f"  {item.jid}")

    def _on_room_error(self, ev: RoomErrorEvent) -> None:
        if ev.action == "join":
            self.ctx.rooms.leave(ev.room)
            self._console().print_error(f"Error joining room {ev.room}, reason: {ev.message}")
            return
        win = self.reg.room(ev.room) or self._console()
        if ev.action == "nick":
            room = self.ctx.rooms.get(ev.room)
            if room is not None:
                room.pending_nick = ""
            text = f"Error changing nickname: {ev.message}"
        elif ev.action == "kick":
            text = f"Error kicking {ev.target}: {ev.message}"
        elif ev.action == "role":
            text = f"Error changing role for {ev.target}: {ev.message}"
        elif ev.action == "affiliation":
            text = f"Error changing affiliation for {ev.target}: {ev.message}"
        elif ev.action == "subject":
            text = f"Error setting room subject: {ev.message}"
        elif ev.action == "config":
            win = self.reg.room_config(ev.room) or win
            text = f"Could not retrieve room configuration: {ev.message}"
        else:
            text = f"Room error: {ev.message}"
        win.print_error(text)

    # ── Queries ───────────────────────────────────────────────────────────────

    def _on_disco_info(self, ev: DiscoInfoEvent) -> None:
        win = resolve_target(self.ctx, ev.jid, focused_only=True)
        win.print(f"Service discovery info for {ev.jid}", ch="!", theme="system")
        if ev.identities:
            win.print("  Identities")
            for ident in ev.identities:
                parts = [ident.get("category", ""), ident.get("type", ""), ident.get("name", "")]
                win.print("    " + " ".join(p for p in parts if p))
        if ev.features:
            win.print("  Features:")
            for feature in ev.features:
                win.print(f"    {feature}")

    def _on_software_version(self, ev: SoftwareVersionEvent) -> None:
        win = resolve_target(self.ctx, ev.jid, focused_only=True)
        lines: List[str] = [f"{ev.jid}:", f"Name    : {ev.name}", f"Version : {ev.version}"]
        if ev.os:
            lines.append(f"OS      : {ev.os}")
        for line in lines:
            win.print(line, ch="!", theme="system")

    def _on_software_version_request(self, ev: SoftwareVersionRequestEvent) -> None:
        self.ctx.protocol.send_software_version(ev.jid, ev.id, APP_NAME, APP_VERSION, platform.system())

    def _on_error(self, ev: ErrorEvent) -> None:
        if not ev.jid:
            self._console().print_error(f"Error: {ev.message}")
            return
        text = f"Error from {ev.jid}: {ev.message}"
        console = self._console()
        console.print_error(text)
        win = resolve_target(self.ctx, ev.jid)
        if win is not console:
            win.print_error(text)

    def _on_trace(self, ev: TraceEvent) -> None:
        win = self.reg.trace()
        if win is not None:
            win.print(f"{ev.direction}: {ev.text}", theme="system")
