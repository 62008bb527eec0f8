"""Outbound command dispatcher.

``CommandDispatcher.handle_input`` takes one line from the input box.  Plain
text is sent to the conversation in the current window; ``/commands`` are
checked against the current window and connection state before anything is
sent.  A refused command prints why and changes nothing, so it can simply be
retried.
"""
from __future__ import annotations

import logging
import shlex
import uuid
from typing import List, Optional

from jabterm.chatlog import loggable_text
from jabterm.config import DEFAULT_GATEWAY
from jabterm.context import AppContext
from jabterm.crypto import EngineError
from jabterm.help import COMMANDS, help_lines
from jabterm.jid import Jid, room_nick, try_parse
from jabterm.models import AFFILIATIONS, ROLES, Contact, Occupant
from jabterm.prefs import Pref
from jabterm.protocol import ConnStatus
from jabterm.registry import CapacityExceeded, NotFound, display_num, parse_num
from jabterm.routing import WINDOWS_FULL, ensure_chat, ensure_private
from jabterm.session import (
    OTR_BLOCKED_BY_PGP,
    PGP_BLOCKED_BY_OTR,
    ChatState,
    EncMode,
    EncryptionConflict,
    end_encryption,
    start_pgp,
)
from jabterm.windows import (
    ChatWindow,
    PrivateWindow,
    RoomConfigWindow,
    RoomWindow,
    WinKind,
    Window,
)

log = logging.getLogger(__name__)

NOT_CONNECTED = "You are not currently connected."
NOT_IN_OTR = "You are not currently in an OTR session."
NO_OTR_KEY = "You have not generated or loaded a private key, use '/otr gen'"

NETWORK_COMMANDS = {
    "/msg", "/software", "/disco", "/sub", "/roster", "/who", "/status", "/info",
    "/online", "/away", "/chat", "/dnd", "/xa", "/priority", "/rooms",
    "/join", "/leave", "/nick", "/invite", "/kick", "/ban", "/subject",
    "/affiliation", "/role", "/room", "/disconnect",
}

PRESENCE_COMMANDS = {"/online": "online", "/away": "away", "/chat": "chat", "/dnd": "dnd", "/xa": "xa"}

TOGGLES = {
    "/beep": (Pref.BEEP, "Sound"),
    "/flash": (Pref.FLASH, "Screen flash"),
    "/chlog": (Pref.CHLOG, "Chat logging"),
    "/grlog": (Pref.GRLOG, "Room logging"),
    "/history": (Pref.HISTORY, "Chat history"),
    "/intype": (Pref.INTYPE, "Show contact typing"),
    "/outtype": (Pref.OUTTYPE, "Sending typing notifications"),
    "/states": (Pref.STATES, "Sending chat states"),
    "/privileges": (Pref.PRIVILEGES, "Room privilege changes"),
    "/carbons": (Pref.CARBONS, "Message carbons"),
}


def _on_off(value: str) -> Optional[bool]:
    if value == "on":
        return True
    if value == "off":
        return False
    return None


WHO_FILTERS = ("any", "online", "offline", "available", "unavailable", "chat", "away", "xa", "dnd")


def show_matches(show: str, flt: str) -> bool:
    """Whether presence *show* passes a ``/who`` filter.  ``offline`` is a
    show value of its own here."""
    if flt in ("", "any"):
        return True
    if flt == "online":
        return show != "offline"
    if flt == "available":
        return show in ("online", "chat")
    if flt == "unavailable":
        return show not in ("online", "chat")
    return show == flt


def _contact_show(contact: Contact) -> str:
    best = contact.best_resource()
    return best.show if best else "offline"


def _with_status(text: str, status: str) -> str:
    return f'{text}, "{status}"' if status else text


def _contact_status(contact: Contact) -> str:
    best = contact.best_resource()
    if best is None:
        return f"{contact.display_name} is offline"
    return _with_status(f"{contact.display_name} is {best.show}", best.status)


def _occupant_status(occ: Occupant) -> str:
    return _with_status(f"{occ.nick} is {occ.show}", occ.status)


def _contact_info(contact: Contact) -> List[str]:
    who = f"{contact.name} ({contact.barejid})" if contact.name else contact.barejid
    lines = [f"{who}:", f"Subscription: {contact.subscription}"]
    if contact.pending_out:
        lines.append("Subscription request pending.")
    resources = sorted(contact.resources.values(), key=lambda r: (-r.priority, r.name))
    if not resources:
        lines.append("No resources online.")
    for res in resources:
        lines.append(_with_status(f"  {res.name} ({res.priority}), {res.show}", res.status))
    return lines


def _occupant_info(occ: Occupant) -> List[str]:
    lines = [f"{occ.nick}:"]
    if occ.jid:
        lines.append(f"Jid: {occ.jid}")
    lines.append(f"Role: {occ.role}")
    lines.append(f"Affiliation: {occ.affiliation}")
    lines.append(_with_status(f"Status: {occ.show}", occ.status))
    return lines


class CommandDispatcher:
    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx

    @property
    def reg(self):
        return self.ctx.registry

    @property
    def prefs(self):
        return self.ctx.prefs

    # ── Output ────────────────────────────────────────────────────────────────

    def _log_system(self, msg: str) -> None:
        self.reg.current().print_system(msg)

    def _log_error(self, msg: str) -> None:
        self.reg.current().print_error(msg)

    def _usage(self, cmd: str) -> None:
        self._log_error(f"Usage: {COMMANDS[cmd][0]}")

    def _save_prefs(self) -> None:
        try:
            self.prefs.save()
        except OSError as e:
            log.error("could not save preferences: %s", e)
            self._log_error(f"Could not save preferences: {e}")

    # ── Entry point ───────────────────────────────────────────────────────────

    def handle_input(self, text: str) -> None:
        text = text.rstrip()
        if not text.strip():
            return
        try:
            if text.startswith("//"):
                self._send_text(text[1:])
            elif text.startswith("/"):
                self._handle_command(text)
            else:
                self._send_text(text)
        except EngineError as e:
            log.error("encryption failure: %s", e)
            self._log_error(str(e))
        except OSError as e:
            log.error("command failed: %s", e)
            self._log_error(f"Could not complete command: {e}")
        finally:
            self.ctx.mark_dirty()

    def _send_text(self, text: str) -> None:
        win = self.reg.current()
        if win.kind not in (WinKind.CHAT, WinKind.PRIVATE, WinKind.ROOM):
            self._log_error(f"Unknown command: {text}")
            return
        if not self.ctx.protocol.connected:
            self._log_error(NOT_CONNECTED)
            return
        if isinstance(win, ChatWindow):
            self.send_chat(win, text)
        elif isinstance(win, PrivateWindow):
            self.ctx.protocol.send_private_message(win.fulljid, text)
            win.print(text, who="me", theme="me")
        elif isinstance(win, RoomWindow):
            if not self.ctx.rooms.joined(win.roomjid):
                self._log_error("You are not currently in the room.")
                return
            self.ctx.protocol.send_room_message(win.roomjid, text)

    def send_chat(self, win: ChatWindow, text: str) -> None:
        ctx = self.ctx
        barejid = win.barejid
        resource = win.resource_override or ctx.sessions.resource_for(barejid)
        to = f"{barejid}/{resource}" if resource else barejid

        encrypted = None
        body = text
        if win.enc_mode is EncMode.OTR:
            body = ctx.otr.encode(barejid, text)
        elif win.enc_mode is EncMode.PGP:
            encrypted = ctx.pgp.encode(barejid, text)
            body = "This message is encrypted (PGP)."
        elif ctx.otr.available and self.prefs.otr_policy(barejid) == "always":
            self._log_error("Failed to send message. Please check OTR policy")
            return

        session = ctx.sessions.get(barejid)
        send_states = self.prefs.get_bool(Pref.STATES) and (session is None or session.send_states)
        win.state.active()
        request_receipt = self.prefs.get_bool(Pref.RECEIPTS_REQUEST)
        msg_id = ctx.protocol.send_message(
            to,
            body,
            encrypted=encrypted,
            request_receipt=request_receipt,
            state=ChatState.ACTIVE.value if send_states else None,
        )
        win.print(text, who="me", theme="me", receipt_id=msg_id if request_receipt else "")

        stored = loggable_text(self.prefs, win.enc_mode, text)
        if stored is not None:
            ctx.chatlog.log_chat(barejid, "me", stored, direction="out")

    # ── Top-level command dispatcher ──────────────────────────────────────────

    def _handle_command(self, text: str) -> None:
        parts = text.split()
        cmd = parts[0].lower()
        ctx = self.ctx

        if cmd in NETWORK_COMMANDS and not ctx.protocol.connected:
            self._log_error(NOT_CONNECTED)
            return

        win = self.reg.current()
        if isinstance(win, RoomConfigWindow) and win.form.tag_exists(cmd[1:]):
            self._cmd_field(win, cmd[1:], parts[1:])

        elif cmd == "/help":
            self._cmd_help(parts)

        elif cmd == "/quit":
            ctx.quit()

        elif cmd == "/connect":
            self._cmd_connect(parts)

        elif cmd == "/disconnect":
            ctx.protocol.disconnect()

        elif cmd == "/win":
            self._cmd_win(parts)

        elif cmd == "/wins":
            self._cmd_wins(parts)

        elif cmd == "/close":
            self._cmd_close(parts)

        elif cmd == "/clear":
            win.clear()

        elif cmd == "/xmlconsole":
            self._cmd_xmlconsole()

        elif cmd == "/msg":
            self._cmd_msg(text, parts)

        elif cmd == "/resource":
            self._cmd_resource(parts)

        elif cmd == "/software":
            self._cmd_software(parts)

        elif cmd == "/disco":
            target = parts[1] if len(parts) > 1 else Jid.parse(ctx.account).domain
            ctx.protocol.request_disco_info(target)

        elif cmd == "/sub":
            self._cmd_sub(parts)

        elif cmd in PRESENCE_COMMANDS:
            self._cmd_presence(PRESENCE_COMMANDS[cmd], text)

        elif cmd == "/priority":
            self._cmd_priority(parts)

        elif cmd == "/roster":
            self._cmd_roster(text, parts)

        elif cmd == "/who":
            self._cmd_who(parts)

        elif cmd in ("/status", "/info"):
            self._cmd_contact_info(cmd, parts)

        elif cmd == "/rooms":
            service = parts[1] if len(parts) > 1 else f"conference.{Jid.parse(ctx.account).domain}"
            ctx.protocol.request_room_list(service)

        elif cmd == "/join":
            self._cmd_join(parts)

        elif cmd == "/leave":
            room = self._require_room(cmd)
            if room:
                self.leave_room(room.roomjid)

        elif cmd == "/nick":
            self._cmd_nick(parts)

        elif cmd == "/invite":
            self._cmd_invite(parts)

        elif cmd == "/invites":
            invites = ctx.rooms.invites()
            if not invites:
                self._log_system("No outstanding chat room invites.")
                return
            self._log_system("Chat room invites:")
            for invite in invites:
                self._log_system(f"  {invite.roomjid}")

        elif cmd == "/decline":
            if len(parts) < 2:
                self._usage(cmd)
                return
            if ctx.rooms.remove_invite(parts[1]) is None:
                self._log_error("No such invite exists.")
                return
            self._log_system(f"Declined invite to {parts[1]}.")

        elif cmd == "/kick":
            self._cmd_kick(parts)

        elif cmd == "/ban":
            self._cmd_ban(parts)

        elif cmd == "/subject":
            self._cmd_subject(text, parts)

        elif cmd == "/affiliation":
            self._cmd_affiliation(parts)

        elif cmd == "/role":
            self._cmd_role(parts)

        elif cmd == "/room":
            self._cmd_room(parts)

        elif cmd == "/occupants":
            self._cmd_occupants(parts)

        elif cmd == "/form":
            self._cmd_form(parts)

        elif cmd == "/otr":
            self._cmd_otr(text, parts)

        elif cmd == "/pgp":
            self._cmd_pgp(parts)

        elif cmd in TOGGLES:
            self._cmd_toggle(cmd, parts)

        elif cmd == "/receipts":
            self._cmd_receipts(parts)

        elif cmd == "/notify":
            self._cmd_notify(parts)

        elif cmd == "/gone":
            self._cmd_gone(parts)

        elif cmd == "/autoaway":
            self._cmd_autoaway(text, parts)

        elif cmd == "/statuses":
            self._cmd_statuses(parts)

        elif cmd == "/time":
            self._cmd_time(text)

        elif cmd == "/debug":
            self._cmd_debug(parts)

        else:
            self._log_error(f"Unknown command: {cmd}")

    # ── General ───────────────────────────────────────────────────────────────

    def _cmd_help(self, parts: list) -> None:
        topic = parts[1] if len(parts) > 1 else ""
        lines = help_lines(topic)
        title = f"jabterm: /help {topic.lstrip('/')}" if topic else "jabterm: commands"
        if self.ctx.show_help is not None:
            self.ctx.show_help(lines, title)
            return
        for line in lines:
            self._log_system(line)

    def _cmd_connect(self, parts: list) -> None:
        ctx = self.ctx
        if ctx.protocol.status is not ConnStatus.DISCONNECTED:
            self._log_error("You are either connected already, or a login is in process.")
            return
        if len(parts) < 2:
            self._usage("/connect")
            return
        jid = try_parse(parts[1])
        if jid is None or not jid.local:
            self._log_error(f"Invalid jid: {parts[1]}")
            return
        url = DEFAULT_GATEWAY
        if len(parts) >= 4 and parts[2] == "server":
            url = parts[3]
        elif len(parts) > 2:
            self._usage("/connect")
            return
        if ctx.connect is None:
            self._log_error("Connecting is not available.")
            return
        self.reg.console().print_system(f"Connecting as {jid.full}")
        ctx.connect(jid.full, url)

    def _cmd_debug(self, parts: list) -> None:
        value = _on_off(parts[1]) if len(parts) > 1 else None
        if value is None:
            self._usage("/debug")
            return
        logging.getLogger().setLevel(logging.DEBUG if value else logging.INFO)
        self._log_system(f"Debug mode {'on' if value else 'off'}.")

    # ── Windows ───────────────────────────────────────────────────────────────

    def _cmd_win(self, parts: list) -> None:
        if len(parts) < 2:
            self._usage("/win")
            return
        slot = parse_num(parts[1])
        if slot is None or self.reg.lookup_by_slot(slot) is None:
            self._log_error(f"Window {parts[1]} does not exist.")
            return
        self.reg.set_current(slot)

    @staticmethod
    def describe(win: Window) -> str:
        if isinstance(win, ChatWindow):
            text = f"Chat {win.barejid}"
            if win.enc_mode is not EncMode.NONE:
                text += f" ({win.enc_mode.value.upper()})"
        elif isinstance(win, PrivateWindow):
            text = f"Private {win.fulljid}"
        elif isinstance(win, RoomWindow):
            text = f"Room {win.roomjid}"
        elif isinstance(win, RoomConfigWindow):
            text = f"Room configuration {win.roomjid}"
            if win.has_unsaved_changes():
                text += " *"
        elif win.kind is WinKind.TRACE:
            text = "XML console"
        else:
            text = "Console"
        if win.unread_count():
            text += f", {win.unread_count()} unread"
        return text

    def _cmd_wins(self, parts: list) -> None:
        reg = self.reg
        sub = parts[1].lower() if len(parts) > 1 else ""
        if not sub:
            self._log_system("Active windows:")
            for w in reg.windows():
                marker = "*" if reg.is_current(w) else " "
                self._log_system(f"{marker}{display_num(w.slot)}: {self.describe(w)}")
        elif sub == "tidy":
            self._log_system("Windows tidied." if reg.tidy() else "No tidy needed.")
        elif sub == "prune":
            closed = self._close_windows(reg.prune())
            if closed:
                self._autotidy()
                self._log_system("Windows pruned.")
            else:
                self._log_system("No prune needed.")
        elif sub == "swap":
            self._cmd_wins_swap(parts[2:])
        elif sub == "autotidy":
            value = _on_off(parts[2]) if len(parts) > 2 else None
            if value is None:
                self._usage("/wins")
                return
            self.prefs.set_bool(Pref.WINS_AUTOTIDY, value)
            self._save_prefs()
            if value:
                reg.tidy()
            self._log_system(f"Window autotidy {'enabled' if value else 'disabled'}.")
        else:
            self._usage("/wins")

    def _cmd_wins_swap(self, args: list) -> None:
        if len(args) != 2:
            self._usage("/wins")
            return
        a, b = parse_num(args[0]), parse_num(args[1])
        if a == 1 or b == 1:
            self._log_error("Cannot move console window.")
            return
        for raw, slot in ((args[0], a), (args[1], b)):
            if slot is None:
                self._log_error(f"Window {raw} does not exist")
                return
        assert a is not None and b is not None
        if a == b:
            self._log_error("Same source and target window supplied.")
            return
        try:
            self.reg.swap(a, b)
        except NotFound:
            missing = a if self.reg.lookup_by_slot(a) is None else b
            self._log_error(f"Window {display_num(missing)} does not exist")
            return
        self._log_system(f"Swapped windows {display_num(a)} <-> {display_num(b)}")

    def _autotidy(self) -> None:
        if self.prefs.get_bool(Pref.WINS_AUTOTIDY):
            self.reg.tidy()

    def close_window(self, win: Window) -> None:
        """Close *win*, telling the other side where that matters."""
        ctx = self.ctx
        if isinstance(win, ChatWindow):
            if win.enc_mode is EncMode.OTR:
                end = ctx.otr.end(win.barejid)
                if end and ctx.protocol.connected:
                    ctx.protocol.send_message(win.barejid, end)
            if (ctx.protocol.connected and self.prefs.get_bool(Pref.STATES)
                    and win.state.gone() is not None and ctx.sessions.get(win.barejid)):
                ctx.protocol.send_chat_state(win.barejid, ChatState.GONE.value)
            ctx.sessions.remove(win.barejid)
        elif isinstance(win, RoomWindow):
            if ctx.rooms.active(win.roomjid) and ctx.protocol.connected:
                ctx.protocol.leave_room(win.roomjid)
            ctx.rooms.leave(win.roomjid)
        elif isinstance(win, RoomConfigWindow) and ctx.protocol.connected:
            ctx.protocol.cancel_room_config(win.roomjid)
        self.reg.close(win.slot)

    def _close_windows(self, wins: List[Window]) -> int:
        count = 0
        for w in wins:
            if w.kind is WinKind.CONSOLE or w.has_unsaved_changes():
                continue
            self.close_window(w)
            count += 1
        return count

    def _cmd_close(self, parts: list) -> None:
        reg = self.reg
        arg = parts[1].lower() if len(parts) > 1 else ""
        if arg in ("all", "read"):
            candidates = [w for w in reg.windows() if w.kind is not WinKind.CONSOLE]
            if arg == "read":
                candidates = [w for w in candidates if w.unread_count() == 0]
            count = self._close_windows(candidates)
            self._autotidy()
            if count == 0:
                self._log_system("No windows to close.")
            elif count == 1:
                self._log_system("Closed 1 window.")
            else:
                self._log_system(f"Closed {count} windows.")
            return

        if arg:
            slot = parse_num(arg)
            if slot is None:
                self._log_error("No such window exists.")
                return
        else:
            slot = reg.current_slot
        if slot == 1:
            self._log_error("Cannot close console window.")
            return
        win = reg.lookup_by_slot(slot)
        if win is None:
            self._log_error("Window is not open.")
            return
        if win.has_unsaved_changes():
            self._log_error("You have unsaved changes, use /form submit or /form cancel")
            return
        self.close_window(win)
        self._autotidy()
        self._log_system(f"Closed window {display_num(slot)}")

    def _cmd_xmlconsole(self) -> None:
        try:
            win = self.reg.create(WinKind.TRACE)
        except CapacityExceeded:
            self._log_error(WINDOWS_FULL)
            return
        if hasattr(self.ctx.protocol, "trace"):
            self.ctx.protocol.trace = True  # type: ignore[attr-defined]
        self.reg.focus(win)

    # ── Messaging ─────────────────────────────────────────────────────────────

    def _resolve_contact(self, name: str) -> Optional[str]:
        for contact in self.ctx.roster.contacts():
            if contact.name and contact.name == name:
                return contact.barejid
        jid = try_parse(name)
        return jid.bare if jid else None

    def open_chat(self, barejid: str) -> Optional[ChatWindow]:
        try:
            win = ensure_chat(self.ctx, barejid)
        except CapacityExceeded:
            self._log_error(WINDOWS_FULL)
            return None
        self.reg.focus(win)
        self._maybe_start_otr(win)
        return win

    def _maybe_start_otr(self, win: ChatWindow) -> None:
        otr = self.ctx.otr
        if not otr.available or win.enc_mode is not EncMode.NONE:
            return
        if self.prefs.otr_policy(win.barejid) not in ("opportunistic", "always"):
            return
        if not otr.has_key() or otr.is_secure(win.barejid):  # type: ignore[attr-defined]
            return
        self.ctx.protocol.send_message(win.barejid, otr.start(win.barejid))
        win.print("Attempting to start OTR session...", ch="!", theme="otr")

    def _cmd_msg(self, text: str, parts: list) -> None:
        if len(parts) < 2:
            self._usage("/msg")
            return
        target = parts[1]
        message = text.split(None, 2)[2] if len(parts) > 2 else ""
        current = self.reg.current()

        if isinstance(current, RoomWindow):
            if self.ctx.rooms.occupant(current.roomjid, target) is None:
                self._log_error(f'No such participant "{target}" in room.')
                return
            try:
                pw = ensure_private(self.ctx, room_nick(current.roomjid, target))
            except CapacityExceeded:
                self._log_error(WINDOWS_FULL)
                return
            self.reg.focus(pw)
            if message:
                self.ctx.protocol.send_private_message(pw.fulljid, message)
                pw.print(message, who="me", theme="me")
            return

        barejid = self._resolve_contact(target)
        if barejid is None:
            self._log_error(f"Invalid jid: {target}")
            return
        win = self.open_chat(barejid)
        if win is not None and message:
            self.send_chat(win, message)

    def _cmd_resource(self, parts: list) -> None:
        win = self.reg.current()
        if not isinstance(win, ChatWindow):
            self._log_error("Resource can only be changed in chat windows.")
            return
        if win.enc_mode is EncMode.OTR:
            self._log_error("Cannot choose resource during an OTR session.")
            return
        if len(parts) == 2 and parts[1] == "off":
            win.resource_override = ""
            win.state.reset()
            self._log_system("Resource selection removed.")
            return
        if len(parts) < 3 or parts[1] != "set":
            self._usage("/resource")
            return
        resource = parts[2]
        if win.barejid not in self.ctx.roster:
            self._log_error("Cannot choose resource for contact not in roster.")
            return
        if not self.ctx.roster.has_resource(win.barejid, resource):
            self._log_error(f"No such resource {resource}.")
            return
        win.resource_override = resource
        win.state.reset()
        self._log_system(f"Now sending messages to {win.barejid}/{resource}")

    def _cmd_software(self, parts: list) -> None:
        win = self.reg.current()
        target = ""
        if len(parts) > 1:
            arg = parts[1]
            if isinstance(win, RoomWindow) and self.ctx.rooms.occupant(win.roomjid, arg):
                target = room_nick(win.roomjid, arg)
            else:
                jid = try_parse(arg)
                if jid is not None and jid.resource:
                    target = jid.full
                elif jid is not None:
                    contact = self.ctx.roster.get(jid.bare)
                    best = contact.best_resource() if contact else None
                    target = f"{jid.bare}/{best.name}" if best else ""
        elif isinstance(win, ChatWindow):
            resource = win.resource_override or self.ctx.sessions.resource_for(win.barejid)
            target = f"{win.barejid}/{resource}" if resource else ""
        elif isinstance(win, PrivateWindow):
            target = win.fulljid
        else:
            self._usage("/software")
            return
        if not target:
            self._log_error("Unknown resource for /software command.")
            return
        self.ctx.protocol.request_software_version(target)

    def _cmd_sub(self, parts: list) -> None:
        if len(parts) < 2 or parts[1] not in ("allow", "deny", "request"):
            self._usage("/sub")
            return
        if len(parts) > 2:
            jid = try_parse(parts[2])
            barejid = jid.bare if jid else ""
        else:
            win = self.reg.current()
            barejid = win.barejid if isinstance(win, ChatWindow) else ""
        if not barejid:
            self._log_error("You must specify a contact.")
            return
        action = parts[1]
        proto = self.ctx.protocol
        if action == "allow":
            proto.subscription(barejid, "subscribed")
            self._log_system(f"Accepted subscription for {barejid}")
        elif action == "deny":
            proto.subscription(barejid, "unsubscribed")
            self._log_system(f"Deleted/denied subscription for {barejid}")
        else:
            proto.subscription(barejid, "subscribe")
            self._log_system(f"Sent subscription request to {barejid}.")

    def _cmd_presence(self, show: str, text: str) -> None:
        pieces = text.split(None, 1)
        status = pieces[1] if len(pieces) > 1 else ""
        self.ctx.show, self.ctx.status = show, status
        self.ctx.autoaway_active = False
        self.ctx.protocol.send_presence(show, status, self.ctx.priority)
        msg = f"Status set to {show}"
        if status:
            msg += f', "{status}"'
        self._log_system(msg)

    def _cmd_priority(self, parts: list) -> None:
        if len(parts) != 2:
            self._usage("/priority")
            return
        try:
            value = int(parts[1])
        except ValueError:
            self._log_error(f"Invalid value: {parts[1]}")
            return
        if not -128 <= value <= 127:
            self._log_error(f"Value {value} out of range. Must be in -128..127.")
            return
        self.ctx.priority = value
        self.ctx.protocol.send_presence(self.ctx.show, self.ctx.status, value)
        self._log_system(f"Priority set to {value}.")

    # ── Roster ────────────────────────────────────────────────────────────────

    def _cmd_roster(self, text: str, parts: list) -> None:
        sub = parts[1] if len(parts) > 1 else "show"
        roster = self.ctx.roster
        proto = self.ctx.protocol

        if sub in ("show", "online"):
            contacts = roster.contacts()
            if sub == "online":
                contacts = [c for c in contacts if c.online]
            if not contacts:
                self._log_system("No contacts in roster." if sub == "show" else "No contacts are online.")
                return
            self._log_system("Roster:")
            for contact in contacts:
                who = f"{contact.name} ({contact.barejid})" if contact.name else contact.barejid
                line = f"  {who} - {contact.subscription}"
                if contact.pending_out:
                    line += ", request sent"
                self._log_system(line)
            return

        if sub not in ("add", "remove", "nick", "clearnick") or len(parts) < 3:
            self._usage("/roster")
            return
        jid = try_parse(parts[2])
        if jid is None:
            self._log_error(f"Invalid jid: {parts[2]}")
            return
        barejid = jid.bare

        if sub == "add":
            name = text.split(None, 3)[3] if len(parts) > 3 else ""
            proto.roster_set(barejid, name)
            return

        contact = roster.get(barejid)
        if contact is None:
            self._log_error(f"Contact not found in roster: {barejid}")
            return
        if sub == "remove":
            proto.roster_remove(barejid)
        elif sub == "nick":
            if len(parts) < 4:
                self._usage("/roster")
                return
            contact.name = text.split(None, 3)[3]
            proto.roster_set(barejid, contact.name)
            self._log_system(f"Nickname for {barejid} set to: {contact.name}.")
        else:
            contact.name = ""
            proto.roster_set(barejid, "")
            self._log_system(f"Nickname for {barejid} removed.")

    def _cmd_who(self, parts: list) -> None:
        flt = parts[1] if len(parts) > 1 else ""
        win = self.reg.current()

        if isinstance(win, RoomWindow):
            if flt and flt not in WHO_FILTERS and flt not in ROLES and flt not in AFFILIATIONS:
                self._usage("/who")
                return
            occupants = [
                o for o in self.ctx.rooms.occupants(win.roomjid)
                if not flt or o.role == flt or o.affiliation == flt or show_matches(o.show, flt)
            ]
            if not occupants:
                win.print("Room is empty." if not flt else f"No occupants {flt}.", ch="!", theme="system")
                return
            label = flt or "occupants"
            win.print(f"{len(occupants)} {label}: " + ", ".join(o.nick for o in occupants),
                      ch="!", theme="system")
            return

        if flt and flt not in WHO_FILTERS:
            self._usage("/who")
            return
        contacts = self.ctx.roster.contacts()
        if not contacts:
            self._log_system("No contacts in roster.")
            return
        if flt and flt != "any":
            contacts = [c for c in contacts if show_matches(_contact_show(c), flt)]
            if not contacts:
                self._log_system(f"No contacts are {flt}.")
                return
            self._log_system(f"Contacts ({flt}):")
        else:
            self._log_system("All contacts:")
        for contact in contacts:
            self._log_system(f"  {_contact_status(contact)}")

    def _cmd_contact_info(self, cmd: str, parts: list) -> None:
        """``/status`` and ``/info``: the target depends on the current window."""
        arg = parts[1] if len(parts) > 1 else ""
        win = self.reg.current()
        rooms = self.ctx.rooms

        if isinstance(win, RoomWindow):
            if not arg:
                self._log_error("You must specify a nickname.")
                return
            occ = rooms.occupant(win.roomjid, arg)
            if occ is None:
                self._log_error(f'No such participant "{arg}" in room.')
                return
            lines = _occupant_info(occ) if cmd == "/info" else [_occupant_status(occ)]

        elif isinstance(win, (ChatWindow, PrivateWindow)):
            if arg:
                self._log_error("No parameter required when in chat.")
                return
            if isinstance(win, PrivateWindow):
                occ = rooms.occupant(win.roomjid, win.nick)
                if occ is None:
                    self._log_system(f"{win.nick} is offline")
                    return
                lines = _occupant_info(occ) if cmd == "/info" else [_occupant_status(occ)]
            else:
                contact = self.ctx.roster.get(win.barejid)
                if contact is None:
                    self._log_error("Error getting contact info.")
                    return
                lines = _contact_info(contact) if cmd == "/info" else [_contact_status(contact)]

        else:
            if not arg:
                self._usage(cmd)
                return
            barejid = self._resolve_contact(arg)
            contact = self.ctx.roster.get(barejid) if barejid else None
            if contact is None:
                self._log_error(f'No such contact "{arg}" in roster.')
                return
            lines = _contact_info(contact) if cmd == "/info" else [_contact_status(contact)]

        for line in lines:
            self._log_system(line)

    # ── Rooms ─────────────────────────────────────────────────────────────────

    def _require_room(self, cmd: str) -> Optional[RoomWindow]:
        win = self.reg.current()
        if not isinstance(win, RoomWindow):
            self._log_error(f"Command '{cmd}' only applies in chat rooms.")
            return None
        return win

    def _cmd_join(self, parts: list) -> None:
        ctx = self.ctx
        account = Jid.parse(ctx.account)
        args = parts[1:]
        if args and args[0] not in ("nick", "password"):
            roomjid = args.pop(0)
            if "@" not in roomjid:
                roomjid = f"{roomjid}@conference.{account.domain}"
        else:
            roomjid = f"private-chat-{uuid.uuid4()}@conference.{account.domain}"
        room = try_parse(roomjid)
        if room is None or not room.local:
            self._log_error("Invalid room, must be of the form room@domain.tld")
            return
        roomjid = room.bare

        options = {}
        while args:
            if len(args) < 2 or args[0] not in ("nick", "password"):
                self._usage("/join")
                return
            options[args[0]] = args[1]
            args = args[2:]

        if ctx.rooms.joined(roomjid):
            win = self.reg.room(roomjid)
            if win is not None:
                self.reg.focus(win)
            return
        if ctx.rooms.active(roomjid):
            return

        nick = options.get("nick") or account.local
        password = options.get("password", "")
        invite = ctx.rooms.invite(roomjid)
        if not password and invite is not None:
            password = invite.password
        ctx.rooms.join(roomjid, nick, password)
        ctx.protocol.join_room(roomjid, nick, password)

    def leave_room(self, roomjid: str) -> None:
        ctx = self.ctx
        ctx.protocol.leave_room(roomjid)
        ctx.rooms.leave(roomjid)
        for pw in self.reg.privates_for_room(roomjid):
            self.reg.close(pw.slot)
        for win in (self.reg.room_config(roomjid), self.reg.room(roomjid)):
            if win is not None:
                self.reg.close(win.slot)
        self._autotidy()

    def _cmd_nick(self, parts: list) -> None:
        room = self._require_room("/nick")
        if room is None:
            return
        if len(parts) < 2:
            self._usage("/nick")
            return
        nick = " ".join(parts[1:])
        self.ctx.rooms.begin_nick_change(room.roomjid, nick)
        self.ctx.protocol.change_nick(room.roomjid, nick)

    def _cmd_invite(self, parts: list) -> None:
        win = self.reg.current()
        if not isinstance(win, RoomWindow):
            self._log_error("You must be in a chat room to send an invite.")
            return
        if len(parts) < 2:
            self._usage("/invite")
            return
        jid = try_parse(parts[1])
        if jid is None:
            self._log_error(f"Invalid jid: {parts[1]}")
            return
        reason = " ".join(parts[2:])
        self.ctx.protocol.send_invite(win.roomjid, jid.bare, reason)
        msg = f"Room invite sent, contact: {jid.bare}, room: {win.roomjid}"
        if reason:
            msg += f', reason: "{reason}"'
        self._log_system(msg)

    def _cmd_kick(self, parts: list) -> None:
        room = self._require_room("/kick")
        if room is None:
            return
        if len(parts) < 2:
            self._usage("/kick")
            return
        nick = parts[1]
        if self.ctx.rooms.occupant(room.roomjid, nick) is None:
            self._log_error(f"Occupant does not exist: {nick}")
            return
        self.ctx.protocol.kick(room.roomjid, nick, " ".join(parts[2:]))

    def _cmd_ban(self, parts: list) -> None:
        room = self._require_room("/ban")
        if room is None:
            return
        if len(parts) < 2:
            self._usage("/ban")
            return
        self.ctx.protocol.set_affiliation(room.roomjid, parts[1], "outcast", " ".join(parts[2:]))

    def _cmd_subject(self, text: str, parts: list) -> None:
        room = self._require_room("/subject")
        if room is None:
            return
        if len(parts) == 1:
            state = self.ctx.rooms.get(room.roomjid)
            if state is None or not state.subject:
                self._log_system("Room has no subject")
            else:
                self._log_system(f"Room subject: {state.subject}")
        elif parts[1] == "set" and len(parts) > 2:
            self.ctx.protocol.set_subject(room.roomjid, text.split(None, 2)[2])
        elif parts[1] == "clear":
            self.ctx.protocol.set_subject(room.roomjid, None)
        else:
            self._usage("/subject")

    def _cmd_affiliation(self, parts: list) -> None:
        room = self._require_room("/affiliation")
        if room is None:
            return
        sub = parts[1] if len(parts) > 1 else ""
        if sub == "list":
            wanted = parts[2] if len(parts) > 2 else ""
            if wanted == "none":
                self._log_error("Cannot list users with no affiliation.")
                return
            if wanted and wanted not in AFFILIATIONS:
                self._usage("/affiliation")
                return
            for aff in [wanted] if wanted else ["owner", "admin", "member", "outcast"]:
                self.ctx.protocol.request_affiliation_list(room.roomjid, aff)
        elif sub == "set" and len(parts) >= 4:
            aff, jid = parts[2], parts[3]
            if aff not in AFFILIATIONS:
                self._usage("/affiliation")
                return
            self.ctx.protocol.set_affiliation(room.roomjid, jid, aff, " ".join(parts[4:]))
        else:
            self._usage("/affiliation")

    def _cmd_role(self, parts: list) -> None:
        room = self._require_room("/role")
        if room is None:
            return
        sub = parts[1] if len(parts) > 1 else ""
        if sub == "list":
            wanted = parts[2] if len(parts) > 2 else ""
            if wanted == "none":
                self._log_error("Cannot list users with no role.")
                return
            if wanted and wanted not in ROLES:
                self._usage("/role")
                return
            for role in [wanted] if wanted else ["moderator", "participant", "visitor"]:
                self.ctx.protocol.request_role_list(room.roomjid, role)
        elif sub == "set" and len(parts) >= 4:
            role, nick = parts[2], parts[3]
            if role not in ROLES:
                self._usage("/role")
                return
            if self.ctx.rooms.occupant(room.roomjid, nick) is None:
                self._log_error(f"Occupant does not exist: {nick}")
                return
            self.ctx.protocol.set_role(room.roomjid, nick, role, " ".join(parts[4:]))
        else:
            self._usage("/role")

    def _cmd_room(self, parts: list) -> None:
        room = self._require_room("/room")
        if room is None:
            return
        sub = parts[1] if len(parts) > 1 else ""
        rooms = self.ctx.rooms
        if sub == "accept":
            if not rooms.requires_config(room.roomjid):
                self._log_error("Current room does not require configuration.")
                return
            self.ctx.protocol.accept_room_defaults(room.roomjid)
            rooms.set_requires_config(room.roomjid, False)
            room.print("Room unlocked.", ch="!", theme="system")
        elif sub == "destroy":
            self.ctx.protocol.destroy_room(room.roomjid)
        elif sub == "config":
            existing = self.reg.room_config(room.roomjid)
            if existing is not None:
                self.reg.focus(existing)
                return
            self.ctx.protocol.request_room_config(room.roomjid)
        else:
            self._usage("/room")

    def _cmd_occupants(self, parts: list) -> None:
        if len(parts) < 2 or parts[1] not in ("show", "hide"):
            self._usage("/occupants")
            return
        show = parts[1] == "show"
        jid = len(parts) > 2 and parts[2] == "jid"
        win = self.reg.current()
        if isinstance(win, RoomWindow):
            if jid:
                win.show_jid = show
                self._log_system(f"Occupant addresses {'shown' if show else 'hidden'}.")
            else:
                win.occupants_visible = show
                self._log_system(f"Occupant list {'shown' if show else 'hidden'}.")
            return
        pref = Pref.OCCUPANTS_JID if jid else Pref.OCCUPANTS
        self.prefs.set_bool(pref, show)
        self._save_prefs()
        what = "Occupant addresses" if jid else "Occupant list"
        self._log_system(f"{what} {'enabled' if show else 'disabled'}.")

    # ── Room configuration forms ──────────────────────────────────────────────

    def _finish_form(self, win: RoomConfigWindow) -> None:
        roomjid = win.roomjid
        self.reg.close(win.slot)
        room_win = self.reg.room(roomjid)
        if room_win is None:
            log.error("room window for %s missing after closing its form", roomjid)
            self.reg.set_current(1)
            return
        self.reg.focus(room_win)

    def _cmd_form(self, parts: list) -> None:
        win = self.reg.current()
        if not isinstance(win, RoomConfigWindow):
            self._log_error("Command '/form' does not apply to this window.")
            return
        sub = parts[1] if len(parts) > 1 else ""
        proto = self.ctx.protocol
        if sub in ("submit", "cancel") and not proto.connected:
            self._log_error(NOT_CONNECTED)
            return
        if sub == "submit":
            proto.submit_room_config(win.roomjid, win.form.to_dict())
            self._finish_form(win)
        elif sub == "cancel":
            proto.cancel_room_config(win.roomjid)
            self._finish_form(win)
        elif sub == "show":
            for line in win.form.render():
                win.print(line)
        elif sub == "help":
            if len(parts) > 2:
                tag = parts[2]
                if not win.form.tag_exists(tag):
                    self._log_error(f"No such field {tag}")
                    return
                for line in win.form.field_help(tag):
                    win.print(line)
                return
            for line in (
                "Form handling:",
                "  /form show          Show the form.",
                "  /form submit        Submit the form and close the window.",
                "  /form cancel        Discard changes and close the window.",
                "  /form help <tag>    Help for one field.",
                "  /<tag> ...          Change a field, e.g. /field1 on",
            ):
                win.print(line)
        else:
            self._usage("/form")

    def _cmd_field(self, win: RoomConfigWindow, tag: str, args: list) -> None:
        form = win.form
        ftype = form.field_type(tag)
        ok = False
        if ftype in ("text-single", "text-private", "jid-single"):
            if args:
                form.set_value(tag, " ".join(args))
                ok = True
        elif ftype == "boolean":
            value = _on_off(args[0]) if len(args) == 1 else None
            if value is not None:
                form.set_value(tag, "1" if value else "0")
                ok = True
        elif ftype == "list-single":
            if len(args) == 1 and form.has_option(tag, args[0]):
                form.set_value(tag, args[0])
                ok = True
        elif len(args) >= 2 and args[0] in ("add", "remove"):
            op, value = args[0], " ".join(args[1:])
            if ftype == "list-multi" and not form.has_option(tag, value):
                ok = False
            elif ftype == "text-multi" and op == "remove":
                index = int(value[3:]) if value.startswith("val") and value[3:].isdigit() else 0
                if not form.remove_text_multi_value(tag, index):
                    self._log_error(f"Value {value} does not exist for {tag}")
                    return
                ok = True
            elif op == "add":
                if not form.add_unique_value(tag, value):
                    self._log_error(f"Value {value} already present in {tag}")
                    return
                ok = True
            else:
                if not form.remove_value(tag, value):
                    self._log_error(f"Value {value} is not present in {tag}")
                    return
                ok = True

        if not ok:
            win.print_error("Invalid command, usage:")
            for line in form.field_help(tag):
                win.print(line)
            return
        win.print("Field updated...", ch="!", theme="system")
        for line in form.render_field(form.field(tag)):
            win.print(line)

    # ── Encryption ────────────────────────────────────────────────────────────

    def _chat_in_otr(self) -> Optional[ChatWindow]:
        win = self.reg.current()
        if not isinstance(win, ChatWindow) or win.enc_mode is not EncMode.OTR:
            self._log_error(NOT_IN_OTR)
            return None
        return win

    def _cmd_otr(self, text: str, parts: list) -> None:
        ctx = self.ctx
        otr = ctx.otr
        if not otr.available:
            self._log_error("OTR support is not available in this build.")
            return
        sub = parts[1] if len(parts) > 1 else ""
        proto = ctx.protocol

        if sub == "gen":
            self._log_system("Generating private key, this may take some time.")
            fp = otr.generate_key()  # type: ignore[attr-defined]
            self._log_system("Private key generation complete.")
            self._log_system(f"Your OTR fingerprint: {fp}")

        elif sub == "myfp":
            if not otr.has_key():  # type: ignore[attr-defined]
                self._log_error(NO_OTR_KEY)
                return
            self._log_system(f"Your OTR fingerprint: {otr.fingerprint()}")

        elif sub == "theirfp":
            win = self._chat_in_otr()
            if win:
                name = ctx.roster.display_name(win.barejid)
                self._log_system(f"{name}'s OTR fingerprint: {otr.peer_fingerprint(win.barejid)}")

        elif sub == "start":
            if not proto.connected:
                self._log_error(NOT_CONNECTED)
                return
            win = self.reg.current()
            if len(parts) > 2:
                barejid = self._resolve_contact(parts[2])
                if barejid is None:
                    self._log_error(f"Invalid jid: {parts[2]}")
                    return
                win = self.open_chat(barejid)
                if win is None:
                    return
            if not isinstance(win, ChatWindow):
                self._log_error("You must be in a regular chat window to start an OTR session.")
                return
            if win.enc_mode is EncMode.PGP:
                self._log_error(OTR_BLOCKED_BY_PGP)
                return
            if win.enc_mode is EncMode.OTR:
                self._log_error("You are already in an OTR session.")
                return
            if not otr.has_key():  # type: ignore[attr-defined]
                self._log_error(NO_OTR_KEY)
                return
            proto.send_message(win.barejid, otr.start(win.barejid))
            win.print("Attempting to start OTR session...", ch="!", theme="otr")

        elif sub == "end":
            win = self._chat_in_otr()
            if win:
                end = otr.end(win.barejid)
                if end and proto.connected:
                    proto.send_message(win.barejid, end)
                end_encryption(win)
                win.print("OTR session ended.", ch="!", theme="otr")

        elif sub in ("trust", "untrust"):
            win = self._chat_in_otr()
            if win:
                if sub == "trust":
                    otr.trust(win.barejid)  # type: ignore[attr-defined]
                    win.otr_trusted = True
                    win.print("OTR session trusted.", ch="!", theme="otr")
                else:
                    otr.untrust(win.barejid)  # type: ignore[attr-defined]
                    win.otr_trusted = False
                    win.print("OTR session untrusted.", ch="!", theme="otr")

        elif sub in ("secret", "question", "answer"):
            win = self._chat_in_otr()
            if win is None:
                return
            try:
                args = shlex.split(text)[2:]
            except ValueError:
                args = parts[2:]
            if sub == "secret" and args:
                body = otr.smp_secret(win.barejid, " ".join(args))  # type: ignore[attr-defined]
                notice = f"Awaiting authentication from {win.barejid}..."
            elif sub == "question" and len(args) >= 2:
                body = otr.smp_question(win.barejid, args[0], " ".join(args[1:]))  # type: ignore[attr-defined]
                notice = f"Awaiting authentication from {win.barejid}..."
            elif sub == "answer" and args:
                body = otr.smp_answer(win.barejid, " ".join(args))  # type: ignore[attr-defined]
                notice = "Authenticating..."
            else:
                self._usage("/otr")
                return
            proto.send_message(win.barejid, body)
            win.print(notice, ch="!", theme="otr")

        elif sub == "policy":
            self._cmd_otr_policy(parts[2:])

        elif sub == "log":
            self._cmd_enc_log(Pref.OTR_LOG, "OTR", parts[2:])

        else:
            self._usage("/otr")

    def _cmd_otr_policy(self, args: list) -> None:
        if not args:
            self._log_system(f"OTR policy is now set to: {self.prefs.get_string(Pref.OTR_POLICY)}")
            return
        policy = args[0]
        if policy not in ("manual", "opportunistic", "always"):
            self._log_error("OTR policy must be one of: manual, opportunistic or always.")
            return
        if len(args) > 1:
            jid = try_parse(args[1])
            if jid is None:
                self._log_error(f"Invalid jid: {args[1]}")
                return
            self.prefs.otr_policies[jid.bare] = policy
            self._save_prefs()
            self._log_system(f"OTR policy for {jid.bare} set to: {policy}")
            return
        self.prefs.set_string(Pref.OTR_POLICY, policy)
        self._save_prefs()
        self._log_system(f"OTR policy is now set to: {policy}")

    def _cmd_enc_log(self, pref: Pref, name: str, args: list) -> None:
        value = args[0] if args else ""
        if value not in ("on", "off", "redact"):
            self._usage(f"/{name.lower()}")
            return
        self.prefs.set_string(pref, value)
        self._save_prefs()
        if value == "on":
            self._log_system(f"{name} messages will be logged as plaintext.")
            if not self.prefs.get_bool(Pref.CHLOG):
                self._log_system("Chat logging is currently disabled, use '/chlog on' to enable.")
        elif value == "off":
            self._log_system(f"{name} message logging disabled.")
        else:
            self._log_system(f"{name} messages will be logged as '[redacted]'.")

    def _cmd_pgp(self, parts: list) -> None:
        ctx = self.ctx
        pgp = ctx.pgp
        if not pgp.available:
            self._log_error("PGP support is not available in this build.")
            return
        sub = parts[1] if len(parts) > 1 else ""

        if sub == "keys":
            self._log_system(f"Your PGP key ID: {pgp.fingerprint()}")
            self._log_system(f"Public key: {pgp.public_key()}")  # type: ignore[attr-defined]

        elif sub == "setkey":
            if len(parts) != 4:
                self._usage("/pgp")
                return
            jid = try_parse(parts[2])
            if jid is None:
                self._log_error(f"Invalid jid: {parts[2]}")
                return
            try:
                key_id = pgp.set_key(jid.bare, parts[3])  # type: ignore[attr-defined]
            except EngineError as e:
                self._log_error(f"Invalid key: {e}")
                return
            self._log_system(f"Key {key_id} set for {jid.bare}.")

        elif sub == "fps":
            assigned = pgp.contacts()  # type: ignore[attr-defined]
            if not assigned:
                self._log_system("No PGP keys assigned.")
                return
            self._log_system("Assigned PGP keys:")
            for jid, key_id in assigned.items():
                self._log_system(f"  {jid}: {key_id}")

        elif sub == "start":
            if not ctx.protocol.connected:
                self._log_error(NOT_CONNECTED)
                return
            win = self.reg.current()
            if len(parts) > 2:
                barejid = self._resolve_contact(parts[2])
                if barejid is None:
                    self._log_error(f"Invalid jid: {parts[2]}")
                    return
                win = self.open_chat(barejid)
                if win is None:
                    return
            if not isinstance(win, ChatWindow):
                self._log_error("You must be in a regular chat window to start PGP encryption.")
                return
            if win.enc_mode is EncMode.OTR:
                self._log_error(PGP_BLOCKED_BY_OTR)
                return
            if win.enc_mode is EncMode.PGP:
                self._log_error("You have already started PGP encryption.")
                return
            try:
                pgp.start(win.barejid)
                start_pgp(win)
            except EngineError:
                self._log_error(f"No PGP key found for {win.barejid}.")
                return
            except EncryptionConflict as e:
                self._log_error(str(e))
                return
            win.print("PGP encryption enabled.", ch="!", theme="otr")

        elif sub == "end":
            win = self.reg.current()
            if not isinstance(win, ChatWindow) or win.enc_mode is not EncMode.PGP:
                self._log_error("PGP encryption is not currently enabled.")
                return
            end_encryption(win)
            win.print("PGP encryption disabled.", ch="!", theme="otr")

        elif sub == "log":
            self._cmd_enc_log(Pref.PGP_LOG, "PGP", parts[2:])

        else:
            self._usage("/pgp")

    # ── Preferences ───────────────────────────────────────────────────────────

    def _cmd_toggle(self, cmd: str, parts: list) -> None:
        pref, label = TOGGLES[cmd]
        value = _on_off(parts[1]) if len(parts) == 2 else None
        if value is None:
            self._usage(cmd)
            return
        self.prefs.set_bool(pref, value)
        self._save_prefs()
        self._log_system(f"{label} {'enabled' if value else 'disabled'}.")

    def _cmd_receipts(self, parts: list) -> None:
        value = _on_off(parts[2]) if len(parts) == 3 else None
        if value is None or parts[1] not in ("send", "request"):
            self._usage("/receipts")
            return
        if parts[1] == "send":
            self.prefs.set_bool(Pref.RECEIPTS_SEND, value)
            label = "Sending delivery receipts"
        else:
            self.prefs.set_bool(Pref.RECEIPTS_REQUEST, value)
            label = "Requesting delivery receipts"
        self._save_prefs()
        self._log_system(f"{label} {'enabled' if value else 'disabled'}.")

    def _cmd_notify(self, parts: list) -> None:
        kind = parts[1] if len(parts) > 1 else ""
        args = parts[2:]
        p = self.prefs
        simple = {
            "message": Pref.NOTIFY_MESSAGE,
            "typing": Pref.NOTIFY_TYPING,
            "sub": Pref.NOTIFY_SUB,
            "invite": Pref.NOTIFY_INVITE,
        }
        current = {
            "message": Pref.NOTIFY_MESSAGE_CURRENT,
            "room": Pref.NOTIFY_ROOM_CURRENT,
            "typing": Pref.NOTIFY_TYPING_CURRENT,
        }
        with_text = {"message": Pref.NOTIFY_MESSAGE_TEXT, "room": Pref.NOTIFY_ROOM_TEXT}

        if kind == "room" and len(args) == 1 and args[0] in ("on", "off", "mention"):
            p.set_string(Pref.NOTIFY_ROOM, args[0])
            msg = {
                "on": "Room notifications enabled.",
                "off": "Room notifications disabled.",
                "mention": "Room notifications enabled on mention.",
            }[args[0]]
        elif kind in simple and len(args) == 1 and _on_off(args[0]) is not None:
            value = bool(_on_off(args[0]))
            p.set_bool(simple[kind], value)
            msg = f"{kind.capitalize()} notifications {'enabled' if value else 'disabled'}."
        elif len(args) == 2 and args[0] == "current" and kind in current and _on_off(args[1]) is not None:
            value = bool(_on_off(args[1]))
            p.set_bool(current[kind], value)
            msg = f"Current window {kind} notifications {'enabled' if value else 'disabled'}."
        elif len(args) == 2 and args[0] == "text" and kind in with_text and _on_off(args[1]) is not None:
            value = bool(_on_off(args[1]))
            p.set_bool(with_text[kind], value)
            msg = f"Showing text in {kind} notifications {'enabled' if value else 'disabled'}."
        else:
            self._usage("/notify")
            return
        self._save_prefs()
        self._log_system(msg)

    def _cmd_gone(self, parts: list) -> None:
        if len(parts) != 2 or not parts[1].isdigit():
            self._usage("/gone")
            return
        minutes = int(parts[1])
        self.prefs.set_int(Pref.GONE, minutes)
        self._save_prefs()
        if minutes == 0:
            self._log_system("Automatic leaving conversations after period disabled.")
        elif minutes == 1:
            self._log_system("Leaving conversations after 1 minute of inactivity.")
        else:
            self._log_system(f"Leaving conversations after {minutes} minutes of inactivity.")

    def _cmd_autoaway(self, text: str, parts: list) -> None:
        sub = parts[1] if len(parts) > 1 else ""
        p = self.prefs
        if sub == "mode" and len(parts) == 3 and parts[2] in ("off", "away", "idle"):
            p.set_string(Pref.AUTOAWAY_MODE, parts[2])
            msg = f"Auto away mode set to: {parts[2]}."
        elif sub == "time" and len(parts) == 3 and parts[2].isdigit() and int(parts[2]) > 0:
            p.set_int(Pref.AUTOAWAY_TIME, int(parts[2]))
            unit = "minute" if parts[2] == "1" else "minutes"
            msg = f"Auto away time set to: {parts[2]} {unit}."
        elif sub == "message" and len(parts) >= 3:
            message = text.split(None, 2)[2]
            if message == "off":
                p.reset(Pref.AUTOAWAY_MESSAGE)
                msg = "Auto away message cleared."
            else:
                p.set_string(Pref.AUTOAWAY_MESSAGE, message)
                msg = f'Auto away message set to: "{message}".'
        elif sub == "check" and len(parts) == 3 and _on_off(parts[2]) is not None:
            value = bool(_on_off(parts[2]))
            p.set_bool(Pref.AUTOAWAY_CHECK, value)
            msg = f"Online check {'enabled' if value else 'disabled'}."
        else:
            self._usage("/autoaway")
            return
        self._save_prefs()
        self._log_system(msg)

    def _cmd_statuses(self, parts: list) -> None:
        prefs_by_kind = {
            "console": Pref.STATUSES_CONSOLE,
            "chat": Pref.STATUSES_CHAT,
            "muc": Pref.STATUSES_MUC,
        }
        if len(parts) != 3 or parts[1] not in prefs_by_kind or parts[2] not in ("all", "online", "none"):
            self._usage("/statuses")
            return
        self.prefs.set_string(prefs_by_kind[parts[1]], parts[2])
        self._save_prefs()
        where = {"console": "console", "chat": "chat windows", "muc": "chat room windows"}[parts[1]]
        if parts[2] == "all":
            self._log_system(f"All presence updates will appear in the {where}.")
        elif parts[2] == "online":
            self._log_system(f"Only join/leave presence updates will appear in the {where}.")
        else:
            self._log_system(f"Presence updates will not appear in the {where}.")

    def _cmd_time(self, text: str) -> None:
        pieces = text.split(None, 1)
        if len(pieces) < 2:
            self._log_system(f"Time format: {self.prefs.get_string(Pref.TIME)}")
            return
        fmt = pieces[1]
        if fmt == "off":
            fmt = ""
        self.prefs.set_string(Pref.TIME, fmt)
        self._save_prefs()
        self._log_system(f"Time format set to '{fmt}'." if fmt else "Time display disabled.")
