"""Multi-user room membership state.

A room exists here from the moment we ask to join it.  It only counts as
joined once the server has sent the full occupant list and our own presence
(``roster_complete``); until then subject changes and broadcasts are held
back so they can be shown after the join line.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Dict, List, Optional, Tuple

from jabterm.models import Invite, Occupant, Room

log = logging.getLogger(__name__)


class Rooms:
    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}
        self._invites: Dict[str, Invite] = {}

    # ── Membership ────────────────────────────────────────────────────────────

    def join(self, roomjid: str, nick: str, password: str = "", autojoin: bool = False) -> Room:
        room = Room(roomjid=roomjid, nick=nick, password=password, autojoin=autojoin)
        self._rooms[roomjid] = room
        return room

    def leave(self, roomjid: str) -> Optional[Room]:
        return self._rooms.pop(roomjid, None)

    def get(self, roomjid: str) -> Optional[Room]:
        return self._rooms.get(roomjid)

    def active(self, roomjid: str) -> bool:
        return roomjid in self._rooms

    def joined(self, roomjid: str) -> bool:
        room = self._rooms.get(roomjid)
        return room is not None and room.roster_complete

    def nick(self, roomjid: str) -> str:
        room = self._rooms.get(roomjid)
        return room.nick if room else ""

    def rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def clear(self) -> None:
        self._rooms.clear()
        self._invites.clear()

    # ── Occupants ─────────────────────────────────────────────────────────────

    def add_occupant(
        self,
        roomjid: str,
        nick: str,
        jid: str = "",
        role: str = "none",
        affiliation: str = "none",
        show: str = "online",
        status: str = "",
    ) -> Tuple[Optional[Occupant], Occupant]:
        """Insert or update an occupant.

        Returns ``(previous, current)`` where *previous* is a copy of the
        occupant as it was before this update (None if it is new), so the
        caller can tell what changed.
        """
        room = self._rooms[roomjid]
        existing = room.roster.get(nick)
        previous = dataclasses.replace(existing) if existing else None
        occupant = Occupant(nick=nick, jid=jid, role=role, affiliation=affiliation,
                            show=show, status=status)
        room.roster[nick] = occupant
        return previous, occupant

    def remove_occupant(self, roomjid: str, nick: str) -> Optional[Occupant]:
        room = self._rooms.get(roomjid)
        if room is None:
            return None
        return room.roster.pop(nick, None)

    def occupant(self, roomjid: str, nick: str) -> Optional[Occupant]:
        room = self._rooms.get(roomjid)
        return room.roster.get(nick) if room else None

    def occupants(self, roomjid: str) -> List[Occupant]:
        room = self._rooms.get(roomjid)
        if room is None:
            return []
        return sorted(room.roster.values(), key=lambda o: o.nick.lower())

    def occupant_by_jid(self, roomjid: str, jid: str) -> Optional[Occupant]:
        room = self._rooms.get(roomjid)
        if room is None:
            return None
        bare = jid.split("/", 1)[0]
        return next((o for o in room.roster.values() if o.jid.split("/", 1)[0] == bare), None)

    def set_self_privileges(self, roomjid: str, role: str, affiliation: str) -> Tuple[str, str]:
        """Store our own role/affiliation, returning the previous pair."""
        room = self._rooms[roomjid]
        previous = (room.role, room.affiliation)
        room.role, room.affiliation = role, affiliation
        return previous

    # ── Nick changes ──────────────────────────────────────────────────────────

    def begin_nick_change(self, roomjid: str, new_nick: str) -> None:
        room = self._rooms[roomjid]
        room.pending_nick = new_nick

    def complete_nick_change(self, roomjid: str, nick: str) -> Optional[str]:
        """Finish our own nick change if one is pending; returns the old nick."""
        room = self._rooms.get(roomjid)
        if room is None or not room.pending_nick:
            return None
        old = room.nick
        room.roster.pop(old, None)
        room.nick = nick
        room.pending_nick = ""
        return old

    def occupant_nick_change(self, roomjid: str, old_nick: str, new_nick: str) -> None:
        room = self._rooms.get(roomjid)
        if room is None:
            return
        occupant = room.roster.pop(old_nick, None)
        if occupant is not None:
            occupant.nick = new_nick
            room.roster[new_nick] = occupant
        room.occupant_nick_changes[new_nick] = old_nick

    def take_occupant_nick_change(self, roomjid: str, new_nick: str) -> Optional[str]:
        room = self._rooms.get(roomjid)
        if room is None:
            return None
        return room.occupant_nick_changes.pop(new_nick, None)

    # ── Subject, broadcasts, configuration ───────────────────────────────────

    def set_subject(self, roomjid: str, subject: Optional[str], by: str = "") -> None:
        room = self._rooms[roomjid]
        room.subject = subject
        room.subject_by = by

    def queue_broadcast(self, roomjid: str, text: str) -> None:
        self._rooms[roomjid].pending_broadcasts.append(text)

    def take_broadcasts(self, roomjid: str) -> List[str]:
        room = self._rooms[roomjid]
        pending, room.pending_broadcasts = room.pending_broadcasts, []
        return pending

    def set_requires_config(self, roomjid: str, required: bool) -> None:
        room = self._rooms.get(roomjid)
        if room is not None:
            room.requires_config = required

    def requires_config(self, roomjid: str) -> bool:
        room = self._rooms.get(roomjid)
        return bool(room and room.requires_config)

    # ── Invites ───────────────────────────────────────────────────────────────

    def add_invite(self, invite: Invite) -> None:
        self._invites[invite.roomjid] = invite

    def remove_invite(self, roomjid: str) -> Optional[Invite]:
        return self._invites.pop(roomjid, None)

    def invite(self, roomjid: str) -> Optional[Invite]:
        return self._invites.get(roomjid)

    def invites(self) -> List[Invite]:
        return sorted(self._invites.values(), key=lambda i: i.roomjid)
