"""jabterm development gateway: a single-process chat server speaking the
jabterm websocket frame protocol.

Accounts, rosters and offline delivery live in SQLite; rooms are kept in
memory for the life of the process.  Good enough to run two or three
terminals against each other on one machine.

Usage:
    python gateway_ws.py --host 127.0.0.1 --port 5280 --db data/gateway.sqlite

Every frame is one JSON object with a ``type`` key.  The first frame a
client sends must be ``login``:
    {"type": "login", "jid": "alice@example.org/laptop", "password": "..."}
The first login for an address registers it with that password.

Server → client frames are the event types in ``jabterm.events``
(``connection``, ``roster``, ``message``, ``room_self_presence`` ...).
Client → server frames are the action types in ``jabterm.protocol``.
"""

from __future__ import annotations

import argparse
import collections
import dataclasses
import json
import secrets
import time
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

import aiohttp
import aiosqlite
from aiohttp import web

VERSION = "0.1.0"
FRAME_MAX = 65_536
PING_INTERVAL_S = 30
ROOM_HISTORY = 20
DEFAULT_RESOURCE = "jabterm"

CONFIG_FORM_TYPE = "http://jabber.org/protocol/muc#roomconfig"


def _log(message: str) -> None:
    ts = time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime())
    print(f"[gateway_ws {ts} UTC] {message}")


def _bare(jid: str) -> str:
    return jid.split("/", 1)[0]


def _resource(jid: str) -> str:
    return jid.split("/", 1)[1] if "/" in jid else ""


# ── In-memory state ───────────────────────────────────────────────────────────

@dataclasses.dataclass
class Client:
    ws: web.WebSocketResponse
    jid: str                    # full address
    show: str = "online"
    status: str = ""
    priority: int = 0
    available: bool = False     # has sent initial presence


@dataclasses.dataclass
class Occupant:
    nick: str
    jid: str                    # occupant's full address
    role: str = "participant"
    affiliation: str = "none"
    show: str = "online"
    status: str = ""


@dataclasses.dataclass
class MucRoom:
    jid: str
    name: str = ""
    description: str = ""
    subject: Optional[str] = None
    subject_by: str = ""
    password: str = ""
    persistent: bool = False
    moderated: bool = False
    change_subject: bool = False
    locked: bool = True
    occupants: Dict[str, Occupant] = dataclasses.field(default_factory=dict)
    affiliations: Dict[str, str] = dataclasses.field(default_factory=dict)
    history: Deque[Dict[str, Any]] = dataclasses.field(
        default_factory=lambda: collections.deque(maxlen=ROOM_HISTORY)
    )

    def occupant_for(self, fulljid: str) -> Optional[Occupant]:
        for occ in self.occupants.values():
            if occ.jid == fulljid:
                return occ
        return None

    def affiliation(self, jid: str) -> str:
        return self.affiliations.get(_bare(jid), "none")


class GatewayState:
    def __init__(self) -> None:
        self.clients: Dict[str, Client] = {}
        self.rooms: Dict[str, MucRoom] = {}

    def sessions(self, jid: str) -> List[Client]:
        """Sessions for a full address, or every session of a bare one."""
        if "/" in jid:
            client = self.clients.get(jid)
            return [client] if client else []
        return [c for c in self.clients.values() if _bare(c.jid) == jid]


def _state(request_or_app: Any) -> GatewayState:
    app = request_or_app.app if isinstance(request_or_app, web.Request) else request_or_app
    return app["state"]  # type: ignore[no-any-return]


# ── DB helpers ────────────────────────────────────────────────────────────────

async def _init_db(db: aiosqlite.Connection) -> None:
    await db.execute("""
        CREATE TABLE IF NOT EXISTS accounts (
            jid        TEXT    NOT NULL PRIMARY KEY,
            password   TEXT    NOT NULL,
            created_at INTEGER NOT NULL
        )
    """)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS roster (
            owner        TEXT    NOT NULL,
            contact      TEXT    NOT NULL,
            name         TEXT    NOT NULL DEFAULT '',
            subscription TEXT    NOT NULL DEFAULT 'none',
            pending_out  INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (owner, contact)
        )
    """)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS offline (
            id        INTEGER PRIMARY KEY AUTOINCREMENT,
            to_jid    TEXT    NOT NULL,
            payload   TEXT    NOT NULL,
            stored_at INTEGER NOT NULL
        )
    """)
    await db.execute("CREATE INDEX IF NOT EXISTS idx_offline_to ON offline (to_jid, id)")
    await db.commit()


async def _check_login(db: aiosqlite.Connection, bare: str, password: str) -> bool:
    async with db.execute("SELECT password FROM accounts WHERE jid = ?", (bare,)) as cur:
        row = await cur.fetchone()
    if row is None:
        await db.execute(
            "INSERT INTO accounts (jid, password, created_at) VALUES (?, ?, ?)",
            (bare, password, int(time.time())),
        )
        await db.commit()
        _log(f"registered {bare}")
        return True
    return secrets.compare_digest(row["password"], password)


def _roster_item(row: Any) -> Dict[str, Any]:
    return {
        "jid": row["contact"],
        "name": row["name"],
        "subscription": row["subscription"],
        "groups": [],
        "pending_out": bool(row["pending_out"]),
    }


async def _roster_items(db: aiosqlite.Connection, owner: str) -> List[Dict[str, Any]]:
    async with db.execute(
        "SELECT * FROM roster WHERE owner = ? ORDER BY contact", (owner,)
    ) as cur:
        rows = await cur.fetchall()
    return [_roster_item(r) for r in rows]


async def _roster_get(db: aiosqlite.Connection, owner: str, contact: str) -> Optional[Any]:
    async with db.execute(
        "SELECT * FROM roster WHERE owner = ? AND contact = ?", (owner, contact)
    ) as cur:
        return await cur.fetchone()


async def _contacts_with(db: aiosqlite.Connection, owner: str, subs: tuple) -> List[str]:
    marks = ",".join("?" for _ in subs)
    async with db.execute(
        f"SELECT contact FROM roster WHERE owner = ? AND subscription IN ({marks})",
        (owner, *subs),
    ) as cur:
        rows = await cur.fetchall()
    return [r["contact"] for r in rows]


_ADD = {("none", "to"): "to", ("from", "to"): "both", ("none", "from"): "from", ("to", "from"): "both"}
_REMOVE = {("both", "to"): "from", ("to", "to"): "none", ("both", "from"): "to", ("from", "from"): "none"}


async def _roster_update(
    db: aiosqlite.Connection,
    owner: str,
    contact: str,
    add: str = "",
    remove: str = "",
    pending_out: Optional[bool] = None,
) -> Dict[str, Any]:
    row = await _roster_get(db, owner, contact)
    sub = row["subscription"] if row else "none"
    pending = bool(row["pending_out"]) if row else False
    name = row["name"] if row else ""
    if add:
        sub = _ADD.get((sub, add), sub)
    if remove:
        sub = _REMOVE.get((sub, remove), sub)
    if pending_out is not None:
        pending = pending_out
    await db.execute(
        "INSERT OR REPLACE INTO roster (owner, contact, name, subscription, pending_out)"
        " VALUES (?, ?, ?, ?, ?)",
        (owner, contact, name, sub, int(pending)),
    )
    await db.commit()
    return {"jid": contact, "name": name, "subscription": sub, "groups": [], "pending_out": pending}


# ── Delivery ──────────────────────────────────────────────────────────────────

async def _send(client: Client, frame: Dict[str, Any]) -> None:
    if client.ws.closed:
        return
    try:
        await client.ws.send_str(json.dumps(frame, separators=(",", ":"), ensure_ascii=False))
    except ConnectionResetError as exc:
        _log(f"send to {client.jid} failed: {exc}")


async def _deliver(
    app: web.Application,
    to: str,
    frame: Dict[str, Any],
    store: bool = False,
) -> bool:
    """Send *frame* to every session of *to*.  Returns False if nobody got it."""
    clients = _state(app).sessions(to)
    if not clients and "/" in to:
        clients = _state(app).sessions(_bare(to))
    for client in clients:
        await _send(client, frame)
    if clients or not store:
        return bool(clients)
    db: aiosqlite.Connection = app["db"]
    stored = dict(frame)
    stored.setdefault("delay", time.time())
    await db.execute(
        "INSERT INTO offline (to_jid, payload, stored_at) VALUES (?, ?, ?)",
        (_bare(to), json.dumps(stored), int(time.time())),
    )
    await db.commit()
    return False


async def _flush_offline(app: web.Application, client: Client) -> None:
    db: aiosqlite.Connection = app["db"]
    bare = _bare(client.jid)
    async with db.execute(
        "SELECT id, payload FROM offline WHERE to_jid = ? ORDER BY id", (bare,)
    ) as cur:
        rows = await cur.fetchall()
    for row in rows:
        await _send(client, json.loads(row["payload"]))
    if rows:
        await db.execute("DELETE FROM offline WHERE to_jid = ?", (bare,))
        await db.commit()


async def _push_roster(app: web.Application, owner: str, item: Dict[str, Any]) -> None:
    await _deliver(app, owner, {"type": "roster", "items": [item], "push": True})


def _presence_frame(client: Client, show: Optional[str] = None) -> Dict[str, Any]:
    return {
        "type": "presence",
        "jid": client.jid,
        "show": show or client.show,
        "status": "" if show == "offline" else client.status,
        "priority": client.priority,
    }


async def _broadcast_presence(app: web.Application, client: Client, show: Optional[str] = None) -> None:
    db: aiosqlite.Connection = app["db"]
    frame = _presence_frame(client, show)
    for contact in await _contacts_with(db, _bare(client.jid), ("from", "both")):
        await _deliver(app, contact, frame)


# ── Rooms ─────────────────────────────────────────────────────────────────────

def _default_role(room: MucRoom, affiliation: str) -> str:
    if affiliation in ("owner", "admin"):
        return "moderator"
    if affiliation == "outcast":
        return "none"
    if room.moderated and affiliation == "none":
        return "visitor"
    return "participant"


def _occupant_frame(room: MucRoom, occ: Occupant, actor: str = "", reason: str = "") -> Dict[str, Any]:
    return {
        "type": "room_occupant_presence",
        "room": room.jid,
        "nick": occ.nick,
        "jid": occ.jid,
        "role": occ.role,
        "affiliation": occ.affiliation,
        "show": occ.show,
        "status": occ.status,
        "actor": actor,
        "reason": reason,
    }


def _self_frame(room: MucRoom, occ: Occupant, actor: str = "", reason: str = "",
                config_required: bool = False) -> Dict[str, Any]:
    return {
        "type": "room_self_presence",
        "room": room.jid,
        "nick": occ.nick,
        "role": occ.role,
        "affiliation": occ.affiliation,
        "show": occ.show,
        "status": occ.status,
        "actor": actor,
        "reason": reason,
        "config_required": config_required,
    }


async def _to_occupants(app: web.Application, room: MucRoom, frame: Dict[str, Any],
                        skip: Optional[Occupant] = None) -> None:
    for occ in list(room.occupants.values()):
        if occ is skip:
            continue
        await _deliver(app, occ.jid, frame)


async def _room_error(client: Client, room: str, action: str, message: str, target: str = "") -> None:
    await _send(client, {
        "type": "room_error", "room": room, "action": action, "target": target, "message": message,
    })


async def _remove_occupant(app: web.Application, room: MucRoom, occ: Occupant, kind: str,
                           actor: str = "", reason: str = "") -> None:
    room.occupants.pop(occ.nick, None)
    await _deliver(app, occ.jid, {
        "type": "room_self_left", "room": room.jid, "kind": kind, "actor": actor, "reason": reason,
    })
    await _to_occupants(app, room, {
        "type": "room_occupant_offline", "room": room.jid, "nick": occ.nick,
        "kind": kind, "actor": actor, "reason": reason,
    })
    if not room.occupants and not room.persistent:
        _state(app).rooms.pop(room.jid, None)
        _log(f"room {room.jid} removed")


def _room_and_self(app: web.Application, client: Client, frame: Dict[str, Any]):
    room = _state(app).rooms.get(_bare(frame.get("room", "")))
    if room is None:
        return None, None
    return room, room.occupant_for(client.jid)


def _config_form(room: MucRoom) -> Dict[str, Any]:
    def field(var: str, ftype: str, label: str, values: List[str], options=None) -> Dict[str, Any]:
        return {
            "var": var, "type": ftype, "label": label, "description": "", "required": False,
            "values": values, "options": options or [],
        }

    def flag(value: bool) -> List[str]:
        return ["1" if value else "0"]

    owners = [j for j, a in room.affiliations.items() if a == "owner"]
    admins = [j for j, a in room.affiliations.items() if a == "admin"]
    return {
        "form_type": "form",
        "title": f"Configuration for {room.jid}",
        "instructions": "Complete this form to modify the configuration of your room.",
        "fields": [
            field("FORM_TYPE", "hidden", "", [CONFIG_FORM_TYPE]),
            field("muc#roomconfig_roomname", "text-single", "Room name", [room.name] if room.name else []),
            field("muc#roomconfig_roomdesc", "text-single", "Description",
                  [room.description] if room.description else []),
            field("muc#roomconfig_persistentroom", "boolean", "Make room persistent", flag(room.persistent)),
            field("muc#roomconfig_moderatedroom", "boolean", "Make room moderated", flag(room.moderated)),
            field("muc#roomconfig_changesubject", "boolean", "Allow occupants to change the subject",
                  flag(room.change_subject)),
            field("muc#roomconfig_passwordprotectedroom", "boolean", "Password protected",
                  flag(bool(room.password))),
            field("muc#roomconfig_roomsecret", "text-private", "Password", [room.password] if room.password else []),
            field("muc#roomconfig_whois", "list-single", "Who may discover real addresses", ["anyone"],
                  [{"value": "moderators", "label": "Moderators only"}, {"value": "anyone", "label": "Anyone"}]),
            field("muc#roomconfig_roomowners", "jid-multi", "Room owners", owners),
            field("muc#roomconfig_roomadmins", "jid-multi", "Room admins", admins),
        ],
    }


def _apply_config(room: MucRoom, form: Dict[str, Any]) -> None:
    values = {f.get("var", ""): [str(v) for v in f.get("values", [])] for f in form.get("fields", [])}

    def flag(var: str, current: bool) -> bool:
        if var not in values or not values[var]:
            return current
        return values[var][0] in ("1", "true")

    def single(var: str, current: str) -> str:
        return values[var][0] if values.get(var) else ("" if var in values else current)

    room.name = single("muc#roomconfig_roomname", room.name)
    room.description = single("muc#roomconfig_roomdesc", room.description)
    room.persistent = flag("muc#roomconfig_persistentroom", room.persistent)
    room.moderated = flag("muc#roomconfig_moderatedroom", room.moderated)
    room.change_subject = flag("muc#roomconfig_changesubject", room.change_subject)
    if flag("muc#roomconfig_passwordprotectedroom", bool(room.password)):
        room.password = single("muc#roomconfig_roomsecret", room.password)
    else:
        room.password = ""
    for var, aff in (("muc#roomconfig_roomowners", "owner"), ("muc#roomconfig_roomadmins", "admin")):
        if var in values:
            for jid in [j for j, a in room.affiliations.items() if a == aff]:
                room.affiliations.pop(jid)
            for jid in values[var]:
                room.affiliations[_bare(jid)] = aff
    room.locked = False


# ── Action handlers: one-to-one ───────────────────────────────────────────────

async def on_message(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    to = frame.get("jid", "")
    out = {
        "type": "message",
        "jid": client.jid,
        "id": frame.get("id", ""),
        "body": frame.get("body", ""),
        "encrypted": frame.get("encrypted"),
        "receipt_request": bool(frame.get("receipt_request")),
        "state": frame.get("state"),
    }
    await _deliver(app, to, out, store=True)
    carbon = dict(out, jid=to, carbon="sent")
    for other in _state(app).sessions(_bare(client.jid)):
        if other is not client:
            await _send(other, carbon)


async def on_private_message(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    target = frame.get("jid", "")
    room = _state(app).rooms.get(_bare(target))
    me = room.occupant_for(client.jid) if room else None
    occ = room.occupants.get(_resource(target)) if room else None
    if room is None or me is None or occ is None:
        await _send(client, {"type": "error", "jid": target, "message": "Recipient not in room"})
        return
    await _deliver(app, occ.jid, {
        "type": "private_message",
        "jid": f"{room.jid}/{me.nick}",
        "id": frame.get("id", ""),
        "body": frame.get("body", ""),
    })


async def on_chat_state(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    await _deliver(app, frame.get("jid", ""), {
        "type": "chat_state", "jid": client.jid, "state": frame.get("state", "active"),
    })


async def on_receipt(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    await _deliver(app, frame.get("jid", ""), {"type": "receipt", "jid": client.jid, "id": frame.get("id", "")})


async def on_presence(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    first = not client.available
    client.show = frame.get("show") or "online"
    client.status = frame.get("status") or ""
    client.priority = int(frame.get("priority") or 0)
    client.available = True
    await _broadcast_presence(app, client)

    if first:
        db: aiosqlite.Connection = app["db"]
        for contact in await _contacts_with(db, _bare(client.jid), ("to", "both")):
            for other in _state(app).sessions(contact):
                if other.available:
                    await _send(client, _presence_frame(other))

    for room in _state(app).rooms.values():
        occ = room.occupant_for(client.jid)
        if occ is not None:
            occ.show, occ.status = client.show, client.status
            await _to_occupants(app, room, _occupant_frame(room, occ), skip=occ)


async def on_subscription(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    db: aiosqlite.Connection = app["db"]
    owner = _bare(client.jid)
    contact = _bare(frame.get("jid", ""))
    kind = frame.get("kind", "")
    if not contact or contact == owner:
        await _send(client, {"type": "error", "jid": contact, "message": "Invalid subscription target"})
        return

    if kind == "subscribe":
        await _push_roster(app, owner, await _roster_update(db, owner, contact, pending_out=True))
        await _deliver(app, contact, {"type": "subscription", "jid": owner, "kind": "subscribe"}, store=True)
    elif kind == "subscribed":
        await _push_roster(app, owner, await _roster_update(db, owner, contact, add="from"))
        await _push_roster(app, contact, await _roster_update(db, contact, owner, add="to", pending_out=False))
        await _deliver(app, contact, {"type": "subscription", "jid": owner, "kind": "subscribed"}, store=True)
        for session in _state(app).sessions(owner):
            if session.available:
                await _deliver(app, contact, _presence_frame(session))
    elif kind == "unsubscribed":
        await _push_roster(app, owner, await _roster_update(db, owner, contact, remove="from"))
        await _push_roster(app, contact, await _roster_update(db, contact, owner, remove="to", pending_out=False))
        await _deliver(app, contact, {"type": "subscription", "jid": owner, "kind": "unsubscribed"}, store=True)
        for session in _state(app).sessions(owner):
            await _deliver(app, contact, _presence_frame(session, "offline"))
    elif kind == "unsubscribe":
        await _push_roster(app, owner, await _roster_update(db, owner, contact, remove="to", pending_out=False))
        await _push_roster(app, contact, await _roster_update(db, contact, owner, remove="from"))
    else:
        await _send(client, {"type": "error", "jid": contact, "message": f"Unknown subscription kind: {kind}"})


async def on_roster_set(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    db: aiosqlite.Connection = app["db"]
    owner = _bare(client.jid)
    contact = _bare(frame.get("jid", ""))
    if "@" not in contact or contact == owner:
        await _send(client, {"type": "error", "jid": contact, "message": "Invalid roster item"})
        return
    row = await _roster_get(db, owner, contact)
    await db.execute(
        "INSERT OR REPLACE INTO roster (owner, contact, name, subscription, pending_out)"
        " VALUES (?, ?, ?, ?, ?)",
        (owner, contact, frame.get("name") or "",
         row["subscription"] if row else "none", row["pending_out"] if row else 0),
    )
    await db.commit()
    await _push_roster(app, owner, _roster_item(await _roster_get(db, owner, contact)))


async def on_roster_remove(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    db: aiosqlite.Connection = app["db"]
    owner = _bare(client.jid)
    contact = _bare(frame.get("jid", ""))
    row = await _roster_get(db, owner, contact)
    if row is None:
        await _send(client, {"type": "error", "jid": contact, "message": "Item not found"})
        return
    # removing an item cancels the subscription both ways
    if row["subscription"] in ("to", "both"):
        await _push_roster(app, contact, await _roster_update(db, contact, owner, remove="from"))
    if row["subscription"] in ("from", "both"):
        await _push_roster(app, contact, await _roster_update(db, contact, owner, remove="to"))
        await _deliver(app, contact, {"type": "subscription", "jid": owner, "kind": "unsubscribed"}, store=True)
        for session in _state(app).sessions(owner):
            await _deliver(app, contact, _presence_frame(session, "offline"))
    await db.execute("DELETE FROM roster WHERE owner = ? AND contact = ?", (owner, contact))
    await db.commit()
    await _push_roster(app, owner, {"jid": contact, "name": "", "subscription": "remove",
                                    "groups": [], "pending_out": False})


# ── Action handlers: rooms ────────────────────────────────────────────────────

async def on_join_room(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    state = _state(app)
    roomjid = _bare(frame.get("room", ""))
    nick = frame.get("nick", "")
    if "@" not in roomjid or not nick:
        await _room_error(client, roomjid, "join", "Bad request")
        return

    room = state.rooms.get(roomjid)
    created = room is None
    if room is None:
        room = MucRoom(jid=roomjid)
        room.affiliations[_bare(client.jid)] = "owner"
        state.rooms[roomjid] = room
        _log(f"room {roomjid} created by {client.jid}")

    affiliation = room.affiliation(client.jid)
    if affiliation == "outcast":
        await _room_error(client, roomjid, "join", "You are banned from this room")
        return
    if room.password and frame.get("password", "") != room.password:
        await _room_error(client, roomjid, "join", "A password is required to enter this room")
        return
    if room.locked and not created and affiliation != "owner":
        await _room_error(client, roomjid, "join", "This room is locked")
        return
    existing = room.occupants.get(nick)
    if existing is not None and existing.jid != client.jid:
        await _room_error(client, roomjid, "join", "Nickname conflict")
        return

    occ = Occupant(nick=nick, jid=client.jid, role=_default_role(room, affiliation),
                   affiliation=affiliation, show=client.show, status=client.status)
    for other in room.occupants.values():
        await _send(client, _occupant_frame(room, other))
    room.occupants[nick] = occ
    await _send(client, _self_frame(room, occ, config_required=room.locked))
    for past in room.history:
        await _send(client, past)
    if room.subject is not None:
        await _send(client, {"type": "room_subject", "room": roomjid, "nick": room.subject_by,
                             "subject": room.subject})
    await _to_occupants(app, room, _occupant_frame(room, occ), skip=occ)


async def on_leave_room(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    if room is None or me is None:
        return
    await _remove_occupant(app, room, me, "left")


async def on_room_message(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    roomjid = _bare(frame.get("room", ""))
    if room is None or me is None:
        await _room_error(client, roomjid, "other", "You are not in this room")
        return
    if me.role == "visitor":
        await _room_error(client, roomjid, "other", "You are not allowed to speak in this room")
        return
    out = {"type": "room_message", "room": room.jid, "nick": me.nick,
           "id": frame.get("id", ""), "body": frame.get("body", "")}
    await _to_occupants(app, room, out)
    room.history.append(dict(out, delay=time.time()))


async def on_change_nick(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    new_nick = frame.get("nick", "")
    if room is None or me is None:
        return
    if not new_nick or new_nick in room.occupants:
        await _room_error(client, room.jid, "nick", "Nickname conflict", target=new_nick)
        return
    old_nick = me.nick
    room.occupants.pop(old_nick)
    me.nick = new_nick
    room.occupants[new_nick] = me
    await _to_occupants(app, room, {"type": "room_occupant_nick", "room": room.jid,
                                    "old_nick": old_nick, "new_nick": new_nick}, skip=me)
    await _send(client, _self_frame(room, me))


async def on_set_subject(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    if room is None or me is None:
        return
    if me.role != "moderator" and not (room.change_subject and me.role == "participant"):
        await _room_error(client, room.jid, "subject", "You are not allowed to change the subject")
        return
    room.subject = frame.get("subject")
    room.subject_by = me.nick
    await _to_occupants(app, room, {"type": "room_subject", "room": room.jid, "nick": me.nick,
                                    "subject": room.subject})


async def on_kick(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    target = frame.get("nick", "")
    if room is None or me is None:
        return
    occ = room.occupants.get(target)
    if occ is None:
        await _room_error(client, room.jid, "kick", "Occupant not found", target=target)
        return
    if me.role != "moderator" or occ.affiliation in ("owner", "admin"):
        await _room_error(client, room.jid, "kick", "Forbidden", target=target)
        return
    await _remove_occupant(app, room, occ, "kicked", actor=me.nick, reason=frame.get("reason", ""))


async def on_set_role(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    target, role = frame.get("nick", ""), frame.get("role", "")
    if room is None or me is None:
        return
    occ = room.occupants.get(target)
    if occ is None:
        await _room_error(client, room.jid, "role", "Occupant not found", target=target)
        return
    if me.role != "moderator" or role not in ("moderator", "participant", "visitor", "none"):
        await _room_error(client, room.jid, "role", "Forbidden", target=target)
        return
    reason = frame.get("reason", "")
    if role == "none":
        await _remove_occupant(app, room, occ, "kicked", actor=me.nick, reason=reason)
        return
    occ.role = role
    await _send_privileges(app, room, occ, me.nick, reason)


async def _send_privileges(app: web.Application, room: MucRoom, occ: Occupant, actor: str, reason: str) -> None:
    await _deliver(app, occ.jid, _self_frame(room, occ, actor=actor, reason=reason))
    await _to_occupants(app, room, _occupant_frame(room, occ, actor=actor, reason=reason), skip=occ)


async def on_set_affiliation(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    target, aff = _bare(frame.get("jid", "")), frame.get("affiliation", "")
    if room is None or me is None:
        return
    allowed = me.affiliation == "owner" or (me.affiliation == "admin" and aff in ("member", "none", "outcast"))
    if not allowed or aff not in ("owner", "admin", "member", "none", "outcast"):
        await _room_error(client, room.jid, "affiliation", "Forbidden", target=target)
        return
    if aff == "none":
        room.affiliations.pop(target, None)
    else:
        room.affiliations[target] = aff
    reason = frame.get("reason", "")
    for occ in [o for o in room.occupants.values() if _bare(o.jid) == target]:
        if aff == "outcast":
            await _remove_occupant(app, room, occ, "banned", actor=me.nick, reason=reason)
            continue
        occ.affiliation = aff
        occ.role = _default_role(room, aff)
        await _send_privileges(app, room, occ, me.nick, reason)


async def on_affiliation_list(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    if room is None or me is None:
        return
    value = frame.get("affiliation", "")
    if me.affiliation not in ("owner", "admin"):
        await _room_error(client, room.jid, "affiliation", "Forbidden", target=value)
        return
    items = sorted(j for j, a in room.affiliations.items() if a == value)
    await _send(client, {"type": "room_list", "room": room.jid, "list_kind": "affiliation",
                         "value": value, "items": items})


async def on_role_list(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    if room is None or me is None:
        return
    value = frame.get("role", "")
    items = sorted(o.nick for o in room.occupants.values() if o.role == value)
    await _send(client, {"type": "room_list", "room": room.jid, "list_kind": "role",
                         "value": value, "items": items})


async def on_room_config_request(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    roomjid = _bare(frame.get("room", ""))
    if room is None or me is None or me.affiliation != "owner":
        await _room_error(client, roomjid, "config", "Forbidden")
        return
    await _send(client, {"type": "room_config_form", "room": room.jid, "form": _config_form(room)})


async def on_room_config_submit(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    roomjid = _bare(frame.get("room", ""))
    if room is None or me is None or me.affiliation != "owner":
        await _send(client, {"type": "room_config_result", "room": roomjid, "ok": False,
                             "message": "Forbidden"})
        return
    form = frame.get("form") or {}
    if not isinstance(form, dict):
        await _send(client, {"type": "room_config_result", "room": roomjid, "ok": False,
                             "message": "Bad request"})
        return
    _apply_config(room, form)
    _log(f"room {room.jid} configured by {client.jid}")
    await _send(client, {"type": "room_config_result", "room": room.jid, "ok": True, "message": ""})


async def on_room_config_cancel(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    return None


async def on_room_accept_defaults(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    if room is not None and me is not None and me.affiliation == "owner":
        room.locked = False


async def on_destroy_room(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    roomjid = _bare(frame.get("room", ""))
    if room is None or me is None or me.affiliation != "owner":
        await _room_error(client, roomjid, "other", "Only the owner can destroy the room")
        return
    reason = frame.get("reason", "")
    for occ in list(room.occupants.values()):
        await _deliver(app, occ.jid, {"type": "room_self_left", "room": room.jid, "kind": "destroyed",
                                      "actor": me.nick, "reason": reason})
    _state(app).rooms.pop(room.jid, None)
    _log(f"room {room.jid} destroyed by {client.jid}")


async def on_invite(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    room, me = _room_and_self(app, client, frame)
    if room is None or me is None:
        await _room_error(client, _bare(frame.get("room", "")), "other", "You are not in this room")
        return
    await _deliver(app, _bare(frame.get("jid", "")), {
        "type": "room_invite",
        "room": room.jid,
        "invitor": _bare(client.jid),
        "reason": frame.get("reason", ""),
        "password": frame.get("password") or room.password,
    }, store=True)


# ── Action handlers: queries ──────────────────────────────────────────────────

async def on_disco_info_request(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    jid = frame.get("jid", "")
    room = _state(app).rooms.get(_bare(jid))
    if room is not None:
        identities = [{"category": "conference", "type": "text", "name": room.name or room.jid}]
        features = ["http://jabber.org/protocol/muc"]
        features.append("muc_passwordprotected" if room.password else "muc_unsecured")
        features.append("muc_persistent" if room.persistent else "muc_temporary")
        features.append("muc_moderated" if room.moderated else "muc_unmoderated")
    elif "@" not in jid:
        identities = [{"category": "server", "type": "im", "name": "jabterm gateway"}]
        features = ["http://jabber.org/protocol/disco#info", "urn:xmpp:receipts",
                    "urn:xmpp:carbons:2", "http://jabber.org/protocol/chatstates"]
    elif _state(app).sessions(jid):
        identities = [{"category": "client", "type": "pc", "name": ""}]
        features = ["urn:xmpp:receipts", "http://jabber.org/protocol/chatstates", "jabber:iq:version"]
    else:
        await _send(client, {"type": "error", "jid": jid, "message": "Service unavailable"})
        return
    await _send(client, {"type": "disco_info", "jid": jid, "identities": identities, "features": features})


async def on_room_list_request(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    service = frame.get("service", "").lower()
    items = [
        {"jid": room.jid, "name": room.name}
        for room in sorted(_state(app).rooms.values(), key=lambda r: r.jid)
        if room.jid.split("@", 1)[1] == service and not room.locked
    ]
    await _send(client, {"type": "rooms", "service": service, "items": items})


async def on_software_version_request(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    target = frame.get("jid", "")
    room = _state(app).rooms.get(_bare(target))
    if room is not None:
        occ = room.occupants.get(_resource(target))
        real = occ.jid if occ else ""
    else:
        real = target if target in _state(app).clients else ""
    if not real:
        await _send(client, {"type": "error", "jid": target, "message": "Recipient unavailable"})
        return
    msg_id = secrets.token_hex(6)
    app["version_requests"][msg_id] = (client.jid, target)
    await _deliver(app, real, {"type": "software_version_request", "jid": client.jid, "id": msg_id})


async def on_software_version(app: web.Application, client: Client, frame: Dict[str, Any]) -> None:
    pending = app["version_requests"].pop(frame.get("id", ""), None)
    if pending is None:
        return
    requester, asked = pending
    await _deliver(app, requester, {
        "type": "software_version", "jid": asked,
        "name": frame.get("name", ""), "version": frame.get("version", ""), "os": frame.get("os", ""),
    })


HANDLERS = {
    "message": on_message,
    "private_message": on_private_message,
    "chat_state": on_chat_state,
    "receipt": on_receipt,
    "presence": on_presence,
    "subscription": on_subscription,
    "roster_set": on_roster_set,
    "roster_remove": on_roster_remove,
    "join_room": on_join_room,
    "leave_room": on_leave_room,
    "room_message": on_room_message,
    "change_nick": on_change_nick,
    "set_subject": on_set_subject,
    "kick": on_kick,
    "set_role": on_set_role,
    "set_affiliation": on_set_affiliation,
    "affiliation_list": on_affiliation_list,
    "role_list": on_role_list,
    "room_config_request": on_room_config_request,
    "room_config_submit": on_room_config_submit,
    "room_config_cancel": on_room_config_cancel,
    "room_accept_defaults": on_room_accept_defaults,
    "destroy_room": on_destroy_room,
    "invite": on_invite,
    "disco_info_request": on_disco_info_request,
    "room_list_request": on_room_list_request,
    "software_version_request": on_software_version_request,
    "software_version": on_software_version,
}


# ── Response helpers ──────────────────────────────────────────────────────────

def _ok(data: dict, status: int = 200) -> web.Response:
    return web.Response(
        status=status,
        content_type="application/json",
        body=json.dumps(data, separators=(",", ":"), ensure_ascii=False),
    )


# ── Route: health ─────────────────────────────────────────────────────────────

async def route_health(request: web.Request) -> web.Response:
    state = _state(request)
    return _ok({
        "ok": True,
        "version": VERSION,
        "time": int(time.time()),
        "sessions": len(state.clients),
        "rooms": len(state.rooms),
    })


# ── Route: client websocket ───────────────────────────────────────────────────

async def _login(request: web.Request, ws: web.WebSocketResponse) -> Optional[Client]:
    msg = await ws.receive()
    if msg.type != aiohttp.WSMsgType.TEXT:
        return None
    try:
        frame = json.loads(msg.data)
    except ValueError:
        frame = {}
    if not isinstance(frame, dict):
        frame = {}
    jid = str(frame.get("jid", ""))
    if frame.get("type") != "login" or "@" not in _bare(jid):
        await ws.send_str(json.dumps({"type": "connection", "status": "failed", "jid": jid,
                                      "message": "Bad login"}))
        return None
    if not await _check_login(request.app["db"], _bare(jid), str(frame.get("password", ""))):
        _log(f"login failed for {jid}")
        await ws.send_str(json.dumps({"type": "connection", "status": "failed", "jid": jid,
                                      "message": "Not authorized"}))
        return None
    if not _resource(jid):
        jid = f"{jid}/{DEFAULT_RESOURCE}"

    state = _state(request)
    previous = state.clients.get(jid)
    if previous is not None:
        _log(f"replacing session {jid}")
        await previous.ws.close()
    client = Client(ws=ws, jid=jid)
    state.clients[jid] = client
    return client


async def _logout(app: web.Application, client: Client) -> None:
    state = _state(app)
    if state.clients.get(client.jid) is client:
        del state.clients[client.jid]
    for room in list(state.rooms.values()):
        occ = room.occupant_for(client.jid)
        if occ is not None:
            room.occupants.pop(occ.nick, None)
            await _to_occupants(app, room, {"type": "room_occupant_offline", "room": room.jid,
                                            "nick": occ.nick, "kind": "left"})
            if not room.occupants and not room.persistent:
                state.rooms.pop(room.jid, None)
    if client.available:
        await _broadcast_presence(app, client, "offline")


async def route_ws(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse(heartbeat=PING_INTERVAL_S, max_msg_size=FRAME_MAX)
    await ws.prepare(request)

    client = await _login(request, ws)
    if client is None:
        await ws.close()
        return ws
    _log(f"ws connect {client.jid}")

    app = request.app
    await _send(client, {"type": "connection", "status": "connected", "jid": client.jid})
    await _send(client, {"type": "roster", "items": await _roster_items(app["db"], _bare(client.jid)),
                         "push": False})
    await _flush_offline(app, client)

    try:
        async for msg in ws:
            if msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSE):
                break
            if msg.type != aiohttp.WSMsgType.TEXT:
                continue
            try:
                frame = json.loads(msg.data)
            except ValueError:
                await _send(client, {"type": "error", "message": "Invalid JSON frame"})
                continue
            if not isinstance(frame, dict):
                continue
            action = frame.get("type", "")
            if action == "logout":
                break
            handler = HANDLERS.get(action)
            if handler is None:
                await _send(client, {"type": "error", "message": f"Unsupported action: {action}"})
                continue
            await handler(app, client, frame)
    finally:
        await _logout(app, client)
        _log(f"ws disconnect {client.jid}")

    await ws.close()
    return ws


# ── App factory ───────────────────────────────────────────────────────────────

def make_app(db_path: str) -> web.Application:
    app = web.Application()
    app["db_path"] = db_path
    app["state"] = GatewayState()
    app["version_requests"] = {}

    async def on_startup(app: web.Application) -> None:
        db = await aiosqlite.connect(app["db_path"])
        db.row_factory = aiosqlite.Row  # type: ignore[assignment]
        await _init_db(db)
        app["db"] = db

    async def on_cleanup(app: web.Application) -> None:
        for client in list(_state(app).clients.values()):
            await client.ws.close()
        _state(app).clients.clear()
        await app["db"].close()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    app.router.add_get("/v1/health", route_health)
    app.router.add_get("/v1/ws", route_ws)
    return app


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="jabterm development gateway")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=5280, help="Listen port (default: 5280)")
    parser.add_argument(
        "--db",
        default="data/gateway.sqlite",
        metavar="PATH",
        help="SQLite database path (default: data/gateway.sqlite)",
    )
    args = parser.parse_args()

    Path(args.db).parent.mkdir(parents=True, exist_ok=True)
    _log(f"starting on {args.host}:{args.port} db={args.db}")
    web.run_app(make_app(args.db), host=args.host, port=args.port, print=None)
