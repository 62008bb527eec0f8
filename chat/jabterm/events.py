"""Inbound protocol events.

The gateway delivers one JSON object per websocket frame.  Every frame has a
``type`` field that selects the event model; ``parse_event`` validates the
frame and returns the matching model instance.
"""
from __future__ import annotations

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

ShowType = Literal["online", "chat", "away", "xa", "dnd", "offline"]
StateType = Literal["active", "composing", "paused", "inactive", "gone"]
RoleType = Literal["visitor", "participant", "moderator", "none"]
AffiliationType = Literal["owner", "admin", "member", "none", "outcast"]


class _Event(BaseModel):
    pass


# ── Session ───────────────────────────────────────────────────────────────────

class ConnectionEvent(_Event):
    type: Literal["connection"] = "connection"
    status: Literal["connected", "lost", "failed", "disconnected"]
    jid: str = ""
    message: str = ""


class RosterItem(BaseModel):
    jid: str
    name: str = ""
    subscription: Literal["none", "to", "from", "both", "remove"] = "none"
    groups: List[str] = Field(default_factory=list)
    pending_out: bool = False


class RosterEvent(_Event):
    type: Literal["roster"] = "roster"
    items: List[RosterItem] = Field(default_factory=list)
    push: bool = False


# ── One-to-one ────────────────────────────────────────────────────────────────

class MessageEvent(_Event):
    type: Literal["message"] = "message"
    jid: str                                # sender, or recipient of a sent carbon
    id: str = ""
    body: str = ""
    encrypted: Optional[str] = None
    delay: Optional[float] = None
    carbon: Literal["none", "sent", "received"] = "none"
    receipt_request: bool = False
    state: Optional[StateType] = None


class PrivateMessageEvent(_Event):
    type: Literal["private_message"] = "private_message"
    jid: str                                # room/nick
    id: str = ""
    body: str = ""
    delay: Optional[float] = None


class ReceiptEvent(_Event):
    type: Literal["receipt"] = "receipt"
    jid: str
    id: str


class ChatStateEvent(_Event):
    type: Literal["chat_state"] = "chat_state"
    jid: str
    state: StateType


class PresenceEvent(_Event):
    type: Literal["presence"] = "presence"
    jid: str
    show: ShowType = "online"
    status: str = ""
    priority: int = 0


class SubscriptionEvent(_Event):
    type: Literal["subscription"] = "subscription"
    jid: str
    kind: Literal["subscribe", "subscribed", "unsubscribed"]


# ── Rooms ─────────────────────────────────────────────────────────────────────

class RoomMessageEvent(_Event):
    type: Literal["room_message"] = "room_message"
    room: str
    nick: str
    id: str = ""
    body: str = ""
    delay: Optional[float] = None


class RoomSubjectEvent(_Event):
    type: Literal["room_subject"] = "room_subject"
    room: str
    nick: str = ""
    subject: Optional[str] = None


class RoomBroadcastEvent(_Event):
    type: Literal["room_broadcast"] = "room_broadcast"
    room: str
    body: str


class RoomSelfPresenceEvent(_Event):
    """Our own presence in a room.  The first one marks the occupant list
    as complete."""
    type: Literal["room_self_presence"] = "room_self_presence"
    room: str
    nick: str
    role: RoleType = "none"
    affiliation: AffiliationType = "none"
    show: ShowType = "online"
    status: str = ""
    actor: str = ""
    reason: str = ""
    config_required: bool = False


class RoomOccupantPresenceEvent(_Event):
    type: Literal["room_occupant_presence"] = "room_occupant_presence"
    room: str
    nick: str
    jid: str = ""
    role: RoleType = "none"
    affiliation: AffiliationType = "none"
    show: ShowType = "online"
    status: str = ""
    actor: str = ""
    reason: str = ""


class RoomOccupantOfflineEvent(_Event):
    type: Literal["room_occupant_offline"] = "room_occupant_offline"
    room: str
    nick: str
    kind: Literal["left", "kicked", "banned"] = "left"
    actor: str = ""
    reason: str = ""


class RoomOccupantNickEvent(_Event):
    type: Literal["room_occupant_nick"] = "room_occupant_nick"
    room: str
    old_nick: str
    new_nick: str


class RoomSelfLeftEvent(_Event):
    type: Literal["room_self_left"] = "room_self_left"
    room: str
    kind: Literal["left", "kicked", "banned", "destroyed"] = "left"
    actor: str = ""
    reason: str = ""
    alternate: str = ""
    password: str = ""


class RoomInviteEvent(_Event):
    type: Literal["room_invite"] = "room_invite"
    room: str
    invitor: str
    reason: str = ""
    password: str = ""


class RoomConfigFormEvent(_Event):
    type: Literal["room_config_form"] = "room_config_form"
    room: str
    form: Dict[str, Any]


class RoomConfigResultEvent(_Event):
    type: Literal["room_config_result"] = "room_config_result"
    room: str
    ok: bool = True
    message: str = ""


class RoomListEvent(_Event):
    type: Literal["room_list"] = "room_list"
    room: str
    list_kind: Literal["affiliation", "role"]
    value: str
    items: List[str] = Field(default_factory=list)


class RoomItem(BaseModel):
    jid: str
    name: str = ""


class RoomsEvent(_Event):
    """Rooms hosted by a conference service, answering ``/rooms``."""
    type: Literal["rooms"] = "rooms"
    service: str
    items: List[RoomItem] = Field(default_factory=list)


class RoomErrorEvent(_Event):
    type: Literal["room_error"] = "room_error"
    room: str
    action: Literal["join", "nick", "kick", "role", "affiliation", "subject", "config", "other"] = "other"
    target: str = ""
    message: str = ""


# ── Queries ───────────────────────────────────────────────────────────────────

class DiscoInfoEvent(_Event):
    type: Literal["disco_info"] = "disco_info"
    jid: str
    identities: List[Dict[str, str]] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)


class SoftwareVersionEvent(_Event):
    type: Literal["software_version"] = "software_version"
    jid: str
    name: str = ""
    version: str = ""
    os: str = ""


class SoftwareVersionRequestEvent(_Event):
    type: Literal["software_version_request"] = "software_version_request"
    jid: str
    id: str = ""


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    jid: str = ""
    message: str = ""


class TraceEvent(_Event):
    type: Literal["trace"] = "trace"
    direction: Literal["SENT", "RECV"]
    text: str


Event = Annotated[
    Union[
        ConnectionEvent,
        RosterEvent,
        MessageEvent,
        PrivateMessageEvent,
        ReceiptEvent,
        ChatStateEvent,
        PresenceEvent,
        SubscriptionEvent,
        RoomMessageEvent,
        RoomSubjectEvent,
        RoomBroadcastEvent,
        RoomSelfPresenceEvent,
        RoomOccupantPresenceEvent,
        RoomOccupantOfflineEvent,
        RoomOccupantNickEvent,
        RoomSelfLeftEvent,
        RoomInviteEvent,
        RoomConfigFormEvent,
        RoomConfigResultEvent,
        RoomListEvent,
        RoomsEvent,
        RoomErrorEvent,
        DiscoInfoEvent,
        SoftwareVersionEvent,
        SoftwareVersionRequestEvent,
        ErrorEvent,
        TraceEvent,
    ],
    Field(discriminator="type"),
]

_adapter: TypeAdapter = TypeAdapter(Event)


def parse_event(frame: Union[str, bytes, Dict[str, Any]]) -> _Event:
    """Validate one gateway frame.  Raises ``pydantic.ValidationError``."""
    if isinstance(frame, (str, bytes)):
        frame = json.loads(frame)
    return _adapter.validate_python(frame)
