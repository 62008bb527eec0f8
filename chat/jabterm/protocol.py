"""Outbound protocol actions.

``Protocol`` turns each action into a plain frame and hands it to ``_send``.
``GatewayProtocol`` queues frames for the websocket transport; tests
subclass ``Protocol`` and record the frames instead.
"""
from __future__ import annotations

import collections
import enum
import json
import uuid
from typing import Any, Callable, Deque, Dict, List, Optional

from jabterm.events import TraceEvent


class ConnStatus(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class Protocol:
    def __init__(self) -> None:
        self.status = ConnStatus.DISCONNECTED
        self.jid = ""

    @property
    def connected(self) -> bool:
        return self.status is ConnStatus.CONNECTED

    def _send(self, action: str, **fields: Any) -> None:
        raise NotImplementedError

    # ── One-to-one ────────────────────────────────────────────────────────────

    def send_message(
        self,
        jid: str,
        body: str,
        *,
        encrypted: Optional[str] = None,
        request_receipt: bool = False,
        state: Optional[str] = None,
    ) -> str:
        msg_id = new_id()
        self._send(
            "message",
            jid=jid,
            id=msg_id,
            body=body,
            encrypted=encrypted,
            receipt_request=request_receipt,
            state=state,
        )
        return msg_id

    def send_private_message(self, fulljid: str, body: str) -> str:
        msg_id = new_id()
        self._send("private_message", jid=fulljid, id=msg_id, body=body)
        return msg_id

    def send_chat_state(self, jid: str, state: str) -> None:
        self._send("chat_state", jid=jid, state=state)

    def send_receipt(self, jid: str, msg_id: str) -> None:
        self._send("receipt", jid=jid, id=msg_id)

    def send_presence(self, show: str = "online", status: str = "", priority: int = 0) -> None:
        self._send("presence", show=show, status=status, priority=priority)

    def subscription(self, jid: str, kind: str) -> None:
        """kind: subscribe | subscribed | unsubscribe | unsubscribed"""
        self._send("subscription", jid=jid, kind=kind)

    def roster_set(self, jid: str, name: str = "") -> None:
        """Add *jid* to the roster, or rename it if already there."""
        self._send("roster_set", jid=jid, name=name)

    def roster_remove(self, jid: str) -> None:
        self._send("roster_remove", jid=jid)

    # ── Rooms ─────────────────────────────────────────────────────────────────

    def send_room_message(self, room: str, body: str) -> str:
        msg_id = new_id()
        self._send("room_message", room=room, id=msg_id, body=body)
        return msg_id

    def join_room(self, room: str, nick: str, password: str = "") -> None:
        self._send("join_room", room=room, nick=nick, password=password)

    def leave_room(self, room: str) -> None:
        self._send("leave_room", room=room)

    def change_nick(self, room: str, nick: str) -> None:
        self._send("change_nick", room=room, nick=nick)

    def set_subject(self, room: str, subject: Optional[str]) -> None:
        self._send("set_subject", room=room, subject=subject)

    def kick(self, room: str, nick: str, reason: str = "") -> None:
        self._send("kick", room=room, nick=nick, reason=reason)

    def set_role(self, room: str, nick: str, role: str, reason: str = "") -> None:
        self._send("set_role", room=room, nick=nick, role=role, reason=reason)

    def set_affiliation(self, room: str, jid: str, affiliation: str, reason: str = "") -> None:
        self._send("set_affiliation", room=room, jid=jid, affiliation=affiliation, reason=reason)

    def request_affiliation_list(self, room: str, affiliation: str) -> None:
        self._send("affiliation_list", room=room, affiliation=affiliation)

    def request_role_list(self, room: str, role: str) -> None:
        self._send("role_list", room=room, role=role)

    def request_room_config(self, room: str) -> None:
        self._send("room_config_request", room=room)

    def submit_room_config(self, room: str, form: Dict[str, Any]) -> None:
        self._send("room_config_submit", room=room, form=form)

    def cancel_room_config(self, room: str) -> None:
        self._send("room_config_cancel", room=room)

    def accept_room_defaults(self, room: str) -> None:
        self._send("room_accept_defaults", room=room)

    def destroy_room(self, room: str, reason: str = "") -> None:
        self._send("destroy_room", room=room, reason=reason)

    def send_invite(self, room: str, jid: str, reason: str = "", password: str = "") -> None:
        self._send("invite", room=room, jid=jid, reason=reason, password=password)

    # ── Queries ───────────────────────────────────────────────────────────────

    def request_disco_info(self, jid: str) -> None:
        self._send("disco_info_request", jid=jid)

    def request_room_list(self, service: str) -> None:
        self._send("room_list_request", service=service)

    def request_software_version(self, jid: str) -> None:
        self._send("software_version_request", jid=jid)

    def send_software_version(self, jid: str, msg_id: str, name: str, version: str, os: str = "") -> None:
        self._send("software_version", jid=jid, id=msg_id, name=name, version=version, os=os)

    def disconnect(self) -> None:
        if self.status is not ConnStatus.DISCONNECTED:
            self._send("logout")
        self.status = ConnStatus.DISCONNECTED


class GatewayProtocol(Protocol):
    """Queues frames for ``jabterm.transport.GatewayConnection``.

    When ``trace`` is on, every queued frame is also echoed to *inbound* as a
    ``SENT:`` trace event so the protocol console can show it.
    """

    def __init__(self, inbound: Deque[Any]) -> None:
        super().__init__()
        self.inbound = inbound
        self.outbox: Deque[Dict[str, Any]] = collections.deque()
        self.trace = False
        self.on_send: Optional[Callable[[], None]] = None

    def _send(self, action: str, **fields: Any) -> None:
        frame = {"type": action, **fields}
        self.outbox.append(frame)
        if self.trace:
            self.inbound.append(TraceEvent(direction="SENT", text=json.dumps(frame)))
        if self.on_send:
            self.on_send()

    def drain(self) -> List[Dict[str, Any]]:
        frames = list(self.outbox)
        self.outbox.clear()
        return frames
