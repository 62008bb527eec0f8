"""Window variants.

Each window kind is its own class with a fixed ``kind`` tag.  Code that only
needs the common surface (unread counting, printing, labels) works against
``Window``; code that needs kind-specific state narrows on ``kind`` first.
"""
from __future__ import annotations

import collections
import dataclasses
import enum
from typing import Deque, Optional

from jabterm.config import WIN_BUFFER_MAX
from jabterm.form import DataForm
from jabterm.models import now_ts
from jabterm.session import ChatStateMachine, EncMode


class WinKind(str, enum.Enum):
    CONSOLE = "console"
    CHAT = "chat"
    PRIVATE = "private"
    ROOM = "room"
    ROOM_CONFIG = "room-config"
    TRACE = "trace"


@dataclasses.dataclass
class Line:
    text: str
    ts: float = dataclasses.field(default_factory=now_ts)
    ch: str = "-"
    theme: str = "default"  # default|incoming|me|mention|error|system|typing|history|otr
    who: str = ""
    receipt_id: str = ""
    received: bool = False


class Window:
    kind: WinKind = WinKind.CONSOLE

    def __init__(self, key: str = "") -> None:
        self.key = key
        self.slot = 0
        self.lines: Deque[Line] = collections.deque(maxlen=WIN_BUFFER_MAX)
        self.flash = False
        self._unread = 0

    # ── Unread ────────────────────────────────────────────────────────────────

    def mark_unread(self) -> None:
        self._unread += 1

    def clear_unread(self) -> None:
        self._unread = 0
        self.flash = False

    def unread_count(self) -> int:
        return self._unread

    # ── Output ────────────────────────────────────────────────────────────────

    def print(
        self,
        text: str,
        *,
        ch: str = "-",
        theme: str = "default",
        who: str = "",
        ts: Optional[float] = None,
        receipt_id: str = "",
    ) -> Line:
        line = Line(
            text=text,
            ts=now_ts() if ts is None else ts,
            ch=ch,
            theme=theme,
            who=who,
            receipt_id=receipt_id,
        )
        self.lines.append(line)
        return line

    def print_error(self, text: str) -> Line:
        return self.print(text, ch="!", theme="error")

    def print_system(self, text: str) -> Line:
        return self.print(text, ch="-", theme="system")

    def clear(self) -> None:
        self.lines.clear()

    # ── Descriptors ───────────────────────────────────────────────────────────

    def label(self) -> str:
        return self.key or self.kind.value

    def has_unsaved_changes(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} slot={self.slot} key={self.key!r}>"


class ConsoleWindow(Window):
    kind = WinKind.CONSOLE

    def __init__(self) -> None:
        super().__init__(key="console")

    def label(self) -> str:
        return "console"


class ChatWindow(Window):
    kind = WinKind.CHAT

    def __init__(self, barejid: str) -> None:
        super().__init__(key=barejid)
        self.barejid = barejid
        self.enc_mode = EncMode.NONE
        self.otr_trusted = False
        self.resource_override = ""
        self.state = ChatStateMachine()
        self.typing = False
        self.history_shown = False

    def mark_received(self, receipt_id: str) -> bool:
        for line in reversed(self.lines):
            if line.receipt_id and line.receipt_id == receipt_id:
                line.received = True
                return True
        return False


class PrivateWindow(Window):
    kind = WinKind.PRIVATE

    def __init__(self, fulljid: str) -> None:
        super().__init__(key=fulljid)
        self.fulljid = fulljid
        self.occupant_offline = False

    @property
    def roomjid(self) -> str:
        return self.fulljid.split("/", 1)[0]

    @property
    def nick(self) -> str:
        return self.fulljid.split("/", 1)[1] if "/" in self.fulljid else ""


class RoomWindow(Window):
    kind = WinKind.ROOM

    def __init__(self, roomjid: str, occupants_visible: bool = True, show_jid: bool = False) -> None:
        super().__init__(key=roomjid)
        self.roomjid = roomjid
        self.occupants_visible = occupants_visible
        self.show_jid = show_jid


class RoomConfigWindow(Window):
    kind = WinKind.ROOM_CONFIG

    def __init__(self, roomjid: str, form: DataForm) -> None:
        super().__init__(key=f"{roomjid} config")
        self.roomjid = roomjid
        self.form = form

    def has_unsaved_changes(self) -> bool:
        return self.form.modified


class TraceWindow(Window):
    kind = WinKind.TRACE

    def __init__(self) -> None:
        super().__init__(key="xmlconsole")

    def label(self) -> str:
        return "xmlconsole"


WINDOW_CLASSES = {
    WinKind.CONSOLE: ConsoleWindow,
    WinKind.CHAT: ChatWindow,
    WinKind.PRIVATE: PrivateWindow,
    WinKind.ROOM: RoomWindow,
    WinKind.ROOM_CONFIG: RoomConfigWindow,
    WinKind.TRACE: TraceWindow,
}
