"""Per-conversation session state: chat states, resources and encryption mode.

Chat states follow the usual composing/paused/inactive/gone progression.
Local keystrokes and sent messages drive the machine forward; a periodic
``tick`` ages it.  Every transition returns the state that should be
announced to the counterpart (or ``None``) so callers decide whether the
counterpart is actually told.

Encryption mode lives on each chat window.  ``start_otr``, ``start_pgp``
and ``end_encryption`` are the only functions that change it, so a mode can
never flip without passing through an explicit start or end.
"""
from __future__ import annotations

import dataclasses
import enum
from typing import TYPE_CHECKING, Dict, Optional

from jabterm.config import INACTIVE_TIMEOUT_S, PAUSED_TIMEOUT_S
from jabterm.models import now_ts

if TYPE_CHECKING:
    from jabterm.windows import ChatWindow


class ChatState(str, enum.Enum):
    ACTIVE = "active"
    COMPOSING = "composing"
    PAUSED = "paused"
    INACTIVE = "inactive"
    GONE = "gone"


class EncMode(str, enum.Enum):
    NONE = "none"
    OTR = "otr"
    PGP = "pgp"


class EncryptionConflict(Exception):
    """Raised when one encryption mode is started while the other is active."""


OTR_BLOCKED_BY_PGP = "You must disable PGP encryption before starting an OTR session."
PGP_BLOCKED_BY_OTR = "You must end the OTR session to start PGP encryption."


# ---------------------------------------------------------------------------
# Chat state machine
# ---------------------------------------------------------------------------

class ChatStateMachine:
    def __init__(self) -> None:
        self.state = ChatState.GONE
        self._since = now_ts()

    def _enter(self, state: ChatState, now: Optional[float]) -> ChatState:
        self.state = state
        self._since = now_ts() if now is None else now
        return state

    def elapsed(self, now: Optional[float] = None) -> float:
        return (now_ts() if now is None else now) - self._since

    def activity(self, now: Optional[float] = None) -> Optional[ChatState]:
        """The user typed into the conversation."""
        if self.state is ChatState.COMPOSING:
            self._since = now_ts() if now is None else now
            return None
        return self._enter(ChatState.COMPOSING, now)

    def active(self, now: Optional[float] = None) -> Optional[ChatState]:
        """A message was sent.  The message itself carries the state."""
        self._enter(ChatState.ACTIVE, now)
        return None

    def tick(self, now: Optional[float] = None, gone_after_s: float = 0) -> Optional[ChatState]:
        elapsed = self.elapsed(now)
        if self.state is ChatState.COMPOSING and elapsed > PAUSED_TIMEOUT_S:
            return self._enter(ChatState.PAUSED, now)
        if self.state in (ChatState.ACTIVE, ChatState.PAUSED) and elapsed > INACTIVE_TIMEOUT_S:
            return self._enter(ChatState.INACTIVE, now)
        if self.state is ChatState.INACTIVE and gone_after_s and elapsed > gone_after_s:
            return self._enter(ChatState.GONE, now)
        return None

    def gone(self, now: Optional[float] = None) -> Optional[ChatState]:
        if self.state is ChatState.GONE:
            return None
        return self._enter(ChatState.GONE, now)

    def reset(self) -> None:
        self._enter(ChatState.GONE, None)


# ---------------------------------------------------------------------------
# Chat sessions (which resource we are talking to)
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class ChatSession:
    barejid: str
    resource: str
    send_states: bool = True


class ChatSessions:
    """Tracks, per bare address, the resource the conversation is bound to."""

    def __init__(self) -> None:
        self._sessions: Dict[str, ChatSession] = {}

    def on_message(self, barejid: str, resource: str, send_states: bool) -> ChatSession:
        session = self._sessions.get(barejid)
        if session is None or session.resource != resource:
            session = ChatSession(barejid=barejid, resource=resource, send_states=send_states)
            self._sessions[barejid] = session
        else:
            session.send_states = send_states
        return session

    def get(self, barejid: str) -> Optional[ChatSession]:
        return self._sessions.get(barejid)

    def resource_for(self, barejid: str) -> str:
        session = self._sessions.get(barejid)
        return session.resource if session else ""

    def remove(self, barejid: str) -> None:
        self._sessions.pop(barejid, None)

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, barejid: str) -> bool:
        return barejid in self._sessions


# ---------------------------------------------------------------------------
# Encryption mode transitions
# ---------------------------------------------------------------------------

def start_otr(win: ChatWindow, trusted: bool = False) -> None:
    if win.enc_mode is EncMode.PGP:
        raise EncryptionConflict(OTR_BLOCKED_BY_PGP)
    win.enc_mode = EncMode.OTR
    win.otr_trusted = trusted


def start_pgp(win: ChatWindow) -> None:
    if win.enc_mode is EncMode.OTR:
        raise EncryptionConflict(PGP_BLOCKED_BY_OTR)
    win.enc_mode = EncMode.PGP


def end_encryption(win: ChatWindow) -> EncMode:
    """Drop back to plaintext.  Returns the mode that was active."""
    previous = win.enc_mode
    win.enc_mode = EncMode.NONE
    win.otr_trusted = False
    return previous
