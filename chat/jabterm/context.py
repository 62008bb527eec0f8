"""Application context shared by the dispatchers and the render layer."""
from __future__ import annotations

import dataclasses
import logging
import shutil
import subprocess
import sys
from typing import Any, Callable, List, Optional

from jabterm.chatlog import ChatLog
from jabterm.config import APP_NAME
from jabterm.crypto import EncryptionEngine, UnavailableEngine
from jabterm.form import DataForm
from jabterm.models import now_ts
from jabterm.muc import Rooms
from jabterm.prefs import Preferences
from jabterm.protocol import Protocol
from jabterm.registry import WindowRegistry
from jabterm.roster import Roster
from jabterm.session import ChatSessions
from jabterm.windows import Window

log = logging.getLogger(__name__)


class IdleTimer:
    def __init__(self) -> None:
        self._last = now_ts()

    def reset(self) -> None:
        self._last = now_ts()

    def idle_seconds(self, now: Optional[float] = None) -> float:
        return (now_ts() if now is None else now) - self._last


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class Notifier:
    def beep(self) -> None:
        pass

    def flash(self, win: Window) -> None:
        win.flash = True

    def desktop(self, title: str, body: str) -> None:
        pass


class TerminalNotifier(Notifier):
    """Bell through the Textual app, desktop popups through the OS helper."""

    def __init__(self, app: Any = None) -> None:
        self.app = app

    def beep(self) -> None:
        if self.app is not None:
            self.app.bell()

    def desktop(self, title: str, body: str) -> None:
        if sys.platform == "darwin":
            body, title = (s.replace("\\", "/").replace('"', "'") for s in (body, title))
            cmd = ["osascript", "-e", f'display notification "{body}" with title "{title}"']
        elif shutil.which("notify-send"):
            cmd = ["notify-send", "-a", APP_NAME, title, body]
        else:
            return
        try:
            subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            log.warning("desktop notification failed: %s", e)


# ---------------------------------------------------------------------------
# Autocomplete
# ---------------------------------------------------------------------------

class Autocompleter:
    def __init__(self, commands: Optional[List[str]] = None) -> None:
        self.commands = sorted(commands or [])
        self.form_fields: List[str] = []

    def add_form_fields(self, form: DataForm) -> None:
        for tag in form.tags():
            entry = f"/{tag}"
            if entry not in self.form_fields:
                self.form_fields.append(entry)

    def remove_form_fields(self, form: DataForm) -> None:
        tags = {f"/{tag}" for tag in form.tags()}
        self.form_fields = [f for f in self.form_fields if f not in tags]

    def complete(self, prefix: str) -> Optional[str]:
        if not prefix.startswith("/") or " " in prefix:
            return None
        for candidate in self.commands + self.form_fields:
            if candidate.startswith(prefix) and candidate != prefix:
                return candidate
        return None


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class AppContext:
    prefs: Preferences
    protocol: Protocol
    chatlog: ChatLog
    registry: WindowRegistry = dataclasses.field(default=None)  # type: ignore[assignment]
    sessions: ChatSessions = dataclasses.field(default_factory=ChatSessions)
    roster: Roster = dataclasses.field(default_factory=Roster)
    rooms: Rooms = dataclasses.field(default_factory=Rooms)
    otr: EncryptionEngine = dataclasses.field(default_factory=lambda: UnavailableEngine("OTR"))
    pgp: EncryptionEngine = dataclasses.field(default_factory=lambda: UnavailableEngine("PGP"))
    notifier: Notifier = dataclasses.field(default_factory=Notifier)
    idle: IdleTimer = dataclasses.field(default_factory=IdleTimer)
    completer: Autocompleter = dataclasses.field(default_factory=Autocompleter)
    account: str = ""
    show: str = "online"
    status: str = ""
    priority: int = 0
    autoaway_active: bool = False
    dirty: bool = True
    quit: Callable[[], None] = lambda: None
    connect: Optional[Callable[[str, str], None]] = None
    show_help: Optional[Callable[[List[str], str], None]] = None

    def __post_init__(self) -> None:
        if self.registry is None:
            self.registry = WindowRegistry(completer=self.completer, on_change=self.mark_dirty)

    def mark_dirty(self) -> None:
        self.dirty = True

    def title(self) -> str:
        unread = self.registry.total_unread()
        title = APP_NAME
        if unread:
            title += f" ({unread})"
        if self.account and self.protocol.connected:
            title += f" - {self.account}"
        return title
