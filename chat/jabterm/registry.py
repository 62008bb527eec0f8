"""Numbered window registry.

Windows live in numbered slots ``1..max_slots``.  Slot 1 always holds the
console.  Users see and type slot 10 as "0", matching the number keys.

The registry is the only writer of ``Window.slot`` and of the current-window
pointer.  Switching the current window is a single call that also moves
room-configuration field completions from the outgoing window to the
incoming one.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from jabterm.config import CONSOLE_SLOT, MAX_WINDOWS
from jabterm.form import DataForm
from jabterm.windows import (
    WINDOW_CLASSES,
    ChatWindow,
    ConsoleWindow,
    PrivateWindow,
    RoomConfigWindow,
    RoomWindow,
    TraceWindow,
    WinKind,
    Window,
)

log = logging.getLogger(__name__)


class WindowError(Exception):
    pass


class CapacityExceeded(WindowError):
    """Every window slot is in use."""


class NotFound(WindowError):
    """A slot named in the operation is empty or may not be used."""


class FieldCompleter(Protocol):
    def add_form_fields(self, form: DataForm) -> None: ...

    def remove_form_fields(self, form: DataForm) -> None: ...


def display_num(slot: int) -> str:
    return "0" if slot == 10 else str(slot)


def parse_num(text: str) -> Optional[int]:
    """Turn a user-typed window number into a slot.  "0" is slot 10."""
    text = (text or "").strip()
    if not text.isdigit():
        return None
    n = int(text)
    if n == 0:
        return 10
    if 1 <= n <= 9:
        return n
    return None


class WindowRegistry:
    def __init__(
        self,
        max_slots: int = MAX_WINDOWS,
        completer: Optional[FieldCompleter] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.max_slots = max_slots
        self.completer = completer
        self.on_change = on_change
        self._wins: Dict[int, Window] = {}
        self._by_key: Dict[Tuple[WinKind, str], Window] = {}
        console = ConsoleWindow()
        self._place(console, CONSOLE_SLOT)
        self._current: Window = console

    # ── Internals ─────────────────────────────────────────────────────────────

    def _place(self, win: Window, slot: int) -> None:
        assert type(win) is WINDOW_CLASSES[win.kind], f"{win!r} carries the wrong kind tag"
        win.slot = slot
        self._wins[slot] = win
        self._by_key[(win.kind, win.key)] = win

    def _changed(self) -> None:
        if self.on_change:
            self.on_change()

    def _next_free_slot(self) -> Optional[int]:
        return next(
            (n for n in range(CONSOLE_SLOT + 1, self.max_slots + 1) if n not in self._wins),
            None,
        )

    # ── Creation ──────────────────────────────────────────────────────────────

    def create(self, kind: WinKind, key: str = "", **payload) -> Window:
        """Open a window of *kind* for *key*, or return the one already open.

        Raises ``CapacityExceeded`` when no slot is free.
        """
        if kind is WinKind.CONSOLE:
            return self._wins[CONSOLE_SLOT]
        if kind is WinKind.TRACE:
            key = "xmlconsole"
        elif kind is WinKind.ROOM_CONFIG:
            key = f"{key} config"
        existing = self._by_key.get((kind, key))
        if existing is not None:
            return existing

        slot = self._next_free_slot()
        if slot is None:
            raise CapacityExceeded(f"All {self.max_slots} window slots are in use")

        if kind is WinKind.CHAT:
            win: Window = ChatWindow(key)
        elif kind is WinKind.PRIVATE:
            win = PrivateWindow(key)
        elif kind is WinKind.ROOM:
            win = RoomWindow(
                key,
                occupants_visible=payload.get("occupants_visible", True),
                show_jid=payload.get("show_jid", False),
            )
        elif kind is WinKind.ROOM_CONFIG:
            win = RoomConfigWindow(key[: -len(" config")], payload["form"])
        elif kind is WinKind.TRACE:
            win = TraceWindow()
        else:
            raise AssertionError(f"unhandled window kind {kind!r}")

        self._place(win, slot)
        log.debug("opened %r", win)
        self._changed()
        return win

    # ── Lookup ────────────────────────────────────────────────────────────────

    def lookup_by_key(self, kind: WinKind, key: str) -> Optional[Window]:
        if kind is WinKind.ROOM_CONFIG and not key.endswith(" config"):
            key = f"{key} config"
        return self._by_key.get((kind, key))

    def lookup_by_slot(self, slot: int) -> Optional[Window]:
        return self._wins.get(slot)

    def console(self) -> ConsoleWindow:
        win = self._wins[CONSOLE_SLOT]
        assert isinstance(win, ConsoleWindow)
        return win

    def chat(self, barejid: str) -> Optional[ChatWindow]:
        return self._by_key.get((WinKind.CHAT, barejid))  # type: ignore[return-value]

    def private(self, fulljid: str) -> Optional[PrivateWindow]:
        return self._by_key.get((WinKind.PRIVATE, fulljid))  # type: ignore[return-value]

    def room(self, roomjid: str) -> Optional[RoomWindow]:
        return self._by_key.get((WinKind.ROOM, roomjid))  # type: ignore[return-value]

    def room_config(self, roomjid: str) -> Optional[RoomConfigWindow]:
        return self._by_key.get((WinKind.ROOM_CONFIG, f"{roomjid} config"))  # type: ignore[return-value]

    def trace(self) -> Optional[TraceWindow]:
        return self._by_key.get((WinKind.TRACE, "xmlconsole"))  # type: ignore[return-value]

    def privates_for_room(self, roomjid: str) -> List[PrivateWindow]:
        prefix = f"{roomjid}/"
        return [
            w for w in self.windows()
            if isinstance(w, PrivateWindow) and w.fulljid.startswith(prefix)
        ]

    def chat_recipients(self) -> List[str]:
        return [w.barejid for w in self.windows() if isinstance(w, ChatWindow)]

    def windows(self) -> List[Window]:
        return [self._wins[n] for n in sorted(self._wins)]

    def slots(self) -> List[int]:
        return sorted(self._wins)

    def __len__(self) -> int:
        return len(self._wins)

    # ── Current window ────────────────────────────────────────────────────────

    def current(self) -> Window:
        return self._current

    @property
    def current_slot(self) -> int:
        return self._current.slot

    def is_current(self, win: Window) -> bool:
        return win is self._current

    def set_current(self, slot: int) -> Window:
        incoming = self._wins.get(slot)
        if incoming is None:
            raise NotFound(f"Window {display_num(slot)} does not exist")
        outgoing = self._current
        if incoming is not outgoing:
            if self.completer:
                if isinstance(outgoing, RoomConfigWindow):
                    self.completer.remove_form_fields(outgoing.form)
                if isinstance(incoming, RoomConfigWindow):
                    self.completer.add_form_fields(incoming.form)
            self._current = incoming
        incoming.clear_unread()
        self._changed()
        return incoming

    def focus(self, win: Window) -> Window:
        return self.set_current(win.slot)

    # ── Removal and reordering ────────────────────────────────────────────────

    def close(self, slot: int) -> Optional[Window]:
        """Remove the window in *slot*.  Focus falls back to the console."""
        if slot == CONSOLE_SLOT:
            raise WindowError("Cannot close console window")
        win = self._wins.get(slot)
        if win is None:
            return None
        if win is self._current:
            self.set_current(CONSOLE_SLOT)
        del self._wins[slot]
        if self._by_key.get((win.kind, win.key)) is win:
            del self._by_key[(win.kind, win.key)]
        win.slot = 0
        log.debug("closed %r from slot %d", win, slot)
        self._changed()
        return win

    def rekey(self, win: Window, key: str) -> Window:
        """Move *win* to *key*.  Returns the window now holding *key*.

        If another window of the same kind already holds *key*, that one
        survives: it takes over *win*'s lines (and focus, if *win* had it)
        and *win* is closed.
        """
        existing = self._by_key.get((win.kind, key))
        if existing is not None and existing is not win:
            merged = sorted([*existing.lines, *win.lines], key=lambda line: line.ts)
            existing.lines.clear()
            existing.lines.extend(merged)
            for _ in range(win.unread_count()):
                existing.mark_unread()
            if isinstance(existing, PrivateWindow):
                existing.occupant_offline = False
            was_current = win is self._current
            self.close(win.slot)
            if was_current:
                self.set_current(existing.slot)
            log.debug("merged %r into %r", win, existing)
            return existing

        if self._by_key.get((win.kind, win.key)) is win:
            del self._by_key[(win.kind, win.key)]
        win.key = key
        if isinstance(win, PrivateWindow):
            win.fulljid = key
        self._by_key[(win.kind, key)] = win
        self._changed()
        return win

    def swap(self, a: int, b: int) -> None:
        for slot in (a, b):
            if slot == CONSOLE_SLOT or slot not in self._wins:
                raise NotFound(f"Window {display_num(slot)} does not exist")
        if a == b:
            return
        win_a, win_b = self._wins[a], self._wins[b]
        self._wins[a], self._wins[b] = win_b, win_a
        win_a.slot, win_b.slot = b, a
        self._changed()

    def tidy(self) -> bool:
        """Close gaps in the numbering, keeping relative order."""
        ordered = [self._wins[n] for n in sorted(self._wins) if n != CONSOLE_SLOT]
        changed = False
        renumbered: Dict[int, Window] = {CONSOLE_SLOT: self._wins[CONSOLE_SLOT]}
        for slot, win in enumerate(ordered, start=CONSOLE_SLOT + 1):
            if win.slot != slot:
                changed = True
            win.slot = slot
            renumbered[slot] = win
        self._wins = renumbered
        if changed:
            self._changed()
        return changed

    def prune(self) -> List[Window]:
        """Windows that may be closed automatically: read chats and privates
        that are not in focus."""
        return [
            w for w in self.windows()
            if w.kind in (WinKind.CHAT, WinKind.PRIVATE)
            and w.unread_count() == 0
            and w is not self._current
        ]

    def total_unread(self) -> int:
        return sum(w.unread_count() for w in self._wins.values())
