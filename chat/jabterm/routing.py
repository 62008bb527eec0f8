"""Which window a line belongs in.

``resolve_target`` is the one place that decides where output about an
address goes when it is not obviously a message for a known conversation.
Precedence, first match wins:

1. a private room window for the full address,
2. a chat window for the bare address,
3. a room window for the bare address,
4. the console.

With ``focused_only`` the match is used only while it is the current
window; otherwise the line goes to the console so it is not missed.
"""
from __future__ import annotations

import collections

from jabterm.config import HISTORY_REPLAY_MAX
from jabterm.context import AppContext
from jabterm.jid import try_parse
from jabterm.prefs import Pref
from jabterm.windows import ChatWindow, ConsoleWindow, PrivateWindow, WinKind, Window

WINDOWS_FULL = "Cannot open window, all window slots are in use."


def console(ctx: AppContext) -> ConsoleWindow:
    return ctx.registry.console()


def resolve_target(ctx: AppContext, jid: str, focused_only: bool = False) -> Window:
    reg = ctx.registry
    parsed = try_parse(jid)
    if parsed is None:
        return reg.console()
    candidates = (
        reg.private(parsed.full) if parsed.resource else None,
        reg.chat(parsed.bare),
        reg.room(parsed.bare),
    )
    match = next((w for w in candidates if w is not None), None)
    if match is None:
        return reg.console()
    if focused_only and not reg.is_current(match):
        return reg.console()
    return match


def replay_history(ctx: AppContext, win: ChatWindow) -> int:
    recent = collections.deque(ctx.chatlog.history(win.barejid), maxlen=HISTORY_REPLAY_MAX)
    for line in recent:
        who = "me" if line.direction == "out" else line.who
        win.print(line.text, who=who, ts=line.ts, theme="history")
    return len(recent)


def ensure_chat(ctx: AppContext, barejid: str) -> ChatWindow:
    """Get or open the chat window for *barejid*.

    A newly opened window shows the logged history once, before anything
    else is printed into it.  Raises ``CapacityExceeded`` when full.
    """
    win = ctx.registry.chat(barejid)
    if win is None:
        win = ctx.registry.create(WinKind.CHAT, barejid)  # type: ignore[assignment]
    assert isinstance(win, ChatWindow)
    if not win.history_shown:
        win.history_shown = True
        if ctx.prefs.get_bool(Pref.CHLOG) and ctx.prefs.get_bool(Pref.HISTORY):
            replay_history(ctx, win)
    return win


def ensure_private(ctx: AppContext, fulljid: str) -> PrivateWindow:
    win = ctx.registry.private(fulljid)
    if win is None:
        win = ctx.registry.create(WinKind.PRIVATE, fulljid)  # type: ignore[assignment]
    assert isinstance(win, PrivateWindow)
    return win
