"""Periodic work driven by the UI loop: outgoing chat states and auto-away."""
from __future__ import annotations

import logging
from typing import Optional

from jabterm.context import AppContext
from jabterm.models import now_ts
from jabterm.prefs import Pref
from jabterm.session import ChatState
from jabterm.windows import ChatWindow

log = logging.getLogger(__name__)


def _states_enabled(ctx: AppContext, win: ChatWindow) -> bool:
    if not ctx.protocol.connected or not ctx.prefs.get_bool(Pref.STATES):
        return False
    session = ctx.sessions.get(win.barejid)
    return session is not None and session.send_states


def _send_state(ctx: AppContext, win: ChatWindow, state: ChatState) -> None:
    resource = win.resource_override or ctx.sessions.resource_for(win.barejid)
    to = f"{win.barejid}/{resource}" if resource else win.barejid
    ctx.protocol.send_chat_state(to, state.value)


def on_typing(ctx: AppContext, now: Optional[float] = None) -> None:
    """A key was pressed in the input box."""
    ctx.idle.reset()
    win = ctx.registry.current()
    if not isinstance(win, ChatWindow):
        return
    changed = win.state.activity(now)
    if changed is None or not ctx.prefs.get_bool(Pref.OUTTYPE):
        return
    if _states_enabled(ctx, win):
        _send_state(ctx, win, changed)


def tick_chat_states(ctx: AppContext, now: Optional[float] = None) -> None:
    gone_after_s = ctx.prefs.get_int(Pref.GONE) * 60
    for win in ctx.registry.windows():
        if not isinstance(win, ChatWindow):
            continue
        changed = win.state.tick(now, gone_after_s=gone_after_s)
        if changed is None:
            continue
        if changed is ChatState.PAUSED and not ctx.prefs.get_bool(Pref.OUTTYPE):
            continue
        if _states_enabled(ctx, win):
            _send_state(ctx, win, changed)
        if changed is ChatState.GONE:
            ctx.sessions.remove(win.barejid)


def tick_autoaway(ctx: AppContext, now: Optional[float] = None) -> None:
    prefs = ctx.prefs
    mode = prefs.get_string(Pref.AUTOAWAY_MODE)
    if mode == "off" or not ctx.protocol.connected:
        return
    console = ctx.registry.console()
    idle_s = ctx.idle.idle_seconds(now_ts() if now is None else now)
    limit_s = prefs.get_int(Pref.AUTOAWAY_TIME) * 60

    if not ctx.autoaway_active:
        if idle_s < limit_s or ctx.show != "online":
            return
        ctx.autoaway_active = True
        message = prefs.get_string(Pref.AUTOAWAY_MESSAGE)
        minutes = prefs.get_int(Pref.AUTOAWAY_TIME)
        if mode == "away":
            ctx.protocol.send_presence("away", message, ctx.priority)
            line = f"Idle for {minutes} minutes, status set to away (priority {ctx.priority})"
        else:
            ctx.protocol.send_presence(ctx.show, message or ctx.status, ctx.priority)
            line = f"Idle for {minutes} minutes, status remains online"
        if message:
            line += f', "{message}"'
        console.print_system(line + ".")
        ctx.mark_dirty()
        log.info("auto-away after %d minutes idle", minutes)
        return

    if idle_s >= limit_s:
        return
    ctx.autoaway_active = False
    if not prefs.get_bool(Pref.AUTOAWAY_CHECK):
        # the away presence stays in force
        if mode == "away":
            ctx.show = "away"
            ctx.status = prefs.get_string(Pref.AUTOAWAY_MESSAGE)
        return
    ctx.protocol.send_presence(ctx.show, ctx.status, ctx.priority)
    console.print_system(f"No longer idle, status set to {ctx.show} (priority {ctx.priority}).")
    ctx.mark_dirty()


def tick(ctx: AppContext, now: Optional[float] = None) -> None:
    tick_chat_states(ctx, now)
    tick_autoaway(ctx, now)
