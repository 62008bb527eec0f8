"""Main window-based chat screen."""
from __future__ import annotations

import logging
import time
from typing import Any, Deque, Optional, Tuple

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.screen import Screen
from textual.suggester import Suggester
from textual.widgets import Footer, Header, Input, RichLog, Static

from rich.markup import escape as markup_escape

from jabterm import timers
from jabterm.commands import CommandDispatcher
from jabterm.config import INPUT_POLL_S
from jabterm.context import AppContext
from jabterm.inbound import InboundDispatcher
from jabterm.jid import Jid
from jabterm.prefs import Pref
from jabterm.registry import NotFound, display_num
from jabterm.windows import ChatWindow, RoomWindow, Window

from ._utils import _nick_color, format_line
from .modals import HelpModal

log = logging.getLogger(__name__)

_ROLE_ORDER = ("moderator", "participant", "visitor", "none")


class CommandSuggester(Suggester):
    """Inline completion of command names and form field tags."""

    def __init__(self, ctx: AppContext) -> None:
        super().__init__(use_cache=False, case_sensitive=True)
        self.ctx = ctx

    async def get_suggestion(self, value: str) -> Optional[str]:
        return self.ctx.completer.complete(value)


class MainScreen(Screen):
    """Numbered windows over one shared message area."""

    BINDINGS = [
        Binding("ctrl+q", "app.quit", "Quit"),
        Binding("f1", "show_help", "Help"),
        Binding("escape", "focus_input", "Focus input", show=False),
        Binding("pageup", "scroll_log(-1)", "Scroll up", show=False),
        Binding("pagedown", "scroll_log(1)", "Scroll down", show=False),
    ] + [
        Binding(f"alt+{n % 10}", f"switch_window({n})", f"Window {n % 10}", show=False)
        for n in range(1, 11)
    ]

    DEFAULT_CSS = """
    MainScreen {
        layout: vertical;
    }
    #window-bar {
        height: 1;
        background: $primary-darken-2;
        padding: 0 1;
    }
    #chat-body {
        height: 1fr;
    }
    #message-log {
        width: 1fr;
        padding: 0 1;
    }
    #occupant-list {
        width: 26;
        border-left: solid $primary-darken-2;
        padding: 0 1;
    }
    #status-line {
        height: 1;
        color: $text-muted;
        padding: 0 1;
    }
    #message-input {
        dock: bottom;
        height: 3;
        border-top: solid $primary-darken-2;
    }
    """

    def __init__(self, ctx: AppContext, inbound: Deque[Any], **kwargs) -> None:
        super().__init__(**kwargs)
        self.ctx = ctx
        self.inbound = inbound
        self.inbound_dispatcher = InboundDispatcher(ctx)
        self.commands = CommandDispatcher(ctx)
        self._last_tick = 0.0
        self._shown: Tuple[int, int, int] = (0, -1, -1)

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="window-bar")
        with Horizontal(id="chat-body"):
            yield RichLog(id="message-log", markup=True, auto_scroll=True, highlight=False, wrap=True)
            yield RichLog(id="occupant-list", markup=True, auto_scroll=False, highlight=False)
        yield Static("", id="status-line")
        yield Input(
            placeholder="Type a message... (/help for commands)",
            id="message-input",
            suggester=CommandSuggester(self.ctx),
        )
        yield Footer()

    def on_mount(self) -> None:
        self.set_interval(INPUT_POLL_S, self._pump)
        self.query_one("#message-input", Input).focus()
        self._redraw(force=True)

    # ── Event pump ────────────────────────────────────────────────────────────

    def _pump(self) -> None:
        while self.inbound:
            self.inbound_dispatcher.dispatch(self.inbound.popleft())
        now = time.time()
        if now - self._last_tick >= 1.0:
            self._last_tick = now
            timers.tick(self.ctx, now)
        if self.ctx.dirty:
            self._redraw()

    # ── Rendering ─────────────────────────────────────────────────────────────

    def _tab_label(self, win: Window) -> str:
        num = display_num(win.slot)
        label = markup_escape(win.label())
        unread = win.unread_count()
        if self.ctx.registry.is_current(win):
            return f"[reverse] {num}:{label} [/reverse]"
        if unread:
            style = "bold yellow reverse" if win.flash else "bold yellow"
            return f"[{style}] {num}:{label}({unread}) [/{style}]"
        return f" {num}:{label} "

    def _status_text(self, win: Window) -> str:
        parts = []
        ctx = self.ctx
        if isinstance(win, ChatWindow):
            contact = ctx.roster.get(win.barejid)
            who = ctx.roster.display_name(win.barejid)
            resource = win.resource_override or ctx.sessions.resource_for(win.barejid)
            if resource and ctx.prefs.get_bool(Pref.RESOURCE_MESSAGE):
                who += f"/{resource}"
            parts.append(markup_escape(who))
            if contact is not None:
                best = contact.best_resource()
                parts.append(best.show if best else "offline")
            if win.enc_mode.value != "none":
                trust = "trusted" if win.otr_trusted else "untrusted"
                parts.append(f"[green]{win.enc_mode.value.upper()}[/green]"
                             + (f" {trust}" if win.enc_mode.value == "otr" else ""))
            if win.typing and ctx.prefs.get_bool(Pref.INTYPE):
                parts.append("[italic]typing...[/italic]")
        elif isinstance(win, RoomWindow):
            room = ctx.rooms.get(win.roomjid)
            parts.append(markup_escape(win.roomjid))
            if room is not None:
                parts.append(f"{room.role}/{room.affiliation}")
                if room.subject:
                    parts.append(markup_escape(room.subject))
        if ctx.protocol.connected:
            parts.append(f"{markup_escape(ctx.account)} ({ctx.show})")
        else:
            parts.append("offline")
        return "  |  ".join(parts)

    def _render_occupants(self, win: RoomWindow) -> None:
        panel = self.query_one("#occupant-list", RichLog)
        panel.clear()
        occupants = self.ctx.rooms.occupants(win.roomjid)
        for role in _ROLE_ORDER:
            group = [o for o in occupants if o.role == role]
            if not group:
                continue
            panel.write(f"[bold]{role.capitalize()}s[/bold]")
            for o in sorted(group, key=lambda o: o.nick.lower()):
                color = _nick_color(o.nick)
                panel.write(f" [{color}]{markup_escape(o.nick)}[/{color}]")
                if win.show_jid and o.jid:
                    panel.write(f"   [dim]{markup_escape(o.jid)}[/dim]")

    def _redraw(self, force: bool = False) -> None:
        ctx = self.ctx
        ctx.dirty = False
        reg = ctx.registry
        win = reg.current()
        win.clear_unread()
        win.flash = False

        self.query_one("#window-bar", Static).update(
            "".join(self._tab_label(w) for w in reg.windows())
        )
        self.query_one("#status-line", Static).update(self._status_text(win))
        self.app.title = ctx.title()

        panel = self.query_one("#occupant-list", RichLog)
        panel.display = isinstance(win, RoomWindow) and win.occupants_visible
        if panel.display:
            self._render_occupants(win)  # type: ignore[arg-type]

        last = win.lines[-1] if win.lines else None
        shown = (id(win), len(win.lines), id(last))
        if not force and shown == self._shown and not any(l.receipt_id for l in win.lines):
            return
        self._shown = shown
        time_fmt = ctx.prefs.get_string(Pref.TIME)
        my_name = Jid.parse(ctx.account).local if ctx.account else None
        message_log = self.query_one("#message-log", RichLog)
        message_log.clear()
        for line in win.lines:
            message_log.write(format_line(line, time_fmt, my_name))

    # ── Input handling ────────────────────────────────────────────────────────

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.value and not event.value.startswith("/"):
            timers.on_typing(self.ctx)
        else:
            self.ctx.idle.reset()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        text = event.value
        self.query_one("#message-input", Input).value = ""
        if not text.strip():
            return
        self.commands.handle_input(text)
        self._redraw()

    # ── Actions ───────────────────────────────────────────────────────────────

    def action_switch_window(self, num: int) -> None:
        try:
            self.ctx.registry.set_current(num)
        except NotFound:
            return
        self._redraw()

    def action_show_help(self) -> None:
        self.commands.handle_input("/help")

    def show_help(self, lines: list, title: str) -> None:
        self.app.push_screen(HelpModal(lines, title))

    def action_focus_input(self) -> None:
        self.query_one("#message-input", Input).focus()

    def action_scroll_log(self, direction: int) -> None:
        message_log = self.query_one("#message-log", RichLog)
        if direction < 0:
            message_log.scroll_page_up(animate=False)
        else:
            message_log.scroll_page_down(animate=False)
