"""Top-level Textual application."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Deque, Optional

from textual.app import App
from textual.binding import Binding

from jabterm.config import APP_NAME
from jabterm.context import AppContext, TerminalNotifier
from jabterm.protocol import GatewayProtocol
from jabterm.transport import GatewayConnection

from .chat_screen import MainScreen
from .modals import PasswordModal

log = logging.getLogger(__name__)


class JabtermApp(App):
    """jabterm terminal UI application."""

    TITLE = APP_NAME
    BINDINGS = [Binding("ctrl+q", "quit", "Quit")]

    def __init__(
        self,
        ctx: AppContext,
        inbound: Deque[Any],
        account: str = "",
        gateway: str = "",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.ctx = ctx
        self.inbound = inbound
        self._account = account
        self._gateway = gateway
        self._conn: Optional[GatewayConnection] = None
        self._conn_task: Optional[asyncio.Task] = None
        ctx.notifier = TerminalNotifier(self)
        ctx.quit = self.exit
        ctx.connect = self.request_connect

    def on_mount(self) -> None:
        screen = MainScreen(self.ctx, self.inbound)
        self.ctx.show_help = screen.show_help
        self.push_screen(screen)
        console = self.ctx.registry.console()
        console.print_system(f"Welcome to {APP_NAME}, type /help for commands.")
        if self._account:
            self.request_connect(self._account, self._gateway)

    async def on_unmount(self) -> None:
        if self.ctx.protocol.connected:
            self.ctx.protocol.disconnect()
        if self._conn is not None:
            self._conn.close()
        if self._conn_task is not None:
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(self._conn_task, timeout=2)

    # ── Connection ────────────────────────────────────────────────────────────

    def request_connect(self, jid: str, url: str) -> None:
        def _got_password(password: Optional[str]) -> None:
            if password is None:
                self.ctx.registry.console().print_system("Login cancelled.")
                self.ctx.mark_dirty()
                return
            self._start_connection(jid, url, password)

        self.push_screen(PasswordModal(jid), _got_password)

    def _start_connection(self, jid: str, url: str, password: str) -> None:
        protocol = self.ctx.protocol
        assert isinstance(protocol, GatewayProtocol)
        self._conn = GatewayConnection(url, jid, protocol, self.inbound, password=password)
        log.info("connecting to %s as %s", url, jid)
        self._conn_task = asyncio.create_task(self._conn.run())
