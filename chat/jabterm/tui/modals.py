"""Modal dialogs for the jabterm TUI."""
from __future__ import annotations

from typing import List

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, RichLog

from rich.markup import escape as markup_escape


class PasswordModal(ModalScreen):
    """Asks for the account password before logging in.

    Dismisses with the password, or ``None`` when cancelled.
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    DEFAULT_CSS = """
    PasswordModal {
        align: center middle;
    }
    #password-box {
        width: 64;
        height: auto;
        border: solid $primary;
        padding: 1 2;
        background: $surface;
    }
    #password-title {
        text-style: bold;
        margin-bottom: 1;
    }
    #password-buttons {
        layout: horizontal;
        height: auto;
        margin-top: 1;
    }
    #btn-password-cancel { width: 1fr; margin-right: 1; }
    #btn-password-ok     { width: 1fr; }
    """

    def __init__(self, jid: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self._jid = jid

    def compose(self) -> ComposeResult:
        with Vertical(id="password-box"):
            yield Label(f"Enter password for {markup_escape(self._jid)}", id="password-title")
            yield Input(password=True, id="input-password")
            with Horizontal(id="password-buttons"):
                yield Button("Cancel", id="btn-password-cancel")
                yield Button("Log in", id="btn-password-ok", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#input-password", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-password-ok":
            self.dismiss(self.query_one("#input-password", Input).value)
        else:
            self.dismiss(None)

    def action_cancel(self) -> None:
        self.dismiss(None)


class HelpModal(ModalScreen):
    """Command reference overlay.

    Typing in the filter box narrows the listing to lines containing the
    text, so ``join`` shows just the room joining commands.
    """

    BINDINGS = [Binding("escape", "dismiss", "Close")]

    DEFAULT_CSS = """
    HelpModal {
        align: center middle;
    }
    #help-frame {
        width: 96;
        height: 85vh;
        max-height: 46;
        border: round $accent;
        background: $surface;
    }
    #help-heading {
        width: 100%;
        padding: 0 2;
        text-style: bold reverse;
    }
    #help-filter {
        margin: 0 1;
    }
    #help-body {
        height: 1fr;
        padding: 0 1;
    }
    #help-status {
        padding: 0 2;
        color: $text-muted;
    }
    """

    def __init__(self, lines: List[str], title: str = "jabterm: commands", **kwargs) -> None:
        super().__init__(**kwargs)
        self._lines = list(lines)
        self._title = title

    def compose(self) -> ComposeResult:
        with Vertical(id="help-frame"):
            yield Label(markup_escape(self._title), id="help-heading")
            yield Input(placeholder="filter", id="help-filter")
            yield RichLog(id="help-body", markup=False, highlight=False, wrap=True, auto_scroll=False)
            yield Label("", id="help-status")

    def on_mount(self) -> None:
        self._show_matching("")
        self.query_one("#help-filter", Input).focus()

    def on_input_changed(self, event: Input.Changed) -> None:
        self._show_matching(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss()

    def _show_matching(self, needle: str) -> None:
        body = self.query_one("#help-body", RichLog)
        body.clear()
        needle = needle.strip().lower()
        shown = [line for line in self._lines if not needle or needle in line.lower()]
        for line in shown:
            body.write(line)
        body.scroll_home(animate=False)
        status = f"{len(shown)} of {len(self._lines)} lines" if needle else "Esc or Enter to close"
        self.query_one("#help-status", Label).update(status)
