"""Rendering helpers: nick colours, chat emphasis and window line markup."""
from __future__ import annotations

import re
import time
import zlib
from typing import Optional

from rich.markup import escape as markup_escape

from jabterm.windows import Line


# ---------------------------------------------------------------------------
# Nick colours
# ---------------------------------------------------------------------------

_NICK_COLORS = (
    "cyan", "yellow", "magenta", "green", "blue", "red",
    "bright_cyan", "bright_yellow", "bright_magenta", "bright_green",
    "dark_orange", "deep_pink2", "medium_purple", "steel_blue1",
)


def _nick_color(name: str) -> str:
    """Rich colour for *name*, the same on every run and for every case."""
    return _NICK_COLORS[zlib.crc32(name.lower().encode("utf-8")) % len(_NICK_COLORS)]


# ---------------------------------------------------------------------------
# Message text → Rich markup
# ---------------------------------------------------------------------------

# Applied in order to already-escaped text.
_INLINE_RULES = (
    (re.compile(r"`([^`\n]+)`"), r"[reverse] \1 [/reverse]"),
    (re.compile(r"\*([^*\n]+)\*"), r"[bold]\1[/bold]"),
    (re.compile(r"(?<!\w)_([^_\n]+)_(?!\w)"), r"[underline]\1[/underline]"),
    (re.compile(r"(https?://[^\s\[\]]+)"), r"[link=\1][u]\1[/u][/link]"),
)


def _render_text(text: str) -> str:
    """Escape *text* and apply the usual chat emphasis.

    ``*bold*``, ``_underline_`` and `` `code` `` spans are styled and
    ``http(s)://`` addresses become terminal links.
    """
    out = markup_escape(text)
    for pattern, repl in _INLINE_RULES:
        out = pattern.sub(repl, out)
    return out


# ---------------------------------------------------------------------------
# Window lines
# ---------------------------------------------------------------------------

_THEME_STYLE = {
    "error": "bold red",
    "system": "dim italic",
    "history": "dim",
    "otr": "green",
    "typing": "dim yellow",
}


def _timestamp(ts: float, time_fmt: str) -> str:
    if not time_fmt:
        return ""
    try:
        return f"[dim]{markup_escape(time.strftime(time_fmt, time.localtime(ts)))}[/dim] "
    except ValueError:
        return ""


def format_line(line: Line, time_fmt: str = "%H:%M:%S", my_name: Optional[str] = None) -> str:
    """Rich markup for one window line."""
    stamp = _timestamp(line.ts, time_fmt)
    if not line.who:
        style = _THEME_STYLE.get(line.theme, "")
        body = markup_escape(f"{line.ch} {line.text}" if line.ch == "!" else line.text)
        return f"{stamp}[{style}]{body}[/{style}]" if style else f"{stamp}{body}"

    if line.who == "me":
        author = f"[bold green]{markup_escape(my_name or 'me')}[/bold green]"
    else:
        color = _nick_color(line.who)
        author = f"[bold {color}]{markup_escape(line.who)}[/bold {color}]"

    if line.text.startswith("/me "):
        rendered = f"* {author} {_render_text(line.text[4:])}"
    else:
        rendered = f"{author}: {_render_text(line.text)}"
    if line.receipt_id:
        rendered += " [green]✓[/green]" if line.received else " [dim]…[/dim]"

    if line.theme == "history":
        return f"{stamp}[dim]{rendered}[/dim]"
    if line.theme == "mention":
        return f"[on navy_blue]{stamp}{rendered}[/on navy_blue]"
    return f"{stamp}{rendered}"
