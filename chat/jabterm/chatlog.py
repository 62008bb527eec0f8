"""Append-only conversation logs, one JSON-lines file per counterpart."""
from __future__ import annotations

import dataclasses
import json
import logging
import re
from pathlib import Path
from typing import Iterator, Optional

import jabterm.config as _cfg
from jabterm.models import now_ts
from jabterm.prefs import Pref, Preferences
from jabterm.session import EncMode

log = logging.getLogger(__name__)

REDACTED = "[redacted]"

_UNSAFE = re.compile(r"[^\w.@-]")


@dataclasses.dataclass
class LogLine:
    ts: float
    who: str
    text: str
    direction: str = "in"   # in | out


def _safe_name(jid: str) -> str:
    return _UNSAFE.sub("_", jid.replace("@", "_at_"))


def loggable_text(prefs: Preferences, mode: EncMode, text: str) -> Optional[str]:
    """What to store for *text* sent or received under *mode*, or None to skip."""
    if mode is EncMode.NONE:
        return text
    setting = prefs.get_string(Pref.OTR_LOG if mode is EncMode.OTR else Pref.PGP_LOG)
    if setting == "on":
        return text
    if setting == "redact":
        return REDACTED
    return None


class ChatLog:
    def __init__(self, account: str, base_dir: Optional[Path] = None,
                 prefs: Optional[Preferences] = None) -> None:
        self.account = account
        self.base_dir = base_dir
        self.prefs = prefs or Preferences()

    def _dir(self, kind: str) -> Path:
        root = self.base_dir or _cfg.CHATLOG_DIR
        return root / _safe_name(self.account) / kind

    def path_for(self, contact: str, kind: str = "chat") -> Path:
        return self._dir(kind) / f"{_safe_name(contact)}.log"

    def _append(self, path: Path, line: LogLine) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._maybe_rotate(path)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(dataclasses.asdict(line), ensure_ascii=False) + "\n")

    def _maybe_rotate(self, path: Path) -> None:
        if not self.prefs.get_bool(Pref.LOG_ROTATE) or not path.exists():
            return
        if path.stat().st_size < self.prefs.get_int(Pref.LOG_MAXSIZE):
            return
        rotated = path.with_suffix(".log.1")
        path.replace(rotated)
        log.info("rotated %s", path)

    # ── Write ─────────────────────────────────────────────────────────────────

    def log_chat(self, contact: str, who: str, text: str,
                 ts: Optional[float] = None, direction: str = "in") -> None:
        if not self.prefs.get_bool(Pref.CHLOG):
            return
        line = LogLine(ts=now_ts() if ts is None else ts, who=who, text=text, direction=direction)
        self._append(self.path_for(contact), line)

    def log_room(self, roomjid: str, nick: str, text: str, ts: Optional[float] = None) -> None:
        if not self.prefs.get_bool(Pref.GRLOG):
            return
        line = LogLine(ts=now_ts() if ts is None else ts, who=nick, text=text)
        self._append(self.path_for(roomjid, kind="rooms"), line)

    # ── Read ──────────────────────────────────────────────────────────────────

    def history(self, contact: str, kind: str = "chat") -> Iterator[LogLine]:
        """Yield logged lines for *contact*, oldest first.

        Each call returns a fresh generator reading the file lazily.
        Malformed lines are skipped.
        """
        path = self.path_for(contact, kind)
        if not path.exists():
            return
        with path.open("r", encoding="utf-8") as fh:
            for raw in fh:
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    data = json.loads(raw)
                    yield LogLine(
                        ts=float(data["ts"]),
                        who=str(data["who"]),
                        text=str(data["text"]),
                        direction=str(data.get("direction", "in")),
                    )
                except (ValueError, KeyError, TypeError):
                    log.warning("skipping malformed log line in %s", path)
