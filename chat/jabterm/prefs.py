"""User preferences.

Preferences are typed key/value pairs with defaults.  The store is a JSON
document written atomically; only values that differ from the defaults are
kept on disk.
"""
from __future__ import annotations

import enum
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

import jabterm.config as _cfg

log = logging.getLogger(__name__)

Value = Union[bool, str, int]


class Pref(str, enum.Enum):
    # sounds and attention
    BEEP = "beep"
    FLASH = "flash"
    SPLASH = "splash"
    # notifications
    NOTIFY_MESSAGE = "notify.message"
    NOTIFY_MESSAGE_CURRENT = "notify.message.current"
    NOTIFY_MESSAGE_TEXT = "notify.message.text"
    NOTIFY_ROOM = "notify.room"
    NOTIFY_ROOM_CURRENT = "notify.room.current"
    NOTIFY_ROOM_TEXT = "notify.room.text"
    NOTIFY_TYPING = "notify.typing"
    NOTIFY_TYPING_CURRENT = "notify.typing.current"
    NOTIFY_SUB = "notify.sub"
    NOTIFY_INVITE = "notify.invite"
    # windows
    WINS_AUTOTIDY = "wins.autotidy"
    OCCUPANTS = "occupants"
    OCCUPANTS_JID = "occupants.jid"
    PRIVILEGES = "privileges"
    RESOURCE_TITLE = "resource.title"
    RESOURCE_MESSAGE = "resource.message"
    TIME = "time"
    STATUSES_CONSOLE = "statuses.console"
    STATUSES_CHAT = "statuses.chat"
    STATUSES_MUC = "statuses.muc"
    # chat states and receipts
    STATES = "states"
    OUTTYPE = "outtype"
    INTYPE = "intype"
    GONE = "chatstates.gone"
    RECEIPTS_SEND = "receipts.send"
    RECEIPTS_REQUEST = "receipts.request"
    CARBONS = "carbons"
    # logging and history
    CHLOG = "chlog"
    GRLOG = "grlog"
    HISTORY = "history"
    LOG_ROTATE = "log.rotate"
    LOG_MAXSIZE = "log.maxsize"
    # encryption
    OTR_LOG = "otr.log"
    OTR_POLICY = "otr.policy"
    PGP_LOG = "pgp.log"
    # presence
    AUTOAWAY_CHECK = "autoaway.check"
    AUTOAWAY_MODE = "autoaway.mode"
    AUTOAWAY_TIME = "autoaway.time"
    AUTOAWAY_MESSAGE = "autoaway.message"
    # input
    INPBLOCK = "inpblock"


DEFAULTS: Dict[Pref, Value] = {
    Pref.BEEP: False,
    Pref.FLASH: False,
    Pref.SPLASH: True,
    Pref.NOTIFY_MESSAGE: True,
    Pref.NOTIFY_MESSAGE_CURRENT: True,
    Pref.NOTIFY_MESSAGE_TEXT: True,
    Pref.NOTIFY_ROOM: "on",
    Pref.NOTIFY_ROOM_CURRENT: True,
    Pref.NOTIFY_ROOM_TEXT: False,
    Pref.NOTIFY_TYPING: True,
    Pref.NOTIFY_TYPING_CURRENT: True,
    Pref.NOTIFY_SUB: True,
    Pref.NOTIFY_INVITE: True,
    Pref.WINS_AUTOTIDY: True,
    Pref.OCCUPANTS: True,
    Pref.OCCUPANTS_JID: False,
    Pref.PRIVILEGES: True,
    Pref.RESOURCE_TITLE: True,
    Pref.RESOURCE_MESSAGE: True,
    Pref.TIME: "%H:%M:%S",
    Pref.STATUSES_CONSOLE: "all",
    Pref.STATUSES_CHAT: "all",
    Pref.STATUSES_MUC: "all",
    Pref.STATES: True,
    Pref.OUTTYPE: True,
    Pref.INTYPE: True,
    Pref.GONE: 10,
    Pref.RECEIPTS_SEND: True,
    Pref.RECEIPTS_REQUEST: True,
    Pref.CARBONS: True,
    Pref.CHLOG: True,
    Pref.GRLOG: True,
    Pref.HISTORY: True,
    Pref.LOG_ROTATE: True,
    Pref.LOG_MAXSIZE: 1_048_580,
    Pref.OTR_LOG: "redact",
    Pref.OTR_POLICY: "manual",
    Pref.PGP_LOG: "redact",
    Pref.AUTOAWAY_CHECK: True,
    Pref.AUTOAWAY_MODE: "off",
    Pref.AUTOAWAY_TIME: 15,
    Pref.AUTOAWAY_MESSAGE: "",
    Pref.INPBLOCK: 1000,
}

CHOICES: Dict[Pref, tuple] = {
    Pref.NOTIFY_ROOM: ("on", "off", "mention"),
    Pref.OTR_LOG: ("on", "off", "redact"),
    Pref.PGP_LOG: ("on", "off", "redact"),
    Pref.OTR_POLICY: ("manual", "opportunistic", "always"),
    Pref.STATUSES_CONSOLE: ("all", "online", "none"),
    Pref.STATUSES_CHAT: ("all", "online", "none"),
    Pref.STATUSES_MUC: ("all", "online", "none"),
    Pref.AUTOAWAY_MODE: ("off", "away", "idle"),
}


def _check(pref: Pref, value: Value) -> Value:
    default = DEFAULTS[pref]
    # bool is a subclass of int; keep them apart.
    if isinstance(default, bool) != isinstance(value, bool) or not isinstance(value, type(default)):
        raise ValueError(f"{pref.value} expects {type(default).__name__}, got {value!r}")
    choices = CHOICES.get(pref)
    if choices and value not in choices:
        raise ValueError(f"{pref.value} must be one of {', '.join(choices)}")
    return value


class Preferences:
    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path
        self._values: Dict[Pref, Value] = {}
        self.otr_policies: Dict[str, str] = {}

    # ── Typed access ──────────────────────────────────────────────────────────

    def _get(self, pref: Pref) -> Value:
        return self._values.get(pref, DEFAULTS[pref])

    value = _get

    def get_bool(self, pref: Pref) -> bool:
        value = self._get(pref)
        assert isinstance(value, bool), pref
        return value

    def get_string(self, pref: Pref) -> str:
        value = self._get(pref)
        assert isinstance(value, str), pref
        return value

    def get_int(self, pref: Pref) -> int:
        value = self._get(pref)
        assert isinstance(value, int) and not isinstance(value, bool), pref
        return value

    def set(self, pref: Pref, value: Value) -> None:
        _check(pref, value)
        if value == DEFAULTS[pref]:
            self._values.pop(pref, None)
        else:
            self._values[pref] = value

    set_bool = set_string = set_int = set

    def reset(self, pref: Pref) -> None:
        self._values.pop(pref, None)

    def otr_policy(self, barejid: str = "") -> str:
        return self.otr_policies.get(barejid) or self.get_string(Pref.OTR_POLICY)

    # ── Persistence ───────────────────────────────────────────────────────────

    def _file(self) -> Path:
        return self.path or _cfg.PREFS_FILE

    def load(self) -> Preferences:
        path = self._file()
        if not path.exists():
            return self
        data = json.loads(path.read_text(encoding="utf-8"))
        values: Dict[Pref, Value] = {}
        for key, value in data.get("prefs", {}).items():
            try:
                pref = Pref(key)
            except ValueError:
                log.warning("ignoring unknown preference %r in %s", key, path)
                continue
            try:
                values[pref] = _check(pref, value)
            except ValueError as e:
                raise ValueError(
                    f"Preference file {path} is invalid: {e}. "
                    f"Fix or delete it to return to the defaults."
                ) from e
        self._values = values
        self.otr_policies = {
            str(jid): str(policy)
            for jid, policy in data.get("otr_policies", {}).items()
            if policy in CHOICES[Pref.OTR_POLICY]
        }
        return self

    def save(self) -> None:
        path = self._file()
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "prefs": {pref.value: value for pref, value in sorted(self._values.items())},
            "otr_policies": dict(sorted(self.otr_policies.items())),
        }
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(path)
