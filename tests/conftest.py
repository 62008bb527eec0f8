from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pytest

from jabterm.chatlog import ChatLog
from jabterm.commands import CommandDispatcher
from jabterm.context import AppContext, Notifier
from jabterm.crypto import OtrEngine, PgpEngine
from jabterm.inbound import InboundDispatcher
from jabterm.prefs import Preferences
from jabterm.protocol import ConnStatus, Protocol

ACCOUNT = "me@example.org/laptop"


class RecordingProtocol(Protocol):
    """Keeps every outbound action instead of sending it."""

    def __init__(self) -> None:
        super().__init__()
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    def _send(self, action: str, **fields: Any) -> None:
        self.sent.append((action, fields))

    def actions(self) -> List[str]:
        return [action for action, _ in self.sent]

    def last(self, action: str) -> Dict[str, Any]:
        for name, fields in reversed(self.sent):
            if name == action:
                return fields
        raise AssertionError(f"no {action!r} frame sent, got {self.actions()}")


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.beeps = 0
        self.popups: List[Tuple[str, str]] = []

    def beep(self) -> None:
        self.beeps += 1

    def desktop(self, title: str, body: str) -> None:
        self.popups.append((title, body))


def texts(win) -> List[str]:
    return [line.text for line in win.lines]


@pytest.fixture
def prefs(tmp_path):
    return Preferences(tmp_path / "prefs.json")


@pytest.fixture
def ctx(tmp_path, prefs):
    protocol = RecordingProtocol()
    protocol.status = ConnStatus.CONNECTED
    protocol.jid = ACCOUNT
    return AppContext(
        prefs=prefs,
        protocol=protocol,
        chatlog=ChatLog("me@example.org", base_dir=tmp_path / "logs", prefs=prefs),
        otr=OtrEngine(key_file=tmp_path / "keys" / "otr.json"),
        pgp=PgpEngine(key_file=tmp_path / "keys" / "pgp.json"),
        notifier=RecordingNotifier(),
        account=ACCOUNT,
    )


@pytest.fixture
def offline_ctx(ctx):
    ctx.protocol.status = ConnStatus.DISCONNECTED
    return ctx


@pytest.fixture
def inbound(ctx):
    return InboundDispatcher(ctx)


@pytest.fixture
def commands(ctx):
    return CommandDispatcher(ctx)
