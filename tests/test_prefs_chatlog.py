import json

import pytest

from jabterm.chatlog import REDACTED, ChatLog, loggable_text
from jabterm.prefs import Pref, Preferences
from jabterm.session import EncMode


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

def test_defaults(prefs):
    assert prefs.get_bool(Pref.STATES) is True
    assert prefs.get_string(Pref.NOTIFY_ROOM) == "on"
    assert prefs.get_int(Pref.GONE) == 10
    assert prefs.otr_policy("bob@example.org") == "manual"


def test_save_and_load(tmp_path):
    prefs = Preferences(tmp_path / "prefs.json")
    prefs.set(Pref.BEEP, True)
    prefs.set(Pref.AUTOAWAY_TIME, 5)
    prefs.set(Pref.STATES, True)
    prefs.otr_policies["bob@example.org"] = "always"
    prefs.save()

    stored = json.loads((tmp_path / "prefs.json").read_text())
    assert stored["prefs"] == {"autoaway.time": 5, "beep": True}

    loaded = Preferences(tmp_path / "prefs.json").load()
    assert loaded.get_bool(Pref.BEEP)
    assert loaded.get_int(Pref.AUTOAWAY_TIME) == 5
    assert loaded.otr_policy("bob@example.org") == "always"
    assert loaded.otr_policy("carol@example.org") == "manual"


def test_rejects_bad_values(prefs):
    with pytest.raises(ValueError):
        prefs.set(Pref.BEEP, "yes")
    with pytest.raises(ValueError):
        prefs.set(Pref.GONE, True)
    with pytest.raises(ValueError):
        prefs.set(Pref.NOTIFY_ROOM, "sometimes")


def test_invalid_file_is_an_error(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text(json.dumps({"prefs": {"beep": "loud", "no.such.pref": 1}}))
    with pytest.raises(ValueError, match="beep"):
        Preferences(path).load()


def test_unknown_keys_ignored(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text(json.dumps({"prefs": {"no.such.pref": 1, "flash": True}}))
    assert Preferences(path).load().get_bool(Pref.FLASH)


def test_reset(prefs):
    prefs.set(Pref.TIME, "%H:%M")
    prefs.reset(Pref.TIME)
    assert prefs.get_string(Pref.TIME) == "%H:%M:%S"


# ---------------------------------------------------------------------------
# Chat logs
# ---------------------------------------------------------------------------

@pytest.fixture
def chatlog(tmp_path, prefs):
    return ChatLog("me@example.org", base_dir=tmp_path / "logs", prefs=prefs)


def test_history_oldest_first(chatlog):
    chatlog.log_chat("bob@example.org", "bob@example.org", "hi", ts=1.0)
    chatlog.log_chat("bob@example.org", "me", "hello", ts=2.0, direction="out")
    lines = list(chatlog.history("bob@example.org"))
    assert [(l.text, l.direction) for l in lines] == [("hi", "in"), ("hello", "out")]
    assert list(chatlog.history("carol@example.org")) == []


def test_logs_are_per_account(tmp_path, prefs, chatlog):
    chatlog.log_chat("bob@example.org", "bob@example.org", "hi")
    other = ChatLog("other@example.org", base_dir=tmp_path / "logs", prefs=prefs)
    assert list(other.history("bob@example.org")) == []


def test_malformed_lines_skipped(chatlog):
    chatlog.log_chat("bob@example.org", "bob@example.org", "hi", ts=1.0)
    with chatlog.path_for("bob@example.org").open("a") as fh:
        fh.write("not json\n")
    assert [l.text for l in chatlog.history("bob@example.org")] == ["hi"]


def test_logging_disabled(prefs, chatlog):
    prefs.set(Pref.CHLOG, False)
    chatlog.log_chat("bob@example.org", "bob@example.org", "hi")
    assert not chatlog.path_for("bob@example.org").exists()


def test_room_log(chatlog):
    chatlog.log_room("room@muc.example.org", "bob", "hello room", ts=3.0)
    (line,) = chatlog.history("room@muc.example.org", kind="rooms")
    assert (line.who, line.text) == ("bob", "hello room")


def test_rotation(prefs, chatlog):
    prefs.set(Pref.LOG_MAXSIZE, 10)
    chatlog.log_chat("bob@example.org", "bob@example.org", "a long enough line")
    chatlog.log_chat("bob@example.org", "bob@example.org", "second")
    path = chatlog.path_for("bob@example.org")
    assert path.with_suffix(".log.1").exists()
    assert [l.text for l in chatlog.history("bob@example.org")] == ["second"]


@pytest.mark.parametrize("setting,expected", [("on", "text"), ("redact", REDACTED), ("off", None)])
def test_encrypted_text_logging(prefs, setting, expected):
    prefs.set(Pref.OTR_LOG, setting)
    assert loggable_text(prefs, EncMode.OTR, "text") == expected
    assert loggable_text(prefs, EncMode.NONE, "text") == "text"
