from __future__ import annotations

import os
from pathlib import Path

_home_env = os.getenv("JABTERM_HOME", "")
APP_DIR = Path(_home_env).expanduser() if _home_env else Path.home() / ".jabterm"
PREFS_FILE = APP_DIR / "prefs.json"
CHATLOG_DIR = APP_DIR / "chatlogs"
KEYS_DIR = APP_DIR / "keys"
LOG_FILE = APP_DIR / "logs" / "jabterm.log"

APP_NAME = "jabterm"
APP_VERSION = "0.1.0"

DEFAULT_GATEWAY = "ws://127.0.0.1:5280/v1/ws"
FRAME_MAX = 65_536         # bytes per websocket frame

MAX_WINDOWS = 10           # slot 10 is shown and typed as "0"
CONSOLE_SLOT = 1
WIN_BUFFER_MAX = 2_000     # lines kept per window

PAUSED_TIMEOUT_S = 10
INACTIVE_TIMEOUT_S = 30

INPUT_POLL_S = 0.05
HISTORY_REPLAY_MAX = 100


def set_home(path: Path) -> None:
    """Move every per-user file under *path*."""
    global APP_DIR, PREFS_FILE, CHATLOG_DIR, KEYS_DIR, LOG_FILE
    APP_DIR = Path(path).expanduser()
    PREFS_FILE = APP_DIR / "prefs.json"
    CHATLOG_DIR = APP_DIR / "chatlogs"
    KEYS_DIR = APP_DIR / "keys"
    LOG_FILE = APP_DIR / "logs" / "jabterm.log"
