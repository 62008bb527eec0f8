from __future__ import annotations

import argparse
import collections
import logging
import logging.handlers
from pathlib import Path

from jabterm import config as _cfg
from jabterm.config import APP_NAME, APP_VERSION, DEFAULT_GATEWAY


def setup_logging(debug: bool) -> None:
    _cfg.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        _cfg.LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def _load_prefs():
    from jabterm.prefs import Preferences
    return Preferences().load()


def cmd_tui(args: argparse.Namespace) -> None:
    from jabterm.chatlog import ChatLog
    from jabterm.context import AppContext
    from jabterm.crypto import build_engines
    from jabterm.protocol import GatewayProtocol
    from jabterm.tui import JabtermApp

    prefs = _load_prefs()
    inbound: collections.deque = collections.deque()
    otr, pgp = build_engines(otr=not args.no_otr, pgp=not args.no_pgp)
    ctx = AppContext(
        prefs=prefs,
        protocol=GatewayProtocol(inbound),
        chatlog=ChatLog(args.account or "", prefs=prefs),
        otr=otr,
        pgp=pgp,
    )
    logging.getLogger(__name__).info("%s %s starting", APP_NAME, APP_VERSION)
    JabtermApp(ctx, inbound, account=args.account or "", gateway=args.gateway).run()


def cmd_prefs(args: argparse.Namespace) -> None:
    from jabterm.prefs import Pref

    prefs = _load_prefs()
    for pref in Pref:
        print(f"{pref.value:<24} {prefs.value(pref)!r}")
    for jid, policy in sorted(prefs.otr_policies.items()):
        print(f"otr.policy[{jid}]{'':<6} {policy!r}")


def cmd_keys(args: argparse.Namespace) -> None:
    from jabterm.crypto import OtrEngine, PgpEngine

    otr = OtrEngine()
    if args.gen:
        print("Generating OTR private key...")
        otr.generate_key()
    if otr.has_key():
        print(f"OTR fingerprint: {otr.fingerprint()}")
    else:
        print("No OTR private key, run 'jabterm keys --gen' or '/otr gen'.")
    pgp = PgpEngine()
    print(f"PGP key ID:      {pgp.fingerprint()}")
    for jid, key_id in sorted(pgp.contacts().items()):
        print(f"  {jid}: {key_id}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=APP_NAME, description="Terminal client for a chat gateway")
    p.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    p.add_argument("--home", help="Directory for preferences, logs and keys (default: ~/.jabterm)")
    p.add_argument("--debug", action="store_true", help="Verbose logging to the log file")
    sub = p.add_subparsers(dest="cmd", required=False)

    sp = sub.add_parser("tui", help="Launch the terminal UI (default)")
    sp.set_defaults(func=cmd_tui)

    sp = sub.add_parser("prefs", help="Show preferences")
    sp.set_defaults(func=cmd_prefs)

    sp = sub.add_parser("keys", help="Show or generate encryption keys")
    sp.add_argument("--gen", action="store_true", help="Generate a new OTR private key")
    sp.set_defaults(func=cmd_keys)

    p.add_argument("-a", "--account", help="Log in as this address on start")
    p.add_argument("--gateway", default=DEFAULT_GATEWAY, help="Gateway websocket URL")
    p.add_argument("--no-otr", action="store_true", help="Disable OTR support")
    p.add_argument("--no-pgp", action="store_true", help="Disable PGP support")
    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    if args.home:
        _cfg.set_home(Path(args.home))
    setup_logging(args.debug)
    if not getattr(args, "cmd", None):
        cmd_tui(args)
        return
    args.func(args)
