from jabterm import timers
from jabterm.prefs import Pref
from jabterm.session import ChatState
from jabterm.windows import WinKind

from conftest import texts

BOB = "bob@example.org"


def _chat(ctx):
    win = ctx.registry.create(WinKind.CHAT, BOB)
    ctx.registry.focus(win)
    ctx.sessions.on_message(BOB, "phone", send_states=True)
    return win


def test_typing_sends_composing_once(ctx):
    _chat(ctx)
    timers.on_typing(ctx, now=0)
    timers.on_typing(ctx, now=1)
    assert ctx.protocol.sent == [("chat_state", {"jid": f"{BOB}/phone", "state": "composing"})]


def test_typing_without_outtype(ctx):
    ctx.prefs.set(Pref.OUTTYPE, False)
    win = _chat(ctx)
    timers.on_typing(ctx, now=0)
    assert win.state.state is ChatState.COMPOSING
    assert ctx.protocol.sent == []


def test_no_states_for_contact_without_support(ctx):
    _chat(ctx)
    ctx.sessions.on_message(BOB, "phone", send_states=False)
    timers.on_typing(ctx, now=0)
    assert ctx.protocol.sent == []


def test_states_age_to_gone(ctx):
    ctx.prefs.set(Pref.GONE, 1)
    _chat(ctx)
    timers.on_typing(ctx, now=0)
    timers.tick_chat_states(ctx, now=11)
    timers.tick_chat_states(ctx, now=42)
    timers.tick_chat_states(ctx, now=103)
    states = [fields["state"] for action, fields in ctx.protocol.sent if action == "chat_state"]
    assert states == ["composing", "paused", "inactive", "gone"]
    assert BOB not in ctx.sessions


def test_autoaway(ctx):
    ctx.prefs.set(Pref.AUTOAWAY_MODE, "away")
    ctx.prefs.set(Pref.AUTOAWAY_TIME, 1)
    ctx.prefs.set(Pref.AUTOAWAY_MESSAGE, "afk")
    ctx.idle._last = 0

    timers.tick_autoaway(ctx, now=30)
    assert ctx.protocol.sent == []

    timers.tick_autoaway(ctx, now=61)
    assert ctx.autoaway_active
    assert ctx.protocol.last("presence") == {"show": "away", "status": "afk", "priority": 0}
    assert texts(ctx.registry.console())[-1] == 'Idle for 1 minutes, status set to away (priority 0), "afk".'

    ctx.idle._last = 100
    timers.tick_autoaway(ctx, now=101)
    assert not ctx.autoaway_active
    assert ctx.protocol.last("presence") == {"show": "online", "status": "", "priority": 0}
    assert texts(ctx.registry.console())[-1] == "No longer idle, status set to online (priority 0)."


def test_autoaway_off_or_offline(offline_ctx):
    offline_ctx.prefs.set(Pref.AUTOAWAY_MODE, "away")
    offline_ctx.idle._last = 0
    timers.tick_autoaway(offline_ctx, now=10_000)
    assert not offline_ctx.autoaway_active


def test_autoaway_without_check_stays_away(ctx):
    ctx.prefs.set(Pref.AUTOAWAY_MODE, "away")
    ctx.prefs.set(Pref.AUTOAWAY_CHECK, False)
    ctx.prefs.set(Pref.AUTOAWAY_TIME, 1)
    ctx.prefs.set(Pref.AUTOAWAY_MESSAGE, "afk")
    ctx.idle._last = 0
    timers.tick_autoaway(ctx, now=61)

    ctx.idle._last = 100
    timers.tick_autoaway(ctx, now=101)
    assert not ctx.autoaway_active
    assert ctx.protocol.actions() == ["presence"]
    assert (ctx.show, ctx.status) == ("away", "afk")

    # no second auto-away while the away presence is kept
    ctx.idle._last = 0
    timers.tick_autoaway(ctx, now=200)
    assert not ctx.autoaway_active
    assert ctx.protocol.actions() == ["presence"]
