"""Command reference shown by ``/help``."""
from __future__ import annotations

from typing import Dict, List, Tuple

# name -> (synopsis, description)
COMMANDS: Dict[str, Tuple[str, str]] = {
    # connection
    "/connect": ("/connect <jid> [server <url>]", "Log in to a gateway as <jid>."),
    "/disconnect": ("/disconnect", "Log out and close the connection."),
    "/quit": ("/quit", "Exit jabterm."),
    # windows
    "/win": ("/win <num>", "Focus window <num>; 0 means window 10."),
    "/wins": ("/wins [tidy|prune|swap <a> <b>|autotidy on|off]", "List, tidy, prune or swap windows."),
    "/close": ("/close [<num>|all|read]", "Close the current window, a numbered one, all, or all read ones."),
    "/clear": ("/clear", "Clear the current window."),
    "/xmlconsole": ("/xmlconsole", "Open the protocol trace window."),
    # messaging
    "/msg": ("/msg <jid|nick> [message]", "Open a chat (or a private room chat) and optionally send."),
    "/resource": ("/resource set <resource>|off", "Pin the chat to one of the contact's resources."),
    "/software": ("/software [<jid>|<nick>]", "Ask a client for its name and version."),
    "/disco": ("/disco [<jid>]", "Show service discovery info."),
    "/sub": ("/sub allow|deny|request [<jid>]", "Manage presence subscriptions."),
    "/online": ("/online [message]", "Set presence to online."),
    "/away": ("/away [message]", "Set presence to away."),
    "/chat": ("/chat [message]", "Set presence to free for chat."),
    "/dnd": ("/dnd [message]", "Set presence to do not disturb."),
    "/xa": ("/xa [message]", "Set presence to extended away."),
    "/priority": ("/priority <value>", "Set presence priority, from -128 to 127."),
    "/roster": ("/roster [online]|add <jid> [name]|remove <jid>|nick <jid> <name>|clearnick <jid>",
                "Show or edit the roster."),
    "/who": ("/who [any|online|offline|available|unavailable|chat|away|xa|dnd|<role>|<affiliation>]",
             "List contacts, or occupants in a room, filtered by presence."),
    "/status": ("/status [<jid>|<nick>]", "Show the presence of a contact or room occupant."),
    "/info": ("/info [<jid>|<nick>]", "Show details about a contact or room occupant."),
    "/rooms": ("/rooms [<service>]", "List rooms on a conference service."),
    # rooms
    "/join": ("/join [<room>] [nick <nick>] [password <password>]", "Join a room, or create a private one."),
    "/leave": ("/leave", "Leave the current room."),
    "/nick": ("/nick <nick>", "Change your nick in the current room."),
    "/invite": ("/invite <jid> [reason]", "Invite a contact to the current room."),
    "/invites": ("/invites", "List pending room invites."),
    "/decline": ("/decline <room>", "Decline a room invite."),
    "/kick": ("/kick <nick> [reason]", "Kick an occupant from the current room."),
    "/ban": ("/ban <jid> [reason]", "Ban a user from the current room."),
    "/subject": ("/subject [set <subject>|clear]", "Show, set or clear the room subject."),
    "/affiliation": ("/affiliation list [<affiliation>]|set <affiliation> <jid> [reason]",
                     "List or change room affiliations."),
    "/role": ("/role list [<role>]|set <role> <nick> [reason]", "List or change occupant roles."),
    "/room": ("/room accept|destroy|config", "Unlock, destroy or configure the current room."),
    "/occupants": ("/occupants show|hide [jid]", "Show or hide the occupant list or occupant addresses."),
    "/form": ("/form submit|cancel|show|help [<tag>]", "Work with a room configuration form."),
    # encryption
    "/otr": ("/otr gen|myfp|theirfp|start [<jid>]|end|trust|untrust|secret <secret>|"
             "question <question> <answer>|answer <answer>|policy [<policy>] [<jid>]|log on|off|redact",
             "Off-the-record sessions."),
    "/pgp": ("/pgp keys|setkey <jid> <key>|fps|start [<jid>]|end|log on|off|redact",
             "Static-key encryption."),
    # preferences
    "/beep": ("/beep on|off", "Ring the terminal bell on new messages."),
    "/flash": ("/flash on|off", "Flash the tab of windows with new messages."),
    "/chlog": ("/chlog on|off", "Log chat conversations."),
    "/grlog": ("/grlog on|off", "Log room conversations."),
    "/history": ("/history on|off", "Show logged history in new chat windows."),
    "/intype": ("/intype on|off", "Show when contacts are typing."),
    "/outtype": ("/outtype on|off", "Tell contacts when you are typing."),
    "/states": ("/states on|off", "Send chat states."),
    "/privileges": ("/privileges on|off", "Show role and affiliation changes in rooms."),
    "/receipts": ("/receipts send|request on|off", "Message delivery receipts."),
    "/carbons": ("/carbons on|off", "Receive copies of messages sent from other clients."),
    "/notify": ("/notify message|room|typing|sub|invite ...", "Desktop notification settings."),
    "/gone": ("/gone <minutes>", "Send 'gone' after this many idle minutes in a chat; 0 disables."),
    "/autoaway": ("/autoaway mode off|away|idle|time <minutes>|message <text>|off|check on|off",
                  "Automatic away when idle."),
    "/statuses": ("/statuses console|chat|muc all|online|none", "Which presence changes to show."),
    "/time": ("/time <format>", "strftime format for line timestamps."),
    "/debug": ("/debug on|off", "Verbose logging to the log file."),
    "/help": ("/help [command]", "This reference, or details for one command."),
}

SECTIONS = (
    ("Connection", ("/connect", "/disconnect", "/quit")),
    ("Windows", ("/win", "/wins", "/close", "/clear", "/xmlconsole")),
    ("Messaging", ("/msg", "/resource", "/software", "/disco", "/sub",
                   "/online", "/away", "/chat", "/dnd", "/xa", "/priority")),
    ("Roster", ("/roster", "/who", "/status", "/info")),
    ("Rooms", ("/rooms", "/join","/leave", "/nick", "/invite", "/invites", "/decline", "/kick", "/ban",
               "/subject", "/affiliation", "/role", "/room", "/occupants", "/form")),
    ("Encryption", ("/otr", "/pgp")),
    ("Preferences", ("/beep", "/flash", "/chlog", "/grlog", "/history", "/intype", "/outtype",
                     "/states", "/privileges", "/receipts", "/carbons", "/notify", "/gone",
                     "/autoaway", "/statuses", "/time", "/debug", "/help")),
)

KEYS = (
    "Alt+1..Alt+0  Switch to window 1..10",
    "F1            This help",
    "Ctrl+Q        Quit",
)


def help_lines(topic: str = "") -> List[str]:
    topic = (topic or "").strip()
    if topic:
        name = topic if topic.startswith("/") else f"/{topic}"
        entry = COMMANDS.get(name)
        if entry is None:
            return [f"No such command: {name}"]
        synopsis, description = entry
        return [f"Synopsis: {synopsis}", "", description]

    lines: List[str] = []
    for title, names in SECTIONS:
        lines.append(f"{title}:")
        for name in names:
            lines.append(f"  {name:<14} {COMMANDS[name][1]}")
        lines.append("")
    lines.append("Keys:")
    lines.extend(f"  {k}" for k in KEYS)
    return lines
