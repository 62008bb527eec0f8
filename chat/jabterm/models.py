from __future__ import annotations

import dataclasses
import time
from typing import Dict, List, Optional


def now_ts() -> float:
    return time.time()


ROLES = ("visitor", "participant", "moderator", "none")
AFFILIATIONS = ("owner", "admin", "member", "none", "outcast")
PRESENCE_SHOWS = ("online", "chat", "away", "xa", "dnd")


@dataclasses.dataclass
class Resource:
    name: str
    show: str = "online"       # online | chat | away | xa | dnd
    status: str = ""
    priority: int = 0


@dataclasses.dataclass
class Contact:
    barejid: str
    name: str = ""
    subscription: str = "none"  # none | to | from | both
    groups: List[str] = dataclasses.field(default_factory=list)
    resources: Dict[str, Resource] = dataclasses.field(default_factory=dict)
    pending_out: bool = False   # we asked for their presence, no answer yet

    @property
    def display_name(self) -> str:
        return self.name or self.barejid

    @property
    def online(self) -> bool:
        return bool(self.resources)

    def best_resource(self) -> Optional[Resource]:
        if not self.resources:
            return None
        return max(self.resources.values(), key=lambda r: (r.priority, r.name))


@dataclasses.dataclass
class Occupant:
    nick: str
    jid: str = ""               # real address, when the room exposes it
    role: str = "none"
    affiliation: str = "none"
    show: str = "online"
    status: str = ""


@dataclasses.dataclass
class Invite:
    roomjid: str
    invitor: str
    reason: str = ""
    password: str = ""


@dataclasses.dataclass
class Room:
    """Local view of a multi-user room we are joining or have joined."""
    roomjid: str
    nick: str
    password: str = ""
    autojoin: bool = False
    role: str = "none"
    affiliation: str = "none"
    roster: Dict[str, Occupant] = dataclasses.field(default_factory=dict)
    roster_complete: bool = False
    subject: Optional[str] = None
    subject_by: str = ""
    pending_broadcasts: List[str] = dataclasses.field(default_factory=list)
    requires_config: bool = False
    pending_nick: str = ""      # our own nick change awaiting confirmation
    occupant_nick_changes: Dict[str, str] = dataclasses.field(default_factory=dict)  # new -> old
