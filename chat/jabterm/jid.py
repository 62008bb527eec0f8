from __future__ import annotations

import dataclasses
from typing import Optional


@dataclasses.dataclass(frozen=True)
class Jid:
    """An address of the form ``local@domain/resource``.

    Local part and resource are optional.  Domain and local part are
    compared case-insensitively so they are stored lower-cased; the resource
    keeps its case.
    """
    domain: str
    local: str = ""
    resource: str = ""

    @staticmethod
    def parse(text: str) -> Jid:
        text = (text or "").strip()
        resource = ""
        if "/" in text:
            text, resource = text.split("/", 1)
        local = ""
        if "@" in text:
            local, text = text.split("@", 1)
        domain = text
        if not domain:
            raise ValueError("Address has no domain part")
        if "@" in domain:
            raise ValueError(f"Malformed address: {domain!r}")
        return Jid(domain=domain.lower(), local=local.lower(), resource=resource)

    @property
    def bare(self) -> str:
        return f"{self.local}@{self.domain}" if self.local else self.domain

    @property
    def full(self) -> str:
        return f"{self.bare}/{self.resource}" if self.resource else self.bare

    def with_resource(self, resource: str) -> Jid:
        return dataclasses.replace(self, resource=resource)

    def __str__(self) -> str:
        return self.full


def bare_of(text: str) -> str:
    return Jid.parse(text).bare


def resource_of(text: str) -> str:
    return Jid.parse(text).resource


def room_nick(roomjid: str, nick: str) -> str:
    return f"{bare_of(roomjid)}/{nick}"


def try_parse(text: str) -> Optional[Jid]:
    try:
        return Jid.parse(text)
    except ValueError:
        return None
