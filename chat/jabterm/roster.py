from __future__ import annotations

from typing import Dict, List, Optional

from jabterm.jid import Jid
from jabterm.models import Contact, Resource


class Roster:
    """Contacts and the resources they currently have online."""

    def __init__(self) -> None:
        self._contacts: Dict[str, Contact] = {}
        self.complete = False

    def update(self, barejid: str, name: str = "", subscription: str = "none",
               groups: Optional[List[str]] = None, pending_out: bool = False) -> Contact:
        contact = self._contacts.get(barejid)
        if contact is None:
            contact = Contact(barejid=barejid)
            self._contacts[barejid] = contact
        contact.name = name
        contact.subscription = subscription
        contact.groups = list(groups or [])
        contact.pending_out = pending_out
        return contact

    def remove(self, barejid: str) -> None:
        self._contacts.pop(barejid, None)

    def get(self, barejid: str) -> Optional[Contact]:
        return self._contacts.get(barejid)

    def __contains__(self, barejid: str) -> bool:
        return barejid in self._contacts

    def contacts(self) -> List[Contact]:
        return sorted(self._contacts.values(), key=lambda c: c.display_name.lower())

    def display_name(self, jid: str) -> str:
        contact = self._contacts.get(Jid.parse(jid).bare)
        return contact.display_name if contact else Jid.parse(jid).bare

    def update_presence(self, fulljid: str, show: str = "online", status: str = "",
                        priority: int = 0) -> bool:
        """Record a resource coming online or changing status.

        Returns True when the resource was not previously online.  Presence
        from addresses outside the roster is ignored and returns False.
        """
        jid = Jid.parse(fulljid)
        contact = self._contacts.get(jid.bare)
        if contact is None:
            return False
        is_new = jid.resource not in contact.resources
        contact.resources[jid.resource] = Resource(
            name=jid.resource, show=show, status=status, priority=priority
        )
        return is_new

    def remove_resource(self, fulljid: str) -> bool:
        jid = Jid.parse(fulljid)
        contact = self._contacts.get(jid.bare)
        if contact is None:
            return False
        return contact.resources.pop(jid.resource, None) is not None

    def has_resource(self, barejid: str, resource: str) -> bool:
        contact = self._contacts.get(barejid)
        return contact is not None and resource in contact.resources

    def clear(self) -> None:
        self._contacts.clear()
        self.complete = False
