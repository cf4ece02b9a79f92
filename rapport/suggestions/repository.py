"""
Content repository port.

The suggestion generators only read contact facts; persistence of contacts,
relationships and interactions belongs to the host application. Anything
implementing ContentRepository can be plugged into the service.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Protocol

INNER_CIRCLE_TIER = "INNER_CIRCLE"
RECENT_INTERACTION_DAYS = 7
UNDER_CONTACTED_DAYS = 30


@dataclass(frozen=True)
class RelationshipInfo:
    tier: str = "FRIENDS"
    type: str = "PERSONAL"
    last_contact_date: datetime | None = None


@dataclass(frozen=True)
class ContactDetails:
    name: str
    relationship: RelationshipInfo | None = None
    interests: list[str] = field(default_factory=list)
    notes: str | None = None


@dataclass(frozen=True)
class RelationshipStats:
    """Aggregate view of a user's network, used for relationship tips."""

    contact_count: int = 0
    inner_circle_count: int = 0
    recent_interaction_count: int = 0
    under_contacted: list[str] = field(default_factory=list)


class ContentRepository(Protocol):
    def get_contact_with_details(self, user_id: str, contact_id: str) -> ContactDetails | None: ...

    def get_relationship_stats(self, user_id: str) -> RelationshipStats: ...


class InMemoryContentRepository:
    """Dict-backed repository for development and tests."""

    def __init__(self, now: Callable[[], datetime] = lambda: datetime.now(UTC)):
        self._now = now
        self._contacts: dict[str, dict[str, ContactDetails]] = {}
        self._interactions: dict[str, list[tuple[str, datetime]]] = {}
        self._lock = threading.Lock()

    def add_contact(self, user_id: str, contact_id: str, details: ContactDetails) -> None:
        with self._lock:
            self._contacts.setdefault(user_id, {})[contact_id] = details

    def record_interaction(self, user_id: str, contact_id: str, when: datetime | None = None) -> None:
        """Log an interaction and move the contact's last_contact_date forward."""
        when = when or self._now()
        with self._lock:
            self._interactions.setdefault(user_id, []).append((contact_id, when))
            contact = self._contacts.get(user_id, {}).get(contact_id)
            if contact is not None:
                relationship = contact.relationship or RelationshipInfo()
                last = relationship.last_contact_date
                if last is None or when > last:
                    relationship = replace(relationship, last_contact_date=when)
                self._contacts[user_id][contact_id] = replace(contact, relationship=relationship)

    def get_contact_with_details(self, user_id: str, contact_id: str) -> ContactDetails | None:
        return self._contacts.get(user_id, {}).get(contact_id)

    def get_relationship_stats(self, user_id: str) -> RelationshipStats:
        now = self._now()
        recent_cutoff = now - timedelta(days=RECENT_INTERACTION_DAYS)
        stale_cutoff = now - timedelta(days=UNDER_CONTACTED_DAYS)

        with self._lock:
            contacts = list(self._contacts.get(user_id, {}).values())
            interactions = list(self._interactions.get(user_id, []))

        inner_circle = [
            c for c in contacts if c.relationship and c.relationship.tier == INNER_CIRCLE_TIER
        ]
        under_contacted = sorted(
            c.name
            for c in inner_circle
            if c.relationship.last_contact_date is None
            or c.relationship.last_contact_date < stale_cutoff
        )

        return RelationshipStats(
            contact_count=len(contacts),
            inner_circle_count=len(inner_circle),
            recent_interaction_count=sum(1 for _, when in interactions if when >= recent_cutoff),
            under_contacted=under_contacted,
        )
