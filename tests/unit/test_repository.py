from __future__ import annotations

from datetime import timedelta

from rapport.suggestions.repository import ContactDetails, RelationshipInfo


def test_stats_for_unknown_user_are_empty(repository):
    stats = repository.get_relationship_stats("nobody")
    assert stats.contact_count == 0
    assert stats.under_contacted == []


def test_stale_inner_circle_contacts_are_under_contacted(repository, clock):
    repository.add_contact(
        "user-1",
        "contact-2",
        ContactDetails(
            name="Bruno",
            relationship=RelationshipInfo(
                tier="INNER_CIRCLE", last_contact_date=clock.as_datetime() - timedelta(days=45)
            ),
        ),
    )
    repository.add_contact(
        "user-1",
        "contact-3",
        ContactDetails(name="Chen", relationship=RelationshipInfo(tier="ACQUAINTANCE")),
    )

    stats = repository.get_relationship_stats("user-1")

    assert stats.contact_count == 3
    assert stats.inner_circle_count == 2
    assert stats.under_contacted == ["Bruno"]


def test_interactions_older_than_a_week_are_not_recent(repository, clock):
    repository.record_interaction("user-1", "contact-1", clock.as_datetime() - timedelta(days=8))
    repository.record_interaction("user-1", "contact-1", clock.as_datetime() - timedelta(days=1))

    assert repository.get_relationship_stats("user-1").recent_interaction_count == 1


def test_interaction_moves_last_contact_forward(repository, clock):
    repository.record_interaction("user-1", "contact-1", clock.as_datetime())
    contact = repository.get_contact_with_details("user-1", "contact-1")
    assert contact.relationship.last_contact_date == clock.as_datetime()
