from __future__ import annotations

import pytest

from rapport.suggestions.fallbacks import fallback_for
from rapport.suggestions.models import (
    ConversationStarter,
    EventIdea,
    Feature,
    MessageSuggestions,
    RelationshipTip,
)


@pytest.mark.parametrize(
    ("feature", "expected_type"),
    [
        (Feature.MESSAGE_SUGGESTIONS, MessageSuggestions),
        (Feature.RELATIONSHIP_TIP, RelationshipTip),
    ],
)
def test_object_fallbacks(feature, expected_type):
    assert isinstance(fallback_for(feature), expected_type)


def test_event_idea_fallback_is_fixed_list():
    ideas = fallback_for(Feature.EVENT_IDEAS)
    assert [i.name for i in ideas] == ["Coffee Catch-up", "Park Walk", "Game Night"]
    assert all(isinstance(i, EventIdea) for i in ideas)


def test_conversation_starter_fallback():
    starters = fallback_for(Feature.CONVERSATION_STARTERS)
    assert len(starters) == 3
    assert all(isinstance(s, ConversationStarter) for s in starters)


def test_relationship_tip_fallback_has_source():
    tip = fallback_for(Feature.RELATIONSHIP_TIP)
    assert tip.title == "The Power of Consistent Check-ins"
    assert tip.to_wire()["source"] == "Social Psychology Research"


def test_mutating_a_fallback_does_not_change_catalog():
    ideas = fallback_for(Feature.EVENT_IDEAS)
    ideas.clear()
    tip = fallback_for(Feature.RELATIONSHIP_TIP)
    tip.title = "changed"

    assert len(fallback_for(Feature.EVENT_IDEAS)) == 3
    assert fallback_for(Feature.RELATIONSHIP_TIP).title == "The Power of Consistent Check-ins"
