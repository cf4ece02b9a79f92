"""
Static fallback content.

Served whenever a live suggestion cannot be produced (quota exceeded, no
provider, provider failure, unparseable output). The text is generic on
purpose so it is safe for any contact.
"""

from __future__ import annotations

import copy
from typing import Any

from rapport.suggestions.models import (
    ConversationStarter,
    EventIdea,
    Feature,
    MessageSuggestions,
    RelationshipTip,
)

FALLBACK_MESSAGE_SUGGESTIONS = MessageSuggestions(
    casual="Hey! Hope you're doing well. Just wanted to check in and see how things are going!",
    warm="Hi there! I've been thinking about you lately and wanted to reach out. How have you been?",
    thoughtful=(
        "I hope this message finds you well. I've been meaning to connect and catch up "
        "properly. Would love to hear how you're doing."
    ),
)

FALLBACK_EVENT_IDEAS = [
    EventIdea(
        name="Coffee Catch-up",
        description="Meet at a local café for a relaxed conversation over coffee or tea.",
        estimated_cost=10,
        duration="1-2 hours",
        venue_type="indoor",
        tips=["Choose a quiet café", "Avoid rush hours"],
    ),
    EventIdea(
        name="Park Walk",
        description="Take a leisurely walk in a local park while catching up.",
        estimated_cost=0,
        duration="1-2 hours",
        venue_type="outdoor",
        tips=["Check the weather", "Bring water"],
    ),
    EventIdea(
        name="Game Night",
        description="Host a casual game night with board games or card games.",
        estimated_cost=0,
        duration="2-4 hours",
        venue_type="indoor",
        tips=["Have snacks ready", "Choose games for your group size"],
    ),
]

FALLBACK_CONVERSATION_STARTERS = [
    ConversationStarter(
        topic="Recent experiences",
        opener="What's been the highlight of your week?",
        follow_up="That sounds interesting! Tell me more about it.",
    ),
    ConversationStarter(
        topic="Future plans",
        opener="Any exciting plans coming up?",
        follow_up="That sounds fun! How did you decide on that?",
    ),
    ConversationStarter(
        topic="Shared interests",
        opener="Have you tried anything new lately?",
        follow_up="I'd love to hear more about your experience with that.",
    ),
]

FALLBACK_RELATIONSHIP_TIP = RelationshipTip(
    title="The Power of Consistent Check-ins",
    advice=(
        "Research shows that regular, brief interactions strengthen relationships more than "
        "occasional long conversations. Try sending a quick message to someone you care about today."
    ),
    action_item="Set a weekly reminder to reach out to one person in your inner circle.",
    source="Social Psychology Research",
)

_CATALOG: dict[Feature, Any] = {
    Feature.MESSAGE_SUGGESTIONS: FALLBACK_MESSAGE_SUGGESTIONS,
    Feature.EVENT_IDEAS: FALLBACK_EVENT_IDEAS,
    Feature.CONVERSATION_STARTERS: FALLBACK_CONVERSATION_STARTERS,
    Feature.RELATIONSHIP_TIP: FALLBACK_RELATIONSHIP_TIP,
}


def fallback_for(feature: Feature) -> Any:
    """Fresh copy of the fallback value for a feature; mutating it never touches the catalog."""
    return copy.deepcopy(_CATALOG[feature])
