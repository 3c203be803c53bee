"""Read-only conversation metrics for health and monitoring."""

import math
from datetime import timedelta
from typing import TypedDict

from src.conversation.models import URGENCY_LEVELS
from src.conversation.sessions import Clock, SessionStore, utc_now

ACTIVE_WINDOW = timedelta(hours=24)


class ConversationStats(TypedDict):
    totalConversations: int
    activeConversations: int
    totalMessages: int
    averageMessagesPerConversation: int
    urgencyDistribution: dict[str, int]


class StatisticsAggregator:
    """Derives metrics from a ``SessionStore`` on every call. No caching."""

    def __init__(self, sessions: SessionStore, clock: Clock = utc_now) -> None:
        self._sessions = sessions
        self._clock = clock

    def snapshot(self) -> ConversationStats:
        sessions = self._sessions.sessions()
        active_since = self._clock() - ACTIVE_WINDOW

        distribution = dict.fromkeys(URGENCY_LEVELS, 0)
        total_messages = 0
        active = 0
        for session in sessions:
            total_messages += session.message_count
            if session.last_activity_at > active_since:
                active += 1
            if session.inferred_urgency is not None:
                distribution[session.inferred_urgency] += 1

        total = len(sessions)
        return ConversationStats(
            totalConversations=total,
            activeConversations=active,
            totalMessages=total_messages,
            # Half-up rounding, not banker's rounding
            averageMessagesPerConversation=math.floor(total_messages / total + 0.5) if total else 0,
            urgencyDistribution=distribution,
        )
