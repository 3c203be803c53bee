"""In-process conversation session store.

Sessions live only for the lifetime of the process. All methods are
synchronous and never await, so on a single event loop each call runs to
completion without interleaving with other requests.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from src.conversation.classifier import classify_topic, classify_urgency
from src.conversation.models import (
    DEFAULT_TOPIC,
    MAX_RECENT_QUERIES,
    ConversationSession,
    DeliveryHandle,
)

logger = logging.getLogger(__name__)

type Clock = Callable[[], datetime]

RECENT_TOPICS_IN_CONTEXT = 3


def utc_now() -> datetime:
    return datetime.now(UTC)


class SessionStore:
    """Owns every ``ConversationSession``, keyed by conversation id."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        # dict preserves first-seen insertion order for all_delivery_handles()
        self._sessions: dict[str, ConversationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def update(
        self,
        conversation_id: str,
        user_id: str,
        user_display_name: str | None = None,
        message_text: str | None = None,
        delivery_handle: DeliveryHandle | None = None,
    ) -> ConversationSession:
        """Create or refresh the session for an inbound message.

        Args:
            conversation_id: Platform conversation id (session key).
            user_id: Sender id.
            user_display_name: Sender display name, if the platform supplied one.
            message_text: Raw message text. When present it is normalised into
                the recent-query history and re-classified.
            delivery_handle: Fresh conversation reference; replaces any stored one.

        Returns:
            The live session object.
        """
        now = self._clock()
        session = self._sessions.get(conversation_id)
        if session is None:
            session = ConversationSession(
                conversation_id=conversation_id,
                user_id=user_id,
                user_display_name=user_display_name,
                last_activity_at=now,
            )
            self._sessions[conversation_id] = session
            logger.debug("Created session for conversation '%s'", conversation_id)
        else:
            session.last_activity_at = now
            session.message_count += 1

        if message_text:
            query = message_text.strip().lower()
            session.recent_queries.append(query)
            del session.recent_queries[:-MAX_RECENT_QUERIES]
            session.inferred_urgency = classify_urgency(message_text)
            session.inferred_topic = classify_topic(message_text)

        if delivery_handle is not None:
            session.delivery_handle = delivery_handle

        return session

    def get(self, conversation_id: str) -> ConversationSession | None:
        return self._sessions.get(conversation_id)

    def set_thread(self, conversation_id: str, thread_id: str) -> bool:
        """Record the backend thread for a conversation. Returns False if unknown."""
        session = self._sessions.get(conversation_id)
        if session is None:
            return False
        session.thread_id = thread_id
        return True

    def sessions(self) -> list[ConversationSession]:
        """Snapshot of all sessions, safe to iterate while the store changes."""
        return list(self._sessions.values())

    def all_delivery_handles(self) -> list[tuple[str, str, DeliveryHandle]]:
        """Return ``(conversation_id, user_id, handle)`` for every addressable session."""
        return [
            (s.conversation_id, s.user_id, s.delivery_handle)
            for s in self._sessions.values()
            if s.delivery_handle is not None
        ]

    def evict_older_than(self, max_age_hours: float = 24) -> int:
        """Remove sessions idle for strictly longer than ``max_age_hours``.

        Returns:
            Number of sessions removed.
        """
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        stale = [cid for cid, s in self._sessions.items() if s.last_activity_at < cutoff]
        for cid in stale:
            del self._sessions[cid]
        if stale:
            logger.info("Evicted %d session(s) idle for more than %sh", len(stale), max_age_hours)
        return len(stale)

    def enhance(self, text: str, conversation_id: str) -> str:
        """Append conversation context to ``text`` for the AI backend.

        Returns ``text`` unchanged when the conversation is unknown or has no
        query history yet.
        """
        session = self._sessions.get(conversation_id)
        if session is None or not session.recent_queries:
            return text

        parts = [text]
        topic = session.inferred_topic
        if topic and topic != DEFAULT_TOPIC:
            parts.append(f"Context: This conversation is focusing on {topic}.")

        if len(session.recent_queries) > 1:
            recent = ", ".join(session.recent_queries[-RECENT_TOPICS_IN_CONTEXT:])
            parts.append(f"Recent discussion topics: {recent}")

        parts.append(f"User preference: Provide {session.response_preference.detail_level} responses.")
        return "\n\n".join(parts)
