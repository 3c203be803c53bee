"""Pydantic models for per-conversation state."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Urgency = Literal["low", "medium", "high", "critical"]

# Ordered lowest → highest; also the key order of the statistics distribution.
URGENCY_LEVELS: tuple[Urgency, ...] = ("low", "medium", "high", "critical")

DEFAULT_TOPIC = "general security"
MAX_RECENT_QUERIES = 5


class DeliveryHandle(BaseModel):
    """Bot Framework conversation reference used to address a later proactive send."""

    service_url: str
    channel_id: str
    conversation_id: str
    user_id: str
    user_name: str | None = None
    bot_id: str = ""
    bot_name: str | None = None
    tenant_id: str | None = None
    team_channel_id: str | None = None  # Teams channel (19:...@thread.tacv2) when posted in a team


class ResponsePreference(BaseModel):
    detail_level: Literal["brief", "detailed", "comprehensive"] = "detailed"
    format: Literal["text", "structured"] = "text"


class ConversationSession(BaseModel):
    """State tracked for one chat-platform conversation."""

    conversation_id: str
    user_id: str
    user_display_name: str | None = None
    thread_id: str | None = None
    last_activity_at: datetime
    message_count: int = 1
    recent_queries: list[str] = Field(default_factory=list)
    inferred_urgency: Urgency | None = None
    inferred_topic: str | None = None
    response_preference: ResponsePreference = Field(default_factory=ResponsePreference)
    delivery_handle: DeliveryHandle | None = None
