"""Bot Framework activity envelope: the subset of fields the bot reads."""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.conversation.models import DeliveryHandle

_AT_TAG = re.compile(r"<at>.*?</at>", re.IGNORECASE)
_AT_WORD = re.compile(r"@\w+")


class _Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class ChannelAccount(_Envelope):
    id: str
    name: str | None = None
    aad_object_id: str | None = None


class ConversationAccount(_Envelope):
    id: str
    name: str | None = None
    conversation_type: str | None = None
    tenant_id: str | None = None
    is_group: bool | None = None


class Activity(_Envelope):
    type: str
    id: str | None = None
    service_url: str
    channel_id: str
    from_: ChannelAccount = Field(alias="from")
    recipient: ChannelAccount
    conversation: ConversationAccount
    text: str | None = None
    members_added: list[ChannelAccount] | None = None
    channel_data: dict[str, Any] | None = None
    value: Any = None


def conversation_reference(activity: Activity) -> DeliveryHandle:
    """Everything needed to address a later proactive message to this conversation."""
    tenant_id = activity.conversation.tenant_id
    if tenant_id is None and activity.channel_data:
        tenant_id = (activity.channel_data.get("tenant") or {}).get("id")
    team_channel_id = ((activity.channel_data or {}).get("channel") or {}).get("id")
    return DeliveryHandle(
        service_url=activity.service_url,
        channel_id=activity.channel_id,
        conversation_id=activity.conversation.id,
        user_id=activity.from_.id,
        user_name=activity.from_.name,
        bot_id=activity.recipient.id,
        bot_name=activity.recipient.name,
        tenant_id=tenant_id,
        team_channel_id=team_channel_id,
    )


def remove_mentions(text: str) -> str:
    """Strip ``<at>Bot</at>`` tags and ``@word`` mentions from message text."""
    text = _AT_TAG.sub("", text).strip()
    return _AT_WORD.sub("", text).strip()
