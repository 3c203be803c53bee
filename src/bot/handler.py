"""Inbound activity handling: session tracking, context enrichment, AI reply."""

import logging
from typing import Any

from src.agent.connector import AgentConnector
from src.bot.activity import Activity, conversation_reference, remove_mentions
from src.conversation.models import DeliveryHandle
from src.conversation.sessions import SessionStore
from src.notify.router import ActivitySender

logger = logging.getLogger(__name__)

ERROR_REPLY = "I'm sorry, I encountered an error processing your message. Please try again later."
EMPTY_MESSAGE_REPLY = "Hi! I'm SOCBot. How can I help you with security operations today?"
WELCOME_TEXT = (
    "Welcome to SOCBot! 🛡️\n\n"
    "I'm your Security Operations Center assistant. I can help you with:\n\n"
    "• Security incident analysis\n"
    "• Threat intelligence insights\n"
    "• Security best practices\n"
    "• Compliance guidance\n\n"
    "Just send me a message or mention me in a channel to get started!"
)


def _message(text: str) -> dict[str, Any]:
    return {"type": "message", "text": text}


class SecurityBot:
    def __init__(self, sessions: SessionStore, agent: AgentConnector, sender: ActivitySender) -> None:
        self._sessions = sessions
        self._agent = agent
        self._sender = sender

    async def handle_activity(self, activity: Activity) -> None:
        match activity.type:
            case "message":
                await self._on_message(activity)
            case "conversationUpdate":
                await self._on_conversation_update(activity)
            case _:
                logger.debug("Ignoring activity of type '%s'", activity.type)

    async def _on_message(self, activity: Activity) -> None:
        if not activity.text:
            return

        handle = conversation_reference(activity)
        conversation_id = activity.conversation.id
        clean_text = remove_mentions(activity.text)

        self._sessions.update(
            conversation_id,
            activity.from_.id,
            activity.from_.name,
            message_text=clean_text,
            delivery_handle=handle,
        )

        if not clean_text:
            await self._send_quietly(handle, _message(EMPTY_MESSAGE_REPLY))
            return

        try:
            await self._sender.send(handle, {"type": "typing"})
            prompt = self._sessions.enhance(clean_text, conversation_id)
            response = await self._agent.process_prompt(prompt, conversation_id)
            await self._sender.send(handle, _message(response.message))
        except Exception:
            logger.exception("Error handling message in conversation '%s'", conversation_id)
            await self._send_quietly(handle, _message(ERROR_REPLY))

    async def _send_quietly(self, handle: DeliveryHandle, activity: dict[str, Any]) -> None:
        """Send a bot-initiated reply; delivery failures are logged, never raised."""
        try:
            await self._sender.send(handle, activity)
        except Exception:
            logger.exception("Could not deliver reply to conversation '%s'", handle.conversation_id)

    async def _on_conversation_update(self, activity: Activity) -> None:
        if not activity.members_added:
            return

        handle = conversation_reference(activity)
        for member in activity.members_added:
            if member.id == activity.recipient.id:
                continue
            await self._send_quietly(handle, _message(WELCOME_TEXT))
