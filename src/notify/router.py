"""Proactive notification fanout across known conversations.

The router holds no state of its own: recipients come from the
``SessionStore``, the delivery decision from the ``PreferenceStore`` and the
actual send from an injected ``ActivitySender`` (the Bot Framework connector in
production).
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol

from src.conversation.models import DeliveryHandle
from src.conversation.sessions import SessionStore
from src.notify.formatting import format_daily_summary, render_payload
from src.notify.models import DailySummary, DeliveryOutcome, NotificationPayload, SecurityAlert, Severity
from src.notify.preferences import PreferenceStore
from src.observability.metrics import NOTIFICATIONS_TOTAL

logger = logging.getLogger(__name__)


class ActivitySender(Protocol):
    async def send(self, handle: DeliveryHandle, activity: dict[str, Any]) -> Any: ...


def delivered_count(outcomes: Sequence[DeliveryOutcome]) -> int:
    return sum(1 for o in outcomes if o.success)


class NotificationRouter:
    def __init__(self, sessions: SessionStore, preferences: PreferenceStore, sender: ActivitySender) -> None:
        self._sessions = sessions
        self._preferences = preferences
        self._sender = sender

    async def send_alert(
        self,
        alert: SecurityAlert,
        target_user_ids: Sequence[str] | None = None,
    ) -> list[DeliveryOutcome]:
        payload = NotificationPayload(kind="alert", priority=alert.severity, alert=alert)
        return await self.fanout(payload, target_user_ids)

    async def send_incident(
        self,
        incident_id: str,
        title: str,
        description: str,
        severity: Severity = "high",
        target_user_ids: Sequence[str] | None = None,
    ) -> list[DeliveryOutcome]:
        alert = SecurityAlert(
            id=incident_id,
            title=title,
            description=description,
            severity=severity,
            category="incident",
            source="SOCBot Monitoring",
        )
        payload = NotificationPayload(kind="incident", priority=severity, alert=alert)
        return await self.fanout(payload, target_user_ids)

    async def send_message(
        self,
        text: str,
        priority: str = "medium",
        target_user_ids: Sequence[str] | None = None,
    ) -> list[DeliveryOutcome]:
        payload = NotificationPayload(kind="update", priority=priority, message=text)
        return await self.fanout(payload, target_user_ids)

    async def send_daily_summary(self, summary: DailySummary) -> list[DeliveryOutcome]:
        return await self.send_message(format_daily_summary(summary), priority="low")

    async def send_notification_card(
        self,
        card: dict[str, Any],
        title: str,
        target_user_ids: Sequence[str] | None = None,
        target_channel_ids: Sequence[str] | None = None,
    ) -> list[DeliveryOutcome]:
        payload = NotificationPayload(
            kind="update",
            priority="medium",
            message=title,
            card=card,
            target_channel_ids=list(target_channel_ids) if target_channel_ids else None,
        )
        return await self.fanout(payload, target_user_ids)

    async def fanout(
        self,
        payload: NotificationPayload,
        target_user_ids: Sequence[str] | None = None,
    ) -> list[DeliveryOutcome]:
        """Deliver ``payload`` to every eligible known conversation.

        Recipients are filtered by the explicit user targets (falling back to
        ``payload.target_user_ids``), by ``payload.target_channel_ids`` and by
        each user's preferences. A channel target matches either the platform
        name or the Teams channel id. Survivors are sent to concurrently; a
        failed send is logged and reported as an unsuccessful outcome without
        affecting the others.

        Returns:
            One outcome per attempted recipient, in enumeration order.
        """
        users = set(target_user_ids or payload.target_user_ids or ())
        channels = set(payload.target_channel_ids or ())

        recipients: list[tuple[str, str, DeliveryHandle]] = []
        for conversation_id, user_id, handle in self._sessions.all_delivery_handles():
            if users and user_id not in users:
                continue
            if channels and not channels & {handle.channel_id, handle.team_channel_id}:
                continue
            if not self._preferences.should_notify(user_id, payload.kind, payload.priority):
                logger.debug("Preferences suppressed %s for user '%s'", payload.kind, user_id)
                continue
            recipients.append((conversation_id, user_id, handle))

        if not recipients:
            logger.warning("No eligible conversations for %s notification", payload.kind)
            return []

        text, card = render_payload(payload)
        activity: dict[str, Any] = {"type": "message", "text": text}
        if card is not None:
            activity["attachments"] = [card]

        outcomes = await asyncio.gather(
            *(self._deliver(cid, uid, handle, activity, payload.kind) for cid, uid, handle in recipients)
        )
        logger.info(
            "Proactive %s notification delivered to %d of %d conversation(s)",
            payload.kind,
            delivered_count(outcomes),
            len(outcomes),
        )
        return list(outcomes)

    async def _deliver(
        self,
        conversation_id: str,
        user_id: str,
        handle: DeliveryHandle,
        activity: dict[str, Any],
        kind: str,
    ) -> DeliveryOutcome:
        try:
            await self._sender.send(handle, activity)
        except Exception as exc:
            NOTIFICATIONS_TOTAL.labels(kind=kind, status="error").inc()
            logger.exception("Failed to deliver %s notification to conversation '%s'", kind, conversation_id)
            return DeliveryOutcome(conversation_id=conversation_id, user_id=user_id, success=False, error=str(exc))
        NOTIFICATIONS_TOTAL.labels(kind=kind, status="success").inc()
        return DeliveryOutcome(conversation_id=conversation_id, user_id=user_id, success=True)
