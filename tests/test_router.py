"""Unit tests for proactive notification fanout."""

from datetime import UTC, datetime, time

import pytest
from prometheus_client import REGISTRY

from src.conversation.sessions import SessionStore
from src.notify.models import (
    DailySummary,
    DeliveryOutcome,
    NotificationPayload,
    QuietHours,
    SecurityAlert,
    UserNotificationPreference,
)
from src.notify.preferences import PreferenceStore
from src.notify.router import NotificationRouter, delivered_count
from tests.fakes import FrozenClock, RecordingSender, make_handle

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sessions(clock: FrozenClock) -> SessionStore:
    """Three addressable conversations plus one without a delivery handle."""
    store = SessionStore(clock)
    store.update("conv-1", "u1", message_text="hi", delivery_handle=make_handle("conv-1", "u1"))
    store.update("conv-2", "u2", message_text="hi", delivery_handle=make_handle("conv-2", "u2", channel_id="slack"))
    store.update("conv-3", "u3", message_text="hi", delivery_handle=make_handle("conv-3", "u3"))
    store.update("conv-4", "u4", message_text="hi")
    return store


@pytest.fixture
def preferences(clock: FrozenClock) -> PreferenceStore:
    return PreferenceStore(clock)


@pytest.fixture
def router(sessions: SessionStore, preferences: PreferenceStore, sender: RecordingSender) -> NotificationRouter:
    return NotificationRouter(sessions, preferences, sender)


def _alert(severity: str = "high") -> SecurityAlert:
    return SecurityAlert.model_validate({"id": "a1", "title": "T", "description": "D", "severity": severity})


# ---------------------------------------------------------------------------
# fanout
# ---------------------------------------------------------------------------


class TestFanout:
    async def test_broadcast_to_every_addressable_conversation(
        self, router: NotificationRouter, sender: RecordingSender
    ) -> None:
        outcomes = await router.send_message("Patch window tonight")

        assert [o.conversation_id for o in outcomes] == ["conv-1", "conv-2", "conv-3"]
        assert delivered_count(outcomes) == 3
        assert sorted(sender.attempted) == ["conv-1", "conv-2", "conv-3"]

    async def test_user_targets_restrict_recipients(
        self, router: NotificationRouter, sessions: SessionStore, sender: RecordingSender
    ) -> None:
        for i in range(10):
            sessions.update(f"extra-{i}", f"other-{i}", delivery_handle=make_handle(f"extra-{i}", f"other-{i}"))

        outcomes = await router.send_alert(_alert(), target_user_ids=["u1"])

        assert [o.user_id for o in outcomes] == ["u1"]
        assert sender.attempted == ["conv-1"]

    async def test_payload_targets_used_when_no_explicit_targets(
        self, router: NotificationRouter, sender: RecordingSender
    ) -> None:
        payload = NotificationPayload(kind="update", priority="low", message="x", target_user_ids=["u3"])

        await router.fanout(payload)

        assert sender.attempted == ["conv-3"]

    async def test_channel_targets(self, router: NotificationRouter, sender: RecordingSender) -> None:
        payload = NotificationPayload(kind="update", priority="low", message="x", target_channel_ids=["slack"])

        outcomes = await router.fanout(payload)

        assert [o.conversation_id for o in outcomes] == ["conv-2"]

    async def test_channel_targets_match_teams_channel_id(
        self, sessions: SessionStore, router: NotificationRouter, sender: RecordingSender
    ) -> None:
        soc_channel = "19:soc-alerts@thread.tacv2"
        sessions.update(
            "conv-5", "u5", message_text="hi", delivery_handle=make_handle("conv-5", "u5", team_channel_id=soc_channel)
        )
        payload = NotificationPayload(kind="update", priority="low", message="x", target_channel_ids=[soc_channel])

        outcomes = await router.fanout(payload)

        assert [o.conversation_id for o in outcomes] == ["conv-5"]
        assert sender.attempted == ["conv-5"]

    async def test_one_failure_does_not_abort_batch(
        self, sessions: SessionStore, preferences: PreferenceStore
    ) -> None:
        sender = RecordingSender(fail_for={"conv-2"})
        router = NotificationRouter(sessions, preferences, sender)

        outcomes = await router.send_alert(_alert())

        assert sorted(sender.attempted) == ["conv-1", "conv-2", "conv-3"]
        assert delivered_count(outcomes) == 2
        failed = [o for o in outcomes if not o.success]
        assert len(failed) == 1
        assert failed[0].conversation_id == "conv-2"
        assert "connector refused" in (failed[0].error or "")

    async def test_failure_counted_in_metrics(self, sessions: SessionStore, preferences: PreferenceStore) -> None:
        labels = {"kind": "reminder", "status": "error"}
        before = REGISTRY.get_sample_value("socbot_notifications_total", labels) or 0.0
        router = NotificationRouter(sessions, preferences, RecordingSender(fail_for={"conv-1"}))

        await router.fanout(NotificationPayload(kind="reminder", priority="low"))

        after = REGISTRY.get_sample_value("socbot_notifications_total", labels)
        assert after == before + 1

    async def test_preferences_filter_recipients(
        self, router: NotificationRouter, preferences: PreferenceStore, sender: RecordingSender
    ) -> None:
        preferences.set("u1", UserNotificationPreference(user_id="u1", allowed_categories={"alert"}))

        await router.send_message("maintenance")

        assert "conv-1" not in sender.attempted
        assert sorted(sender.attempted) == ["conv-2", "conv-3"]

    async def test_quiet_hours_let_critical_through(
        self, sessions: SessionStore, sender: RecordingSender
    ) -> None:
        night = FrozenClock(datetime(2026, 3, 2, 23, 30, tzinfo=UTC))
        preferences = PreferenceStore(night)
        preferences.set(
            "u1",
            UserNotificationPreference(user_id="u1", quiet_hours=QuietHours(start=time(22, 0), end=time(6, 0))),
        )
        router = NotificationRouter(sessions, preferences, sender)

        await router.send_alert(_alert("high"), target_user_ids=["u1"])
        assert sender.attempted == []

        await router.send_alert(_alert("critical"), target_user_ids=["u1"])
        assert sender.attempted == ["conv-1"]

    async def test_no_recipients_returns_empty(self, router: NotificationRouter, sender: RecordingSender) -> None:
        outcomes = await router.send_message("hello", target_user_ids=["nobody"])

        assert outcomes == []
        assert sender.attempted == []


# ---------------------------------------------------------------------------
# Convenience senders
# ---------------------------------------------------------------------------


class TestSenders:
    async def test_alert_activity_has_text_and_card(
        self, router: NotificationRouter, sender: RecordingSender
    ) -> None:
        await router.send_alert(_alert("critical"), target_user_ids=["u1"])

        _, activity = sender.sent[0]
        assert activity["type"] == "message"
        assert activity["text"].startswith("🔴 **SOCBot Alert**")
        assert activity["attachments"][0]["content"]["actions"][0]["title"] == "Acknowledge"

    async def test_incident(self, router: NotificationRouter, sender: RecordingSender) -> None:
        await router.send_incident("inc-7", "Lateral movement", "SMB spray from ws-14", target_user_ids=["u1"])

        _, activity = sender.sent[0]
        assert "**Incident ID:** inc-7" in activity["text"]
        assert activity["text"].startswith("🟠")
        assert activity["attachments"][0]["content"]["actions"][0]["title"] == "Start Response"

    async def test_incident_respects_category_preference(
        self, router: NotificationRouter, preferences: PreferenceStore, sender: RecordingSender
    ) -> None:
        preferences.set("u1", UserNotificationPreference(user_id="u1", allowed_categories={"incident"}))

        await router.send_incident("inc-7", "T", "D", target_user_ids=["u1"])

        assert sender.attempted == ["conv-1"]

    async def test_message_has_no_attachments(self, router: NotificationRouter, sender: RecordingSender) -> None:
        await router.send_message("Patch window tonight", priority="low", target_user_ids=["u1"])

        _, activity = sender.sent[0]
        assert activity == {"type": "message", "text": "🟢 **SOCBot Alert**\n\nPatch window tonight"}

    async def test_daily_summary(self, router: NotificationRouter, sender: RecordingSender) -> None:
        await router.send_daily_summary(DailySummary(new_alerts=3))

        assert len(sender.sent) == 3
        assert "Daily Security Summary" in sender.texts()[0]
        assert sender.texts()[0].startswith("🟢")

    async def test_notification_card(self, router: NotificationRouter, sender: RecordingSender) -> None:
        card = {"contentType": "application/vnd.microsoft.card.adaptive", "content": {"type": "AdaptiveCard"}}

        outcomes = await router.send_notification_card(card, "Weekly posture", target_channel_ids=["msteams"])

        assert [o.conversation_id for o in outcomes] == ["conv-1", "conv-3"]
        _, activity = sender.sent[0]
        assert activity["attachments"] == [card]
        assert activity["text"].endswith("Weekly posture")


def test_delivered_count() -> None:
    outcomes = [
        DeliveryOutcome(conversation_id="c1", user_id="u1", success=True),
        DeliveryOutcome(conversation_id="c2", user_id="u2", success=False, error="boom"),
    ]
    assert delivered_count(outcomes) == 1
