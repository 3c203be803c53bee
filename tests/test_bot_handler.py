"""Tests for inbound activity parsing and the SecurityBot handler."""

import logging
from typing import Any

import pytest

from src.agent.backend import AgentRunError
from src.agent.connector import AgentConnector
from src.bot.activity import Activity, conversation_reference, remove_mentions
from src.bot.handler import EMPTY_MESSAGE_REPLY, ERROR_REPLY, WELCOME_TEXT, SecurityBot
from src.conversation.sessions import SessionStore
from src.conversation.threads import ThreadCorrelator
from tests.fakes import FakeBackend, FrozenClock, RecordingSender

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _activity(activity_type: str = "message", text: str | None = "hello", **extra: Any) -> Activity:
    payload: dict[str, Any] = {
        "type": activity_type,
        "id": "act-1",
        "serviceUrl": "https://smba.test/amer/",
        "channelId": "msteams",
        "from": {"id": "29:user-1", "name": "Alice", "aadObjectId": "aad-1"},
        "recipient": {"id": "28:bot-id", "name": "SOCBot"},
        "conversation": {"id": "conv-1", "conversationType": "personal", "tenantId": "tenant-1"},
        "text": text,
        **extra,
    }
    return Activity.model_validate(payload)


@pytest.fixture
def sessions(clock: FrozenClock) -> SessionStore:
    return SessionStore(clock)


@pytest.fixture
def bot(sessions: SessionStore, backend: FakeBackend, sender: RecordingSender) -> SecurityBot:
    agent = AgentConnector(backend, ThreadCorrelator(backend.create_thread), sessions)
    return SecurityBot(sessions, agent, sender)


# ---------------------------------------------------------------------------
# Activity envelope
# ---------------------------------------------------------------------------


class TestActivity:
    def test_parses_camel_case_envelope(self) -> None:
        activity = _activity()

        assert activity.from_.id == "29:user-1"
        assert activity.from_.aad_object_id == "aad-1"
        assert activity.service_url == "https://smba.test/amer/"
        assert activity.conversation.conversation_type == "personal"

    def test_keeps_unknown_fields(self) -> None:
        activity = _activity(locale="en-US")
        assert activity.model_extra == {"locale": "en-US"}

    def test_conversation_reference(self) -> None:
        handle = conversation_reference(_activity())

        assert handle.conversation_id == "conv-1"
        assert handle.user_id == "29:user-1"
        assert handle.user_name == "Alice"
        assert handle.bot_id == "28:bot-id"
        assert handle.tenant_id == "tenant-1"

    def test_tenant_from_channel_data(self) -> None:
        activity = Activity.model_validate(
            {
                "type": "message",
                "serviceUrl": "https://smba.test/amer/",
                "channelId": "msteams",
                "from": {"id": "u"},
                "recipient": {"id": "b"},
                "conversation": {"id": "c"},
                "channelData": {"tenant": {"id": "tenant-9"}},
            }
        )
        assert conversation_reference(activity).tenant_id == "tenant-9"

    def test_team_channel_from_channel_data(self) -> None:
        activity = _activity(channelData={"channel": {"id": "19:soc-alerts@thread.tacv2"}, "team": {"id": "19:team"}})

        handle = conversation_reference(activity)

        assert handle.channel_id == "msteams"
        assert handle.team_channel_id == "19:soc-alerts@thread.tacv2"

    def test_personal_chat_has_no_team_channel(self) -> None:
        assert conversation_reference(_activity()).team_channel_id is None

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("<at>SOCBot</at> any new alerts?", "any new alerts?"),
            ("@SOCBot status", "status"),
            ("no mention here", "no mention here"),
            ("<at>SOCBot</at>", ""),
        ],
    )
    def test_remove_mentions(self, text: str, expected: str) -> None:
        assert remove_mentions(text) == expected


# ---------------------------------------------------------------------------
# Message handling
# ---------------------------------------------------------------------------


class TestOnMessage:
    async def test_replies_with_backend_answer(
        self, bot: SecurityBot, sender: RecordingSender, backend: FakeBackend
    ) -> None:
        await bot.handle_activity(_activity(text="<at>SOCBot</at> Suspicious login on vpn"))

        assert sender.sent[0][1] == {"type": "typing"}
        assert sender.texts() == [backend.reply]
        thread_id, prompt = backend.prompts[0]
        assert thread_id == "thread-1"
        assert prompt.startswith("Suspicious login on vpn")
        assert "User preference: Provide detailed responses." in prompt

    async def test_tracks_session(self, bot: SecurityBot, sessions: SessionStore) -> None:
        await bot.handle_activity(_activity(text="Ransomware attack detected"))

        session = sessions.get("conv-1")
        assert session is not None
        assert session.user_id == "29:user-1"
        assert session.user_display_name == "Alice"
        assert session.inferred_urgency == "critical"
        assert session.thread_id == "thread-1"
        assert session.delivery_handle is not None

    async def test_reuses_thread_across_messages(self, bot: SecurityBot, backend: FakeBackend) -> None:
        await bot.handle_activity(_activity(text="first question"))
        await bot.handle_activity(_activity(text="second question"))

        assert backend.threads_created == 1
        assert [t for t, _ in backend.prompts] == ["thread-1", "thread-1"]
        assert "Recent discussion topics: first question, second question" in backend.prompts[1][1]

    async def test_mention_only_gets_greeting(
        self, bot: SecurityBot, sender: RecordingSender, backend: FakeBackend
    ) -> None:
        await bot.handle_activity(_activity(text="<at>SOCBot</at>"))

        assert sender.texts() == [EMPTY_MESSAGE_REPLY]
        assert backend.prompts == []

    async def test_no_text_is_ignored(self, bot: SecurityBot, sender: RecordingSender) -> None:
        await bot.handle_activity(_activity(text=None))
        assert sender.sent == []

    async def test_backend_failure_sends_error_reply(
        self, bot: SecurityBot, sender: RecordingSender, backend: FakeBackend
    ) -> None:
        backend.run_error = AgentRunError("run failed")

        await bot.handle_activity(_activity(text="what is happening?"))

        assert sender.texts() == [ERROR_REPLY]

    async def test_error_reply_failure_is_swallowed(
        self, sessions: SessionStore, backend: FakeBackend
    ) -> None:
        sender = RecordingSender(fail_for={"conv-1"})
        agent = AgentConnector(backend, ThreadCorrelator(backend.create_thread), sessions)
        bot = SecurityBot(sessions, agent, sender)

        await bot.handle_activity(_activity(text="hello"))

        assert sender.attempted == ["conv-1", "conv-1"]

    async def test_greeting_send_failure_is_logged(
        self, sessions: SessionStore, backend: FakeBackend, caplog: pytest.LogCaptureFixture
    ) -> None:
        sender = RecordingSender(fail_for={"conv-1"})
        agent = AgentConnector(backend, ThreadCorrelator(backend.create_thread), sessions)
        bot = SecurityBot(sessions, agent, sender)

        with caplog.at_level(logging.ERROR, logger="src.bot.handler"):
            await bot.handle_activity(_activity(text="<at>SOCBot</at>"))

        assert sender.attempted == ["conv-1"]
        assert "Could not deliver reply to conversation 'conv-1'" in caplog.text
        assert sessions.get("conv-1") is not None

    async def test_other_activity_types_ignored(self, bot: SecurityBot, sender: RecordingSender) -> None:
        await bot.handle_activity(_activity(activity_type="invoke"))
        assert sender.sent == []


# ---------------------------------------------------------------------------
# Conversation updates
# ---------------------------------------------------------------------------


class TestConversationUpdate:
    async def test_welcomes_new_members_but_not_the_bot(
        self, bot: SecurityBot, sender: RecordingSender, sessions: SessionStore
    ) -> None:
        activity = _activity(
            activity_type="conversationUpdate",
            text=None,
            membersAdded=[{"id": "28:bot-id"}, {"id": "29:user-1"}, {"id": "29:user-2"}],
        )

        await bot.handle_activity(activity)

        assert sender.texts() == [WELCOME_TEXT, WELCOME_TEXT]
        assert len(sessions) == 0

    async def test_welcome_send_failure_is_logged(
        self, sessions: SessionStore, backend: FakeBackend, caplog: pytest.LogCaptureFixture
    ) -> None:
        sender = RecordingSender(fail_for={"conv-1"})
        agent = AgentConnector(backend, ThreadCorrelator(backend.create_thread), sessions)
        bot = SecurityBot(sessions, agent, sender)
        activity = _activity(
            activity_type="conversationUpdate",
            text=None,
            membersAdded=[{"id": "29:user-1"}, {"id": "29:user-2"}],
        )

        with caplog.at_level(logging.ERROR, logger="src.bot.handler"):
            await bot.handle_activity(activity)

        assert sender.attempted == ["conv-1", "conv-1"]
        assert caplog.text.count("Could not deliver reply to conversation 'conv-1'") == 2

    async def test_without_members_added(self, bot: SecurityBot, sender: RecordingSender) -> None:
        await bot.handle_activity(_activity(activity_type="conversationUpdate", text=None))
        assert sender.sent == []
