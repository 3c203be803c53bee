"""Service container: every stateful engine component, built once per process.

Request handlers receive the container through ``app.state.services`` rather
than reaching for module-level globals, so tests can build isolated instances.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from src.agent.backend import AgentBackend, create_agent_backend
from src.agent.connector import AgentConnector
from src.bot.connector import BotConnectorClient
from src.bot.handler import SecurityBot
from src.config import Settings
from src.conversation.sessions import SessionStore
from src.conversation.stats import StatisticsAggregator
from src.conversation.threads import ThreadCorrelator
from src.notify.formatting import load_notification_template
from src.notify.preferences import PreferenceStore
from src.notify.router import ActivitySender, NotificationRouter

logger = logging.getLogger(__name__)


class Services(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    settings: Settings
    sessions: SessionStore
    preferences: PreferenceStore
    threads: ThreadCorrelator
    stats: StatisticsAggregator
    agent: AgentConnector
    router: NotificationRouter
    bot: SecurityBot
    notification_template: dict[str, Any]


def build_services(
    settings: Settings,
    *,
    backend: AgentBackend | None = None,
    sender: ActivitySender | None = None,
) -> Services:
    """Wire the engine together.

    ``backend`` and ``sender`` default to the configured AI backend and the
    Bot Framework connector; both constructors raise ``ConfigurationError``
    when their required settings are missing.
    """
    if backend is None:
        backend = create_agent_backend(settings)
    if sender is None:
        sender = BotConnectorClient(settings)

    sessions = SessionStore()
    preferences = PreferenceStore()
    threads = ThreadCorrelator(backend.create_thread, max_entries=settings.thread_cache_max_entries)
    agent = AgentConnector(backend, threads, sessions)

    logger.info("Services ready (backend=%s)", backend.name)
    return Services(
        settings=settings,
        sessions=sessions,
        preferences=preferences,
        threads=threads,
        stats=StatisticsAggregator(sessions),
        agent=agent,
        router=NotificationRouter(sessions, preferences, sender),
        bot=SecurityBot(sessions, agent, sender),
        notification_template=load_notification_template(),
    )
