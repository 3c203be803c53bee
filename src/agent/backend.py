"""AI backend contract and factory.

A backend owns conversational memory in "threads". The engine only needs to
create a thread and to run one prompt against a thread; everything else about
the backend protocol stays behind this interface.
"""

import logging
from typing import Any, Protocol

from pydantic import BaseModel

from src.config import ConfigurationError, Settings

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = "I'm sorry, I couldn't process your request at the moment. Please try again later."


class AgentBackendError(RuntimeError):
    """A call to the AI backend failed."""


class ThreadNotFoundError(AgentBackendError):
    """The backend no longer knows the thread (expired or deleted)."""

    def __init__(self, thread_id: str) -> None:
        super().__init__(f"Thread '{thread_id}' not found")
        self.thread_id = thread_id


class AgentRunError(AgentBackendError):
    """The backend accepted the prompt but the run did not complete."""


class AgentResponse(BaseModel):
    message: str
    thread_id: str


class AgentBackend(Protocol):
    name: str

    async def create_thread(self) -> str: ...

    async def run(self, thread_id: str, prompt: str) -> str: ...

    def describe(self) -> dict[str, Any]: ...


def create_agent_backend(settings: Settings) -> AgentBackend:
    """Build the backend selected by ``AGENT_BACKEND``.

    Raises:
        ConfigurationError: Unknown backend name or a required setting is missing.
    """
    backend = settings.agent_backend.lower()
    if backend == "foundry":
        from src.agent.foundry import FoundryAgentBackend

        return FoundryAgentBackend(settings)

    msg = f"Unknown AGENT_BACKEND '{settings.agent_backend}' (expected 'foundry')"
    raise ConfigurationError(msg)
