"""Routes prompts to the AI backend on the thread that belongs to a conversation."""

import logging
import time

from src.agent.backend import AgentBackend, AgentResponse, ThreadNotFoundError
from src.conversation.sessions import SessionStore
from src.conversation.threads import ThreadCorrelator
from src.observability.metrics import AGENT_CALL_DURATION, AGENT_CALLS_TOTAL

logger = logging.getLogger(__name__)


class AgentConnector:
    def __init__(self, backend: AgentBackend, threads: ThreadCorrelator, sessions: SessionStore) -> None:
        self._backend = backend
        self._threads = threads
        self._sessions = sessions

    @property
    def backend(self) -> AgentBackend:
        return self._backend

    async def process_prompt(self, prompt: str, conversation_id: str | None = None) -> AgentResponse:
        """Send ``prompt`` to the backend and return its answer.

        With a ``conversation_id`` the prompt goes to that conversation's
        cached thread (created on first use); without one a throwaway thread
        is created. If the backend reports the thread as gone the mapping is
        invalidated so the next message starts a fresh thread, and the error
        propagates. No retries happen here.
        """
        if conversation_id is None:
            thread_id = await self._backend.create_thread()
        else:
            thread_id = await self._threads.resolve(conversation_id)
            self._sessions.set_thread(conversation_id, thread_id)

        start = time.monotonic()
        try:
            message = await self._backend.run(thread_id, prompt)
        except ThreadNotFoundError:
            AGENT_CALLS_TOTAL.labels(backend=self._backend.name, status="error").inc()
            if conversation_id is not None:
                logger.warning("Thread '%s' vanished for conversation '%s'", thread_id, conversation_id)
                self._threads.invalidate(conversation_id)
            raise
        except Exception:
            AGENT_CALLS_TOTAL.labels(backend=self._backend.name, status="error").inc()
            raise
        finally:
            AGENT_CALL_DURATION.labels(backend=self._backend.name).observe(time.monotonic() - start)

        AGENT_CALLS_TOTAL.labels(backend=self._backend.name, status="success").inc()
        return AgentResponse(message=message, thread_id=thread_id)
