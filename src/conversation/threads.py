"""Conversation → backend AI thread correlation with a bounded LRU cache."""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 100


class ThreadCorrelator:
    """Maps conversation ids to backend thread ids, creating threads lazily.

    The cache holds at most ``max_entries`` mappings; resolving a cached id
    marks it most recently used and the least recently used mapping is dropped
    when a new one would exceed the bound.

    Thread creation is single-flight per conversation: concurrent ``resolve``
    calls for the same id await one shared backend call. If that call fails
    every waiter sees the error and nothing is cached.
    """

    def __init__(
        self,
        create_thread: Callable[[], Awaitable[str]],
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        if max_entries < 1:
            msg = f"max_entries must be at least 1, got {max_entries}"
            raise ValueError(msg)
        self._create_thread = create_thread
        self._max_entries = max_entries
        self._cache: OrderedDict[str, str] = OrderedDict()
        self._pending: dict[str, asyncio.Future[str]] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._cache

    @property
    def max_entries(self) -> int:
        return self._max_entries

    async def resolve(self, conversation_id: str) -> str:
        """Return the thread id for a conversation, creating one on a cache miss."""
        thread_id = self._cache.get(conversation_id)
        if thread_id is not None:
            self._cache.move_to_end(conversation_id)
            return thread_id

        pending = self._pending.get(conversation_id)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future[str] = asyncio.ensure_future(self._create_thread())
        self._pending[conversation_id] = future
        try:
            thread_id = await asyncio.shield(future)
        finally:
            self._pending.pop(conversation_id, None)

        self._store(conversation_id, thread_id)
        logger.info("Created thread '%s' for conversation '%s'", thread_id, conversation_id)
        return thread_id

    def peek(self, conversation_id: str) -> str | None:
        """Cached thread id without touching recency or the backend."""
        return self._cache.get(conversation_id)

    def invalidate(self, conversation_id: str) -> None:
        if self._cache.pop(conversation_id, None) is not None:
            logger.info("Invalidated thread mapping for conversation '%s'", conversation_id)

    def clear_all(self) -> None:
        count = len(self._cache)
        self._cache.clear()
        logger.info("Cleared %d thread mapping(s)", count)

    def _store(self, conversation_id: str, thread_id: str) -> None:
        self._cache[conversation_id] = thread_id
        self._cache.move_to_end(conversation_id)
        while len(self._cache) > self._max_entries:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug("Evicted thread mapping for conversation '%s'", evicted)
