"""APScheduler integration for the session eviction sweep.

Uses AsyncIOScheduler with CronTrigger to evict idle conversation sessions on
a configurable schedule.  No-ops gracefully if no cron expression is configured.
"""

import contextlib
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]

from src.conversation.sessions import SessionStore
from src.observability.metrics import ACTIVE_SESSIONS, SESSIONS_EVICTED_TOTAL

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


def run_eviction_sweep(sessions: SessionStore, max_age_hours: float) -> int:
    """Evict idle sessions and refresh the session gauge. Never raises."""
    try:
        evicted = sessions.evict_older_than(max_age_hours)
    except Exception:
        logger.exception("Session eviction sweep failed")
        return 0
    SESSIONS_EVICTED_TOTAL.inc(evicted)
    ACTIVE_SESSIONS.set(len(sessions))
    return evicted


def start_scheduler(cron: str, sessions: SessionStore, max_age_hours: float) -> None:
    """Start the APScheduler if a cron expression is configured."""
    global _scheduler  # noqa: PLW0603

    if not cron:
        logger.info("Maintenance scheduler disabled (MAINTENANCE_SCHEDULE_CRON not set)")
        return

    trigger = CronTrigger.from_crontab(cron)
    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        run_eviction_sweep,
        trigger=trigger,
        args=[sessions, max_age_hours],
        id="session_eviction",
        name="Conversation session eviction sweep",
        replace_existing=True,
    )
    _scheduler.start()
    logger.info("Maintenance scheduler started with cron: %s", cron)


def stop_scheduler() -> None:
    """Gracefully shut down the scheduler if it is running."""
    global _scheduler  # noqa: PLW0603

    if _scheduler is not None:
        with contextlib.suppress(Exception):
            _scheduler.shutdown(wait=False)
        logger.info("Maintenance scheduler stopped")
        _scheduler = None
