"""Per-user notification preferences and the delivery decision."""

import logging
from zoneinfo import ZoneInfo

from src.conversation.sessions import Clock, utc_now
from src.notify.models import UserNotificationPreference

logger = logging.getLogger(__name__)


class PreferenceStore:
    """Owns every ``UserNotificationPreference``, keyed by user id."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._preferences: dict[str, UserNotificationPreference] = {}

    def set(self, user_id: str, preference: UserNotificationPreference) -> None:
        self._preferences[user_id] = preference

    def get(self, user_id: str) -> UserNotificationPreference | None:
        return self._preferences.get(user_id)

    def remove(self, user_id: str) -> bool:
        return self._preferences.pop(user_id, None) is not None

    def should_notify(self, user_id: str, category: str, priority: str) -> bool:
        """Decide whether a notification may be delivered to ``user_id`` now.

        Users without a preference record are always notified. Otherwise every
        rule must pass:

        - during quiet hours only ``critical`` priority gets through;
        - a non-empty ``allowed_categories`` must contain ``category``;
        - ``escalation.critical_only`` rejects anything below ``critical``.
        """
        prefs = self._preferences.get(user_id)
        if prefs is None:
            return True

        if prefs.quiet_hours is not None:
            local_now = self._clock().astimezone(ZoneInfo(prefs.timezone))
            if prefs.quiet_hours.contains(local_now.time()) and priority != "critical":
                logger.debug("Suppressed %s notification for '%s' (quiet hours)", priority, user_id)
                return False

        if prefs.allowed_categories and category not in prefs.allowed_categories:
            return False

        return not (prefs.escalation.critical_only and priority != "critical")
