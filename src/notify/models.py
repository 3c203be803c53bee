"""Pydantic models for alerts, notification payloads and delivery preferences."""

from datetime import UTC, datetime, time
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.conversation.models import Urgency

Severity = Urgency
AlertCategory = Literal["threat", "incident", "compliance", "vulnerability", "access"]
NotificationKind = Literal["alert", "incident", "update", "reminder"]


class SecurityAlert(BaseModel):
    """An alert pushed by an external security system. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    severity: Severity = "medium"
    category: AlertCategory = "threat"
    source: str = "Security System"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    affected_systems: tuple[str, ...] | None = None
    recommended_actions: tuple[str, ...] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class NotificationPayload(BaseModel):
    """Dispatch-time wrapper around whatever is being fanned out."""

    kind: NotificationKind
    priority: str
    alert: SecurityAlert | None = None
    message: str | None = None
    card: dict[str, Any] | None = None
    target_user_ids: list[str] | None = None
    target_channel_ids: list[str] | None = None


class DeliveryOutcome(BaseModel):
    conversation_id: str
    user_id: str
    success: bool
    error: str | None = None


class DailySummary(BaseModel):
    new_alerts: int = 0
    resolved_incidents: int = 0
    active_threats: int = 0
    system_health: Literal["good", "warning", "critical"] = "good"


class QuietHours(BaseModel):
    """Inclusive local-time window; ``start > end`` wraps past midnight."""

    start: time
    end: time

    def contains(self, moment: time) -> bool:
        start = _minute_of_day(self.start)
        end = _minute_of_day(self.end)
        now = _minute_of_day(moment)
        if start <= end:
            return start <= now <= end
        return now >= start or now <= end


class EscalationRules(BaseModel):
    critical_only: bool = False


class UserNotificationPreference(BaseModel):
    user_id: str
    allowed_categories: set[str] = Field(default_factory=set)
    quiet_hours: QuietHours | None = None
    escalation: EscalationRules = Field(default_factory=EscalationRules)
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown timezone '{value}'"
            raise ValueError(msg) from exc
        return value


def _minute_of_day(moment: time) -> int:
    return moment.hour * 60 + moment.minute
