"""Outbound message text and Adaptive Card builders for notifications."""

import json
import logging
from pathlib import Path
from typing import Any

from src.notify.models import DailySummary, NotificationPayload, SecurityAlert

logger = logging.getLogger(__name__)

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
APP_NAME = "SOCBot"

PRIORITY_GLYPHS: dict[str, str] = {
    "critical": "🔴",
    "high": "🟠",
    "medium": "🟡",
    "low": "🟢",
}
UNKNOWN_PRIORITY_GLYPH = "🔵"

SEVERITY_COLORS: dict[str, str] = {
    "critical": "attention",
    "high": "warning",
    "medium": "accent",
    "low": "good",
}

HEALTH_GLYPHS: dict[str, str] = {"good": "✅", "warning": "⚠️", "critical": "🚨"}

_TEMPLATE_PATH = Path(__file__).parent / "cards" / "notification-default.json"

_FALLBACK_TEMPLATE: dict[str, Any] = {
    "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
    "type": "AdaptiveCard",
    "version": "1.5",
    "body": [
        {"type": "TextBlock", "text": "${title}", "weight": "Bolder", "size": "Medium", "wrap": True},
        {"type": "TextBlock", "text": "From: ${appName}", "isSubtle": True, "wrap": True},
        {"type": "TextBlock", "text": "${description}", "wrap": True, "spacing": "Medium"},
    ],
    "actions": [{"type": "Action.OpenUrl", "title": "Learn More", "url": "${notificationUrl}"}],
}


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def priority_glyph(priority: str) -> str:
    return PRIORITY_GLYPHS.get(priority, UNKNOWN_PRIORITY_GLYPH)


def _format_time(alert: SecurityAlert) -> str:
    return alert.timestamp.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def format_alert_message(alert: SecurityAlert) -> str:
    lines = [
        f"**{alert.title}**",
        "",
        f"**Severity:** {alert.severity.upper()}",
        f"**Category:** {alert.category}",
        f"**Source:** {alert.source}",
        f"**Time:** {_format_time(alert)}",
        "",
        "**Description:**",
        alert.description,
    ]
    if alert.affected_systems:
        lines += ["", "**Affected Systems:**", ", ".join(alert.affected_systems)]
    if alert.recommended_actions:
        lines += ["", "**Recommended Actions:**"]
        lines += [f"{i}. {action}" for i, action in enumerate(alert.recommended_actions, start=1)]
    return "\n".join(lines)


def format_incident_message(alert: SecurityAlert) -> str:
    return (
        f"**SECURITY INCIDENT: {alert.title}**\n\n"
        f"**Incident ID:** {alert.id}\n"
        f"**Severity:** {alert.severity.upper()}\n"
        f"**Time:** {_format_time(alert)}\n\n"
        f"{alert.description}"
    )


def format_daily_summary(summary: DailySummary) -> str:
    glyph = HEALTH_GLYPHS[summary.system_health]
    return (
        f"{glyph} **Daily Security Summary**\n\n"
        "📊 **Today's Overview:**\n"
        f"• New Alerts: {summary.new_alerts}\n"
        f"• Resolved Incidents: {summary.resolved_incidents}\n"
        f"• Active Threats: {summary.active_threats}\n"
        f"• System Health: {summary.system_health.upper()}\n\n"
        "Ask me for details on any specific area!"
    )


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


def _attachment(content: dict[str, Any]) -> dict[str, Any]:
    return {"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "content": content}


def create_alert_card(alert: SecurityAlert) -> dict[str, Any]:
    header = {
        "type": "ColumnSet",
        "columns": [
            {
                "type": "Column",
                "width": "stretch",
                "items": [
                    {
                        "type": "TextBlock",
                        "text": f"🛡️ {APP_NAME} Alert",
                        "weight": "bolder",
                        "size": "medium",
                        "color": "attention",
                    }
                ],
            },
            {
                "type": "Column",
                "width": "auto",
                "items": [
                    {
                        "type": "TextBlock",
                        "text": alert.severity.upper(),
                        "weight": "bolder",
                        "color": SEVERITY_COLORS.get(alert.severity, "default"),
                        "horizontalAlignment": "right",
                    }
                ],
            },
        ],
    }
    return _attachment(
        {
            "type": "AdaptiveCard",
            "version": "1.4",
            "body": [
                {"type": "Container", "style": "emphasis", "items": [header]},
                {"type": "TextBlock", "text": alert.title, "weight": "bolder", "size": "large", "wrap": True},
                {"type": "TextBlock", "text": alert.description, "wrap": True, "spacing": "medium"},
                {
                    "type": "FactSet",
                    "facts": [
                        {"title": "Alert ID:", "value": alert.id},
                        {"title": "Severity:", "value": alert.severity.upper()},
                        {"title": "Category:", "value": alert.category},
                        {"title": "Source:", "value": alert.source},
                        {"title": "Timestamp:", "value": _format_time(alert)},
                    ],
                },
            ],
            "actions": [
                {
                    "type": "Action.Submit",
                    "title": "Acknowledge",
                    "data": {"action": "acknowledge", "alertId": alert.id},
                },
                {
                    "type": "Action.Submit",
                    "title": "Escalate",
                    "data": {"action": "escalate", "alertId": alert.id},
                },
            ],
        }
    )


def create_incident_card(alert: SecurityAlert) -> dict[str, Any]:
    return _attachment(
        {
            "type": "AdaptiveCard",
            "version": "1.4",
            "body": [
                {
                    "type": "Container",
                    "style": "attention",
                    "items": [
                        {
                            "type": "TextBlock",
                            "text": "🚨 SECURITY INCIDENT",
                            "weight": "bolder",
                            "size": "large",
                            "color": "attention",
                        }
                    ],
                },
                {"type": "TextBlock", "text": alert.title, "weight": "bolder", "size": "large", "wrap": True},
                {"type": "TextBlock", "text": f"**Incident ID:** {alert.id}", "weight": "bolder", "wrap": True},
                {
                    "type": "FactSet",
                    "facts": [
                        {"title": "Severity:", "value": alert.severity.upper()},
                        {"title": "Category:", "value": alert.category},
                        {"title": "Source:", "value": alert.source},
                        {"title": "Timestamp:", "value": _format_time(alert)},
                    ],
                },
                {"type": "TextBlock", "text": alert.description, "wrap": True, "spacing": "medium"},
            ],
            "actions": [
                {
                    "type": "Action.Submit",
                    "title": "Start Response",
                    "data": {"action": "start_response", "incidentId": alert.id},
                },
                {
                    "type": "Action.Submit",
                    "title": "View Details",
                    "data": {"action": "view_details", "incidentId": alert.id},
                },
            ],
        }
    )


def load_notification_template() -> dict[str, Any]:
    """Load the notification card template, falling back to the built-in one."""
    try:
        template: dict[str, Any] = json.loads(_TEMPLATE_PATH.read_text(encoding="utf-8"))
        return template
    except (OSError, json.JSONDecodeError):
        logger.warning("Could not load card template from %s, using fallback", _TEMPLATE_PATH, exc_info=True)
        return _FALLBACK_TEMPLATE


def expand_template(template: Any, data: dict[str, str]) -> Any:
    """Substitute ``${key}`` placeholders in every string of a JSON-like template."""
    if isinstance(template, str):
        for key, value in data.items():
            template = template.replace(f"${{{key}}}", value)
        return template
    if isinstance(template, list):
        return [expand_template(item, data) for item in template]
    if isinstance(template, dict):
        return {key: expand_template(value, data) for key, value in template.items()}
    return template


def create_notification_card(
    template: dict[str, Any],
    *,
    title: str,
    description: str,
    notification_url: str,
) -> dict[str, Any]:
    content = expand_template(
        template,
        {"title": title, "appName": APP_NAME, "description": description, "notificationUrl": notification_url},
    )
    return _attachment(content)


# ---------------------------------------------------------------------------
# Payload → outbound activity
# ---------------------------------------------------------------------------


def render_payload(payload: NotificationPayload) -> tuple[str, dict[str, Any] | None]:
    """Return ``(text, card_attachment)`` for a payload.

    The text always starts with the priority glyph header. Alert and incident
    payloads carrying an alert get a generated card; any explicit
    ``payload.card`` wins over the generated one.
    """
    card: dict[str, Any] | None = None
    match payload.kind:
        case "alert":
            if payload.alert is not None:
                body = format_alert_message(payload.alert)
                card = create_alert_card(payload.alert)
            else:
                body = "Security alert received"
        case "incident":
            if payload.alert is not None:
                body = format_incident_message(payload.alert)
                card = create_incident_card(payload.alert)
            else:
                body = "Security incident reported"
        case "update":
            body = payload.message or "System update"
        case "reminder":
            body = payload.message or "Scheduled reminder"
        case _:
            body = payload.message or f"Notification from {APP_NAME}"

    if payload.card is not None:
        card = payload.card

    text = f"{priority_glyph(payload.priority)} **{APP_NAME} Alert**\n\n{body}"
    return text, card
