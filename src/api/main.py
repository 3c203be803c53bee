"""FastAPI backend for the SOC assistant bot.

Provides the Bot Framework messaging endpoint, the out-of-band notification
and security-alert endpoints, and health/metrics. The engine services are
built once at startup and shared across requests via ``app.state.services``.
"""

import logging
import secrets
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Literal

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.routing import Match

from src.agent.backend import create_agent_backend
from src.bot.activity import Activity
from src.bot.connector import BotConnectorClient
from src.config import get_settings
from src.maintenance.scheduler import start_scheduler, stop_scheduler
from src.notify.formatting import create_notification_card, load_notification_template
from src.notify.models import AlertCategory, SecurityAlert, Severity
from src.notify.router import delivered_count
from src.observability.metrics import (
    ACTIVE_SESSIONS,
    APP_INFO,
    COMPONENT_HEALTHY,
    REQUEST_DURATION,
    REQUESTS_IN_PROGRESS,
    REQUESTS_TOTAL,
)
from src.services import Services, build_services

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
DEFAULT_NOTIFICATION_TITLE = "SOCBot Security Alert"


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationRequest(_CamelModel):
    """Request body for POST /api/notification."""

    prompt: str = Field(min_length=1)
    title: str | None = None
    notification_url: str | None = None
    target_users: list[str] | None = None
    target_channels: list[str] | None = None


class SecurityAlertRequest(_CamelModel):
    """Request body for POST /api/securityAlert."""

    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    severity: Severity = "medium"
    category: AlertCategory = "threat"
    source: str = "Security System"
    affected_systems: list[str] | None = None
    recommended_actions: list[str] | None = None
    target_users: list[str] | None = None


class NotificationResponse(_CamelModel):
    """Response body for the notification endpoints."""

    success: bool
    message: str
    recipient_count: int | None = None
    alert_id: str | None = None


class HealthResponse(_CamelModel):
    """Response body for GET /api/health."""

    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: str
    version: str
    checks: dict[str, bool]
    conversation_stats: dict[str, Any] | None = None


class ApiError(Exception):
    """Rejects a request with ``{"error": message}`` and the given status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine services once at startup, tear down on shutdown."""
    settings = get_settings()
    APP_INFO.info({"version": VERSION, "backend": settings.agent_backend})

    logger.info("Building SOC assistant services...")
    try:
        services = build_services(settings)
        app.state.services = services
    except Exception:
        logger.exception("Failed to build services at startup")
        raise

    if not settings.notification_api_key:
        logger.warning("NOTIFICATION_API_KEY not set, notification endpoints accept unauthenticated requests")

    start_scheduler(settings.maintenance_schedule_cron, services.sessions, settings.session_max_age_hours)
    yield
    stop_scheduler()
    logger.info("Shutting down SOC assistant")


app = FastAPI(title="SOCBot Security Assistant", lifespan=lifespan)


def get_services(request: Request) -> Services:
    services: Services = request.app.state.services
    return services


def require_api_key(request: Request) -> None:
    """Check the shared key from the ``x-functions-key`` header or ``code`` query parameter."""
    expected = get_settings().notification_api_key
    if not expected:
        return
    supplied = request.headers.get("x-functions-key") or request.query_params.get("code") or ""
    if not secrets.compare_digest(supplied.encode(), expected.encode()):
        raise ApiError(401, "Missing or invalid API key")


# ---------------------------------------------------------------------------
# Error handlers and middleware
# ---------------------------------------------------------------------------


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Turn body validation failures into a 400 naming the offending fields."""
    missing: list[str] = []
    invalid: list[str] = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        if not loc:
            invalid.append(f"request body: {error.get('msg', 'invalid')}")
            continue
        field = ".".join(loc)
        if error.get("type") in ("missing", "string_too_short"):
            missing.append(field)
        else:
            invalid.append(f"'{field}': {error.get('msg', 'invalid')}")

    if missing:
        message = f"Missing required field(s): {', '.join(missing)}"
    else:
        message = f"Invalid field(s): {'; '.join(invalid)}"
    return JSONResponse(status_code=400, content={"error": message})


def _route_label(request: Request) -> str:
    """Path template of the route that will serve the request, or ``unmatched``."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", "unmatched")
    return "unmatched"


@app.middleware("http")
async def record_request_metrics(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    if not request.url.path.startswith("/api/"):
        return await call_next(request)

    endpoint = _route_label(request)

    REQUESTS_IN_PROGRESS.labels(endpoint=endpoint).inc()
    start = time.monotonic()
    status = "error"
    try:
        response = await call_next(request)
        status = "success" if response.status_code < 400 else "error"
        return response
    finally:
        REQUESTS_IN_PROGRESS.labels(endpoint=endpoint).dec()
        REQUEST_DURATION.labels(endpoint=endpoint).observe(time.monotonic() - start)
        REQUESTS_TOTAL.labels(endpoint=endpoint, status=status).inc()


def _failure(message: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": message, "errorDetails": str(exc) or type(exc).__name__},
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/api/messages")
async def messages(activity: Activity, services: Services = Depends(get_services)) -> dict[str, Any]:
    """Bot Framework messaging endpoint."""
    await services.bot.handle_activity(activity)
    ACTIVE_SESSIONS.set(len(services.sessions))
    return {}


@app.post(
    "/api/notification",
    response_model=NotificationResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_key)],
)
async def notification(
    request: NotificationRequest,
    services: Services = Depends(get_services),
) -> NotificationResponse | JSONResponse:
    """Answer a prompt with the AI backend and push the answer to known conversations."""
    logger.info("Processing notification prompt through AI backend")
    try:
        agent_response = await services.agent.process_prompt(request.prompt)
        title = request.title or DEFAULT_NOTIFICATION_TITLE
        card = create_notification_card(
            services.notification_template,
            title=title,
            description=agent_response.message,
            notification_url=request.notification_url or services.settings.notification_default_url,
        )
        outcomes = await services.router.send_notification_card(
            card,
            title,
            target_user_ids=request.target_users,
            target_channel_ids=request.target_channels,
        )
    except Exception as exc:
        logger.exception("Error in notification handler")
        return _failure("Failed to send notifications", exc)

    return NotificationResponse(
        success=True,
        message="Notifications sent successfully",
        recipient_count=delivered_count(outcomes),
    )


@app.post(
    "/api/securityAlert",
    response_model=NotificationResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_key)],
)
async def security_alert(
    request: SecurityAlertRequest,
    services: Services = Depends(get_services),
) -> NotificationResponse | JSONResponse:
    """Fan a security alert out to known conversations."""
    logger.info("Security alert '%s' received (severity=%s)", request.id, request.severity)
    try:
        alert = SecurityAlert(
            id=request.id,
            title=request.title,
            description=request.description,
            severity=request.severity,
            category=request.category,
            source=request.source,
            affected_systems=tuple(request.affected_systems) if request.affected_systems else None,
            recommended_actions=tuple(request.recommended_actions) if request.recommended_actions else None,
        )
        outcomes = await services.router.send_alert(alert, request.target_users)
    except Exception as exc:
        logger.exception("Error sending security alert '%s'", request.id)
        return _failure("Failed to send security alert", exc)

    return NotificationResponse(
        success=True,
        message="Security alert sent successfully",
        recipient_count=delivered_count(outcomes),
        alert_id=alert.id,
    )


@app.get("/api/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health(response: Response, services: Services = Depends(get_services)) -> HealthResponse:
    """Check that every engine component can be constructed from the current settings."""
    settings = get_settings()
    checks: dict[str, bool] = {}

    # --- AI backend ---
    try:
        create_agent_backend(settings)
        checks["agentBackend"] = True
    except Exception as exc:
        logger.warning("Agent backend health check failed: %s", exc)
        checks["agentBackend"] = False

    # --- Bot Framework connector ---
    try:
        BotConnectorClient(settings)
        checks["botFramework"] = True
    except Exception as exc:
        logger.warning("Bot Framework health check failed: %s", exc)
        checks["botFramework"] = False

    # --- Adaptive card template ---
    try:
        checks["adaptiveCards"] = bool(services.notification_template or load_notification_template())
    except Exception as exc:
        logger.warning("Adaptive card health check failed: %s", exc)
        checks["adaptiveCards"] = False

    for name, ok in checks.items():
        COMPONENT_HEALTHY.labels(component=name).set(1.0 if ok else 0.0)

    healthy_count = sum(checks.values())
    if healthy_count == len(checks):
        overall: Literal["healthy", "degraded", "unhealthy"] = "healthy"
    elif healthy_count == 0:
        overall = "unhealthy"
    else:
        overall = "degraded"

    response.status_code = 200 if overall == "healthy" else 503
    response.headers["Cache-Control"] = "no-cache"

    stats = services.stats.snapshot()
    ACTIVE_SESSIONS.set(stats["totalConversations"])
    return HealthResponse(
        status=overall,
        timestamp=datetime.now(UTC).isoformat(),
        version=VERSION,
        checks=checks,
        conversation_stats=dict(stats),
    )
