"""Prometheus metric definitions for SOC assistant self-instrumentation.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ---------------------------------------------------------------------------
# Histogram bucket definitions
# ---------------------------------------------------------------------------

REQUEST_DURATION_BUCKETS = (0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 30.0, 60.0)
AGENT_DURATION_BUCKETS = (0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0)

# ---------------------------------------------------------------------------
# Request-level metrics
# ---------------------------------------------------------------------------

REQUEST_DURATION = Histogram(
    "socbot_request_duration_seconds",
    "End-to-end request duration in seconds",
    labelnames=["endpoint"],
    buckets=REQUEST_DURATION_BUCKETS,
)

REQUESTS_TOTAL = Counter(
    "socbot_requests_total",
    "Total number of requests",
    labelnames=["endpoint", "status"],
)

REQUESTS_IN_PROGRESS = Gauge(
    "socbot_requests_in_progress",
    "Number of requests currently being processed",
    labelnames=["endpoint"],
)

# ---------------------------------------------------------------------------
# Conversation / notification metrics
# ---------------------------------------------------------------------------

ACTIVE_SESSIONS = Gauge(
    "socbot_sessions",
    "Number of conversation sessions currently held in memory",
)

SESSIONS_EVICTED_TOTAL = Counter(
    "socbot_sessions_evicted_total",
    "Total number of conversation sessions removed by the eviction sweep",
)

NOTIFICATIONS_TOTAL = Counter(
    "socbot_notifications_total",
    "Proactive notification deliveries per recipient",
    labelnames=["kind", "status"],
)

# ---------------------------------------------------------------------------
# AI backend metrics
# ---------------------------------------------------------------------------

AGENT_CALLS_TOTAL = Counter(
    "socbot_agent_calls_total",
    "Total number of prompts sent to the AI backend",
    labelnames=["backend", "status"],
)

AGENT_CALL_DURATION = Histogram(
    "socbot_agent_call_duration_seconds",
    "Duration of a prompt round trip to the AI backend in seconds",
    labelnames=["backend"],
    buckets=AGENT_DURATION_BUCKETS,
)

# ---------------------------------------------------------------------------
# Health / info metrics
# ---------------------------------------------------------------------------

COMPONENT_HEALTHY = Gauge(
    "socbot_component_healthy",
    "Whether a dependency component is healthy (1=healthy, 0=unhealthy)",
    labelnames=["component"],
)

APP_INFO = Info(
    "socbot",
    "SOC assistant build information",
)
