# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Prometheus metrics — single source of truth for all metric objects.
Imported by services and middleware. Never instantiated in controllers.
"""

from prometheus_client import Counter, Gauge, Histogram

# ── HTTP Metrics (used by middleware) ──
REQUEST_COUNT = Counter(
    "rotation_requests_total",
    "Total HTTP requests to the rotation service",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "rotation_request_duration_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
)
HTTP_ERRORS = Counter(
    "rotation_http_errors_total",
    "Total HTTP error responses",
    ["method", "endpoint", "status"],
)

# ── Business Metrics (updated by service layer only) ──
ROTATIONS_CREATED = Counter(
    "rotation_rotations_created_total",
    "Total rotations created",
)
ACTIVE_SCHEDULERS = Gauge(
    "rotation_active_schedulers",
    "Number of running rotation scheduler processes",
)
SCHEDULER_WAKEUPS = Counter(
    "rotation_scheduler_wakeups_total",
    "Scheduler wake-ups by cause",
    ["cause"],
)
SCHEDULER_ERRORS = Counter(
    "rotation_scheduler_errors_total",
    "Errors while loading or evaluating a rotation snapshot",
)
ONCALL_CHANGES = Counter(
    "rotation_oncall_changes_total",
    "Total effective on-call changes detected",
    ["reason"],
)
ACTIONS_TOTAL = Counter(
    "rotation_actions_total",
    "Schedule-affecting actions by type and outcome",
    ["action", "outcome"],
)
WAKE_SIGNALS_SENT = Counter(
    "rotation_wake_signals_total",
    "Wake signals sent to scheduler processes",
    ["kind"],
)
NOTIFICATIONS_SENT = Counter(
    "rotation_notifications_sent_total",
    "On-call change notifications by delivery status",
    ["status"],
)
DELIVERY_RETRIES = Counter(
    "rotation_delivery_retries_total",
    "Retry attempts for notification and wake-signal delivery",
    ["operation", "attempt"],
)
