"""
Prometheus metrics for the license dashboard.

Custom metrics for the lifecycle engine and external synchronization.
"""

from prometheus_client import Counter, Gauge, Histogram

# Lifecycle metrics
license_events_total = Counter(
    "license_events_total",
    "Total license domain events published",
    ["event_type"],
)

lifecycle_runs_total = Counter(
    "license_lifecycle_runs_total",
    "Total lifecycle batch runs",
    ["operation", "outcome"],
)

lifecycle_records_total = Counter(
    "license_lifecycle_records_total",
    "Licenses handled by lifecycle batch runs",
    ["operation", "result"],
)

lifecycle_run_duration_seconds = Histogram(
    "license_lifecycle_run_duration_seconds",
    "Lifecycle batch run duration in seconds",
    ["operation"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0],
)

# Notification metrics
notifications_total = Counter(
    "license_notifications_total",
    "Lifecycle notifications dispatched",
    ["notification_type", "result"],
)

# External sync metrics
sync_runs_total = Counter(
    "external_sync_runs_total",
    "Total external sync runs",
    ["status"],
)

sync_records_total = Counter(
    "external_sync_records_total",
    "External records processed by sync runs",
    ["result"],
)

sync_run_duration_seconds = Histogram(
    "external_sync_run_duration_seconds",
    "External sync run duration in seconds",
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0],
)

external_requests_total = Counter(
    "external_api_requests_total",
    "Requests sent to the external license API",
    ["outcome"],
)

# Current state metrics
circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["name"],
)
