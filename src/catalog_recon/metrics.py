"""
Prometheus metrics for catalog reconciliation.

Tracks conclusions written, deep comparison outcomes, definition fetch
latency, job lifecycle and definition pool usage.
"""

from prometheus_client import REGISTRY, Counter, Gauge, Histogram

try:
    CONCLUSIONS_WRITTEN = Counter(
        "catalog_recon_conclusions_total",
        "Conclusions written to result sinks",
        ["mode", "kind"],  # success, info, warning, error
        registry=REGISTRY
    )
except ValueError:
    # Metric already registered, get existing one
    CONCLUSIONS_WRITTEN = REGISTRY._names_to_collectors.get("catalog_recon_conclusions_total")

try:
    DEEP_COMPARISONS = Counter(
        "catalog_recon_deep_comparisons_total",
        "Definition comparisons by result",
        ["result"],  # equal, different, fetch_failed
        registry=REGISTRY
    )
except ValueError:
    DEEP_COMPARISONS = REGISTRY._names_to_collectors.get("catalog_recon_deep_comparisons_total")

try:
    DEFINITION_FETCH_TIME = Histogram(
        "catalog_recon_definition_fetch_seconds",
        "Time to fetch one object definition",
        ["side"],
        buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
        registry=REGISTRY
    )
except ValueError:
    DEFINITION_FETCH_TIME = REGISTRY._names_to_collectors.get("catalog_recon_definition_fetch_seconds")

try:
    TASK_TIME = Histogram(
        "catalog_recon_task_seconds",
        "Time to reconcile one connection-pair task",
        ["mode"],
        buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600],
        registry=REGISTRY
    )
except ValueError:
    TASK_TIME = REGISTRY._names_to_collectors.get("catalog_recon_task_seconds")

try:
    JOB_TIME = Histogram(
        "catalog_recon_job_seconds",
        "Total time of a reconciliation job",
        ["mode", "status"],
        buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600, 7200],
        registry=REGISTRY
    )
except ValueError:
    JOB_TIME = REGISTRY._names_to_collectors.get("catalog_recon_job_seconds")

try:
    ACTIVE_JOBS = Gauge(
        "catalog_recon_active_jobs",
        "Reconciliation jobs currently running",
        registry=REGISTRY
    )
except ValueError:
    ACTIVE_JOBS = REGISTRY._names_to_collectors.get("catalog_recon_active_jobs")

# Definition pools, labelled by connection id
try:
    POOL_CONNECTIONS = Gauge(
        "catalog_recon_pool_connections",
        "Open connections of a definition pool",
        ["connection_id"],
        registry=REGISTRY
    )
except ValueError:
    POOL_CONNECTIONS = REGISTRY._names_to_collectors.get("catalog_recon_pool_connections")

try:
    POOL_IN_USE = Gauge(
        "catalog_recon_pool_in_use_connections",
        "Checked-out connections of a definition pool",
        ["connection_id"],
        registry=REGISTRY
    )
except ValueError:
    POOL_IN_USE = REGISTRY._names_to_collectors.get("catalog_recon_pool_in_use_connections")

try:
    POOL_WAITS = Counter(
        "catalog_recon_pool_waits_total",
        "Acquisitions that had to wait for a connection to be returned",
        ["connection_id"],
        registry=REGISTRY
    )
except ValueError:
    POOL_WAITS = REGISTRY._names_to_collectors.get("catalog_recon_pool_waits_total")

try:
    POOL_ERRORS = Counter(
        "catalog_recon_pool_errors_total",
        "Definition pool errors",
        ["connection_id", "error_type"],  # initialization, creation, health_check
        registry=REGISTRY
    )
except ValueError:
    POOL_ERRORS = REGISTRY._names_to_collectors.get("catalog_recon_pool_errors_total")

try:
    POOL_ACQUIRE_TIME = Histogram(
        "catalog_recon_pool_acquire_seconds",
        "Time to acquire a connection from a definition pool",
        ["connection_id"],
        buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
        registry=REGISTRY
    )
except ValueError:
    POOL_ACQUIRE_TIME = REGISTRY._names_to_collectors.get("catalog_recon_pool_acquire_seconds")

try:
    CONNECT_RETRIES = Counter(
        "catalog_recon_connect_retries_total",
        "Catalog connection attempts retried after a transient error",
        ["connection_id"],
        registry=REGISTRY
    )
except ValueError:
    CONNECT_RETRIES = REGISTRY._names_to_collectors.get("catalog_recon_connect_retries_total")
