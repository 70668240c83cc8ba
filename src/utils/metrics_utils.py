"""
Prometheus metric definitions shared across the service.

Metrics are registered on the default REGISTRY. _get_or_create_metric makes
module re-import safe (uvicorn workers, test reloads).
"""

from prometheus_client import REGISTRY, Counter, Gauge, Histogram

from config import LATENCY_BUCKETS


def _get_or_create_metric(metric_class, name, description, labelnames=None, **kwargs):
    """
    Return the already registered collector for name, or create it.

    Counter 'foo_total' is stored as 'foo' internally, so both spellings are
    checked when looking up an existing collector.
    """
    try:
        if labelnames:
            return metric_class(name, description, labelnames, **kwargs)
        return metric_class(name, description, **kwargs)
    except ValueError:
        base_name = name[: -len("_total")] if name.endswith("_total") else name
        for collector in REGISTRY._names_to_collectors.values():
            if getattr(collector, "_name", None) in (base_name, name):
                return collector
        raise


REQUEST_COUNT = _get_or_create_metric(
    Counter,
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_LATENCY = _get_or_create_metric(
    Histogram,
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=LATENCY_BUCKETS,
)

ACTIVE_REQUESTS = _get_or_create_metric(
    Gauge,
    "http_requests_active",
    "Number of active HTTP requests",
)

FIELD_FALLBACKS = _get_or_create_metric(
    Counter,
    "user_field_fallbacks_total",
    "User info fields that fell back to their default after a fetch fault",
    ["field"],
)

DISK_CACHE_REQUESTS = _get_or_create_metric(
    Counter,
    "disk_cache_requests_total",
    "Disk cache client calls by outcome",
    ["operation", "outcome"],
)

RACE_BRANCH_ERRORS = _get_or_create_metric(
    Counter,
    "race_branch_errors_total",
    "Race evaluator branches that raised and were counted as falsy",
)
