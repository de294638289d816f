"""Prometheus metrics for Chatter Observatory.

All metrics are module-level singletons registered on the default
``REGISTRY``, so every module of one process reports into the same registry.
The web services expose it at ``GET /metrics`` (see ``core/http.py``); the
worker serves it on ``WORKER_METRICS_PORT`` when configured.

Metrics defined here:

  http_requests_total{service, method, path, status}
      Counter: HTTP requests handled by any of the three web services.

  http_request_duration_seconds{service, method, path}
      Histogram: HTTP request latency in seconds.

  jobs_processed_total{type, status}
      Counter: worker job completions by job type and outcome (done, failed).

  job_duration_seconds{type}
      Histogram: wall-clock duration of one job body.

  jobs_reclaimed_total
      Counter: ``running`` jobs failed by the stale-job sweep.

  proxy_cache_lookups_total{endpoint, result}
      Counter: proxy cache lookups by endpoint and result (hit, miss).

  proxy_upstream_requests_total{endpoint, status}
      Counter: Helix calls made by the proxy, by upstream status code
      (or ``error`` on transport failure).

  proxy_rate_limit_rejections_total
      Counter: proxy requests rejected because no token became available.

Usage::

    from chatter_observatory.core.metrics import jobs_processed_total
    jobs_processed_total.labels(type="FETCH_CHATTERS", status="done").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the middleware in core/http.py)
# ---------------------------------------------------------------------------

http_requests_total: Counter = Counter(
    "http_requests_total",
    "HTTP requests handled by the web services.",
    labelnames=["service", "method", "path", "status"],
)

http_request_duration_seconds: Histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["service", "method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Worker metrics (populated in worker/loop.py)
# ---------------------------------------------------------------------------

jobs_processed_total: Counter = Counter(
    "jobs_processed_total",
    "Worker job completions by type and outcome.",
    labelnames=["type", "status"],
)
"""Labels:
  type:   FETCH_CHATTERS, FETCH_USERS_INFO, or the unknown type string
  status: 'done' or 'failed'
"""

job_duration_seconds: Histogram = Histogram(
    "job_duration_seconds",
    "Worker job wall-clock duration in seconds.",
    labelnames=["type"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

jobs_reclaimed_total: Counter = Counter(
    "jobs_reclaimed_total",
    "Running jobs failed by the stale-job sweep.",
)

# ---------------------------------------------------------------------------
# Proxy metrics (populated in twitch_proxy/routes.py)
# ---------------------------------------------------------------------------

proxy_cache_lookups_total: Counter = Counter(
    "proxy_cache_lookups_total",
    "Twitch proxy cache lookups by endpoint and result.",
    labelnames=["endpoint", "result"],
)

proxy_upstream_requests_total: Counter = Counter(
    "proxy_upstream_requests_total",
    "Helix requests issued by the Twitch proxy.",
    labelnames=["endpoint", "status"],
)

proxy_rate_limit_rejections_total: Counter = Counter(
    "proxy_rate_limit_rejections_total",
    "Twitch proxy requests rejected after waiting for a rate-limit token.",
)


# ---------------------------------------------------------------------------
# Response helper
# ---------------------------------------------------------------------------


def get_metrics_response() -> tuple[bytes, str]:
    """Generate a Prometheus text-format metrics response.

    Returns:
        A tuple of (body_bytes, content_type_string) suitable for constructing
        a FastAPI ``Response`` object.
    """
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # noqa: PLC0415

    return generate_latest(), CONTENT_TYPE_LATEST
