"""모니터링 모듈.

Prometheus 메트릭 및 HTTP 미들웨어를 제공합니다.
"""

from .metrics import (
    HTTP_REQUESTS_TOTAL,
    HTTP_REQUEST_DURATION,
    AUTH_EVENTS_TOTAL,
    RATE_LIMIT_DECISIONS_TOTAL,
    STORE_FAILURES_TOTAL,
    GATEWAY_REFRESH_TOTAL,
    set_app_info,
    track_request,
    track_auth_event,
    track_rate_limit,
    track_store_failure,
    track_gateway_refresh,
)
from .middleware import PrometheusMiddleware, RequestIdMiddleware

__all__ = [
    "HTTP_REQUESTS_TOTAL",
    "HTTP_REQUEST_DURATION",
    "AUTH_EVENTS_TOTAL",
    "RATE_LIMIT_DECISIONS_TOTAL",
    "STORE_FAILURES_TOTAL",
    "GATEWAY_REFRESH_TOTAL",
    "set_app_info",
    "track_request",
    "track_auth_event",
    "track_rate_limit",
    "track_store_failure",
    "track_gateway_refresh",
    "PrometheusMiddleware",
    "RequestIdMiddleware",
]
