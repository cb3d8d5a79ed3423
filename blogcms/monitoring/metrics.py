"""Prometheus 메트릭 정의.

인증/세션 코어의 주요 메트릭을 정의합니다.
"""

from __future__ import annotations

import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info

# ============================================
# HTTP 메트릭
# ============================================

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ============================================
# 인증 메트릭
# ============================================

AUTH_EVENTS_TOTAL = Counter(
    "auth_events_total",
    "Total authentication events",
    ["event", "outcome"],  # event: login, refresh, logout, change_password, register, verify
)

RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "rate_limit_decisions_total",
    "Rate limiter decisions per tier",
    ["tier", "decision"],  # decision: allowed, rejected, fail_open
)

STORE_FAILURES_TOTAL = Counter(
    "store_failures_total",
    "Shared store failures absorbed or surfaced",
    ["operation"],
)

# ============================================
# 클라이언트 게이트웨이 메트릭
# ============================================

GATEWAY_REFRESH_TOTAL = Counter(
    "gateway_refresh_total",
    "Token refresh attempts made by the request gateway",
    ["outcome"],  # outcome: success, failure, timeout
)

GATEWAY_REFRESH_DURATION = Histogram(
    "gateway_refresh_duration_seconds",
    "Token refresh round-trip time in seconds",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# 앱 정보
APP_INFO = Info(
    "app",
    "Application information",
)


def set_app_info(name: str, version: str, environment: str) -> None:
    """앱 정보 설정."""
    APP_INFO.info({
        "name": name,
        "version": version,
        "environment": environment,
    })


# ============================================
# 편의 함수
# ============================================


def track_request(method: str, endpoint: str, status: int, duration: float) -> None:
    """HTTP 요청 메트릭 기록.

    Args:
        method: HTTP 메서드
        endpoint: 엔드포인트 경로
        status: HTTP 상태 코드
        duration: 요청 소요 시간 (초)
    """
    HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status=status).inc()
    HTTP_REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)


def track_auth_event(event: str, outcome: str) -> None:
    """인증 이벤트 기록 (outcome: success 또는 에러 코드)."""
    AUTH_EVENTS_TOTAL.labels(event=event, outcome=outcome).inc()


def track_rate_limit(tier: str, decision: str) -> None:
    RATE_LIMIT_DECISIONS_TOTAL.labels(tier=tier, decision=decision).inc()


def track_store_failure(operation: str) -> None:
    STORE_FAILURES_TOTAL.labels(operation=operation).inc()


def track_gateway_refresh(outcome: str) -> None:
    GATEWAY_REFRESH_TOTAL.labels(outcome=outcome).inc()


@contextmanager
def timed_refresh():
    """토큰 갱신 시간 측정 컨텍스트 매니저."""
    start_time = time.time()
    try:
        yield
    finally:
        GATEWAY_REFRESH_DURATION.observe(time.time() - start_time)
