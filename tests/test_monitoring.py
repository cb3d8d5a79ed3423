"""모니터링 모듈 테스트."""

from unittest.mock import MagicMock

import pytest
from prometheus_client import REGISTRY
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from blogcms.core.logging import get_request_id
from blogcms.monitoring.metrics import (
    set_app_info,
    timed_refresh,
    track_auth_event,
    track_gateway_refresh,
    track_rate_limit,
    track_request,
    track_store_failure,
)
from blogcms.monitoring.middleware import PrometheusMiddleware, RequestIdMiddleware


def _sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetrics:
    """메트릭 테스트."""

    def test_track_request(self):
        """HTTP 요청 추적."""
        labels = {"method": "GET", "endpoint": "/auth/me", "status": "200"}
        before = _sample("http_requests_total", labels)

        track_request(method="GET", endpoint="/auth/me", status=200, duration=0.123)

        assert _sample("http_requests_total", labels) == before + 1
        assert _sample("http_request_duration_seconds_count", {"method": "GET", "endpoint": "/auth/me"}) >= 1

    def test_track_auth_event(self):
        """인증 이벤트 (성공/에러 코드)."""
        labels = {"event": "login", "outcome": "INVALID_CREDENTIALS"}
        before = _sample("auth_events_total", labels)

        track_auth_event("login", "INVALID_CREDENTIALS")

        assert _sample("auth_events_total", labels) == before + 1

    def test_track_rate_limit(self):
        labels = {"tier": "login", "decision": "rejected"}
        before = _sample("rate_limit_decisions_total", labels)

        track_rate_limit("login", "rejected")

        assert _sample("rate_limit_decisions_total", labels) == before + 1

    def test_track_store_failure(self):
        before = _sample("store_failures_total", {"operation": "blacklist_contains"})

        track_store_failure("blacklist_contains")

        assert _sample("store_failures_total", {"operation": "blacklist_contains"}) == before + 1

    def test_track_gateway_refresh(self):
        before = _sample("gateway_refresh_total", {"outcome": "timeout"})

        track_gateway_refresh("timeout")

        assert _sample("gateway_refresh_total", {"outcome": "timeout"}) == before + 1

    def test_set_app_info(self):
        """앱 정보 설정."""
        set_app_info(name="blogcms", version="1.0.0", environment="test")

        assert _sample("app_info", {"name": "blogcms", "version": "1.0.0", "environment": "test"}) == 1.0


class TestTimedRefresh:
    """timed_refresh 컨텍스트 매니저 테스트."""

    def test_timed_refresh(self):
        before = _sample("gateway_refresh_duration_seconds_count")

        with timed_refresh():
            pass

        assert _sample("gateway_refresh_duration_seconds_count") == before + 1

    def test_timed_refresh_exception(self):
        """예외 발생 시에도 메트릭 기록."""
        before = _sample("gateway_refresh_duration_seconds_count")

        with pytest.raises(ValueError):
            with timed_refresh():
                raise ValueError("refresh error")

        assert _sample("gateway_refresh_duration_seconds_count") == before + 1


class TestPrometheusMiddleware:
    """Prometheus 미들웨어 테스트."""

    @pytest.fixture
    def test_app(self):
        """테스트 앱."""
        async def homepage(request):
            return PlainTextResponse("Hello")

        async def error_endpoint(request):
            raise ValueError("Test error")

        app = Starlette(
            routes=[
                Route("/", homepage),
                Route("/posts/{post_id}", homepage),
                Route("/error", error_endpoint),
                Route("/healthz", homepage),
                Route("/metrics", homepage),
            ]
        )
        app.add_middleware(PrometheusMiddleware)
        return app

    def test_middleware_normal_request(self, test_app):
        """정상 요청 처리 및 기록."""
        labels = {"method": "GET", "endpoint": "/", "status": "200"}
        before = _sample("http_requests_total", labels)
        client = TestClient(test_app, raise_server_exceptions=False)

        response = client.get("/")

        assert response.status_code == 200
        assert response.text == "Hello"
        assert _sample("http_requests_total", labels) == before + 1

    def test_middleware_normalizes_ids(self, test_app):
        labels = {"method": "GET", "endpoint": "/posts/{id}", "status": "200"}
        before = _sample("http_requests_total", labels)
        client = TestClient(test_app, raise_server_exceptions=False)

        client.get("/posts/42")

        assert _sample("http_requests_total", labels) == before + 1

    def test_middleware_records_errors(self, test_app):
        """처리되지 않은 예외는 500으로 기록."""
        labels = {"method": "GET", "endpoint": "/error", "status": "500"}
        before = _sample("http_requests_total", labels)
        client = TestClient(test_app, raise_server_exceptions=False)

        response = client.get("/error")

        assert response.status_code == 500
        assert _sample("http_requests_total", labels) == before + 1

    def test_middleware_excludes_healthz(self, test_app):
        """헬스체크/메트릭 경로 제외."""
        client = TestClient(test_app, raise_server_exceptions=False)
        before = _sample("http_requests_total", {"method": "GET", "endpoint": "/healthz", "status": "200"})

        assert client.get("/healthz").status_code == 200
        assert client.get("/metrics").status_code == 200

        assert _sample("http_requests_total", {"method": "GET", "endpoint": "/healthz", "status": "200"}) == before

    def test_middleware_path_normalization(self):
        """경로 정규화 테스트."""
        middleware = PrometheusMiddleware(app=MagicMock())

        assert middleware._normalize_path("/admin/users/user_3f2a9c1b7d4e") == "/admin/users/{user_id}"
        assert middleware._normalize_path("/posts/123") == "/posts/{id}"
        assert middleware._normalize_path("/posts/550e8400-e29b-41d4-a716-446655440000") == "/posts/{id}"
        assert middleware._normalize_path("/auth/refresh") == "/auth/refresh"
        assert middleware._normalize_path("/") == "/"

    def test_middleware_uuid_detection(self):
        """UUID 감지 테스트."""
        middleware = PrometheusMiddleware(app=MagicMock())

        assert middleware._is_uuid_like("abc123def456ghi789")
        assert middleware._is_uuid_like("550e8400-e29b-41d4-a716-446655440000")
        assert not middleware._is_uuid_like("short")
        assert not middleware._is_uuid_like("123456789012")


class TestRequestIdMiddleware:
    """요청 ID 미들웨어 테스트."""

    @pytest.fixture
    def client(self):
        async def echo(request):
            return PlainTextResponse(get_request_id() or "")

        app = Starlette(routes=[Route("/", echo)])
        app.add_middleware(RequestIdMiddleware)
        return TestClient(app)

    def test_uses_incoming_header(self, client):
        """전달받은 요청 ID를 컨텍스트와 응답 헤더에 사용."""
        response = client.get("/", headers={"X-Request-ID": "req-abc"})

        assert response.text == "req-abc"
        assert response.headers["X-Request-ID"] == "req-abc"

    def test_generates_request_id(self, client):
        response = client.get("/")

        assert len(response.headers["X-Request-ID"]) == 8
        assert response.text == response.headers["X-Request-ID"]
