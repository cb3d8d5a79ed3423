"""Rate Limiter 테스트."""

import pytest
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from blogcms.auth.middleware import ApiRateLimitMiddleware
from blogcms.auth.models import Principal
from blogcms.auth.rate_limiter import RateLimitDecision, RateLimiter
from blogcms.config import RateLimitPolicy, _default_policies
from blogcms.core.exceptions import RateLimitError, ServiceUnavailableError


class TestRateLimitDecision:
    """판정 결과 테스트."""

    def test_allowed_headers(self):
        """허용 시 X-RateLimit-* 헤더만."""
        decision = RateLimitDecision(allowed=True, tier="login", limit=5, remaining=4, reset_at=1700000060)

        headers = decision.headers()

        assert headers == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": "1700000060",
        }
        decision.raise_for_limit()

    def test_rejected_headers(self):
        """거부 시 Retry-After 포함."""
        decision = RateLimitDecision(allowed=False, tier="login", limit=5, remaining=0, retry_after=42)

        assert decision.headers()["Retry-After"] == "42"

        with pytest.raises(RateLimitError) as exc_info:
            decision.raise_for_limit("너무 많습니다")

        assert exc_info.value.retry_after == 42
        assert exc_info.value.to_dict()["error"]["retryAfter"] == 42


class TestSlidingWindow:
    """슬라이딩 윈도우 테스트."""

    @pytest.mark.asyncio
    async def test_login_limit(self, limiter):
        """로그인: 60초에 5회, 6번째 거부."""
        for i in range(5):
            decision = await limiter.hit("a@example.com", "login")
            assert decision.allowed is True
            assert decision.remaining == 4 - i

        decision = await limiter.hit("a@example.com", "login")

        assert decision.allowed is False
        assert decision.remaining == 0
        assert 0 < decision.retry_after <= 60

    @pytest.mark.asyncio
    async def test_allowed_after_window(self, limiter, clock):
        """윈도우가 지나면 다시 허용."""
        for _ in range(5):
            await limiter.hit("a@example.com", "login")
        assert (await limiter.hit("a@example.com", "login")).allowed is False

        clock.advance(61)

        assert (await limiter.hit("a@example.com", "login")).allowed is True

    @pytest.mark.asyncio
    async def test_retry_after_from_oldest(self, limiter, clock):
        """Retry-After는 가장 오래된 요청이 윈도우를 벗어나는 시점."""
        await limiter.hit("a@example.com", "login")
        clock.advance(10)
        for _ in range(4):
            await limiter.hit("a@example.com", "login")
        clock.advance(20)

        decision = await limiter.hit("a@example.com", "login")

        assert decision.allowed is False
        assert decision.retry_after == 30

    @pytest.mark.asyncio
    async def test_window_slides(self, limiter, clock):
        """오래된 요청만 빠지면 그만큼 허용."""
        await limiter.hit("a@example.com", "login")
        clock.advance(30)
        for _ in range(4):
            await limiter.hit("a@example.com", "login")
        clock.advance(31)

        # 첫 요청만 윈도우 밖
        assert (await limiter.hit("a@example.com", "login")).allowed is True
        assert (await limiter.hit("a@example.com", "login")).allowed is False

    @pytest.mark.asyncio
    async def test_rejection_not_recorded(self, limiter, memory_store):
        """거부된 요청은 기록하지 않음."""
        for _ in range(8):
            await limiter.hit("a@example.com", "login")

        assert len(await memory_store.list_range("rate_limit:login:a@example.com")) == 5

    @pytest.mark.asyncio
    async def test_check_does_not_record(self, limiter, memory_store):
        """check는 상태를 바꾸지 않음."""
        decision = await limiter.check("a@example.com", "login")

        assert decision.allowed is True
        assert decision.remaining == 5
        assert await memory_store.list_range("rate_limit:login:a@example.com") == []

    @pytest.mark.asyncio
    async def test_record_trims_and_sets_ttl(self, limiter, memory_store):
        """기록 후 최대 요청 수로 자르고 윈도우 TTL 설정."""
        for _ in range(7):
            await limiter.record("a@example.com", "login")

        key = "rate_limit:login:a@example.com"
        assert len(await memory_store.list_range(key)) == 5
        assert await memory_store.ttl(key) == 60

    @pytest.mark.asyncio
    async def test_keys_and_tiers_isolated(self, limiter):
        """키/티어별 독립 카운트."""
        for _ in range(5):
            await limiter.hit("a@example.com", "login")

        assert (await limiter.hit("b@example.com", "login")).allowed is True
        assert (await limiter.hit("a@example.com", "api")).allowed is True

    @pytest.mark.asyncio
    async def test_register_tier(self, limiter):
        """회원가입: 시간당 3회."""
        results = [(await limiter.hit("10.0.0.1", "register")).allowed for _ in range(4)]

        assert results == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_custom_key_prefix(self, memory_store, clock):
        policy = RateLimitPolicy(name="custom", window_seconds=10, max_requests=1, key_prefix="rl:c")
        limiter = RateLimiter(memory_store, {"custom": policy}, clock=clock)

        await limiter.hit("k", "custom")

        assert await memory_store.list_range("rl:c:k") != []

    @pytest.mark.asyncio
    async def test_unknown_tier(self, limiter):
        with pytest.raises(ValueError):
            await limiter.hit("a@example.com", "unknown")

    @pytest.mark.asyncio
    async def test_disabled(self, memory_store, clock):
        """비활성화 시 모두 허용, 기록 없음."""
        limiter = RateLimiter(memory_store, _default_policies(), enabled=False, clock=clock)
        for _ in range(10):
            assert (await limiter.hit("a@example.com", "login")).allowed is True

        assert memory_store.count() == 0


class TestHitAll:
    """여러 티어 동시 제한 테스트."""

    CHECKS = [
        ("a@example.com", "verify_email_minute"),
        ("a@example.com", "verify_email_hour"),
        ("10.0.0.1", "verify_ip_hour"),
    ]

    @pytest.mark.asyncio
    async def test_all_recorded_when_allowed(self, limiter, memory_store):
        """모두 허용되면 모든 티어에 기록."""
        decision = await limiter.hit_all(self.CHECKS)

        assert decision.allowed is True
        assert decision.tier == "verify_email_minute"
        assert decision.remaining == 0
        assert len(await memory_store.list_range("rate_limit:verify_email_hour:a@example.com")) == 1
        assert len(await memory_store.list_range("rate_limit:verify_ip_hour:10.0.0.1")) == 1

    @pytest.mark.asyncio
    async def test_rejection_records_nothing(self, limiter, memory_store):
        """하나라도 거부되면 아무것도 기록하지 않음."""
        await limiter.hit_all(self.CHECKS)

        decision = await limiter.hit_all(self.CHECKS)

        assert decision.allowed is False
        assert decision.tier == "verify_email_minute"
        assert len(await memory_store.list_range("rate_limit:verify_email_hour:a@example.com")) == 1
        assert len(await memory_store.list_range("rate_limit:verify_ip_hour:10.0.0.1")) == 1

    @pytest.mark.asyncio
    async def test_hourly_email_limit(self, limiter, clock):
        """이메일당 시간 5회."""
        for _ in range(5):
            assert (await limiter.hit_all(self.CHECKS)).allowed is True
            clock.advance(61)

        decision = await limiter.hit_all(self.CHECKS)

        assert decision.allowed is False
        assert decision.tier == "verify_email_hour"

    @pytest.mark.asyncio
    async def test_empty_checks(self, limiter):
        with pytest.raises(ValueError):
            await limiter.hit_all([])


class TestStoreFailure:
    """저장소 장애 테스트."""

    @pytest.mark.asyncio
    async def test_fail_open(self, failing_store, clock):
        """fail-open: 장애 시 허용."""
        limiter = RateLimiter(failing_store, _default_policies(), fail_open=True, clock=clock)

        decision = await limiter.check("a@example.com", "login")

        assert decision.allowed is True
        assert decision.remaining == 5
        assert (await limiter.hit("a@example.com", "login")).allowed is True

    @pytest.mark.asyncio
    async def test_fail_closed(self, failing_store, clock):
        """fail-closed: 장애 시 SERVICE_UNAVAILABLE."""
        limiter = RateLimiter(failing_store, _default_policies(), fail_open=False, clock=clock)

        with pytest.raises(ServiceUnavailableError):
            await limiter.hit("a@example.com", "login")


class TestApiRateLimitMiddleware:
    """일반 API 요청 제한 미들웨어 테스트."""

    @pytest.fixture
    def small_limiter(self, memory_store, clock):
        policies = {
            "api": RateLimitPolicy(name="api", window_seconds=60, max_requests=2),
            "api_authenticated": RateLimitPolicy(name="api_authenticated", window_seconds=60, max_requests=3),
        }
        return RateLimiter(memory_store, policies, clock=clock)

    @pytest.fixture
    def test_app(self, small_limiter, codec):
        async def homepage(request):
            return PlainTextResponse("Hello")

        app = Starlette(routes=[Route("/", homepage), Route("/healthz", homepage)])
        app.add_middleware(
            ApiRateLimitMiddleware,
            limiter_provider=lambda: small_limiter,
            codec_provider=lambda: codec,
        )
        return app

    def test_limits_by_ip(self, test_app):
        """토큰 없으면 IP 기준 (api 티어)."""
        client = TestClient(test_app)

        first = client.get("/")
        client.get("/")
        third = client.get("/")

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert third.status_code == 429
        assert third.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert int(third.headers["Retry-After"]) > 0

    def test_excluded_paths(self, test_app):
        client = TestClient(test_app)

        for _ in range(5):
            assert client.get("/healthz").status_code == 200

    def test_limits_by_principal(self, test_app, codec):
        """유효한 토큰이면 주체 기준 (api_authenticated 티어)."""
        token = codec.issue_access(Principal(id="user_1", role="user", email="a@example.com"))
        client = TestClient(test_app)
        headers = {"Authorization": f"Bearer {token}"}

        statuses = [client.get("/", headers=headers).status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]
        # IP 기준 카운트는 별도
        assert client.get("/").status_code == 200

    def test_invalid_token_falls_back_to_ip(self, test_app):
        client = TestClient(test_app)
        headers = {"Authorization": "Bearer garbage"}

        response = client.get("/", headers=headers)

        assert response.headers["X-RateLimit-Limit"] == "2"

    def test_store_failure_closed(self, failing_store, codec, clock):
        """fail-closed 장애는 503 응답."""
        limiter = RateLimiter(
            failing_store,
            {"api": RateLimitPolicy(name="api", window_seconds=60, max_requests=2)},
            fail_open=False,
            clock=clock,
        )

        async def homepage(request):
            return PlainTextResponse("Hello")

        app = Starlette(routes=[Route("/", homepage)])
        app.add_middleware(ApiRateLimitMiddleware, limiter_provider=lambda: limiter, codec_provider=lambda: codec)

        response = TestClient(app).get("/")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"
