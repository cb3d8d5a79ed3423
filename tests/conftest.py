"""pytest 설정 및 공통 fixture."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

from blogcms.auth.dependencies import init_auth_services
from blogcms.auth.rate_limiter import RateLimiter, init_rate_limiter, reset_rate_limiter
from blogcms.auth.refresh_store import RefreshTokenStore
from blogcms.auth.repository import AuthRepository
from blogcms.auth.session import SessionService
from blogcms.auth.token_blacklist import TokenBlacklist
from blogcms.auth.token_codec import TokenCodec, init_token_codec, reset_token_codec
from blogcms.auth.verification import VerificationService
from blogcms.config import Config, _default_policies
from blogcms.core.exceptions import StoreUnavailableError
from blogcms.core.logging import principal_id_var, request_id_var
from blogcms.store import MemoryStore, init_store, reset_store

# pytest-asyncio 모드 설정
pytest_plugins = ["pytest_asyncio"]

TEST_PASSWORD = "password123"


class FakeClock:
    """테스트용 시계 (초 단위, 수동 진행)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def datetime(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=timezone.utc)


class FailingStore:
    """모든 작업이 실패하는 저장소 (장애 상황 재현용)."""

    async def _fail(self, operation: str, key: str = ""):
        raise StoreUnavailableError(operation, key, ConnectionError("connection refused"))

    async def get(self, key):
        await self._fail("get", key)

    async def set(self, key, value, ttl=None):
        await self._fail("set", key)

    async def delete(self, key):
        await self._fail("delete", key)

    async def exists(self, key):
        await self._fail("exists", key)

    async def expire(self, key, ttl):
        await self._fail("expire", key)

    async def ttl(self, key):
        await self._fail("ttl", key)

    async def list_push(self, key, value):
        await self._fail("lpush", key)

    async def list_range(self, key, start=0, stop=-1):
        await self._fail("lrange", key)

    async def list_trim(self, key, start, stop):
        await self._fail("ltrim", key)

    async def ping(self):
        await self._fail("ping")

    async def close(self):
        return None


class RecordingSender:
    """발송된 인증 코드를 기록하는 발송기."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    async def send(self, email: str, code: str) -> None:
        self.sent.append((email, code))

    def last_code(self, email: str) -> str:
        for sent_email, code in reversed(self.sent):
            if sent_email == email:
                return code
        raise AssertionError(f"{email}로 발송된 코드가 없습니다")


@pytest.fixture(autouse=True)
def reset_config():
    """각 테스트 전/후에 Config 싱글톤 리셋."""
    Config.reset_instance()
    yield
    Config.reset_instance()


@pytest.fixture(autouse=True)
def reset_log_context():
    """로그 컨텍스트 초기화."""
    request_id_var.set(None)
    principal_id_var.set(None)
    yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    """가짜 시계를 공유하는 인메모리 저장소."""
    return MemoryStore(clock=clock)


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def repo(tmp_path):
    """테스트용 인증 저장소 (임시 SQLite)."""
    return AuthRepository(db_path=tmp_path / "test_auth.db")


@pytest.fixture
def codec(clock):
    """테스트용 토큰 코덱."""
    return TokenCodec(
        access_secret="test-access-secret",
        refresh_secret="test-refresh-secret",
        clock=clock.datetime,
    )


@pytest.fixture
def limiter(memory_store, clock):
    """기본 티어 정책의 Rate Limiter."""
    return RateLimiter(memory_store, _default_policies(), clock=clock)


@pytest.fixture
def session_service(codec, memory_store, repo):
    return SessionService(
        codec=codec,
        refresh_store=RefreshTokenStore(memory_store),
        blacklist=TokenBlacklist(memory_store),
        repository=repo,
    )


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def verification_service(memory_store, repo, sender):
    return VerificationService(memory_store, repo, sender=sender)


@pytest.fixture
def test_user(repo):
    """테스트용 일반 사용자."""
    return repo.create_user(email="writer@example.com", password=TEST_PASSWORD, name="Writer")


@pytest.fixture
def admin_user(repo):
    """테스트용 관리자."""
    return repo.create_user(email="admin@example.com", password=TEST_PASSWORD, name="Admin", role="admin")


@pytest.fixture
def client(memory_store, codec, limiter, repo, session_service, verification_service):
    """FastAPI TestClient fixture (전역 싱글톤을 테스트용 인스턴스로 교체)."""
    from api import app

    init_store(memory_store)
    init_token_codec(codec)
    init_rate_limiter(limiter)
    init_auth_services(
        repository=repo,
        session_service=session_service,
        verification_service=verification_service,
    )
    yield TestClient(app)
    init_auth_services()
    reset_rate_limiter()
    reset_token_codec()
    reset_store()
