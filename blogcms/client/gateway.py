"""클라이언트 요청 게이트웨이.

API 호출에 액세스 토큰을 붙이고, 만료(401 TOKEN_EXPIRED) 응답을 받으면
토큰 갱신을 한 번만 수행한 뒤 대기 중인 요청을 새 토큰으로 재전송합니다.

상태 전이: IDLE -> REFRESHING -> IDLE
갱신 중 도착한 요청은 공유 Future를 기다리며, 갱신 호출은 타임아웃으로 제한됩니다.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol

import aiohttp

from blogcms.auth.token_codec import decode_unverified
from blogcms.core.exceptions import (
    AppError,
    GatewayRequestError,
    RateLimitError,
    RefreshTimeoutError,
    SessionExpiredError,
)
from blogcms.monitoring.metrics import timed_refresh, track_gateway_refresh

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class GatewayState(str, Enum):
    """게이트웨이 상태."""

    IDLE = "idle"
    REFRESHING = "refreshing"


@dataclass
class TokenState:
    """클라이언트가 보관하는 토큰."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)


@dataclass
class GatewayResponse:
    """HTTP 응답 (헤더 이름은 소문자로 저장)."""

    status: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def error(self) -> Dict[str, Any]:
        if isinstance(self.body, dict) and isinstance(self.body.get("error"), dict):
            return self.body["error"]
        return {}

    @property
    def error_code(self) -> Optional[str]:
        return self.error.get("code")

    @property
    def data(self) -> Any:
        if isinstance(self.body, dict):
            return self.body.get("data")
        return None

    @property
    def retry_after(self) -> Optional[float]:
        """Retry-After 헤더, 없으면 본문 retryAfter (초)."""
        value = self.headers.get("retry-after", self.error.get("retryAfter"))
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None


class Transport(Protocol):
    """HTTP 전송 계층."""

    async def __call__(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        json: Any = None,
    ) -> GatewayResponse:
        ...


class AiohttpTransport:
    """aiohttp 기반 기본 전송 계층."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def __call__(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        json: Any = None,
    ) -> GatewayResponse:
        session = await self._get_session()
        try:
            async with session.request(method, url, headers=dict(headers), json=json) as resp:
                if resp.content_type == "application/json":
                    body = await resp.json()
                else:
                    body = await resp.text() or None
                return GatewayResponse(status=resp.status, body=body, headers=dict(resp.headers))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"API 연결 오류: {method} {url} ({e})")
            raise GatewayRequestError(f"API 연결 오류: {e}", error_code="NETWORK_ERROR") from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()


SessionExpiredCallback = Callable[[SessionExpiredError], Any]


class RequestGateway:
    """단일 비행(single-flight) 토큰 갱신을 수행하는 요청 게이트웨이.

    한 인스턴스에서 동시에 진행되는 갱신 호출은 최대 하나입니다.
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[Transport] = None,
        tokens: Optional[TokenState] = None,
        refresh_timeout: float = 10.0,
        max_rate_limit_wait: float = 60.0,
        refresh_threshold_minutes: int = 5,
        proactive_refresh: bool = True,
        on_session_expired: Optional[SessionExpiredCallback] = None,
        refresh_path: str = "/auth/refresh",
        logout_path: str = "/auth/logout",
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """게이트웨이 초기화.

        Args:
            base_url: API 기본 URL
            transport: HTTP 전송 계층 (기본: aiohttp)
            tokens: 초기 토큰 상태
            refresh_timeout: 토큰 갱신 호출 제한 시간 (초)
            max_rate_limit_wait: 429 재시도 전 최대 대기 시간 (초)
            refresh_threshold_minutes: 선제 갱신 임계값 (분)
            proactive_refresh: 만료 임박 토큰을 보내기 전에 갱신할지 여부
            on_session_expired: 세션 상실 시 한 번 호출되는 콜백
            refresh_path: 토큰 갱신 경로
            logout_path: 로그아웃 경로 (갱신 대상에서 제외)
            clock: 현재 시각(초) 반환 함수
            sleep: 대기 함수
        """
        self.base_url = base_url.rstrip("/")
        self.transport: Transport = transport or AiohttpTransport()
        self.tokens = tokens or TokenState()
        self.refresh_timeout = refresh_timeout
        self.max_rate_limit_wait = max_rate_limit_wait
        self.refresh_threshold_minutes = refresh_threshold_minutes
        self.proactive_refresh = proactive_refresh
        self.on_session_expired = on_session_expired
        self.refresh_path = refresh_path
        self.logout_path = logout_path
        self._clock = clock
        self._sleep = sleep

        self._state = GatewayState.IDLE
        self._refresh_future: Optional[asyncio.Future] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._expiry_notified = False
        self._callback_task: Optional[asyncio.Future] = None
        self.refresh_count = 0

    @classmethod
    def from_config(cls, **kwargs: Any) -> "RequestGateway":
        """설정에서 게이트웨이 생성."""
        from blogcms.config import get_config

        config = get_config()
        gateway_cfg = config.gateway
        kwargs.setdefault("transport", AiohttpTransport(timeout=gateway_cfg.request_timeout))
        return cls(
            base_url=gateway_cfg.base_url,
            refresh_timeout=gateway_cfg.refresh_timeout,
            max_rate_limit_wait=gateway_cfg.max_rate_limit_wait,
            refresh_threshold_minutes=config.jwt.auto_refresh_threshold_minutes,
            **kwargs,
        )

    @property
    def state(self) -> GatewayState:
        return self._state

    def set_tokens(self, access_token: Optional[str], refresh_token: Optional[str]) -> None:
        """토큰 설정 (새 세션 시작)."""
        self.tokens.access_token = access_token
        self.tokens.refresh_token = refresh_token
        self._expiry_notified = False

    # ============================================
    # 공개 API
    # ============================================

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        auth: bool = True,
    ) -> GatewayResponse:
        """API 요청.

        Args:
            method: HTTP 메서드
            path: base_url 기준 경로
            json: JSON 본문
            headers: 추가 헤더
            auth: 액세스 토큰 첨부 여부

        Returns:
            2xx 응답

        Raises:
            SessionExpiredError: 세션 상실 (다시 로그인 필요)
            RateLimitError: 요청 제한 초과
            GatewayRequestError: 그 외 HTTP 실패/네트워크 오류
        """
        method = method.upper()
        refreshable = auth and not self._is_logout(path)

        if refreshable:
            await self._before_send()

        response = await self._send_authorized(method, path, json, headers, auth, refreshable)

        if response.status == 429 and method in IDEMPOTENT_METHODS:
            wait = response.retry_after
            if wait is not None and wait <= self.max_rate_limit_wait:
                logger.info(f"요청 제한, {wait}초 후 재시도: {method} {path}")
                await self._sleep(wait)
                response = await self._send_authorized(method, path, json, headers, auth, refreshable)

        return self._finish(response)

    async def get(self, path: str, **kwargs: Any) -> GatewayResponse:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> GatewayResponse:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs: Any) -> GatewayResponse:
        return await self.request("PUT", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> GatewayResponse:
        return await self.request("DELETE", path, **kwargs)

    async def login(self, email: str, password: str, path: str = "/auth/login") -> Dict[str, Any]:
        """로그인 후 토큰 저장."""
        response = await self.request("POST", path, json={"email": email, "password": password}, auth=False)
        data = response.data or {}
        self.set_tokens(data.get("accessToken"), data.get("refreshToken"))
        return data

    async def logout(self) -> None:
        """로그아웃.

        서버 응답과 무관하게 로컬 토큰은 항상 삭제됩니다.
        """
        try:
            if self.tokens.access_token:
                await self.request("POST", self.logout_path)
        except AppError as e:
            logger.warning(f"서버 로그아웃 실패 (로컬 토큰은 삭제): {e.error_code}")
        finally:
            self.tokens.clear()

    async def close(self) -> None:
        """진행 중인 갱신 정리 및 전송 계층 종료."""
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    # ============================================
    # 전송
    # ============================================

    def _is_logout(self, path: str) -> bool:
        return path.rstrip("/") == self.logout_path

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(
        self,
        method: str,
        path: str,
        json: Any,
        headers: Optional[Mapping[str, str]],
        access_token: Optional[str],
    ) -> GatewayResponse:
        merged = {"Content-Type": "application/json"}
        if headers:
            merged.update(headers)
        if access_token:
            merged["Authorization"] = f"Bearer {access_token}"
        return await self.transport(method, self._url(path), merged, json)

    async def _send_authorized(
        self,
        method: str,
        path: str,
        json: Any,
        headers: Optional[Mapping[str, str]],
        auth: bool,
        refreshable: bool,
    ) -> GatewayResponse:
        """토큰을 붙여 전송. 만료 응답이면 갱신 후 한 번 재전송."""
        sent_token = self.tokens.access_token if auth else None
        response = await self._send(method, path, json, headers, sent_token)

        if response.status != 401 or not sent_token or not refreshable:
            return response

        if response.error_code != "TOKEN_EXPIRED" or not self.tokens.refresh_token:
            # 서명 오류/폐기 토큰은 갱신으로 복구할 수 없음
            raise self._expire_session(response.error_code, response.error.get("message"))

        new_token = await self._refresh(sent_token)
        response = await self._send(method, path, json, headers, new_token)
        if response.status == 401:
            raise self._expire_session(response.error_code, response.error.get("message"))
        return response

    def _finish(self, response: GatewayResponse) -> GatewayResponse:
        if response.ok:
            return response
        message = response.error.get("message")
        if response.status == 429:
            raise RateLimitError(message, retry_after=response.retry_after)
        raise GatewayRequestError(
            message,
            error_code=response.error_code,
            details=response.error.get("details"),
            status=response.status,
        )

    # ============================================
    # 토큰 갱신 (single-flight)
    # ============================================

    def _near_expiry(self, token: str) -> bool:
        claims = decode_unverified(token)
        if claims is None:
            return False
        expires_in = claims.expires_at.timestamp() - self._clock()
        return 0 < expires_in <= self.refresh_threshold_minutes * 60

    async def _before_send(self) -> None:
        """진행 중인 갱신을 기다리거나, 만료 임박 토큰을 선제 갱신."""
        if self._refresh_future is not None:
            await asyncio.shield(self._refresh_future)
            return
        access = self.tokens.access_token
        if (
            self.proactive_refresh
            and access
            and self.tokens.refresh_token
            and self._near_expiry(access)
        ):
            logger.debug("액세스 토큰 만료 임박, 선제 갱신")
            await self._refresh(access)

    async def _refresh(self, stale_token: Optional[str]) -> str:
        """새 액세스 토큰 반환. 갱신이 진행 중이면 그 결과를 공유합니다."""
        current = self.tokens.access_token
        if self._refresh_future is None and current and current != stale_token:
            # 다른 요청이 이미 갱신을 마침
            return current

        if self._refresh_future is None:
            self._state = GatewayState.REFRESHING
            self._refresh_future = asyncio.get_running_loop().create_future()
            self._refresh_task = asyncio.ensure_future(self._run_refresh(self._refresh_future))

        # 호출자가 취소되어도 공유 갱신은 계속 진행
        return await asyncio.shield(self._refresh_future)

    async def _run_refresh(self, future: asyncio.Future) -> None:
        self.refresh_count += 1
        error: Optional[SessionExpiredError] = None
        new_token: Optional[str] = None
        try:
            with timed_refresh():
                new_token = await asyncio.wait_for(self._call_refresh(), timeout=self.refresh_timeout)
            track_gateway_refresh("success")
        except asyncio.CancelledError:
            future.cancel()
            raise
        except asyncio.TimeoutError:
            logger.error(f"토큰 갱신 시간 초과 ({self.refresh_timeout}초)")
            track_gateway_refresh("timeout")
            error = RefreshTimeoutError()
        except SessionExpiredError as e:
            track_gateway_refresh("failure")
            error = e
        except Exception as e:
            logger.error(f"토큰 갱신 실패: {e}")
            track_gateway_refresh("failure")
            error = SessionExpiredError(error_code=getattr(e, "error_code", None))
        finally:
            self._refresh_future = None
            self._state = GatewayState.IDLE

        if error is not None:
            self._notify_expired(error)
            future.set_exception(error)
        else:
            future.set_result(new_token)

    async def _call_refresh(self) -> str:
        refresh_token = self.tokens.refresh_token
        if not refresh_token:
            raise SessionExpiredError("리프레시 토큰이 없습니다", error_code="INVALID_REFRESH")

        response = await self._send("POST", self.refresh_path, {"refreshToken": refresh_token}, None, None)
        data = response.data or {}
        if not response.ok or not data.get("accessToken"):
            raise SessionExpiredError(
                response.error.get("message"),
                error_code=response.error_code or "INVALID_REFRESH",
            )

        # 대기 중인 요청이 깨어나기 전에 새 토큰을 먼저 저장
        self.tokens.access_token = data["accessToken"]
        self.tokens.refresh_token = data.get("refreshToken", refresh_token)
        logger.info("액세스 토큰 갱신 완료")
        return self.tokens.access_token

    # ============================================
    # 세션 상실
    # ============================================

    def _expire_session(self, code: Optional[str], message: Optional[str] = None) -> SessionExpiredError:
        error = SessionExpiredError(message, error_code=code)
        self._notify_expired(error)
        return error

    def _notify_expired(self, error: SessionExpiredError) -> None:
        """로컬 토큰 삭제 후 콜백을 세션당 한 번만 호출."""
        self.tokens.clear()
        if self._expiry_notified:
            return
        self._expiry_notified = True
        logger.warning(f"세션 상실: {error.error_code}")
        if self.on_session_expired is None:
            return
        result = self.on_session_expired(error)
        if inspect.isawaitable(result):
            self._callback_task = asyncio.ensure_future(result)
