"""일반 API 요청 제한 미들웨어.

유효한 Bearer 토큰이 있으면 주체 ID 기준(api_authenticated),
없으면 클라이언트 IP 기준(api)으로 제한합니다.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from blogcms.core.exceptions import AppError, AuthError, RateLimitError

from .dependencies import RATE_LIMIT_MESSAGES, client_ip, parse_bearer
from .models import TokenKind
from .rate_limiter import RateLimiter, get_rate_limiter
from .token_codec import TokenCodec, get_token_codec

logger = logging.getLogger(__name__)


class ApiRateLimitMiddleware(BaseHTTPMiddleware):
    """API 티어 요청 제한 미들웨어."""

    def __init__(
        self,
        app,
        exclude_paths: Optional[List[str]] = None,
        limiter_provider: Callable[[], RateLimiter] = get_rate_limiter,
        codec_provider: Callable[[], TokenCodec] = get_token_codec,
    ):
        """초기화.

        Args:
            app: FastAPI 앱
            exclude_paths: 제한하지 않을 경로 목록
            limiter_provider: Rate Limiter 반환 함수
            codec_provider: 토큰 코덱 반환 함수
        """
        super().__init__(app)
        self.exclude_paths = exclude_paths or ["/healthz", "/metrics"]
        self._limiter_provider = limiter_provider
        self._codec_provider = codec_provider

    def _resolve_key(self, request: Request) -> Tuple[str, str]:
        """(키, 티어) 결정. 토큰이 유효하지 않으면 IP 기준으로 처리."""
        authorization = request.headers.get("Authorization")
        if authorization:
            try:
                token = parse_bearer(authorization)
                claims = self._codec_provider().verify(token, TokenKind.ACCESS)
                return claims.principal_id, "api_authenticated"
            except AuthError:
                pass
        return client_ip(request), "api"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        key, tier = self._resolve_key(request)
        try:
            decision = await self._limiter_provider().hit(key, tier)
        except AppError as e:
            return JSONResponse(status_code=e.status_code, content=e.to_dict())

        if not decision.allowed:
            error = RateLimitError(RATE_LIMIT_MESSAGES.get(tier), retry_after=decision.retry_after)
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_dict(),
                headers=decision.headers(),
            )

        response = await call_next(request)
        # 엔드포인트 티어(login 등)가 설정한 헤더를 우선
        for name, value in decision.headers().items():
            response.headers.setdefault(name, value)
        return response
