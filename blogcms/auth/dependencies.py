"""FastAPI 인증 의존성.

API 엔드포인트에서 사용하는 인증/요청 제한 관련 의존성을 정의합니다.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import Depends, Header, Request, Response

from blogcms.config import get_config
from blogcms.core.exceptions import InvalidTokenFormatError, NoTokenError, PermissionError
from blogcms.core.logging import set_principal_id
from blogcms.store import get_store

from .models import Principal
from .rate_limiter import RateLimitDecision, RateLimiter, get_rate_limiter
from .refresh_store import RefreshTokenStore
from .repository import AuthRepository
from .session import SessionService
from .token_blacklist import TokenBlacklist
from .token_codec import get_token_codec
from .verification import VerificationService

logger = logging.getLogger(__name__)

# 티어별 거부 메시지
RATE_LIMIT_MESSAGES = {
    "login": "로그인 시도가 너무 많습니다. 잠시 후 다시 시도하세요",
    "register": "회원가입 시도 횟수가 한도에 도달했습니다. 1시간 후 다시 시도하세요",
    "verify_email_minute": "인증 코드 요청이 너무 잦습니다. 1분 후 다시 시도하세요",
    "verify_email_hour": "이 이메일의 인증 코드 발송 한도에 도달했습니다",
    "verify_ip_hour": "이 IP의 인증 코드 발송 한도에 도달했습니다",
    "api": "API 요청이 너무 많습니다",
    "api_authenticated": "API 요청이 너무 많습니다",
}

# 서비스 싱글톤
_auth_repo: Optional[AuthRepository] = None
_session_service: Optional[SessionService] = None
_verification_service: Optional[VerificationService] = None


def get_auth_repo() -> AuthRepository:
    """인증 저장소 반환."""
    global _auth_repo
    if _auth_repo is None:
        _auth_repo = AuthRepository()
    return _auth_repo


def get_session_service() -> SessionService:
    """세션 서비스 반환."""
    global _session_service
    if _session_service is None:
        store = get_store()
        _session_service = SessionService(
            codec=get_token_codec(),
            refresh_store=RefreshTokenStore(store),
            blacklist=TokenBlacklist(store, fail_open=get_config().store.fail_open),
            repository=get_auth_repo(),
        )
    return _session_service


def get_verification_service() -> VerificationService:
    """인증 코드 서비스 반환."""
    global _verification_service
    if _verification_service is None:
        cfg = get_config().verification
        _verification_service = VerificationService(
            store=get_store(),
            repository=get_auth_repo(),
            code_length=cfg.code_length,
            code_ttl_seconds=cfg.code_ttl_seconds,
        )
    return _verification_service


def init_auth_services(
    repository: Optional[AuthRepository] = None,
    session_service: Optional[SessionService] = None,
    verification_service: Optional[VerificationService] = None,
) -> None:
    """서비스 싱글톤 교체 (테스트/부트스트랩용)."""
    global _auth_repo, _session_service, _verification_service
    _auth_repo = repository
    _session_service = session_service
    _verification_service = verification_service


# ============================================
# 인증
# ============================================


def parse_bearer(authorization: Optional[str]) -> str:
    """Authorization 헤더에서 토큰 추출.

    Raises:
        NoTokenError: 헤더 없음
        InvalidTokenFormatError: "Bearer <token>" 형식 아님
    """
    if not authorization:
        raise NoTokenError()
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise InvalidTokenFormatError()
    return parts[1]


async def get_bearer_token(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """Bearer 토큰 반환 (토큰 검증 전 헤더 형식만 확인)."""
    return parse_bearer(authorization)


async def get_current_principal(
    request: Request,
    token: str = Depends(get_bearer_token),
    service: SessionService = Depends(get_session_service),
) -> Principal:
    """현재 인증된 주체 반환.

    블랙리스트 확인 후 서명/만료를 검증합니다.

    Raises:
        TokenRevokedError, TokenExpiredError, TokenMalformedError
    """
    principal = await service.authenticate(token)
    set_principal_id(principal.id)
    request.state.principal = principal
    return principal


async def require_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """관리자 권한 요구."""
    if not principal.is_admin:
        raise PermissionError("관리자 권한이 필요합니다")
    return principal


# ============================================
# 요청 제한
# ============================================


def client_ip(request: Request) -> str:
    """클라이언트 IP (프록시 헤더는 신뢰하지 않음)."""
    return request.client.host if request.client else "unknown"


def apply_rate_limit_headers(response: Response, decision: RateLimitDecision) -> None:
    for name, value in decision.headers().items():
        response.headers[name] = value


async def enforce_rate_limit(
    limiter: RateLimiter,
    response: Response,
    key: str,
    tier: str,
) -> RateLimitDecision:
    """확인 후 기록. 거부되면 RateLimitError 발생."""
    decision = await limiter.hit(key, tier)
    decision.raise_for_limit(RATE_LIMIT_MESSAGES.get(tier))
    apply_rate_limit_headers(response, decision)
    return decision


async def enforce_verification_limits(
    limiter: RateLimiter,
    response: Response,
    email: str,
    ip: str,
) -> RateLimitDecision:
    """인증 코드 발송 제한 (이메일 분/시간, IP 시간). 모두 확인 후 함께 기록."""
    email = email.strip().lower()
    decision = await limiter.hit_all([
        (email, "verify_email_minute"),
        (email, "verify_email_hour"),
        (ip, "verify_ip_hour"),
    ])
    decision.raise_for_limit(RATE_LIMIT_MESSAGES.get(decision.tier))
    apply_rate_limit_headers(response, decision)
    return decision


def login_rate_key(email: Optional[str], request: Request) -> str:
    """로그인 제한 키: 계정 이메일, 없으면 IP."""
    if email and email.strip():
        return email.strip().lower()
    return client_ip(request)


def rate_limit(tier: str) -> Callable:
    """IP 기준 요청 제한 의존성 생성.

    사용 예: ``Depends(rate_limit("register"))``
    """

    async def dependency(
        request: Request,
        response: Response,
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> RateLimitDecision:
        return await enforce_rate_limit(limiter, response, client_ip(request), tier)

    return dependency
