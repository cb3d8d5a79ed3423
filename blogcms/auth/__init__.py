"""인증 모듈.

JWT 기반 세션 관리와 요청 제한을 제공합니다.
"""

from .models import (
    LoginResult,
    Principal,
    TokenClaims,
    TokenKind,
    TokenPair,
    User,
)
from .password import hash_password, verify_password, validate_password_strength
from .token_codec import TokenCodec, get_token_codec, init_token_codec
from .refresh_store import RefreshTokenStore
from .token_blacklist import TokenBlacklist
from .rate_limiter import RateLimitDecision, RateLimiter, get_rate_limiter, init_rate_limiter
from .repository import AuthRepository
from .session import SessionService
from .verification import CodeSender, LoggingCodeSender, VerificationService
from .dependencies import (
    get_auth_repo,
    get_current_principal,
    get_session_service,
    get_verification_service,
    init_auth_services,
    require_admin,
)
from .middleware import ApiRateLimitMiddleware

__all__ = [
    "LoginResult",
    "Principal",
    "TokenClaims",
    "TokenKind",
    "TokenPair",
    "User",
    "hash_password",
    "verify_password",
    "validate_password_strength",
    # Token
    "TokenCodec",
    "get_token_codec",
    "init_token_codec",
    "RefreshTokenStore",
    "TokenBlacklist",
    # Rate Limiter
    "RateLimitDecision",
    "RateLimiter",
    "get_rate_limiter",
    "init_rate_limiter",
    "ApiRateLimitMiddleware",
    # Services
    "AuthRepository",
    "SessionService",
    "CodeSender",
    "LoggingCodeSender",
    "VerificationService",
    "get_auth_repo",
    "get_current_principal",
    "get_session_service",
    "get_verification_service",
    "init_auth_services",
    "require_admin",
]
