"""커스텀 예외 클래스 모듈.

애플리케이션 전역에서 사용되는 예외 클래스를 정의합니다.
모든 예외는 표준 에러 봉투 `{"success": false, "error": {...}}`로 직렬화됩니다.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """애플리케이션 기본 예외.

    모든 커스텀 예외의 기반 클래스입니다.
    """

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    message: str = "내부 서버 오류가 발생했습니다"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """예외 정보를 에러 봉투 딕셔너리로 반환."""
        error: Dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
        }
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


# ============================================
# 인증 (401)
# ============================================


class AuthError(AppError):
    """인증 관련 예외."""

    status_code = 401
    error_code = "AUTHENTICATION_FAILED"
    message = "인증에 실패했습니다"

    # 리프레시로 복구 가능한 오류인지 여부
    recoverable: bool = False


class NoTokenError(AuthError):
    error_code = "NO_TOKEN"
    message = "인증 토큰이 제공되지 않았습니다"


class InvalidTokenFormatError(AuthError):
    error_code = "INVALID_TOKEN_FORMAT"
    message = "토큰 형식이 올바르지 않습니다"


class TokenExpiredError(AuthError):
    """만료된 토큰. 리프레시로 복구 가능."""

    error_code = "TOKEN_EXPIRED"
    message = "토큰이 만료되었습니다"
    recoverable = True


class TokenMalformedError(AuthError):
    """서명 또는 구조가 잘못된 토큰."""

    error_code = "INVALID_TOKEN"
    message = "유효하지 않은 토큰입니다"


class TokenRevokedError(AuthError):
    error_code = "TOKEN_REVOKED"
    message = "토큰이 폐기되었습니다"


class InvalidRefreshError(AuthError):
    """리프레시 토큰 불일치/만료/폐기. 클라이언트는 강제 로그아웃해야 합니다."""

    error_code = "INVALID_REFRESH"
    message = "리프레시 토큰이 만료되었거나 무효화되었습니다"


class InvalidCredentialsError(AuthError):
    error_code = "INVALID_CREDENTIALS"
    message = "이메일 또는 비밀번호가 올바르지 않습니다"


# ============================================
# 요청 제한 (429)
# ============================================


class RateLimitError(AppError):
    """Rate Limit 초과 예외."""

    status_code = 429
    error_code = "RATE_LIMIT_EXCEEDED"
    message = "요청 횟수가 제한을 초과했습니다"

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.retry_after is not None:
            result["error"]["retryAfter"] = int(self.retry_after)
        return result


# ============================================
# 입력/권한/충돌
# ============================================


class ValidationError(AppError):
    """입력 검증 실패 예외."""

    status_code = 400
    error_code = "VALIDATION_ERROR"
    message = "입력값이 유효하지 않습니다"


class InvalidPasswordError(ValidationError):
    error_code = "INVALID_PASSWORD"
    message = "기존 비밀번호가 올바르지 않습니다"


class WeakPasswordError(ValidationError):
    error_code = "WEAK_PASSWORD"
    message = "비밀번호는 8자 이상이며 영문자와 숫자를 모두 포함해야 합니다"


class InvalidCodeError(ValidationError):
    error_code = "INVALID_CODE"
    message = "인증 코드가 올바르지 않거나 만료되었습니다"


class NotFoundError(AppError):
    """리소스를 찾을 수 없음 예외."""

    status_code = 404
    error_code = "NOT_FOUND"
    message = "요청한 리소스를 찾을 수 없습니다"


class PermissionError(AppError):
    """권한 부족 예외."""

    status_code = 403
    error_code = "FORBIDDEN"
    message = "이 작업을 수행할 권한이 없습니다"


class AccountDisabledError(PermissionError):
    error_code = "ACCOUNT_DISABLED"
    message = "비활성화된 계정입니다"


class ConflictError(AppError):
    """리소스 충돌 예외."""

    status_code = 409
    error_code = "CONFLICT"
    message = "리소스 충돌이 발생했습니다"


class EmailExistsError(ConflictError):
    error_code = "EMAIL_EXISTS"
    message = "이미 가입된 이메일입니다"


class ServiceUnavailableError(AppError):
    """서비스 이용 불가 예외."""

    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"
    message = "서비스를 일시적으로 사용할 수 없습니다"


# ============================================
# 내부 (클라이언트에 노출하지 않음)
# ============================================


class StoreUnavailableError(Exception):
    """공유 저장소 장애.

    블랙리스트/요청 제한 검사에서는 fail-open 정책에 따라 흡수되고,
    로그로만 남습니다.
    """

    error_code = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, key: str = "", cause: Optional[BaseException] = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        super().__init__(f"저장소 작업 실패: {operation} {key} ({cause})")


# ============================================
# 클라이언트 게이트웨이
# ============================================


class GatewayError(AppError):
    """클라이언트 게이트웨이 예외."""

    status_code = 0
    error_code = "GATEWAY_ERROR"
    message = "요청을 처리할 수 없습니다"


class SessionExpiredError(GatewayError):
    """세션 상실 (갱신 실패, 폐기/무효 토큰). 다시 로그인해야 합니다.

    error_code에는 서버가 보낸 원인 코드(INVALID_REFRESH 등)가 들어갑니다.
    """

    status_code = 401
    error_code = "SESSION_EXPIRED"
    message = "세션이 만료되었습니다. 다시 로그인하세요"


class RefreshTimeoutError(SessionExpiredError):
    error_code = "REFRESH_TIMEOUT"
    message = "토큰 갱신 응답 시간이 초과되었습니다"


class GatewayRequestError(GatewayError):
    """인증 외 HTTP 실패 또는 네트워크 오류."""

    error_code = "REQUEST_FAILED"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status: int = 0,
    ):
        super().__init__(message, error_code, details)
        self.status_code = status
