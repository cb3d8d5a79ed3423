"""Core 모듈.

공통 예외 클래스와 로깅 설정을 제공합니다.
"""

from blogcms.core.exceptions import (
    AppError,
    AuthError,
    RateLimitError,
    ValidationError,
    NotFoundError,
    PermissionError,
    ServiceUnavailableError,
    StoreUnavailableError,
)

__all__ = [
    "AppError",
    "AuthError",
    "RateLimitError",
    "ValidationError",
    "NotFoundError",
    "PermissionError",
    "ServiceUnavailableError",
    "StoreUnavailableError",
]
