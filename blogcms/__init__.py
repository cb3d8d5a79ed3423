"""블로그 CMS 인증/세션 및 요청 제한 코어."""

__version__ = "0.3.0"
