"""이메일 인증 코드 서비스.

회원가입 전 이메일 소유 확인용 6자리 코드를 발급/검증합니다.
실제 메일 발송은 CodeSender 구현체에 위임합니다.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional, Protocol

from blogcms.core.exceptions import (
    EmailExistsError,
    InvalidCodeError,
    ServiceUnavailableError,
    StoreUnavailableError,
)
from blogcms.core.logging import log_event
from blogcms.monitoring.metrics import track_auth_event, track_store_failure
from blogcms.store.interfaces import EMAIL_CODE_PREFIX, KeyValueStore

from .models import MAX_CODE_LENGTH, User
from .password import validate_password_strength
from .repository import AuthRepository

logger = logging.getLogger(__name__)


class CodeSender(Protocol):
    """인증 코드 전달 인터페이스."""

    async def send(self, email: str, code: str) -> None:
        ...


class LoggingCodeSender:
    """로그로만 코드를 남기는 개발용 발송기."""

    async def send(self, email: str, code: str) -> None:
        logger.info(f"인증 코드 발송 요청: {email}")
        logger.debug(f"[개발용] {email} 인증 코드: {code}")


class VerificationService:
    """인증 코드 발급 및 코드 확인 후 회원가입."""

    def __init__(
        self,
        store: KeyValueStore,
        repository: AuthRepository,
        sender: Optional[CodeSender] = None,
        code_length: int = 6,
        code_ttl_seconds: int = 600,
    ):
        if not 1 <= code_length <= MAX_CODE_LENGTH:
            raise ValueError(f"인증 코드 길이는 1~{MAX_CODE_LENGTH} 사이여야 합니다: {code_length}")
        self.store = store
        self.repository = repository
        self.sender = sender or LoggingCodeSender()
        self.code_length = code_length
        self.code_ttl_seconds = code_ttl_seconds

    @staticmethod
    def key(email: str) -> str:
        return f"{EMAIL_CODE_PREFIX}{email.strip().lower()}"

    def generate_code(self) -> str:
        """앞자리가 0이 아닌 숫자 코드 생성."""
        low = 10 ** (self.code_length - 1)
        return str(low + secrets.randbelow(9 * low))

    async def send_code(self, email: str) -> None:
        """인증 코드 발급 및 발송.

        Raises:
            EmailExistsError: 이미 가입된 이메일
            ServiceUnavailableError: 코드 저장 실패
        """
        if self.repository.get_user_by_email(email):
            track_auth_event("register", EmailExistsError.error_code)
            raise EmailExistsError()

        code = self.generate_code()
        try:
            await self.store.set(self.key(email), code, ttl=self.code_ttl_seconds)
        except StoreUnavailableError as e:
            track_store_failure("email_code_set")
            raise ServiceUnavailableError("인증 코드를 저장할 수 없습니다") from e

        await self.sender.send(email, code)
        track_auth_event("register", "success")
        log_event(logger, logging.INFO, "인증 코드 발급", email=email, code=code)

    async def verify_and_register(
        self,
        email: str,
        code: str,
        password: str,
        name: Optional[str] = None,
    ) -> User:
        """코드 확인 후 사용자 생성.

        비밀번호 강도 검사를 먼저 수행하므로 약한 비밀번호로 코드가 소모되지 않습니다.

        Raises:
            WeakPasswordError: 비밀번호 강도 미달
            InvalidCodeError: 코드 불일치 또는 만료
            EmailExistsError: 이미 가입된 이메일
        """
        validate_password_strength(password)

        key = self.key(email)
        try:
            stored = await self.store.get(key)
        except StoreUnavailableError as e:
            track_store_failure("email_code_get")
            raise ServiceUnavailableError() from e

        if (
            stored is None
            or len(code) != self.code_length
            or not secrets.compare_digest(stored.encode("utf-8"), code.encode("utf-8"))
        ):
            logger.warning(f"인증 코드 불일치 또는 만료: {email}")
            track_auth_event("verify", InvalidCodeError.error_code)
            raise InvalidCodeError()

        if self.repository.get_user_by_email(email):
            track_auth_event("verify", EmailExistsError.error_code)
            raise EmailExistsError()

        try:
            await self.store.delete(key)
        except StoreUnavailableError as e:
            track_store_failure("email_code_delete")
            logger.warning(f"사용한 인증 코드 삭제 실패 (TTL로 만료 예정): {e}")

        user = self.repository.create_user(email=email, password=password, name=name)
        track_auth_event("verify", "success")
        return user
