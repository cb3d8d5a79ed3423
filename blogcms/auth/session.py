"""세션 서비스.

토큰 코덱, 리프레시 토큰 저장소, 블랙리스트를 조합해
로그인/토큰 갱신/로그아웃/비밀번호 변경을 처리합니다.
"""

from __future__ import annotations

import logging
from typing import Optional

from blogcms.core.exceptions import (
    AccountDisabledError,
    AppError,
    InvalidRefreshError,
    PermissionError,
    ServiceUnavailableError,
    StoreUnavailableError,
    TokenExpiredError,
    TokenMalformedError,
    TokenRevokedError,
)
from blogcms.monitoring.metrics import track_auth_event, track_store_failure

from .models import LoginResult, Principal, TokenKind, TokenPair
from .refresh_store import RefreshTokenStore
from .repository import AuthRepository
from .token_blacklist import TokenBlacklist
from .token_codec import TokenCodec

logger = logging.getLogger(__name__)


class SessionService:
    """인증 세션 오케스트레이션.

    주체당 유효한 리프레시 토큰은 항상 하나뿐입니다.
    로그인/갱신마다 새 값으로 덮어쓰므로 이전 값은 즉시 쓸 수 없게 됩니다.
    """

    def __init__(
        self,
        codec: TokenCodec,
        refresh_store: RefreshTokenStore,
        blacklist: TokenBlacklist,
        repository: AuthRepository,
    ):
        self.codec = codec
        self.refresh_store = refresh_store
        self.blacklist = blacklist
        self.repository = repository

    async def _issue_pair(self, principal: Principal) -> TokenPair:
        """토큰 쌍 발급 후 리프레시 토큰 저장 (저장 실패 시 발급 취소)."""
        pair = TokenPair(
            access_token=self.codec.issue_access(principal),
            refresh_token=self.codec.issue_refresh(principal),
            expires_in=self.codec.access_ttl_seconds,
        )
        try:
            await self.refresh_store.set(principal.id, pair.refresh_token, self.codec.refresh_ttl_seconds)
        except StoreUnavailableError as e:
            track_store_failure("refresh_token_set")
            logger.error(f"리프레시 토큰 저장 실패: {principal.id} ({e})")
            raise ServiceUnavailableError() from e
        return pair

    async def login(self, email: str, password: str, require_admin: bool = False) -> LoginResult:
        """로그인.

        같은 주체의 이전 세션 리프레시 토큰은 덮어써져 무효가 됩니다.

        Args:
            email: 이메일
            password: 비밀번호
            require_admin: 관리자만 허용

        Returns:
            토큰 쌍과 사용자 정보

        Raises:
            InvalidCredentialsError: 자격 증명 불일치
            AccountDisabledError: 비활성화된 계정
            PermissionError: 관리자 로그인에 일반 사용자
            ServiceUnavailableError: 세션 저장소 장애
        """
        event = "admin_login" if require_admin else "login"
        try:
            user = self.repository.verify_credentials(email, password)
            if require_admin and user.role != "admin":
                raise PermissionError("관리자 권한이 필요합니다")
            tokens = await self._issue_pair(user.to_principal())
        except AppError as e:
            track_auth_event(event, e.error_code)
            logger.warning(f"로그인 실패: {email} ({e.error_code})")
            raise

        self.repository.record_login(user.id)
        track_auth_event(event, "success")
        logger.info(f"로그인 성공: {user.id} ({user.email})")
        return LoginResult(tokens=tokens, user=user)

    async def refresh(self, presented_token: str) -> TokenPair:
        """리프레시 토큰으로 토큰 쌍 회전.

        Raises:
            InvalidRefreshError: 서명/만료 오류, 저장값 불일치, 사용자 없음
            AccountDisabledError: 비활성화된 계정
            ServiceUnavailableError: 세션 저장소 장애
        """
        try:
            pair = await self._rotate(presented_token)
        except AppError as e:
            track_auth_event("refresh", e.error_code)
            raise
        track_auth_event("refresh", "success")
        return pair

    async def _rotate(self, presented_token: str) -> TokenPair:
        try:
            claims = self.codec.verify(presented_token, TokenKind.REFRESH)
        except (TokenExpiredError, TokenMalformedError) as e:
            raise InvalidRefreshError() from e

        try:
            matches = await self.refresh_store.matches(claims.principal_id, presented_token)
        except StoreUnavailableError as e:
            track_store_failure("refresh_token_get")
            raise ServiceUnavailableError() from e

        if not matches:
            # 이미 교체된 토큰의 재사용 또는 로그아웃 후 사용
            logger.warning(f"리프레시 토큰 불일치: {claims.principal_id}")
            raise InvalidRefreshError()

        user = self.repository.get_user_by_id(claims.principal_id)
        if user is None:
            raise InvalidRefreshError()
        if not user.is_active:
            await self._invalidate_quietly(user.id)
            raise AccountDisabledError()

        pair = await self._issue_pair(user.to_principal())
        logger.info(f"토큰 갱신: {user.id}")
        return pair

    async def authenticate(self, access_token: str) -> Principal:
        """액세스 토큰 인증. 블랙리스트 확인 후 서명/만료를 검증합니다.

        Raises:
            TokenRevokedError: 폐기된 토큰
            TokenExpiredError: 만료된 토큰
            TokenMalformedError: 서명/구조 오류
        """
        if await self.blacklist.contains(access_token):
            raise TokenRevokedError()
        return self.codec.verify(access_token, TokenKind.ACCESS).to_principal()

    async def _revoke_access(self, access_token: str) -> None:
        claims = self.codec.decode_unsafe(access_token)
        if claims is None:
            return
        try:
            await self.blacklist.add(access_token, self.codec.revocation_ttl(claims))
        except StoreUnavailableError as e:
            track_store_failure("blacklist_add")
            logger.warning(f"액세스 토큰 폐기 실패: {claims.principal_id} ({e})")

    async def _invalidate_quietly(self, principal_id: str) -> None:
        try:
            await self.refresh_store.invalidate(principal_id)
        except StoreUnavailableError as e:
            track_store_failure("refresh_token_delete")
            logger.warning(f"리프레시 토큰 무효화 실패: {principal_id} ({e})")

    async def logout(self, access_token: str, principal_id: Optional[str] = None) -> None:
        """로그아웃.

        액세스 토큰을 남은 수명만큼 블랙리스트에 넣고 리프레시 토큰을 제거합니다.
        저장소 장애가 있어도 실패로 응답하지 않습니다.
        """
        if principal_id is None:
            claims = self.codec.decode_unsafe(access_token)
            principal_id = claims.principal_id if claims else None

        await self._revoke_access(access_token)
        if principal_id:
            await self._invalidate_quietly(principal_id)

        track_auth_event("logout", "success")
        logger.info(f"로그아웃: {principal_id}")

    async def change_password(
        self,
        principal_id: str,
        old_password: str,
        new_password: str,
        current_access_token: Optional[str] = None,
    ) -> None:
        """비밀번호 변경.

        성공 시 저장된 리프레시 토큰을 제거해 모든 기기의 세션이 다음 갱신 시점에 끊깁니다.
        요청에 쓰인 액세스 토큰도 함께 폐기합니다.

        Raises:
            InvalidPasswordError: 기존 비밀번호 불일치
            WeakPasswordError: 새 비밀번호 강도 미달
        """
        try:
            self.repository.change_password(principal_id, old_password, new_password)
        except AppError as e:
            track_auth_event("change_password", e.error_code)
            raise

        await self._invalidate_quietly(principal_id)
        if current_access_token:
            await self._revoke_access(current_access_token)

        track_auth_event("change_password", "success")
        logger.info(f"비밀번호 변경 후 세션 무효화: {principal_id}")
