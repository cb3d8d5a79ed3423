"""JWT 토큰 코덱.

액세스 토큰과 리프레시 토큰 발급/검증을 담당합니다.
두 토큰은 서로 다른 시크릿과 수명을 사용합니다.
"""

from __future__ import annotations

import logging
import math
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from jose import JWTError, jwt

from blogcms.core.exceptions import TokenExpiredError, TokenMalformedError

from .models import Principal, TokenClaims, TokenKind

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_claims(payload: Dict[str, Any]) -> TokenClaims:
    return TokenClaims(
        principal_id=str(payload["sub"]),
        role=payload.get("role", "user"),
        email=payload.get("email", ""),
        kind=TokenKind(payload["type"]),
        issued_at=datetime.fromtimestamp(payload.get("iat", 0), tz=timezone.utc),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        jti=payload.get("jti", ""),
    )


def decode_unverified(token: str) -> Optional[TokenClaims]:
    """서명 검증 없이 클레임 디코드. 형식이 잘못되면 None.

    만료 시각 확인 전용이며 인가 판단에 사용하면 안 됩니다.
    """
    try:
        return _to_claims(jwt.get_unverified_claims(token))
    except (JWTError, KeyError, TypeError, ValueError):
        return None


class TokenCodec:
    """토큰 서명/검증/디코드.

    상태를 갖지 않으며 여러 요청에서 공유해도 안전합니다.
    만료 판정은 주입된 시계를 기준으로 하며 시계 오차는 보정하지 않습니다.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=30),
        refresh_ttl: timedelta = timedelta(days=7),
        refresh_threshold_minutes: int = 5,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if access_secret == refresh_secret:
            raise ValueError("액세스/리프레시 토큰 시크릿은 서로 달라야 합니다")
        self._secrets = {
            TokenKind.ACCESS: access_secret,
            TokenKind.REFRESH: refresh_secret,
        }
        self._ttls = {
            TokenKind.ACCESS: access_ttl,
            TokenKind.REFRESH: refresh_ttl,
        }
        self.algorithm = algorithm
        self.refresh_threshold_minutes = refresh_threshold_minutes
        self._clock = clock

    @classmethod
    def from_config(cls) -> "TokenCodec":
        """설정에서 코덱 생성."""
        from blogcms.config import get_config

        cfg = get_config().jwt
        if cfg.uses_dev_secrets:
            logger.warning(
                "JWT 시크릿 환경변수가 설정되지 않았습니다. "
                "개발용 기본값을 사용합니다. 프로덕션에서는 반드시 환경변수를 설정하세요."
            )
        return cls(
            access_secret=cfg.secret_key,
            refresh_secret=cfg.refresh_secret_key,
            algorithm=cfg.algorithm,
            access_ttl=timedelta(minutes=cfg.access_token_expire_minutes),
            refresh_ttl=timedelta(days=cfg.refresh_token_expire_days),
            refresh_threshold_minutes=cfg.auto_refresh_threshold_minutes,
        )

    @property
    def access_ttl_seconds(self) -> int:
        return int(self._ttls[TokenKind.ACCESS].total_seconds())

    @property
    def refresh_ttl_seconds(self) -> int:
        return int(self._ttls[TokenKind.REFRESH].total_seconds())

    def _issue(self, principal: Principal, kind: TokenKind) -> str:
        now = self._clock()
        payload = {
            "sub": principal.id,
            "email": principal.email,
            "role": principal.role,
            "type": kind.value,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttls[kind]).timestamp()),
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)

    def issue_access(self, principal: Principal) -> str:
        """액세스 토큰 발급."""
        return self._issue(principal, TokenKind.ACCESS)

    def issue_refresh(self, principal: Principal) -> str:
        """리프레시 토큰 발급."""
        return self._issue(principal, TokenKind.REFRESH)

    def verify(self, token: str, kind: TokenKind = TokenKind.ACCESS) -> TokenClaims:
        """토큰 검증.

        Args:
            token: JWT 토큰
            kind: 기대하는 토큰 종류

        Returns:
            검증된 클레임

        Raises:
            TokenExpiredError: 만료된 토큰
            TokenMalformedError: 서명/구조 오류 또는 종류 불일치
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            logger.warning(f"토큰 검증 실패: {e}")
            raise TokenMalformedError() from e

        if payload.get("type") != kind.value:
            logger.warning(f"토큰 타입 불일치: expected={kind.value}, got={payload.get('type')}")
            raise TokenMalformedError()

        if not payload.get("sub") or not isinstance(payload.get("exp"), (int, float)):
            logger.warning("토큰에 필수 클레임(sub, exp)이 없습니다.")
            raise TokenMalformedError()

        claims = _to_claims(payload)
        if self._clock() > claims.expires_at:
            raise TokenExpiredError()
        return claims

    def decode_unsafe(self, token: str) -> Optional[TokenClaims]:
        """서명 검증 없이 디코드 (만료 시각 확인 전용)."""
        return decode_unverified(token)

    def is_near_expiry(self, token: str, threshold_minutes: Optional[int] = None) -> bool:
        """만료 임박 여부 (아직 유효하고 남은 시간이 임계값 이하)."""
        claims = self.decode_unsafe(token)
        if claims is None:
            return False
        if threshold_minutes is None:
            threshold_minutes = self.refresh_threshold_minutes
        expires_in = (claims.expires_at - self._clock()).total_seconds()
        return 0 < expires_in <= threshold_minutes * 60

    def expiration_info(self, token: str) -> Optional[Dict[str, Any]]:
        """토큰 만료 정보.

        Returns:
            {expires_at, expires_in, is_expired, should_refresh} 또는 디코드 실패 시 None
        """
        claims = self.decode_unsafe(token)
        if claims is None:
            return None
        expires_in = int((claims.expires_at - self._clock()).total_seconds())
        return {
            "expires_at": claims.expires_at,
            "expires_in": max(0, expires_in),
            "is_expired": expires_in <= 0,
            "should_refresh": self.is_near_expiry(token),
        }

    def remaining_seconds(self, claims: TokenClaims) -> int:
        """주입된 시계 기준 남은 수명(초)."""
        return claims.remaining_seconds(self._clock())

    def revocation_ttl(self, claims: TokenClaims) -> int:
        """블랙리스트 보관 시간(초).

        verify는 exp 시각까지 토큰을 허용하므로, 보관 기간이 exp 직후까지 이어지도록
        남은 시간의 정수 부분에 1초를 더합니다. 이미 만료된 토큰은 0.
        """
        remaining = (claims.expires_at - self._clock()).total_seconds()
        if remaining < 0:
            return 0
        return math.floor(remaining) + 1


# 전역 코덱 인스턴스
_codec: Optional[TokenCodec] = None


def get_token_codec() -> TokenCodec:
    """전역 토큰 코덱 반환."""
    global _codec
    if _codec is None:
        _codec = TokenCodec.from_config()
    return _codec


def init_token_codec(codec: Optional[TokenCodec] = None) -> TokenCodec:
    """전역 토큰 코덱 초기화 (없으면 설정에서 생성)."""
    global _codec
    _codec = codec or TokenCodec.from_config()
    return _codec


def reset_token_codec() -> None:
    global _codec
    _codec = None
