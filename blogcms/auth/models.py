"""인증 모델 정의.

주체(Principal), 토큰 클레임, API 요청/응답 모델을 정의합니다.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# 인증 코드 최대 자릿수
MAX_CODE_LENGTH = 12


# ============================================
# Pydantic 모델 (API 요청/응답)
# ============================================


class RegisterRequest(BaseModel):
    """인증 코드 발송 요청."""

    email: EmailStr


class VerifyRequest(BaseModel):
    """인증 코드 확인 및 회원가입 요청."""

    email: EmailStr
    # 자릿수는 VerificationService.code_length로 검사
    code: str = Field(..., min_length=1, max_length=MAX_CODE_LENGTH, pattern=r"^\d+$")
    password: str = Field(..., min_length=8)
    name: Optional[str] = Field(None, max_length=50)


class LoginRequest(BaseModel):
    """로그인 요청."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """토큰 갱신 요청."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(..., min_length=1, alias="refreshToken")


class ChangePasswordRequest(BaseModel):
    """비밀번호 변경 요청."""

    model_config = ConfigDict(populate_by_name=True)

    old_password: str = Field(..., min_length=1, alias="oldPassword")
    new_password: str = Field(..., min_length=1, alias="newPassword")


class UserResponse(BaseModel):
    """사용자 정보 응답."""

    id: str
    email: str
    name: Optional[str] = None
    role: str
    is_active: bool = True


class TokenPairResponse(BaseModel):
    """토큰 쌍 응답."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    token_type: str = Field("bearer", alias="tokenType")
    expires_in: int = Field(..., alias="expiresIn")  # 초 단위


# ============================================
# 데이터클래스 (내부 사용)
# ============================================


@dataclass(frozen=True)
class Principal:
    """토큰이 발급되는 인증 주체.

    토큰 수명 동안 불변입니다. 역할이 바뀌면 재발급이 필요합니다.
    """

    id: str
    role: str
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class User:
    """사용자 모델."""

    id: str
    email: str
    password_hash: str
    role: str = "user"  # user, admin
    name: Optional[str] = None
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""
    last_login_at: Optional[str] = None

    def to_principal(self) -> Principal:
        return Principal(id=self.id, role=self.role, email=self.email)

    def to_response(self) -> UserResponse:
        """응답용 데이터로 변환."""
        return UserResponse(
            id=self.id,
            email=self.email,
            name=self.name,
            role=self.role,
            is_active=self.is_active,
        )


class TokenKind(str, Enum):
    """토큰 종류. 종류별로 서명 시크릿과 수명이 다릅니다."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """검증(또는 디코드)된 토큰 클레임."""

    principal_id: str
    role: str
    email: str
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    jti: str = ""

    def remaining_seconds(self, now: Optional[datetime] = None) -> int:
        """자연 만료까지 남은 시간(초, 올림). 이미 만료되었으면 0."""
        now = now or datetime.now(timezone.utc)
        return max(0, math.ceil((self.expires_at - now).total_seconds()))

    def to_principal(self) -> Principal:
        return Principal(id=self.principal_id, role=self.role, email=self.email)


@dataclass(frozen=True)
class TokenPair:
    """액세스/리프레시 토큰 쌍."""

    access_token: str
    refresh_token: str
    expires_in: int

    def to_response(self) -> TokenPairResponse:
        return TokenPairResponse(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_in=self.expires_in,
        )


@dataclass(frozen=True)
class LoginResult:
    """로그인 결과."""

    tokens: TokenPair
    user: User

    def to_dict(self) -> Dict[str, Any]:
        data = self.tokens.to_response().model_dump(by_alias=True)
        data["user"] = self.user.to_response().model_dump()
        return data
