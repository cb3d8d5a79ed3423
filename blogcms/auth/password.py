"""비밀번호 해싱 유틸리티.

bcrypt 알고리즘을 사용한 안전한 비밀번호 해싱과 강도 검사를 제공합니다.
"""

from __future__ import annotations

import re
import secrets

from passlib.context import CryptContext

from blogcms.core.exceptions import WeakPasswordError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8

_HAS_LETTER = re.compile(r"[A-Za-z]")
_HAS_DIGIT = re.compile(r"[0-9]")


def hash_password(password: str) -> str:
    """비밀번호 해싱.

    Args:
        password: 평문 비밀번호

    Returns:
        bcrypt 해시 (60자)
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """비밀번호 검증.

    해시 형식이 잘못된 경우에도 예외 대신 False를 반환합니다.
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def validate_password_strength(password: str) -> None:
    """비밀번호 강도 검사 (8자 이상, 영문자+숫자 포함).

    Raises:
        WeakPasswordError: 조건 미충족
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise WeakPasswordError(f"비밀번호는 최소 {MIN_PASSWORD_LENGTH}자 이상이어야 합니다")
    if not _HAS_LETTER.search(password) or not _HAS_DIGIT.search(password):
        raise WeakPasswordError("비밀번호는 영문자와 숫자를 모두 포함해야 합니다")


def generate_random_password(length: int = 16) -> str:
    """랜덤 비밀번호 생성."""
    return secrets.token_urlsafe(length)
