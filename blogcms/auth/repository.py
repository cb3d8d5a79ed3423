"""인증 저장소.

사용자 계정 데이터와 자격 증명 검증을 담당합니다.
세션 상태(리프레시 토큰, 블랙리스트)는 공유 키-값 저장소에서 관리합니다.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from blogcms.core.exceptions import (
    AccountDisabledError,
    EmailExistsError,
    InvalidCredentialsError,
    InvalidPasswordError,
    NotFoundError,
)

from .models import Principal, User
from .password import hash_password, validate_password_strength, verify_password

logger = logging.getLogger(__name__)


def _get_db_path() -> Path:
    """데이터베이스 경로 반환."""
    from blogcms.config import get_config

    return Path(get_config().paths.sqlite_path)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthRepository:
    """인증 저장소."""

    def __init__(self, db_path: Optional[Path] = None):
        """초기화.

        Args:
            db_path: 데이터베이스 경로 (없으면 설정에서 로드)
        """
        self.db_path = Path(db_path) if db_path else _get_db_path()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_tables()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self) -> None:
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users_auth (
                    id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    name TEXT,
                    role TEXT DEFAULT 'user',
                    is_active INTEGER DEFAULT 1,
                    created_at TEXT,
                    updated_at TEXT,
                    last_login_at TEXT
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_users_auth_email ON users_auth(email)")
            conn.commit()
            logger.info("인증 테이블 초기화 완료")
        finally:
            conn.close()

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            name=row["name"],
            role=row["role"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_login_at=row["last_login_at"],
        )

    # ============================================
    # 사용자 CRUD
    # ============================================

    def create_user(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        role: str = "user",
    ) -> User:
        """사용자 생성.

        Raises:
            EmailExistsError: 이미 존재하는 이메일
            WeakPasswordError: 비밀번호 강도 미달
        """
        email = _normalize_email(email)
        validate_password_strength(password)

        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT id FROM users_auth WHERE email = ?", (email,))
            if cursor.fetchone():
                raise EmailExistsError()

            user_id = f"user_{uuid.uuid4().hex[:12]}"
            now = datetime.now(timezone.utc).isoformat()
            password_hash = hash_password(password)

            cursor.execute(
                """
                INSERT INTO users_auth (id, email, password_hash, name, role, is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 1, ?, ?)
                """,
                (user_id, email, password_hash, name, role, now, now),
            )
            conn.commit()

            logger.info(f"사용자 생성: {user_id} ({email}, role={role})")

            return User(
                id=user_id,
                email=email,
                password_hash=password_hash,
                name=name,
                role=role,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
        finally:
            conn.close()

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """ID로 사용자 조회."""
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM users_auth WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None
        finally:
            conn.close()

    def get_user_by_email(self, email: str) -> Optional[User]:
        """이메일로 사용자 조회."""
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM users_auth WHERE email = ?", (_normalize_email(email),)
            ).fetchone()
            return self._row_to_user(row) if row else None
        finally:
            conn.close()

    def set_active(self, user_id: str, is_active: bool) -> bool:
        """계정 활성/비활성 전환."""
        conn = self._get_conn()
        try:
            now = datetime.now(timezone.utc).isoformat()
            cursor = conn.execute(
                "UPDATE users_auth SET is_active = ?, updated_at = ? WHERE id = ?",
                (1 if is_active else 0, now, user_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def record_login(self, user_id: str) -> None:
        """마지막 로그인 시각 갱신."""
        conn = self._get_conn()
        try:
            now = datetime.now(timezone.utc).isoformat()
            conn.execute("UPDATE users_auth SET last_login_at = ? WHERE id = ?", (now, user_id))
            conn.commit()
        finally:
            conn.close()

    # ============================================
    # 자격 증명
    # ============================================

    def verify_credentials(self, email: str, password: str) -> User:
        """이메일/비밀번호 검증.

        존재하지 않는 계정과 잘못된 비밀번호는 같은 오류로 응답합니다.

        Raises:
            InvalidCredentialsError: 자격 증명 불일치
            AccountDisabledError: 비활성화된 계정
        """
        user = self.get_user_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        if not user.is_active:
            raise AccountDisabledError()
        return user

    def get_principal(self, user_id: str) -> Optional[Principal]:
        user = self.get_user_by_id(user_id)
        return user.to_principal() if user else None

    def ping(self) -> bool:
        """DB 연결 확인 (헬스체크용)."""
        conn = self._get_conn()
        try:
            conn.execute("SELECT 1").fetchone()
            return True
        finally:
            conn.close()

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        """비밀번호 변경.

        Raises:
            NotFoundError: 사용자 없음
            InvalidPasswordError: 기존 비밀번호 불일치
            WeakPasswordError: 새 비밀번호 강도 미달
        """
        user = self.get_user_by_id(user_id)
        if not user:
            raise NotFoundError("사용자를 찾을 수 없습니다")
        if not verify_password(old_password, user.password_hash):
            raise InvalidPasswordError()
        validate_password_strength(new_password)

        conn = self._get_conn()
        try:
            now = datetime.now(timezone.utc).isoformat()
            conn.execute(
                "UPDATE users_auth SET password_hash = ?, updated_at = ? WHERE id = ?",
                (hash_password(new_password), now, user_id),
            )
            conn.commit()
            logger.info(f"비밀번호 변경: {user_id}")
        finally:
            conn.close()
