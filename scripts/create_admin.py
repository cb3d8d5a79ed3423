#!/usr/bin/env python3
"""관리자 계정 생성 스크립트.

사용법:
    python scripts/create_admin.py --email admin@example.com [--name 관리자] [--password PW] [--db-path PATH]

옵션:
    --password PW   지정하지 않으면 랜덤 비밀번호를 생성해 출력
    --db-path PATH  SQLite DB 경로 (기본: configs/paths.yaml 설정)
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from blogcms.auth.password import generate_random_password
from blogcms.auth.repository import AuthRepository
from blogcms.core.exceptions import AppError


def main() -> int:
    parser = argparse.ArgumentParser(description="관리자 계정 생성")
    parser.add_argument("--email", required=True, help="관리자 이메일")
    parser.add_argument("--name", default=None, help="표시 이름")
    parser.add_argument("--password", default=None, help="비밀번호 (없으면 자동 생성)")
    parser.add_argument("--db-path", default=None, help="SQLite DB 경로")
    args = parser.parse_args()

    password = args.password
    generated = password is None
    if generated:
        # token_urlsafe 결과에 숫자가 없을 수 있어 보정
        password = generate_random_password() + "1a"

    repo = AuthRepository(db_path=Path(args.db_path) if args.db_path else None)
    try:
        user = repo.create_user(email=args.email, password=password, name=args.name, role="admin")
    except AppError as e:
        print(f"[ERROR] {e.error_code}: {e.message}")
        return 1

    print(f"[OK] 관리자 생성: {user.id} ({user.email})")
    if generated:
        print(f"[OK] 초기 비밀번호: {password}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
