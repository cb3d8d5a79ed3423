#!/usr/bin/env python3
"""API 서버 실행 스크립트.

APP_HOST/APP_PORT 환경변수가 없으면 configs/app.yaml 설정을 사용합니다.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import uvicorn

sys.path.append(str(Path(__file__).resolve().parents[1]))

from blogcms.config import get_config


def main() -> None:
    cfg = get_config().app
    host = os.environ.get("APP_HOST") or cfg.host
    port = int(os.environ.get("APP_PORT") or cfg.port)
    reload = os.environ.get("APP_RELOAD", "false").lower() in ("1", "true", "yes")

    uvicorn.run("api:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
