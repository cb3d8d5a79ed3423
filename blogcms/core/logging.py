"""JSON 구조화 로깅 모듈.

요청 ID/주체 ID 컨텍스트를 포함한 JSON 포맷 로깅을 제공합니다.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

# 요청 컨텍스트
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
principal_id_var: ContextVar[Optional[str]] = ContextVar("principal_id", default=None)

# 로그에 절대 남기지 않을 필드
_REDACTED_FIELDS = {"password", "old_password", "new_password", "access_token", "refresh_token", "code"}


def get_request_id() -> Optional[str]:
    """현재 요청 ID 반환."""
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """요청 ID 설정 (없으면 생성)."""
    if request_id is None:
        request_id = str(uuid.uuid4())[:8]
    request_id_var.set(request_id)
    return request_id


def get_principal_id() -> Optional[str]:
    """현재 인증 주체 ID 반환."""
    return principal_id_var.get()


def set_principal_id(principal_id: Optional[str]) -> None:
    """인증 주체 ID 설정."""
    principal_id_var.set(principal_id)


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    """민감 필드 마스킹."""
    return {k: ("***" if k in _REDACTED_FIELDS else v) for k, v in fields.items()}


class JSONFormatter(logging.Formatter):
    """JSON 포맷 로그 포매터."""

    def format(self, record: logging.LogRecord) -> str:
        """로그 레코드를 JSON 문자열로 포맷."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id

        principal_id = get_principal_id()
        if principal_id:
            log_data["principal_id"] = principal_id

        # 추가 필드
        if hasattr(record, "extra_fields"):
            log_data.update(redact(record.extra_fields))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ContextLogger(logging.LoggerAdapter):
    """컨텍스트 정보를 포함하는 로거 어댑터."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})

        request_id = get_request_id()
        if request_id:
            extra["request_id"] = request_id

        principal_id = get_principal_id()
        if principal_id:
            extra["principal_id"] = principal_id

        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    json_format: bool = True,
) -> logging.Logger:
    """로깅 설정.

    Args:
        level: 로그 레벨
        log_file: 로그 파일 경로 (None이면 콘솔만)
        max_bytes: 로그 파일 최대 크기
        backup_count: 백업 파일 수
        json_format: JSON 포맷 사용 여부

    Returns:
        설정된 루트 로거
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> ContextLogger:
    """컨텍스트 로거 반환."""
    return ContextLogger(logging.getLogger(name), {})


def log_event(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """구조화 필드와 함께 로그 기록.

    password, token 등 민감 필드는 JSONFormatter에서 마스킹됩니다.
    """
    logger.log(level, message, extra={"extra_fields": fields})
