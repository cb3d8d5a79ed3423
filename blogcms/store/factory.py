"""저장소 팩토리.

설정에 따라 인메모리 또는 Redis 저장소를 반환합니다.
"""

from __future__ import annotations

import logging
from typing import Optional

from blogcms.config import get_config

from .interfaces import KeyValueStore
from .memory import MemoryStore

logger = logging.getLogger(__name__)

# 전역 저장소 인스턴스
_store: Optional[KeyValueStore] = None


def create_store(backend: Optional[str] = None) -> KeyValueStore:
    """설정된 백엔드의 저장소 생성.

    Args:
        backend: memory 또는 redis (없으면 설정값)

    Returns:
        KeyValueStore 구현체
    """
    store_cfg = get_config().store
    backend = backend or store_cfg.backend

    if backend == "redis":
        from .redis_store import RedisStore

        logger.info(f"Redis 저장소 사용: {store_cfg.redis_url}")
        return RedisStore(store_cfg.redis_url, socket_timeout=store_cfg.operation_timeout)

    if backend != "memory":
        raise ValueError(f"지원하지 않는 저장소 백엔드: {backend}")

    logger.info("인메모리 저장소 사용 (단일 프로세스 전용)")
    return MemoryStore()


def get_store() -> KeyValueStore:
    """전역 저장소 인스턴스 반환."""
    global _store
    if _store is None:
        _store = create_store()
    return _store


def init_store(store: KeyValueStore) -> KeyValueStore:
    """전역 저장소 교체 (테스트/부트스트랩용)."""
    global _store
    _store = store
    return _store


def reset_store() -> None:
    """전역 저장소 리셋."""
    global _store
    _store = None
