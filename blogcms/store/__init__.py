"""공유 키-값 저장소 모듈."""

from .interfaces import (
    BLACKLIST_PREFIX,
    EMAIL_CODE_PREFIX,
    RATE_LIMIT_PREFIX,
    REFRESH_TOKEN_PREFIX,
    KeyValueStore,
)
from .memory import MemoryStore
from .factory import create_store, get_store, init_store, reset_store

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "create_store",
    "get_store",
    "init_store",
    "reset_store",
    "BLACKLIST_PREFIX",
    "EMAIL_CODE_PREFIX",
    "RATE_LIMIT_PREFIX",
    "REFRESH_TOKEN_PREFIX",
]
