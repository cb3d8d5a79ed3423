"""인메모리 키-값 저장소.

Redis 없이 단일 프로세스에서 동작하는 저장소 구현입니다.
TTL은 조회 시점에 지연 평가되며, 주기적으로 만료 키를 정리합니다.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, List, Optional, Tuple, Union

Value = Union[str, List[str]]


class MemoryStore:
    """스레드 안전한 인메모리 저장소.

    테스트용 가짜 저장소 및 단일 인스턴스 배포용으로 사용합니다.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        cleanup_interval: int = 300,
    ):
        """인메모리 저장소 초기화.

        Args:
            clock: 현재 시각(초) 반환 함수
            cleanup_interval: 만료 키 정리 간격 (초)
        """
        self._clock = clock
        self._data: Dict[str, Tuple[Value, Optional[float]]] = {}  # {key: (value, expires_at)}
        self._lock = threading.Lock()
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()

    def _alive(self, key: str) -> Optional[Value]:
        """만료되지 않은 값 반환 (만료 시 제거). 잠금 보유 상태에서 호출."""
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    def _cleanup_expired(self) -> None:
        now = self._clock()
        if now - self._last_cleanup < self._cleanup_interval:
            return
        expired = [
            key for key, (_, expires_at) in self._data.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._data[key]
        self._last_cleanup = now

    def _expires_at(self, key: str) -> Optional[float]:
        entry = self._data.get(key)
        return entry[1] if entry else None

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._alive(key)
            if isinstance(value, list):
                return None
            return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl if ttl else None
            self._data[key] = (value, expires_at)
            self._cleanup_expired()

    async def delete(self, key: str) -> int:
        with self._lock:
            if self._alive(key) is None:
                return 0
            del self._data[key]
            return 1

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._alive(key) is not None

    async def expire(self, key: str, ttl: int) -> bool:
        with self._lock:
            value = self._alive(key)
            if value is None:
                return False
            self._data[key] = (value, self._clock() + ttl)
            return True

    async def ttl(self, key: str) -> int:
        """남은 TTL(초). 키 없음 -2, 만료 없음 -1 (Redis 규약)."""
        with self._lock:
            if self._alive(key) is None:
                return -2
            expires_at = self._expires_at(key)
            if expires_at is None:
                return -1
            return max(0, int(expires_at - self._clock()))

    async def list_push(self, key: str, value: str) -> int:
        with self._lock:
            current = self._alive(key)
            items = list(current) if isinstance(current, list) else []
            items.insert(0, value)
            self._data[key] = (items, self._expires_at(key) if current is not None else None)
            self._cleanup_expired()
            return len(items)

    async def list_range(self, key: str, start: int = 0, stop: int = -1) -> List[str]:
        with self._lock:
            current = self._alive(key)
            if not isinstance(current, list):
                return []
            end = None if stop == -1 else stop + 1
            return list(current[start:end])

    async def list_trim(self, key: str, start: int, stop: int) -> None:
        with self._lock:
            current = self._alive(key)
            if not isinstance(current, list):
                return
            end = None if stop == -1 else stop + 1
            self._data[key] = (current[start:end], self._expires_at(key))

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def clear(self) -> None:
        """저장소 초기화."""
        with self._lock:
            self._data.clear()

    def count(self) -> int:
        """만료되지 않은 키 수 반환."""
        with self._lock:
            return sum(1 for key in list(self._data) if self._alive(key) is not None)
