"""Redis 키-값 저장소.

여러 API 인스턴스가 세션/블랙리스트/요청 제한 상태를 공유할 때 사용합니다.
모든 Redis 오류는 StoreUnavailableError로 변환됩니다.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from blogcms.core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisStore:
    """redis.asyncio 기반 저장소."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0, client: Any = None):
        """Redis 저장소 초기화.

        Args:
            redis_url: Redis 접속 URL
            socket_timeout: 명령/접속 타임아웃 (초)
            client: 주입할 클라이언트 (테스트용)
        """
        self.redis_url = redis_url
        self.client = client or aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    async def _call(self, operation: str, key: str, awaitable: Awaitable) -> Any:
        try:
            return await awaitable
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Redis 작업 실패: {operation} key={key} error={e}")
            raise StoreUnavailableError(operation, key, e) from e

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", key, self.client.get(key))

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._call("set", key, self.client.set(key, value, ex=ttl if ttl else None))

    async def delete(self, key: str) -> int:
        return int(await self._call("delete", key, self.client.delete(key)))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", key, self.client.exists(key)))

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self._call("expire", key, self.client.expire(key, ttl)))

    async def ttl(self, key: str) -> int:
        return int(await self._call("ttl", key, self.client.ttl(key)))

    async def list_push(self, key: str, value: str) -> int:
        return int(await self._call("lpush", key, self.client.lpush(key, value)))

    async def list_range(self, key: str, start: int = 0, stop: int = -1) -> List[str]:
        return list(await self._call("lrange", key, self.client.lrange(key, start, stop)))

    async def list_trim(self, key: str, start: int, stop: int) -> None:
        await self._call("ltrim", key, self.client.ltrim(key, start, stop))

    async def ping(self) -> bool:
        return bool(await self._call("ping", "", self.client.ping()))

    async def close(self) -> None:
        await self.client.aclose()
