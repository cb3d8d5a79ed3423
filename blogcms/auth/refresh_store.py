"""리프레시 토큰 저장소.

주체별 현재 리프레시 토큰 하나만 보관합니다.
새 값을 저장하면 이전 값은 즉시 무효가 됩니다 (토큰 회전).
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from blogcms.store.interfaces import REFRESH_TOKEN_PREFIX, KeyValueStore

logger = logging.getLogger(__name__)


class RefreshTokenStore:
    """주체 ID -> 현재 리프레시 토큰 매핑.

    저장소 오류(StoreUnavailableError)는 그대로 전파합니다.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def key(principal_id: str) -> str:
        return f"{REFRESH_TOKEN_PREFIX}{principal_id}"

    async def set(self, principal_id: str, token: str, ttl: int) -> None:
        """리프레시 토큰 저장 (기존 값 덮어쓰기)."""
        await self.store.set(self.key(principal_id), token, ttl=ttl)

    async def get(self, principal_id: str) -> Optional[str]:
        return await self.store.get(self.key(principal_id))

    async def invalidate(self, principal_id: str) -> bool:
        """저장된 리프레시 토큰 제거.

        Returns:
            제거된 값이 있었는지 여부
        """
        removed = await self.store.delete(self.key(principal_id)) > 0
        if removed:
            logger.info(f"리프레시 토큰 무효화: {principal_id}")
        return removed

    async def matches(self, principal_id: str, token: str) -> bool:
        """제시된 토큰이 현재 저장된 값과 일치하는지 확인. 저장값 없음은 불일치."""
        stored = await self.get(principal_id)
        if stored is None:
            return False
        return secrets.compare_digest(stored.encode("utf-8"), token.encode("utf-8"))
