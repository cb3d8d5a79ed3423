"""토큰 블랙리스트 모듈.

로그아웃/비밀번호 변경으로 조기 폐기된 액세스 토큰을 관리합니다.
항목 TTL은 토큰의 남은 수명과 같아 자연 만료 후 자동으로 사라집니다.
"""

from __future__ import annotations

import hashlib
import logging

from blogcms.core.exceptions import ServiceUnavailableError, StoreUnavailableError
from blogcms.monitoring.metrics import track_store_failure
from blogcms.store.interfaces import BLACKLIST_PREFIX, KeyValueStore

logger = logging.getLogger(__name__)


class TokenBlacklist:
    """공유 저장소 기반 토큰 블랙리스트.

    토큰 원문 대신 SHA-256 해시를 키로 사용합니다.
    """

    def __init__(self, store: KeyValueStore, fail_open: bool = True):
        """토큰 블랙리스트 초기화.

        Args:
            store: 키-값 저장소
            fail_open: 조회 중 저장소 장애 시 폐기되지 않은 것으로 간주할지 여부
        """
        self.store = store
        self.fail_open = fail_open

    @staticmethod
    def key(token: str) -> str:
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
        return f"{BLACKLIST_PREFIX}{digest}"

    async def add(self, token: str, ttl: int) -> bool:
        """토큰을 블랙리스트에 추가.

        Args:
            token: 폐기할 액세스 토큰
            ttl: 토큰의 남은 수명 (초)

        Returns:
            추가 여부 (이미 만료된 토큰은 추가하지 않음)
        """
        if ttl <= 0:
            return False
        await self.store.set(self.key(token), "1", ttl=ttl)
        return True

    async def contains(self, token: str) -> bool:
        """토큰이 블랙리스트에 있는지 확인.

        Raises:
            ServiceUnavailableError: 저장소 장애이면서 fail_open이 꺼져 있을 때
        """
        try:
            return await self.store.exists(self.key(token))
        except StoreUnavailableError as e:
            track_store_failure("blacklist_contains")
            if self.fail_open:
                logger.warning(f"블랙리스트 조회 실패, 통과 처리(fail-open): {e}")
                return False
            logger.error(f"블랙리스트 조회 실패, 요청 거부(fail-closed): {e}")
            raise ServiceUnavailableError() from e
