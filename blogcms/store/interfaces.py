"""키-값 저장소 인터페이스.

세션, 토큰 폐기 목록, 요청 제한 로그가 공유하는 저장소 규약입니다.
"""

from __future__ import annotations

from typing import List, Optional, Protocol


class KeyValueStore(Protocol):
    """공유 키-값 저장소 프로토콜.

    백엔드는 통신 장애 시 ``StoreUnavailableError``를 발생시키며,
    fail-open 여부는 호출 측이 결정합니다.
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> int:
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def expire(self, key: str, ttl: int) -> bool:
        ...

    async def ttl(self, key: str) -> int:
        ...

    async def list_push(self, key: str, value: str) -> int:
        """리스트 앞쪽에 추가. 인덱스 0이 항상 최신 항목."""
        ...

    async def list_range(self, key: str, start: int = 0, stop: int = -1) -> List[str]:
        ...

    async def list_trim(self, key: str, start: int, stop: int) -> None:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


# 키 접두사
REFRESH_TOKEN_PREFIX = "refresh_token:"
BLACKLIST_PREFIX = "blacklist:"
RATE_LIMIT_PREFIX = "rate_limit:"
EMAIL_CODE_PREFIX = "email_code:"
