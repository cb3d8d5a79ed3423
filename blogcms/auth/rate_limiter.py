"""Rate Limiter 모듈.

공유 저장소의 타임스탬프 리스트를 이용한 슬라이딩 윈도우 요청 제한.
티어(login, register, api 등)마다 독립된 정책을 가집니다.

정리(prune)와 추가/자르기는 하나의 원자적 트랜잭션이 아닙니다.
경계 시점에 같은 키로 동시에 들어온 요청이 함께 통과할 수 있으며,
초과 허용량은 동시 요청 수로 제한됩니다.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from blogcms.config import RateLimitPolicy
from blogcms.core.exceptions import RateLimitError, ServiceUnavailableError, StoreUnavailableError
from blogcms.monitoring.metrics import track_rate_limit, track_store_failure
from blogcms.store.interfaces import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """요청 제한 판정 결과."""

    allowed: bool
    tier: str
    limit: int
    remaining: int
    retry_after: int = 0  # 초
    reset_at: int = 0  # Unix timestamp (초)

    def headers(self) -> Dict[str, str]:
        """X-RateLimit-* 응답 헤더."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining)),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers

    def raise_for_limit(self, message: Optional[str] = None) -> None:
        """거부된 판정이면 RateLimitError 발생."""
        if not self.allowed:
            raise RateLimitError(message, retry_after=self.retry_after)


class RateLimiter:
    """슬라이딩 윈도우 Rate Limiter.

    키 형식: ``{policy.key_prefix}:{key}`` (예: rate_limit:login:a@x.com)
    """

    def __init__(
        self,
        store: KeyValueStore,
        policies: Dict[str, RateLimitPolicy],
        fail_open: bool = True,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        """Rate Limiter 초기화.

        Args:
            store: 키-값 저장소
            policies: 티어 이름 -> 정책
            fail_open: 저장소 장애 시 요청을 허용할지 여부
            enabled: False면 모든 요청 허용
            clock: 현재 시각(초) 반환 함수
        """
        self.store = store
        self.policies = policies
        self.fail_open = fail_open
        self.enabled = enabled
        self._clock = clock

    def policy(self, tier: str) -> RateLimitPolicy:
        try:
            return self.policies[tier]
        except KeyError:
            raise ValueError(f"알 수 없는 요청 제한 티어: {tier}") from None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @staticmethod
    def _key(policy: RateLimitPolicy, key: str) -> str:
        return f"{policy.key_prefix}:{key}"

    async def _window(self, policy: RateLimitPolicy, key: str, now_ms: int) -> List[int]:
        """윈도우 안의 타임스탬프 목록 (오래된 항목은 무시)."""
        raw = await self.store.list_range(self._key(policy, key), 0, -1)
        window_start = now_ms - policy.window_ms
        timestamps = []
        for item in raw:
            try:
                ts = int(item)
            except (TypeError, ValueError):
                continue
            if ts > window_start:
                timestamps.append(ts)
        return timestamps

    def _decide(self, policy: RateLimitPolicy, timestamps: List[int], now_ms: int) -> RateLimitDecision:
        reset_at = math.ceil((now_ms + policy.window_ms) / 1000)
        if len(timestamps) >= policy.max_requests:
            # 리스트는 최신순이므로 가장 오래된 항목은 최솟값
            oldest = min(timestamps)
            retry_after = max(1, math.ceil((oldest + policy.window_ms - now_ms) / 1000))
            return RateLimitDecision(
                allowed=False,
                tier=policy.name,
                limit=policy.max_requests,
                remaining=0,
                retry_after=retry_after,
                reset_at=math.ceil((oldest + policy.window_ms) / 1000),
            )
        return RateLimitDecision(
            allowed=True,
            tier=policy.name,
            limit=policy.max_requests,
            remaining=policy.max_requests - len(timestamps),
            reset_at=reset_at,
        )

    def _bypass(self, policy: RateLimitPolicy, now_ms: int) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=True,
            tier=policy.name,
            limit=policy.max_requests,
            remaining=policy.max_requests,
            reset_at=math.ceil((now_ms + policy.window_ms) / 1000),
        )

    def _on_store_failure(self, operation: str, error: StoreUnavailableError) -> None:
        track_store_failure(operation)
        if not self.fail_open:
            logger.error(f"요청 제한 저장소 장애, 요청 거부(fail-closed): {error}")
            raise ServiceUnavailableError() from error
        logger.warning(f"요청 제한 저장소 장애, 요청 허용(fail-open): {error}")

    async def check(self, key: str, tier: str) -> RateLimitDecision:
        """요청 허용 여부 확인 (기록하지 않음).

        Args:
            key: 클라이언트 식별자 (IP, 이메일, 주체 ID)
            tier: 정책 티어

        Returns:
            판정 결과
        """
        policy = self.policy(tier)
        now_ms = self._now_ms()
        if not self.enabled:
            return self._bypass(policy, now_ms)

        try:
            timestamps = await self._window(policy, key, now_ms)
        except StoreUnavailableError as e:
            self._on_store_failure("rate_limit_check", e)
            track_rate_limit(tier, "fail_open")
            return self._bypass(policy, now_ms)

        decision = self._decide(policy, timestamps, now_ms)
        if not decision.allowed:
            track_rate_limit(tier, "rejected")
            logger.info(f"요청 제한 초과: tier={tier} key={key} retry_after={decision.retry_after}s")
        return decision

    async def record(self, key: str, tier: str) -> None:
        """현재 요청을 윈도우에 기록.

        추가 후 윈도우 길이만큼 TTL을 갱신하고, 리스트를 최대 요청 수로 자릅니다.
        """
        if not self.enabled:
            return
        policy = self.policy(tier)
        store_key = self._key(policy, key)
        try:
            await self.store.list_push(store_key, str(self._now_ms()))
            await self.store.expire(store_key, policy.window_seconds)
            await self.store.list_trim(store_key, 0, policy.max_requests - 1)
        except StoreUnavailableError as e:
            self._on_store_failure("rate_limit_record", e)

    async def hit(self, key: str, tier: str) -> RateLimitDecision:
        """확인 후 허용되면 기록.

        Returns:
            판정 결과 (허용 시 remaining은 이번 요청을 반영한 값)
        """
        decision = await self.check(key, tier)
        if not decision.allowed:
            return decision
        await self.record(key, tier)
        if not self.enabled:
            return decision
        track_rate_limit(tier, "allowed")
        return RateLimitDecision(
            allowed=True,
            tier=decision.tier,
            limit=decision.limit,
            remaining=max(0, decision.remaining - 1),
            reset_at=decision.reset_at,
        )

    async def hit_all(self, checks: Sequence[Tuple[str, str]]) -> RateLimitDecision:
        """여러 (key, tier)를 모두 확인한 뒤, 전부 허용될 때만 함께 기록.

        Args:
            checks: (key, tier) 목록

        Returns:
            첫 번째 거부 판정, 또는 남은 횟수가 가장 적은 허용 판정
        """
        if not checks:
            raise ValueError("검사할 티어가 없습니다")

        decisions = []
        for key, tier in checks:
            decision = await self.check(key, tier)
            if not decision.allowed:
                return decision
            decisions.append(decision)

        for key, tier in checks:
            await self.record(key, tier)
            if self.enabled:
                track_rate_limit(tier, "allowed")

        tightest = min(decisions, key=lambda d: d.remaining)
        return RateLimitDecision(
            allowed=True,
            tier=tightest.tier,
            limit=tightest.limit,
            remaining=max(0, tightest.remaining - 1),
            reset_at=tightest.reset_at,
        )


# 전역 Rate Limiter 인스턴스
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """전역 Rate Limiter 인스턴스 반환 (설정 기반)."""
    global _rate_limiter
    if _rate_limiter is None:
        from blogcms.config import get_config
        from blogcms.store import get_store

        config = get_config()
        _rate_limiter = RateLimiter(
            store=get_store(),
            policies=config.rate_limit.policies,
            fail_open=config.store.fail_open,
            enabled=config.rate_limit.enabled,
        )
    return _rate_limiter


def init_rate_limiter(limiter: RateLimiter) -> RateLimiter:
    """전역 Rate Limiter 교체."""
    global _rate_limiter
    _rate_limiter = limiter
    return _rate_limiter


def reset_rate_limiter() -> None:
    global _rate_limiter
    _rate_limiter = None
