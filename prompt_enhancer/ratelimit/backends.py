"""Counter stores for the token-bucket limiter."""

import asyncio
import logging
import math
import time
from typing import Callable, Dict, List, Tuple, Union

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..config import LimiterBackendKind, Settings, TierConfig
from ..utils.exceptions import RateLimiterBackendError
from .models import RateLimitDecision, RateLimitRecord

logger = logging.getLogger(__name__)

# KEYS: counter, block marker. ARGV: cost, points, window ms, block ms.
# Returns {consumed, ttl_ms, blocked}.
CONSUME_SCRIPT = """
local blocked_ttl = redis.call('PTTL', KEYS[2])
if blocked_ttl > 0 then
    return {tonumber(ARGV[2]) + 1, blocked_ttl, 1}
end

local consumed = redis.call('INCRBY', KEYS[1], tonumber(ARGV[1]))
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
    redis.call('PEXPIRE', KEYS[1], tonumber(ARGV[3]))
    ttl = tonumber(ARGV[3])
end

local block_ms = tonumber(ARGV[4])
if consumed > tonumber(ARGV[2]) and block_ms > 0 then
    redis.call('SET', KEYS[2], 1, 'PX', block_ms)
    return {consumed, block_ms, 1}
end
return {consumed, ttl, 0}
"""

PEEK_SCRIPT = """
local blocked_ttl = redis.call('PTTL', KEYS[2])
if blocked_ttl > 0 then
    return {tonumber(ARGV[1]) + 1, blocked_ttl, 1}
end
local consumed = tonumber(redis.call('GET', KEYS[1]) or '0')
local ttl = redis.call('PTTL', KEYS[1])
return {consumed, ttl, 0}
"""


def _retry_after(reset_at: float, now: float) -> int:
    return max(1, int(math.ceil(reset_at - now)))


class MemoryBackend:
    """Per-process counters.

    Every read-modify-write happens inside one coroutine step, so concurrent
    requests on the event loop never interleave on the same record.
    """

    kind = LimiterBackendKind.MEMORY

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._records: Dict[Tuple[str, str], RateLimitRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def _record(self, tier: TierConfig, identity: str, now: float) -> RateLimitRecord:
        key = (tier.name, identity)
        record = self._records.get(key)
        if record is None or record.expired(now):
            record = RateLimitRecord(
                points_consumed=0, window_start=now, reset_at=now + tier.window_seconds
            )
            self._records[key] = record
        elif record.blocked_until is not None and not record.is_blocked(now):
            record.blocked_until = None
        return record

    def _decision(
        self, tier: TierConfig, record: RateLimitRecord, now: float, allowed: bool
    ) -> RateLimitDecision:
        reset_at = max(record.reset_at, record.blocked_until or 0)
        return RateLimitDecision(
            allowed=allowed,
            limit=tier.points,
            remaining=0 if record.is_blocked(now) else max(0, tier.points - record.points_consumed),
            reset_at=reset_at,
            retry_after=None if allowed else _retry_after(reset_at, now),
            tier=tier.name,
        )

    async def consume(self, tier: TierConfig, identity: str, cost: int = 1) -> RateLimitDecision:
        now = self._clock()
        record = self._record(tier, identity, now)

        if record.is_blocked(now):
            return self._decision(tier, record, now, allowed=False)

        if record.points_consumed + cost > tier.points:
            if tier.block_seconds:
                record.blocked_until = now + tier.block_seconds
                logger.warning(
                    "Tier %s exhausted for %s; blocking for %ss", tier.name, identity, tier.block_seconds
                )
            return self._decision(tier, record, now, allowed=False)

        record.points_consumed += cost
        return self._decision(tier, record, now, allowed=True)

    async def peek(self, tier: TierConfig, identity: str) -> RateLimitDecision:
        now = self._clock()
        record = self._records.get((tier.name, identity))
        if record is None or record.expired(now):
            return RateLimitDecision(
                allowed=True,
                limit=tier.points,
                remaining=tier.points,
                reset_at=now + tier.window_seconds,
                tier=tier.name,
            )
        allowed = not record.is_blocked(now) and record.points_consumed < tier.points
        return self._decision(tier, record, now, allowed=allowed)

    async def sweep(self) -> int:
        """Drop records whose window and block have both passed."""
        now = self._clock()
        stale = [key for key, record in self._records.items() if record.expired(now)]
        for key in stale:
            del self._records[key]
        return len(stale)

    async def close(self) -> None:
        self._records.clear()


class RedisBackend:
    """Counters shared by every instance through Redis.

    Each consume is a single Lua script, so Redis serializes concurrent
    updates to the same key.
    """

    kind = LimiterBackendKind.REDIS

    def __init__(self, client: aioredis.Redis, prefix: str = "prompt_enhancer"):
        self.client = client
        self.prefix = prefix

    def _keys(self, tier: TierConfig, identity: str) -> List[str]:
        base = f"{self.prefix}:{tier.name}"
        return [f"{base}:{identity}", f"{base}:block:{identity}"]

    def _decision(self, tier: TierConfig, result, peek: bool = False) -> RateLimitDecision:
        consumed, ttl_ms, blocked = (int(value) for value in result)
        now = time.time()
        ttl_seconds = ttl_ms / 1000.0 if ttl_ms > 0 else float(tier.window_seconds)
        reset_at = now + ttl_seconds
        if peek:
            allowed = not blocked and consumed < tier.points
        else:
            allowed = not blocked and consumed <= tier.points
        return RateLimitDecision(
            allowed=allowed,
            limit=tier.points,
            remaining=max(0, tier.points - consumed),
            reset_at=reset_at,
            retry_after=None if allowed else _retry_after(reset_at, now),
            tier=tier.name,
        )

    async def consume(self, tier: TierConfig, identity: str, cost: int = 1) -> RateLimitDecision:
        try:
            result = await self.client.eval(
                CONSUME_SCRIPT,
                2,
                *self._keys(tier, identity),
                cost,
                tier.points,
                tier.window_seconds * 1000,
                tier.block_seconds * 1000,
            )
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise RateLimiterBackendError(f"Redis consume failed for tier {tier.name}: {e}") from e
        return self._decision(tier, result)

    async def peek(self, tier: TierConfig, identity: str) -> RateLimitDecision:
        try:
            result = await self.client.eval(PEEK_SCRIPT, 2, *self._keys(tier, identity), tier.points)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise RateLimiterBackendError(f"Redis peek failed for tier {tier.name}: {e}") from e
        return self._decision(tier, result, peek=True)

    async def sweep(self) -> int:
        # Keys expire on their own.
        return 0

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except (RedisError, OSError) as e:
            logger.warning("Error closing Redis connection: %s", e)


RateLimitBackend = Union[MemoryBackend, RedisBackend]


async def create_backend(settings: Settings) -> RateLimitBackend:
    """Resolve the configured counter store once at startup.

    Without ``REDIS_URL`` counters stay in memory. With it, the server must
    answer PING within ``REDIS_CONNECT_TIMEOUT``; otherwise the process
    falls back to memory and limits per instance.
    """
    if settings.limiter_backend == LimiterBackendKind.MEMORY:
        logger.info("Rate limiting with in-memory counters")
        return MemoryBackend()

    client = aioredis.from_url(
        settings.redis_url,
        socket_connect_timeout=settings.redis_connect_timeout,
        socket_timeout=settings.redis_connect_timeout,
    )
    try:
        await asyncio.wait_for(client.ping(), timeout=settings.redis_connect_timeout)
    except (RedisError, OSError, asyncio.TimeoutError) as e:
        logger.warning("Redis unavailable (%s); falling back to in-memory rate limiting", e)
        try:
            await client.aclose()
        except (RedisError, OSError) as close_error:
            logger.debug("Ignoring error while closing Redis client: %s", close_error)
        return MemoryBackend()

    logger.info("Rate limiting with Redis counters")
    return RedisBackend(client, prefix=settings.rate_limit_key_prefix)
