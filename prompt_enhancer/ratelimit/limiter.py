"""Multi-tier admission control."""

import logging
from typing import Dict, Mapping, Optional

from ..config import LimiterBackendKind, TierConfig
from ..utils.exceptions import RateLimiterBackendError
from .backends import MemoryBackend, RateLimitBackend
from .models import RateLimitDecision

logger = logging.getLogger(__name__)


class TokenBucketLimiter:
    """Fixed-window quotas per (tier, identity).

    Over-quota is reported through ``RateLimitDecision.allowed``. When the
    shared back end faults, the decision is served from local memory so
    requests keep flowing with per-process limits.
    """

    def __init__(self, tiers: Mapping[str, TierConfig], backend: Optional[RateLimitBackend] = None):
        self.tiers: Dict[str, TierConfig] = dict(tiers)
        self.set_backend(backend if backend is not None else MemoryBackend())

    def set_backend(self, backend: RateLimitBackend) -> None:
        """Swap the counter store; used once the startup connection check has finished."""
        self.backend = backend
        if isinstance(backend, MemoryBackend):
            self._fallback = backend
        else:
            self._fallback = MemoryBackend()

    @property
    def backend_kind(self) -> LimiterBackendKind:
        return self.backend.kind

    def tier(self, name: str) -> TierConfig:
        try:
            return self.tiers[name]
        except KeyError:
            raise ValueError(f"Unknown rate limit tier: {name}") from None

    async def consume(self, tier_name: str, identity: str, cost: int = 1) -> RateLimitDecision:
        tier = self.tier(tier_name)
        try:
            return await self.backend.consume(tier, identity, cost)
        except RateLimiterBackendError as e:
            logger.error("Rate limiter backend failed, using local counters: %s", e)
            return await self._fallback.consume(tier, identity, cost)

    async def peek(self, tier_name: str, identity: str) -> RateLimitDecision:
        """Current standing without spending a point."""
        tier = self.tier(tier_name)
        try:
            return await self.backend.peek(tier, identity)
        except RateLimiterBackendError as e:
            logger.error("Rate limiter backend failed, using local counters: %s", e)
            return await self._fallback.peek(tier, identity)

    async def sweep(self) -> int:
        evicted = await self.backend.sweep()
        if self._fallback is not self.backend:
            evicted += await self._fallback.sweep()
        return evicted

    async def close(self) -> None:
        await self.backend.close()
