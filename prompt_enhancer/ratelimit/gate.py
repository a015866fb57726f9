"""Rate and DDoS gate applied to every protected request."""

import logging
import time
from typing import Callable, NoReturn, Optional, Tuple

from ..auth.models import AuthIdentity
from ..utils.exceptions import RateLimitError
from ..utils.network import AllowList
from .ddos import BurstDetector
from .limiter import TokenBucketLimiter
from .models import RateLimitDecision

logger = logging.getLogger(__name__)

AUTH_PATH_PREFIX = "/v1/auth/"

TOO_MANY_REQUESTS = "Too many requests from this IP, please try again later"
QUOTA_EXCEEDED = "Too many requests, please try again later"


class RateGate:
    """Two checks in order: DDoS heuristic (burst detector and IP tier), then quota.

    Abusive traffic is rejected before it is charged against the quota tier.
    Allow-listed IPs skip both checks.
    """

    def __init__(
        self,
        limiter: TokenBucketLimiter,
        burst_detector: BurstDetector,
        allow_list: AllowList,
        clock: Callable[[], float] = time.time,
    ):
        self.limiter = limiter
        self.burst_detector = burst_detector
        self.allow_list = allow_list
        self._clock = clock

    def quota_key(
        self, client_ip: str, identity: Optional[AuthIdentity], path: str
    ) -> Tuple[str, str]:
        """Tier name and limiter identity charged for a request."""
        if path.startswith(AUTH_PATH_PREFIX):
            return "auth", client_ip
        if identity is not None and identity.credential_key:
            return "credential", identity.credential_key
        return "general", client_ip

    def nominal(self, tier_name: str = "general") -> RateLimitDecision:
        """Headers-only decision for callers exempt from limiting."""
        tier = self.limiter.tier(tier_name)
        return RateLimitDecision(
            allowed=True,
            limit=tier.points,
            remaining=tier.points,
            reset_at=self._clock() + tier.window_seconds,
            tier=tier.name,
        )

    async def check(
        self, client_ip: str, identity: Optional[AuthIdentity] = None, path: str = "/"
    ) -> RateLimitDecision:
        tier_name, key = self.quota_key(client_ip, identity, path)
        if client_ip in self.allow_list:
            return self.nominal(tier_name)

        verdict = self.burst_detector.observe(client_ip)
        if verdict.blocked:
            ip_tier = self.limiter.tier("ip")
            decision = RateLimitDecision(
                allowed=False,
                limit=ip_tier.points,
                remaining=0,
                reset_at=self._clock() + verdict.retry_after,
                retry_after=verdict.retry_after,
                tier="burst",
            )
            self._reject("too_many_requests", TOO_MANY_REQUESTS, decision, client_ip)

        ip_decision = await self.limiter.consume("ip", client_ip)
        if not ip_decision.allowed:
            self._reject("too_many_requests", TOO_MANY_REQUESTS, ip_decision, client_ip)

        decision = await self.limiter.consume(tier_name, key)
        if not decision.allowed:
            self._reject("rate_limit_exceeded", QUOTA_EXCEEDED, decision, client_ip)
        return decision

    @staticmethod
    def _reject(code: str, message: str, decision: RateLimitDecision, client_ip: str) -> NoReturn:
        logger.warning("Rate limit (%s, tier %s) hit by %s", code, decision.tier, client_ip)
        raise RateLimitError(
            message,
            code=code,
            details={"retryAfter": decision.retry_after, "tier": decision.tier},
            headers=decision.headers(),
        )
