"""Rate limiting result and state types."""

import math
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class RateLimitDecision:
    """Outcome of one consume or peek against a tier."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds
    retry_after: Optional[int] = None
    tier: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        """Standard rate-limit response headers for this decision."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining)),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }
        if not self.allowed:
            headers["Retry-After"] = str(max(1, self.retry_after or 1))
        return headers


@dataclass
class RateLimitRecord:
    """Fixed-window counter for one (tier, identity) pair."""

    points_consumed: int
    window_start: float
    reset_at: float
    blocked_until: Optional[float] = None

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and now < self.blocked_until

    def expired(self, now: float) -> bool:
        return now >= self.reset_at and not self.is_blocked(now)
