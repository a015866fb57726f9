"""Rate limiting and DDoS protection."""

from .backends import MemoryBackend, RateLimitBackend, RedisBackend, create_backend
from .ddos import BurstDetector, BurstVerdict
from .gate import RateGate
from .limiter import TokenBucketLimiter
from .models import RateLimitDecision, RateLimitRecord

__all__ = [
    "BurstDetector",
    "BurstVerdict",
    "MemoryBackend",
    "RateGate",
    "RateLimitBackend",
    "RateLimitDecision",
    "RateLimitRecord",
    "RedisBackend",
    "TokenBucketLimiter",
    "create_backend",
]
