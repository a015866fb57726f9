"""Tests for burst detection and the rate gate."""

import pytest

from prompt_enhancer.auth import AuthIdentity, AuthMethod
from prompt_enhancer.config import TierConfig
from prompt_enhancer.ratelimit import BurstDetector, MemoryBackend, RateGate, TokenBucketLimiter
from prompt_enhancer.utils.exceptions import RateLimitError
from prompt_enhancer.utils.network import AllowList

IP = "198.51.100.20"


@pytest.fixture
def detector(clock):
    return BurstDetector(interval_seconds=0.05, threshold=10, block_seconds=300, idle_seconds=600, clock=clock)


def make_gate(clock, detector=None, allowed=(), ip_points=30, credential_points=100, auth_points=20):
    tiers = {
        "general": TierConfig(name="general", points=100),
        "ip": TierConfig(name="ip", points=ip_points, block_seconds=300),
        "credential": TierConfig(name="credential", points=credential_points),
        "auth": TierConfig(name="auth", points=auth_points, block_seconds=300),
    }
    limiter = TokenBucketLimiter(tiers, backend=MemoryBackend(clock=clock))
    if detector is None:
        detector = BurstDetector(threshold=10_000, clock=clock)
    return RateGate(limiter, detector, AllowList(allowed), clock=clock)


def identity(client_id="client-a"):
    return AuthIdentity(
        subject=client_id,
        method=AuthMethod.BEARER_TOKEN,
        client_id=client_id,
        credential_key=f"client:{client_id}",
        authenticated_at=0,
    )


def rapid(detector, clock, count, ip=IP, gap=0.01):
    verdicts = []
    for _ in range(count):
        verdicts.append(detector.observe(ip))
        clock.advance(gap)
    return verdicts


class TestBurstDetector:
    """Test the rapid-fire heuristic."""

    def test_twelfth_rapid_request_is_blocked(self, detector, clock):
        verdicts = rapid(detector, clock, 12)

        assert not any(v.blocked for v in verdicts[:11])
        assert verdicts[11].blocked
        assert verdicts[11].retry_after == 300
        assert detector.is_blocked(IP)

    def test_slow_arrival_resets_streak(self, detector, clock):
        rapid(detector, clock, 10)
        clock.advance(0.1)
        verdicts = rapid(detector, clock, 11)

        assert not any(v.blocked for v in verdicts)

    def test_block_persists_for_slow_requests(self, detector, clock):
        rapid(detector, clock, 12)

        clock.advance(60)
        verdict = detector.observe(IP)
        assert verdict.blocked
        assert 239 <= verdict.retry_after <= 240

    def test_block_expires(self, detector, clock):
        rapid(detector, clock, 12)

        clock.advance(301)
        assert not detector.is_blocked(IP)
        assert not detector.observe(IP).blocked

    def test_other_ips_unaffected(self, detector, clock):
        rapid(detector, clock, 12)
        assert not detector.observe("198.51.100.21").blocked

    def test_sweep_evicts_idle_ips_only(self, detector, clock):
        detector.observe("198.51.100.21")
        rapid(detector, clock, 12)
        clock.advance(601)

        assert detector.sweep() == 2
        assert len(detector) == 0

    def test_sweep_keeps_active_blocks(self, clock):
        detector = BurstDetector(threshold=10, block_seconds=3600, idle_seconds=600, clock=clock)
        rapid(detector, clock, 12)
        clock.advance(601)

        assert detector.sweep() == 0
        assert detector.is_blocked(IP)


class TestRateGate:
    """Test the ordering of DDoS and quota checks."""

    @pytest.mark.asyncio
    async def test_allowed_request_reports_quota_tier(self, clock):
        gate = make_gate(clock)
        decision = await gate.check(IP, identity(), "/v1/prompts")

        assert decision.allowed
        assert decision.tier == "credential"
        assert decision.limit == 100
        assert decision.remaining == 99

    @pytest.mark.asyncio
    async def test_anonymous_requests_use_general_tier(self, clock):
        gate = make_gate(clock)
        decision = await gate.check(IP, None, "/")
        assert decision.tier == "general"

    @pytest.mark.asyncio
    async def test_auth_paths_use_auth_tier(self, clock):
        gate = make_gate(clock, auth_points=2)

        await gate.check(IP, None, "/v1/auth/token")
        await gate.check(IP, None, "/v1/auth/token")
        with pytest.raises(RateLimitError) as exc_info:
            await gate.check(IP, None, "/v1/auth/token")

        assert exc_info.value.code == "rate_limit_exceeded"
        assert exc_info.value.details["tier"] == "auth"

    @pytest.mark.asyncio
    async def test_quota_exhaustion(self, clock):
        gate = make_gate(clock, credential_points=3)
        for _ in range(3):
            await gate.check(IP, identity(), "/v1/prompts")

        with pytest.raises(RateLimitError) as exc_info:
            await gate.check(IP, identity(), "/v1/prompts")

        error = exc_info.value
        assert error.status_code == 429
        assert error.code == "rate_limit_exceeded"
        assert error.message == "Too many requests, please try again later"
        assert error.headers["X-RateLimit-Remaining"] == "0"
        assert int(error.headers["Retry-After"]) >= 1

        # Another credential from the same IP has its own quota.
        assert (await gate.check(IP, identity("client-b"), "/v1/prompts")).allowed

    @pytest.mark.asyncio
    async def test_ip_tier_rejects_before_quota(self, clock):
        gate = make_gate(clock, ip_points=2)
        for _ in range(2):
            await gate.check(IP, identity(), "/v1/prompts")

        with pytest.raises(RateLimitError) as exc_info:
            await gate.check(IP, identity(), "/v1/prompts")

        assert exc_info.value.code == "too_many_requests"
        assert exc_info.value.message == "Too many requests from this IP, please try again later"
        standing = await gate.limiter.peek("credential", "client:client-a")
        assert standing.remaining == 98

    @pytest.mark.asyncio
    async def test_burst_rejection_does_not_charge_quota(self, clock, detector):
        gate = make_gate(clock, detector=detector)
        results = []
        for _ in range(12):
            try:
                await gate.check(IP, identity(), "/v1/prompts")
                results.append("ok")
            except RateLimitError as e:
                results.append(e.code)
            clock.advance(0.01)

        assert results == ["ok"] * 11 + ["too_many_requests"]
        standing = await gate.limiter.peek("credential", "client:client-a")
        assert standing.remaining == 89

    @pytest.mark.asyncio
    async def test_burst_rejection_headers(self, clock, detector):
        gate = make_gate(clock, detector=detector)
        assert gate.burst_detector is detector
        rapid(detector, clock, 12)

        with pytest.raises(RateLimitError) as exc_info:
            await gate.check(IP, identity(), "/v1/prompts")

        assert exc_info.value.details["tier"] == "burst"
        assert exc_info.value.headers["Retry-After"] == "300"

    @pytest.mark.asyncio
    async def test_allow_listed_ip_skips_checks(self, clock, detector):
        gate = make_gate(clock, detector=detector, allowed=["10.0.0.0/8"], credential_points=1)

        for _ in range(20):
            decision = await gate.check("10.4.4.4", identity(), "/v1/prompts")
            assert decision.allowed
            assert decision.remaining == 1

        assert len(detector) == 0
        standing = await gate.limiter.peek("credential", "client:client-a")
        assert standing.remaining == 1
