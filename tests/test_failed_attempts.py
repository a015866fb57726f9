"""Tests for failed-attempt tracking and the authentication gate."""

import pytest

from prompt_enhancer.auth import (
    AuditLogger,
    AuthenticationGate,
    AuthMethod,
    CredentialStore,
    FailedAttemptTracker,
    is_public_path,
)
from prompt_enhancer.utils.exceptions import AuthenticationError, LockoutError
from prompt_enhancer.utils.network import AllowList

from conftest import API_KEY, JWT_SECRET

IP = "203.0.113.7"


@pytest.fixture
def tracker(clock):
    return FailedAttemptTracker(max_attempts=5, window_seconds=300, block_seconds=600, clock=clock)


@pytest.fixture
def credentials():
    return CredentialStore(api_key=API_KEY, jwt_secret=JWT_SECRET)


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def gate(credentials, tracker, audit, clock):
    return AuthenticationGate(credentials, tracker, AllowList(["10.0.0.0/8", "192.0.2.1"]), audit, clock=clock)


class TestFailedAttemptTracker:
    """Test lockout bookkeeping."""

    def test_blocks_after_five_failures(self, tracker):
        for _ in range(4):
            tracker.record_failure(IP)
        assert not tracker.is_blocked(IP)

        record = tracker.record_failure(IP)
        assert record.blocked
        assert tracker.is_blocked(IP)
        assert 599 <= tracker.retry_after(IP) <= 600

    def test_block_expires(self, tracker, clock):
        for _ in range(5):
            tracker.record_failure(IP)

        clock.advance(599)
        assert tracker.is_blocked(IP)
        clock.advance(2)
        assert not tracker.is_blocked(IP)
        assert tracker.retry_after(IP) == 0

    def test_window_resets_instead_of_accumulating(self, tracker, clock):
        for _ in range(4):
            tracker.record_failure(IP)
            clock.advance(10)

        clock.advance(300)
        record = tracker.record_failure(IP)
        assert record.count == 1
        assert not tracker.is_blocked(IP)

    def test_clear_on_success(self, tracker):
        tracker.record_failure(IP)
        tracker.clear_on_success(IP)
        assert tracker.get(IP) is None

    def test_sweep_resets_expired_blocks(self, tracker, clock):
        for _ in range(5):
            tracker.record_failure(IP)
        clock.advance(601)

        assert tracker.sweep() == 0
        record = tracker.get(IP)
        assert record is not None
        assert record.count == 0
        assert not record.blocked

    def test_sweep_evicts_idle_records(self, tracker, clock):
        tracker.record_failure(IP)
        tracker.record_failure("198.51.100.1")
        clock.advance(3601)

        assert tracker.sweep() == 2
        assert len(tracker) == 0

    def test_sweep_keeps_active_blocks(self, tracker, clock):
        for _ in range(5):
            tracker.record_failure(IP)
        clock.advance(300)

        tracker.sweep()
        assert tracker.is_blocked(IP)


class TestAuthenticationGate:
    """Test the authentication state machine."""

    @pytest.mark.asyncio
    async def test_bearer_token_authenticates(self, gate, credentials):
        token = credentials.sign_token({"clientId": "client-a", "scope": "api:access"})
        identity = await gate.authenticate(IP, authorization=f"Bearer {token}")

        assert identity.method == AuthMethod.BEARER_TOKEN
        assert identity.client_id == "client-a"
        assert identity.scope == "api:access"
        assert identity.credential_key == "client:client-a"

    @pytest.mark.asyncio
    async def test_api_key_authenticates(self, gate):
        identity = await gate.authenticate(IP, api_key=API_KEY)

        assert identity.method == AuthMethod.API_KEY
        assert API_KEY not in identity.credential_key
        assert identity.credential_key.startswith("key:")

    @pytest.mark.asyncio
    async def test_missing_credentials(self, gate):
        with pytest.raises(AuthenticationError) as exc_info:
            await gate.authenticate(IP)
        assert exc_info.value.code == "missing_api_key"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unusable_authorization_header(self, gate):
        with pytest.raises(AuthenticationError) as exc_info:
            await gate.authenticate(IP, authorization="Basic dXNlcjpwYXNz")
        assert exc_info.value.code == "missing_token"

    @pytest.mark.asyncio
    async def test_invalid_token(self, gate):
        with pytest.raises(AuthenticationError) as exc_info:
            await gate.authenticate(IP, authorization="Bearer garbage")
        assert exc_info.value.code == "invalid_token"
        assert exc_info.value.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_invalid_api_key_does_not_echo_secret(self, gate):
        with pytest.raises(AuthenticationError) as exc_info:
            await gate.authenticate(IP, api_key="wrong-key")
        error = exc_info.value
        assert error.code == "invalid_api_key"
        assert "wrong-key" not in str(error.to_dict())
        assert API_KEY not in str(error.to_dict())

    @pytest.mark.asyncio
    async def test_lockout_threshold(self, gate, tracker, clock):
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                await gate.authenticate(IP, api_key="wrong-key")
        assert tracker.get(IP).blocked

        # Even the correct key is refused while blocked.
        with pytest.raises(LockoutError) as exc_info:
            await gate.authenticate(IP, api_key=API_KEY)
        assert exc_info.value.status_code == 429
        assert exc_info.value.code == "too_many_failed_attempts"
        assert int(exc_info.value.headers["Retry-After"]) > 0

        clock.advance(601)
        identity = await gate.authenticate(IP, api_key=API_KEY)
        assert identity.method == AuthMethod.API_KEY
        assert tracker.get(IP) is None

    @pytest.mark.asyncio
    async def test_lockout_applies_to_tokens(self, gate, credentials):
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                await gate.authenticate(IP, authorization="Bearer garbage")

        token = credentials.sign_token({"clientId": "c"})
        with pytest.raises(LockoutError):
            await gate.authenticate(IP, authorization=f"Bearer {token}")

    @pytest.mark.asyncio
    async def test_allow_listed_failures_not_recorded(self, gate, tracker):
        for ip in ("10.1.2.3", "192.0.2.1"):
            for _ in range(6):
                with pytest.raises(AuthenticationError):
                    await gate.authenticate(ip, api_key="wrong-key")
            assert tracker.get(ip) is None
            assert (await gate.authenticate(ip, api_key=API_KEY)).method == AuthMethod.API_KEY

    @pytest.mark.asyncio
    async def test_success_clears_failures(self, gate, tracker):
        for _ in range(3):
            with pytest.raises(AuthenticationError):
                await gate.authenticate(IP, api_key="wrong-key")
        await gate.authenticate(IP, api_key=API_KEY)
        assert tracker.get(IP) is None

    @pytest.mark.asyncio
    async def test_audit_events(self, gate, audit):
        await gate.authenticate(IP, api_key=API_KEY, path="/v1/prompts")
        with pytest.raises(AuthenticationError):
            await gate.authenticate(IP, api_key="wrong-key", path="/v1/prompts")

        events = audit.recent()
        assert [e.action for e in events] == ["auth_failure", "auth_success"]
        assert events[0].error_code == "invalid_api_key"
        assert events[0].ip_address == IP


class TestAuditLogger:
    """Test audit sanitization."""

    @pytest.mark.asyncio
    async def test_sensitive_metadata_redacted(self):
        audit = AuditLogger()
        event = await audit.log_authentication(
            "auth_failure", metadata={"api_key": "secret", "nested": {"Authorization": "Bearer x"}, "ok": 1}
        )
        assert event.metadata["api_key"] == "[REDACTED]"
        assert event.metadata["nested"]["Authorization"] == "[REDACTED]"
        assert event.metadata["ok"] == 1

    @pytest.mark.asyncio
    async def test_buffer_is_bounded(self):
        audit = AuditLogger(buffer_size=3)
        for _ in range(5):
            await audit.log_authentication("auth_success")
        assert len(audit.recent()) == 3


def test_public_paths():
    assert is_public_path("/health")
    assert is_public_path("/docs/oauth2-redirect")
    assert is_public_path("/v1/auth/token")
    assert not is_public_path("/v1/prompts")
    assert not is_public_path("/v1/auth/revoke")
