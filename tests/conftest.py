import pytest

from prompt_enhancer.config import Environment, Settings
from prompt_enhancer.http_server import create_app

API_KEY = "test-api-key-0123456789"
JWT_SECRET = "test-jwt-secret-for-signing-tokens"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    values = {
        "environment": Environment.TEST,
        "api_key": API_KEY,
        "jwt_secret": JWT_SECRET,
        # TestClient fires requests back to back; keep the DDoS checks out of the way
        # unless a test is about them.
        "burst_threshold": 10_000,
        "ip_points": 10_000,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app_factory():
    def factory(**overrides):
        return create_app(settings=make_settings(**overrides))

    return factory


@pytest.fixture
def api_headers():
    return {"X-API-Key": API_KEY}
