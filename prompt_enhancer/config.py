"""Application settings resolved once from the environment."""

import logging
import os
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Deployment modes."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


class LimiterBackendKind(str, Enum):
    """Where rate-limit counters live."""

    MEMORY = "memory"
    REDIS = "redis"


class EnhancerProvider(str, Enum):
    """Prompt enhancement strategies."""

    TEMPLATE = "template"
    OPENAI = "openai"
    MISTRAL = "mistral"


class TierConfig(BaseModel):
    """Quota for one rate-limiting tier."""

    name: str
    points: int = Field(..., gt=0)
    window_seconds: int = Field(60, gt=0)
    block_seconds: int = Field(0, ge=0)


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_list(*names: str) -> List[str]:
    for name in names:
        raw = os.getenv(name)
        if raw:
            return [item.strip() for item in raw.split(",") if item.strip()]
    return []


class Settings(BaseModel):
    """Typed configuration for the whole process."""

    environment: Environment = Environment.DEVELOPMENT

    # Credentials
    api_key: Optional[str] = None
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_expiry_seconds: int = 86400
    token_scope: str = "api:access"

    # Network
    allowed_ips: List[str] = Field(default_factory=list)
    trust_proxy_headers: bool = False
    cors_origins: List[str] = Field(default_factory=list)
    max_body_bytes: int = 50 * 1024
    max_prompt_length: Optional[int] = None

    # Rate limiting
    redis_url: Optional[str] = None
    redis_connect_timeout: float = 3.0
    rate_limit_key_prefix: str = "prompt_enhancer"
    general_points: int = 100
    ip_points: int = 30
    ip_block_seconds: int = 300
    credential_points: int = 100
    auth_points: int = 20
    auth_block_seconds: int = 300
    window_seconds: int = 60

    # DDoS heuristic
    burst_interval_ms: int = 50
    burst_threshold: int = 10
    burst_block_seconds: int = 300

    # Failed attempts
    max_failed_attempts: int = 5
    failed_attempt_window_seconds: int = 300
    failed_attempt_block_seconds: int = 600

    # Enhancement
    ai_provider: EnhancerProvider = EnhancerProvider.TEMPLATE
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"
    mistral_api_key: Optional[str] = None
    mistral_model: str = "mistral-medium"
    enhancement_timeout_seconds: float = 45.0

    # Housekeeping
    sweep_interval_seconds: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        env_name = (os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development").lower()
        try:
            environment = Environment(env_name)
        except ValueError as e:
            raise ConfigurationError(f"Unknown APP_ENV {env_name!r}") from e

        provider_name = os.getenv("AI_PROVIDER")
        if not provider_name:
            provider_name = "openai" if os.getenv("OPENAI_API_KEY") else "template"
        try:
            provider = EnhancerProvider(provider_name.lower())
        except ValueError as e:
            raise ConfigurationError(f"Unknown AI_PROVIDER {provider_name!r}") from e

        cors_origins = _env_list("CORS_ALLOWED_ORIGINS")
        if not cors_origins and environment == Environment.DEVELOPMENT:
            cors_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

        max_prompt_length = os.getenv("MAX_PROMPT_LENGTH")

        return cls(
            environment=environment,
            api_key=os.getenv("API_KEY") or None,
            jwt_secret=os.getenv("JWT_SECRET") or None,
            jwt_expiry_seconds=_env_int("JWT_EXPIRY_SECONDS", 86400),
            allowed_ips=_env_list("ALLOWED_IPS", "WHITELISTED_IPS"),
            trust_proxy_headers=_env_bool("TRUST_PROXY_HEADERS"),
            cors_origins=cors_origins,
            max_body_bytes=_env_int("MAX_BODY_BYTES", 50 * 1024),
            max_prompt_length=int(max_prompt_length) if max_prompt_length else None,
            redis_url=os.getenv("REDIS_URL") or None,
            redis_connect_timeout=_env_float("REDIS_CONNECT_TIMEOUT", 3.0),
            rate_limit_key_prefix=os.getenv("RATE_LIMIT_KEY_PREFIX", "prompt_enhancer"),
            general_points=_env_int("MAX_REQUESTS_PER_MINUTE", 100),
            ip_points=_env_int("IP_MAX_REQUESTS_PER_MINUTE", 30),
            credential_points=_env_int("API_KEY_MAX_REQUESTS_PER_MINUTE", 100),
            auth_points=_env_int("AUTH_MAX_REQUESTS_PER_MINUTE", 20),
            burst_interval_ms=_env_int("BURST_INTERVAL_MS", 50),
            burst_threshold=_env_int("BURST_THRESHOLD", 10),
            burst_block_seconds=_env_int("BURST_BLOCK_SECONDS", 300),
            ai_provider=provider,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-3.5-turbo"),
            mistral_api_key=os.getenv("MISTRAL_API_KEY") or None,
            mistral_model=os.getenv("MISTRAL_MODEL", "mistral-medium"),
            enhancement_timeout_seconds=_env_float("ENHANCEMENT_TIMEOUT_SECONDS", 45.0),
            sweep_interval_seconds=_env_float("SWEEP_INTERVAL_SECONDS", 60.0),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
            log_format=os.getenv("LOG_FORMAT", "text"),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def prompt_length_limit(self) -> int:
        if self.max_prompt_length:
            return self.max_prompt_length
        return 5000 if self.is_production else 8000

    @property
    def limiter_backend(self) -> LimiterBackendKind:
        return LimiterBackendKind.REDIS if self.redis_url else LimiterBackendKind.MEMORY

    def tiers(self) -> Dict[str, TierConfig]:
        """Quota configuration keyed by tier name."""
        return {
            "general": TierConfig(
                name="general", points=self.general_points, window_seconds=self.window_seconds
            ),
            "ip": TierConfig(
                name="ip",
                points=self.ip_points,
                window_seconds=self.window_seconds,
                block_seconds=self.ip_block_seconds,
            ),
            "credential": TierConfig(
                name="credential",
                points=self.credential_points,
                window_seconds=self.window_seconds,
            ),
            "auth": TierConfig(
                name="auth",
                points=self.auth_points,
                window_seconds=self.window_seconds,
                block_seconds=self.auth_block_seconds,
            ),
        }

    def validate_for_startup(self) -> List[str]:
        """Check critical settings; raise in production, warn otherwise."""
        errors = []
        if not self.api_key:
            errors.append("API_KEY environment variable must be set")
        if self.ai_provider == EnhancerProvider.OPENAI and not self.openai_api_key:
            errors.append("OPENAI_API_KEY environment variable must be set when using OpenAI")
        if self.ai_provider == EnhancerProvider.MISTRAL and not self.mistral_api_key:
            errors.append("MISTRAL_API_KEY environment variable must be set when using Mistral")

        if errors:
            for error in errors:
                logger.error("Configuration error: %s", error)
            if self.is_production:
                raise ConfigurationError("Invalid configuration: " + "; ".join(errors))
        return errors
