"""Service container and FastAPI dependencies."""

from dataclasses import dataclass

from fastapi import Request

from ..auth import AuditLogger, AuthenticationGate, AuthIdentity, CredentialStore, FailedAttemptTracker
from ..auth.gate import MESSAGES
from ..config import Settings
from ..enhancer import PromptEnhancer
from ..ratelimit import BurstDetector, RateGate, TokenBucketLimiter
from ..storage import PromptStore
from ..utils.exceptions import AuthenticationError
from ..utils.network import AllowList


@dataclass
class AppServices:
    """Collaborators built once at startup and shared by every request."""

    settings: Settings
    credentials: CredentialStore
    tracker: FailedAttemptTracker
    audit: AuditLogger
    allow_list: AllowList
    limiter: TokenBucketLimiter
    burst_detector: BurstDetector
    auth_gate: AuthenticationGate
    rate_gate: RateGate
    prompt_store: PromptStore
    enhancer: PromptEnhancer


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_identity(request: Request) -> AuthIdentity:
    """Identity attached by the governance middleware."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise AuthenticationError(MESSAGES["missing_api_key"], code="missing_api_key")
    return identity
