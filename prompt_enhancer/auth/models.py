"""Authentication models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
import uuid

from pydantic import BaseModel, Field


class AuthMethod(str, Enum):
    """How a request proved its identity."""
    BEARER_TOKEN = "bearer_token"
    API_KEY = "api_key"


class AuthIdentity(BaseModel):
    """Identity attached to an authenticated request."""
    subject: str
    method: AuthMethod
    scope: Optional[str] = None
    client_id: Optional[str] = None
    credential_key: str  # limiter identity, never the raw secret
    authenticated_at: float
    claims: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class FailedAttemptRecord:
    """Failed authentication history for one client IP."""
    count: int
    first_attempt: float
    last_attempt: float
    blocked: bool = False
    blocked_until: Optional[float] = None


class AuditEvent(BaseModel):
    """Authentication audit entry."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Who
    ip_address: Optional[str] = None
    subject: Optional[str] = None
    method: Optional[AuthMethod] = None

    # What
    action: str
    path: Optional[str] = None
    error_code: Optional[str] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)
