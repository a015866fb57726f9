"""Credential store: API key comparison and signed access tokens."""

import hashlib
import hmac
import logging
import secrets
import time
import uuid
from typing import Any, Dict, Optional

import jwt

from ..config import Settings
from ..utils.exceptions import ConfigurationError, TokenSigningError

logger = logging.getLogger(__name__)


def credential_fingerprint(value: str) -> str:
    """Stable, non-reversible identifier for a credential."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


class CredentialStore:
    """Single source of truth for the API key and the token signing secret.

    One instance is built at startup and shared by the request pipeline;
    the secret only changes on restart.
    """

    def __init__(
        self,
        api_key: Optional[str],
        jwt_secret: str,
        algorithm: str = "HS256",
        default_expiry_seconds: int = 86400,
    ):
        if not jwt_secret:
            raise ConfigurationError("A token signing secret is required")
        self._api_key = api_key
        self._jwt_secret = jwt_secret
        self.algorithm = algorithm
        self.default_expiry_seconds = default_expiry_seconds
        # Digests are compared instead of raw values so both sides have
        # equal length whatever the candidate looks like.
        self._compare_key = secrets.token_bytes(32)
        self._api_key_digest = self._digest(api_key) if api_key else None
        self._revoked: Dict[str, float] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialStore":
        secret = settings.jwt_secret
        if not secret:
            if settings.is_production:
                raise ConfigurationError("JWT_SECRET must be set in production")
            secret = secrets.token_hex(64)
            logger.warning(
                "JWT_SECRET environment variable not set. Using randomly generated secret; "
                "tokens will become invalid when the server restarts."
            )
        if not settings.api_key:
            if settings.is_production:
                raise ConfigurationError("API_KEY must be set in production")
            logger.warning("API_KEY not set; API key authentication and token exchange are disabled")

        return cls(
            api_key=settings.api_key,
            jwt_secret=secret,
            algorithm=settings.jwt_algorithm,
            default_expiry_seconds=settings.jwt_expiry_seconds,
        )

    @property
    def api_key_configured(self) -> bool:
        return self._api_key_digest is not None

    def _digest(self, value: str) -> bytes:
        return hmac.new(self._compare_key, value.encode("utf-8"), hashlib.sha256).digest()

    def verify_api_key(self, candidate: Optional[str]) -> bool:
        """Constant-time check of a candidate against the configured API key."""
        if not candidate or self._api_key_digest is None:
            return False
        return hmac.compare_digest(self._digest(candidate), self._api_key_digest)

    def sign_token(self, payload: Dict[str, Any], expires_in: Optional[int] = None) -> str:
        """Sign an access token carrying ``payload``."""
        issued = int(time.time())
        lifetime = self.default_expiry_seconds if expires_in is None else expires_in
        claims = {
            **payload,
            "iat": issued,
            "exp": issued + lifetime,
            "jti": uuid.uuid4().hex,
            "type": "access",
        }
        try:
            token = jwt.encode(claims, self._jwt_secret, algorithm=self.algorithm)
        except Exception as e:
            logger.critical("Token signing failed: %s", type(e).__name__)
            raise TokenSigningError("Failed to generate authentication token") from e

        logger.info("Generated token for clientId: %s", payload.get("clientId", "unknown"))
        return token

    def verify_token(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return the token claims, or None when the token is unusable."""
        if not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            logger.info("Token verification failed: expired")
            return None
        except jwt.PyJWTError as e:
            logger.info("Token verification failed: %s", type(e).__name__)
            return None

        if claims.get("type") != "access":
            return None
        jti = claims.get("jti")
        if jti and jti in self._revoked:
            logger.info("Token verification failed: revoked")
            return None
        return claims

    def revoke_token(self, claims: Dict[str, Any]) -> bool:
        """Reject the token described by ``claims`` until it expires naturally."""
        jti = claims.get("jti")
        if not jti:
            return False
        self._revoked[jti] = float(claims.get("exp", time.time() + self.default_expiry_seconds))
        logger.info("Revoked token for clientId: %s", claims.get("clientId", "unknown"))
        return True

    def purge_revoked(self, now: Optional[float] = None) -> int:
        """Drop revocation entries whose tokens have expired anyway."""
        now = time.time() if now is None else now
        expired = [jti for jti, exp in self._revoked.items() if exp <= now]
        for jti in expired:
            del self._revoked[jti]
        return len(expired)
