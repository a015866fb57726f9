"""Authentication gate: Bearer token first, X-API-Key as fallback."""

import logging
import time
from typing import Callable, NoReturn, Optional

from .attempts import FailedAttemptTracker
from .audit import AuditLogger
from .credentials import CredentialStore, credential_fingerprint
from .models import AuthIdentity, AuthMethod
from ..utils.exceptions import AuthenticationError, LockoutError
from ..utils.network import AllowList

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({
    "/",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/openapi.yaml",
    "/v1/auth/token",
    "/v1/auth/validate",
})

MESSAGES = {
    "missing_token": (
        "Authentication token is required. Please provide a valid token in the Authorization header."
    ),
    "invalid_token": "Invalid or expired token provided.",
    "missing_api_key": (
        "API key is required. Please provide an API key in the X-API-Key header "
        "or use JWT token authentication."
    ),
    "invalid_api_key": "Invalid API key provided. Consider using token-based authentication instead.",
}


def is_public_path(path: str) -> bool:
    if path in PUBLIC_PATHS:
        return True
    return path.startswith("/docs/")


class AuthenticationGate:
    """Turns request credentials into an AuthIdentity or a rejection.

    Failures from IPs outside the allow-list count towards a temporary
    lockout; any success from an IP clears its history.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        tracker: FailedAttemptTracker,
        allow_list: AllowList,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.credentials = credentials
        self.tracker = tracker
        self.allow_list = allow_list
        self.audit = audit
        self._clock = clock

    async def authenticate(
        self,
        client_ip: str,
        authorization: Optional[str] = None,
        api_key: Optional[str] = None,
        path: Optional[str] = None,
    ) -> AuthIdentity:
        allow_listed = client_ip in self.allow_list

        if not allow_listed and self.tracker.is_blocked(client_ip):
            retry_after = self.tracker.retry_after(client_ip)
            if self.audit:
                await self.audit.log_authentication(
                    "auth_lockout", ip_address=client_ip, path=path, error_code=LockoutError.code
                )
            raise LockoutError(
                details={"retryAfter": retry_after},
                headers={"Retry-After": str(retry_after)},
            )

        if authorization:
            scheme, _, token = authorization.strip().partition(" ")
            token = token.strip()
            if scheme.lower() == "bearer" and token:
                return await self._verify_token(token, client_ip, allow_listed, path)
            if api_key is None:
                await self._reject("missing_token", client_ip, allow_listed, path)

        if api_key is None or not api_key.strip():
            await self._reject("missing_api_key", client_ip, allow_listed, path)
        return await self._verify_api_key(api_key, client_ip, allow_listed, path)

    async def _verify_token(
        self, token: str, client_ip: str, allow_listed: bool, path: Optional[str]
    ) -> AuthIdentity:
        claims = self.credentials.verify_token(token)
        if claims is None:
            await self._reject("invalid_token", client_ip, allow_listed, path, AuthMethod.BEARER_TOKEN)

        client_id = str(claims.get("clientId") or claims.get("sub") or "anonymous-client")
        identity = AuthIdentity(
            subject=client_id,
            method=AuthMethod.BEARER_TOKEN,
            scope=claims.get("scope"),
            client_id=client_id,
            credential_key=f"client:{client_id}",
            authenticated_at=self._clock(),
            claims=claims,
        )
        await self._accept(identity, client_ip, path)
        return identity

    async def _verify_api_key(
        self, api_key: str, client_ip: str, allow_listed: bool, path: Optional[str]
    ) -> AuthIdentity:
        if not self.credentials.verify_api_key(api_key):
            await self._reject("invalid_api_key", client_ip, allow_listed, path, AuthMethod.API_KEY)

        fingerprint = credential_fingerprint(api_key)
        identity = AuthIdentity(
            subject=f"api-key:{fingerprint}",
            method=AuthMethod.API_KEY,
            credential_key=f"key:{fingerprint}",
            authenticated_at=self._clock(),
        )
        await self._accept(identity, client_ip, path)
        return identity

    async def _accept(self, identity: AuthIdentity, client_ip: str, path: Optional[str]) -> None:
        self.tracker.clear_on_success(client_ip)
        if self.audit:
            await self.audit.log_authentication(
                "auth_success",
                ip_address=client_ip,
                subject=identity.subject,
                method=identity.method,
                path=path,
            )

    async def _reject(
        self,
        code: str,
        client_ip: str,
        allow_listed: bool,
        path: Optional[str],
        method: Optional[AuthMethod] = None,
    ) -> NoReturn:
        if not allow_listed:
            self.tracker.record_failure(client_ip)
        if self.audit:
            await self.audit.log_authentication(
                "auth_failure", ip_address=client_ip, method=method, path=path, error_code=code
            )
        headers = {"WWW-Authenticate": "Bearer"} if code.endswith("token") else None
        raise AuthenticationError(MESSAGES[code], code=code, headers=headers)
