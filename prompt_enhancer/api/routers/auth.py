"""Token exchange, validation and revocation routes."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from ...auth import AuthIdentity, AuthMethod
from ...utils.exceptions import AuthenticationError, LockoutError, ValidationError
from ...utils.network import resolve_client_ip
from ..deps import AppServices, get_identity, get_services
from ..schemas import TokenRequest, TokenResponse, ValidateTokenRequest, ValidateTokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])

DEFAULT_CLIENT_ID = "frontend-client"


@router.post("/token", response_model=TokenResponse)
async def issue_token(
    request: Request,
    body: Optional[TokenRequest] = None,
    services: AppServices = Depends(get_services),
):
    """Exchange the client secret for a short-lived Bearer token."""
    client_ip = resolve_client_ip(request, services.settings.trust_proxy_headers)
    tracked = client_ip not in services.allow_list
    tracker = services.tracker

    if tracked and tracker.is_blocked(client_ip):
        retry_after = tracker.retry_after(client_ip)
        await services.audit.log_authentication(
            "auth_lockout", ip_address=client_ip, path=request.url.path, error_code=LockoutError.code
        )
        raise LockoutError(details={"retryAfter": retry_after}, headers={"Retry-After": str(retry_after)})

    secret = body.client_secret if body else None
    if not secret:
        raise ValidationError("Client secret is required", code="missing_credentials")

    if not services.credentials.verify_api_key(secret):
        if tracked:
            tracker.record_failure(client_ip)
        await services.audit.log_authentication(
            "auth_failure",
            ip_address=client_ip,
            method=AuthMethod.API_KEY,
            path=request.url.path,
            error_code="invalid_credentials",
        )
        raise AuthenticationError("Invalid client credentials", code="invalid_credentials")

    tracker.clear_on_success(client_ip)
    client_id = (body.client_id if body else None) or DEFAULT_CLIENT_ID
    scope = services.settings.token_scope
    token = services.credentials.sign_token({"clientId": client_id, "scope": scope})
    return TokenResponse(
        access_token=token,
        expires_in=services.credentials.default_expiry_seconds,
        scope=scope,
    )


@router.post("/validate", response_model=ValidateTokenResponse, response_model_by_alias=True)
async def validate_token(
    body: Optional[ValidateTokenRequest] = None,
    services: AppServices = Depends(get_services),
):
    """Report whether a token is currently accepted."""
    token = body.token if body else None
    if not token:
        raise ValidationError("Token is required", code="missing_token")

    claims = services.credentials.verify_token(token)
    if claims is None:
        raise AuthenticationError("Invalid or expired token", code="invalid_token")

    expires = datetime.fromtimestamp(claims["exp"], tz=timezone.utc).isoformat().replace("+00:00", "Z")
    return ValidateTokenResponse(
        valid=True,
        client_id=claims.get("clientId"),
        scope=claims.get("scope"),
        expires=expires,
    )


@router.post("/revoke", status_code=204)
async def revoke_token(
    services: AppServices = Depends(get_services),
    identity: AuthIdentity = Depends(get_identity),
):
    """Revoke the Bearer token used for this request."""
    if identity.method != AuthMethod.BEARER_TOKEN:
        raise ValidationError("Only Bearer tokens can be revoked", code="validation_error")
    services.credentials.revoke_token(identity.claims)
    return Response(status_code=204)
