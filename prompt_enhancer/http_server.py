"""HTTP service for the Prompt Enhancer API."""

import asyncio
import contextlib
import logging
import os
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
import yaml
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__, include_routers
from .api.deps import AppServices
from .auth import (
    AuditLogger,
    AuthenticationGate,
    CredentialStore,
    FailedAttemptTracker,
    is_public_path,
)
from .config import Settings
from .enhancer import LLMEnhancer, create_enhancer
from .ratelimit import BurstDetector, RateGate, RateLimitDecision, TokenBucketLimiter, create_backend
from .storage import PromptStore
from .utils.exceptions import (
    APIError,
    NotFoundError,
    PayloadTooLargeError,
    RateLimitError,
    ValidationError,
)
from .utils.logging_config import setup_logging
from .utils.network import AllowList, resolve_client_ip

logger = logging.getLogger(__name__)

GENERIC_MESSAGES = {
    400: "Invalid request parameters",
    401: "Authentication required",
    403: "Access denied",
    404: "Resource not found",
    413: "Payload too large",
    429: "Too many requests",
    503: "Service temporarily unavailable",
}
GENERIC_FALLBACK = "An unexpected error occurred. Please try again later."

RATE_EXEMPT_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json", "/openapi.yaml"})

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'; script-src 'none'; object-src 'none'",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}
# Swagger UI and ReDoc load their bundles from a CDN.
DOCS_CSP = (
    "default-src 'self'; script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net https://fonts.googleapis.com; "
    "img-src 'self' data: https://fastapi.tiangolo.com; font-src 'self' https://fonts.gstatic.com; "
    "worker-src 'self' blob:; object-src 'none'"
)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    environment: str
    rate_limiter: str
    enhancer: str
    timestamp: str
    llm: Optional[Dict[str, Any]] = None


def build_services(settings: Settings) -> AppServices:
    """Construct every shared collaborator for one application instance."""
    credentials = CredentialStore.from_settings(settings)
    allow_list = AllowList(settings.allowed_ips)
    tracker = FailedAttemptTracker(
        max_attempts=settings.max_failed_attempts,
        window_seconds=settings.failed_attempt_window_seconds,
        block_seconds=settings.failed_attempt_block_seconds,
    )
    audit = AuditLogger()
    limiter = TokenBucketLimiter(settings.tiers())
    burst_detector = BurstDetector(
        interval_seconds=settings.burst_interval_ms / 1000.0,
        threshold=settings.burst_threshold,
        block_seconds=settings.burst_block_seconds,
    )
    return AppServices(
        settings=settings,
        credentials=credentials,
        tracker=tracker,
        audit=audit,
        allow_list=allow_list,
        limiter=limiter,
        burst_detector=burst_detector,
        auth_gate=AuthenticationGate(credentials, tracker, allow_list, audit),
        rate_gate=RateGate(limiter, burst_detector, allow_list),
        prompt_store=PromptStore(),
        enhancer=create_enhancer(settings),
    )


def error_response(exc: Exception, settings: Settings) -> JSONResponse:
    """Single formatter for every error the service returns."""
    if isinstance(exc, APIError):
        error = exc
        if error.status_code >= 500:
            logger.error("%s: %s", error.code, error.message, exc_info=exc.__cause__)
        else:
            logger.warning("Request rejected with %s (%s)", error.code, error.status_code)
    else:
        logger.error("Unhandled error: %s", exc, exc_info=exc)
        details = None
        if not settings.is_production:
            details = {
                "name": type(exc).__name__,
                "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            }
        error = APIError(details=details)

    if settings.is_production:
        body: Dict[str, Any] = {
            "error": {
                "code": error.code,
                "message": GENERIC_MESSAGES.get(error.status_code, GENERIC_FALLBACK),
            }
        }
    else:
        body = error.to_dict(include_details=True)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(body), headers=error.headers)


def apply_rate_limit_headers(
    response: Response, decision: Optional[RateLimitDecision], overwrite: bool = True
) -> Response:
    """Stamp X-RateLimit-* (and Retry-After when rejected) onto a response."""
    if decision is not None:
        for name, value in decision.headers().items():
            if overwrite:
                response.headers[name] = value
            else:
                response.headers.setdefault(name, value)
    return response


def requires_authentication(path: str) -> bool:
    return path.startswith("/v1/") and not is_public_path(path)


def is_rate_limited(path: str) -> bool:
    return path not in RATE_EXEMPT_PATHS and not path.startswith("/docs/")


async def sweep_expired_state(services: AppServices) -> Dict[str, int]:
    """Evict stale lockout, burst, counter and revocation entries."""
    return {
        "failed_attempts": services.tracker.sweep(),
        "burst": services.burst_detector.sweep(),
        "rate_limits": await services.limiter.sweep(),
        "revoked_tokens": services.credentials.purge_revoked(),
    }


async def _run_sweeper(services: AppServices, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            evicted = await sweep_expired_state(services)
        except Exception:
            logger.exception("State sweep failed")
            continue
        if any(evicted.values()):
            logger.debug("Swept expired state: %s", evicted)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    services: AppServices = app.state.services
    settings = services.settings

    logger.info("Starting Prompt Enhancer API (%s)...", settings.environment.value)
    if app.state.resolve_limiter_backend and settings.redis_url:
        services.limiter.set_backend(await create_backend(settings))

    sweeper = asyncio.create_task(_run_sweeper(services, settings.sweep_interval_seconds))
    try:
        yield
    finally:
        logger.info("Shutting down Prompt Enhancer API...")
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await services.limiter.close()
        await services.enhancer.close()


def create_app(settings: Optional[Settings] = None, services: Optional[AppServices] = None) -> FastAPI:
    """Build the application around explicitly constructed services.

    Passing ``services`` skips configuration checks and keeps whatever
    limiter back end they carry; otherwise the back end is resolved from
    ``REDIS_URL`` at startup.
    """
    if services is None:
        settings = settings or Settings.from_env()
        settings.validate_for_startup()
        services = build_services(settings)
        resolve_backend = True
    else:
        settings = services.settings
        resolve_backend = False

    app = FastAPI(
        title="Prompt Enhancer API",
        description=(
            "Turns short natural-language prompts into detailed instructions for LLM chat systems.\n\n"
            "Authenticate with `Authorization: Bearer <token>` (see `/v1/auth/token`) or, "
            "for backward compatibility, the `X-API-Key` header. Every response carries "
            "`X-RateLimit-*` headers; `429` responses add `Retry-After`."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "auth", "description": "Token exchange and validation"},
            {"name": "prompts", "description": "Prompt enhancement"},
            {"name": "health", "description": "Health checks and status"},
        ],
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.resolve_limiter_backend = resolve_backend

    # Middleware added last runs first.
    @app.middleware("http")
    async def govern_request(request: Request, call_next):
        """Authentication gate, then rate/DDoS gate, then the route."""
        path = request.url.path
        client_ip = resolve_client_ip(request, settings.trust_proxy_headers)
        identity = None
        decision = None
        try:
            if requires_authentication(path):
                identity = await services.auth_gate.authenticate(
                    client_ip,
                    authorization=request.headers.get("authorization"),
                    api_key=request.headers.get("x-api-key"),
                    path=path,
                )
                request.state.identity = identity
            if is_rate_limited(path):
                decision = await services.rate_gate.check(client_ip, identity, path)
            else:
                decision = services.rate_gate.nominal("general")
        except RateLimitError as exc:
            return error_response(exc, settings)
        except APIError as exc:
            # Authentication and lockout rejections report current standing without spending a point.
            response = error_response(exc, settings)
            standing = await services.limiter.peek("general", client_ip)
            return apply_rate_limit_headers(response, standing, overwrite=False)

        try:
            response = await call_next(request)
        except Exception as exc:
            response = error_response(exc, settings)
        return apply_rate_limit_headers(response, decision)

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        """Reject oversized bodies before they are parsed."""
        limit = settings.max_body_bytes
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                return error_response(
                    ValidationError("Invalid Content-Length header", code="validation_error"), settings
                )
            if size > limit:
                return error_response(
                    PayloadTooLargeError(f"Request body exceeds {limit} bytes", details={"maxBytes": limit}),
                    settings,
                )
        elif request.method in ("POST", "PUT", "PATCH"):
            # No declared length: count chunks as they arrive and stop at the cap.
            received = bytearray()
            async for chunk in request.stream():
                received.extend(chunk)
                if len(received) > limit:
                    return error_response(
                        PayloadTooLargeError(f"Request body exceeds {limit} bytes", details={"maxBytes": limit}),
                        settings,
                    )
            # Starlette replays a cached body to the downstream app.
            request._body = bytes(received)
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
        max_age=86400,
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        """Add security headers to all responses."""
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        path = request.url.path
        if path in ("/docs", "/redoc") or path.startswith("/docs/"):
            response.headers["Content-Security-Policy"] = DOCS_CSP
        return response

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        return error_response(exc, settings)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            error: APIError = NotFoundError(f"Route {request.method} {request.url.path} not found")
        elif exc.status_code == 405:
            error = APIError(
                f"Method {request.method} not allowed for {request.url.path}",
                code="method_not_allowed",
                status_code=405,
                headers=exc.headers,
            )
        else:
            error = APIError(str(exc.detail), code="http_error", status_code=exc.status_code, headers=exc.headers)
        return error_response(error, settings)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(ValidationError(details=exc.errors()), settings)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        return error_response(exc, settings)

    @app.get("/", tags=["health"])
    async def root():
        """Welcome message."""
        return {
            "name": "Prompt Enhancer API",
            "version": __version__,
            "docs": "/docs",
        }

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check(response: Response):
        """Liveness check."""
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
        response.headers["Pragma"] = "no-cache"
        llm_stats = None
        if isinstance(services.enhancer, LLMEnhancer):
            llm_stats = services.enhancer.llm_client.get_performance_stats()
        return HealthResponse(
            status="healthy",
            version=__version__,
            environment=settings.environment.value,
            rate_limiter=services.limiter.backend_kind.value,
            enhancer=type(services.enhancer).__name__,
            timestamp=datetime.now(timezone.utc).isoformat(),
            llm=llm_stats,
        )

    @app.get("/openapi.yaml", include_in_schema=False)
    async def openapi_yaml():
        """Serve OpenAPI schema in YAML."""
        try:
            content = yaml.safe_dump(app.openapi(), sort_keys=False, allow_unicode=True)
        except yaml.YAMLError as e:
            logger.error("Failed to render OpenAPI YAML: %s", e)
            raise HTTPException(status_code=500, detail="Failed to render OpenAPI") from e
        return Response(content=content, media_type="application/yaml")

    include_routers(app)
    return app


def run_http_server(host: str = "127.0.0.1", port: int = 8080):
    """Run the HTTP server."""
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_file, settings.log_format)
    uvicorn.run(
        "prompt_enhancer.http_server:create_app",
        factory=True,
        host=host,
        port=port,
        reload=os.getenv("RELOAD", "false").lower() == "true",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_http_server()
