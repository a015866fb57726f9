"""Custom exceptions for the Prompt Enhancer API."""

from typing import Any, Dict, Optional


class PromptEnhancerError(Exception):
    """Base exception for Prompt Enhancer errors."""
    pass


class ConfigurationError(PromptEnhancerError):
    """Raised when configuration is invalid."""
    pass


class TokenSigningError(PromptEnhancerError):
    """Raised when a token cannot be signed with the configured secret."""
    pass


class RateLimiterBackendError(PromptEnhancerError):
    """Raised when the shared rate-limit store cannot serve a request."""
    pass


class APIError(PromptEnhancerError):
    """Error that maps onto an HTTP response.

    Every subclass has a default status and code; callers pick a more
    specific code where the taxonomy has one.
    """

    status_code: int = 500
    code: str = "server_error"
    message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.details = details
        self.headers = dict(headers or {})
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self, include_details: bool = True) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if include_details and self.details is not None:
            body["details"] = self.details
        return {"error": body}


class AuthenticationError(APIError):
    """Raised when a credential is missing or invalid."""

    status_code = 401
    code = "invalid_api_key"
    message = "Authentication required"


class LockoutError(APIError):
    """Raised when an IP is temporarily blocked after repeated failures."""

    status_code = 429
    code = "too_many_failed_attempts"
    message = "Too many failed authentication attempts. Please try again later."


class RateLimitError(APIError):
    """Raised when a quota or the DDoS heuristic rejects a request."""

    status_code = 429
    code = "rate_limit_exceeded"
    message = "Too many requests, please try again later"


class ValidationError(APIError):
    """Raised when request input is missing or malformed."""

    status_code = 400
    code = "validation_error"
    message = "Invalid request parameters"


class PayloadTooLargeError(APIError):
    """Raised when a body or field exceeds its size cap."""

    status_code = 413
    code = "payload_too_large"
    message = "Payload too large"


class NotFoundError(APIError):
    """Raised when a resource does not exist."""

    status_code = 404
    code = "resource_not_found"
    message = "Resource not found"


class UpstreamServiceError(APIError):
    """Raised when the enhancement provider fails."""

    status_code = 502
    code = "service_error"
    message = "The enhancement service failed to process the prompt"


class EnhancementTimeoutError(APIError):
    """Raised when the enhancement provider does not answer in time."""

    status_code = 503
    code = "enhancement_timeout"
    message = "The server took too long to enhance your prompt"
