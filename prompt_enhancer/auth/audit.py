"""Audit logging for authentication events."""

import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .models import AuditEvent, AuthMethod

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = {"api_key", "apikey", "x-api-key", "authorization", "token", "client_secret", "clientsecret", "password"}


class AuditLogger:
    """Keeps recent authentication events in a bounded buffer."""

    def __init__(self, buffer_size: int = 1000):
        self._events: Deque[AuditEvent] = deque(maxlen=buffer_size)

    async def log_authentication(
        self,
        action: str,  # auth_success, auth_failure, auth_lockout
        ip_address: Optional[str] = None,
        subject: Optional[str] = None,
        method: Optional[AuthMethod] = None,
        path: Optional[str] = None,
        error_code: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Record an authentication event."""
        event = AuditEvent(
            action=action,
            ip_address=ip_address,
            subject=subject,
            method=method,
            path=path,
            error_code=error_code,
            metadata=self._sanitize_data(metadata or {}),
        )
        self._events.append(event)

        if action == "auth_success":
            logger.debug("Authenticated %s via %s from %s", subject, method.value if method else "-", ip_address)
        else:
            logger.warning("Authentication %s from %s on %s: %s", action, ip_address, path, error_code)
        return event

    def recent(self, limit: int = 100, action: Optional[str] = None) -> List[AuditEvent]:
        """Most recent events first."""
        events = [e for e in reversed(self._events) if action is None or e.action == action]
        return events[:limit]

    def _sanitize_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Drop values stored under credential-like keys."""
        sanitized: Dict[str, Any] = {}
        for key, value in data.items():
            if key.lower() in SENSITIVE_KEYS:
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_data(value)
            else:
                sanitized[key] = value
        return sanitized
