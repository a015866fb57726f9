"""Authentication for the Prompt Enhancer API."""

from .attempts import FailedAttemptTracker
from .audit import AuditLogger
from .credentials import CredentialStore, credential_fingerprint
from .gate import AuthenticationGate, is_public_path
from .models import AuthIdentity, AuthMethod, FailedAttemptRecord

__all__ = [
    "AuditLogger",
    "AuthIdentity",
    "AuthMethod",
    "AuthenticationGate",
    "CredentialStore",
    "FailedAttemptRecord",
    "FailedAttemptTracker",
    "credential_fingerprint",
    "is_public_path",
]
