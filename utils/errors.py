"""
Orchestrator error taxonomy.

Every failure a room/recording operation can surface to its caller derives from
OrchestratorError. The HTTP layer maps each class to a status code via
``http_status``; ``retryable`` tells the caller whether retrying (with backoff)
is safe and meaningful.
"""

from typing import Any, Dict, Optional


class OrchestratorError(Exception):
    """Base exception for room and recording orchestration errors."""

    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        payload = {
            "detail": self.message,
            "error": self.code,
            "retryable": self.retryable,
        }
        payload.update(self.details)
        return payload


class NotFound(OrchestratorError):
    """Raised when a room or recording does not exist."""
    http_status = 404


class InvalidReference(OrchestratorError):
    """Raised when an identifier or name is malformed."""
    http_status = 400


class AlreadyRecording(OrchestratorError):
    """Raised when a participant already has a live recording in the room."""
    http_status = 409


class InvalidState(OrchestratorError):
    """Raised when a recording cannot make the requested transition."""
    http_status = 409


class EgressRejected(OrchestratorError):
    """Raised when the media server refuses to start or stop an egress job."""
    http_status = 502


class TokenIssuanceFailed(OrchestratorError):
    """Raised when the media server could not issue a join token."""
    http_status = 503
    retryable = True


class ArtifactNotFound(OrchestratorError):
    """Raised when a recording object is missing from the object store."""
    http_status = 404


class AccessDenied(OrchestratorError):
    """Raised when the caller may not act on the room."""
    http_status = 403


class AuthenticationRequired(OrchestratorError):
    """Raised when the request carries no valid identity."""
    http_status = 401


class UpstreamUnavailable(OrchestratorError):
    """Raised when the media server, object store or database is unreachable."""
    http_status = 503
    retryable = True

    def __init__(
        self,
        upstream: str,
        operation: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.upstream = upstream
        self.operation = operation
        merged = {"upstream": upstream, "operation": operation}
        merged.update(details or {})
        super().__init__(message or f"{upstream} unavailable during {operation}", merged)


__all__ = [
    "OrchestratorError",
    "NotFound",
    "InvalidReference",
    "AlreadyRecording",
    "InvalidState",
    "EgressRejected",
    "TokenIssuanceFailed",
    "ArtifactNotFound",
    "AccessDenied",
    "AuthenticationRequired",
    "UpstreamUnavailable",
]
