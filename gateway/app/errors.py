"""Error taxonomy and the JSON error envelope.

Every error a client can observe is a ``GatewayError``; the FastAPI handlers in
``gateway.app.main`` render it as::

    {"error": {"code": "<ERROR_CODE>", "message": "<human text>", "details": {...}}}
"""

from typing import Any

from fastapi import status


class GatewayError(Exception):
    """Base class for caller-visible errors."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_envelope(self) -> dict[str, Any]:
        """Render the error envelope."""
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}


class ValidationError(GatewayError):
    """Malformed or missing input. Raised before any side effect."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(GatewayError):
    """Referenced entity is absent."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class AuthenticationError(GatewayError):
    """Missing or invalid identity context."""

    code = "AUTHENTICATION_ERROR"
    status_code = status.HTTP_401_UNAUTHORIZED


class UpstreamUnavailableError(GatewayError):
    """A required external system could not be reached before any work was committed."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class StorageUnavailableError(UpstreamUnavailableError):
    """Object store could not issue a URL or serve a request."""

    code = "STORAGE_UNAVAILABLE"


class PersistenceError(GatewayError):
    """Record store write or delete failed."""

    code = "PERSISTENCE_ERROR"


class PartialFailureError(GatewayError):
    """Some steps of a multi-step operation succeeded and were not compensated."""

    code = "PARTIAL_FAILURE"


class InternalError(GatewayError):
    """Unexpected condition."""

    code = "INTERNAL_ERROR"
