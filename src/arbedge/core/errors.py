"""
Error taxonomy for the edge layer.

Every error a client can observe is an :class:`ApiError` carrying an HTTP
status, a stable machine-readable code and optional details. Rendering to
the response envelope happens in :mod:`arbedge.core.envelope`.
"""

from typing import Any


class ApiError(Exception):
    """Base exception for client-visible errors."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationError(ApiError):
    """Malformed or missing required input."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class ForbiddenError(ApiError):
    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(ApiError):
    status_code = 404
    default_code = "NOT_FOUND"


class RateLimitError(ApiError):
    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"


class UpstreamError(ApiError):
    """Engine or provider unreachable, failing, or returning unexpected content."""

    status_code = 502
    default_code = "UPSTREAM_ERROR"


class InternalError(ApiError):
    status_code = 500
    default_code = "INTERNAL_ERROR"


class ProxyError(ApiError):
    """
    Rejection produced by the upstream proxy.

    Rendered as a flat ``{"error": code}`` body rather than the envelope,
    since proxy clients consume upstream payloads verbatim.
    """

    def __init__(self, code: str, status_code: int, message: str | None = None) -> None:
        super().__init__(message or code, code=code, status_code=status_code)


class CircuitOpenError(UpstreamError):
    """Engine calls are short-circuited after repeated failures."""

    status_code = 503
    default_code = "CIRCUIT_OPEN"
