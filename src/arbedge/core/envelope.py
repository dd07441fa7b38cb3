"""
Uniform response envelope.

Success: ``{"success": true, "data": ..., "timestamp": <ms>}``.
Error: ``{"success": false, "error": {"message", "code", "details"}, "timestamp": <ms>}``.
"""

from typing import Any

from arbedge.core.errors import ApiError, InternalError
from arbedge.utils.time import get_timestamp_ms


def success_envelope(data: Any, timestamp_ms: int | None = None) -> dict[str, Any]:
    """Wrap a payload in the success envelope."""
    return {
        "success": True,
        "data": data,
        "timestamp": timestamp_ms if timestamp_ms is not None else get_timestamp_ms(),
    }


def error_envelope(
    message: str,
    code: str,
    details: Any = None,
    timestamp_ms: int | None = None,
) -> dict[str, Any]:
    """Build the error envelope from its parts."""
    return {
        "success": False,
        "error": {
            "message": message,
            "code": code,
            "details": details,
        },
        "timestamp": timestamp_ms if timestamp_ms is not None else get_timestamp_ms(),
    }


def envelope_for_error(error: BaseException) -> tuple[int, dict[str, Any]]:
    """
    Map any exception to a status code and error envelope.

    Unknown exceptions become a generic 500; their message is not exposed.

    Returns:
        Tuple of (HTTP status, envelope body).
    """
    if not isinstance(error, ApiError):
        error = InternalError("Internal server error")
    return error.status_code, error_envelope(error.message, error.code, error.details)
