"""
Exception taxonomy for calls made through the HTTP client adapter.

`ApiClient` raises these; the services catch them and turn them into
`ServiceResult` failures, so they never reach the screens.
"""
# epscitas/errors.py

from typing import Optional


class ApiError(Exception):
    """Base class for every failure of a backend call.

    Attributes:
        kind (str): Short machine-readable category.
        status_code (int or None): HTTP status, when a response was received.
        message (str or None): Message supplied by the backend envelope, if any.
    """
    kind = "unknown"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message or self.kind)
        self.message = message
        self.status_code = status_code


class NetworkError(ApiError):
    """The backend could not be reached (DNS, refused connection, reset)."""
    kind = "network"


class RequestTimeout(ApiError):
    kind = "timeout"


class RequestCancelled(ApiError):
    """The caller's cancel token fired before the response was applied."""
    kind = "cancelled"


class InvalidResponse(ApiError):
    """The backend answered with a body that is not JSON."""
    kind = "invalid_response"


class Unauthorized(ApiError):
    """HTTP 401. The persisted session has already been purged when this is raised."""
    kind = "unauthorized"


class ValidationFailed(ApiError):
    """HTTP 4xx other than 401, typically 422 with a backend validation message."""
    kind = "validation"


class ServerError(ApiError):
    kind = "server"


def error_for_status(status_code: int, message: Optional[str] = None) -> ApiError:
    """Maps an HTTP error status to the matching exception instance."""
    if status_code == 401:
        return Unauthorized(message, status_code)
    if status_code >= 500:
        return ServerError(message, status_code)
    return ValidationFailed(message, status_code)
