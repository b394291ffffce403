from __future__ import annotations

import enum
from typing import Optional


STATUS_LABELS = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    422: "Validation Error",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}


def status_label(status_code: int) -> str:
    return STATUS_LABELS.get(status_code, "Error")


class GatewayError(Exception):
    """Base class for errors that carry their own HTTP status."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(GatewayError):
    status_code = 400


class NotFoundError(GatewayError):
    status_code = 404


class StoreError(GatewayError):
    status_code = 500


class UpstreamErrorKind(str, enum.Enum):
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    UNAVAILABLE = "unavailable"
    CONNECTION = "connection"
    UNKNOWN = "unknown"


class UpstreamError(GatewayError):
    """Failure talking to the model server.

    Each subclass pins a ``kind`` so callers can dispatch on the exception
    type (or the tag) instead of the remote status integer.
    """

    kind: UpstreamErrorKind = UpstreamErrorKind.UNKNOWN
    status_code = 500

    def __init__(self, message: str, remote_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.remote_status = remote_status


class UpstreamBadRequestError(UpstreamError):
    kind = UpstreamErrorKind.BAD_REQUEST
    status_code = 400


class UpstreamModelNotFoundError(UpstreamError):
    kind = UpstreamErrorKind.NOT_FOUND
    status_code = 404


class UpstreamServerError(UpstreamError):
    kind = UpstreamErrorKind.SERVER_ERROR
    status_code = 500


class UpstreamUnavailableError(UpstreamError):
    kind = UpstreamErrorKind.UNAVAILABLE
    status_code = 503


class UpstreamConnectionError(UpstreamError):
    kind = UpstreamErrorKind.CONNECTION
    status_code = 502


class UpstreamUnknownError(UpstreamError):
    kind = UpstreamErrorKind.UNKNOWN
    status_code = 500
