"""Typed failures raised by the registries and mapped to HTTP responses."""
from __future__ import annotations

from fastapi import status


class EventHubError(Exception):
    """Base class for failures that carry an HTTP status and an error code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "detail": self.message}


class InvalidInput(EventHubError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_input"


class Unauthorized(EventHubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class NotFound(EventHubError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Conflict(EventHubError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class Internal(EventHubError):
    pass


__all__ = ["EventHubError", "InvalidInput", "Unauthorized", "NotFound", "Conflict", "Internal"]
