"""Structured API errors.

Every error reaching a client is a JSON object ``{error, message, details?}``
where ``error`` is a stable tag and ``message`` is meant for humans.
"""
from typing import Any, Optional

from fastapi import status


class ApiError(Exception):
    error = "Unexpected error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Any] = None, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if error is not None:
            self.error = error

    def to_dict(self) -> dict:
        payload = {"error": self.error, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class MissingArguments(ApiError):
    error = "Missing arguments"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, names, details: Optional[Any] = None):
        super().__init__(
            f"Missing one or many of the following parameters: {','.join(names)}",
            details,
        )


class InvalidArguments(ApiError):
    error = "Invalid arguments"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(ApiError):
    error = "Not found"
    status_code = status.HTTP_404_NOT_FOUND


class NoRecords(ApiError):
    error = "No records"
    status_code = status.HTTP_404_NOT_FOUND


class OutOfRange(ApiError):
    error = "Out of range"
    status_code = status.HTTP_400_BAD_REQUEST


class NotEnoughSlots(ApiError):
    error = "Not enough slots for the current elements"
    status_code = status.HTTP_409_CONFLICT


class UnitNotEmpty(ApiError):
    error = "No empty elements remaining"
    status_code = status.HTTP_409_CONFLICT


class InvalidCredentials(ApiError):
    error = "Invalid credentials"
    status_code = status.HTTP_401_UNAUTHORIZED


class InsufficientPermissions(ApiError):
    error = "Insufficient permissions"
    status_code = status.HTTP_403_FORBIDDEN


class AlreadyExists(ApiError):
    error = "Already exists"
    status_code = status.HTTP_409_CONFLICT


class ConcurrentModification(ApiError):
    error = "Concurrent modification"
    status_code = status.HTTP_409_CONFLICT


class UnexpectedError(ApiError):
    error = "Unexpected error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, details: Optional[Any] = None):
        super().__init__("Something went wrong", details)


class UnknownSensorError(ValueError):
    """Raised when a hub record names a sensor outside the known set."""
