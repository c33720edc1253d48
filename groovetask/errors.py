"""Error taxonomy shared by the stores and the HTTP layer.

Every failure a store operation can report is one of the classes below.
Each carries the HTTP status the API answers with and a default message
that is safe to show to end users.
"""

from __future__ import annotations


class GrooveTaskError(Exception):
    """Base class for all expected failures."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(GrooveTaskError):
    status_code = 400
    default_message = "Invalid input format"


class InvalidCredentials(GrooveTaskError):
    """Login failure. The message never says which half was wrong."""

    status_code = 401
    default_message = "Invalid credentials"


class Unauthorized(GrooveTaskError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(GrooveTaskError):
    status_code = 403
    default_message = "Access denied"


class NotFound(GrooveTaskError):
    status_code = 404
    default_message = "Not found"


class AlreadyExists(GrooveTaskError):
    status_code = 409
    default_message = "User already exists"


class Conflict(GrooveTaskError):
    status_code = 409
    default_message = "Conflict"


class GenerationExhausted(GrooveTaskError):
    status_code = 500
    default_message = "Could not generate unique username after multiple attempts"


class Internal(GrooveTaskError):
    """An unexpected failure; the message never reveals its cause."""

    status_code = 500


class BackendError(Internal):
    """The key-value backend failed or answered with an error payload."""


__all__ = [
    "GrooveTaskError",
    "InvalidInput",
    "InvalidCredentials",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "AlreadyExists",
    "Conflict",
    "GenerationExhausted",
    "Internal",
    "BackendError",
]
