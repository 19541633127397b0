"""Error taxonomy shared by the client, the session and the lifecycle."""

from __future__ import annotations

from typing import Optional


class MedrideError(Exception):
    """Base class. ``user_message`` is safe to show to the driver/patient."""

    error_code = "error"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        return str(self)


class AuthError(MedrideError):
    """Missing, invalid or expired token."""

    error_code = "auth"
    default_message = "Please log in again."


class SessionExpiredError(AuthError):
    """The refresh token was rejected; the session cannot continue."""

    error_code = "session_expired"
    default_message = "Your session has expired. Please log in again."


class NetworkError(MedrideError):
    """The request could not be sent or completed (offline, DNS, timeout)."""

    error_code = "network"
    default_message = (
        "Cannot connect to server. Please check your connection and try again."
    )


class ServerError(MedrideError):
    """Non-2xx response from the backend."""

    error_code = "server"

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"HTTP {status_code}")


class ValidationError(MedrideError):
    """Local input/state check failed; nothing was sent to the server."""

    error_code = "validation"


class InvalidStateTransition(ValidationError):
    """Raised when a status change violates a state machine."""

    error_code = "invalid_transition"
