"""
Error hierarchy for the booking API client.

Each error kind maps to one failure class of an outbound call so callers can
decide locally how to surface it:

- ValidationError: rejected client-side, no network call was made
- AuthenticationError: 401 with no refresh token or a failed refresh (terminal)
- NetworkError: no response was received
- ServerError: 5xx response or a malformed response body
- NotFoundError: 404, absorbed by lookup/search style calls
- ApiError: any other 4xx (400, 403, 409, ...) carrying the backend message
"""

from typing import Any, Optional


class BookingClientError(Exception):
    """Base exception for every failure raised by the booking client."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def backend_message(self) -> Optional[str]:
        """The ``message`` field of the backend error body, when present."""
        if isinstance(self.payload, dict):
            message = self.payload.get("message")
            if isinstance(message, str) and message.strip():
                return message
        return None


class ValidationError(BookingClientError):
    """Raised before any request is sent when input fails validation."""

    pass


class AuthenticationError(BookingClientError):
    """
    Raised when the backend rejects credentials and no refresh is possible.

    For private endpoints the session has already been cleared when this is
    raised; callers are expected to send the user back to a login surface.
    """

    pass


class NetworkError(BookingClientError):
    """Raised when no response was received (connection failure, timeout, DNS)."""

    pass


class ServerError(BookingClientError):
    """Raised for 5xx responses and for response bodies that cannot be decoded."""

    pass


class NotFoundError(BookingClientError):
    """
    Raised for 404 responses.

    Existence checks turn this into a negative result and search style calls
    into an empty list, so it rarely reaches the caller.
    """

    pass


class ApiError(BookingClientError):
    """Raised for any other non-success status (400, 403, 409, ...)."""

    pass


class BookingSubmissionError(BookingClientError):
    """
    Raised by the orchestrator when a ticket submission fails.

    ``message`` is the user-facing text; ``cause`` is the underlying client error.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BookingClientError] = None,
    ) -> None:
        super().__init__(message, status_code=status_code, payload=getattr(cause, "payload", None))
        self.cause = cause


GENERIC_FAILURE_MESSAGE = "Failed to book tickets. Please try again."
SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."
NETWORK_FAILURE_MESSAGE = "Unable to connect to the server. Please check your internet connection."
SERVER_FAILURE_MESSAGE = "Server error. Please try again later."
INVALID_BOOKING_MESSAGE = "Invalid booking data. Please check your information and try again."
SEATS_UNAVAILABLE_MESSAGE = (
    "One or more seats are no longer available. Please select different seats."
)


def user_message_for(error: BookingClientError, fallback: str = GENERIC_FAILURE_MESSAGE) -> str:
    """
    Translate a client error into the text shown to the user.

    An AuthenticationError always reads as an expired session, whatever
    status the failed refresh carried. Otherwise a 400 reads as invalid
    booking data.
    """
    if isinstance(error, ValidationError):
        return error.message
    if isinstance(error, AuthenticationError):
        return SESSION_EXPIRED_MESSAGE
    if error.status_code == 400:
        return INVALID_BOOKING_MESSAGE
    if error.status_code == 401:
        return SESSION_EXPIRED_MESSAGE
    if isinstance(error, NetworkError):
        return NETWORK_FAILURE_MESSAGE
    if isinstance(error, ServerError):
        return SERVER_FAILURE_MESSAGE
    if error.status_code == 409:
        return error.backend_message or SEATS_UNAVAILABLE_MESSAGE
    return error.backend_message or fallback
