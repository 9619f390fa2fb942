"""Error taxonomy for the confirmation workflow.

Every failure is surfaced synchronously to the HTTP caller; nothing is
retried inside the service. ``status_code`` is what the API layer answers
with, ``message`` is the text shown to the caller.
"""


class ConfirmationError(Exception):
    """Base exception for all confirmation workflow errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidArgument(ConfirmationError):
    """Raised when required input is missing or malformed."""

    status_code = 400


class NotFound(ConfirmationError):
    """Raised when no identity or record matches the lookup."""

    status_code = 404


class InvalidOrExpired(ConfirmationError):
    """Raised when a confirmation link no longer points at a pending request."""

    status_code = 400

    def __init__(self, message: str = "Request not found or already confirmed."):
        super().__init__(message)


class InvalidToken(ConfirmationError):
    """Raised when a confirmation token cannot be redeemed.

    Unknown, consumed, expired and mis-addressed tokens share one message so
    the caller cannot tell whether the record exists.
    """

    status_code = 400

    def __init__(self, message: str = "Invalid or expired token."):
        super().__init__(message)


class Unavailable(ConfirmationError):
    """Raised on transient store or network failures. Safe to retry."""

    status_code = 500

    def __init__(self, message: str = "Service temporarily unavailable."):
        super().__init__(message)
