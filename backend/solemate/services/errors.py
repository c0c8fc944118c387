# Overview: Typed error taxonomy shared by the commerce services.

"""
Commerce service errors.

Services raise these; routes translate them into response envelopes via
responses.error_response_for(). The services never build presentation
strings beyond the exception message.
"""


class CommerceError(Exception):
    """Base class for domain errors raised by the service layer."""

    status_code = 400
    toast_type = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(CommerceError):
    """Item, order, variant or session is absent or not owned by the caller."""
    status_code = 404


class Unauthorized(CommerceError):
    """The resource exists but belongs to another owner."""
    status_code = 403


class InvalidTransition(CommerceError):
    """Illegal order status change."""
    status_code = 409


class OutOfStock(CommerceError):
    """Requested quantity exceeds available inventory."""
    status_code = 409
    toast_type = "warning"


class EmptyCart(CommerceError):
    """Checkout attempted with no cart items."""
    status_code = 400
    toast_type = "warning"


class InvalidOrExpired(CommerceError):
    """OTP code is malformed, wrong, expired, exhausted, or already used."""
    status_code = 400


class StorageError(CommerceError):
    """Persistence failure (database or outbound dispatch)."""
    status_code = 500


class TooManyRequests(CommerceError):
    """Login or code request throttled; details carry retry_after_seconds."""
    status_code = 429
    toast_type = "warning"
