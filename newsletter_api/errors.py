"""Error taxonomy for the subscribe workflow and its collaborators."""

from __future__ import annotations


class NewsletterError(Exception):
    """Base error carrying the HTTP status and a client-safe message."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(NewsletterError):
    status_code = 400
    default_message = "Invalid request"


class DuplicateError(NewsletterError):
    status_code = 409
    default_message = "Email is already subscribed"


class InternalError(NewsletterError):
    status_code = 500


class RequestTimeout(InternalError):
    default_message = "Request timed out"


class UniqueConstraintViolation(Exception):
    """Raised by the store when an insert collides with an existing email."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"subscriber already exists: {email}")


class PublishError(Exception):
    """The event publisher rejected or failed a publish call."""


class PublisherConnectionError(PublishError, ConnectionError):
    """The event publisher could not be reached."""
