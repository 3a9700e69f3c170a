"""Workflow error taxonomy

Services raise these; ``app.main`` renders them as JSON with the matching
HTTP status. ``message`` is safe to show to clients, internal detail belongs
in the log.
"""

from typing import Optional


class AppError(Exception):
    """Base class for business-rule and integration failures"""

    status_code = 500
    code = "internal_error"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    default_message = "The request is missing required information."


class Unauthorized(AppError):
    status_code = 401
    code = "unauthorized"
    default_message = "Not authenticated."


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    default_message = "This record was changed by someone else. Please refresh and try again."


class SlotUnavailable(Conflict):
    code = "slot_unavailable"
    default_message = "That time slot was just taken. Please choose another slot."


class InvalidTransition(Conflict):
    code = "invalid_transition"
    default_message = "This action is not allowed in the current state."


class AlreadyPaid(Conflict):
    code = "already_paid"
    default_message = "This has already been paid."


class Gone(AppError):
    status_code = 410
    code = "gone"
    default_message = "This link is no longer valid."


class Expired(Gone):
    code = "expired"
    default_message = "This link has expired. Please request a new one."


class GatewayError(AppError):
    """Payment provider failure - distinct from a declined payment"""

    status_code = 502
    code = "gateway_error"
    default_message = "The payment provider is unavailable right now. Please try again."

    def __init__(self, message: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable
