"""
Payment Exceptions

Error kinds raised by the payment service. Each carries the HTTP status the
API layer responds with, so handlers can turn any of them into the standard
{success, message, errors} envelope.
"""
from typing import Any, List, Optional


class PaymentServiceError(Exception):
    """Base exception for all payment-service errors."""

    status_code: int = 500
    code: str = "PAYMENT_ERROR"

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to the error envelope."""
        body = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(PaymentServiceError):
    """Malformed or unrecognized input (e.g. an unknown payment phase)."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(PaymentServiceError):
    status_code = 401
    code = "NOT_AUTHENTICATED"


class AccessDeniedError(PaymentServiceError):
    status_code = 403
    code = "ACCESS_DENIED"


class NotFoundError(PaymentServiceError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(PaymentServiceError):
    """A payment-phase precondition does not hold."""

    status_code = 400
    code = "INVALID_STATE"


class VerificationFailedError(PaymentServiceError):
    """Signature mismatch on a client proof or a webhook."""

    status_code = 400
    code = "VERIFICATION_FAILED"


class UpstreamError(PaymentServiceError):
    """Gateway or persistence failure surfaced to the caller."""

    status_code = 500
    code = "UPSTREAM_FAILURE"
