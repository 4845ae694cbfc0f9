from __future__ import annotations

from rest_framework import status


class BookingEngineError(Exception):
    """
    Base class for failures raised by the booking and payment services.

    Each error carries a stable machine-readable ``code`` plus a user-facing
    ``detail`` string; API views turn them into ``{"detail", "code"}`` bodies
    with ``status_code``.
    """

    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The request could not be processed."

    def __init__(self, detail: str | None = None, *, code: str | None = None):
        self.detail = detail or self.default_detail
        if code:
            self.code = code
        super().__init__(self.detail)

    def as_payload(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class ValidationError(BookingEngineError):
    code = "validation_error"
    default_detail = "Invalid booking request."


class InvalidParticipants(ValidationError):
    code = "invalid_participants"
    default_detail = "At least one participant is required."


class AvailabilityDenied(BookingEngineError):
    code = "availability_denied"
    default_detail = "The activity is not available for this request."

    def __init__(self, detail: str | None = None, *, reason: str = ""):
        super().__init__(detail)
        self.reason = reason

    def as_payload(self) -> dict:
        payload = super().as_payload()
        payload["reason"] = self.reason
        return payload


class NotFound(BookingEngineError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."


class AccessDenied(BookingEngineError):
    code = "access_denied"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Access denied."


class AlreadyCancelled(BookingEngineError):
    code = "already_cancelled"
    default_detail = "Booking already cancelled."


class InvalidTransition(BookingEngineError):
    code = "invalid_transition"
    default_detail = "This status change is not allowed."


class PaymentCaptured(BookingEngineError):
    code = "payment_captured"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Payment has already been captured for this booking; request a refund instead."


class SignatureInvalid(BookingEngineError):
    code = "signature_invalid"
    default_detail = "Invalid webhook signature."


class TransientDependencyFailure(BookingEngineError):
    code = "dependency_unavailable"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "A dependent service is temporarily unavailable. Try again shortly."
