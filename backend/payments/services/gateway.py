from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import uuid4

import stripe
from django.conf import settings

from accounts.capabilities import PAYMENT_CREATE
from activities.pricing import from_minor_units, to_minor_units, to_money
from bookings.models import Booking
from bookings.services import ledger
from core.exceptions import AccessDenied, InvalidTransition, TransientDependencyFailure
from payments.services.currency import get_rate_cache

logger = logging.getLogger(__name__)


@dataclass
class PaymentIntentStub:
    """
    Lightweight stand-in for stripe.PaymentIntent when running in stub mode.

    Tests and local development do not hit Stripe; instead, we return predictable
    identifiers so the rest of the payment flow behaves as if Stripe responded.
    """

    id: str
    client_secret: str
    amount: int
    currency: str
    status: str = "requires_payment_method"


def _get_stripe_api_key() -> Optional[str]:
    key = getattr(settings, "STRIPE_SECRET_KEY", "")
    return key or None


def _should_use_stub() -> bool:
    if getattr(settings, "STRIPE_USE_STUB", False):
        return True
    return _get_stripe_api_key() is None


def _stub_payment_intent(*, amount: int, currency: str) -> PaymentIntentStub:
    intent_id = f"pi_test_{uuid4().hex}"
    return PaymentIntentStub(
        id=intent_id,
        client_secret=f"{intent_id}_secret_{uuid4().hex[:12]}",
        amount=amount,
        currency=currency,
    )


def charge_amount(booking: Booking, currency: Optional[str] = None) -> tuple[Decimal, str]:
    """Booking total expressed in ``currency``, converted through the rate cache if needed."""
    target = (currency or booking.currency).upper()
    source = booking.currency.upper()
    if target == source:
        return booking.total, source
    rate = get_rate_cache().get_rate(source, target)
    return to_money(booking.total * rate), target


def payment_metadata(booking: Booking) -> dict:
    return {
        "booking_id": str(booking.pk),
        "user_id": str(booking.user_id),
        "farm_id": str(booking.farm_id),
        "confirmation_code": booking.confirmation_code,
    }


def create_payment_intent(booking: Booking, *, currency: Optional[str] = None):
    """
    Create a Stripe PaymentIntent (or stub equivalent) for a booking.

    Returns an object exposing ``id``, ``client_secret``, ``amount`` (minor
    units), ``currency`` and ``status``.
    """
    amount, charge_currency = charge_amount(booking, currency)
    amount_minor = to_minor_units(amount, charge_currency)
    provider_currency = charge_currency.lower()

    if _should_use_stub():
        return _stub_payment_intent(amount=amount_minor, currency=provider_currency)

    stripe.api_key = _get_stripe_api_key()
    try:
        return stripe.PaymentIntent.create(
            amount=amount_minor,
            currency=provider_currency,
            metadata=payment_metadata(booking),
            idempotency_key=f"booking-{booking.pk}-{amount_minor}-{provider_currency}",
        )
    except stripe.StripeError as exc:
        logger.exception("Failed to create Stripe payment intent for booking %s: %s", booking.pk, exc)
        raise TransientDependencyFailure("Payment provider is unavailable. Try again shortly.") from exc


def start_payment(caller, booking_id, *, currency: Optional[str] = None):
    """Create a payment intent for the caller's own pending booking and remember its id."""
    if not caller.can(PAYMENT_CREATE):
        raise AccessDenied("You are not allowed to perform this action.")
    booking = ledger.get_booking_for_caller(caller, booking_id)
    if booking.user_id != caller.user_id:
        raise AccessDenied("Access denied: you do not own this booking.")
    if booking.status != Booking.PENDING or booking.payment_status == Booking.PAYMENT_COMPLETED:
        raise InvalidTransition("Only pending, unpaid bookings can be paid.")

    intent = create_payment_intent(booking, currency=currency)
    ledger.attach_payment_intent(
        booking,
        intent.id,
        amount=from_minor_units(intent.amount, intent.currency),
        currency=intent.currency,
    )
    logger.info("Payment intent %s created for booking %s", intent.id, booking.confirmation_code)
    return booking, intent
