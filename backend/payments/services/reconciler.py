from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from activities.pricing import from_minor_units, to_minor_units, to_money
from bookings.models import Booking
from bookings.services import ledger
from farms.services.stats import record_completed_booking
from payments.models import PaymentRecord

logger = logging.getLogger(__name__)

PROCESSED = "processed"
DUPLICATE = "duplicate"
BOOKING_MISSING = "booking_missing"
REFUND_REQUIRED = "refund_required"
IGNORED = "ignored"


@dataclass(frozen=True)
class PaymentSplit:
    total: Decimal
    commission_rate: Decimal
    commission: Decimal
    payout: Decimal


def commission_rate() -> Decimal:
    return Decimal(str(settings.PLATFORM_COMMISSION_RATE))


def payout_delay() -> timedelta:
    return timedelta(days=int(settings.PAYOUT_DELAY_DAYS))


def split_payment(total: Decimal, rate: Decimal) -> PaymentSplit:
    total = to_money(total)
    commission = to_money(total * rate)
    return PaymentSplit(
        total=total,
        commission_rate=rate,
        commission=commission,
        payout=total - commission,
    )


def _booking_id_from(intent: dict) -> Optional[int]:
    raw = (intent.get("metadata") or {}).get("booking_id")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def expected_charge(booking: Booking, transaction_id: str) -> tuple[int, str]:
    """
    Minor-unit amount and currency a payment must carry to pay ``booking``.

    The charge remembered with the booking's current intent wins; any other
    transaction must pay the booking total in the booking currency.
    """
    if booking.payment_intent_id == transaction_id and booking.intent_currency and booking.intent_amount is not None:
        currency = booking.intent_currency.upper()
        return to_minor_units(booking.intent_amount, currency), currency
    currency = booking.currency.upper()
    return to_minor_units(booking.total, currency), currency


def _insert_record(booking: Booking, intent: dict, *, now: datetime) -> tuple[PaymentRecord, bool]:
    """Insert the payment record; the unique transaction id makes this the idempotency gate."""
    transaction_id = intent["id"]
    charged_currency = (intent.get("currency") or booking.currency).upper()
    charged_minor = int(intent.get("amount_received") or intent.get("amount") or 0)
    expected_minor, expected_currency = expected_charge(booking, transaction_id)

    if (charged_minor, charged_currency) == (expected_minor, expected_currency):
        split = split_payment(booking.total, commission_rate())
        status, payout_status = PaymentRecord.STATUS_COMPLETED, PaymentRecord.PAYOUT_PENDING
    else:
        logger.warning(
            "Payment %s charged %s %s but booking %s expects %s %s (minor units); refund required.",
            transaction_id,
            charged_minor,
            charged_currency,
            booking.confirmation_code,
            expected_minor,
            expected_currency,
        )
        split = split_payment(Decimal("0.00"), commission_rate())
        status, payout_status = PaymentRecord.STATUS_REFUND_REQUIRED, PaymentRecord.PAYOUT_ON_HOLD

    try:
        with transaction.atomic():
            record = PaymentRecord.objects.create(
                booking=booking,
                farm_id=booking.farm_id,
                user_id=booking.user_id,
                provider=PaymentRecord.PROVIDER_STRIPE,
                provider_transaction_id=transaction_id,
                currency=booking.currency.upper(),
                total_amount=split.total,
                charged_amount=from_minor_units(charged_minor, charged_currency),
                charged_currency=charged_currency,
                commission_rate=split.commission_rate,
                commission_amount=split.commission,
                payout_amount=split.payout,
                payout_status=payout_status,
                payout_scheduled_for=now + payout_delay(),
                status=status,
                paid_at=now,
            )
    except IntegrityError:
        return PaymentRecord.objects.get(provider_transaction_id=transaction_id), False
    logger.info(
        "Payment %s recorded for booking %s: total %s, commission %s, payout %s",
        transaction_id,
        booking.confirmation_code,
        split.total,
        split.commission,
        split.payout,
    )
    return record, True


def _apply_to_booking(record: PaymentRecord, *, now: datetime) -> bool:
    """Confirm the booking once per record. Returns True only for the call that confirmed it."""
    with transaction.atomic():
        claimed = PaymentRecord.objects.filter(pk=record.pk, booking_applied_at__isnull=True).update(
            booking_applied_at=now,
            updated_at=now,
        )
        if not claimed or record.status == PaymentRecord.STATUS_REFUND_REQUIRED:
            return False
        confirmed = ledger.confirm_payment(
            booking_id=record.booking_id,
            transaction_id=record.provider_transaction_id,
            paid_amount=record.total_amount,
            paid_at=record.paid_at,
        )
        if not confirmed:
            PaymentRecord.objects.filter(pk=record.pk).update(
                status=PaymentRecord.STATUS_REFUND_REQUIRED,
                payout_status=PaymentRecord.PAYOUT_ON_HOLD,
                updated_at=now,
            )
            logger.warning(
                "Payment %s arrived for booking %s which can no longer be confirmed; refund required.",
                record.provider_transaction_id,
                record.booking_id,
            )
    return confirmed


def _apply_to_statistics(record: PaymentRecord, *, now: datetime) -> None:
    with transaction.atomic():
        claimed = PaymentRecord.objects.filter(
            pk=record.pk,
            status=PaymentRecord.STATUS_COMPLETED,
            stats_applied_at__isnull=True,
        ).update(stats_applied_at=now, updated_at=now)
        if claimed:
            record_completed_booking(farm_id=record.farm_id, amount=record.total_amount)


def _finish(record: PaymentRecord, *, now: datetime) -> str:
    if _apply_to_booking(record, now=now):
        ledger.send_payment_confirmation(record.booking_id, paid_amount=record.total_amount)
    _apply_to_statistics(record, now=now)
    record.refresh_from_db()

    if record.status == PaymentRecord.STATUS_REFUND_REQUIRED:
        return REFUND_REQUIRED
    return PROCESSED


def reconcile_payment_succeeded(intent: dict, *, now: Optional[datetime] = None) -> str:
    """
    Apply a successful provider payment to its booking exactly once.

    Order of effects: payment record, booking confirmation, farm statistics.
    A redelivered event that finds a fully applied record does nothing; one
    that finds a partially applied record finishes the remaining steps.
    """
    now = now or timezone.now()
    transaction_id = intent.get("id")
    if not transaction_id:
        logger.warning("Payment succeeded event without a transaction id; ignoring.")
        return IGNORED

    record = PaymentRecord.objects.filter(provider_transaction_id=transaction_id).first()
    if record is None:
        booking_id = _booking_id_from(intent)
        booking = Booking.objects.filter(pk=booking_id).first() if booking_id else None
        if booking is None:
            logger.warning(
                "Payment %s references unknown booking %r; acknowledging without changes.",
                transaction_id,
                (intent.get("metadata") or {}).get("booking_id"),
            )
            return BOOKING_MISSING
        record, created = _insert_record(booking, intent, now=now)
    else:
        created = False

    if not created and record.is_fully_applied:
        logger.info("Duplicate payment event for %s acknowledged.", transaction_id)
        return DUPLICATE
    if not created:
        logger.info("Resuming unfinished reconciliation for payment %s.", transaction_id)
    return _finish(record, now=now)


def reconcile_payment_failed(intent: dict) -> str:
    booking_id = _booking_id_from(intent)
    intent_id = intent.get("id") or ""
    if booking_id is None:
        logger.warning("Payment failure %s without booking metadata; ignoring.", intent_id)
        return IGNORED
    error = intent.get("last_payment_error") or {}
    if ledger.mark_payment_failed(booking_id=booking_id, intent_id=intent_id, reason=error.get("message", "")):
        logger.info("Payment %s failed for booking %s.", intent_id, booking_id)
        return PROCESSED
    return IGNORED
