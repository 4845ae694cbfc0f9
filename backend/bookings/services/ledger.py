from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, Sequence

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from accounts.capabilities import (
    BOOKING_CANCEL,
    BOOKING_CREATE,
    BOOKING_MANAGE,
    BOOKING_MODIFY,
    Caller,
)
from activities.availability import check_availability
from activities.models import Activity
from activities.pricing import BookingPrice, LinePrice, Participants, price_booking, price_line
from bookings.models import ActivityLine, Booking, BookingTimelineEntry
from bookings.services import notifications
from core.exceptions import (
    AccessDenied,
    AlreadyCancelled,
    AvailabilityDenied,
    InvalidTransition,
    NotFound,
    PaymentCaptured,
    TransientDependencyFailure,
    ValidationError,
)
from farms.models import Farm
from payments.models import PaymentRecord

logger = logging.getLogger(__name__)

FARM_TRANSITIONS = {Booking.COMPLETED, Booking.NO_SHOW, Booking.CANCELLED}


@dataclass(frozen=True)
class LineRequest:
    activity_id: int
    date: date
    participants: Participants
    start_time: Optional[time] = None
    end_time: Optional[time] = None


@dataclass(frozen=True)
class PricedLine:
    request: LineRequest
    activity: Activity
    price: LinePrice


def generate_confirmation_code() -> str:
    return secrets.token_hex(6).upper()


def _tax_rate() -> Decimal:
    return Decimal(str(settings.BOOKING_TAX_RATE))


def _require(caller: Caller, capability: str) -> None:
    if not caller.can(capability):
        raise AccessDenied("You are not allowed to perform this action.")


def _load_bookable_farm(farm_id) -> Farm:
    farm = Farm.objects.filter(pk=farm_id, status=Farm.APPROVED, is_active=True).first()
    if farm is None:
        raise NotFound("Farm not found or is not currently accepting bookings.")
    return farm


def _lock_booking(booking_id) -> Booking:
    try:
        return Booking.objects.select_for_update().get(pk=booking_id)
    except (Booking.DoesNotExist, ValueError, TypeError):
        raise NotFound("Booking not found.")


def _has_captured_payment(booking: Booking) -> bool:
    if booking.payment_status == Booking.PAYMENT_COMPLETED:
        return True
    return PaymentRecord.objects.filter(booking_id=booking.pk).exists()


def _append_timeline(booking_id: int, status: str, note: str = "", actor_id: Optional[int] = None):
    BookingTimelineEntry.objects.create(
        booking_id=booking_id,
        status=status,
        note=note,
        actor_id=actor_id,
    )


def price_lines(farm: Farm, line_requests: Sequence[LineRequest]) -> tuple[list[PricedLine], BookingPrice]:
    """
    Validate and price every requested line for ``farm``.

    Any failing line rejects the whole request; nothing is written here.
    """
    if not line_requests:
        raise ValidationError("A booking needs at least one activity.")

    activities = Activity.objects.select_related("farm").in_bulk(
        {request.activity_id for request in line_requests}
    )
    tax_rate = _tax_rate()
    priced: list[PricedLine] = []
    for request in line_requests:
        activity = activities.get(request.activity_id)
        if activity is None or activity.farm_id != farm.id:
            raise NotFound(f"Activity {request.activity_id} not found")
        if not activity.is_active:
            raise AvailabilityDenied(f"{activity.name} is not currently offered.", reason="inactive")

        # Pricing validates the participant counts, so it runs first.
        price = price_line(activity.price_table(), request.participants, tax_rate=tax_rate)
        result = check_availability(activity, request.date, request.participants.total)
        if not result.allowed:
            raise AvailabilityDenied(result.message, reason=result.reason)

        priced.append(PricedLine(request=request, activity=activity, price=price))

    return priced, price_booking(line.price for line in priced)


def _write_lines(booking: Booking, priced: Sequence[PricedLine]) -> None:
    ActivityLine.objects.bulk_create(
        [
            ActivityLine(
                booking=booking,
                position=index,
                activity=line.activity,
                date=line.request.date,
                start_time=line.request.start_time,
                end_time=line.request.end_time,
                adults=line.request.participants.adults,
                children=line.request.participants.children,
                seniors=line.request.participants.seniors,
                subtotal=line.price.subtotal,
                taxes=line.price.taxes,
                total=line.price.total,
                currency=line.price.currency,
            )
            for index, line in enumerate(priced)
        ]
    )


def _insert_booking(
    *,
    caller: Caller,
    farm: Farm,
    priced: Sequence[PricedLine],
    totals: BookingPrice,
    contact_info: dict,
    group_details: dict,
    special_requests: str,
) -> Booking:
    attempts = max(int(getattr(settings, "CONFIRMATION_CODE_ATTEMPTS", 5)), 1)
    for attempt in range(1, attempts + 1):
        code = generate_confirmation_code()
        try:
            with transaction.atomic():
                booking = Booking.objects.create(
                    user_id=caller.user_id,
                    farm=farm,
                    confirmation_code=code,
                    status=Booking.PENDING,
                    subtotal=totals.subtotal,
                    taxes=totals.taxes,
                    total=totals.total,
                    currency=totals.currency,
                    contact_info=contact_info,
                    group_details=group_details,
                    special_requests=special_requests,
                )
                _write_lines(booking, priced)
                _append_timeline(booking.pk, Booking.PENDING, "Booking created", caller.user_id)
            return booking
        except IntegrityError:
            if not Booking.objects.filter(confirmation_code=code).exists():
                raise
            logger.warning("Confirmation code collision on %s (attempt %s)", code, attempt)
    raise TransientDependencyFailure("Could not allocate a confirmation code. Please retry.")


def create_booking(
    caller: Caller,
    *,
    farm_id,
    lines: Sequence[LineRequest],
    contact_info: Optional[dict] = None,
    group_details: Optional[dict] = None,
    special_requests: str = "",
) -> Booking:
    """
    Validate, price and persist a new ``pending`` booking.

    All lines must pass availability and pricing; otherwise nothing is stored.
    """
    _require(caller, BOOKING_CREATE)
    farm = _load_bookable_farm(farm_id)
    priced, totals = price_lines(farm, lines)

    group_details = dict(group_details or {})
    group_details["total_participants"] = sum(line.request.participants.total for line in priced)

    booking = _insert_booking(
        caller=caller,
        farm=farm,
        priced=priced,
        totals=totals,
        contact_info=dict(contact_info or {}),
        group_details=group_details,
        special_requests=special_requests or "",
    )
    logger.info(
        "Booking %s created for farm %s (%s %s)",
        booking.confirmation_code,
        farm.pk,
        booking.total,
        booking.currency,
    )
    notifications.notify(booking, notifications.BOOKING_CREATED)
    return booking


def _apply_cancellation(booking: Booking, *, reason: str, cancelled_by: str, actor_id: int) -> None:
    booking.status = Booking.CANCELLED
    booking.cancellation_reason = reason or ""
    booking.cancelled_by = cancelled_by
    booking.cancelled_at = timezone.now()
    booking.save(
        update_fields=[
            "status",
            "cancellation_reason",
            "cancelled_by",
            "cancelled_at",
            "updated_at",
        ]
    )
    _append_timeline(booking.pk, Booking.CANCELLED, reason or "", actor_id)


def cancel_booking(caller: Caller, booking_id, *, reason: str = "") -> Booking:
    _require(caller, BOOKING_CANCEL)
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        if booking.user_id != caller.user_id:
            raise AccessDenied("Access denied: you do not own this booking.")
        if booking.status == Booking.CANCELLED:
            raise AlreadyCancelled()
        if not booking.can_transition_to(Booking.CANCELLED):
            raise InvalidTransition(f"A {booking.status} booking cannot be cancelled.")
        if _has_captured_payment(booking):
            raise PaymentCaptured()
        _apply_cancellation(
            booking,
            reason=reason,
            cancelled_by=Booking.CANCELLED_BY_USER,
            actor_id=caller.user_id,
        )

    logger.info("Booking %s cancelled by user %s", booking.confirmation_code, caller.user_id)
    notifications.notify(booking, notifications.BOOKING_CANCELLED, reason=reason)
    return booking


def transition_status(caller: Caller, booking_id, new_status: str, *, reason: str = "") -> Booking:
    """
    Farm-side status change for a confirmed booking (completed, no-show or cancelled).

    Bookings only leave ``pending`` through payment confirmation, so a farm can
    never complete a booking that was not paid first.
    """
    _require(caller, BOOKING_MANAGE)
    if new_status not in FARM_TRANSITIONS:
        raise ValidationError(f"Unsupported status: {new_status}")

    with transaction.atomic():
        booking = _lock_booking(booking_id)
        if booking.farm.owner_id != caller.user_id and not caller.is_admin:
            raise AccessDenied()
        if booking.status == Booking.CANCELLED and new_status == Booking.CANCELLED:
            raise AlreadyCancelled()
        if booking.status != Booking.CONFIRMED or not booking.can_transition_to(new_status):
            raise InvalidTransition(f"Cannot change a {booking.status} booking to {new_status}.")

        if new_status == Booking.CANCELLED:
            if _has_captured_payment(booking):
                raise PaymentCaptured()
            _apply_cancellation(
                booking,
                reason=reason,
                cancelled_by=Booking.CANCELLED_BY_FARM,
                actor_id=caller.user_id,
            )
        else:
            booking.status = new_status
            booking.save(update_fields=["status", "updated_at"])
            _append_timeline(booking.pk, new_status, reason, caller.user_id)

    logger.info("Booking %s moved to %s by farm owner %s", booking.confirmation_code, new_status, caller.user_id)
    notifications.notify(booking, notifications.BOOKING_STATUS_CHANGED, reason=reason)
    return booking


def modify_booking(
    caller: Caller,
    booking_id,
    *,
    contact_info: Optional[dict] = None,
    group_details: Optional[dict] = None,
    special_requests: Optional[str] = None,
    lines: Optional[Sequence[LineRequest]] = None,
) -> Booking:
    """
    Edit a pending booking.

    Detail fields are patched. A new ``lines`` list is validated and priced
    from scratch and replaces the old lines and price snapshot in one
    transaction; an existing snapshot is never patched in place.
    """
    _require(caller, BOOKING_MODIFY)
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        if booking.user_id != caller.user_id:
            raise AccessDenied("Access denied: you do not own this booking.")
        if booking.status != Booking.PENDING:
            raise InvalidTransition("Only pending bookings can be modified.")

        update_fields: list[str] = []
        if contact_info is not None:
            booking.contact_info = dict(contact_info)
            update_fields.append("contact_info")
        if group_details is not None:
            details = {**(booking.group_details or {}), **group_details}
            details["total_participants"] = booking.total_participants
            booking.group_details = details
            update_fields.append("group_details")
        if special_requests is not None:
            booking.special_requests = special_requests
            update_fields.append("special_requests")

        if lines is not None:
            if _has_captured_payment(booking):
                raise PaymentCaptured("Payment is already being captured; activities can no longer change.")
            priced, totals = price_lines(booking.farm, lines)
            booking.lines.all().delete()
            _write_lines(booking, priced)
            booking.subtotal = totals.subtotal
            booking.taxes = totals.taxes
            booking.total = totals.total
            booking.currency = totals.currency
            booking.payment_intent_id = ""
            booking.intent_amount = None
            booking.intent_currency = ""
            details = dict(booking.group_details or {})
            details["total_participants"] = sum(line.request.participants.total for line in priced)
            booking.group_details = details
            update_fields += [
                "subtotal",
                "taxes",
                "total",
                "currency",
                "payment_intent_id",
                "intent_amount",
                "intent_currency",
                "group_details",
            ]
            _append_timeline(booking.pk, booking.status, "Activities updated and re-priced", caller.user_id)

        if update_fields:
            booking.save(update_fields=sorted(set(update_fields)) + ["updated_at"])

    return booking


def attach_payment_intent(booking: Booking, intent_id: str, *, amount: Decimal, currency: str) -> None:
    """Remember the intent issued for this booking and the exact charge it asked for."""
    currency = currency.upper()
    Booking.objects.filter(pk=booking.pk, status=Booking.PENDING).update(
        payment_intent_id=intent_id,
        intent_amount=amount,
        intent_currency=currency,
        updated_at=timezone.now(),
    )
    booking.payment_intent_id = intent_id
    booking.intent_amount = amount
    booking.intent_currency = currency


def confirm_payment(
    *,
    booking_id: int,
    transaction_id: str,
    paid_amount: Decimal,
    paid_at: datetime,
) -> bool:
    """
    Move a pending booking to ``confirmed`` and fill its payment fields.

    The status check and all field changes are one conditional UPDATE. Returns
    True when the booking is confirmed by this payment (including a repeat
    call for the same transaction), False when it can no longer be confirmed.
    """
    updated = Booking.objects.filter(pk=booking_id, status=Booking.PENDING).update(
        status=Booking.CONFIRMED,
        payment_status=Booking.PAYMENT_COMPLETED,
        payment_intent_id=transaction_id,
        transaction_id=transaction_id,
        paid_amount=paid_amount,
        paid_at=paid_at,
        updated_at=timezone.now(),
    )
    if updated:
        _append_timeline(booking_id, Booking.CONFIRMED, f"Payment {transaction_id} received")
        logger.info("Booking %s confirmed by payment %s", booking_id, transaction_id)
        return True
    return Booking.objects.filter(
        pk=booking_id,
        transaction_id=transaction_id,
        payment_status=Booking.PAYMENT_COMPLETED,
    ).exists()


def mark_payment_failed(*, booking_id: int, intent_id: str, reason: str = "") -> bool:
    updated = (
        Booking.objects.filter(pk=booking_id, status=Booking.PENDING)
        .exclude(payment_status=Booking.PAYMENT_COMPLETED)
        .update(
            payment_status=Booking.PAYMENT_FAILED,
            updated_at=timezone.now(),
        )
    )
    if updated:
        _append_timeline(booking_id, Booking.PENDING, f"Payment {intent_id} failed: {reason}".rstrip(": "))
    return bool(updated)


def send_payment_confirmation(booking_id: int, *, paid_amount: Decimal) -> None:
    booking = Booking.objects.select_related("farm", "user").get(pk=booking_id)
    notifications.notify(booking, notifications.PAYMENT_RECEIVED, paid_amount=f"{paid_amount:.2f}")


def _visible_to(caller: Caller) -> QuerySet:
    queryset = Booking.objects.select_related("farm", "user").prefetch_related("lines__activity")
    if caller.is_admin:
        return queryset
    return queryset.filter(Q(user_id=caller.user_id) | Q(farm__owner_id=caller.user_id))


def bookings_for_caller(caller: Caller) -> QuerySet:
    return _visible_to(caller)


def get_booking_for_caller(caller: Caller, booking_id) -> Booking:
    try:
        booking = Booking.objects.select_related("farm", "user").get(pk=booking_id)
    except (Booking.DoesNotExist, ValueError, TypeError):
        raise NotFound("Booking not found.")
    if caller.is_admin or caller.user_id in (booking.user_id, booking.farm.owner_id):
        return booking
    raise AccessDenied()


def find_by_confirmation_code(caller: Caller, code: str) -> Booking:
    booking = Booking.objects.filter(confirmation_code=(code or "").strip().upper()).first()
    if booking is None:
        raise NotFound("Booking not found.")
    return get_booking_for_caller(caller, booking.pk)
