from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from django.conf import settings
from django.core.mail import send_mail

from bookings.models import Booking

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking_created"
BOOKING_STATUS_CHANGED = "booking_status_changed"
BOOKING_CANCELLED = "booking_cancelled"
PAYMENT_RECEIVED = "payment_received"


@dataclass
class BookingNotification:
    template: str
    confirmation_code: str
    recipient: str
    context: Dict[str, Any] = field(default_factory=dict)


def _format_from_email(farm_name: str) -> str:
    default_from = settings.DEFAULT_FROM_EMAIL
    email_addr = default_from
    if '<' in default_from and default_from.endswith('>'):
        email_addr = default_from.split('<', 1)[1].rstrip('>')
    return f"{farm_name} via Farmstay <{email_addr}>"


def _recipient_for(booking: Booking) -> str:
    contact_email = (booking.contact_info or {}).get("email")
    return contact_email or booking.user.email


def build_notification(booking: Booking, template: str, **context) -> BookingNotification:
    return BookingNotification(
        template=template,
        confirmation_code=booking.confirmation_code,
        recipient=_recipient_for(booking),
        context={
            "farm_name": booking.farm.name,
            "status": booking.status,
            "total": f"{booking.total:.2f}",
            "currency": booking.currency,
            **context,
        },
    )


def _render(notification: BookingNotification) -> tuple[str, str]:
    code = notification.confirmation_code
    ctx = notification.context
    if notification.template == BOOKING_CREATED:
        subject = f"Booking Confirmation - {code}"
        lines = [
            f"Your booking at {ctx['farm_name']} has been received.",
            f"Confirmation code: {code}",
            f"Total amount: {ctx['total']} {ctx['currency']}",
            "",
            "Complete your payment to confirm the reservation.",
        ]
    elif notification.template == BOOKING_CANCELLED:
        subject = f"Booking Cancelled - {code}"
        lines = [f"Your booking {code} at {ctx['farm_name']} has been cancelled."]
        if ctx.get("reason"):
            lines.append(f"Reason: {ctx['reason']}")
    elif notification.template == PAYMENT_RECEIVED:
        subject = f"Payment Received - {code}"
        lines = [
            f"We received your payment of {ctx.get('paid_amount', ctx['total'])} {ctx['currency']}.",
            f"Your booking {code} at {ctx['farm_name']} is confirmed.",
        ]
    else:
        subject = f"Booking Status Update - {code}"
        lines = [f"Your booking {code} status has been updated to: {ctx['status']}"]
        if ctx.get("reason"):
            lines.append(f"Reason: {ctx['reason']}")
    lines += ["", "The Farmstay Team"]
    return subject, "\n".join(lines)


def deliver(notification: BookingNotification, *, from_name: str = "Farmstay") -> bool:
    """Send a notification; delivery problems are logged and never raised to the caller."""
    if not notification.recipient:
        logger.warning(
            "No recipient for %s notification on booking %s",
            notification.template,
            notification.confirmation_code,
        )
        return False

    subject, body = _render(notification)
    try:
        send_mail(
            subject,
            body,
            _format_from_email(from_name),
            [notification.recipient],
            fail_silently=False,
        )
    except Exception:
        logger.exception(
            "Failed to deliver %s notification for booking %s",
            notification.template,
            notification.confirmation_code,
        )
        return False
    return True


def notify(booking: Booking, template: str, **context) -> bool:
    notification = build_notification(booking, template, **context)
    return deliver(notification, from_name=booking.farm.name)
