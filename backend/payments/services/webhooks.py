from __future__ import annotations

import json
import logging
from typing import Optional

import stripe
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db.models import F
from django.utils import timezone

from core.exceptions import SignatureInvalid
from payments.models import PaymentEvent
from payments.services import reconciler

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"

FINAL_STATUSES = {PaymentEvent.PROCESSED, PaymentEvent.IGNORED}


def verify_event(payload: bytes, sig_header: Optional[str]) -> dict:
    """
    Authenticate a raw provider payload against the shared webhook secret and parse it.

    Raises ``SignatureInvalid`` for a bad signature or an unreadable body.
    """
    secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        raise ImproperlyConfigured("STRIPE_WEBHOOK_SECRET is not configured.")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SignatureInvalid("Invalid payload.", code="invalid_payload") from exc

    try:
        stripe.WebhookSignature.verify_header(
            body,
            sig_header or "",
            secret,
            settings.STRIPE_WEBHOOK_TOLERANCE,
        )
    except stripe.SignatureVerificationError as exc:
        raise SignatureInvalid() from exc

    try:
        event = json.loads(body)
    except ValueError as exc:
        raise SignatureInvalid("Invalid payload.", code="invalid_payload") from exc
    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise SignatureInvalid("Invalid payload.", code="invalid_payload")
    return event


def record_event(event: dict) -> PaymentEvent:
    payment_event, created = PaymentEvent.objects.get_or_create(
        provider_event_id=event["id"],
        defaults={
            "event_type": event["type"],
            "payload": event,
        },
    )
    if not created:
        logger.info("Payment event %s delivered again (status %s).", event["id"], payment_event.status)
    return payment_event


def dispatch(event_type: str, payload: dict) -> str:
    data_object = (payload.get("data") or {}).get("object") or {}
    if event_type == PAYMENT_SUCCEEDED:
        return reconciler.reconcile_payment_succeeded(data_object)
    if event_type == PAYMENT_FAILED:
        return reconciler.reconcile_payment_failed(data_object)
    return reconciler.IGNORED


def process_event(payment_event: PaymentEvent) -> str:
    """
    Run one inbox event and record how it went.

    Internal failures are logged and stored on the event so it can be replayed
    later; they are never raised back to the webhook caller.
    """
    if payment_event.status in FINAL_STATUSES:
        return reconciler.DUPLICATE

    PaymentEvent.objects.filter(pk=payment_event.pk).update(attempts=F("attempts") + 1)
    try:
        outcome = dispatch(payment_event.event_type, payment_event.payload)
    except Exception as exc:
        logger.exception(
            "Processing payment event %s (%s) failed; it will be retried.",
            payment_event.provider_event_id,
            payment_event.event_type,
        )
        PaymentEvent.objects.filter(pk=payment_event.pk).update(
            status=PaymentEvent.FAILED,
            last_error=str(exc)[:2000],
        )
        payment_event.refresh_from_db()
        return PaymentEvent.FAILED

    status = PaymentEvent.IGNORED if outcome in {reconciler.IGNORED, reconciler.BOOKING_MISSING} else PaymentEvent.PROCESSED
    PaymentEvent.objects.filter(pk=payment_event.pk).update(
        status=status,
        last_error="",
        processed_at=timezone.now(),
    )
    payment_event.refresh_from_db()
    return outcome


def handle_webhook(payload: bytes, sig_header: Optional[str]) -> str:
    event = verify_event(payload, sig_header)
    payment_event = record_event(event)
    return process_event(payment_event)


def retry_failed_events(*, max_attempts: Optional[int] = None, limit: int = 100) -> dict:
    """Replay inbox events that failed or were never processed."""
    max_attempts = max_attempts or settings.PAYMENT_EVENT_MAX_ATTEMPTS
    pending = PaymentEvent.objects.filter(
        status__in=[PaymentEvent.RECEIVED, PaymentEvent.FAILED],
        attempts__lt=max_attempts,
    ).order_by("received_at", "id")[:limit]

    results: dict[str, int] = {}
    for payment_event in pending:
        outcome = process_event(payment_event)
        results[outcome] = results.get(outcome, 0) + 1
    return results
