from django.conf import settings
from django.db import models


class PaymentRecord(models.Model):
    """
    Financial result of one successful provider payment.

    ``provider_transaction_id`` is unique, so inserting the record is the
    idempotency gate for webhook redelivery. The ``*_applied_at`` markers track
    which fan-out steps have already run for this payment.
    """

    STATUS_COMPLETED = "completed"
    STATUS_REFUND_REQUIRED = "refund_required"
    STATUSES = [
        (STATUS_COMPLETED, "Completed"),
        (STATUS_REFUND_REQUIRED, "Refund required"),
    ]

    PAYOUT_PENDING = "pending"
    PAYOUT_ON_HOLD = "on_hold"
    PAYOUT_PAID = "paid"
    PAYOUT_STATUSES = [
        (PAYOUT_PENDING, "Pending"),
        (PAYOUT_ON_HOLD, "On hold"),
        (PAYOUT_PAID, "Paid"),
    ]

    COMMISSION_CALCULATED = "calculated"
    COMMISSION_PAID = "paid"
    COMMISSION_STATUSES = [
        (COMMISSION_CALCULATED, "Calculated"),
        (COMMISSION_PAID, "Paid"),
    ]

    PROVIDER_STRIPE = "stripe"

    booking = models.ForeignKey("bookings.Booking", on_delete=models.PROTECT, related_name="payment_records")
    farm = models.ForeignKey("farms.Farm", on_delete=models.PROTECT, related_name="payment_records")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payment_records",
    )
    provider = models.CharField(max_length=20, default=PROVIDER_STRIPE)
    provider_transaction_id = models.CharField(max_length=255, unique=True)
    currency = models.CharField(max_length=3)
    # Booking currency; charged_* is what the provider actually captured.
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    charged_amount = models.DecimalField(max_digits=12, decimal_places=2)
    charged_currency = models.CharField(max_length=3)
    commission_rate = models.DecimalField(max_digits=5, decimal_places=4)
    commission_amount = models.DecimalField(max_digits=12, decimal_places=2)
    commission_status = models.CharField(
        max_length=12,
        choices=COMMISSION_STATUSES,
        default=COMMISSION_CALCULATED,
    )
    payout_amount = models.DecimalField(max_digits=12, decimal_places=2)
    payout_status = models.CharField(max_length=12, choices=PAYOUT_STATUSES, default=PAYOUT_PENDING)
    payout_scheduled_for = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUSES, default=STATUS_COMPLETED)
    paid_at = models.DateTimeField()
    booking_applied_at = models.DateTimeField(null=True, blank=True)
    stats_applied_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["farm", "status"], name="payment_farm_status_idx"),
            models.Index(fields=["payout_status", "payout_scheduled_for"], name="payment_payout_due_idx"),
        ]

    def __str__(self):
        return f"{self.provider_transaction_id} ({self.total_amount} {self.currency})"

    @property
    def is_fully_applied(self) -> bool:
        if self.status == self.STATUS_REFUND_REQUIRED:
            return self.booking_applied_at is not None
        return self.booking_applied_at is not None and self.stats_applied_at is not None


class PaymentEvent(models.Model):
    """Inbox of authenticated provider events, kept so failed processing can be replayed."""

    RECEIVED = "received"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"
    STATUSES = [
        (RECEIVED, "Received"),
        (PROCESSED, "Processed"),
        (IGNORED, "Ignored"),
        (FAILED, "Failed"),
    ]

    provider = models.CharField(max_length=20, default=PaymentRecord.PROVIDER_STRIPE)
    provider_event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100)
    payload = models.JSONField(default=dict)
    status = models.CharField(max_length=12, choices=STATUSES, default=RECEIVED)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["received_at", "id"]

    def __str__(self):
        return f"{self.event_type} {self.provider_event_id} ({self.status})"
