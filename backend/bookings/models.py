from decimal import Decimal

from django.conf import settings
from django.db import models


class Booking(models.Model):
    """Reservation of one or more farm activities by a single user."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"
    STATUSES = [
        (PENDING, "Pending"),
        (CONFIRMED, "Confirmed"),
        (CANCELLED, "Cancelled"),
        (COMPLETED, "Completed"),
        (NO_SHOW, "No-show"),
    ]

    TRANSITIONS = {
        PENDING: {CONFIRMED, CANCELLED},
        CONFIRMED: {COMPLETED, NO_SHOW, CANCELLED},
        CANCELLED: set(),
        COMPLETED: set(),
        NO_SHOW: set(),
    }

    PAYMENT_PENDING = "pending"
    PAYMENT_COMPLETED = "completed"
    PAYMENT_FAILED = "failed"
    PAYMENT_STATUSES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_COMPLETED, "Completed"),
        (PAYMENT_FAILED, "Failed"),
    ]

    CANCELLED_BY_USER = "user"
    CANCELLED_BY_FARM = "farm"
    CANCELLED_BY_CHOICES = [
        (CANCELLED_BY_USER, "User"),
        (CANCELLED_BY_FARM, "Farm"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    farm = models.ForeignKey("farms.Farm", on_delete=models.PROTECT, related_name="bookings")
    confirmation_code = models.CharField(max_length=16, unique=True)
    status = models.CharField(max_length=12, choices=STATUSES, default=PENDING)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    taxes = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="USD")

    payment_status = models.CharField(max_length=12, choices=PAYMENT_STATUSES, default=PAYMENT_PENDING)
    payment_intent_id = models.CharField(max_length=255, blank=True)
    intent_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    intent_currency = models.CharField(max_length=3, blank=True)
    transaction_id = models.CharField(max_length=255, blank=True)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True)
    cancelled_by = models.CharField(max_length=10, choices=CANCELLED_BY_CHOICES, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    contact_info = models.JSONField(default=dict, blank=True)
    group_details = models.JSONField(default=dict, blank=True)
    special_requests = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "status"], name="booking_user_status_idx"),
            models.Index(fields=["farm", "status"], name="booking_farm_status_idx"),
        ]

    def __str__(self):
        return f"Booking {self.confirmation_code} ({self.status})"

    @property
    def total_participants(self) -> int:
        return sum(line.participant_count for line in self.lines.all())

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.TRANSITIONS.get(self.status, set())


class ActivityLine(models.Model):
    """One activity within a booking, with the price captured at booking time."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="lines")
    position = models.PositiveIntegerField(default=0)
    activity = models.ForeignKey("activities.Activity", on_delete=models.PROTECT, related_name="booking_lines")
    date = models.DateField()
    start_time = models.TimeField(null=True, blank=True)
    end_time = models.TimeField(null=True, blank=True)
    adults = models.PositiveIntegerField(default=0)
    children = models.PositiveIntegerField(default=0)
    seniors = models.PositiveIntegerField(default=0)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    taxes = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")

    class Meta:
        ordering = ["booking_id", "position"]
        unique_together = ("booking", "position")

    def __str__(self):
        return f"{self.activity.name} on {self.date:%Y-%m-%d}"

    @property
    def participant_count(self) -> int:
        return self.adults + self.children + self.seniors


class BookingTimelineEntry(models.Model):
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="timeline")
    status = models.CharField(max_length=12, choices=Booking.STATUSES)
    note = models.TextField(blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "booking timeline entries"

    def __str__(self):
        return f"{self.booking.confirmation_code} -> {self.status}"
