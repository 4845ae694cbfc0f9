from decimal import Decimal

from django.conf import settings
from django.db import models


class Farm(models.Model):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"
    STATUSES = [
        (DRAFT, "Draft"),
        (PENDING, "Pending review"),
        (APPROVED, "Approved"),
        (REJECTED, "Rejected"),
        (SUSPENDED, "Suspended"),
    ]

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="farms",
    )
    name = models.CharField(max_length=200)
    slug = models.SlugField(unique=True)
    contact_email = models.EmailField()
    phone = models.CharField(max_length=30, blank=True)
    status = models.CharField(max_length=20, choices=STATUSES, default=DRAFT)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self):
        return self.name

    @property
    def accepts_bookings(self) -> bool:
        return self.status == self.APPROVED and self.is_active


class FarmStatistics(models.Model):
    """Running booking totals for a farm; only ever changed by atomic increments."""

    farm = models.OneToOneField(
        Farm,
        on_delete=models.CASCADE,
        related_name="statistics",
    )
    total_bookings = models.PositiveIntegerField(default=0)
    total_revenue = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "farm statistics"

    def __str__(self):
        return f"{self.farm.name} statistics"
