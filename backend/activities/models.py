from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from .availability import as_calendar_day, blackout_days
from .pricing import PriceTable


class Activity(models.Model):
    HARVESTING = "harvesting"
    PLANTING = "planting"
    WORKSHOP = "workshop"
    CULTURAL = "cultural"
    EDUCATIONAL = "educational"
    RECREATIONAL = "recreational"
    CATEGORIES = [
        (HARVESTING, "Harvesting"),
        (PLANTING, "Planting"),
        (WORKSHOP, "Workshop"),
        (CULTURAL, "Cultural"),
        (EDUCATIONAL, "Educational"),
        (RECREATIONAL, "Recreational"),
    ]

    farm = models.ForeignKey("farms.Farm", on_delete=models.CASCADE, related_name="activities")
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=20, choices=CATEGORIES, default=RECREATIONAL)
    description = models.TextField(blank=True)
    adult_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    child_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    senior_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default="USD")
    min_participants = models.PositiveIntegerField(default=1)
    max_participants = models.PositiveIntegerField(default=20)
    blackout_dates = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["farm_id", "name"]
        verbose_name_plural = "activities"

    def __str__(self):
        return f"{self.name} @ {self.farm.name}"

    @property
    def blackout_date_set(self):
        return blackout_days(self.blackout_dates)

    def price_table(self) -> PriceTable:
        return PriceTable(
            adult=self.adult_price,
            child=self.child_price,
            senior=self.senior_price,
            currency=self.currency.upper(),
        )

    def clean(self):
        super().clean()
        if self.min_participants and self.max_participants and self.min_participants > self.max_participants:
            raise ValidationError({"max_participants": "Maximum participants must be at least the minimum."})
        try:
            self.blackout_dates = sorted(day.isoformat() for day in self.blackout_date_set)
        except ValueError as exc:
            raise ValidationError({"blackout_dates": str(exc)}) from exc

    def add_blackout_date(self, value):
        days = self.blackout_date_set
        days.add(as_calendar_day(value))
        self.blackout_dates = sorted(day.isoformat() for day in days)

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
