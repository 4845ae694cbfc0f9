from __future__ import annotations

import logging
from decimal import Decimal

from django.db.models import F

from farms.models import FarmStatistics

logger = logging.getLogger(__name__)


def record_completed_booking(*, farm_id: int, amount: Decimal) -> None:
    """
    Add one completed booking and its revenue to the farm's running totals.

    The change is a single UPDATE with F() expressions so concurrent
    completions for the same farm cannot overwrite each other.
    """
    updated = FarmStatistics.objects.filter(farm_id=farm_id).update(
        total_bookings=F("total_bookings") + 1,
        total_revenue=F("total_revenue") + amount,
    )
    if not updated:
        FarmStatistics.objects.get_or_create(farm_id=farm_id)
        FarmStatistics.objects.filter(farm_id=farm_id).update(
            total_bookings=F("total_bookings") + 1,
            total_revenue=F("total_revenue") + amount,
        )
    logger.info("Farm %s statistics incremented by %s", farm_id, amount)


def ensure_statistics(farm) -> FarmStatistics:
    stats, _ = FarmStatistics.objects.get_or_create(farm=farm)
    return stats
