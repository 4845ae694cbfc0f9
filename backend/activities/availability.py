from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

AVAILABLE = "available"
BLACKOUT = "blackout"
OVER_CAPACITY = "over_capacity"
UNDER_MINIMUM = "under_minimum"


@dataclass(frozen=True)
class AvailabilityResult:
    allowed: bool
    reason: str
    message: str = ""


def as_calendar_day(value) -> date:
    """Reduce a date, naive/aware datetime or ISO string to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc


def blackout_days(values: Iterable) -> set[date]:
    return {as_calendar_day(value) for value in values or ()}


def check_availability(activity, requested_date, participant_count: int) -> AvailabilityResult:
    """
    Decide whether ``activity`` can take ``participant_count`` people on ``requested_date``.

    Checks run in a fixed order and the first failure wins: blackout date,
    then maximum capacity, then minimum group size.
    """
    day = as_calendar_day(requested_date)
    name = getattr(activity, "name", "Activity")

    if day in blackout_days(activity.blackout_dates):
        return AvailabilityResult(
            allowed=False,
            reason=BLACKOUT,
            message=f"{name} is not available on {day.isoformat()}.",
        )

    maximum = activity.max_participants
    if maximum is not None and participant_count > maximum:
        return AvailabilityResult(
            allowed=False,
            reason=OVER_CAPACITY,
            message=f"Too many participants for {name}. Maximum: {maximum}.",
        )

    minimum = activity.min_participants
    if minimum is not None and participant_count < minimum:
        return AvailabilityResult(
            allowed=False,
            reason=UNDER_MINIMUM,
            message=f"Not enough participants for {name}. Minimum: {minimum}.",
        )

    return AvailabilityResult(allowed=True, reason=AVAILABLE)
