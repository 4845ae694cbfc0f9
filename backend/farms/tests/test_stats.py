from decimal import Decimal

import pytest

from accounts.models import User
from farms.models import Farm, FarmStatistics
from farms.services.stats import record_completed_booking


@pytest.fixture
def farm(db):
    owner = User.objects.create_user(username="farmer@example.com", email="farmer@example.com", password="pw", role=User.FARMER)
    return Farm.objects.create(owner=owner, name="Green Acres", slug="green-acres", contact_email="hello@green.test")


@pytest.mark.django_db
def test_statistics_row_created_with_farm(farm):
    stats = FarmStatistics.objects.get(farm=farm)

    assert stats.total_bookings == 0
    assert stats.total_revenue == Decimal("0.00")


@pytest.mark.django_db
def test_record_completed_booking_increments_totals(farm):
    record_completed_booking(farm_id=farm.pk, amount=Decimal("100.00"))
    record_completed_booking(farm_id=farm.pk, amount=Decimal("25.50"))

    stats = FarmStatistics.objects.get(farm=farm)
    assert stats.total_bookings == 2
    assert stats.total_revenue == Decimal("125.50")


@pytest.mark.django_db
def test_record_completed_booking_recreates_missing_row(farm):
    FarmStatistics.objects.filter(farm=farm).delete()

    record_completed_booking(farm_id=farm.pk, amount=Decimal("40.00"))

    stats = FarmStatistics.objects.get(farm=farm)
    assert stats.total_bookings == 1
    assert stats.total_revenue == Decimal("40.00")
