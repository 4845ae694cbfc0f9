from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from accounts.models import User
from activities.models import Activity
from farms.models import Farm


@pytest.fixture
def farm(db):
    owner = User.objects.create_user(username="farmer@example.com", email="farmer@example.com", password="pw", role=User.FARMER)
    return Farm.objects.create(owner=owner, name="Green Acres", slug="green-acres", contact_email="hello@green.test")


@pytest.mark.django_db
def test_blackout_dates_are_normalized_on_save(farm):
    activity = Activity.objects.create(
        farm=farm,
        name="Hayride",
        adult_price=Decimal("15.00"),
        blackout_dates=["2025-08-02T10:00:00Z", "2025-08-01"],
    )

    activity.refresh_from_db()
    assert activity.blackout_dates == ["2025-08-01", "2025-08-02"]


@pytest.mark.django_db
def test_min_above_max_is_rejected(farm):
    with pytest.raises(ValidationError):
        Activity.objects.create(
            farm=farm,
            name="Hayride",
            adult_price=Decimal("15.00"),
            min_participants=10,
            max_participants=4,
        )


@pytest.mark.django_db
def test_price_table_uses_activity_prices(farm):
    activity = Activity.objects.create(
        farm=farm,
        name="Milking",
        adult_price=Decimal("18.00"),
        senior_price=Decimal("12.00"),
        currency="eur",
    )

    table = activity.price_table()

    assert table.currency == "EUR"
    assert table.senior_price == Decimal("12.00")
    assert table.child_price == Decimal("18.00") * Decimal("0.7")
