from datetime import date
from decimal import Decimal

import pytest
from django.utils import timezone

from accounts.capabilities import caller_for
from accounts.models import User
from activities.models import Activity
from activities.pricing import Participants
from bookings.models import Booking
from bookings.services import ledger
from bookings.services.ledger import LineRequest
from core.exceptions import (
    AccessDenied,
    AlreadyCancelled,
    AvailabilityDenied,
    InvalidParticipants,
    InvalidTransition,
    NotFound,
    PaymentCaptured,
    TransientDependencyFailure,
)
from farms.models import Farm

VISIT_DAY = date(2030, 6, 1)


@pytest.fixture
def farmer(db):
    return User.objects.create_user(
        username="farmer@example.com",
        email="farmer@example.com",
        password="password123",
        role=User.FARMER,
    )


@pytest.fixture
def tourist(db):
    return User.objects.create_user(
        username="tourist@example.com",
        email="tourist@example.com",
        password="password123",
    )


@pytest.fixture
def farm(farmer):
    return Farm.objects.create(
        owner=farmer,
        name="Green Acres",
        slug="green-acres",
        contact_email="hello@green.test",
        status=Farm.APPROVED,
    )


@pytest.fixture
def activity(farm):
    return Activity.objects.create(
        farm=farm,
        name="Strawberry Picking",
        adult_price=Decimal("20.00"),
        max_participants=10,
        blackout_dates=["2030-07-04"],
    )


def line(activity, *, adults=3, children=0, day=VISIT_DAY):
    return LineRequest(activity_id=activity.pk, date=day, participants=Participants(adults=adults, children=children))


def book(tourist, farm, activity, **kwargs):
    return ledger.create_booking(caller_for(tourist), farm_id=farm.pk, lines=[line(activity, **kwargs)])


def confirm(booking, transaction_id="pi_123"):
    return ledger.confirm_payment(
        booking_id=booking.pk,
        transaction_id=transaction_id,
        paid_amount=booking.total,
        paid_at=timezone.now(),
    )


@pytest.mark.django_db
def test_create_booking_prices_and_persists_pending_booking(mailoutbox, tourist, farm, activity):
    booking = ledger.create_booking(
        caller_for(tourist),
        farm_id=farm.pk,
        lines=[line(activity)],
        contact_info={"email": "lead@example.com"},
        special_requests="Gluten free snacks",
    )

    booking.refresh_from_db()
    assert booking.status == Booking.PENDING
    assert booking.payment_status == Booking.PAYMENT_PENDING
    assert len(booking.confirmation_code) == 12
    assert booking.subtotal == Decimal("60.00")
    assert booking.taxes == Decimal("7.20")
    assert booking.total == Decimal("67.20")
    assert booking.group_details["total_participants"] == 3
    assert booking.lines.count() == 1
    assert booking.timeline.filter(status=Booking.PENDING).count() == 1

    assert len(mailoutbox) == 1
    assert booking.confirmation_code in mailoutbox[0].subject
    assert mailoutbox[0].to == ["lead@example.com"]


@pytest.mark.django_db
def test_booking_totals_sum_line_snapshots(tourist, farm, activity):
    second = Activity.objects.create(farm=farm, name="Cheese Workshop", adult_price=Decimal("12.50"))

    booking = ledger.create_booking(
        caller_for(tourist),
        farm_id=farm.pk,
        lines=[line(activity), line(second, adults=1, children=2)],
    )

    lines = list(booking.lines.all())
    assert [entry.position for entry in lines] == [0, 1]
    assert booking.subtotal == sum(entry.subtotal for entry in lines)
    assert booking.taxes == sum(entry.taxes for entry in lines)
    assert booking.total == sum(entry.total for entry in lines)


@pytest.mark.django_db
def test_blackout_day_rejects_whole_booking(tourist, farm, activity):
    with pytest.raises(AvailabilityDenied) as excinfo:
        ledger.create_booking(
            caller_for(tourist),
            farm_id=farm.pk,
            lines=[line(activity), line(activity, day=date(2030, 7, 4))],
        )

    assert excinfo.value.reason == "blackout"
    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_empty_group_is_reported_before_blackout(tourist, farm, activity):
    with pytest.raises(InvalidParticipants):
        book(tourist, farm, activity, adults=0, day=date(2030, 7, 4))

    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_over_capacity_rejected(tourist, farm, activity):
    with pytest.raises(AvailabilityDenied) as excinfo:
        book(tourist, farm, activity, adults=11)

    assert excinfo.value.reason == "over_capacity"


@pytest.mark.django_db
def test_activity_from_another_farm_not_found(tourist, farm, farmer):
    other_farm = Farm.objects.create(
        owner=farmer,
        name="Hill Top",
        slug="hill-top",
        contact_email="hi@hill.test",
        status=Farm.APPROVED,
    )
    foreign = Activity.objects.create(farm=other_farm, name="Goat Yoga", adult_price=Decimal("25.00"))

    with pytest.raises(NotFound):
        book(tourist, farm, foreign)


@pytest.mark.django_db
def test_unapproved_farm_does_not_take_bookings(tourist, farm, activity):
    Farm.objects.filter(pk=farm.pk).update(status=Farm.PENDING)

    with pytest.raises(NotFound):
        book(tourist, farm, activity)


@pytest.mark.django_db
def test_inactive_activity_rejected(tourist, farm, activity):
    Activity.objects.filter(pk=activity.pk).update(is_active=False)

    with pytest.raises(AvailabilityDenied) as excinfo:
        book(tourist, farm, activity)

    assert excinfo.value.reason == "inactive"


@pytest.mark.django_db
def test_confirmation_code_collision_is_retried(monkeypatch, tourist, farm, activity):
    existing = book(tourist, farm, activity)
    codes = iter([existing.confirmation_code, "C0FFEE000001"])
    monkeypatch.setattr(ledger, "generate_confirmation_code", lambda: next(codes))

    booking = book(tourist, farm, activity)

    assert booking.confirmation_code == "C0FFEE000001"
    assert Booking.objects.count() == 2


@pytest.mark.django_db
def test_confirmation_code_attempts_are_bounded(monkeypatch, settings, tourist, farm, activity):
    settings.CONFIRMATION_CODE_ATTEMPTS = 2
    existing = book(tourist, farm, activity)
    monkeypatch.setattr(ledger, "generate_confirmation_code", lambda: existing.confirmation_code)

    with pytest.raises(TransientDependencyFailure):
        book(tourist, farm, activity)

    assert Booking.objects.count() == 1


@pytest.mark.django_db
def test_cancel_pending_booking(mailoutbox, tourist, farm, activity):
    booking = book(tourist, farm, activity)

    cancelled = ledger.cancel_booking(caller_for(tourist), booking.pk, reason="Change of plans")

    cancelled.refresh_from_db()
    assert cancelled.status == Booking.CANCELLED
    assert cancelled.cancelled_by == Booking.CANCELLED_BY_USER
    assert cancelled.cancellation_reason == "Change of plans"
    assert cancelled.cancelled_at is not None
    assert "Cancelled" in mailoutbox[-1].subject


@pytest.mark.django_db
def test_cancel_twice_reports_already_cancelled(tourist, farm, activity):
    booking = book(tourist, farm, activity)
    ledger.cancel_booking(caller_for(tourist), booking.pk)

    with pytest.raises(AlreadyCancelled):
        ledger.cancel_booking(caller_for(tourist), booking.pk)


@pytest.mark.django_db
def test_only_owner_can_cancel(tourist, farm, activity):
    booking = book(tourist, farm, activity)
    stranger = User.objects.create_user(username="other@example.com", email="other@example.com", password="pw")

    with pytest.raises(AccessDenied):
        ledger.cancel_booking(caller_for(stranger), booking.pk)


@pytest.mark.django_db
def test_paid_booking_cannot_be_cancelled_by_user(tourist, farm, activity):
    booking = book(tourist, farm, activity)
    confirm(booking)

    with pytest.raises(PaymentCaptured):
        ledger.cancel_booking(caller_for(tourist), booking.pk)


@pytest.mark.django_db
def test_completed_booking_cannot_be_cancelled(farmer, tourist, farm, activity):
    booking = book(tourist, farm, activity)
    confirm(booking)
    ledger.transition_status(caller_for(farmer), booking.pk, Booking.COMPLETED)

    with pytest.raises(InvalidTransition):
        ledger.cancel_booking(caller_for(tourist), booking.pk)


@pytest.mark.django_db
def test_farm_owner_marks_confirmed_booking_completed(mailoutbox, farmer, tourist, farm, activity):
    booking = book(tourist, farm, activity)
    confirm(booking)

    updated = ledger.transition_status(caller_for(farmer), booking.pk, Booking.NO_SHOW, reason="Nobody came")

    assert updated.status == Booking.NO_SHOW
    assert updated.timeline.filter(status=Booking.NO_SHOW, note="Nobody came").exists()
    assert "Status Update" in mailoutbox[-1].subject


@pytest.mark.django_db
def test_farm_cannot_complete_unpaid_booking(farmer, tourist, farm, activity):
    booking = book(tourist, farm, activity)

    with pytest.raises(InvalidTransition):
        ledger.transition_status(caller_for(farmer), booking.pk, Booking.COMPLETED)


@pytest.mark.django_db
def test_other_farmer_cannot_change_status(tourist, farm, activity):
    booking = book(tourist, farm, activity)
    confirm(booking)
    other = User.objects.create_user(username="f2@example.com", email="f2@example.com", password="pw", role=User.FARMER)

    with pytest.raises(AccessDenied):
        ledger.transition_status(caller_for(other), booking.pk, Booking.COMPLETED)


@pytest.mark.django_db
def test_tourist_cannot_change_status(tourist, farm, activity):
    booking = book(tourist, farm, activity)

    with pytest.raises(AccessDenied):
        ledger.transition_status(caller_for(tourist), booking.pk, Booking.COMPLETED)


@pytest.mark.django_db
def test_modify_replaces_lines_and_reprices(tourist, farm, activity):
    booking = book(tourist, farm, activity)
    ledger.attach_payment_intent(booking, "pi_old", amount=booking.total, currency="usd")

    updated = ledger.modify_booking(
        caller_for(tourist),
        booking.pk,
        lines=[line(activity, adults=5)],
        special_requests="Wheelchair access",
    )

    updated.refresh_from_db()
    assert updated.subtotal == Decimal("100.00")
    assert updated.taxes == Decimal("12.00")
    assert updated.total == Decimal("112.00")
    assert updated.payment_intent_id == ""
    assert updated.intent_amount is None
    assert updated.intent_currency == ""
    assert updated.special_requests == "Wheelchair access"
    assert updated.group_details["total_participants"] == 5
    assert [entry.adults for entry in updated.lines.all()] == [5]


@pytest.mark.django_db
def test_patching_group_details_keeps_participant_count(tourist, farm, activity):
    booking = book(tourist, farm, activity, adults=2, children=1)

    updated = ledger.modify_booking(
        caller_for(tourist),
        booking.pk,
        group_details={"group_name": "Smith family", "total_participants": 40},
    )

    updated.refresh_from_db()
    assert updated.group_details == {"group_name": "Smith family", "total_participants": 3}


@pytest.mark.django_db
def test_modify_rejects_unavailable_lines_without_changes(tourist, farm, activity):
    booking = book(tourist, farm, activity)

    with pytest.raises(AvailabilityDenied):
        ledger.modify_booking(caller_for(tourist), booking.pk, lines=[line(activity, adults=20)])

    booking.refresh_from_db()
    assert booking.total == Decimal("67.20")
    assert booking.lines.count() == 1


@pytest.mark.django_db
def test_modify_only_pending(tourist, farm, activity):
    booking = book(tourist, farm, activity)
    confirm(booking)

    with pytest.raises(InvalidTransition):
        ledger.modify_booking(caller_for(tourist), booking.pk, special_requests="Late arrival")


@pytest.mark.django_db
def test_confirm_payment_is_idempotent_for_same_transaction(tourist, farm, activity):
    booking = book(tourist, farm, activity)

    assert confirm(booking, "pi_1") is True
    assert confirm(booking, "pi_1") is True
    assert confirm(booking, "pi_2") is False
    assert Booking.objects.get(pk=booking.pk).timeline.filter(status=Booking.CONFIRMED).count() == 1


@pytest.mark.django_db
def test_find_by_confirmation_code_is_case_insensitive(tourist, farm, activity):
    booking = book(tourist, farm, activity)

    found = ledger.find_by_confirmation_code(caller_for(tourist), booking.confirmation_code.lower())

    assert found.pk == booking.pk


@pytest.mark.django_db
def test_farm_owner_sees_farm_bookings(farmer, tourist, farm, activity):
    booking = book(tourist, farm, activity)

    assert list(ledger.bookings_for_caller(caller_for(farmer))) == [booking]
    assert ledger.get_booking_for_caller(caller_for(farmer), booking.pk).pk == booking.pk
