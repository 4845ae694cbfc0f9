from decimal import Decimal

import pytest

from accounts.models import User
from bookings.models import Booking
from bookings.services import notifications
from farms.models import Farm


@pytest.fixture
def booking(db):
    owner = User.objects.create_user(username="farmer@example.com", email="farmer@example.com", password="pw")
    guest = User.objects.create_user(username="guest@example.com", email="guest@example.com", password="pw")
    farm = Farm.objects.create(
        owner=owner,
        name="Green Acres",
        slug="green-acres",
        contact_email="hello@green.test",
        status=Farm.APPROVED,
    )
    return Booking.objects.create(
        user=guest,
        farm=farm,
        confirmation_code="ABCDEF123456",
        total=Decimal("67.20"),
    )


@pytest.mark.django_db
def test_recipient_falls_back_to_account_email(booking):
    notification = notifications.build_notification(booking, notifications.BOOKING_CREATED)

    assert notification.recipient == "guest@example.com"
    assert notification.context["total"] == "67.20"


@pytest.mark.django_db
def test_contact_email_takes_precedence(booking):
    booking.contact_info = {"email": "lead@example.com"}

    notification = notifications.build_notification(booking, notifications.BOOKING_CREATED)

    assert notification.recipient == "lead@example.com"


@pytest.mark.django_db
def test_notify_sends_from_farm_name(mailoutbox, settings, booking):
    settings.DEFAULT_FROM_EMAIL = "Farmstay <notifications@farmstay.test>"

    assert notifications.notify(booking, notifications.PAYMENT_RECEIVED, paid_amount="67.20")

    message = mailoutbox[0]
    assert message.subject == "Payment Received - ABCDEF123456"
    assert message.from_email == "Green Acres via Farmstay <notifications@farmstay.test>"
    assert "67.20 USD" in message.body


@pytest.mark.django_db
def test_delivery_failure_is_logged_not_raised(monkeypatch, caplog, booking):
    def broken_send_mail(*args, **kwargs):
        raise ConnectionError("smtp down")

    monkeypatch.setattr(notifications, "send_mail", broken_send_mail)

    assert notifications.notify(booking, notifications.BOOKING_CANCELLED, reason="Rain") is False
    assert "Failed to deliver booking_cancelled notification" in caplog.text


@pytest.mark.django_db
def test_status_update_includes_reason(booking):
    booking.status = Booking.NO_SHOW
    notification = notifications.build_notification(booking, notifications.BOOKING_STATUS_CHANGED, reason="Late")

    subject, body = notifications._render(notification)

    assert subject == "Booking Status Update - ABCDEF123456"
    assert "updated to: no-show" in body
    assert "Reason: Late" in body
