from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from activities.models import Activity
from bookings.models import Booking
from bookings.services import ledger
from farms.models import Farm


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
        first_name="Tara",
        last_name="Tourist",
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


def client_for(user):
    client = APIClient()
    client.force_authenticate(user)
    return client


def booking_payload(farm, activity, *, day="2030-06-01", adults=3):
    return {
        "farm_id": farm.pk,
        "activities": [
            {
                "activity_id": activity.pk,
                "date": day,
                "participants": {"adults": adults},
                "time_slot": {"start_time": "09:00", "end_time": "11:00"},
            }
        ],
        "contact_info": {"email": "lead@example.com", "phone": "555-0101"},
        "special_requests": "Bring baskets",
    }


@pytest.mark.django_db
def test_create_booking_returns_priced_pending_booking(tourist, farm, activity):
    response = client_for(tourist).post("/api/bookings/", booking_payload(farm, activity), format="json")

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == Booking.PENDING
    assert body["pricing"] == {"subtotal": "60.00", "taxes": "7.20", "total": "67.20", "currency": "USD"}
    assert body["payment"]["status"] == Booking.PAYMENT_PENDING
    assert body["lines"][0]["participants"] == {"adults": 3, "children": 0, "seniors": 0}
    assert body["lines"][0]["start_time"] == "09:00:00"
    assert body["group_details"]["total_participants"] == 3
    assert body["timeline"][0]["status"] == Booking.PENDING
    assert Booking.objects.filter(user=tourist, confirmation_code=body["confirmation_code"]).exists()


@pytest.mark.django_db
def test_create_booking_on_blackout_day_is_rejected(tourist, farm, activity):
    response = client_for(tourist).post(
        "/api/bookings/",
        booking_payload(farm, activity, day="2030-07-04"),
        format="json",
    )

    assert response.status_code == 400
    assert response.json()["code"] == "availability_denied"
    assert response.json()["reason"] == "blackout"
    assert not Booking.objects.exists()


@pytest.mark.django_db
def test_create_booking_with_no_participants_is_rejected(tourist, farm, activity):
    response = client_for(tourist).post(
        "/api/bookings/",
        booking_payload(farm, activity, adults=0),
        format="json",
    )

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_participants"


@pytest.mark.django_db
def test_create_booking_for_unknown_farm_returns_404(tourist, farm, activity):
    payload = booking_payload(farm, activity)
    payload["farm_id"] = farm.pk + 100

    response = client_for(tourist).post("/api/bookings/", payload, format="json")

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


@pytest.mark.django_db
def test_malformed_request_uses_serializer_errors(tourist, farm):
    response = client_for(tourist).post("/api/bookings/", {"farm_id": farm.pk, "activities": []}, format="json")

    assert response.status_code == 400
    assert "activities" in response.json()


@pytest.mark.django_db
def test_list_only_shows_own_bookings(tourist, farm, activity):
    client_for(tourist).post("/api/bookings/", booking_payload(farm, activity), format="json")
    other = User.objects.create_user(username="other@example.com", email="other@example.com", password="pw")

    mine = client_for(tourist).get("/api/bookings/")
    theirs = client_for(other).get("/api/bookings/")

    assert len(mine.json()) == 1
    assert theirs.json() == []


@pytest.mark.django_db
def test_list_filters_by_status(tourist, farm, activity):
    client = client_for(tourist)
    first = client.post("/api/bookings/", booking_payload(farm, activity), format="json").json()
    client.post("/api/bookings/", booking_payload(farm, activity), format="json")
    client.post(f"/api/bookings/{first['id']}/cancel/", {}, format="json")

    response = client.get("/api/bookings/", {"status": Booking.CANCELLED})

    assert [item["id"] for item in response.json()] == [first["id"]]


@pytest.mark.django_db
def test_stranger_cannot_read_booking(tourist, farm, activity):
    created = client_for(tourist).post("/api/bookings/", booking_payload(farm, activity), format="json").json()
    other = User.objects.create_user(username="other@example.com", email="other@example.com", password="pw")

    response = client_for(other).get(f"/api/bookings/{created['id']}/")

    assert response.status_code == 403
    assert response.json()["code"] == "access_denied"


@pytest.mark.django_db
def test_farm_owner_can_read_booking(farmer, tourist, farm, activity):
    created = client_for(tourist).post("/api/bookings/", booking_payload(farm, activity), format="json").json()

    response = client_for(farmer).get(f"/api/bookings/{created['id']}/")

    assert response.status_code == 200
    assert response.json()["farm_name"] == "Green Acres"


@pytest.mark.django_db
def test_patch_updates_details_and_reprices(tourist, farm, activity):
    client = client_for(tourist)
    created = client.post("/api/bookings/", booking_payload(farm, activity), format="json").json()

    response = client.patch(
        f"/api/bookings/{created['id']}/",
        {
            "special_requests": "Vegetarian lunch",
            "activities": [{"activity_id": activity.pk, "date": "2030-06-02", "participants": {"adults": 1}}],
        },
        format="json",
    )

    assert response.status_code == 200
    body = response.json()
    assert body["special_requests"] == "Vegetarian lunch"
    assert body["pricing"]["total"] == "22.40"
    assert body["lines"][0]["date"] == "2030-06-02"


@pytest.mark.django_db
def test_cancel_endpoint(tourist, farm, activity):
    client = client_for(tourist)
    created = client.post("/api/bookings/", booking_payload(farm, activity), format="json").json()

    response = client.post(f"/api/bookings/{created['id']}/cancel/", {"reason": "Weather"}, format="json")
    again = client.post(f"/api/bookings/{created['id']}/cancel/", {}, format="json")

    assert response.status_code == 200
    assert response.json()["detail"] == "Booking cancelled successfully."
    assert response.json()["booking"]["cancellation"]["reason"] == "Weather"
    assert again.status_code == 400
    assert again.json()["code"] == "already_cancelled"


@pytest.mark.django_db
def test_cancel_after_payment_conflicts(tourist, farm, activity):
    client = client_for(tourist)
    created = client.post("/api/bookings/", booking_payload(farm, activity), format="json").json()
    ledger.confirm_payment(
        booking_id=created["id"],
        transaction_id="pi_paid",
        paid_amount=Decimal("67.20"),
        paid_at=timezone.now(),
    )

    response = client.post(f"/api/bookings/{created['id']}/cancel/", {}, format="json")

    assert response.status_code == 409
    assert response.json()["code"] == "payment_captured"


@pytest.mark.django_db
def test_farm_owner_completes_confirmed_booking(farmer, tourist, farm, activity):
    created = client_for(tourist).post("/api/bookings/", booking_payload(farm, activity), format="json").json()
    ledger.confirm_payment(
        booking_id=created["id"],
        transaction_id="pi_paid",
        paid_amount=Decimal("67.20"),
        paid_at=timezone.now(),
    )

    response = client_for(farmer).post(
        f"/api/bookings/{created['id']}/status/",
        {"status": Booking.COMPLETED},
        format="json",
    )

    assert response.status_code == 200
    assert response.json()["status"] == Booking.COMPLETED
    assert [entry["status"] for entry in response.json()["timeline"]] == [
        Booking.PENDING,
        Booking.CONFIRMED,
        Booking.COMPLETED,
    ]


@pytest.mark.django_db
def test_status_endpoint_rejects_unknown_status(farmer, tourist, farm, activity):
    created = client_for(tourist).post("/api/bookings/", booking_payload(farm, activity), format="json").json()

    response = client_for(farmer).post(f"/api/bookings/{created['id']}/status/", {"status": "confirmed"}, format="json")

    assert response.status_code == 400
    assert "status" in response.json()


@pytest.mark.django_db
def test_lookup_by_confirmation_code(tourist, farm, activity):
    client = client_for(tourist)
    created = client.post("/api/bookings/", booking_payload(farm, activity), format="json").json()

    response = client.get(f"/api/bookings/confirmation/{created['confirmation_code'].lower()}/")
    missing = client.get("/api/bookings/confirmation/NOPE00000000/")

    assert response.status_code == 200
    assert response.json()["id"] == created["id"]
    assert missing.status_code == 404
