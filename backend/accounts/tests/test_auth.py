import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

User = get_user_model()


@pytest.fixture
def client():
    return APIClient()


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username="tourist@example.com",
        email="tourist@example.com",
        password="examplepass",
        first_name="Tara",
        last_name="Tourist",
    )


def test_token_obtain_returns_jwt_pair(db, client, user):
    response = client.post(
        "/api/auth/token/",
        {"username": "tourist@example.com", "password": "examplepass"},
        format="json",
    )

    assert response.status_code == 200
    body = response.json()
    assert "access" in body and "refresh" in body


def test_token_obtain_rejects_bad_password(db, client, user):
    response = client.post(
        "/api/auth/token/",
        {"username": "tourist@example.com", "password": "nope"},
        format="json",
    )

    assert response.status_code == 401


def test_bearer_token_authenticates_booking_list(db, client, user):
    tokens = client.post(
        "/api/auth/token/",
        {"username": "tourist@example.com", "password": "examplepass"},
        format="json",
    ).json()

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
    response = client.get("/api/bookings/")

    assert response.status_code == 200


def test_booking_list_requires_authentication(db, client):
    response = client.get("/api/bookings/")

    assert response.status_code == 401
