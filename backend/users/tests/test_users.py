import pytest
from django.contrib.auth import get_user_model

pytestmark = pytest.mark.django_db

User = get_user_model()


def test_new_users_get_member_id():
    user = User.objects.create_user(username="dana", password="pw")

    assert user.member_id.startswith("MBR-")
    assert len(user.member_id) == 12
    assert user.is_active_member
    assert user.points_balance == 0


def test_member_id_is_stable(renter_user):
    member_id = renter_user.member_id

    renter_user.first_name = "Rory"
    renter_user.save(update_fields=["first_name"])
    renter_user.refresh_from_db()

    assert renter_user.member_id == member_id


def test_token_and_profile(api_client, renter_user):
    resp = api_client.post(
        "/api/users/token/", {"username": "renter", "password": "testpass"}, format="json"
    )
    assert resp.status_code == 200
    access = resp.data["access"]

    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
    me = api_client.get("/api/users/me/")

    assert me.status_code == 200
    assert me.data["username"] == "renter"
    assert me.data["member_id"] == renter_user.member_id


def test_profile_cannot_change_balance(api_client, renter_user):
    api_client.force_authenticate(renter_user)

    resp = api_client.patch(
        "/api/users/me/", {"first_name": "Rory", "points_balance": 99999}, format="json"
    )

    assert resp.status_code == 200
    renter_user.refresh_from_db()
    assert renter_user.first_name == "Rory"
    assert renter_user.points_balance == 0
