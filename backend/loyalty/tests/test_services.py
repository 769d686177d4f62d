from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from loyalty.models import PointsLedgerEntry
from loyalty.services import (
    InsufficientPoints,
    PointsError,
    adjust_points,
    award_points,
    expire_points_for_user,
    points_due_to_expire,
    redeem_points,
    reverse_points,
    update_points_balance,
)
from loyalty.tasks import expire_points
from operator_settings.models import DbSetting

pytestmark = pytest.mark.django_db

EntryType = PointsLedgerEntry.Type


def _award(booking):
    return award_points(
        user=booking.renter,
        booking=booking,
        booking_total=booking.total_amount,
        tax_amount=booking.tax_amount,
        add_ons_total=booking.add_ons_total,
    )


def test_award_once_per_booking(booking_factory, renter_user):
    booking = booking_factory()

    first = _award(booking)
    second = _award(booking)

    assert first == {"points_earned": 1500, "already_awarded": False}
    assert second == {"points_earned": 0, "already_awarded": True}
    renter_user.refresh_from_db()
    assert renter_user.points_balance == 1500
    entry = PointsLedgerEntry.objects.get(booking=booking)
    assert entry.balance_after == 1500
    assert entry.money_value == Decimal("150.00")
    assert entry.expires_at is None


def test_inactive_member_earns_nothing(booking_factory, renter_user):
    renter_user.membership_status = renter_user.MembershipStatus.SUSPENDED
    renter_user.save()
    booking = booking_factory()

    assert _award(booking) == {"points_earned": 0, "already_awarded": False}
    assert not PointsLedgerEntry.objects.exists()


def test_earned_points_expire_when_enabled(booking_factory):
    DbSetting.objects.create(
        key="POINTS_EXPIRATION",
        value_json={"enabled": True, "months": 12},
        value_type=DbSetting.ValueType.JSON,
    )
    booking = booking_factory()

    _award(booking)

    entry = PointsLedgerEntry.objects.get(booking=booking)
    assert entry.expires_at > timezone.now() + timedelta(days=360)


def test_redeem_and_insufficient_balance(booking_factory, renter_user):
    booking = booking_factory()
    _award(booking)

    balance = redeem_points(
        user=renter_user, booking=booking, points_to_redeem=500, discount_value=Decimal("5.00")
    )

    assert balance == 1000
    with pytest.raises(InsufficientPoints) as exc_info:
        redeem_points(
            user=renter_user,
            booking=booking,
            points_to_redeem=1001,
            discount_value=Decimal("10.01"),
        )
    assert exc_info.value.balance == 1000
    assert exc_info.value.requested == 1001
    renter_user.refresh_from_db()
    assert renter_user.points_balance == 1000


def test_redeem_requires_positive_values(booking_factory, renter_user):
    booking = booking_factory()

    with pytest.raises(PointsError):
        redeem_points(
            user=renter_user, booking=booking, points_to_redeem=0, discount_value=Decimal("1")
        )
    with pytest.raises(PointsError):
        redeem_points(
            user=renter_user, booking=booking, points_to_redeem=100, discount_value=Decimal("0")
        )


def test_reverse_takes_back_what_is_left(booking_factory, renter_user):
    booking = booking_factory()
    _award(booking)
    redeem_points(
        user=renter_user, booking=booking, points_to_redeem=1000, discount_value=Decimal("10.00")
    )

    first = reverse_points(user=renter_user, booking=booking, reason="booking refunded")
    second = reverse_points(user=renter_user, booking=booking, reason="booking refunded")

    assert first == {"points_reversed": 500, "already_reversed": False}
    assert second == {"points_reversed": 0, "already_reversed": True}
    renter_user.refresh_from_db()
    assert renter_user.points_balance == 0


def test_reverse_without_earning_is_noop(booking_factory, renter_user):
    booking = booking_factory()

    assert reverse_points(user=renter_user, booking=booking, reason="refund") == {
        "points_reversed": 0,
        "already_reversed": False,
    }


def test_adjust_points(renter_user, finance_user):
    assert adjust_points(user=renter_user, points=250, notes="goodwill", actor=finance_user) == 250
    balance = adjust_points(user=renter_user, points=-50, notes="correction", actor=finance_user)
    assert balance == 200

    with pytest.raises(PointsError):
        adjust_points(user=renter_user, points=0, notes="nothing", actor=finance_user)
    with pytest.raises(PointsError):
        adjust_points(user=renter_user, points=10, notes="  ", actor=finance_user)
    with pytest.raises(InsufficientPoints):
        adjust_points(user=renter_user, points=-201, notes="too much", actor=finance_user)

    entry = PointsLedgerEntry.objects.filter(type=EntryType.ADJUST).first()
    assert entry.created_by == finance_user
    assert entry.balance_after == 200


def _earn(user, points, *, expires_at):
    update_points_balance(user.pk, points, entry_type=EntryType.EARN, expires_at=expires_at)


def test_oldest_points_are_spent_first(renter_user):
    now = timezone.now()
    _earn(renter_user, 1000, expires_at=now - timedelta(days=1))
    _earn(renter_user, 500, expires_at=now + timedelta(days=90))
    update_points_balance(renter_user.pk, -300, entry_type=EntryType.REDEEM)
    renter_user.refresh_from_db()

    assert points_due_to_expire(renter_user, now=now) == 700
    assert expire_points_for_user(renter_user, now=now) == 700
    renter_user.refresh_from_db()
    assert renter_user.points_balance == 500
    assert points_due_to_expire(renter_user, now=now) == 0


def test_expire_task_skips_when_disabled(renter_user):
    _earn(renter_user, 100, expires_at=timezone.now() - timedelta(days=1))

    assert expire_points() == {"users": 0, "expired": 0}


def test_expire_task(renter_user, other_user):
    DbSetting.objects.create(
        key="POINTS_EXPIRATION",
        value_json={"enabled": True, "months": 12},
        value_type=DbSetting.ValueType.JSON,
    )
    past = timezone.now() - timedelta(days=1)
    _earn(renter_user, 400, expires_at=past)
    _earn(other_user, 100, expires_at=timezone.now() + timedelta(days=30))

    assert expire_points() == {"users": 1, "expired": 400}
    other_user.refresh_from_db()
    assert other_user.points_balance == 100
