from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.utils import timezone

from bookings.domain import (
    AddOnSelection,
    BookingModification,
    apply_modification,
    create_booking,
    late_return_fee,
    preview_modification,
    quote_booking,
    transition_booking,
)
from bookings.models import Booking, BookingEvent
from loyalty.models import PointsLedgerEntry
from loyalty.services import InsufficientPoints, update_points_balance
from payments.models import Payment

pytestmark = pytest.mark.django_db


def _window(days: int = 4):
    start = timezone.make_aware(datetime(2025, 3, 3, 10, 0))
    return start, start + timedelta(days=days)


def test_quote_prices_add_ons_per_day(category, add_on):
    start, end = _window(4)

    breakdown = quote_booking(
        category=category,
        start_at=start,
        end_at=end,
        add_ons=[AddOnSelection(add_on=add_on, quantity=2)],
    )

    assert breakdown.rental_days == 4
    assert breakdown.add_ons_total == Decimal("80.00")
    assert breakdown.subtotal == Decimal("290.00")


def test_create_booking_stores_totals_and_lines(category, add_on, renter_user):
    start, end = _window(4)

    booking = create_booking(
        renter=renter_user,
        category=category,
        start_at=start,
        end_at=end,
        protection_plan=Booking.ProtectionPlan.BASIC,
        add_ons=[AddOnSelection(add_on=add_on)],
    )

    assert booking.status == Booking.Status.PENDING
    assert booking.protection_daily_rate == Decimal("32.99")
    assert booking.total_amount == booking.subtotal + booking.tax_amount
    assert booking.totals["total"] == str(booking.total_amount)
    assert booking.add_ons_total == Decimal("40.00")
    assert booking.deposit_amount == Decimal("350.00")
    line = booking.add_ons.get()
    assert line.price == Decimal("40.00")


def test_create_booking_rejects_stale_client_total(category, renter_user):
    start, end = _window(4)

    with pytest.raises(ValidationError) as excinfo:
        create_booking(
            renter=renter_user,
            category=category,
            start_at=start,
            end_at=end,
            client_total=Decimal("200.00"),
        )

    assert "total" in excinfo.value.message_dict
    assert not Booking.objects.exists()


def test_create_booking_accepts_total_within_tolerance(category, renter_user):
    start, end = _window(4)

    booking = create_booking(
        renter=renter_user,
        category=category,
        start_at=start,
        end_at=end,
        client_total=Decimal("235.00"),
    )

    assert booking.total_amount == Decimal("235.20")


def test_rental_window_must_be_ordered(category):
    start, _ = _window()
    with pytest.raises(ValidationError):
        quote_booking(category=category, start_at=start, end_at=start)


def test_rental_longer_than_maximum_rejected(category, settings):
    settings.BOOKING_MAX_RENTAL_DAYS = 5
    start, end = _window(6)
    with pytest.raises(ValidationError):
        quote_booking(category=category, start_at=start, end_at=end)


@pytest.mark.parametrize(
    ("late", "expected"),
    [
        (timedelta(minutes=-30), Decimal("0.00")),
        (timedelta(minutes=15), Decimal("0.00")),
        (timedelta(minutes=16), Decimal("25.00")),
        (timedelta(minutes=70), Decimal("25.00")),
        (timedelta(minutes=75), Decimal("25.00")),
        (timedelta(minutes=76), Decimal("50.00")),
        (timedelta(hours=2, minutes=1), Decimal("50.00")),
    ],
)
def test_late_return_fee(late, expected):
    end = timezone.now()
    fee = late_return_fee(end, end + late, grace_minutes=15, hourly_fee=Decimal("25.00"))
    assert fee == expected


def test_transition_follows_table(booking_factory, unit):
    booking = booking_factory(status=Booking.Status.PENDING)

    booking = transition_booking(booking.id, Booking.Status.CONFIRMED)
    assert booking.status == Booking.Status.CONFIRMED

    with pytest.raises(ValidationError):
        transition_booking(booking.id, Booking.Status.COMPLETED)


def test_activation_requires_unit(booking_factory, unit):
    booking = booking_factory()

    with pytest.raises(ValidationError) as excinfo:
        transition_booking(booking.id, Booking.Status.ACTIVE)
    assert "vehicle_unit" in excinfo.value.message_dict

    Booking.objects.filter(pk=booking.pk).update(vehicle_unit=unit)
    booking = transition_booking(booking.id, Booking.Status.ACTIVE)
    assert booking.status == Booking.Status.ACTIVE


def test_completion_records_return_and_late_fee(booking_factory, unit):
    booking = booking_factory(status=Booking.Status.ACTIVE, vehicle_unit=unit)
    returned_at = booking.end_at + timedelta(hours=3)

    booking = transition_booking(
        booking.id, Booking.Status.COMPLETED, returned_at=returned_at, reason="returned"
    )

    assert booking.actual_return_at == returned_at
    assert booking.late_fee == Decimal("75.00")
    event = booking.events.get(type=BookingEvent.Type.STATUS_CHANGE)
    assert event.payload == {"from": "active", "to": "completed", "reason": "returned"}


def test_cancel_stores_reason(booking_factory):
    booking = booking_factory()

    booking = transition_booking(booking.id, Booking.Status.CANCELLED, reason="renter request")

    assert booking.cancelled_reason == "renter request"
    assert booking.is_terminal()


def _give_points(user, points):
    update_points_balance(
        user.pk, points, entry_type=PointsLedgerEntry.Type.ADJUST, notes="welcome bonus"
    )


def test_create_booking_redeems_points_as_payment(category, renter_user):
    _give_points(renter_user, 1500)
    start, end = _window(4)

    booking = create_booking(
        renter=renter_user, category=category, start_at=start, end_at=end, points_to_redeem=1000
    )

    payment = booking.payments.get()
    assert payment.method == Payment.Method.POINTS
    assert payment.payment_type == Payment.Type.RENTAL
    assert payment.status == Payment.Status.COMPLETED
    assert payment.amount == Decimal("10.00")
    assert booking.total_amount == Decimal("235.20")
    redeem = PointsLedgerEntry.objects.get(booking=booking, type=PointsLedgerEntry.Type.REDEEM)
    assert redeem.points == -1000
    assert redeem.money_value == Decimal("10.00")
    renter_user.refresh_from_db()
    assert renter_user.points_balance == 500


def test_redemption_below_minimum_rejects_booking(category, renter_user):
    _give_points(renter_user, 1500)
    start, end = _window(4)

    with pytest.raises(ValidationError) as excinfo:
        create_booking(
            renter=renter_user, category=category, start_at=start, end_at=end, points_to_redeem=50
        )

    assert "points_to_redeem" in excinfo.value.message_dict
    assert not Booking.objects.exists()
    renter_user.refresh_from_db()
    assert renter_user.points_balance == 1500


def test_redemption_over_balance_rejects_booking(category, renter_user):
    _give_points(renter_user, 200)
    start, end = _window(4)

    with pytest.raises(InsufficientPoints):
        create_booking(
            renter=renter_user, category=category, start_at=start, end_at=end, points_to_redeem=1000
        )

    assert not Booking.objects.exists()


def test_cancel_gives_redeemed_points_back(category, renter_user):
    _give_points(renter_user, 1500)
    start, end = _window(4)
    booking = create_booking(
        renter=renter_user, category=category, start_at=start, end_at=end, points_to_redeem=1000
    )

    transition_booking(booking.id, Booking.Status.CANCELLED, reason="renter request")

    payment = booking.payments.get()
    assert payment.status == Payment.Status.REFUNDED
    renter_user.refresh_from_db()
    assert renter_user.points_balance == 1500
    restored = PointsLedgerEntry.objects.get(booking=booking, type=PointsLedgerEntry.Type.ADJUST)
    assert restored.points == 1000
    assert restored.notes == "renter request"


def test_modification_preview_does_not_save(category, renter_user):
    start, end = _window(4)
    booking = create_booking(renter=renter_user, category=category, start_at=start, end_at=end)

    preview = preview_modification(booking, BookingModification(end_at=start + timedelta(days=7)))

    assert Decimal(preview["new_total"]) > booking.total_amount
    assert Decimal(preview["difference"]) == Decimal(preview["new_total"]) - booking.total_amount
    booking.refresh_from_db()
    assert booking.end_at == end


def test_apply_modification_reprices_and_logs(category, add_on, renter_user):
    start, end = _window(4)
    booking = create_booking(
        renter=renter_user,
        category=category,
        start_at=start,
        end_at=end,
        add_ons=[AddOnSelection(add_on=add_on)],
    )
    previous_total = booking.total_amount

    booking = apply_modification(booking.id, BookingModification(end_at=start + timedelta(days=5)))

    assert booking.rental_days == 5
    assert booking.total_amount > previous_total
    assert booking.add_ons.get().price == Decimal("50.00")
    event = booking.events.get(type=BookingEvent.Type.REPRICED)
    assert event.payload["previous_total"] == str(previous_total)


def test_completed_booking_cannot_be_modified(booking_factory):
    booking = booking_factory(status=Booking.Status.COMPLETED)

    with pytest.raises(ValidationError):
        apply_modification(booking.id, BookingModification(protection_plan="basic"))
