"""Shared fixtures for bookings, payments, closeout and loyalty tests."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Callable

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.utils import timezone

from bookings.models import AddOn, Booking
from fleet.models import VehicleCategory, VehicleUnit
from payments.models import DepositHold

User = get_user_model()


def _create_user(*, username: str, **extra) -> User:
    return User.objects.create_user(
        username=username,
        password="testpass",
        email=f"{username}@example.com",
        **extra,
    )


@pytest.fixture
def renter_user():
    return _create_user(
        username="renter",
        first_name="Riley",
        stripe_customer_id="cus_test_renter",
    )


@pytest.fixture
def other_user():
    return _create_user(username="other")


@pytest.fixture
def operator_factory() -> Callable[..., User]:
    def _create_operator(username: str, *roles: str) -> User:
        user = _create_user(username=username, is_staff=True)
        for role in roles:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        return user

    return _create_operator


@pytest.fixture
def support_user(operator_factory):
    return operator_factory("support", "operator_support")


@pytest.fixture
def counter_user(operator_factory):
    return operator_factory("counter", "operator_counter")


@pytest.fixture
def finance_user(operator_factory):
    return operator_factory("finance", "operator_finance")


@pytest.fixture
def category():
    return VehicleCategory.objects.create(
        name="Economy",
        daily_rate=Decimal("50.00"),
        protection_group=VehicleCategory.ProtectionGroup.G1,
    )


@pytest.fixture
def unit(category):
    return VehicleUnit.objects.create(category=category, vin="1HGCM82633A004352")


@pytest.fixture
def add_on():
    return AddOn.objects.create(name="GPS", daily_rate=Decimal("10.00"))


@pytest.fixture
def booking_factory(category, renter_user) -> Callable[..., Booking]:
    """
    Create a booking with stored totals.

    ``subtotal`` and ``tax_amount`` default to a small rental; ``total_amount``
    follows from them unless given.
    """

    def _create_booking(
        *,
        renter=None,
        status=Booking.Status.CONFIRMED,
        start_at=None,
        end_at=None,
        subtotal=Decimal("150.00"),
        tax_amount=Decimal("18.00"),
        add_ons_total=Decimal("0.00"),
        **extra_fields,
    ) -> Booking:
        start_at = start_at or timezone.now() - timedelta(days=3)
        end_at = end_at or start_at + timedelta(days=3)
        extra_fields.setdefault("total_amount", subtotal + tax_amount)
        extra_fields.setdefault("deposit_amount", Decimal("350.00"))
        return Booking.objects.create(
            renter=renter or renter_user,
            vehicle_category=category,
            status=status,
            start_at=start_at,
            end_at=end_at,
            rental_days=max(1, (end_at - start_at).days),
            daily_rate=category.daily_rate,
            subtotal=subtotal,
            tax_amount=tax_amount,
            totals={"add_ons_total": str(add_ons_total)},
            **extra_fields,
        )

    return _create_booking


@pytest.fixture
def authorized_hold_factory() -> Callable[..., DepositHold]:
    def _create_hold(booking: Booking, *, amount=Decimal("350.00"), **extra_fields):
        now = timezone.now()
        extra_fields.setdefault("stripe_payment_intent_id", f"pi_test_{booking.id}")
        extra_fields.setdefault("authorized_at", now)
        extra_fields.setdefault("expires_at", now + timedelta(days=7))
        return DepositHold.objects.create(
            booking=booking,
            status=DepositHold.Status.AUTHORIZED,
            amount=amount,
            **extra_fields,
        )

    return _create_hold
