"""Domain helpers for booking creation, pricing, state transitions and repricing."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from core.money import ZERO, q2
from core.settings_resolver import get_decimal
from fleet.models import VehicleCategory, VehicleUnit
from loyalty.services import quote_redemption, redeem_points
from payments.ledger import record_payment, refund_payment
from payments.models import Payment

from .models import AddOn, Booking, BookingAddOn, BookingEvent
from .pricing import (
    PriceBreakdown,
    PricingInputError,
    PricingRates,
    calculate_booking_price,
    protection_daily_rate,
    protection_rates_from_settings,
    rates_from_settings,
    rental_days_between,
    totals_match,
)

logger = logging.getLogger(__name__)

Status = Booking.Status

BOOKING_TRANSITIONS: dict[str, frozenset[str]] = {
    Status.PENDING: frozenset({Status.CONFIRMED, Status.CANCELLED}),
    Status.CONFIRMED: frozenset({Status.ACTIVE, Status.CANCELLED}),
    Status.ACTIVE: frozenset({Status.COMPLETED}),
    Status.COMPLETED: frozenset(),
    Status.CANCELLED: frozenset(),
}

MODIFIABLE_STATUSES = (Status.PENDING, Status.CONFIRMED, Status.ACTIVE)


@dataclass(frozen=True)
class AddOnSelection:
    add_on: AddOn
    quantity: int = 1


@dataclass(frozen=True)
class BookingModification:
    """Fields staff may change on an existing booking. ``None`` keeps the current value."""

    end_at: datetime | None = None
    vehicle_category: VehicleCategory | None = None
    vehicle_unit: VehicleUnit | None = None
    protection_plan: str | None = None


def validate_rental_window(start_at: datetime | None, end_at: datetime | None) -> int:
    """Validate a rental window and return its billable day count."""
    if not start_at or not end_at:
        raise ValidationError({"non_field_errors": ["Start and end times are required."]})
    if end_at <= start_at:
        raise ValidationError({"end_at": ["End time must be after start time."]})
    days = rental_days_between(start_at, end_at)
    if days < settings.BOOKING_MIN_RENTAL_DAYS:
        raise ValidationError(
            {"end_at": [f"Rentals must be at least {settings.BOOKING_MIN_RENTAL_DAYS} day(s)."]}
        )
    if days > settings.BOOKING_MAX_RENTAL_DAYS:
        raise ValidationError(
            {"end_at": [f"Rentals cannot exceed {settings.BOOKING_MAX_RENTAL_DAYS} days."]}
        )
    return days


def add_on_unit_price(add_on: AddOn, rental_days: int) -> Decimal:
    """Price of one unit of an add-on over the rental: daily rate * days + one-time fee."""
    return q2(add_on.daily_rate * rental_days + add_on.one_time_fee)


def _price(
    *,
    category: VehicleCategory,
    rental_days: int,
    protection_plan: str,
    add_ons_total: Decimal,
    booking_fields: dict,
    pickup_at: datetime,
    rates: PricingRates | None,
) -> tuple[Decimal, PriceBreakdown]:
    try:
        protection_rate = protection_daily_rate(
            category.protection_group, protection_plan, protection_rates_from_settings()
        )
        breakdown = calculate_booking_price(
            vehicle_daily_rate=category.daily_rate,
            rental_days=rental_days,
            protection_daily_rate=protection_rate,
            add_ons_total=add_ons_total,
            delivery_fee=booking_fields.get("delivery_fee", ZERO),
            driver_age_band=booking_fields.get("driver_age_band", ""),
            pickup_date=timezone.localtime(pickup_at).date(),
            additional_drivers_standard=booking_fields.get("additional_drivers_standard", 0),
            additional_drivers_young=booking_fields.get("additional_drivers_young", 0),
            rates=rates or rates_from_settings(),
        )
    except PricingInputError as exc:
        raise ValidationError({"non_field_errors": [str(exc)]}) from exc
    return protection_rate, breakdown


def quote_booking(
    *,
    category: VehicleCategory,
    start_at: datetime,
    end_at: datetime,
    protection_plan: str = Booking.ProtectionPlan.NONE,
    add_ons: Iterable[AddOnSelection] = (),
    driver_age_band: str = Booking.DriverAgeBand.AGE_25_70,
    additional_drivers_standard: int = 0,
    additional_drivers_young: int = 0,
    delivery_fee: Decimal = ZERO,
    rates: PricingRates | None = None,
) -> PriceBreakdown:
    """Price a prospective booking without writing anything."""
    rental_days = validate_rental_window(start_at, end_at)
    add_ons_total = sum(
        (add_on_unit_price(sel.add_on, rental_days) * sel.quantity for sel in add_ons), ZERO
    )
    _, breakdown = _price(
        category=category,
        rental_days=rental_days,
        protection_plan=protection_plan,
        add_ons_total=add_ons_total,
        booking_fields={
            "delivery_fee": delivery_fee,
            "driver_age_band": driver_age_band,
            "additional_drivers_standard": additional_drivers_standard,
            "additional_drivers_young": additional_drivers_young,
        },
        pickup_at=start_at,
        rates=rates,
    )
    return breakdown


def _apply_breakdown(booking: Booking, breakdown: PriceBreakdown) -> None:
    booking.rental_days = breakdown.rental_days
    booking.daily_rate = breakdown.daily_rate
    booking.subtotal = breakdown.subtotal
    booking.tax_amount = breakdown.tax_amount
    booking.total_amount = breakdown.subtotal + breakdown.tax_amount
    booking.totals = breakdown.as_totals()


def minimum_deposit_amount() -> Decimal:
    return q2(get_decimal("DEPOSIT_MINIMUM_AMOUNT", settings.DEPOSIT_MINIMUM_AMOUNT))


def _redeem_points(booking: Booking, points_to_redeem: int) -> None:
    quote = quote_redemption(points_to_redeem, booking.total_amount)
    if not quote["points_used"]:
        raise ValidationError(
            {"points_to_redeem": ["Not enough points for a discount on this booking."]}
        )
    redeem_points(
        user=booking.renter,
        booking=booking,
        points_to_redeem=quote["points_used"],
        discount_value=quote["discount"],
    )
    record_payment(
        booking=booking,
        amount=quote["discount"],
        payment_type=Payment.Type.RENTAL,
        method=Payment.Method.POINTS,
        transaction_reference=f"points:{quote['points_used']}",
        notes=f"{quote['points_used']} points redeemed",
    )


def _refund_points_payments(booking: Booking, *, reason: str, actor=None) -> None:
    payments = booking.payments.select_for_update().filter(
        method=Payment.Method.POINTS, status=Payment.Status.COMPLETED
    )
    for payment in payments:
        refund_payment(payment, reason=reason or "booking cancelled", actor=actor)


@transaction.atomic
def create_booking(
    *,
    renter,
    category: VehicleCategory,
    start_at: datetime,
    end_at: datetime,
    protection_plan: str = Booking.ProtectionPlan.NONE,
    add_ons: Iterable[AddOnSelection] = (),
    driver_age_band: str = Booking.DriverAgeBand.AGE_25_70,
    additional_drivers_standard: int = 0,
    additional_drivers_young: int = 0,
    delivery_fee: Decimal = ZERO,
    client_total: Decimal | None = None,
    points_to_redeem: int = 0,
) -> Booking:
    """
    Create a pending booking priced server side.

    When ``client_total`` is given it must agree with the server total within
    the mismatch tolerance, otherwise the booking is rejected. Redeemed points
    are recorded as a completed rental payment in the ``points`` method.
    """
    selections = list(add_ons)
    breakdown = quote_booking(
        category=category,
        start_at=start_at,
        end_at=end_at,
        protection_plan=protection_plan,
        add_ons=selections,
        driver_age_band=driver_age_band,
        additional_drivers_standard=additional_drivers_standard,
        additional_drivers_young=additional_drivers_young,
        delivery_fee=delivery_fee,
    )
    if client_total is not None and not totals_match(client_total, breakdown.total):
        raise ValidationError(
            {"total": [f"Price changed, the current total is {breakdown.total}."]}
        )

    booking = Booking(
        renter=renter,
        vehicle_category=category,
        start_at=start_at,
        end_at=end_at,
        protection_plan=protection_plan,
        protection_daily_rate=protection_daily_rate(
            category.protection_group, protection_plan, protection_rates_from_settings()
        ),
        driver_age_band=driver_age_band,
        additional_drivers_standard=additional_drivers_standard,
        additional_drivers_young=additional_drivers_young,
        delivery_fee=q2(delivery_fee),
        deposit_amount=minimum_deposit_amount(),
    )
    _apply_breakdown(booking, breakdown)
    booking.save()
    BookingAddOn.objects.bulk_create(
        [
            BookingAddOn(
                booking=booking,
                add_on=sel.add_on,
                price=add_on_unit_price(sel.add_on, breakdown.rental_days),
                quantity=sel.quantity,
            )
            for sel in selections
        ]
    )
    if points_to_redeem:
        _redeem_points(booking, points_to_redeem)
    logger.info(
        "bookings: created booking %s total=%s",
        booking.id,
        booking.total_amount,
        extra={"booking_id": booking.id},
    )
    return booking


def assert_transition_allowed(booking: Booking, target: str) -> None:
    allowed = BOOKING_TRANSITIONS[Status(booking.status)]
    if target not in allowed:
        raise ValidationError(
            {"status": [f"Cannot move a {booking.status} booking to {target}."]}
        )
    if target == Status.ACTIVE and booking.vehicle_unit_id is None:
        raise ValidationError(
            {"vehicle_unit": ["Assign a vehicle unit before activating the booking."]}
        )


def late_return_fee(
    scheduled_end: datetime,
    returned_at: datetime,
    *,
    grace_minutes: int,
    hourly_fee: Decimal,
) -> Decimal:
    """
    Fee for returning after ``scheduled_end``.

    Returns inside the grace period are free; past it every started hour after
    the grace period is charged.
    """
    billable_seconds = (returned_at - scheduled_end).total_seconds() - grace_minutes * 60
    if billable_seconds <= 0:
        return q2(ZERO)
    hours = math.ceil(billable_seconds / 3600)
    return q2(hourly_fee * hours)


def late_fee_for(booking: Booking, returned_at: datetime) -> Decimal:
    return late_return_fee(
        booking.end_at,
        returned_at,
        grace_minutes=settings.LATE_RETURN_GRACE_MINUTES,
        hourly_fee=get_decimal("LATE_RETURN_HOURLY_FEE", settings.LATE_RETURN_HOURLY_FEE),
    )


def transition_booking(
    booking_id: int,
    target: str,
    *,
    actor=None,
    reason: str = "",
    returned_at: datetime | None = None,
) -> Booking:
    """
    Move a booking to ``target`` under a row lock.

    The transition table is checked against the locked row, so two concurrent
    requests cannot both move the same booking. Completing a booking records the
    actual return time and the late-return fee.
    """
    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking_id)
        previous = booking.status
        assert_transition_allowed(booking, target)

        update_fields = ["status", "updated_at"]
        booking.status = target
        if target == Status.COMPLETED:
            booking.actual_return_at = returned_at or timezone.now()
            booking.late_fee = late_fee_for(booking, booking.actual_return_at)
            update_fields += ["actual_return_at", "late_fee"]
        if target == Status.CANCELLED:
            booking.cancelled_reason = reason
            update_fields.append("cancelled_reason")
        booking.save(update_fields=update_fields)
        if target == Status.CANCELLED:
            _refund_points_payments(booking, reason=reason, actor=actor)

        BookingEvent.objects.create(
            booking=booking,
            type=BookingEvent.Type.STATUS_CHANGE,
            payload={"from": previous, "to": target, "reason": reason},
            actor=actor if getattr(actor, "pk", None) else None,
        )

    logger.info(
        "bookings: booking %s %s -> %s",
        booking.id,
        previous,
        target,
        extra={"booking_id": booking.id},
    )
    return booking


def _reprice(booking: Booking, changes: BookingModification, rates: PricingRates | None):
    """Return (field updates, add-on unit prices, breakdown) for the modified booking."""
    end_at = changes.end_at or booking.end_at
    category = changes.vehicle_category or booking.vehicle_category
    protection_plan = changes.protection_plan or booking.protection_plan
    rental_days = validate_rental_window(booking.start_at, end_at)

    if changes.vehicle_unit is not None and changes.vehicle_unit.category_id != category.id:
        raise ValidationError({"vehicle_unit": ["Unit does not belong to the booked category."]})

    lines = list(booking.add_ons.select_related("add_on"))
    line_prices = {line.id: add_on_unit_price(line.add_on, rental_days) for line in lines}
    add_ons_total = sum((line_prices[line.id] * line.quantity for line in lines), ZERO)

    protection_rate, breakdown = _price(
        category=category,
        rental_days=rental_days,
        protection_plan=protection_plan,
        add_ons_total=add_ons_total,
        booking_fields={
            "delivery_fee": booking.delivery_fee,
            "driver_age_band": booking.driver_age_band,
            "additional_drivers_standard": booking.additional_drivers_standard,
            "additional_drivers_young": booking.additional_drivers_young,
        },
        pickup_at=booking.start_at,
        rates=rates,
    )
    fields = {
        "end_at": end_at,
        "vehicle_category": category,
        "protection_plan": protection_plan,
        "protection_daily_rate": protection_rate,
    }
    if changes.vehicle_unit is not None:
        fields["vehicle_unit"] = changes.vehicle_unit
    elif changes.vehicle_category is not None and category.id != booking.vehicle_category_id:
        fields["vehicle_unit"] = None
    return fields, line_prices, breakdown


def preview_modification(
    booking: Booking,
    changes: BookingModification,
    *,
    rates: PricingRates | None = None,
) -> dict:
    """Price a modification without saving it; returns the new totals and the difference."""
    if booking.status not in MODIFIABLE_STATUSES:
        raise ValidationError(
            {"status": ["Only pending, confirmed or active bookings can be modified."]}
        )
    _, _, breakdown = _reprice(booking, changes, rates)
    return {
        "current_total": str(booking.total_amount),
        "new_total": str(breakdown.total),
        "difference": str(breakdown.total - booking.total_amount),
        "breakdown": breakdown.as_totals(),
    }


def apply_modification(
    booking_id: int,
    changes: BookingModification,
    *,
    actor=None,
    rates: PricingRates | None = None,
) -> Booking:
    """Reprice and save a modification under a row lock on the booking."""
    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking_id)
        if booking.status not in MODIFIABLE_STATUSES:
            raise ValidationError(
                {"status": ["Only pending, confirmed or active bookings can be modified."]}
            )
        previous_total = booking.total_amount
        fields, line_prices, breakdown = _reprice(booking, changes, rates)
        for name, value in fields.items():
            setattr(booking, name, value)
        _apply_breakdown(booking, breakdown)
        booking.save()

        for line in booking.add_ons.all():
            if line.price != line_prices[line.id]:
                line.price = line_prices[line.id]
                line.save(update_fields=["price"])

        BookingEvent.objects.create(
            booking=booking,
            type=BookingEvent.Type.REPRICED,
            payload={
                "previous_total": str(previous_total),
                "new_total": str(booking.total_amount),
                "end_at": booking.end_at.isoformat(),
                "vehicle_category_id": booking.vehicle_category_id,
                "vehicle_unit_id": booking.vehicle_unit_id,
                "protection_plan": booking.protection_plan,
            },
            actor=actor if getattr(actor, "pk", None) else None,
        )

    logger.info(
        "bookings: repriced booking %s %s -> %s",
        booking.id,
        previous_total,
        booking.total_amount,
        extra={"booking_id": booking.id},
    )
    return booking
