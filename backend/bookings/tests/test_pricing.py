from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from bookings.pricing import (
    DEFAULT_RATES,
    PricingInputError,
    calculate_booking_price,
    count_weekend_days,
    duration_discount_rate,
    protection_daily_rate,
    protection_rates_from_settings,
    rates_from_settings,
    rental_days_between,
    totals_match,
)
from operator_settings.models import DbSetting

MONDAY = date(2025, 3, 3)
THURSDAY = date(2025, 3, 6)


def test_weekday_rental_has_no_surcharge():
    breakdown = calculate_booking_price(
        vehicle_daily_rate=Decimal("50.00"),
        rental_days=4,
        pickup_date=MONDAY,
    )

    assert breakdown.weekend_days == 0
    assert breakdown.weekend_surcharge == Decimal("0.00")
    assert breakdown.vehicle_total == Decimal("200.00")
    assert breakdown.pvrt_total == Decimal("6.00")
    assert breakdown.acsrch_total == Decimal("4.00")
    assert breakdown.subtotal == Decimal("210.00")
    assert breakdown.pst == Decimal("14.70")
    assert breakdown.gst == Decimal("10.50")
    assert breakdown.tax_amount == Decimal("25.20")
    assert breakdown.total == Decimal("235.20")


def test_weekend_days_carry_surcharge():
    breakdown = calculate_booking_price(
        vehicle_daily_rate=Decimal("50.00"),
        rental_days=5,
        pickup_date=THURSDAY,
    )

    assert breakdown.weekend_days == 3
    assert breakdown.weekend_surcharge == Decimal("22.50")
    assert breakdown.vehicle_total == Decimal("272.50")
    assert breakdown.subtotal == Decimal("285.00")
    assert breakdown.tax_amount == Decimal("34.20")
    assert breakdown.total == Decimal("319.20")


def test_weekly_discount_applies_after_surcharge():
    breakdown = calculate_booking_price(
        vehicle_daily_rate=Decimal("50.00"),
        rental_days=7,
        pickup_date=MONDAY,
    )

    assert breakdown.weekend_surcharge == Decimal("22.50")
    assert breakdown.duration_discount_rate == Decimal("0.10")
    assert breakdown.duration_discount == Decimal("37.25")
    assert breakdown.vehicle_total == Decimal("335.25")


@pytest.mark.parametrize(
    ("days", "expected"),
    [
        (1, Decimal("0")),
        (6, Decimal("0")),
        (7, Decimal("0.10")),
        (20, Decimal("0.10")),
        (21, Decimal("0.20")),
        (30, Decimal("0.20")),
    ],
)
def test_duration_discount_tiers(days, expected):
    assert duration_discount_rate(days) == expected


def test_young_driver_protection_and_additional_drivers():
    breakdown = calculate_booking_price(
        vehicle_daily_rate=Decimal("50.00"),
        rental_days=2,
        pickup_date=MONDAY,
        driver_age_band="20_24",
        protection_daily_rate=protection_daily_rate("g1", "smart"),
        additional_drivers_standard=1,
        additional_drivers_young=1,
    )

    assert breakdown.young_driver_fee == Decimal("30.00")
    assert breakdown.protection_total == Decimal("75.98")
    assert breakdown.additional_drivers_total == Decimal("69.96")
    assert breakdown.subtotal == Decimal("280.94")


@pytest.mark.parametrize("band", ["25_70", "71_plus", ""])
def test_young_driver_fee_only_for_young_band(band):
    breakdown = calculate_booking_price(
        vehicle_daily_rate=Decimal("50.00"),
        rental_days=3,
        pickup_date=MONDAY,
        driver_age_band=band,
    )

    assert breakdown.young_driver_fee == Decimal("0.00")


def test_same_inputs_price_the_same():
    kwargs = dict(
        vehicle_daily_rate=Decimal("61.50"),
        rental_days=9,
        pickup_date=THURSDAY,
        driver_age_band="20_24",
        protection_daily_rate=protection_daily_rate("g2", "basic"),
        add_ons_total=Decimal("45.00"),
        delivery_fee=Decimal("20.00"),
        additional_drivers_standard=1,
    )

    first = calculate_booking_price(**kwargs)
    second = calculate_booking_price(**kwargs)

    assert first == second
    assert first.as_totals() == second.as_totals()


def test_zero_daily_rate_prices_vehicle_at_zero():
    breakdown = calculate_booking_price(
        vehicle_daily_rate=Decimal("0"),
        rental_days=7,
        pickup_date=THURSDAY,
    )

    assert breakdown.vehicle_base_total == Decimal("0.00")
    assert breakdown.weekend_surcharge == Decimal("0.00")
    assert breakdown.duration_discount == Decimal("0.00")
    assert breakdown.vehicle_total == Decimal("0.00")
    assert breakdown.subtotal == breakdown.pvrt_total + breakdown.acsrch_total


def test_total_is_subtotal_plus_separately_rounded_taxes():
    breakdown = calculate_booking_price(
        vehicle_daily_rate=Decimal("33.33"),
        rental_days=3,
        pickup_date=MONDAY,
        add_ons_total=Decimal("12.34"),
        delivery_fee=Decimal("25.00"),
    )

    assert breakdown.tax_amount == breakdown.pst + breakdown.gst
    assert breakdown.total == breakdown.subtotal + breakdown.tax_amount
    assert breakdown.as_totals()["total"] == str(breakdown.total)


def test_too_many_additional_drivers_rejected():
    with pytest.raises(PricingInputError):
        calculate_booking_price(
            vehicle_daily_rate=Decimal("50.00"),
            rental_days=2,
            additional_drivers_standard=3,
            additional_drivers_young=3,
        )


def test_negative_amounts_rejected():
    with pytest.raises(PricingInputError):
        calculate_booking_price(vehicle_daily_rate=Decimal("-1.00"), rental_days=2)
    with pytest.raises(PricingInputError):
        calculate_booking_price(vehicle_daily_rate=Decimal("50.00"), rental_days=0)


def test_rental_days_count_started_days():
    start = datetime(2025, 3, 3, 10, 0)
    assert rental_days_between(start, start + timedelta(hours=2)) == 1
    assert rental_days_between(start, start + timedelta(hours=24)) == 1
    assert rental_days_between(start, start + timedelta(hours=25)) == 2


def test_weekend_count_without_pickup_date():
    assert count_weekend_days(None, 5) == 0
    assert count_weekend_days(THURSDAY, 5) == 3


def test_protection_rates():
    assert protection_daily_rate("g1", "none") == Decimal("0.00")
    assert protection_daily_rate("g3", "premium") == Decimal("82.99")
    with pytest.raises(PricingInputError):
        protection_daily_rate("g9", "basic")


def test_totals_match_tolerance():
    assert totals_match(Decimal("100.00"), Decimal("100.50"))
    assert not totals_match(Decimal("100.00"), Decimal("100.51"))


@pytest.mark.django_db
def test_operator_overrides_feed_rates():
    DbSetting.objects.create(
        key="PRICING_PST_RATE", value_json="0.08", value_type=DbSetting.ValueType.DECIMAL
    )
    DbSetting.objects.create(
        key="PRICING_ADDITIONAL_DRIVER_RATES",
        value_json={"standard": "12.00"},
        value_type=DbSetting.ValueType.JSON,
    )
    DbSetting.objects.create(
        key="PRICING_PROTECTION_RATES",
        value_json={"g1": {"basic": "30.00"}},
        value_type=DbSetting.ValueType.JSON,
    )

    rates = rates_from_settings()
    table = protection_rates_from_settings()

    assert rates.pst_rate == Decimal("0.08")
    assert rates.gst_rate == DEFAULT_RATES.gst_rate
    assert rates.additional_driver_daily_fee == Decimal("12.00")
    assert rates.young_additional_driver_daily_fee == Decimal("19.99")
    assert table["g1"]["basic"] == Decimal("30.00")
    assert table["g1"]["smart"] == Decimal("37.99")
