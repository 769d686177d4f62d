"""
Booking price calculation.

``calculate_booking_price`` is a pure function: it never reads settings, the
database or the clock. Callers that want operator overrides resolve a
``PricingRates`` with ``rates_from_settings()`` first and pass it in.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from core.money import ZERO, q2

YOUNG_DRIVER_BAND = "20_24"
MAX_ADDITIONAL_DRIVERS = 5
MAX_ADD_ON_QUANTITY = 10
PRICE_MISMATCH_TOLERANCE = Decimal("0.50")

WEEKEND_WEEKDAYS = frozenset({4, 5, 6})  # Fri, Sat, Sun

# (minimum days, discount rate), longest first
DURATION_DISCOUNTS = (
    (21, Decimal("0.20")),
    (7, Decimal("0.10")),
)

PROTECTION_DAILY_RATES = {
    "g1": {"basic": Decimal("32.99"), "smart": Decimal("37.99"), "premium": Decimal("49.99")},
    "g2": {"basic": Decimal("52.99"), "smart": Decimal("57.99"), "premium": Decimal("69.99")},
    "g3": {"basic": Decimal("64.99"), "smart": Decimal("69.99"), "premium": Decimal("82.99")},
}


class PricingInputError(ValueError):
    """Raised when pricing inputs are outside the accepted domain."""


@dataclass(frozen=True)
class PricingRates:
    pst_rate: Decimal = Decimal("0.07")
    gst_rate: Decimal = Decimal("0.05")
    pvrt_daily_fee: Decimal = Decimal("1.50")
    acsrch_daily_fee: Decimal = Decimal("1.00")
    young_driver_daily_fee: Decimal = Decimal("15.00")
    weekend_surcharge_rate: Decimal = Decimal("0.15")
    additional_driver_daily_fee: Decimal = Decimal("14.99")
    young_additional_driver_daily_fee: Decimal = Decimal("19.99")


DEFAULT_RATES = PricingRates()


@dataclass(frozen=True)
class PriceBreakdown:
    rental_days: int
    daily_rate: Decimal
    vehicle_base_total: Decimal
    weekend_days: int
    weekend_surcharge: Decimal
    duration_discount_rate: Decimal
    duration_discount: Decimal
    vehicle_total: Decimal
    protection_total: Decimal
    add_ons_total: Decimal
    young_driver_fee: Decimal
    additional_drivers_total: Decimal
    pvrt_total: Decimal
    acsrch_total: Decimal
    delivery_fee: Decimal
    subtotal: Decimal
    pst: Decimal
    gst: Decimal
    tax_amount: Decimal
    total: Decimal

    def as_totals(self) -> dict[str, str]:
        """Serialize every field as a string for stable storage in ``Booking.totals``."""
        return {key: str(value) for key, value in asdict(self).items()}


def rates_from_settings() -> PricingRates:
    """Resolve the effective rates, honouring operator overrides in DbSetting."""
    from django.conf import settings

    from core.settings_resolver import as_decimal, get_decimal, get_json

    drivers = get_json("PRICING_ADDITIONAL_DRIVER_RATES", {})
    if not isinstance(drivers, dict):
        drivers = {}

    def _rate(key: str) -> Decimal:
        return get_decimal(key, getattr(settings, key))

    return PricingRates(
        pst_rate=_rate("PRICING_PST_RATE"),
        gst_rate=_rate("PRICING_GST_RATE"),
        pvrt_daily_fee=_rate("PRICING_PVRT_DAILY_FEE"),
        acsrch_daily_fee=_rate("PRICING_ACSRCH_DAILY_FEE"),
        young_driver_daily_fee=_rate("PRICING_YOUNG_DRIVER_DAILY_FEE"),
        weekend_surcharge_rate=_rate("PRICING_WEEKEND_SURCHARGE_RATE"),
        additional_driver_daily_fee=as_decimal(
            drivers.get("standard"), DEFAULT_RATES.additional_driver_daily_fee
        ),
        young_additional_driver_daily_fee=as_decimal(
            drivers.get("young"), DEFAULT_RATES.young_additional_driver_daily_fee
        ),
    )


def protection_rates_from_settings() -> dict[str, dict[str, Decimal]]:
    """Protection rate table with operator overrides merged over the defaults."""
    from core.settings_resolver import as_decimal, get_json

    overrides = get_json("PRICING_PROTECTION_RATES", {})
    table = {group: dict(plans) for group, plans in PROTECTION_DAILY_RATES.items()}
    if not isinstance(overrides, dict):
        return table
    for group, plans in overrides.items():
        if not isinstance(plans, dict):
            continue
        current = table.setdefault(group, {})
        for plan, value in plans.items():
            current[plan] = as_decimal(value, current.get(plan, ZERO))
    return table


def rental_days_between(start: datetime, end: datetime) -> int:
    """Billable days for a rental window: every started 24 hours counts, minimum one."""
    hours = (end - start).total_seconds() / 3600
    return max(1, math.ceil(hours / 24))


def count_weekend_days(pickup_date: date | None, rental_days: int) -> int:
    """Count Fridays, Saturdays and Sundays among ``rental_days`` days from pickup."""
    if pickup_date is None or rental_days <= 0:
        return 0
    return sum(
        1
        for offset in range(rental_days)
        if (pickup_date + timedelta(days=offset)).weekday() in WEEKEND_WEEKDAYS
    )


def duration_discount_rate(rental_days: int) -> Decimal:
    for min_days, rate in DURATION_DISCOUNTS:
        if rental_days >= min_days:
            return rate
    return ZERO


def protection_daily_rate(
    group: str, plan: str, table: dict[str, dict[str, Decimal]] | None = None
) -> Decimal:
    """Daily rate of a protection plan for a category group; ``none`` costs nothing."""
    if plan in ("", "none", None):
        return ZERO
    try:
        return (table or PROTECTION_DAILY_RATES)[group][plan]
    except KeyError as exc:
        raise PricingInputError(f"Unknown protection plan {plan!r} for group {group!r}.") from exc


def totals_match(client_total: Decimal, server_total: Decimal) -> bool:
    """Whether a client-computed total is close enough to accept."""
    return abs(Decimal(client_total) - Decimal(server_total)) <= PRICE_MISMATCH_TOLERANCE


def _require_non_negative(**amounts: Decimal) -> None:
    for name, value in amounts.items():
        if value < 0:
            raise PricingInputError(f"{name} must not be negative.")


def calculate_booking_price(
    *,
    vehicle_daily_rate: Decimal,
    rental_days: int,
    protection_daily_rate: Decimal = ZERO,
    add_ons_total: Decimal = ZERO,
    delivery_fee: Decimal = ZERO,
    driver_age_band: str = "25_70",
    pickup_date: date | None = None,
    additional_drivers_standard: int = 0,
    additional_drivers_young: int = 0,
    rates: PricingRates = DEFAULT_RATES,
) -> PriceBreakdown:
    """
    Price a rental.

    Order of operations:
    - vehicle: daily rate * days, plus the weekend surcharge, minus the
      duration discount;
    - subtotal: vehicle + protection + add-ons + young-driver fee + additional
      drivers + PVRT + ACSRCH + delivery;
    - PST and GST are rounded separately, tax = pst + gst, total = subtotal + tax.
    """
    if rental_days < 1:
        raise PricingInputError("rental_days must be at least 1.")
    if additional_drivers_standard < 0 or additional_drivers_young < 0:
        raise PricingInputError("Additional driver counts must not be negative.")
    if additional_drivers_standard + additional_drivers_young > MAX_ADDITIONAL_DRIVERS:
        raise PricingInputError(
            f"At most {MAX_ADDITIONAL_DRIVERS} additional drivers are allowed."
        )
    daily_rate = Decimal(vehicle_daily_rate)
    protection_rate = Decimal(protection_daily_rate)
    add_ons = Decimal(add_ons_total)
    delivery = Decimal(delivery_fee)
    _require_non_negative(
        vehicle_daily_rate=daily_rate,
        protection_daily_rate=protection_rate,
        add_ons_total=add_ons,
        delivery_fee=delivery,
    )

    vehicle_base_total = q2(daily_rate * rental_days)
    weekend_days = count_weekend_days(pickup_date, rental_days)
    weekend_surcharge = q2(daily_rate * weekend_days * rates.weekend_surcharge_rate)
    after_surcharge = q2(vehicle_base_total + weekend_surcharge)
    discount_rate = duration_discount_rate(rental_days)
    duration_discount = q2(after_surcharge * discount_rate)
    vehicle_total = q2(after_surcharge - duration_discount)

    protection_total = q2(protection_rate * rental_days)
    young_driver_fee = (
        q2(rates.young_driver_daily_fee * rental_days)
        if driver_age_band == YOUNG_DRIVER_BAND
        else q2(ZERO)
    )
    additional_drivers_total = q2(
        rates.additional_driver_daily_fee * additional_drivers_standard * rental_days
        + rates.young_additional_driver_daily_fee * additional_drivers_young * rental_days
    )
    pvrt_total = q2(rates.pvrt_daily_fee * rental_days)
    acsrch_total = q2(rates.acsrch_daily_fee * rental_days)

    subtotal = q2(
        vehicle_total
        + protection_total
        + add_ons
        + young_driver_fee
        + additional_drivers_total
        + pvrt_total
        + acsrch_total
        + delivery
    )
    pst = q2(subtotal * rates.pst_rate)
    gst = q2(subtotal * rates.gst_rate)
    tax_amount = pst + gst

    return PriceBreakdown(
        rental_days=rental_days,
        daily_rate=q2(daily_rate),
        vehicle_base_total=vehicle_base_total,
        weekend_days=weekend_days,
        weekend_surcharge=weekend_surcharge,
        duration_discount_rate=discount_rate,
        duration_discount=duration_discount,
        vehicle_total=vehicle_total,
        protection_total=protection_total,
        add_ons_total=q2(add_ons),
        young_driver_fee=young_driver_fee,
        additional_drivers_total=additional_drivers_total,
        pvrt_total=pvrt_total,
        acsrch_total=acsrch_total,
        delivery_fee=q2(delivery),
        subtotal=subtotal,
        pst=pst,
        gst=gst,
        tax_amount=tax_amount,
        total=subtotal + tax_amount,
    )
