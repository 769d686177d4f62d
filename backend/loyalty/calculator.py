"""
Points arithmetic.

Earning rounds down and redeeming rounds the points used up, so balances never
drift in the renter's favour. Existing balances depend on this asymmetry.
"""

from __future__ import annotations

import math
from decimal import ROUND_FLOOR, Decimal

from core.money import ZERO, q2

from .config import PointsSettings

DEFAULT_SETTINGS = PointsSettings()


def eligible_spend(
    booking_total: Decimal,
    tax_amount: Decimal = ZERO,
    add_ons_total: Decimal = ZERO,
    settings: PointsSettings = DEFAULT_SETTINGS,
) -> Decimal:
    amount = Decimal(booking_total)
    if settings.exclude_taxes:
        amount -= Decimal(tax_amount)
    if not settings.include_addons:
        amount -= Decimal(add_ons_total)
    return max(amount, ZERO)


def calculate_points_to_earn(
    booking_total: Decimal,
    tax_amount: Decimal = ZERO,
    add_ons_total: Decimal = ZERO,
    settings: PointsSettings = DEFAULT_SETTINGS,
) -> int:
    eligible = eligible_spend(booking_total, tax_amount, add_ons_total, settings)
    points = (eligible * settings.earn_points_per_dollar).to_integral_value(rounding=ROUND_FLOOR)
    return max(int(points), 0)


def calculate_points_discount(
    points_to_redeem: int,
    booking_total: Decimal,
    settings: PointsSettings = DEFAULT_SETTINGS,
) -> tuple[Decimal, int]:
    """
    Return ``(discount, actual_points_used)`` for redeeming up to ``points_to_redeem``.

    Below the minimum redemption there is no discount. The discount is capped
    at ``max_percent_of_total`` of the booking total.
    """
    if points_to_redeem < settings.min_points or settings.redeem_points_per_dollar <= 0:
        return ZERO, 0
    from_points = Decimal(points_to_redeem) / settings.redeem_points_per_dollar
    cap = Decimal(booking_total) * settings.max_percent_of_total / Decimal("100")
    discount = q2(max(min(from_points, cap), ZERO))
    points_used = math.ceil(discount * settings.redeem_points_per_dollar)
    return discount, min(points_used, points_to_redeem)
