from __future__ import annotations

from django.conf import settings
from django.http import JsonResponse

from bookings.pricing import DURATION_DISCOUNTS, protection_rates_from_settings, rates_from_settings
from core.money import format_money
from core.settings_resolver import get_decimal


def rate_card(_request):
    """
    Public endpoint that surfaces the current rental rate card.

    Values account for operator overrides stored via DbSetting when present.
    """

    rates = rates_from_settings()
    return JsonResponse(
        {
            "currency": (settings.STRIPE_CURRENCY or "cad").upper(),
            "taxes": {"pst_rate": str(rates.pst_rate), "gst_rate": str(rates.gst_rate)},
            "regulatory_fees": {
                "pvrt_daily": format_money(rates.pvrt_daily_fee),
                "acsrch_daily": format_money(rates.acsrch_daily_fee),
            },
            "surcharges": {
                "young_driver_daily": format_money(rates.young_driver_daily_fee),
                "weekend_rate": str(rates.weekend_surcharge_rate),
                "additional_driver_daily": format_money(rates.additional_driver_daily_fee),
                "young_additional_driver_daily": format_money(
                    rates.young_additional_driver_daily_fee
                ),
            },
            "duration_discounts": [
                {"min_days": days, "rate": str(rate)} for days, rate in DURATION_DISCOUNTS
            ],
            "protection_daily_rates": {
                group: {plan: format_money(rate) for plan, rate in plans.items()}
                for group, plans in protection_rates_from_settings().items()
            },
            "deposit_minimum": format_money(
                get_decimal("DEPOSIT_MINIMUM_AMOUNT", settings.DEPOSIT_MINIMUM_AMOUNT)
            ),
            "late_return": {
                "grace_minutes": settings.LATE_RETURN_GRACE_MINUTES,
                "hourly_fee": format_money(
                    get_decimal("LATE_RETURN_HOURLY_FEE", settings.LATE_RETURN_HOURLY_FEE)
                ),
            },
        }
    )
