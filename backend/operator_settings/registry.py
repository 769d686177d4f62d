"""Keys the rest of the code reads through core.settings_resolver."""

from operator_settings.models import DbSetting

VT = DbSetting.ValueType

TUNABLE_SETTINGS: dict[str, tuple[str, str]] = {
    "PRICING_PST_RATE": (VT.DECIMAL, "Provincial sales tax as a fraction, e.g. \"0.07\"."),
    "PRICING_GST_RATE": (VT.DECIMAL, "Goods and services tax as a fraction."),
    "PRICING_YOUNG_DRIVER_DAILY_FEE": (VT.DECIMAL, "Daily surcharge for 20-24 drivers."),
    "PRICING_WEEKEND_SURCHARGE_RATE": (VT.DECIMAL, "Surcharge on Fri/Sat/Sun rental days."),
    "PRICING_ADDITIONAL_DRIVER_RATES": (
        VT.JSON,
        "{\"standard\": \"14.99\", \"young\": \"19.99\"} per driver per day.",
    ),
    "PRICING_PROTECTION_RATES": (
        VT.JSON,
        "Protection daily rates keyed by group then plan.",
    ),
    "DEPOSIT_MINIMUM_AMOUNT": (VT.DECIMAL, "Security deposit held per booking."),
    "LATE_RETURN_HOURLY_FEE": (VT.DECIMAL, "Fee per started hour after the grace period."),
    "POINTS_EARN": (VT.JSON, "points_per_dollar, include_addons, exclude_taxes."),
    "POINTS_REDEEM": (VT.JSON, "points_per_dollar, min_points, max_percent_of_total."),
    "POINTS_EXPIRATION": (VT.JSON, "enabled, months."),
}
