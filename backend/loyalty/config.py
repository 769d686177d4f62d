"""Operator-tunable loyalty program settings."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from core.settings_resolver import as_decimal, get_json

EARN_DEFAULTS = {"points_per_dollar": "10", "include_addons": True, "exclude_taxes": True}
REDEEM_DEFAULTS = {"points_per_dollar": "100", "min_points": 100, "max_percent_of_total": "50"}
EXPIRATION_DEFAULTS = {"enabled": False, "months": 12}


@dataclass(frozen=True)
class PointsSettings:
    earn_points_per_dollar: Decimal = Decimal("10")
    include_addons: bool = True
    exclude_taxes: bool = True
    redeem_points_per_dollar: Decimal = Decimal("100")
    min_points: int = 100
    max_percent_of_total: Decimal = Decimal("50")
    expiration_enabled: bool = False
    expiration_months: int = 12


def _section(key: str, defaults: dict) -> dict:
    value = get_json(key, defaults)
    if not isinstance(value, dict):
        return dict(defaults)
    return {**defaults, **value}


def load_points_settings() -> PointsSettings:
    earn = _section("POINTS_EARN", EARN_DEFAULTS)
    redeem = _section("POINTS_REDEEM", REDEEM_DEFAULTS)
    expiration = _section("POINTS_EXPIRATION", EXPIRATION_DEFAULTS)
    return PointsSettings(
        earn_points_per_dollar=as_decimal(earn["points_per_dollar"], Decimal("10")),
        include_addons=bool(earn["include_addons"]),
        exclude_taxes=bool(earn["exclude_taxes"]),
        redeem_points_per_dollar=as_decimal(redeem["points_per_dollar"], Decimal("100")),
        min_points=int(redeem["min_points"]),
        max_percent_of_total=as_decimal(redeem["max_percent_of_total"], Decimal("50")),
        expiration_enabled=bool(expiration["enabled"]),
        expiration_months=int(expiration["months"]),
    )
