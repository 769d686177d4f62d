"""Lifetime cost and revenue figures for fleet units."""

from __future__ import annotations

from decimal import Decimal

from django.db.models import Count, Sum

from core.cache import Entity, cached
from core.money import ZERO, q2

from .models import VehicleUnit

REVENUE_BOOKING_STATUSES = ("active", "completed")


def _sum(queryset, field: str) -> Decimal:
    return queryset.aggregate(total=Sum(field))["total"] or ZERO


def compute_unit_costs(unit: VehicleUnit) -> dict[str, str | int]:
    """
    Revenue, costs and net result of one unit over its lifetime.

    Revenue counts the total of active and completed bookings assigned to the
    unit; net = revenue - acquisition cost - damage estimates - expenses.
    """
    bookings = unit.bookings.filter(status__in=REVENUE_BOOKING_STATUSES)
    booking_stats = bookings.aggregate(
        revenue=Sum("total_amount"),
        rental_days=Sum("rental_days"),
        rentals=Count("id"),
    )
    revenue = q2(booking_stats["revenue"] or ZERO)
    damage_costs = q2(_sum(unit.damage_reports.all(), "estimated_cost"))
    expenses = q2(_sum(unit.expenses.all(), "amount"))
    acquisition = q2(unit.acquisition_cost or ZERO)
    net = revenue - acquisition - damage_costs - expenses

    return {
        "unit_id": unit.id,
        "vin": unit.vin,
        "rental_count": booking_stats["rentals"] or 0,
        "total_rental_days": booking_stats["rental_days"] or 0,
        "revenue": str(revenue),
        "acquisition_cost": str(acquisition),
        "damage_costs": str(damage_costs),
        "maintenance_costs": str(expenses),
        "net_profit": str(net),
    }


def unit_cost_summary(unit: VehicleUnit) -> dict[str, str | int]:
    return cached(Entity.VEHICLE_UNIT, unit.id, "cost_summary", lambda: compute_unit_costs(unit))
