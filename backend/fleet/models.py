"""Vehicle categories, VIN-tracked units and their lifetime costs."""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models


class VehicleCategory(models.Model):
    class ProtectionGroup(models.TextChoices):
        G1 = "g1", "Group 1 (cars)"
        G2 = "g2", "Group 2 (minivans, standard SUVs)"
        G3 = "g3", "Group 3 (large SUVs)"

    name = models.CharField(max_length=120, unique=True)
    daily_rate = models.DecimalField(max_digits=10, decimal_places=2)
    protection_group = models.CharField(
        max_length=4,
        choices=ProtectionGroup.choices,
        default=ProtectionGroup.G1,
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "vehicle categories"

    def __str__(self) -> str:
        return self.name


class VehicleUnit(models.Model):
    """One physical vehicle."""

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        MAINTENANCE = "maintenance", "Maintenance"
        RETIRED = "retired", "Retired"

    category = models.ForeignKey(
        VehicleCategory,
        related_name="units",
        on_delete=models.PROTECT,
    )
    vin = models.CharField(max_length=17, unique=True)
    plate_number = models.CharField(max_length=16, blank=True, default="")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    acquisition_cost = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    acquisition_date = models.DateField(null=True, blank=True)
    acquisition_mileage = models.PositiveIntegerField(default=0)
    current_mileage = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["vin"]
        indexes = [models.Index(fields=["category", "status"], name="fleet_unit_cat_status_idx")]

    def __str__(self) -> str:
        return f"{self.vin} ({self.category_id})"


class VehicleExpense(models.Model):
    class Kind(models.TextChoices):
        MAINTENANCE = "maintenance", "Maintenance"
        REPAIR = "repair", "Repair"
        INSURANCE = "insurance", "Insurance"
        REGISTRATION = "registration", "Registration"
        FUEL = "fuel", "Fuel"
        OTHER = "other", "Other"

    unit = models.ForeignKey(VehicleUnit, related_name="expenses", on_delete=models.CASCADE)
    kind = models.CharField(max_length=16, choices=Kind.choices)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    incurred_on = models.DateField()
    description = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="vehicle_expenses_recorded",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-incurred_on", "-id"]


class DamageReport(models.Model):
    class Severity(models.TextChoices):
        MINOR = "minor", "Minor"
        MODERATE = "moderate", "Moderate"
        SEVERE = "severe", "Severe"

    class Status(models.TextChoices):
        OPEN = "open", "Open"
        RESOLVED = "resolved", "Resolved"

    unit = models.ForeignKey(VehicleUnit, related_name="damage_reports", on_delete=models.CASCADE)
    booking = models.ForeignKey(
        "bookings.Booking",
        null=True,
        blank=True,
        related_name="damage_reports",
        on_delete=models.SET_NULL,
    )
    severity = models.CharField(max_length=16, choices=Severity.choices)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.OPEN)
    description = models.TextField()
    estimated_cost = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    reported_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="damage_reports_filed",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["booking", "status"], name="fleet_damage_booking_idx")]
