"""Database models for rental bookings."""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from fleet.models import VehicleCategory, VehicleUnit


class Booking(models.Model):
    """A rental contract for one vehicle category (and, once assigned, one unit)."""

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        CONFIRMED = "confirmed", "confirmed"
        ACTIVE = "active", "active"
        COMPLETED = "completed", "completed"
        CANCELLED = "cancelled", "cancelled"

    class DriverAgeBand(models.TextChoices):
        AGE_20_24 = "20_24", "20-24"
        AGE_25_70 = "25_70", "25-70"
        AGE_71_PLUS = "71_plus", "71+"

    class ProtectionPlan(models.TextChoices):
        NONE = "none", "None"
        BASIC = "basic", "Basic"
        SMART = "smart", "Smart"
        PREMIUM = "premium", "Premium"

    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings",
        on_delete=models.PROTECT,
    )
    vehicle_category = models.ForeignKey(
        VehicleCategory,
        related_name="bookings",
        on_delete=models.PROTECT,
    )
    vehicle_unit = models.ForeignKey(
        VehicleUnit,
        related_name="bookings",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    start_at = models.DateTimeField()
    end_at = models.DateTimeField(help_text="Scheduled return, must be after start_at.")
    actual_return_at = models.DateTimeField(null=True, blank=True)
    rental_days = models.PositiveSmallIntegerField(default=1)
    driver_age_band = models.CharField(
        max_length=8,
        choices=DriverAgeBand.choices,
        default=DriverAgeBand.AGE_25_70,
    )
    protection_plan = models.CharField(
        max_length=8,
        choices=ProtectionPlan.choices,
        default=ProtectionPlan.NONE,
    )
    additional_drivers_standard = models.PositiveSmallIntegerField(default=0)
    additional_drivers_young = models.PositiveSmallIntegerField(default=0)

    daily_rate = models.DecimalField(max_digits=10, decimal_places=2)
    protection_daily_rate = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    deposit_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    late_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    totals = models.JSONField(default=dict, blank=True)

    cancelled_reason = models.TextField(blank=True, default="")
    account_closed_at = models.DateTimeField(null=True, blank=True)
    account_closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_closed",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["renter", "status"], name="bookings_renter_status_idx"),
            models.Index(fields=["status", "end_at"], name="bookings_status_end_idx"),
            models.Index(fields=["vehicle_unit", "status"], name="bookings_unit_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_at__gt=models.F("start_at")),
                name="bookings_end_after_start",
            ),
        ]

    def __str__(self) -> str:
        """Return a human-readable representation."""
        return f"Booking #{self.pk} ({self.status})"

    @property
    def add_ons_total(self) -> Decimal:
        return Decimal(str((self.totals or {}).get("add_ons_total", "0.00")))

    def is_terminal(self) -> bool:
        """Return True if the booking reached a terminal state."""
        return self.status in {
            self.Status.CANCELLED,
            self.Status.COMPLETED,
        }

    def is_account_closed(self) -> bool:
        return self.account_closed_at is not None

    def is_overdue(self, now=None) -> bool:
        now = now or timezone.now()
        return self.status == self.Status.ACTIVE and now > self.end_at


class AddOn(models.Model):
    name = models.CharField(max_length=120, unique=True)
    daily_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    one_time_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class BookingAddOn(models.Model):
    """An add-on line priced at booking time; ``price`` is the unit price."""

    booking = models.ForeignKey(Booking, related_name="add_ons", on_delete=models.CASCADE)
    add_on = models.ForeignKey(AddOn, related_name="booking_lines", on_delete=models.PROTECT)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveSmallIntegerField(default=1)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["booking", "add_on"], name="bookings_addon_once"),
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1, quantity__lte=10),
                name="bookings_addon_quantity_range",
            ),
        ]

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class BookingEvent(models.Model):
    class Type(models.TextChoices):
        STATUS_CHANGE = "status_change", "Status change"
        OPERATOR_ACTION = "operator_action", "Operator action"
        REPRICED = "repriced", "Repriced"
        DEPOSIT_REVIEW_REQUIRED = "deposit_review_required", "Deposit review required"

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="events")
    type = models.CharField(max_length=32, choices=Type.choices)
    payload = models.JSONField(default=dict, blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="booking_events",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["booking", "created_at"], name="bookings_event_booking_idx"),
        ]

    def __str__(self) -> str:
        return f"BookingEvent {self.pk} for booking {self.booking_id} ({self.type})"
