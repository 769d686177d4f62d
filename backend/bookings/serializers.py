"""Serializers for booking-related API endpoints."""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from core.money import format_money
from fleet.models import VehicleCategory, VehicleUnit
from payments.models import Payment

from .domain import AddOnSelection, BookingModification
from .models import AddOn, Booking, BookingAddOn, BookingEvent
from .pricing import MAX_ADD_ON_QUANTITY, MAX_ADDITIONAL_DRIVERS


class AddOnChoiceSerializer(serializers.Serializer):
    add_on = serializers.PrimaryKeyRelatedField(queryset=AddOn.objects.filter(is_active=True))
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_ADD_ON_QUANTITY, default=1)


class QuoteRequestSerializer(serializers.Serializer):
    """Input for pricing a prospective booking."""

    vehicle_category = serializers.PrimaryKeyRelatedField(
        queryset=VehicleCategory.objects.filter(is_active=True)
    )
    start_at = serializers.DateTimeField()
    end_at = serializers.DateTimeField()
    protection_plan = serializers.ChoiceField(
        choices=Booking.ProtectionPlan.choices, default=Booking.ProtectionPlan.NONE
    )
    driver_age_band = serializers.ChoiceField(
        choices=Booking.DriverAgeBand.choices, default=Booking.DriverAgeBand.AGE_25_70
    )
    additional_drivers_standard = serializers.IntegerField(min_value=0, default=0)
    additional_drivers_young = serializers.IntegerField(min_value=0, default=0)
    add_ons = AddOnChoiceSerializer(many=True, required=False)

    def validate(self, attrs):
        if attrs["end_at"] <= attrs["start_at"]:
            raise serializers.ValidationError({"end_at": ["End time must be after start time."]})
        drivers = attrs["additional_drivers_standard"] + attrs["additional_drivers_young"]
        if drivers > MAX_ADDITIONAL_DRIVERS:
            raise serializers.ValidationError(
                {
                    "additional_drivers_young": [
                        f"At most {MAX_ADDITIONAL_DRIVERS} additional drivers are allowed."
                    ]
                }
            )
        add_on_ids = [choice["add_on"].id for choice in attrs.get("add_ons", [])]
        if len(add_on_ids) != len(set(add_on_ids)):
            raise serializers.ValidationError({"add_ons": ["Each add-on may appear once."]})
        return attrs

    def booking_kwargs(self) -> dict:
        data = self.validated_data
        return {
            "category": data["vehicle_category"],
            "start_at": data["start_at"],
            "end_at": data["end_at"],
            "protection_plan": data["protection_plan"],
            "driver_age_band": data["driver_age_band"],
            "additional_drivers_standard": data["additional_drivers_standard"],
            "additional_drivers_young": data["additional_drivers_young"],
            "add_ons": [
                AddOnSelection(add_on=choice["add_on"], quantity=choice["quantity"])
                for choice in data.get("add_ons", [])
            ],
        }


class BookingCreateSerializer(QuoteRequestSerializer):
    expected_total = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        help_text="Total shown to the renter; rejected if it drifted from the server price.",
    )
    points_to_redeem = serializers.IntegerField(min_value=0, required=False, default=0)


class BookingAddOnSerializer(serializers.ModelSerializer):
    name = serializers.ReadOnlyField(source="add_on.name")

    class Meta:
        model = BookingAddOn
        fields = ("id", "add_on", "name", "price", "quantity")


class BookingSerializer(serializers.ModelSerializer):
    """Read-only view of a booking and its pricing breakdown."""

    add_ons = BookingAddOnSerializer(many=True, read_only=True)
    vehicle_category_name = serializers.ReadOnlyField(source="vehicle_category.name")
    vehicle_unit_vin = serializers.ReadOnlyField(source="vehicle_unit.vin")
    points_discount = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = (
            "id",
            "renter",
            "status",
            "vehicle_category",
            "vehicle_category_name",
            "vehicle_unit",
            "vehicle_unit_vin",
            "start_at",
            "end_at",
            "actual_return_at",
            "rental_days",
            "driver_age_band",
            "protection_plan",
            "protection_daily_rate",
            "additional_drivers_standard",
            "additional_drivers_young",
            "daily_rate",
            "delivery_fee",
            "subtotal",
            "tax_amount",
            "total_amount",
            "deposit_amount",
            "late_fee",
            "points_discount",
            "totals",
            "add_ons",
            "account_closed_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_points_discount(self, obj: Booking) -> str:
        total = sum(
            (
                payment.amount
                for payment in obj.payments.all()
                if payment.method == Payment.Method.POINTS
                and payment.status == Payment.Status.COMPLETED
            ),
            Decimal("0.00"),
        )
        return format_money(total)


class BookingTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[
            Booking.Status.CONFIRMED,
            Booking.Status.ACTIVE,
            Booking.Status.COMPLETED,
            Booking.Status.CANCELLED,
        ]
    )
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    returned_at = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        if attrs["status"] == Booking.Status.CANCELLED and not attrs["reason"].strip():
            raise serializers.ValidationError({"reason": ["A reason is required to cancel."]})
        return attrs


class BookingModificationSerializer(serializers.Serializer):
    end_at = serializers.DateTimeField(required=False)
    vehicle_category = serializers.PrimaryKeyRelatedField(
        queryset=VehicleCategory.objects.filter(is_active=True), required=False
    )
    vehicle_unit = serializers.PrimaryKeyRelatedField(
        queryset=VehicleUnit.objects.filter(status=VehicleUnit.Status.ACTIVE), required=False
    )
    protection_plan = serializers.ChoiceField(
        choices=Booking.ProtectionPlan.choices, required=False
    )
    reason = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        changes = {key: value for key, value in attrs.items() if key != "reason"}
        if not changes:
            raise serializers.ValidationError(
                {"non_field_errors": ["Provide at least one field to change."]}
            )
        return attrs

    def to_modification(self) -> BookingModification:
        data = self.validated_data
        return BookingModification(
            end_at=data.get("end_at"),
            vehicle_category=data.get("vehicle_category"),
            vehicle_unit=data.get("vehicle_unit"),
            protection_plan=data.get("protection_plan"),
        )


class BookingEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingEvent
        fields = ("id", "type", "payload", "actor", "created_at")
