from rest_framework import serializers

from fleet.models import DamageReport, VehicleExpense, VehicleUnit


class VehicleUnitSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)

    class Meta:
        model = VehicleUnit
        fields = [
            "id",
            "vin",
            "plate_number",
            "status",
            "category",
            "category_name",
            "acquisition_cost",
            "acquisition_date",
            "acquisition_mileage",
            "current_mileage",
            "created_at",
        ]
        read_only_fields = fields


class VehicleExpenseSerializer(serializers.ModelSerializer):
    class Meta:
        model = VehicleExpense
        fields = ["id", "unit", "kind", "amount", "incurred_on", "description", "created_at"]
        read_only_fields = ["id", "unit", "created_at"]

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero.")
        return value


class DamageReportSerializer(serializers.ModelSerializer):
    class Meta:
        model = DamageReport
        fields = [
            "id",
            "unit",
            "booking",
            "severity",
            "status",
            "description",
            "estimated_cost",
            "created_at",
            "resolved_at",
        ]
        read_only_fields = ["id", "status", "created_at", "resolved_at"]

    def validate_estimated_cost(self, value):
        if value < 0:
            raise serializers.ValidationError("Estimated cost must not be negative.")
        return value

    def validate(self, attrs):
        booking = attrs.get("booking")
        unit = attrs.get("unit")
        if booking is not None and unit is not None:
            if booking.vehicle_unit_id not in (None, unit.id):
                raise serializers.ValidationError(
                    {"booking": ["Booking was not rented on this unit."]}
                )
        return attrs
