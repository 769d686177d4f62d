from rest_framework import serializers

from .models import PointsLedgerEntry


class PointsLedgerEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = PointsLedgerEntry
        fields = (
            "id",
            "type",
            "points",
            "balance_after",
            "booking",
            "money_value",
            "notes",
            "expires_at",
            "created_at",
        )
        read_only_fields = fields


class PointsAdjustSerializer(serializers.Serializer):
    points = serializers.IntegerField()
    notes = serializers.CharField(allow_blank=True, required=False, default="")

    def validate_points(self, value):
        if value == 0:
            raise serializers.ValidationError("Adjustment must be non-zero.")
        return value


class RedemptionQuoteSerializer(serializers.Serializer):
    points = serializers.IntegerField(min_value=1)
    booking_total = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
