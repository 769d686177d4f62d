from rest_framework import serializers

from core.money import format_money

from .models import DepositLedgerEntry, Payment


class DepositAuthorizeSerializer(serializers.Serializer):
    customer_id = serializers.CharField(required=False, allow_blank=True, default="")
    payment_method_id = serializers.CharField()


class DepositCaptureSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    reason = serializers.CharField(allow_blank=True, required=False, default="")


class DepositReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True, required=False, default="")


class DepositLedgerEntrySerializer(serializers.ModelSerializer):
    amount = serializers.SerializerMethodField()

    class Meta:
        model = DepositLedgerEntry
        fields = (
            "id",
            "action",
            "amount",
            "reason",
            "actor",
            "stripe_payment_intent_id",
            "stripe_charge_id",
            "status_before",
            "status_after",
            "created_at",
        )
        read_only_fields = fields

    def get_amount(self, obj) -> str:
        return format_money(obj.amount)


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = (
            "id",
            "booking",
            "amount",
            "payment_type",
            "status",
            "method",
            "transaction_reference",
            "notes",
            "created_by",
            "created_at",
            "completed_at",
        )
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    """Counter-recorded payment (cash, debit terminal, manual card)."""

    amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    payment_type = serializers.ChoiceField(
        choices=[Payment.Type.RENTAL, Payment.Type.ADDITIONAL], default=Payment.Type.RENTAL
    )
    method = serializers.ChoiceField(
        choices=[
            (value, label)
            for value, label in Payment.Method.choices
            if value != Payment.Method.POINTS
        ],
        default=Payment.Method.CARD,
    )
    transaction_reference = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    reason = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero.")
        return value
