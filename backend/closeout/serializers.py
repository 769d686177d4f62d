from rest_framework import serializers

from .models import Closeout, FinalInvoice
from .settlement import ExtraCharge


class ExtraChargeSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=255)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)


class CloseoutPreviewSerializer(serializers.Serializer):
    additional_charges = ExtraChargeSerializer(many=True, required=False)

    def extra_charges(self) -> list[ExtraCharge]:
        return [
            ExtraCharge(description=item["description"], amount=item["amount"])
            for item in self.validated_data.get("additional_charges", [])
        ]


class CloseAccountSerializer(CloseoutPreviewSerializer):
    charges_reviewed = serializers.BooleanField(default=False)
    inspection_complete = serializers.BooleanField(default=False)
    invoice_acknowledged = serializers.BooleanField(default=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class FinalInvoiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = FinalInvoice
        fields = (
            "id",
            "booking",
            "invoice_number",
            "rental_subtotal",
            "add_ons_total",
            "tax_amount",
            "late_fee",
            "additional_charges",
            "additional_charges_total",
            "total_charges",
            "payments_received",
            "amount_due",
            "deposit_held",
            "deposit_to_capture",
            "deposit_to_release",
            "final_amount_due",
            "issued_by",
            "issued_at",
        )
        read_only_fields = fields


class CloseoutSerializer(serializers.ModelSerializer):
    invoice = FinalInvoiceSerializer(read_only=True)

    class Meta:
        model = Closeout
        fields = (
            "id",
            "booking",
            "status",
            "deposit_action",
            "confirmations",
            "notes",
            "attempts",
            "last_error",
            "closed_by",
            "invoice",
            "created_at",
            "completed_at",
        )
        read_only_fields = fields
