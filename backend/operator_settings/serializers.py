from __future__ import annotations

from decimal import Decimal, InvalidOperation

from rest_framework import serializers

from operator_settings.models import DbSetting
from operator_settings.registry import TUNABLE_SETTINGS


class DbSettingSerializer(serializers.ModelSerializer):
    updated_by_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = DbSetting
        fields = [
            "id",
            "key",
            "value_type",
            "value_json",
            "description",
            "effective_at",
            "updated_at",
            "updated_by_id",
        ]


class DbSettingPutSerializer(serializers.Serializer):
    key = serializers.CharField(max_length=128)
    value_type = serializers.ChoiceField(choices=DbSetting.ValueType.choices)
    value = serializers.JSONField()
    description = serializers.CharField(required=False, allow_blank=True, default="")
    effective_at = serializers.DateTimeField(required=False, allow_null=True)
    reason = serializers.CharField(allow_blank=False, trim_whitespace=True)

    def validate_key(self, value: str) -> str:
        key = (value or "").strip()
        if key not in TUNABLE_SETTINGS:
            raise serializers.ValidationError("Unknown setting key.")
        return key

    def validate(self, attrs: dict) -> dict:
        key = attrs["key"]
        value_type = attrs.get("value_type")
        value = attrs.get("value")

        expected_type, _description = TUNABLE_SETTINGS[key]
        if value_type != expected_type:
            raise serializers.ValidationError({"value_type": f"{key} must be {expected_type}"})

        if value_type == DbSetting.ValueType.BOOL and type(value) is not bool:
            raise serializers.ValidationError({"value": "value must be a boolean"})
        if value_type == DbSetting.ValueType.INT and type(value) is not int:
            raise serializers.ValidationError({"value": "value must be an integer"})
        if value_type == DbSetting.ValueType.STR and not isinstance(value, str):
            raise serializers.ValidationError({"value": "value must be a string"})
        if value_type == DbSetting.ValueType.JSON and not isinstance(value, dict):
            raise serializers.ValidationError({"value": "value must be an object"})
        if value_type == DbSetting.ValueType.DECIMAL:
            if not isinstance(value, str):
                raise serializers.ValidationError({"value": "value must be a decimal string"})
            try:
                parsed = Decimal(value)
            except InvalidOperation:
                raise serializers.ValidationError({"value": "value must be a decimal string"})
            if parsed < 0:
                raise serializers.ValidationError({"value": "value cannot be negative"})

        return attrs
