from __future__ import annotations

from rest_framework import serializers

from operator_core.models import OperatorAuditEvent


class OperatorAuditEventSerializer(serializers.ModelSerializer):
    actor = serializers.SerializerMethodField()

    class Meta:
        model = OperatorAuditEvent
        fields = [
            "id",
            "action",
            "entity_type",
            "entity_id",
            "reason",
            "before_json",
            "after_json",
            "meta_json",
            "created_at",
            "actor",
        ]
        read_only_fields = fields

    def get_actor(self, obj: OperatorAuditEvent) -> dict | None:
        actor = getattr(obj, "actor", None)
        if not actor:
            return None
        name = (actor.get_full_name() or "").strip() or actor.username
        return {"id": actor.id, "name": name}
