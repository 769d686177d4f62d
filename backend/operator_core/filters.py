from __future__ import annotations

import django_filters as filters

from operator_core.models import OperatorAuditEvent


class OperatorAuditEventFilter(filters.FilterSet):
    actor_id = filters.NumberFilter(field_name="actor_id")
    entity_type = filters.CharFilter(field_name="entity_type", lookup_expr="iexact")
    entity_id = filters.CharFilter(field_name="entity_id")
    action = filters.CharFilter(field_name="action", lookup_expr="istartswith")
    created_at_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = OperatorAuditEvent
        fields = ["actor_id", "entity_type", "entity_id", "action"]
