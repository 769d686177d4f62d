from __future__ import annotations

import logging
from datetime import datetime

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response

from core.settings_resolver import clear_settings_cache
from operator_core.api_base import OperatorAPIView
from operator_core.audit import audit_request
from operator_core.models import OperatorAuditEvent
from operator_core.permissions import ADMIN_ROLES, SUPPORT_ROLES, HasOperatorRole, IsOperator
from operator_settings.models import DbSetting
from operator_settings.serializers import DbSettingPutSerializer, DbSettingSerializer

logger = logging.getLogger(__name__)


def _current_effective_setting(key: str, *, now: datetime) -> DbSetting | None:
    return (
        DbSetting.objects.filter(key=key)
        .filter(Q(effective_at__isnull=True) | Q(effective_at__lte=now))
        .order_by(F("effective_at").desc(nulls_last=True), "-updated_at", "-id")
        .first()
    )


class OperatorSettingsView(OperatorAPIView):
    http_method_names = ["get", "put"]

    def get_permissions(self):
        if self.request.method == "PUT":
            return [IsOperator(), HasOperatorRole.with_roles(ADMIN_ROLES)()]
        return [IsOperator(), HasOperatorRole.with_roles(SUPPORT_ROLES)()]

    def get(self, request):
        now = timezone.now()
        qs = (
            DbSetting.objects.filter(Q(effective_at__isnull=True) | Q(effective_at__lte=now))
            .order_by("key", F("effective_at").desc(nulls_last=True), "-updated_at", "-id")
        )

        selected: list[DbSetting] = []
        seen: set[str] = set()
        for row in qs:
            if row.key in seen:
                continue
            seen.add(row.key)
            selected.append(row)

        return Response(DbSettingSerializer(selected, many=True).data)

    def put(self, request):
        payload = request.data if isinstance(request.data, dict) else {}
        serializer = DbSettingPutSerializer(data=payload)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        key = data["key"]

        with transaction.atomic():
            previous = _current_effective_setting(key, now=timezone.now())
            setting = DbSetting.objects.create(
                key=key,
                value_type=data["value_type"],
                value_json=data["value"],
                description=data.get("description") or "",
                effective_at=data.get("effective_at"),
                updated_by=request.user,
            )
            audit_request(
                request,
                action="operator.settings.put",
                entity_type=OperatorAuditEvent.EntityType.DB_SETTING,
                entity_id=key,
                reason=data["reason"],
                before=DbSettingSerializer(previous).data if previous else None,
                after=DbSettingSerializer(setting).data,
            )
            transaction.on_commit(lambda: clear_settings_cache(key))

        logger.info("operator settings: %s updated", key, extra={"setting_id": setting.id})
        return Response(DbSettingSerializer(setting).data, status=status.HTTP_201_CREATED)
