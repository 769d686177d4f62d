import logging

from django.shortcuts import get_object_or_404
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.response import Response

from fleet.filters import DamageReportFilter, VehicleUnitFilter
from fleet.models import DamageReport, VehicleUnit
from fleet.serializers import (
    DamageReportSerializer,
    VehicleExpenseSerializer,
    VehicleUnitSerializer,
)
from fleet.services import unit_cost_summary
from operator_core.api_base import OperatorAPIView, OperatorThrottleMixin
from operator_core.audit import audit_request
from operator_core.models import OperatorAuditEvent
from operator_core.permissions import (
    COUNTER_ROLES,
    FINANCE_ROLES,
    SUPPORT_ROLES,
    HasOperatorRole,
    IsOperator,
)

logger = logging.getLogger(__name__)


class VehicleUnitListView(OperatorThrottleMixin, generics.ListAPIView):
    serializer_class = VehicleUnitSerializer
    permission_classes = [IsOperator, HasOperatorRole.with_roles(SUPPORT_ROLES)]
    filter_backends = [DjangoFilterBackend]
    filterset_class = VehicleUnitFilter
    http_method_names = ["get"]

    def get_queryset(self):
        return VehicleUnit.objects.select_related("category").order_by("vin")


class VehicleUnitCostsView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(FINANCE_ROLES)]

    def get(self, request, pk: int):
        unit = get_object_or_404(VehicleUnit, pk=pk)
        return Response(unit_cost_summary(unit))


class VehicleExpenseCreateView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(FINANCE_ROLES)]

    def post(self, request, pk: int):
        unit = get_object_or_404(VehicleUnit, pk=pk)
        serializer = VehicleExpenseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        expense = serializer.save(unit=unit, created_by=request.user)
        logger.info(
            "fleet: expense %s recorded for unit %s",
            expense.id,
            unit.id,
            extra={"unit_id": unit.id},
        )
        return Response(VehicleExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)


class DamageReportListCreateView(OperatorThrottleMixin, generics.ListCreateAPIView):
    serializer_class = DamageReportSerializer
    permission_classes = [IsOperator, HasOperatorRole.with_roles(COUNTER_ROLES)]
    filter_backends = [DjangoFilterBackend]
    filterset_class = DamageReportFilter

    def get_queryset(self):
        return DamageReport.objects.select_related("unit", "booking")

    def perform_create(self, serializer):
        report = serializer.save(reported_by=self.request.user)
        logger.info(
            "fleet: damage report %s filed for unit %s",
            report.id,
            report.unit_id,
            extra={"unit_id": report.unit_id, "booking_id": report.booking_id},
        )


class DamageReportResolveView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(COUNTER_ROLES)]

    def post(self, request, pk: int):
        report = get_object_or_404(DamageReport, pk=pk)
        reason = (request.data.get("reason") or "").strip()
        if not reason:
            return Response({"detail": "reason is required"}, status=status.HTTP_400_BAD_REQUEST)
        if report.status == DamageReport.Status.RESOLVED:
            return Response(
                {"status": ["Damage report is already resolved."]},
                status=status.HTTP_400_BAD_REQUEST,
            )
        report.status = DamageReport.Status.RESOLVED
        report.resolved_at = timezone.now()
        report.save(update_fields=["status", "resolved_at"])
        if report.booking_id:
            audit_request(
                request,
                action="fleet.damage_report.resolved",
                entity_type=OperatorAuditEvent.EntityType.BOOKING,
                entity_id=report.booking_id,
                reason=reason,
                after={"damage_report_id": report.id},
            )
        return Response(DamageReportSerializer(report).data)
