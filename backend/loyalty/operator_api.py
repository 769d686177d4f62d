"""Operator endpoints for points accounts."""

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.response import Response

from operator_core.api_base import OperatorAPIView, OperatorThrottleMixin
from operator_core.audit import audit_request
from operator_core.models import OperatorAuditEvent
from operator_core.permissions import FINANCE_ROLES, SUPPORT_ROLES, HasOperatorRole, IsOperator

from .serializers import PointsAdjustSerializer, PointsLedgerEntrySerializer
from .services import adjust_points, points_history

User = get_user_model()


class OperatorPointsLedgerView(OperatorThrottleMixin, generics.ListAPIView):
    serializer_class = PointsLedgerEntrySerializer
    permission_classes = [IsOperator, HasOperatorRole.with_roles(SUPPORT_ROLES)]
    http_method_names = ["get"]

    def get_queryset(self):
        user = get_object_or_404(User, pk=self.kwargs["user_id"])
        return points_history(user)


class OperatorPointsAdjustView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(FINANCE_ROLES)]
    http_method_names = ["post"]

    def post(self, request, user_id: int):
        user = get_object_or_404(User, pk=user_id)
        serializer = PointsAdjustSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        notes = serializer.validated_data["notes"].strip()
        if not notes:
            return Response({"detail": "reason is required"}, status=status.HTTP_400_BAD_REQUEST)
        points = serializer.validated_data["points"]
        before = {"points_balance": user.points_balance}
        try:
            balance = adjust_points(user=user, points=points, notes=notes, actor=request.user)
        except ValidationError as exc:
            return self.validation_error_response(exc)

        audit_request(
            request,
            action="operator.points.adjust",
            entity_type=OperatorAuditEvent.EntityType.POINTS_ACCOUNT,
            entity_id=user.id,
            reason=notes,
            before=before,
            after={"points_balance": balance},
            meta={"points": points},
        )
        return Response({"user_id": user.id, "points_balance": balance})
