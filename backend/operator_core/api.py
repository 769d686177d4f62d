from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics
from rest_framework.response import Response

from operator_core.api_base import OperatorAPIView, OperatorThrottleMixin
from operator_core.filters import OperatorAuditEventFilter
from operator_core.models import OperatorAuditEvent
from operator_core.permissions import SUPPORT_ROLES, HasOperatorRole, IsOperator, operator_roles
from operator_core.serializers import OperatorAuditEventSerializer


class OperatorMeView(OperatorAPIView):
    permission_classes = [IsOperator]

    def get(self, request):
        user = request.user
        name = (user.get_full_name() or user.username or user.email or "").strip()
        return Response(
            {
                "id": user.id,
                "email": user.email,
                "name": name,
                "is_staff": user.is_staff,
                "roles": operator_roles(user),
            }
        )


class OperatorAuditEventListView(OperatorThrottleMixin, generics.ListAPIView):
    serializer_class = OperatorAuditEventSerializer
    permission_classes = [IsOperator, HasOperatorRole.with_roles(SUPPORT_ROLES)]
    filter_backends = [DjangoFilterBackend]
    filterset_class = OperatorAuditEventFilter
    http_method_names = ["get"]

    def get_queryset(self):
        return OperatorAuditEvent.objects.select_related("actor").all()
