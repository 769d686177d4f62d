"""Operator endpoints for booking status changes and modifications."""

import logging

from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.response import Response

from bookings.domain import apply_modification, preview_modification, transition_booking
from bookings.filters import OperatorBookingFilter
from bookings.models import Booking
from bookings.serializers import (
    BookingEventSerializer,
    BookingModificationSerializer,
    BookingSerializer,
    BookingTransitionSerializer,
)
from operator_core.api_base import OperatorAPIView, OperatorThrottleMixin
from operator_core.audit import audit_request
from operator_core.models import OperatorAuditEvent
from operator_core.permissions import COUNTER_ROLES, SUPPORT_ROLES, HasOperatorRole, IsOperator

logger = logging.getLogger(__name__)


class OperatorBookingListView(OperatorThrottleMixin, generics.ListAPIView):
    serializer_class = BookingSerializer
    permission_classes = [IsOperator, HasOperatorRole.with_roles(SUPPORT_ROLES)]
    filter_backends = [DjangoFilterBackend]
    filterset_class = OperatorBookingFilter
    http_method_names = ["get"]

    def get_queryset(self):
        return (
            Booking.objects.select_related("vehicle_category", "vehicle_unit", "renter")
            .prefetch_related("add_ons__add_on")
            .order_by("-created_at")
        )


class OperatorBookingDetailView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(SUPPORT_ROLES)]

    def get(self, request, pk: int):
        booking = get_object_or_404(
            Booking.objects.select_related("vehicle_category", "vehicle_unit").prefetch_related(
                "add_ons__add_on", "events"
            ),
            pk=pk,
        )
        data = BookingSerializer(booking).data
        data["events"] = BookingEventSerializer(booking.events.all(), many=True).data
        return Response(data)


class OperatorBookingActionBase(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(COUNTER_ROLES)]
    http_method_names = ["post"]

    def _audit_booking(self, request, booking, *, action, reason, before=None, after=None):
        audit_request(
            request,
            action=action,
            entity_type=OperatorAuditEvent.EntityType.BOOKING,
            entity_id=booking.id,
            reason=reason,
            before=before,
            after=after,
        )


class OperatorBookingTransitionView(OperatorBookingActionBase):
    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = BookingTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        reason = data["reason"].strip() or f"status changed to {data['status']}"

        before = {"status": booking.status}
        try:
            booking = transition_booking(
                booking.id,
                data["status"],
                actor=request.user,
                reason=reason,
                returned_at=data.get("returned_at"),
            )
        except ValidationError as exc:
            return self.validation_error_response(exc)

        self._audit_booking(
            request,
            booking,
            action=f"operator.booking.{data['status']}",
            reason=reason,
            before=before,
            after={"status": booking.status, "late_fee": str(booking.late_fee)},
        )
        return Response(BookingSerializer(booking).data)


class OperatorBookingModifyPreviewView(OperatorBookingActionBase):
    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = BookingModificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            preview = preview_modification(booking, serializer.to_modification())
        except ValidationError as exc:
            return self.validation_error_response(exc)
        return Response(preview)


class OperatorBookingModifyView(OperatorBookingActionBase):
    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = BookingModificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason = serializer.validated_data["reason"].strip()
        if not reason:
            return Response({"detail": "reason is required"}, status=status.HTTP_400_BAD_REQUEST)

        before = {
            "end_at": booking.end_at.isoformat(),
            "vehicle_category_id": booking.vehicle_category_id,
            "vehicle_unit_id": booking.vehicle_unit_id,
            "protection_plan": booking.protection_plan,
            "total_amount": str(booking.total_amount),
        }
        try:
            booking = apply_modification(
                booking.id, serializer.to_modification(), actor=request.user
            )
        except ValidationError as exc:
            return self.validation_error_response(exc)

        self._audit_booking(
            request,
            booking,
            action="operator.booking.modify",
            reason=reason,
            before=before,
            after={
                "end_at": booking.end_at.isoformat(),
                "vehicle_category_id": booking.vehicle_category_id,
                "vehicle_unit_id": booking.vehicle_unit_id,
                "protection_plan": booking.protection_plan,
                "total_amount": str(booking.total_amount),
            },
        )
        return Response(BookingSerializer(booking).data)
