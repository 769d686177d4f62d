"""Renter-facing booking endpoints."""

from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.cache import Entity, cached

from .domain import create_booking, quote_booking
from .models import Booking
from .serializers import BookingCreateSerializer, BookingSerializer, QuoteRequestSerializer

logger = logging.getLogger(__name__)


def _validation_error_response(exc: ValidationError) -> Response:
    if hasattr(exc, "message_dict"):
        detail = exc.message_dict
    else:
        detail = {"non_field_errors": exc.messages}
    return Response(detail, status=status.HTTP_400_BAD_REQUEST)


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """A renter's own bookings, plus quoting and creating new ones."""

    serializer_class = BookingSerializer
    permission_classes = (permissions.IsAuthenticated,)

    def get_queryset(self):
        user = self.request.user
        if not user.is_authenticated:
            return Booking.objects.none()
        return (
            Booking.objects.select_related("vehicle_category", "vehicle_unit")
            .prefetch_related("add_ons__add_on")
            .filter(renter=user)
            .order_by("-created_at")
        )

    def retrieve(self, request, *args, **kwargs):
        booking = get_object_or_404(self.get_queryset(), pk=kwargs["pk"])
        data = cached(
            Entity.BOOKING,
            booking.id,
            "detail",
            lambda: dict(BookingSerializer(booking).data),
        )
        return Response(data)

    def create(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            booking = create_booking(
                renter=request.user,
                client_total=serializer.validated_data.get("expected_total"),
                points_to_redeem=serializer.validated_data["points_to_redeem"],
                **serializer.booking_kwargs(),
            )
        except ValidationError as exc:
            return _validation_error_response(exc)
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    @action(
        detail=False,
        methods=["post"],
        url_path="quote",
        permission_classes=[permissions.AllowAny],
    )
    def quote(self, request, *args, **kwargs):
        """Price a prospective booking without creating it."""
        serializer = QuoteRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            breakdown = quote_booking(**serializer.booking_kwargs())
        except ValidationError as exc:
            return _validation_error_response(exc)
        return Response(breakdown.as_totals())
