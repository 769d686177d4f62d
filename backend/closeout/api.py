"""Operator endpoints for closing out rental accounts."""

from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.response import Response

from bookings.models import Booking
from operator_core.api_base import OperatorAPIView
from operator_core.permissions import FINANCE_ROLES, SUPPORT_ROLES, HasOperatorRole, IsOperator

from .models import Closeout
from .serializers import CloseAccountSerializer, CloseoutPreviewSerializer, CloseoutSerializer
from .services import (
    CloseoutConfirmations,
    CloseoutDepositError,
    close_account,
    preview_closeout,
    retry_closeout,
)


def _deposit_error_response(exc: CloseoutDepositError) -> Response:
    return Response(
        {
            "detail": "Invoice issued but the deposit could not be settled.",
            "error": str(exc),
            "closeout_id": exc.closeout.id,
            "closeout": CloseoutSerializer(exc.closeout).data,
        },
        status=status.HTTP_502_BAD_GATEWAY,
    )


class OperatorCloseoutPreviewView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(SUPPORT_ROLES)]
    http_method_names = ["get", "post"]

    def get(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        return Response(preview_closeout(booking))

    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = CloseoutPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(
            preview_closeout(booking, additional_charges=serializer.extra_charges())
        )


class OperatorCloseAccountView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(FINANCE_ROLES)]
    http_method_names = ["get", "post"]

    def get(self, request, pk: int):
        closeout = get_object_or_404(
            Closeout.objects.select_related("invoice"), booking_id=pk
        )
        return Response(CloseoutSerializer(closeout).data)

    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = CloseAccountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            closeout = close_account(
                booking.id,
                actor=request.user,
                confirmations=CloseoutConfirmations(
                    charges_reviewed=data["charges_reviewed"],
                    inspection_complete=data["inspection_complete"],
                    invoice_acknowledged=data["invoice_acknowledged"],
                ),
                additional_charges=serializer.extra_charges(),
                notes=data["notes"],
            )
        except ValidationError as exc:
            return self.validation_error_response(exc)
        except CloseoutDepositError as exc:
            return _deposit_error_response(exc)
        return Response(CloseoutSerializer(closeout).data, status=status.HTTP_201_CREATED)


class OperatorCloseoutRetryView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(FINANCE_ROLES)]
    http_method_names = ["post"]

    def post(self, request, pk: int):
        closeout = get_object_or_404(Closeout, booking_id=pk)
        try:
            closeout = retry_closeout(closeout.id, actor=request.user)
        except ValidationError as exc:
            return self.validation_error_response(exc)
        except CloseoutDepositError as exc:
            return _deposit_error_response(exc)
        return Response(CloseoutSerializer(closeout).data)
