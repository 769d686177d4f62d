"""Operator endpoints for deposit holds and recorded payments."""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.response import Response

from bookings.models import Booking
from operator_core.api_base import OperatorAPIView
from operator_core.audit import audit_request
from operator_core.models import OperatorAuditEvent
from operator_core.permissions import (
    COUNTER_ROLES,
    FINANCE_ROLES,
    SUPPORT_ROLES,
    HasOperatorRole,
    IsOperator,
)

from .deposits import describe_hold, restart_hold
from .ledger import deposit_summary, record_payment, refund_payment
from .models import DepositHold, Payment
from .serializers import (
    DepositAuthorizeSerializer,
    DepositCaptureSerializer,
    DepositLedgerEntrySerializer,
    DepositReasonSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
)
from .stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
    capture_deposit,
    create_deposit_hold,
    release_deposit_hold,
    sync_deposit_status,
)

logger = logging.getLogger(__name__)


def _stripe_error_response(exc: Exception) -> Response:
    if isinstance(exc, StripePaymentError):
        return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    return Response({"detail": str(exc)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


def _hold_payload(booking: Booking) -> dict:
    hold = DepositHold.objects.filter(booking=booking).first()
    data = describe_hold(hold)
    data["summary"] = deposit_summary(booking)
    return data


class OperatorDepositView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(SUPPORT_ROLES)]
    http_method_names = ["get"]

    def get(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        return Response(_hold_payload(booking))


class OperatorDepositLedgerView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(SUPPORT_ROLES)]
    http_method_names = ["get"]

    def get(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        entries = booking.deposit_ledger.select_related("actor").all()
        return Response(
            {
                "booking_id": booking.id,
                "summary": deposit_summary(booking),
                "entries": DepositLedgerEntrySerializer(entries, many=True).data,
            }
        )


class OperatorDepositActionBase(OperatorAPIView):
    http_method_names = ["post"]

    def _audit_hold(self, request, hold, *, action, reason, before=None, after=None, meta=None):
        audit_request(
            request,
            action=action,
            entity_type=OperatorAuditEvent.EntityType.DEPOSIT_HOLD,
            entity_id=hold.id,
            reason=reason,
            before=before,
            after=after,
            meta=meta,
        )


class OperatorDepositAuthorizeView(OperatorDepositActionBase):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(COUNTER_ROLES)]

    def post(self, request, pk: int):
        booking = get_object_or_404(Booking.objects.select_related("renter"), pk=pk)
        serializer = DepositAuthorizeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            hold = create_deposit_hold(
                booking=booking,
                customer_id=serializer.validated_data["customer_id"],
                payment_method_id=serializer.validated_data["payment_method_id"],
                actor=request.user,
            )
        except ValidationError as exc:
            return self.validation_error_response(exc)
        except (StripePaymentError, StripeTransientError, StripeConfigurationError) as exc:
            return _stripe_error_response(exc)

        self._audit_hold(
            request,
            hold,
            action="operator.deposit.authorize",
            reason="deposit authorization requested",
            after={"status": hold.status, "amount": str(hold.amount)},
        )
        return Response(_hold_payload(booking))


class OperatorDepositCaptureView(OperatorDepositActionBase):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(FINANCE_ROLES)]

    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = DepositCaptureSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason = serializer.validated_data["reason"].strip()
        if not reason:
            return Response({"detail": "reason is required"}, status=status.HTTP_400_BAD_REQUEST)
        amount = serializer.validated_data["amount"]
        try:
            hold = capture_deposit(
                booking=booking, amount=amount, reason=reason, actor=request.user
            )
        except DepositHold.DoesNotExist:
            return Response(
                {"detail": "Booking has no deposit hold."}, status=status.HTTP_404_NOT_FOUND
            )
        except ValidationError as exc:
            return self.validation_error_response(exc)
        except (StripePaymentError, StripeTransientError, StripeConfigurationError) as exc:
            return _stripe_error_response(exc)

        self._audit_hold(
            request,
            hold,
            action="operator.deposit.capture",
            reason=reason,
            after={"status": hold.status, "captured_amount": str(hold.captured_amount)},
            meta={"booking_id": booking.id},
        )
        return Response(_hold_payload(booking))


class OperatorDepositReleaseView(OperatorDepositActionBase):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(FINANCE_ROLES)]

    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = DepositReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason = serializer.validated_data["reason"].strip() or "deposit released by operator"
        try:
            hold = release_deposit_hold(booking=booking, reason=reason, actor=request.user)
        except ValidationError as exc:
            return self.validation_error_response(exc)
        except (StripePaymentError, StripeTransientError, StripeConfigurationError) as exc:
            return _stripe_error_response(exc)

        self._audit_hold(
            request,
            hold,
            action="operator.deposit.release",
            reason=reason,
            after={"status": hold.status},
            meta={"booking_id": booking.id},
        )
        return Response(_hold_payload(booking))


class OperatorDepositSyncView(OperatorDepositActionBase):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(COUNTER_ROLES + FINANCE_ROLES)]

    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        hold = get_object_or_404(DepositHold, booking=booking)
        serializer = DepositReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason = serializer.validated_data["reason"].strip()
        if not reason:
            return Response({"detail": "reason is required"}, status=status.HTTP_400_BAD_REQUEST)
        before = {"status": hold.status}
        try:
            hold = sync_deposit_status(booking, actor=request.user)
        except (StripePaymentError, StripeTransientError, StripeConfigurationError) as exc:
            return _stripe_error_response(exc)

        self._audit_hold(
            request,
            hold,
            action="operator.deposit.sync",
            reason=reason,
            before=before,
            after={"status": hold.status},
            meta={"booking_id": booking.id},
        )
        return Response(_hold_payload(booking))


class OperatorDepositRestartView(OperatorDepositActionBase):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(COUNTER_ROLES)]

    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        hold = get_object_or_404(DepositHold, booking=booking)
        serializer = DepositReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason = serializer.validated_data["reason"].strip()
        if not reason:
            return Response({"detail": "reason is required"}, status=status.HTTP_400_BAD_REQUEST)
        before = {"status": hold.status, "attempt": hold.attempt}
        try:
            hold = restart_hold(hold.id)
        except ValidationError as exc:
            return self.validation_error_response(exc)

        self._audit_hold(
            request,
            hold,
            action="operator.deposit.restart",
            reason=reason,
            before=before,
            after={"status": hold.status, "attempt": hold.attempt},
        )
        return Response(_hold_payload(booking))


class OperatorBookingPaymentsView(OperatorAPIView):
    """List payments for a booking or record one taken at the counter."""

    http_method_names = ["get", "post"]

    def get_permissions(self):
        roles = SUPPORT_ROLES if self.request.method == "GET" else COUNTER_ROLES
        return [IsOperator(), HasOperatorRole.with_roles(roles)()]

    def get(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        return Response(PaymentSerializer(booking.payments.all(), many=True).data)

    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        reason = data["reason"].strip()
        if not reason:
            return Response({"detail": "reason is required"}, status=status.HTTP_400_BAD_REQUEST)
        with transaction.atomic():
            payment = record_payment(
                booking=booking,
                amount=data["amount"],
                payment_type=data["payment_type"],
                method=data["method"],
                transaction_reference=data["transaction_reference"],
                notes=data["notes"],
                created_by=request.user,
            )
            audit_request(
                request,
                action="operator.payment.record",
                entity_type=OperatorAuditEvent.EntityType.BOOKING,
                entity_id=pk,
                reason=reason,
                after={
                    "payment_id": payment.id,
                    "amount": payment.amount,
                    "payment_type": payment.payment_type,
                    "method": payment.method,
                },
            )
        logger.info(
            "payments: recorded %s %s for booking %s",
            payment.payment_type,
            payment.amount,
            booking.id,
            extra={"booking_id": booking.id},
        )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


class OperatorPaymentRefundView(OperatorAPIView):
    permission_classes = [IsOperator, HasOperatorRole.with_roles(FINANCE_ROLES)]
    http_method_names = ["post"]

    def post(self, request, pk: int, payment_id: int):
        payment = get_object_or_404(Payment, pk=payment_id, booking_id=pk)
        serializer = DepositReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason = serializer.validated_data["reason"].strip()
        if not reason:
            return Response({"detail": "reason is required"}, status=status.HTTP_400_BAD_REQUEST)
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.status != Payment.Status.COMPLETED:
                return Response(
                    {"status": ["Only completed payments can be refunded."]},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            refund_payment(payment, reason=reason, actor=request.user)
            audit_request(
                request,
                action="operator.payment.refund",
                entity_type=OperatorAuditEvent.EntityType.BOOKING,
                entity_id=pk,
                reason=reason,
                before={"payment_id": payment.id, "status": Payment.Status.COMPLETED},
                after={"payment_id": payment.id, "status": payment.status},
            )
        return Response(PaymentSerializer(payment).data)
