"""Stripe helpers for security-deposit authorization holds."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import stripe
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from bookings.models import Booking
from core.money import ZERO, from_cents, q2, to_cents

from .deposits import (
    InvalidDepositTransition,
    apply_transition,
    can_transition,
    transition_hold,
    validate_capture_amount,
)
from .ledger import has_entry, log_deposit_entry, record_payment
from .models import DepositHold, DepositLedgerEntry, Payment, StripeWebhookEvent

logger = logging.getLogger(__name__)
IDEMPOTENCY_VERSION = "v1"
DEPOSIT_KIND = "deposit_hold"

HoldStatus = DepositHold.Status

# Stripe PaymentIntent.status -> DepositHold.status
INTENT_STATUS_MAP = {
    "requires_payment_method": HoldStatus.REQUIRES_PAYMENT,
    "requires_confirmation": HoldStatus.REQUIRES_PAYMENT,
    "requires_action": HoldStatus.AUTHORIZING,
    "processing": HoldStatus.AUTHORIZING,
    "requires_capture": HoldStatus.AUTHORIZED,
    "succeeded": HoldStatus.CAPTURED,
}

HANDLED_WEBHOOK_EVENTS = (
    "payment_intent.amount_capturable_updated",
    "payment_intent.canceled",
    "payment_intent.payment_failed",
    "payment_intent.succeeded",
)


class StripeConfigurationError(Exception):
    """Stripe is not configured correctly in the environment."""


class StripeTransientError(Exception):
    """Temporary Stripe/API issue that should be retried."""


class StripePaymentError(Exception):
    """Permanent payment failure for a deposit operation."""


def _get_stripe_api_key() -> str:
    """Return the configured Stripe API key or raise if missing."""
    api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not api_key:
        raise StripeConfigurationError("Stripe secret key not configured.")
    return api_key


def _handle_stripe_error(exc: stripe.StripeError) -> None:
    """Map Stripe SDK errors onto internal exception types."""
    if isinstance(exc, stripe.CardError):
        message = exc.user_message or "Your card was declined."
        raise StripePaymentError(message) from exc
    if isinstance(
        exc,
        (
            stripe.RateLimitError,
            stripe.APIConnectionError,
            stripe.APIError,
        ),
    ):
        raise StripeTransientError("Temporary Stripe error, please retry.") from exc
    if isinstance(exc, (stripe.AuthenticationError, stripe.PermissionError)):
        raise StripeConfigurationError("Stripe credentials are invalid or unauthorized.") from exc
    if isinstance(exc, stripe.InvalidRequestError):
        raise StripePaymentError(exc.user_message or "Invalid payment request.") from exc
    raise StripePaymentError(exc.user_message or "Stripe payment failure.") from exc


def _value(obj: Any, field: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or a plain dict payload."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(field, default)
    return getattr(obj, field, default)


def _card_details(intent: Any) -> tuple[str, str]:
    payment_method = _value(intent, "payment_method")
    card = _value(payment_method, "card") if not isinstance(payment_method, str) else None
    return (_value(card, "brand", "") or "", _value(card, "last4", "") or "")


def _charge_id(intent: Any) -> str:
    latest_charge = _value(intent, "latest_charge")
    if isinstance(latest_charge, str):
        return latest_charge
    return _value(latest_charge, "id", "") or ""


def _idempotency_key(hold: DepositHold, operation: str, cents: int | None = None) -> str:
    key = f"booking:{hold.booking_id}:{IDEMPOTENCY_VERSION}:{operation}:{hold.attempt}"
    return f"{key}:{cents}" if cents is not None else key


def _retrieve_payment_intent(intent_id: str) -> Any | None:
    """Retrieve an existing PaymentIntent, returning None if it no longer exists."""
    if not intent_id:
        return None
    try:
        return stripe.PaymentIntent.retrieve(intent_id)
    except stripe.InvalidRequestError as exc:
        if getattr(exc, "code", "") == "resource_missing":
            logger.info("Stripe PaymentIntent %s missing.", intent_id)
            return None
        _handle_stripe_error(exc)
    except stripe.StripeError as exc:
        _handle_stripe_error(exc)
    return None


def _queue_renter_email(task_name: str, booking_id: int) -> None:
    """Queue a renter email once the surrounding transaction commits."""
    from notifications import tasks as notification_tasks

    def _send():
        try:
            getattr(notification_tasks, task_name).delay(booking_id)
        except Exception:
            logger.exception(
                "deposits: failed to queue %s", task_name, extra={"booking_id": booking_id}
            )

    transaction.on_commit(_send)


def hold_status_for_intent(intent_status: str, cancellation_reason: str | None = None) -> str:
    """Translate a PaymentIntent status into the matching hold status."""
    if intent_status == "canceled":
        if cancellation_reason == "automatic":
            return HoldStatus.EXPIRED
        return HoldStatus.CANCELED
    try:
        return INTENT_STATUS_MAP[intent_status]
    except KeyError as exc:
        raise StripePaymentError(f"Unknown PaymentIntent status {intent_status!r}.") from exc


def ensure_deposit_hold(booking: Booking) -> DepositHold:
    from bookings.domain import minimum_deposit_amount

    amount = max(q2(booking.deposit_amount or ZERO), minimum_deposit_amount())
    hold, _ = DepositHold.objects.get_or_create(booking=booking, defaults={"amount": amount})
    return hold


RELEASE_STATUSES = frozenset({HoldStatus.RELEASING, HoldStatus.RELEASED})
IN_FLIGHT_STATUSES = frozenset({HoldStatus.CAPTURING, HoldStatus.RELEASING})


def _settle_hold(hold: DepositHold, target: str) -> list[str]:
    """
    Record the outcome of a capture or release this service sent to Stripe.

    The webhook for the same intent can land before this runs and move the hold
    to the outcome already; the ledger and payment rows are still ours to write.
    """
    if hold.status == target:
        logger.info(
            "deposits: hold %s already %s from a processor event",
            hold.id,
            target,
            extra={"booking_id": hold.booking_id},
        )
        return ["updated_at"]
    return apply_transition(hold, target)


def _apply_intent(
    hold_id: int, intent: Any, *, actor=None, reason: str = "", webhook: bool = False
) -> DepositHold:
    """
    Bring a hold in line with the PaymentIntent status reported by Stripe.

    Unreachable targets (for example a late event for a hold that is already
    terminal) are logged and ignored. A webhook never moves a hold that is
    mid-capture or mid-release back to ``authorized``; that event predates the
    request in flight.
    """
    intent_status = _value(intent, "status", "") or ""
    target = hold_status_for_intent(intent_status, _value(intent, "cancellation_reason"))
    with transaction.atomic():
        hold = DepositHold.objects.select_for_update().get(pk=hold_id)
        if target == HoldStatus.CANCELED and hold.status in RELEASE_STATUSES:
            # our own release cancelled the intent
            target = HoldStatus.RELEASED
        if hold.status == target:
            return hold
        stale = (
            webhook and target == HoldStatus.AUTHORIZED and hold.status in IN_FLIGHT_STATUSES
        )
        if stale or not can_transition(hold.status, target, source="processor"):
            logger.warning(
                "deposits: ignoring intent status %s for hold in %s",
                intent_status,
                hold.status,
                extra={"booking_id": hold.booking_id, "hold_id": hold.id},
            )
            return hold
        before = hold.status
        fields = apply_transition(hold, target, source="processor")
        if target == HoldStatus.CAPTURED:
            received = _value(intent, "amount_received")
            hold.captured_amount = (
                min(from_cents(received), hold.amount) if received else hold.amount
            )
            hold.stripe_charge_id = _charge_id(intent) or hold.stripe_charge_id
            fields += ["captured_amount", "stripe_charge_id"]
        if target == HoldStatus.FAILED:
            error = _value(intent, "last_payment_error")
            hold.last_error = (_value(error, "message", "") or "payment failed")[:2000]
            fields.append("last_error")
        hold.save(update_fields=fields)
        log_deposit_entry(
            hold=hold,
            action=DepositLedgerEntry.Action.STATUS_SYNC,
            amount=hold.captured_amount if target == HoldStatus.CAPTURED else ZERO,
            reason=reason or f"stripe status {intent_status}",
            actor=actor,
            stripe_charge_id=hold.stripe_charge_id,
            status_before=before,
        )
        if target == HoldStatus.AUTHORIZED and not has_entry(hold, DepositLedgerEntry.Action.HOLD):
            log_deposit_entry(
                hold=hold,
                action=DepositLedgerEntry.Action.HOLD,
                amount=hold.amount,
                status_before=before,
            )
    logger.info(
        "deposits: hold %s synced %s -> %s",
        hold.id,
        before,
        target,
        extra={"booking_id": hold.booking_id},
    )
    return hold


def create_deposit_hold(
    *,
    booking: Booking,
    customer_id: str,
    payment_method_id: str,
    actor=None,
) -> DepositHold:
    """
    Authorize the security deposit with a manual-capture PaymentIntent.

    Safe to call again: an authorized hold is returned as is, and a hold stuck
    in ``authorizing`` re-sends the same idempotent Stripe request.
    """
    customer_value = customer_id or getattr(booking.renter, "stripe_customer_id", "") or ""
    customer_value = customer_value.strip()
    if not customer_value:
        raise StripePaymentError("Stripe customer id is required to authorize a deposit.")
    if not payment_method_id:
        raise StripePaymentError("Payment method id is required to authorize a deposit.")
    stripe.api_key = _get_stripe_api_key()

    hold = ensure_deposit_hold(booking)
    with transaction.atomic():
        hold = DepositHold.objects.select_for_update().get(pk=hold.pk)
        if hold.status == HoldStatus.AUTHORIZED:
            return hold
        fields: list[str] = []
        if hold.status == HoldStatus.NONE:
            hold.amount = max(hold.amount, q2(booking.deposit_amount or ZERO))
            fields += apply_transition(hold, HoldStatus.REQUIRES_PAYMENT) + ["amount"]
        if hold.status == HoldStatus.REQUIRES_PAYMENT:
            fields += apply_transition(hold, HoldStatus.AUTHORIZING)
        if hold.status != HoldStatus.AUTHORIZING or hold.stripe_payment_intent_id:
            raise InvalidDepositTransition(hold.status, HoldStatus.AUTHORIZED)
        hold.stripe_payment_method_id = payment_method_id
        hold.save(update_fields=list(dict.fromkeys(fields + ["stripe_payment_method_id"])))

    cents = to_cents(hold.amount)
    try:
        intent = stripe.PaymentIntent.create(
            amount=cents,
            currency=settings.STRIPE_CURRENCY,
            customer=customer_value,
            payment_method=payment_method_id,
            confirm=True,
            off_session=True,
            capture_method="manual",
            expand=["payment_method"],
            metadata={
                "booking_id": str(booking.id),
                "kind": DEPOSIT_KIND,
                "env": getattr(settings, "STRIPE_ENV", "dev") or "dev",
            },
            idempotency_key=_idempotency_key(hold, "deposit_hold", cents),
        )
    except stripe.CardError as exc:
        transition_hold(hold.id, HoldStatus.FAILED, error=exc.user_message or str(exc))
        logger.info(
            "deposits: authorization declined for booking %s",
            booking.id,
            extra={"booking_id": booking.id},
        )
        _handle_stripe_error(exc)
    except stripe.StripeError as exc:
        logger.warning(
            "deposits: authorization request failed for booking %s",
            booking.id,
            extra={"booking_id": booking.id},
            exc_info=True,
        )
        _handle_stripe_error(exc)

    brand, last4 = _card_details(intent)
    DepositHold.objects.filter(pk=hold.pk).update(
        stripe_payment_intent_id=intent.id,
        card_brand=brand,
        card_last4=last4,
    )
    if intent.status == "requires_capture":
        with transaction.atomic():
            hold = DepositHold.objects.select_for_update().get(pk=hold.pk)
            fields = apply_transition(hold, HoldStatus.AUTHORIZED)
            hold.save(update_fields=fields)
            log_deposit_entry(
                hold=hold,
                action=DepositLedgerEntry.Action.HOLD,
                amount=hold.amount,
                actor=actor,
                status_before=HoldStatus.AUTHORIZING,
            )
        logger.info(
            "deposits: authorized %s for booking %s",
            hold.amount,
            booking.id,
            extra={"booking_id": booking.id},
        )
        return hold
    if intent.status in ("requires_action", "processing"):
        return DepositHold.objects.get(pk=hold.pk)
    return _apply_intent(hold.id, intent, actor=actor)


def capture_deposit(
    *,
    booking: Booking,
    amount: Decimal,
    reason: str,
    actor=None,
) -> DepositHold:
    """
    Capture part or all of an authorized hold.

    A partial capture releases the rest of the authorization at Stripe, which
    is recorded as a ``stripe_release`` ledger entry.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError({"reason": ["A reason is required to capture a deposit."]})
    stripe.api_key = _get_stripe_api_key()

    with transaction.atomic():
        hold = DepositHold.objects.select_for_update().get(booking=booking)
        amount = validate_capture_amount(hold, amount)
        hold.save(update_fields=apply_transition(hold, HoldStatus.CAPTURING))

    try:
        intent = _retrieve_payment_intent(hold.stripe_payment_intent_id)
    except (StripeTransientError, StripePaymentError, StripeConfigurationError):
        transition_hold(hold.id, HoldStatus.AUTHORIZED)
        raise
    if intent is None or intent.status != "requires_capture":
        transition_hold(hold.id, HoldStatus.AUTHORIZED)
        if intent is not None:
            _apply_intent(hold.id, intent, actor=actor)
        raise StripePaymentError("Deposit hold is no longer capturable.")

    cents = to_cents(amount)
    try:
        captured = stripe.PaymentIntent.capture(
            hold.stripe_payment_intent_id,
            amount_to_capture=cents,
            idempotency_key=_idempotency_key(hold, "deposit_capture", cents),
        )
    except stripe.CardError as exc:
        transition_hold(hold.id, HoldStatus.FAILED, error=exc.user_message or str(exc))
        _handle_stripe_error(exc)
    except stripe.StripeError as exc:
        transition_hold(hold.id, HoldStatus.AUTHORIZED, error=str(exc))
        logger.warning(
            "deposits: capture failed for booking %s",
            booking.id,
            extra={"booking_id": booking.id},
            exc_info=True,
        )
        _handle_stripe_error(exc)

    with transaction.atomic():
        hold = DepositHold.objects.select_for_update().get(pk=hold.pk)
        fields = _settle_hold(hold, HoldStatus.CAPTURED)
        hold.captured_amount = amount
        hold.capture_reason = reason
        hold.stripe_charge_id = _charge_id(captured)
        hold.save(update_fields=fields + ["captured_amount", "capture_reason", "stripe_charge_id"])

        full = amount == hold.amount
        log_deposit_entry(
            hold=hold,
            action=(
                DepositLedgerEntry.Action.CAPTURE
                if full
                else DepositLedgerEntry.Action.PARTIAL_CAPTURE
            ),
            amount=amount,
            reason=reason,
            actor=actor,
            stripe_charge_id=hold.stripe_charge_id,
            status_before=HoldStatus.CAPTURING,
        )
        if not full:
            log_deposit_entry(
                hold=hold,
                action=DepositLedgerEntry.Action.STRIPE_RELEASE,
                amount=hold.amount - amount,
                reason="uncaptured remainder released by Stripe",
                actor=actor,
                status_before=HoldStatus.CAPTURING,
            )
        record_payment(
            booking=booking,
            amount=amount,
            payment_type=Payment.Type.DEPOSIT,
            method=Payment.Method.CARD,
            transaction_reference=hold.stripe_charge_id or hold.stripe_payment_intent_id,
            notes=reason,
            created_by=actor,
        )
        _queue_renter_email("send_deposit_captured_email", booking.id)

    logger.info(
        "deposits: captured %s of %s for booking %s",
        amount,
        hold.amount,
        booking.id,
        extra={"booking_id": booking.id},
    )
    return hold


def release_deposit_hold(*, booking: Booking, reason: str = "", actor=None) -> DepositHold:
    """Cancel the authorization so the renter's funds are freed. Idempotent."""
    hold = DepositHold.objects.filter(booking=booking).first()
    if hold is None:
        raise InvalidDepositTransition(HoldStatus.NONE, HoldStatus.RELEASING)
    if hold.status == HoldStatus.RELEASED:
        return hold
    stripe.api_key = _get_stripe_api_key()

    with transaction.atomic():
        hold = DepositHold.objects.select_for_update().get(pk=hold.pk)
        if hold.status == HoldStatus.RELEASED:
            return hold
        hold.save(update_fields=apply_transition(hold, HoldStatus.RELEASING))

    action = DepositLedgerEntry.Action.STRIPE_RELEASE
    try:
        stripe.PaymentIntent.cancel(
            hold.stripe_payment_intent_id,
            idempotency_key=_idempotency_key(hold, "deposit_release"),
        )
    except stripe.InvalidRequestError as exc:
        intent = _retrieve_payment_intent(hold.stripe_payment_intent_id)
        if intent is None:
            action = DepositLedgerEntry.Action.RELEASE
            logger.info(
                "deposits: intent missing for booking %s; treating as released",
                booking.id,
                extra={"booking_id": booking.id},
            )
        elif _value(intent, "status") != "canceled":
            transition_hold(hold.id, HoldStatus.AUTHORIZED, error=str(exc))
            _handle_stripe_error(exc)
    except stripe.StripeError as exc:
        transition_hold(hold.id, HoldStatus.AUTHORIZED, error=str(exc))
        logger.warning(
            "deposits: release failed for booking %s",
            booking.id,
            extra={"booking_id": booking.id},
            exc_info=True,
        )
        _handle_stripe_error(exc)

    with transaction.atomic():
        hold = DepositHold.objects.select_for_update().get(pk=hold.pk)
        hold.save(update_fields=_settle_hold(hold, HoldStatus.RELEASED))
        log_deposit_entry(
            hold=hold,
            action=action,
            amount=hold.amount,
            reason=reason or "deposit released",
            actor=actor,
            status_before=HoldStatus.RELEASING,
        )
        _queue_renter_email("send_deposit_released_email", booking.id)
    logger.info(
        "deposits: released %s for booking %s",
        hold.amount,
        booking.id,
        extra={"booking_id": booking.id},
    )
    return hold


def sync_deposit_status(booking: Booking, *, actor=None) -> DepositHold:
    """Re-read the PaymentIntent and apply its status to the hold."""
    hold = DepositHold.objects.get(booking=booking)
    if not hold.stripe_payment_intent_id:
        return hold
    stripe.api_key = _get_stripe_api_key()
    intent = _retrieve_payment_intent(hold.stripe_payment_intent_id)
    if intent is None:
        logger.warning(
            "deposits: intent %s missing during sync",
            hold.stripe_payment_intent_id,
            extra={"booking_id": booking.id},
        )
        return hold
    return _apply_intent(hold.id, intent, actor=actor)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([])
def stripe_webhook(request):
    """Apply PaymentIntent events for deposit holds; each event id is handled once."""
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    endpoint_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")

    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=endpoint_secret,
        )
    except ValueError:
        return Response(status=status.HTTP_400_BAD_REQUEST)
    except stripe.SignatureVerificationError:
        return Response(status=status.HTTP_400_BAD_REQUEST)

    event_id = event.get("id") or ""
    event_type = event.get("type") or ""
    if event_type not in HANDLED_WEBHOOK_EVENTS or not event_id:
        return Response(status=status.HTTP_200_OK)

    data_object = event.get("data", {}).get("object", {}) or {}
    metadata = data_object.get("metadata") or {}
    intent_id = data_object.get("id") or ""

    with transaction.atomic():
        _, created = StripeWebhookEvent.objects.get_or_create(
            event_id=event_id, defaults={"event_type": event_type}
        )
        if not created:
            logger.info("stripe_webhook: duplicate event %s ignored", event_id)
            return Response(status=status.HTTP_200_OK)
        if metadata.get("kind") != DEPOSIT_KIND or not intent_id:
            return Response(status=status.HTTP_200_OK)

        hold = DepositHold.objects.filter(stripe_payment_intent_id=intent_id).first()
        if hold is None:
            logger.info("stripe_webhook: no deposit hold for intent %s", intent_id)
            return Response(status=status.HTTP_200_OK)
        try:
            _apply_intent(
                hold.id, data_object, reason=f"webhook {event_type}", webhook=True
            )
        except StripePaymentError:
            logger.warning(
                "stripe_webhook: unhandled intent status on %s",
                event_id,
                extra={"booking_id": hold.booking_id},
            )

    return Response(status=status.HTTP_200_OK)
