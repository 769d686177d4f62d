from decimal import Decimal
from typing import Optional

from django.db.models import Sum
from django.utils import timezone

from core.money import ZERO, q2
from loyalty.services import restore_redeemed_points, reverse_points

from .models import DepositHold, DepositLedgerEntry, Payment

CAPTURE_ACTIONS = (DepositLedgerEntry.Action.CAPTURE, DepositLedgerEntry.Action.PARTIAL_CAPTURE)
RELEASE_ACTIONS = (DepositLedgerEntry.Action.RELEASE, DepositLedgerEntry.Action.STRIPE_RELEASE)


def log_deposit_entry(
    *,
    hold: DepositHold,
    action: str,
    amount: Decimal = ZERO,
    reason: str = "",
    actor=None,
    stripe_charge_id: str = "",
    status_before: str = "",
    status_after: str = "",
) -> DepositLedgerEntry:
    """
    Append a ledger row for an action against ``hold``.

    This is a thin helper; callers decide which actions to record.
    """
    return DepositLedgerEntry.objects.create(
        booking_id=hold.booking_id,
        hold=hold,
        action=action,
        amount=q2(amount),
        reason=reason,
        actor=actor if getattr(actor, "pk", None) else None,
        stripe_payment_intent_id=hold.stripe_payment_intent_id,
        stripe_charge_id=stripe_charge_id,
        status_before=status_before,
        status_after=status_after or hold.status,
    )


def has_entry(hold: DepositHold, action: str) -> bool:
    """Whether the current attempt of ``hold`` already logged ``action``."""
    return DepositLedgerEntry.objects.filter(
        hold=hold,
        action=action,
        stripe_payment_intent_id=hold.stripe_payment_intent_id,
    ).exists()


def deposit_summary(booking) -> dict[str, str]:
    """Held, captured, released and remaining deposit amounts computed from the ledger."""
    entries = DepositLedgerEntry.objects.filter(booking=booking)

    def _total(actions) -> Decimal:
        return entries.filter(action__in=actions).aggregate(total=Sum("amount"))["total"] or ZERO

    held = q2(_total([DepositLedgerEntry.Action.HOLD]))
    captured = q2(_total(CAPTURE_ACTIONS))
    released = q2(_total(RELEASE_ACTIONS))
    remaining = max(held - captured - released, ZERO)
    return {
        "held": str(held),
        "captured": str(captured),
        "released": str(released),
        "remaining": str(q2(remaining)),
    }


def record_payment(
    *,
    booking,
    amount: Decimal,
    payment_type: str,
    method: str = Payment.Method.CARD,
    status: str = Payment.Status.COMPLETED,
    transaction_reference: str = "",
    notes: str = "",
    created_by=None,
) -> Payment:
    return Payment.objects.create(
        booking=booking,
        amount=q2(amount),
        payment_type=payment_type,
        method=method,
        status=status,
        transaction_reference=transaction_reference,
        notes=notes,
        created_by=created_by if getattr(created_by, "pk", None) else None,
        completed_at=timezone.now() if status == Payment.Status.COMPLETED else None,
    )


def mark_payment_refunded(payment: Payment, *, notes: Optional[str] = None) -> Payment:
    payment.status = Payment.Status.REFUNDED
    update_fields = ["status"]
    if notes:
        payment.notes = notes
        update_fields.append("notes")
    payment.save(update_fields=update_fields)
    return payment


def refund_payment(payment: Payment, *, reason: str, actor=None) -> Payment:
    """
    Mark a completed payment refunded and unwind its loyalty side.

    A points payment gives the redeemed points back. Refunding a rental payment
    on a completed booking takes back the points it earned.
    """
    booking = payment.booking
    mark_payment_refunded(payment, notes=reason)
    if payment.method == Payment.Method.POINTS:
        restore_redeemed_points(user=booking.renter, booking=booking, reason=reason, actor=actor)
    elif payment.payment_type == Payment.Type.RENTAL and booking.status == "completed":
        reverse_points(user=booking.renter, booking=booking, reason=reason)
    return payment
