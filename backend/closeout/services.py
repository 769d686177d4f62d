"""
Account closeout: issue the final invoice, then settle the deposit.

Closing runs in two steps. The first is a single database transaction that
locks the booking, completes it and issues the invoice; nothing external has
happened yet, so any failure rolls it back. The second talks to Stripe. Its
calls are idempotent, so a failed closeout is parked as
``needs_reconciliation`` and ``retry_closeout`` resumes at the deposit step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from bookings.domain import late_fee_for, transition_booking
from bookings.models import Booking
from core.money import ZERO, q2
from operator_core.audit import audit
from operator_core.models import OperatorAuditEvent
from payments.models import DepositHold, Payment
from payments.stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
    capture_deposit,
    release_deposit_hold,
)

from .models import Closeout, FinalInvoice
from .settlement import (
    CAPTURE,
    RELEASE,
    AddOnCharge,
    ExtraCharge,
    PaymentRecord,
    Settlement,
    calculate_settlement,
)

logger = logging.getLogger(__name__)

CLOSABLE_STATUSES = (Booking.Status.ACTIVE, Booking.Status.COMPLETED)
PROCESSOR_ERRORS = (StripePaymentError, StripeTransientError, StripeConfigurationError)


@dataclass(frozen=True)
class CloseoutConfirmations:
    charges_reviewed: bool = False
    inspection_complete: bool = False
    invoice_acknowledged: bool = False

    def missing(self) -> list[str]:
        return [name for name, value in self.as_dict().items() if not value]

    def as_dict(self) -> dict[str, bool]:
        return {
            "charges_reviewed": self.charges_reviewed,
            "inspection_complete": self.inspection_complete,
            "invoice_acknowledged": self.invoice_acknowledged,
        }


class CloseoutDepositError(Exception):
    """The invoice was issued but the deposit could not be settled."""

    def __init__(self, closeout: Closeout, message: str):
        super().__init__(message)
        self.closeout = closeout


def invoice_number_for(booking: Booking) -> str:
    return f"INV-{booking.id:06d}"


def rental_subtotal(booking: Booking) -> Decimal:
    """Booking subtotal without add-ons; add-on lines are billed separately."""
    return q2((booking.subtotal or ZERO) - booking.add_ons_total)


def settlement_for_booking(
    booking: Booking,
    *,
    additional_charges: Iterable[ExtraCharge] = (),
    now: datetime | None = None,
) -> Settlement:
    """
    Settlement figures for ``booking`` from its stored charges and payments.

    An active booking has no late fee recorded yet; it is estimated as if the
    car came back ``now``.
    """
    late_fee = booking.late_fee or ZERO
    if booking.status == Booking.Status.ACTIVE:
        late_fee = late_fee_for(booking, now or timezone.now())
    hold = DepositHold.objects.filter(booking=booking).first()
    return calculate_settlement(
        rental_subtotal=rental_subtotal(booking),
        add_ons=[
            AddOnCharge(price=line.price, quantity=line.quantity)
            for line in booking.add_ons.all()
        ],
        tax_amount=booking.tax_amount or ZERO,
        late_fee=late_fee,
        additional_charges=additional_charges,
        payments=[
            PaymentRecord(amount=p.amount, payment_type=p.payment_type, status=p.status)
            for p in Payment.objects.filter(booking=booking)
        ],
        deposit_held=hold.amount if hold else ZERO,
        deposit_authorized=bool(hold and hold.status == DepositHold.Status.AUTHORIZED),
    )


def preview_closeout(booking: Booking, *, additional_charges: Iterable[ExtraCharge] = ()) -> dict:
    settlement = settlement_for_booking(booking, additional_charges=additional_charges)
    data = settlement.as_dict()
    data["booking_id"] = booking.id
    data["account_closed"] = booking.is_account_closed()
    return data


def _audit_closeout(closeout: Closeout, *, actor, action: str, reason: str, meta=None) -> None:
    audit(
        actor=actor,
        action=action,
        entity_type=OperatorAuditEvent.EntityType.FINAL_INVOICE,
        entity_id=str(closeout.invoice_id),
        reason=reason,
        before=None,
        after={
            "closeout_id": closeout.id,
            "status": closeout.status,
            "deposit_action": closeout.deposit_action,
        },
        meta=meta,
    )


def _issue_invoice(
    *,
    booking_id: int,
    actor,
    confirmations: CloseoutConfirmations,
    additional_charges: list[ExtraCharge],
    notes: str,
) -> Closeout:
    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking_id)
        if booking.is_account_closed():
            raise ValidationError({"status": ["Account is already closed."]})
        if booking.status not in CLOSABLE_STATUSES:
            raise ValidationError(
                {"status": [f"A {booking.status} booking cannot be closed out."]}
            )
        if booking.status == Booking.Status.ACTIVE:
            booking = transition_booking(
                booking.id, Booking.Status.COMPLETED, actor=actor, reason="account closed"
            )

        settlement = settlement_for_booking(booking, additional_charges=additional_charges)
        invoice = FinalInvoice.objects.create(
            booking=booking,
            invoice_number=invoice_number_for(booking),
            rental_subtotal=settlement.rental_subtotal,
            add_ons_total=settlement.add_ons_total,
            tax_amount=settlement.tax_amount,
            late_fee=settlement.late_fee,
            additional_charges=[
                {"description": charge.description, "amount": str(q2(charge.amount))}
                for charge in additional_charges
            ],
            additional_charges_total=settlement.additional_charges_total,
            total_charges=settlement.total_charges,
            payments_received=settlement.payments_received,
            amount_due=settlement.amount_due,
            deposit_held=settlement.deposit_held,
            deposit_to_capture=settlement.deposit_to_capture,
            deposit_to_release=settlement.deposit_to_release,
            final_amount_due=settlement.final_amount_due,
            issued_by=actor if getattr(actor, "pk", None) else None,
        )

        now = timezone.now()
        booking.account_closed_at = now
        booking.account_closed_by = actor if getattr(actor, "pk", None) else None
        booking.save(update_fields=["account_closed_at", "account_closed_by", "updated_at"])

        action = settlement.deposit_action
        closeout = Closeout.objects.create(
            booking=booking,
            invoice=invoice,
            deposit_action=action,
            status=(
                Closeout.Status.COMPLETED
                if action == Closeout.DepositAction.NONE
                else Closeout.Status.DEPOSIT_PENDING
            ),
            completed_at=now if action == Closeout.DepositAction.NONE else None,
            confirmations=confirmations.as_dict(),
            notes=notes,
            closed_by=actor if getattr(actor, "pk", None) else None,
        )
    logger.info(
        "closeout: invoice %s issued, amount due %s, deposit %s",
        invoice.invoice_number,
        invoice.amount_due,
        action,
        extra={"booking_id": booking_id},
    )
    return closeout


def _settle_deposit(closeout: Closeout, *, actor) -> None:
    booking = closeout.booking
    invoice = closeout.invoice
    hold = DepositHold.objects.filter(booking=booking).first()
    if closeout.deposit_action == CAPTURE:
        if hold is not None and hold.status == DepositHold.Status.CAPTURED:
            return
        capture_deposit(
            booking=booking,
            amount=invoice.deposit_to_capture,
            reason=f"final invoice {invoice.invoice_number}",
            actor=actor,
        )
    elif closeout.deposit_action == RELEASE:
        release_deposit_hold(
            booking=booking,
            reason=f"final invoice {invoice.invoice_number}",
            actor=actor,
        )


def _queue_receipt(invoice: FinalInvoice) -> None:
    from notifications import tasks as notification_tasks

    try:
        notification_tasks.send_final_receipt_email.delay(invoice.id)
    except Exception:
        logger.exception(
            "closeout: failed to queue receipt for invoice %s",
            invoice.invoice_number,
            extra={"booking_id": invoice.booking_id},
        )


def _award_points(booking: Booking) -> None:
    from loyalty.services import award_points

    try:
        award_points(
            user=booking.renter,
            booking=booking,
            booking_total=booking.total_amount,
            tax_amount=booking.tax_amount,
            add_ons_total=booking.add_ons_total,
        )
    except ValidationError:
        logger.exception(
            "closeout: failed to award points for booking %s",
            booking.id,
            extra={"booking_id": booking.id},
        )


def _run_deposit_step(closeout: Closeout, *, actor) -> Closeout:
    """Settle the deposit, then record success or park the closeout for reconciliation."""
    try:
        _settle_deposit(closeout, actor=actor)
    except (ValidationError, *PROCESSOR_ERRORS) as exc:
        message = "; ".join(getattr(exc, "messages", None) or [str(exc)])
        Closeout.objects.filter(pk=closeout.pk).update(
            status=Closeout.Status.NEEDS_RECONCILIATION,
            attempts=closeout.attempts + 1,
            last_error=message[:2000],
            updated_at=timezone.now(),
        )
        closeout.refresh_from_db()
        logger.warning(
            "closeout: deposit %s failed for closeout %s: %s",
            closeout.deposit_action,
            closeout.id,
            message,
            extra={"booking_id": closeout.booking_id},
        )
        _audit_closeout(
            closeout,
            actor=actor,
            action="operator.closeout.needs_reconciliation",
            reason=f"deposit {closeout.deposit_action} failed",
            meta={"error": message},
        )
        raise CloseoutDepositError(closeout, message) from exc

    closeout.status = Closeout.Status.COMPLETED
    closeout.attempts += 1
    closeout.last_error = ""
    closeout.completed_at = timezone.now()
    closeout.save(update_fields=["status", "attempts", "last_error", "completed_at", "updated_at"])
    return closeout


def _finish(closeout: Closeout, *, actor) -> None:
    _audit_closeout(
        closeout,
        actor=actor,
        action="operator.closeout.completed",
        reason=f"account closed with invoice {closeout.invoice.invoice_number}",
    )
    _award_points(closeout.booking)
    transaction.on_commit(lambda: _queue_receipt(closeout.invoice))
    logger.info(
        "closeout: closeout %s completed",
        closeout.id,
        extra={"booking_id": closeout.booking_id},
    )


def close_account(
    booking_id: int,
    *,
    actor,
    confirmations: CloseoutConfirmations,
    additional_charges: Iterable[ExtraCharge] = (),
    notes: str = "",
) -> Closeout:
    """
    Close a rental account.

    Raises ``ValidationError`` before any change when a confirmation is missing
    or the booking cannot be closed, and ``CloseoutDepositError`` when the
    invoice was issued but the deposit step failed.
    """
    missing = confirmations.missing()
    if missing:
        raise ValidationError(
            {name: ["This confirmation is required to close the account."] for name in missing}
        )

    closeout = _issue_invoice(
        booking_id=booking_id,
        actor=actor,
        confirmations=confirmations,
        additional_charges=list(additional_charges),
        notes=notes,
    )
    closeout = Closeout.objects.select_related("booking", "invoice").get(pk=closeout.pk)
    if closeout.status != Closeout.Status.COMPLETED:
        closeout = _run_deposit_step(closeout, actor=actor)
    _finish(closeout, actor=actor)
    return closeout


def retry_closeout(closeout_id: int, *, actor) -> Closeout:
    """Re-run only the deposit step of a closeout that did not finish."""
    closeout = Closeout.objects.select_related("booking", "invoice").get(pk=closeout_id)
    if closeout.status == Closeout.Status.COMPLETED:
        raise ValidationError({"status": ["Closeout is already completed."]})
    closeout = _run_deposit_step(closeout, actor=actor)
    _finish(closeout, actor=actor)
    return closeout
