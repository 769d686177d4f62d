from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
import stripe
from django.core.exceptions import ValidationError
from django.utils import timezone

from bookings.models import Booking, BookingAddOn
from closeout.models import Closeout, FinalInvoice
from closeout.services import (
    CloseoutConfirmations,
    CloseoutDepositError,
    close_account,
    invoice_number_for,
    preview_closeout,
    rental_subtotal,
    retry_closeout,
)
from closeout.settlement import ExtraCharge
from loyalty.models import PointsLedgerEntry
from operator_core.models import OperatorAuditEvent
from payments.models import DepositHold, Payment

pytestmark = pytest.mark.django_db

CONFIRMED = CloseoutConfirmations(
    charges_reviewed=True, inspection_complete=True, invoice_acknowledged=True
)


def _completed_booking(booking_factory, **extra):
    return booking_factory(status=Booking.Status.COMPLETED, **extra)


def test_missing_confirmations_change_nothing(
    booking_factory, authorized_hold_factory, finance_user
):
    booking = _completed_booking(booking_factory)
    authorized_hold_factory(booking)

    with pytest.raises(ValidationError) as exc_info:
        close_account(
            booking.id,
            actor=finance_user,
            confirmations=CloseoutConfirmations(charges_reviewed=True),
        )

    assert set(exc_info.value.message_dict) == {"inspection_complete", "invoice_acknowledged"}
    assert not FinalInvoice.objects.exists()
    booking.refresh_from_db()
    assert booking.account_closed_at is None


def test_confirmed_booking_cannot_be_closed(booking_factory, finance_user):
    booking = booking_factory()

    with pytest.raises(ValidationError):
        close_account(booking.id, actor=finance_user, confirmations=CONFIRMED)

    assert not Closeout.objects.exists()


def test_paid_booking_releases_deposit(
    booking_factory, authorized_hold_factory, finance_user, renter_user, stripe_stub
):
    booking = _completed_booking(booking_factory)
    hold = authorized_hold_factory(booking)
    Payment.objects.create(
        booking=booking,
        amount=Decimal("168.00"),
        payment_type=Payment.Type.RENTAL,
        status=Payment.Status.COMPLETED,
    )

    closeout = close_account(booking.id, actor=finance_user, confirmations=CONFIRMED)

    assert closeout.status == Closeout.Status.COMPLETED
    assert closeout.deposit_action == Closeout.DepositAction.RELEASE
    assert closeout.attempts == 1
    invoice = closeout.invoice
    assert invoice.invoice_number == invoice_number_for(booking)
    assert invoice.amount_due == Decimal("0.00")
    assert invoice.deposit_to_release == Decimal("350.00")
    assert len(stripe_stub["cancel_calls"]) == 1
    hold.refresh_from_db()
    assert hold.status == DepositHold.Status.RELEASED
    booking.refresh_from_db()
    assert booking.is_account_closed()
    assert booking.account_closed_by == finance_user

    renter_user.refresh_from_db()
    assert renter_user.points_balance == 1500
    assert OperatorAuditEvent.objects.filter(action="operator.closeout.completed").count() == 1


def test_unpaid_active_booking_captures_from_deposit(
    booking_factory, authorized_hold_factory, finance_user, stripe_stub
):
    now = timezone.now()
    booking = booking_factory(
        status=Booking.Status.ACTIVE,
        start_at=now - timedelta(days=3),
        end_at=now - timedelta(hours=2, minutes=1),
    )
    hold = authorized_hold_factory(booking)

    closeout = close_account(
        booking.id,
        actor=finance_user,
        confirmations=CONFIRMED,
        notes="returned late",
    )

    booking.refresh_from_db()
    assert booking.status == Booking.Status.COMPLETED
    assert booking.late_fee == Decimal("50.00")
    invoice = closeout.invoice
    assert invoice.total_charges == Decimal("218.00")
    assert invoice.deposit_to_capture == Decimal("218.00")
    assert invoice.deposit_to_release == Decimal("132.00")
    assert invoice.final_amount_due == Decimal("0.00")
    assert closeout.notes == "returned late"

    assert stripe_stub["capture_calls"][0]["amount_to_capture"] == 21800
    hold.refresh_from_db()
    assert hold.status == DepositHold.Status.CAPTURED
    assert hold.captured_amount == Decimal("218.00")
    deposit_payment = Payment.objects.get(booking=booking, payment_type=Payment.Type.DEPOSIT)
    assert deposit_payment.amount == Decimal("218.00")


def test_additional_charges_are_invoiced(
    booking_factory, authorized_hold_factory, finance_user, stripe_stub
):
    booking = _completed_booking(booking_factory)
    authorized_hold_factory(booking)
    Payment.objects.create(
        booking=booking,
        amount=Decimal("168.00"),
        payment_type=Payment.Type.RENTAL,
        status=Payment.Status.COMPLETED,
    )

    closeout = close_account(
        booking.id,
        actor=finance_user,
        confirmations=CONFIRMED,
        additional_charges=[ExtraCharge("cracked mirror", Decimal("139.00"))],
    )

    invoice = closeout.invoice
    assert invoice.additional_charges == [{"description": "cracked mirror", "amount": "139.00"}]
    assert invoice.additional_charges_total == Decimal("139.00")
    assert invoice.deposit_to_capture == Decimal("139.00")
    assert invoice.deposit_to_release == Decimal("211.00")


def test_no_hold_completes_without_stripe(booking_factory, finance_user, stripe_stub):
    booking = _completed_booking(booking_factory)

    closeout = close_account(booking.id, actor=finance_user, confirmations=CONFIRMED)

    assert closeout.status == Closeout.Status.COMPLETED
    assert closeout.deposit_action == Closeout.DepositAction.NONE
    assert closeout.invoice.final_amount_due == Decimal("168.00")
    assert stripe_stub["cancel_calls"] == []
    assert stripe_stub["capture_calls"] == []


def test_account_closes_once(booking_factory, finance_user, stripe_stub):
    booking = _completed_booking(booking_factory)
    close_account(booking.id, actor=finance_user, confirmations=CONFIRMED)

    with pytest.raises(ValidationError):
        close_account(booking.id, actor=finance_user, confirmations=CONFIRMED)

    assert FinalInvoice.objects.count() == 1


def test_failed_release_is_parked_then_retried(
    booking_factory, authorized_hold_factory, finance_user, renter_user, stripe_stub
):
    booking = _completed_booking(booking_factory)
    hold = authorized_hold_factory(booking)
    Payment.objects.create(
        booking=booking,
        amount=Decimal("168.00"),
        payment_type=Payment.Type.RENTAL,
        status=Payment.Status.COMPLETED,
    )
    stripe_stub["cancel_error"] = stripe.APIConnectionError("connection reset")

    with pytest.raises(CloseoutDepositError) as exc_info:
        close_account(booking.id, actor=finance_user, confirmations=CONFIRMED)

    closeout = exc_info.value.closeout
    assert closeout.status == Closeout.Status.NEEDS_RECONCILIATION
    assert closeout.attempts == 1
    assert closeout.last_error
    assert FinalInvoice.objects.filter(booking=booking).exists()
    hold.refresh_from_db()
    assert hold.status == DepositHold.Status.AUTHORIZED
    event = OperatorAuditEvent.objects.get(action="operator.closeout.needs_reconciliation")
    assert event.entity_type == OperatorAuditEvent.EntityType.FINAL_INVOICE
    renter_user.refresh_from_db()
    assert renter_user.points_balance == 0

    stripe_stub["cancel_error"] = None
    closeout = retry_closeout(closeout.id, actor=finance_user)

    assert closeout.status == Closeout.Status.COMPLETED
    assert closeout.attempts == 2
    assert closeout.last_error == ""
    assert FinalInvoice.objects.filter(booking=booking).count() == 1
    hold.refresh_from_db()
    assert hold.status == DepositHold.Status.RELEASED
    renter_user.refresh_from_db()
    assert renter_user.points_balance == 1500
    assert PointsLedgerEntry.objects.filter(booking=booking).count() == 1


def test_completed_closeout_cannot_be_retried(booking_factory, finance_user, stripe_stub):
    booking = _completed_booking(booking_factory)
    closeout = close_account(booking.id, actor=finance_user, confirmations=CONFIRMED)

    with pytest.raises(ValidationError):
        retry_closeout(closeout.id, actor=finance_user)


def test_rental_subtotal_excludes_add_ons(booking_factory, add_on):
    booking = _completed_booking(
        booking_factory, subtotal=Decimal("190.00"), add_ons_total=Decimal("40.00")
    )
    BookingAddOn.objects.create(booking=booking, add_on=add_on, price=Decimal("40.00"))

    assert rental_subtotal(booking) == Decimal("150.00")
    preview = preview_closeout(booking)
    assert preview["rental_subtotal"] == "150.00"
    assert preview["add_ons_total"] == "40.00"
    assert preview["total_charges"] == "208.00"
    assert preview["account_closed"] is False
