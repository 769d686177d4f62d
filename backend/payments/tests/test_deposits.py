"""Deposit hold state machine and read model."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.utils import timezone

from payments.deposits import (
    InvalidDepositTransition,
    allowed_transitions,
    can_transition,
    describe_hold,
    expiry_countdown,
    has_stripe_hold,
    is_terminal,
    restart_hold,
    transition_hold,
    validate_capture_amount,
)
from payments.ledger import deposit_summary, log_deposit_entry
from payments.models import DepositHold, DepositLedgerEntry

Status = DepositHold.Status


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (Status.NONE, Status.REQUIRES_PAYMENT),
        (Status.REQUIRES_PAYMENT, Status.AUTHORIZING),
        (Status.AUTHORIZING, Status.AUTHORIZED),
        (Status.AUTHORIZING, Status.FAILED),
        (Status.AUTHORIZED, Status.CAPTURING),
        (Status.AUTHORIZED, Status.RELEASING),
        (Status.CAPTURING, Status.CAPTURED),
        (Status.CAPTURING, Status.AUTHORIZED),
        (Status.RELEASING, Status.RELEASED),
    ],
)
def test_action_edges(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (Status.NONE, Status.AUTHORIZED),
        (Status.AUTHORIZED, Status.CAPTURED),
        (Status.AUTHORIZED, Status.EXPIRED),
        (Status.CAPTURED, Status.RELEASING),
        (Status.RELEASED, Status.AUTHORIZED),
    ],
)
def test_actions_cannot_skip_states(current, target):
    assert not can_transition(current, target)


def test_processor_may_report_expiry_and_cancellation():
    assert can_transition(Status.AUTHORIZED, Status.EXPIRED, source="processor")
    assert can_transition(Status.AUTHORIZED, Status.CANCELED, source="processor")
    assert can_transition(Status.AUTHORIZED, Status.CAPTURED, source="processor")
    assert not can_transition(Status.RELEASED, Status.AUTHORIZED, source="processor")
    assert not can_transition(Status.RELEASING, Status.CANCELED, source="processor")


def test_terminal_states_have_no_exits():
    for status in (Status.CAPTURED, Status.RELEASED, Status.FAILED, Status.EXPIRED):
        assert is_terminal(status)
        assert allowed_transitions(status) == frozenset()
        assert allowed_transitions(status, source="processor") == frozenset()


def test_has_stripe_hold():
    assert has_stripe_hold(Status.AUTHORIZED)
    assert has_stripe_hold(Status.RELEASED)
    assert not has_stripe_hold(Status.NONE)
    assert not has_stripe_hold(Status.FAILED)


def test_expiry_countdown_interpolates():
    authorized_at = timezone.now()
    expires_at = authorized_at + timedelta(days=7)

    halfway = expiry_countdown(
        authorized_at, expires_at, now=authorized_at + timedelta(days=3, hours=12)
    )
    nearly_done = expiry_countdown(
        authorized_at, expires_at, now=authorized_at + timedelta(days=6)
    )
    past = expiry_countdown(authorized_at, expires_at, now=expires_at + timedelta(hours=1))

    assert halfway == {
        "remaining_fraction": 0.5,
        "days_until_expiry": 4,
        "is_expiring_soon": False,
    }
    assert nearly_done["days_until_expiry"] == 1
    assert nearly_done["is_expiring_soon"] is True
    assert past["remaining_fraction"] == 0.0
    assert past["days_until_expiry"] == 0


def test_expiry_countdown_without_timestamps():
    assert expiry_countdown(None, None, now=timezone.now())["remaining_fraction"] is None


@pytest.mark.django_db
class TestHoldRows:
    def test_transition_checks_locked_row(self, booking_factory, authorized_hold_factory):
        hold = authorized_hold_factory(booking_factory())

        hold = transition_hold(hold.id, Status.RELEASING)
        assert hold.status == Status.RELEASING

        with pytest.raises(InvalidDepositTransition):
            transition_hold(hold.id, Status.CAPTURING)

    def test_restart_bumps_attempt(self, booking_factory, authorized_hold_factory):
        hold = authorized_hold_factory(booking_factory(), last_error="card declined")
        DepositHold.objects.filter(pk=hold.pk).update(status=Status.FAILED)

        hold = restart_hold(hold.id)

        assert hold.status == Status.NONE
        assert hold.attempt == 2
        assert hold.stripe_payment_intent_id == ""
        assert hold.last_error == ""

    def test_restart_rejects_live_hold(self, booking_factory, authorized_hold_factory):
        hold = authorized_hold_factory(booking_factory())

        with pytest.raises(ValidationError):
            restart_hold(hold.id)

    def test_capture_amount_bounds(self, booking_factory, authorized_hold_factory):
        hold = authorized_hold_factory(booking_factory())

        assert validate_capture_amount(hold, Decimal("100.004")) == Decimal("100.00")
        with pytest.raises(ValidationError):
            validate_capture_amount(hold, Decimal("0"))
        with pytest.raises(ValidationError):
            validate_capture_amount(hold, Decimal("350.01"))

    def test_describe_hold(self, booking_factory, authorized_hold_factory):
        hold = authorized_hold_factory(booking_factory())

        data = describe_hold(hold, now=hold.authorized_at + timedelta(days=6))

        assert data["status"] == "authorized"
        assert data["has_stripe_hold"] is True
        assert data["amount"] == "350.00"
        assert data["days_until_expiry"] == 1
        assert data["is_expiring_soon"] is True
        assert describe_hold(None)["status"] == "none"

    def test_ledger_is_append_only(self, booking_factory, authorized_hold_factory):
        hold = authorized_hold_factory(booking_factory())
        entry = log_deposit_entry(
            hold=hold, action=DepositLedgerEntry.Action.HOLD, amount=hold.amount
        )

        entry.reason = "edited"
        with pytest.raises(ValidationError):
            entry.save()
        with pytest.raises(ValidationError):
            entry.delete()

    def test_summary_from_ledger(self, booking_factory, authorized_hold_factory):
        booking = booking_factory()
        hold = authorized_hold_factory(booking)
        Action = DepositLedgerEntry.Action
        log_deposit_entry(hold=hold, action=Action.HOLD, amount=Decimal("350.00"))
        log_deposit_entry(hold=hold, action=Action.PARTIAL_CAPTURE, amount=Decimal("139.00"))
        log_deposit_entry(hold=hold, action=Action.STRIPE_RELEASE, amount=Decimal("211.00"))

        assert deposit_summary(booking) == {
            "held": "350.00",
            "captured": "139.00",
            "released": "211.00",
            "remaining": "0.00",
        }
