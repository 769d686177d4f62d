"""
Deposit hold lifecycle.

Two edge sets make up the state machine. ``ACTION_TRANSITIONS`` are the moves
this service initiates (authorize, capture, release and their outcomes).
``PROCESSOR_TRANSITIONS`` add the moves that can only be observed from Stripe
through a status sync or webhook: expiry, cancellation of an authorized hold,
and status jumps when the intent advanced without us.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Literal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from core.money import ZERO, format_money, q2

from .models import DepositHold

Status = DepositHold.Status
TransitionSource = Literal["action", "processor"]

TERMINAL_STATUSES = frozenset(
    {Status.CAPTURED, Status.RELEASED, Status.FAILED, Status.EXPIRED, Status.CANCELED}
)
RESTARTABLE_STATUSES = frozenset({Status.FAILED, Status.EXPIRED, Status.CANCELED})
STRIPE_HOLD_STATUSES = frozenset(
    {
        Status.REQUIRES_PAYMENT,
        Status.AUTHORIZING,
        Status.AUTHORIZED,
        Status.CAPTURING,
        Status.CAPTURED,
        Status.RELEASING,
        Status.RELEASED,
    }
)

ACTION_TRANSITIONS: dict[str, frozenset[str]] = {
    Status.NONE: frozenset({Status.REQUIRES_PAYMENT, Status.CANCELED}),
    Status.REQUIRES_PAYMENT: frozenset({Status.AUTHORIZING, Status.CANCELED}),
    Status.AUTHORIZING: frozenset({Status.AUTHORIZED, Status.FAILED, Status.CANCELED}),
    Status.AUTHORIZED: frozenset({Status.CAPTURING, Status.RELEASING}),
    Status.CAPTURING: frozenset({Status.CAPTURED, Status.FAILED, Status.AUTHORIZED}),
    Status.RELEASING: frozenset({Status.RELEASED, Status.FAILED, Status.AUTHORIZED}),
    Status.CAPTURED: frozenset(),
    Status.RELEASED: frozenset(),
    Status.FAILED: frozenset(),
    Status.EXPIRED: frozenset(),
    Status.CANCELED: frozenset(),
}

PROCESSOR_TRANSITIONS: dict[str, frozenset[str]] = {
    **ACTION_TRANSITIONS,
    Status.REQUIRES_PAYMENT: ACTION_TRANSITIONS[Status.REQUIRES_PAYMENT]
    | {Status.AUTHORIZED, Status.FAILED},
    Status.AUTHORIZING: ACTION_TRANSITIONS[Status.AUTHORIZING] | {Status.REQUIRES_PAYMENT},
    Status.AUTHORIZED: ACTION_TRANSITIONS[Status.AUTHORIZED]
    | {Status.CAPTURED, Status.EXPIRED, Status.CANCELED},
    Status.CAPTURING: ACTION_TRANSITIONS[Status.CAPTURING] | {Status.CANCELED},
}


class InvalidDepositTransition(ValidationError):
    def __init__(self, current: str, target: str):
        super().__init__({"status": [f"Deposit hold cannot move from {current} to {target}."]})
        self.current = current
        self.target = target


def allowed_transitions(status: str, *, source: TransitionSource = "action") -> frozenset[str]:
    table = ACTION_TRANSITIONS if source == "action" else PROCESSOR_TRANSITIONS
    return table[Status(status)]


def can_transition(current: str, target: str, *, source: TransitionSource = "action") -> bool:
    return target in allowed_transitions(current, source=source)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def has_stripe_hold(status: str) -> bool:
    """True when a processor hold exists or existed for this status."""
    return status in STRIPE_HOLD_STATUSES


def apply_transition(
    hold: DepositHold,
    target: str,
    *,
    source: TransitionSource = "action",
    now: datetime | None = None,
) -> list[str]:
    """
    Move an already locked hold to ``target`` in memory and stamp timestamps.

    Returns the changed field names for ``save(update_fields=...)``. The caller
    owns the row lock and the save.
    """
    if not can_transition(hold.status, target, source=source):
        raise InvalidDepositTransition(hold.status, target)
    now = now or timezone.now()
    hold.status = target
    fields = ["status", "updated_at"]
    if target == Status.AUTHORIZED and hold.authorized_at is None:
        hold.authorized_at = now
        hold.expires_at = now + timedelta(days=settings.DEPOSIT_HOLD_LIFETIME_DAYS)
        fields += ["authorized_at", "expires_at"]
    elif target == Status.CAPTURED:
        hold.captured_at = now
        fields.append("captured_at")
    elif target == Status.RELEASED:
        hold.released_at = now
        fields.append("released_at")
    return fields


def transition_hold(
    hold_id: int,
    target: str,
    *,
    source: TransitionSource = "action",
    error: str = "",
) -> DepositHold:
    """Lock the hold row, check the transition against it and save."""
    with transaction.atomic():
        hold = DepositHold.objects.select_for_update().get(pk=hold_id)
        fields = apply_transition(hold, target, source=source)
        if error:
            hold.last_error = error[:2000]
            fields.append("last_error")
        hold.save(update_fields=fields)
    return hold


def restart_hold(hold_id: int) -> DepositHold:
    """
    Start over after a failed, expired or canceled hold.

    The row is reset to ``none`` under a new attempt number so the next Stripe
    request gets fresh idempotency keys; the previous attempt stays in the ledger.
    """
    with transaction.atomic():
        hold = DepositHold.objects.select_for_update().get(pk=hold_id)
        if hold.status not in RESTARTABLE_STATUSES:
            raise ValidationError(
                {"status": ["Only failed, expired or canceled deposit holds can be restarted."]}
            )
        hold.status = Status.NONE
        hold.attempt += 1
        hold.captured_amount = ZERO
        hold.capture_reason = ""
        hold.stripe_payment_intent_id = ""
        hold.stripe_charge_id = ""
        hold.authorized_at = None
        hold.expires_at = None
        hold.captured_at = None
        hold.released_at = None
        hold.last_error = ""
        hold.save()
    return hold


def expiry_countdown(
    authorized_at: datetime | None,
    expires_at: datetime | None,
    *,
    now: datetime,
    expiring_soon_days: int = 2,
) -> dict:
    """
    Remaining share of the authorization window and whole days left.

    ``remaining_fraction`` interpolates linearly between ``authorized_at`` (1.0)
    and ``expires_at`` (0.0). ``days_until_expiry`` rounds up to whole days.
    """
    if authorized_at is None or expires_at is None:
        return {"remaining_fraction": None, "days_until_expiry": None, "is_expiring_soon": False}
    window = (expires_at - authorized_at).total_seconds()
    left = (expires_at - now).total_seconds()
    if window <= 0:
        fraction = 0.0
    else:
        fraction = min(max(left / window, 0.0), 1.0)
    days = max(math.ceil(left / 86400), 0)
    return {
        "remaining_fraction": round(fraction, 4),
        "days_until_expiry": days,
        "is_expiring_soon": days <= expiring_soon_days,
    }


def describe_hold(
    hold: DepositHold | None,
    *,
    now: datetime | None = None,
    expiring_soon_days: int | None = None,
) -> dict:
    """Read model for a hold, with countdown values derived from the raw timestamps."""
    if hold is None:
        return {
            "status": Status.NONE.value,
            "has_stripe_hold": False,
            "amount": None,
            "captured_amount": None,
            "remaining_fraction": None,
            "days_until_expiry": None,
            "is_expiring_soon": False,
        }
    if expiring_soon_days is None:
        expiring_soon_days = settings.DEPOSIT_EXPIRING_SOON_DAYS
    now = now or timezone.now()
    countdown = {"remaining_fraction": None, "days_until_expiry": None, "is_expiring_soon": False}
    if hold.status == Status.AUTHORIZED:
        countdown = expiry_countdown(
            hold.authorized_at,
            hold.expires_at,
            now=now,
            expiring_soon_days=expiring_soon_days,
        )
    return {
        "id": hold.id,
        "booking_id": hold.booking_id,
        "status": hold.status,
        "has_stripe_hold": has_stripe_hold(hold.status),
        "is_terminal": is_terminal(hold.status),
        "attempt": hold.attempt,
        "amount": format_money(hold.amount),
        "captured_amount": format_money(hold.captured_amount),
        "capture_reason": hold.capture_reason,
        "stripe_payment_intent_id": hold.stripe_payment_intent_id,
        "card_brand": hold.card_brand,
        "card_last4": hold.card_last4,
        "authorized_at": hold.authorized_at,
        "expires_at": hold.expires_at,
        "captured_at": hold.captured_at,
        "released_at": hold.released_at,
        "last_error": hold.last_error,
        **countdown,
    }


def validate_capture_amount(hold: DepositHold, amount: Decimal) -> Decimal:
    amount = q2(amount)
    if amount <= ZERO:
        raise ValidationError({"amount": ["Capture amount must be greater than zero."]})
    if amount > hold.amount:
        raise ValidationError(
            {"amount": [f"Capture amount cannot exceed the authorized {hold.amount}."]}
        )
    return amount
