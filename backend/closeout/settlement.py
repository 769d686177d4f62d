"""
Final settlement math for closing a rental account.

Pure functions over plain values so the same numbers back the preview and the
closeout itself.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Iterable

from core.money import ZERO, q2

RENTAL_PAYMENT_TYPE = "rental"
COMPLETED_PAYMENT_STATUS = "completed"

CAPTURE = "capture"
RELEASE = "release"
NO_DEPOSIT_ACTION = "none"


@dataclass(frozen=True)
class AddOnCharge:
    price: Decimal
    quantity: int = 1

    @property
    def total(self) -> Decimal:
        return q2(self.price * self.quantity)


@dataclass(frozen=True)
class ExtraCharge:
    description: str
    amount: Decimal


@dataclass(frozen=True)
class PaymentRecord:
    amount: Decimal
    payment_type: str
    status: str


@dataclass(frozen=True)
class Settlement:
    rental_subtotal: Decimal
    add_ons_total: Decimal
    tax_amount: Decimal
    late_fee: Decimal
    additional_charges_total: Decimal
    total_charges: Decimal
    payments_received: Decimal
    amount_due: Decimal
    deposit_held: Decimal
    deposit_authorized: bool
    deposit_to_capture: Decimal
    deposit_to_release: Decimal
    final_amount_due: Decimal

    @property
    def deposit_action(self) -> str:
        if not self.deposit_authorized:
            return NO_DEPOSIT_ACTION
        if self.deposit_to_capture > ZERO:
            return CAPTURE
        return RELEASE

    def as_dict(self) -> dict:
        data = {
            key: str(value) if isinstance(value, Decimal) else value
            for key, value in asdict(self).items()
        }
        data["deposit_action"] = self.deposit_action
        return data


def payments_received(payments: Iterable[PaymentRecord]) -> Decimal:
    """Sum of completed rental payments; deposits and refunds are not counted."""
    return q2(
        sum(
            (
                payment.amount
                for payment in payments
                if payment.payment_type == RENTAL_PAYMENT_TYPE
                and payment.status == COMPLETED_PAYMENT_STATUS
            ),
            ZERO,
        )
    )


def calculate_settlement(
    *,
    rental_subtotal: Decimal,
    add_ons: Iterable[AddOnCharge] = (),
    tax_amount: Decimal = ZERO,
    late_fee: Decimal = ZERO,
    additional_charges: Iterable[ExtraCharge] = (),
    payments: Iterable[PaymentRecord] = (),
    deposit_held: Decimal = ZERO,
    deposit_authorized: bool = False,
) -> Settlement:
    """
    Reconcile charges against payments and decide what happens to the deposit.

    ``amount_due`` is not clamped, so an overpayment shows as a negative
    value. With an authorized hold, the outstanding balance is taken from the
    deposit first and the rest of the hold is released. Without one, the
    deposit is left alone.
    """
    add_ons_total = q2(sum((line.total for line in add_ons), ZERO))
    extras_total = q2(sum((charge.amount for charge in additional_charges), ZERO))
    late = q2(late_fee) if late_fee and late_fee > ZERO else ZERO
    total_charges = q2(q2(rental_subtotal) + add_ons_total + q2(tax_amount) + late + extras_total)
    received = payments_received(payments)
    amount_due = q2(total_charges - received)
    held = q2(deposit_held)

    if deposit_authorized:
        to_capture = min(max(amount_due, ZERO), held)
        to_release = held - to_capture
        final_due = max(ZERO, amount_due - to_capture)
    else:
        to_capture = ZERO
        to_release = ZERO
        final_due = max(ZERO, amount_due)

    return Settlement(
        rental_subtotal=q2(rental_subtotal),
        add_ons_total=add_ons_total,
        tax_amount=q2(tax_amount),
        late_fee=late,
        additional_charges_total=extras_total,
        total_charges=total_charges,
        payments_received=received,
        amount_due=amount_due,
        deposit_held=held,
        deposit_authorized=deposit_authorized,
        deposit_to_capture=q2(to_capture),
        deposit_to_release=q2(to_release),
        final_amount_due=q2(final_due),
    )
