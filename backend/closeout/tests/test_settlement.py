from decimal import Decimal

from closeout.settlement import (
    AddOnCharge,
    ExtraCharge,
    PaymentRecord,
    calculate_settlement,
    payments_received,
)

D = Decimal


def test_outstanding_balance_is_taken_from_deposit():
    settlement = calculate_settlement(
        rental_subtotal=D("300.00"),
        tax_amount=D("39.00"),
        payments=[PaymentRecord(D("200.00"), "rental", "completed")],
        deposit_held=D("300.00"),
        deposit_authorized=True,
    )

    assert settlement.total_charges == D("339.00")
    assert settlement.amount_due == D("139.00")
    assert settlement.deposit_to_capture == D("139.00")
    assert settlement.deposit_to_release == D("161.00")
    assert settlement.final_amount_due == D("0.00")
    assert settlement.deposit_action == "capture"


def test_capture_is_limited_to_the_hold():
    settlement = calculate_settlement(
        rental_subtotal=D("350.00"),
        tax_amount=D("50.00"),
        deposit_held=D("200.00"),
        deposit_authorized=True,
    )

    assert settlement.deposit_to_capture == D("200.00")
    assert settlement.deposit_to_release == D("0.00")
    assert settlement.final_amount_due == D("200.00")


def test_paid_in_full_releases_everything():
    settlement = calculate_settlement(
        rental_subtotal=D("150.00"),
        tax_amount=D("18.00"),
        payments=[PaymentRecord(D("168.00"), "rental", "completed")],
        deposit_held=D("350.00"),
        deposit_authorized=True,
    )

    assert settlement.amount_due == D("0.00")
    assert settlement.deposit_to_capture == D("0.00")
    assert settlement.deposit_to_release == D("350.00")
    assert settlement.deposit_action == "release"


def test_overpayment_shows_negative_amount_due():
    settlement = calculate_settlement(
        rental_subtotal=D("100.00"),
        payments=[PaymentRecord(D("120.00"), "rental", "completed")],
        deposit_held=D("350.00"),
        deposit_authorized=True,
    )

    assert settlement.amount_due == D("-20.00")
    assert settlement.deposit_to_capture == D("0.00")
    assert settlement.deposit_to_release == D("350.00")
    assert settlement.final_amount_due == D("0.00")


def test_without_authorized_hold_deposit_is_untouched():
    settlement = calculate_settlement(
        rental_subtotal=D("150.00"),
        tax_amount=D("18.00"),
        late_fee=D("25.00"),
        deposit_held=D("350.00"),
        deposit_authorized=False,
    )

    assert settlement.deposit_action == "none"
    assert settlement.deposit_to_capture == D("0.00")
    assert settlement.deposit_to_release == D("0.00")
    assert settlement.final_amount_due == D("193.00")


def test_all_charge_lines_are_added():
    settlement = calculate_settlement(
        rental_subtotal=D("150.00"),
        add_ons=[AddOnCharge(D("30.00"), 2), AddOnCharge(D("15.00"))],
        tax_amount=D("18.00"),
        late_fee=D("75.00"),
        additional_charges=[ExtraCharge("scratch on rear bumper", D("120.00"))],
    )

    assert settlement.add_ons_total == D("75.00")
    assert settlement.additional_charges_total == D("120.00")
    assert settlement.total_charges == D("438.00")


def test_negative_late_fee_is_ignored():
    settlement = calculate_settlement(rental_subtotal=D("100.00"), late_fee=D("-5.00"))

    assert settlement.late_fee == D("0.00")
    assert settlement.total_charges == D("100.00")


def test_only_completed_rental_payments_count():
    payments = [
        PaymentRecord(D("100.00"), "rental", "completed"),
        PaymentRecord(D("50.00"), "rental", "pending"),
        PaymentRecord(D("40.00"), "rental", "refunded"),
        PaymentRecord(D("139.00"), "deposit", "completed"),
    ]

    assert payments_received(payments) == D("100.00")


def test_as_dict_is_json_friendly():
    data = calculate_settlement(
        rental_subtotal=D("300.00"),
        tax_amount=D("39.00"),
        deposit_held=D("350.00"),
        deposit_authorized=True,
    ).as_dict()

    assert data["total_charges"] == "339.00"
    assert data["deposit_to_capture"] == "339.00"
    assert data["deposit_to_release"] == "11.00"
    assert data["deposit_authorized"] is True
    assert data["deposit_action"] == "capture"
