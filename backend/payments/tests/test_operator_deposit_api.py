from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe
from django.core.exceptions import ValidationError

from bookings.models import Booking
from loyalty.models import PointsLedgerEntry
from loyalty.services import redeem_points, update_points_balance
from operator_core.models import OperatorAuditEvent
from payments import stripe_api
from payments.models import DepositHold, Payment

pytestmark = pytest.mark.django_db


@pytest.fixture
def stripe_stub(monkeypatch):
    state: dict[str, object] = {"create_error": None}

    def fake_create(**kwargs):
        if state["create_error"] is not None:
            raise state["create_error"]
        return SimpleNamespace(
            id="pi_test_api",
            status="requires_capture",
            payment_method=SimpleNamespace(card=SimpleNamespace(brand="visa", last4="4242")),
        )

    def fake_retrieve(intent_id):
        return SimpleNamespace(id=intent_id, status="requires_capture")

    def fake_capture(intent_id, **kwargs):
        return SimpleNamespace(id=intent_id, status="succeeded", latest_charge="ch_test_api")

    def fake_cancel(intent_id, **kwargs):
        return SimpleNamespace(id=intent_id, status="canceled")

    monkeypatch.setattr(stripe_api.stripe.PaymentIntent, "create", fake_create)
    monkeypatch.setattr(stripe_api.stripe.PaymentIntent, "retrieve", fake_retrieve)
    monkeypatch.setattr(stripe_api.stripe.PaymentIntent, "capture", fake_capture)
    monkeypatch.setattr(stripe_api.stripe.PaymentIntent, "cancel", fake_cancel)
    return state


def _url(booking, suffix=""):
    return f"/api/operator/bookings/{booking.id}/deposit/{suffix}"


def test_support_reads_empty_deposit(api_client, booking_factory, support_user):
    booking = booking_factory()
    api_client.force_authenticate(support_user)

    resp = api_client.get(_url(booking))

    assert resp.status_code == 200
    assert resp.data["status"] == "none"
    assert resp.data["has_stripe_hold"] is False
    assert resp.data["summary"]["held"] == "0.00"


def test_renter_cannot_see_operator_deposit(api_client, booking_factory, renter_user):
    booking = booking_factory()
    api_client.force_authenticate(renter_user)

    assert api_client.get(_url(booking)).status_code == 403


def test_counter_authorizes_deposit(api_client, booking_factory, counter_user, stripe_stub):
    booking = booking_factory()
    api_client.force_authenticate(counter_user)

    resp = api_client.post(
        _url(booking, "authorize/"), {"payment_method_id": "pm_card_visa"}, format="json"
    )

    assert resp.status_code == 200, resp.data
    assert resp.data["status"] == "authorized"
    assert resp.data["card_last4"] == "4242"
    assert resp.data["summary"]["held"] == "350.00"
    event = OperatorAuditEvent.objects.get(action="operator.deposit.authorize")
    assert event.entity_type == OperatorAuditEvent.EntityType.DEPOSIT_HOLD
    assert event.actor == counter_user


def test_stripe_outage_is_503(api_client, booking_factory, counter_user, stripe_stub):
    booking = booking_factory()
    stripe_stub["create_error"] = stripe.APIConnectionError("connection reset")
    api_client.force_authenticate(counter_user)

    resp = api_client.post(_url(booking, "authorize/"), {"payment_method_id": "pm"}, format="json")

    assert resp.status_code == 503


def test_capture_requires_finance_role(
    api_client, booking_factory, authorized_hold_factory, counter_user, stripe_stub
):
    booking = booking_factory()
    authorized_hold_factory(booking)
    api_client.force_authenticate(counter_user)

    resp = api_client.post(
        _url(booking, "capture/"), {"amount": "50.00", "reason": "fuel"}, format="json"
    )

    assert resp.status_code == 403


def test_capture_requires_reason(
    api_client, booking_factory, authorized_hold_factory, finance_user, stripe_stub
):
    booking = booking_factory()
    authorized_hold_factory(booking)
    api_client.force_authenticate(finance_user)

    resp = api_client.post(_url(booking, "capture/"), {"amount": "50.00"}, format="json")

    assert resp.status_code == 400
    assert resp.data == {"detail": "reason is required"}


def test_finance_captures_part_of_deposit(
    api_client, booking_factory, authorized_hold_factory, finance_user, stripe_stub
):
    booking = booking_factory()
    authorized_hold_factory(booking)
    api_client.force_authenticate(finance_user)

    resp = api_client.post(
        _url(booking, "capture/"), {"amount": "75.50", "reason": "cleaning fee"}, format="json"
    )

    assert resp.status_code == 200, resp.data
    assert resp.data["status"] == "captured"
    assert resp.data["captured_amount"] == "75.50"
    assert resp.data["summary"] == {
        "held": "0.00",
        "captured": "75.50",
        "released": "274.50",
        "remaining": "0.00",
    }
    event = OperatorAuditEvent.objects.get(action="operator.deposit.capture")
    assert event.reason == "cleaning fee"

    ledger = api_client.get(_url(booking, "ledger/"))
    assert [row["action"] for row in ledger.data["entries"]] == [
        "partial_capture",
        "stripe_release",
    ]


def test_capture_without_hold_is_404(api_client, booking_factory, finance_user, stripe_stub):
    booking = booking_factory()
    api_client.force_authenticate(finance_user)

    resp = api_client.post(
        _url(booking, "capture/"), {"amount": "10.00", "reason": "damage"}, format="json"
    )

    assert resp.status_code == 404


def test_finance_releases_deposit(
    api_client, booking_factory, authorized_hold_factory, finance_user, stripe_stub
):
    booking = booking_factory()
    authorized_hold_factory(booking)
    api_client.force_authenticate(finance_user)

    resp = api_client.post(_url(booking, "release/"), {}, format="json")

    assert resp.status_code == 200, resp.data
    assert resp.data["status"] == "released"
    event = OperatorAuditEvent.objects.get(action="operator.deposit.release")
    assert event.reason == "deposit released by operator"


def test_sync_without_hold_is_404(api_client, booking_factory, counter_user):
    booking = booking_factory()
    api_client.force_authenticate(counter_user)

    assert api_client.post(_url(booking, "sync/"), {}, format="json").status_code == 404


def test_sync_requires_reason_and_is_audited(
    api_client, booking_factory, authorized_hold_factory, counter_user, stripe_stub
):
    booking = booking_factory()
    hold = authorized_hold_factory(booking)
    api_client.force_authenticate(counter_user)

    missing = api_client.post(_url(booking, "sync/"), {}, format="json")
    assert missing.status_code == 400
    assert missing.data == {"detail": "reason is required"}

    resp = api_client.post(
        _url(booking, "sync/"), {"reason": "renter says hold disappeared"}, format="json"
    )

    assert resp.status_code == 200, resp.data
    assert resp.data["status"] == "authorized"
    event = OperatorAuditEvent.objects.get(action="operator.deposit.sync")
    assert event.entity_id == str(hold.id)
    assert event.before_json == {"status": "authorized"}
    assert event.after_json == {"status": "authorized"}


def test_restart_failed_hold(api_client, booking_factory, counter_user):
    booking = booking_factory()
    DepositHold.objects.create(
        booking=booking,
        status=DepositHold.Status.FAILED,
        amount=Decimal("350.00"),
        last_error="card declined",
    )
    api_client.force_authenticate(counter_user)

    missing = api_client.post(_url(booking, "restart/"), {}, format="json")
    assert missing.status_code == 400
    assert missing.data == {"detail": "reason is required"}

    resp = api_client.post(
        _url(booking, "restart/"), {"reason": "renter brought another card"}, format="json"
    )

    assert resp.status_code == 200, resp.data
    assert resp.data["status"] == "none"
    assert resp.data["attempt"] == 2


class TestPayments:
    def test_counter_records_payment(self, api_client, booking_factory, counter_user):
        booking = booking_factory()
        api_client.force_authenticate(counter_user)

        resp = api_client.post(
            f"/api/operator/bookings/{booking.id}/payments/",
            {
                "amount": "168.00",
                "method": "debit",
                "transaction_reference": "T-1001",
                "reason": "paid at pickup",
            },
            format="json",
        )

        assert resp.status_code == 201, resp.data
        payment = Payment.objects.get(pk=resp.data["id"])
        assert payment.status == Payment.Status.COMPLETED
        assert payment.payment_type == Payment.Type.RENTAL
        assert payment.created_by == counter_user
        event = OperatorAuditEvent.objects.get(action="operator.payment.record")
        assert event.reason == "paid at pickup"
        assert event.after_json["amount"] == "168.00"

    def test_recording_requires_reason(self, api_client, booking_factory, counter_user):
        booking = booking_factory()
        api_client.force_authenticate(counter_user)

        resp = api_client.post(
            f"/api/operator/bookings/{booking.id}/payments/",
            {"amount": "168.00", "method": "cash"},
            format="json",
        )

        assert resp.status_code == 400
        assert resp.data == {"detail": "reason is required"}
        assert not Payment.objects.filter(booking=booking).exists()

    def test_points_method_is_not_accepted_at_the_counter(
        self, api_client, booking_factory, counter_user
    ):
        booking = booking_factory()
        api_client.force_authenticate(counter_user)

        resp = api_client.post(
            f"/api/operator/bookings/{booking.id}/payments/",
            {"amount": "10.00", "method": "points", "reason": "loyalty"},
            format="json",
        )

        assert resp.status_code == 400
        assert "method" in resp.data

    def test_support_can_list_but_not_record(self, api_client, booking_factory, support_user):
        booking = booking_factory()
        api_client.force_authenticate(support_user)
        url = f"/api/operator/bookings/{booking.id}/payments/"

        assert api_client.get(url).status_code == 200
        assert api_client.post(url, {"amount": "10.00"}, format="json").status_code == 403

    def test_non_positive_amount_rejected(self, api_client, booking_factory, counter_user):
        booking = booking_factory()
        api_client.force_authenticate(counter_user)

        resp = api_client.post(
            f"/api/operator/bookings/{booking.id}/payments/", {"amount": "0"}, format="json"
        )

        assert resp.status_code == 400
        assert "amount" in resp.data

    def test_finance_refunds_payment(self, api_client, booking_factory, finance_user):
        booking = booking_factory()
        payment = Payment.objects.create(
            booking=booking,
            amount=Decimal("50.00"),
            payment_type=Payment.Type.RENTAL,
            status=Payment.Status.COMPLETED,
        )
        api_client.force_authenticate(finance_user)
        url = f"/api/operator/bookings/{booking.id}/payments/{payment.id}/refund/"

        assert api_client.post(url, {}, format="json").status_code == 400
        resp = api_client.post(url, {"reason": "double charged"}, format="json")

        assert resp.status_code == 200, resp.data
        payment.refresh_from_db()
        assert payment.status == Payment.Status.REFUNDED
        assert payment.notes == "double charged"
        assert OperatorAuditEvent.objects.filter(action="operator.payment.refund").count() == 1

    def test_refund_on_completed_booking_reverses_earned_points(
        self, api_client, booking_factory, finance_user, renter_user
    ):
        booking = booking_factory(status=Booking.Status.COMPLETED)
        update_points_balance(
            renter_user.pk, 1500, entry_type=PointsLedgerEntry.Type.EARN, booking=booking
        )
        payment = Payment.objects.create(
            booking=booking,
            amount=Decimal("168.00"),
            payment_type=Payment.Type.RENTAL,
            status=Payment.Status.COMPLETED,
        )
        api_client.force_authenticate(finance_user)

        resp = api_client.post(
            f"/api/operator/bookings/{booking.id}/payments/{payment.id}/refund/",
            {"reason": "vehicle fault"},
            format="json",
        )

        assert resp.status_code == 200, resp.data
        reverse = PointsLedgerEntry.objects.get(
            booking=booking, type=PointsLedgerEntry.Type.REVERSE
        )
        assert reverse.points == -1500
        renter_user.refresh_from_db()
        assert renter_user.points_balance == 0

    def test_refund_on_open_booking_keeps_points(
        self, api_client, booking_factory, finance_user, renter_user
    ):
        booking = booking_factory()
        update_points_balance(
            renter_user.pk, 1500, entry_type=PointsLedgerEntry.Type.EARN, booking=booking
        )
        payment = Payment.objects.create(
            booking=booking,
            amount=Decimal("168.00"),
            payment_type=Payment.Type.RENTAL,
            status=Payment.Status.COMPLETED,
        )
        api_client.force_authenticate(finance_user)

        api_client.post(
            f"/api/operator/bookings/{booking.id}/payments/{payment.id}/refund/",
            {"reason": "double charged"},
            format="json",
        )

        assert not PointsLedgerEntry.objects.filter(type=PointsLedgerEntry.Type.REVERSE).exists()
        renter_user.refresh_from_db()
        assert renter_user.points_balance == 1500

    def test_refunding_points_payment_restores_points_once(
        self, api_client, booking_factory, finance_user, renter_user
    ):
        booking = booking_factory()
        update_points_balance(
            renter_user.pk, 1000, entry_type=PointsLedgerEntry.Type.ADJUST, notes="goodwill"
        )
        redeem_points(
            user=renter_user,
            booking=booking,
            points_to_redeem=1000,
            discount_value=Decimal("10.00"),
        )
        payment = Payment.objects.create(
            booking=booking,
            amount=Decimal("10.00"),
            payment_type=Payment.Type.RENTAL,
            method=Payment.Method.POINTS,
            status=Payment.Status.COMPLETED,
        )
        api_client.force_authenticate(finance_user)
        url = f"/api/operator/bookings/{booking.id}/payments/{payment.id}/refund/"

        first = api_client.post(url, {"reason": "discount applied twice"}, format="json")
        second = api_client.post(url, {"reason": "discount applied twice"}, format="json")

        assert first.status_code == 200, first.data
        assert second.status_code == 400
        renter_user.refresh_from_db()
        assert renter_user.points_balance == 1000

    def test_completed_payment_amount_is_immutable(self, booking_factory):
        payment = Payment.objects.create(
            booking=booking_factory(),
            amount=Decimal("50.00"),
            payment_type=Payment.Type.RENTAL,
            status=Payment.Status.COMPLETED,
        )

        payment.amount = Decimal("10.00")
        with pytest.raises(ValidationError):
            payment.save()
