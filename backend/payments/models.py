from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


class Payment(models.Model):
    """Money received from (or returned to) a renter for one booking."""

    class Type(models.TextChoices):
        RENTAL = "rental", "Rental"
        DEPOSIT = "deposit", "Deposit"
        ADDITIONAL = "additional", "Additional charge"
        REFUND = "refund", "Refund"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"

    class Method(models.TextChoices):
        CARD = "card", "Card"
        CASH = "cash", "Cash"
        DEBIT = "debit", "Debit"
        POINTS = "points", "Loyalty points"
        OTHER = "other", "Other"

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    payment_type = models.CharField(max_length=16, choices=Type.choices)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    method = models.CharField(max_length=16, choices=Method.choices, default=Method.CARD)
    transaction_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Related Stripe PaymentIntent / Charge id or a terminal receipt number.",
    )
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="payments_recorded",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["booking", "payment_type", "status"], name="payments_booking_type_idx"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.payment_type} {self.amount} ({self.status}) for booking {self.booking_id}"

    def save(self, *args, **kwargs):
        if self.pk:
            stored = Payment.objects.filter(pk=self.pk).values(
                "status", "amount", "payment_type", "method", "transaction_reference"
            ).first()
            if stored and stored["status"] in (self.Status.COMPLETED, self.Status.REFUNDED):
                unchanged = (
                    stored["amount"] == self.amount
                    and stored["payment_type"] == self.payment_type
                    and stored["method"] == self.method
                    and stored["transaction_reference"] == self.transaction_reference
                )
                allowed = stored["status"] == self.status or (
                    stored["status"] == self.Status.COMPLETED
                    and self.status == self.Status.REFUNDED
                )
                if not (unchanged and allowed):
                    raise ValidationError(
                        {"status": ["Completed payments can only be marked refunded."]}
                    )
        return super().save(*args, **kwargs)


class DepositHold(models.Model):
    """The security-deposit card authorization for one booking."""

    class Status(models.TextChoices):
        NONE = "none", "None"
        REQUIRES_PAYMENT = "requires_payment", "Requires payment"
        AUTHORIZING = "authorizing", "Authorizing"
        AUTHORIZED = "authorized", "Authorized"
        CAPTURING = "capturing", "Capturing"
        CAPTURED = "captured", "Captured"
        RELEASING = "releasing", "Releasing"
        RELEASED = "released", "Released"
        FAILED = "failed", "Failed"
        EXPIRED = "expired", "Expired"
        CANCELED = "canceled", "Canceled"

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="deposit_hold",
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.NONE)
    attempt = models.PositiveSmallIntegerField(
        default=1,
        help_text="Incremented each time the hold is restarted; part of Stripe idempotency keys.",
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    captured_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    capture_reason = models.TextField(blank=True, default="")
    stripe_payment_intent_id = models.CharField(max_length=255, blank=True, default="")
    stripe_charge_id = models.CharField(max_length=255, blank=True, default="")
    stripe_payment_method_id = models.CharField(max_length=255, blank=True, default="")
    card_brand = models.CharField(max_length=32, blank=True, default="")
    card_last4 = models.CharField(max_length=4, blank=True, default="")
    authorized_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    captured_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "expires_at"], name="payments_hold_status_exp_idx"),
            models.Index(fields=["stripe_payment_intent_id"], name="payments_hold_intent_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(captured_amount__lte=models.F("amount")),
                name="payments_hold_capture_lte_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"DepositHold {self.pk} for booking {self.booking_id} ({self.status})"


class DepositLedgerEntry(models.Model):
    """Append-only record of an action taken against a deposit hold."""

    class Action(models.TextChoices):
        HOLD = "hold", "Hold"
        CAPTURE = "capture", "Capture"
        PARTIAL_CAPTURE = "partial_capture", "Partial capture"
        RELEASE = "release", "Release"
        STRIPE_RELEASE = "stripe_release", "Stripe release"
        STATUS_SYNC = "status_sync", "Status sync"

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="deposit_ledger",
    )
    hold = models.ForeignKey(
        DepositHold,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    action = models.CharField(max_length=20, choices=Action.choices)
    amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    reason = models.TextField(blank=True, default="")
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="deposit_ledger_entries",
    )
    stripe_payment_intent_id = models.CharField(max_length=255, blank=True, default="")
    stripe_charge_id = models.CharField(max_length=255, blank=True, default="")
    status_before = models.CharField(max_length=20, blank=True, default="")
    status_after = models.CharField(max_length=20, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["booking", "action"], name="payments_ledger_booking_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.amount} for booking {self.booking_id}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError({"non_field_errors": ["Deposit ledger entries are immutable."]})
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError({"non_field_errors": ["Deposit ledger entries cannot be deleted."]})


class StripeWebhookEvent(models.Model):
    event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=128)
    received_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-received_at"]

    def __str__(self) -> str:
        return f"{self.event_type} {self.event_id}"
