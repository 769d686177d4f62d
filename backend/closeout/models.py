from decimal import Decimal

from django.conf import settings
from django.db import models


def _money(**kwargs):
    return models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"), **kwargs)


class FinalInvoice(models.Model):
    """Final bill issued when a rental account is closed. One per booking."""

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="final_invoice",
    )
    invoice_number = models.CharField(max_length=32, unique=True)
    rental_subtotal = _money()
    add_ons_total = _money()
    tax_amount = _money()
    late_fee = _money()
    additional_charges = models.JSONField(
        default=list,
        blank=True,
        help_text="Damage and other charges added at closeout: [{description, amount}].",
    )
    additional_charges_total = _money()
    total_charges = _money()
    payments_received = _money()
    amount_due = _money(help_text="Negative when the renter overpaid.")
    deposit_held = _money()
    deposit_to_capture = _money()
    deposit_to_release = _money()
    final_amount_due = _money()
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="final_invoices_issued",
    )
    issued_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-issued_at"]

    def __str__(self) -> str:
        return self.invoice_number


class Closeout(models.Model):
    """Progress of closing a rental account: invoice first, then the deposit."""

    class Status(models.TextChoices):
        DEPOSIT_PENDING = "deposit_pending", "Deposit pending"
        NEEDS_RECONCILIATION = "needs_reconciliation", "Needs reconciliation"
        COMPLETED = "completed", "Completed"

    class DepositAction(models.TextChoices):
        CAPTURE = "capture", "Capture"
        RELEASE = "release", "Release"
        NONE = "none", "None"

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="closeout",
    )
    invoice = models.OneToOneField(
        FinalInvoice,
        on_delete=models.PROTECT,
        related_name="closeout",
    )
    status = models.CharField(
        max_length=24, choices=Status.choices, default=Status.DEPOSIT_PENDING
    )
    deposit_action = models.CharField(
        max_length=8, choices=DepositAction.choices, default=DepositAction.NONE
    )
    confirmations = models.JSONField(default=dict, blank=True)
    notes = models.TextField(blank=True, default="")
    attempts = models.PositiveSmallIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")
    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="closeouts",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status"], name="closeout_status_idx")]

    def __str__(self) -> str:
        return f"Closeout {self.pk} for booking {self.booking_id} ({self.status})"
