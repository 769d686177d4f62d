import django.db.models.deletion
from decimal import Decimal

from django.conf import settings
from django.db import migrations, models

HOLD_STATUS_CHOICES = [
    ("none", "None"),
    ("requires_payment", "Requires payment"),
    ("authorizing", "Authorizing"),
    ("authorized", "Authorized"),
    ("capturing", "Capturing"),
    ("captured", "Captured"),
    ("releasing", "Releasing"),
    ("released", "Released"),
    ("failed", "Failed"),
    ("expired", "Expired"),
    ("canceled", "Canceled"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10)),
                (
                    "payment_type",
                    models.CharField(
                        choices=[
                            ("rental", "Rental"),
                            ("deposit", "Deposit"),
                            ("additional", "Additional charge"),
                            ("refund", "Refund"),
                        ],
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("card", "Card"),
                            ("cash", "Cash"),
                            ("debit", "Debit"),
                            ("other", "Other"),
                        ],
                        default="card",
                        max_length=16,
                    ),
                ),
                (
                    "transaction_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Related Stripe PaymentIntent / Charge id or a terminal receipt number.",
                        max_length=255,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="bookings.booking",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments_recorded",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["booking", "payment_type", "status"],
                        name="payments_booking_type_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DepositHold",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "status",
                    models.CharField(choices=HOLD_STATUS_CHOICES, default="none", max_length=20),
                ),
                (
                    "attempt",
                    models.PositiveSmallIntegerField(
                        default=1,
                        help_text="Incremented each time the hold is restarted; part of Stripe idempotency keys.",
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10),
                ),
                (
                    "captured_amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10),
                ),
                ("capture_reason", models.TextField(blank=True, default="")),
                ("stripe_payment_intent_id", models.CharField(blank=True, default="", max_length=255)),
                ("stripe_charge_id", models.CharField(blank=True, default="", max_length=255)),
                ("stripe_payment_method_id", models.CharField(blank=True, default="", max_length=255)),
                ("card_brand", models.CharField(blank=True, default="", max_length=32)),
                ("card_last4", models.CharField(blank=True, default="", max_length=4)),
                ("authorized_at", models.DateTimeField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("captured_at", models.DateTimeField(blank=True, null=True)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("last_error", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="deposit_hold",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["status", "expires_at"], name="payments_hold_status_exp_idx"
                    ),
                    models.Index(
                        fields=["stripe_payment_intent_id"], name="payments_hold_intent_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(captured_amount__lte=models.F("amount")),
                        name="payments_hold_capture_lte_amount",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DepositLedgerEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("hold", "Hold"),
                            ("capture", "Capture"),
                            ("partial_capture", "Partial capture"),
                            ("release", "Release"),
                            ("stripe_release", "Stripe release"),
                            ("status_sync", "Status sync"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10),
                ),
                ("reason", models.TextField(blank=True, default="")),
                ("stripe_payment_intent_id", models.CharField(blank=True, default="", max_length=255)),
                ("stripe_charge_id", models.CharField(blank=True, default="", max_length=255)),
                ("status_before", models.CharField(blank=True, default="", max_length=20)),
                ("status_after", models.CharField(blank=True, default="", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="deposit_ledger_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="deposit_ledger",
                        to="bookings.booking",
                    ),
                ),
                (
                    "hold",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="payments.deposithold",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["booking", "action"], name="payments_ledger_booking_idx"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="StripeWebhookEvent",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("event_id", models.CharField(max_length=255, unique=True)),
                ("event_type", models.CharField(max_length=128)),
                ("received_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["-received_at"],
            },
        ),
    ]
