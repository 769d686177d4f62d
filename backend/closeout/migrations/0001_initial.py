import django.db.models.deletion
from decimal import Decimal

from django.conf import settings
from django.db import migrations, models


def money(**kwargs):
    return models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10, **kwargs)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="FinalInvoice",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("invoice_number", models.CharField(max_length=32, unique=True)),
                ("rental_subtotal", money()),
                ("add_ons_total", money()),
                ("tax_amount", money()),
                ("late_fee", money()),
                (
                    "additional_charges",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Damage and other charges added at closeout: [{description, amount}].",
                    ),
                ),
                ("additional_charges_total", money()),
                ("total_charges", money()),
                ("payments_received", money()),
                ("amount_due", money(help_text="Negative when the renter overpaid.")),
                ("deposit_held", money()),
                ("deposit_to_capture", money()),
                ("deposit_to_release", money()),
                ("final_amount_due", money()),
                ("issued_at", models.DateTimeField(auto_now_add=True)),
                (
                    "booking",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="final_invoice",
                        to="bookings.booking",
                    ),
                ),
                (
                    "issued_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="final_invoices_issued",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-issued_at"],
            },
        ),
        migrations.CreateModel(
            name="Closeout",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("deposit_pending", "Deposit pending"),
                            ("needs_reconciliation", "Needs reconciliation"),
                            ("completed", "Completed"),
                        ],
                        default="deposit_pending",
                        max_length=24,
                    ),
                ),
                (
                    "deposit_action",
                    models.CharField(
                        choices=[("capture", "Capture"), ("release", "Release"), ("none", "None")],
                        default="none",
                        max_length=8,
                    ),
                ),
                ("confirmations", models.JSONField(blank=True, default=dict)),
                ("notes", models.TextField(blank=True, default="")),
                ("attempts", models.PositiveSmallIntegerField(default=0)),
                ("last_error", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "booking",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="closeout",
                        to="bookings.booking",
                    ),
                ),
                (
                    "closed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="closeouts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "invoice",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="closeout",
                        to="closeout.finalinvoice",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status"], name="closeout_status_idx")],
            },
        ),
    ]
