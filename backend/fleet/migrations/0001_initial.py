import django.db.models.deletion
from decimal import Decimal

from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="VehicleCategory",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("name", models.CharField(max_length=120, unique=True)),
                ("daily_rate", models.DecimalField(decimal_places=2, max_digits=10)),
                (
                    "protection_group",
                    models.CharField(
                        choices=[
                            ("g1", "Group 1 (cars)"),
                            ("g2", "Group 2 (minivans, standard SUVs)"),
                            ("g3", "Group 3 (large SUVs)"),
                        ],
                        default="g1",
                        max_length=4,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["name"],
                "verbose_name_plural": "vehicle categories",
            },
        ),
        migrations.CreateModel(
            name="VehicleUnit",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("vin", models.CharField(max_length=17, unique=True)),
                ("plate_number", models.CharField(blank=True, default="", max_length=16)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("maintenance", "Maintenance"),
                            ("retired", "Retired"),
                        ],
                        default="active",
                        max_length=16,
                    ),
                ),
                (
                    "acquisition_cost",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
                ),
                ("acquisition_date", models.DateField(blank=True, null=True)),
                ("acquisition_mileage", models.PositiveIntegerField(default=0)),
                ("current_mileage", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "category",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="units",
                        to="fleet.vehiclecategory",
                    ),
                ),
            ],
            options={
                "ordering": ["vin"],
                "indexes": [
                    models.Index(fields=["category", "status"], name="fleet_unit_cat_status_idx")
                ],
            },
        ),
        migrations.CreateModel(
            name="VehicleExpense",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("maintenance", "Maintenance"),
                            ("repair", "Repair"),
                            ("insurance", "Insurance"),
                            ("registration", "Registration"),
                            ("fuel", "Fuel"),
                            ("other", "Other"),
                        ],
                        max_length=16,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("incurred_on", models.DateField()),
                ("description", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="vehicle_expenses_recorded",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "unit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="expenses",
                        to="fleet.vehicleunit",
                    ),
                ),
            ],
            options={
                "ordering": ["-incurred_on", "-id"],
            },
        ),
    ]
