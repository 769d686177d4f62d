from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="payment",
            name="method",
            field=models.CharField(
                choices=[
                    ("card", "Card"),
                    ("cash", "Cash"),
                    ("debit", "Debit"),
                    ("points", "Loyalty points"),
                    ("other", "Other"),
                ],
                default="card",
                max_length=16,
            ),
        ),
    ]
