from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


class PointsLedgerEntry(models.Model):
    """
    One loyalty-points movement for a user.

    ``points`` is signed; ``balance_after`` is the user's balance once this row
    was applied. Rows are written only by ``loyalty.services.update_points_balance``.
    """

    class Type(models.TextChoices):
        EARN = "earn", "Earn"
        REDEEM = "redeem", "Redeem"
        ADJUST = "adjust", "Adjust"
        EXPIRE = "expire", "Expire"
        REVERSE = "reverse", "Reverse"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="points_entries",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="points_entries",
    )
    type = models.CharField(max_length=16, choices=Type.choices)
    points = models.IntegerField()
    balance_after = models.PositiveIntegerField()
    money_value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Eligible spend for earn entries, discount value for redemptions.",
    )
    notes = models.TextField(blank=True, default="")
    expires_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="points_adjustments",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="loyalty_entry_user_idx"),
            models.Index(fields=["type", "expires_at"], name="loyalty_entry_expiry_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["booking", "type"],
                condition=models.Q(type__in=["earn", "reverse"]),
                name="loyalty_one_earn_reverse_per_booking",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.type} {self.points:+d} for user {self.user_id}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError({"non_field_errors": ["Points ledger entries are immutable."]})
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError({"non_field_errors": ["Points ledger entries cannot be deleted."]})
