from __future__ import annotations

import secrets

from django.contrib.auth.models import AbstractUser
from django.db import models


def generate_member_id() -> str:
    return f"MBR-{secrets.token_hex(4).upper()}"


class User(AbstractUser):
    """Staff and renter accounts, with loyalty membership state."""

    class MembershipTier(models.TextChoices):
        BRONZE = "bronze", "Bronze"
        SILVER = "silver", "Silver"
        GOLD = "gold", "Gold"
        PLATINUM = "platinum", "Platinum"

    class MembershipStatus(models.TextChoices):
        ACTIVE = "active", "Active"
        SUSPENDED = "suspended", "Suspended"
        INACTIVE = "inactive", "Inactive"

    phone = models.CharField(
        max_length=32,
        unique=True,
        null=True,
        blank=True,
        help_text="Optional E.164 formatted phone number.",
    )
    stripe_customer_id = models.CharField(
        max_length=120,
        blank=True,
        default="",
        help_text="Stripe Customer ID for renter payments.",
    )
    birth_date = models.DateField(null=True, blank=True)
    points_balance = models.PositiveIntegerField(
        default=0,
        help_text="Running loyalty balance; only written through loyalty.services.",
    )
    member_id = models.CharField(max_length=16, unique=True, null=True, blank=True)
    membership_tier = models.CharField(
        max_length=16,
        choices=MembershipTier.choices,
        default=MembershipTier.BRONZE,
    )
    membership_status = models.CharField(
        max_length=16,
        choices=MembershipStatus.choices,
        default=MembershipStatus.ACTIVE,
    )

    def save(self, *args, **kwargs):
        if not self.member_id:
            self.member_id = generate_member_id()
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "member_id"}
        super().save(*args, **kwargs)

    @property
    def is_active_member(self) -> bool:
        return self.membership_status == self.MembershipStatus.ACTIVE
