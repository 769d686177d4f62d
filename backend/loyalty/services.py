"""
Loyalty points ledger.

``update_points_balance`` is the only code that writes a balance: it locks the
user row, appends the ledger entry and stores ``balance_after`` on both. One
earn and one reverse per booking are guaranteed by a conditional unique
constraint; a duplicate insert rolls back and is reported as already done.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from core.money import q2

from .calculator import calculate_points_discount, calculate_points_to_earn, eligible_spend
from .config import PointsSettings, load_points_settings
from .models import PointsLedgerEntry

logger = logging.getLogger(__name__)

EntryType = PointsLedgerEntry.Type
DEBIT_TYPES = (EntryType.REDEEM, EntryType.REVERSE, EntryType.EXPIRE, EntryType.ADJUST)


class PointsError(ValidationError):
    pass


class InsufficientPoints(PointsError):
    def __init__(self, balance: int, requested: int):
        super().__init__(
            {"points": [f"Insufficient points: balance is {balance}, {requested} requested."]}
        )
        self.balance = balance
        self.requested = requested


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    for day in (value.day, 30, 29, 28):
        try:
            return value.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    return value.replace(year=year, month=month, day=28)


def update_points_balance(
    user_id: int,
    delta: int,
    *,
    entry_type: str,
    booking=None,
    money_value: Optional[Decimal] = None,
    notes: str = "",
    expires_at: Optional[datetime] = None,
    actor=None,
) -> tuple[int, PointsLedgerEntry]:
    """Apply ``delta`` to a user's balance and record it. Returns ``(new_balance, entry)``."""
    User = get_user_model()
    with transaction.atomic():
        user = User.objects.select_for_update().get(pk=user_id)
        new_balance = user.points_balance + int(delta)
        if new_balance < 0:
            raise InsufficientPoints(user.points_balance, -int(delta))
        entry = PointsLedgerEntry.objects.create(
            user=user,
            booking=booking,
            type=entry_type,
            points=int(delta),
            balance_after=new_balance,
            money_value=q2(money_value) if money_value is not None else None,
            notes=notes,
            expires_at=expires_at,
            created_by=actor if getattr(actor, "pk", None) else None,
        )
        User.objects.filter(pk=user_id).update(points_balance=new_balance)
    return new_balance, entry


def award_points(
    *,
    user,
    booking,
    booking_total: Decimal,
    tax_amount: Decimal,
    add_ons_total: Decimal,
    settings: PointsSettings | None = None,
) -> dict:
    """Earn points for a completed booking once. Returns ``{points_earned, already_awarded}``."""
    settings = settings or load_points_settings()
    if PointsLedgerEntry.objects.filter(booking=booking, type=EntryType.EARN).exists():
        return {"points_earned": 0, "already_awarded": True}
    if not user.is_active_member:
        return {"points_earned": 0, "already_awarded": False}

    points = calculate_points_to_earn(booking_total, tax_amount, add_ons_total, settings)
    if points <= 0:
        return {"points_earned": 0, "already_awarded": False}

    expires_at = None
    if settings.expiration_enabled:
        expires_at = _add_months(timezone.now(), settings.expiration_months)
    try:
        update_points_balance(
            user.pk,
            points,
            entry_type=EntryType.EARN,
            booking=booking,
            money_value=eligible_spend(booking_total, tax_amount, add_ons_total, settings),
            notes=f"Earned on booking {booking.pk}",
            expires_at=expires_at,
        )
    except IntegrityError:
        logger.info(
            "loyalty: points for booking %s already awarded",
            booking.pk,
            extra={"booking_id": booking.pk},
        )
        return {"points_earned": 0, "already_awarded": True}
    logger.info(
        "loyalty: awarded %s points to user %s",
        points,
        user.pk,
        extra={"booking_id": booking.pk},
    )
    return {"points_earned": points, "already_awarded": False}


def quote_redemption(
    points_to_redeem: int, booking_total: Decimal, settings: PointsSettings | None = None
) -> dict:
    settings = settings or load_points_settings()
    discount, points_used = calculate_points_discount(points_to_redeem, booking_total, settings)
    return {"discount": discount, "points_used": points_used}


def redeem_points(*, user, booking, points_to_redeem: int, discount_value: Decimal) -> int:
    """Spend points against a booking. Returns the new balance."""
    if points_to_redeem <= 0:
        raise PointsError({"points": ["Points to redeem must be positive."]})
    if discount_value <= 0:
        raise PointsError({"discount_value": ["Discount value must be positive."]})
    new_balance, _ = update_points_balance(
        user.pk,
        -points_to_redeem,
        entry_type=EntryType.REDEEM,
        booking=booking,
        money_value=discount_value,
        notes=f"Redeemed on booking {booking.pk}",
    )
    logger.info(
        "loyalty: user %s redeemed %s points for %s",
        user.pk,
        points_to_redeem,
        discount_value,
        extra={"booking_id": booking.pk},
    )
    return new_balance


def restore_redeemed_points(*, user, booking, reason: str, actor=None) -> int:
    """
    Credit back the points spent on ``booking``. Returns the points restored.

    Runs once per redemption: callers mark the points payment it backs as
    refunded in the same transaction.
    """
    spent = -(
        PointsLedgerEntry.objects.filter(booking=booking, type=EntryType.REDEEM).aggregate(
            total=Sum("points")
        )["total"]
        or 0
    )
    if spent <= 0:
        return 0
    update_points_balance(
        user.pk,
        spent,
        entry_type=EntryType.ADJUST,
        booking=booking,
        notes=reason,
        actor=actor,
    )
    logger.info(
        "loyalty: restored %s redeemed points to user %s",
        spent,
        user.pk,
        extra={"booking_id": booking.pk},
    )
    return spent


def reverse_points(*, user, booking, reason: str) -> dict:
    """
    Take back the points earned on a booking, once.

    If some of them were already spent, only the remaining balance is taken.
    Returns ``{points_reversed, already_reversed}``.
    """
    User = get_user_model()
    try:
        with transaction.atomic():
            locked = User.objects.select_for_update().get(pk=user.pk)
            earned = PointsLedgerEntry.objects.filter(
                user=locked, booking=booking, type=EntryType.EARN
            ).first()
            if earned is None:
                return {"points_reversed": 0, "already_reversed": False}
            points = min(earned.points, locked.points_balance)
            update_points_balance(
                locked.pk,
                -points,
                entry_type=EntryType.REVERSE,
                booking=booking,
                notes=reason,
            )
    except IntegrityError:
        return {"points_reversed": 0, "already_reversed": True}
    logger.info(
        "loyalty: reversed %s points from user %s",
        points,
        user.pk,
        extra={"booking_id": booking.pk},
    )
    return {"points_reversed": points, "already_reversed": False}


def adjust_points(*, user, points: int, notes: str, actor) -> int:
    """Operator correction. Returns the new balance."""
    if not points:
        raise PointsError({"points": ["Adjustment must be non-zero."]})
    if not (notes or "").strip():
        raise PointsError({"notes": ["A note is required for adjustments."]})
    new_balance, _ = update_points_balance(
        user.pk,
        points,
        entry_type=EntryType.ADJUST,
        notes=notes.strip(),
        actor=actor,
    )
    return new_balance


def points_due_to_expire(user, *, now: datetime | None = None) -> int:
    """
    Expired earned points not yet used up.

    Spending is assumed to consume the oldest points first, so every debit
    already recorded counts against expired earnings before anything expires.
    """
    now = now or timezone.now()
    entries = PointsLedgerEntry.objects.filter(user=user)
    expired_earned = (
        entries.filter(type=EntryType.EARN, expires_at__lte=now).aggregate(total=Sum("points"))[
            "total"
        ]
        or 0
    )
    debits = (
        entries.filter(type__in=DEBIT_TYPES, points__lt=0).aggregate(total=Sum("points"))["total"]
        or 0
    )
    return max(0, min(expired_earned + debits, user.points_balance))


def expire_points_for_user(user, *, now: datetime | None = None) -> int:
    User = get_user_model()
    with transaction.atomic():
        locked = User.objects.select_for_update().get(pk=user.pk)
        points = points_due_to_expire(locked, now=now)
        if points <= 0:
            return 0
        update_points_balance(
            locked.pk, -points, entry_type=EntryType.EXPIRE, notes="Points expired"
        )
    return points


def points_history(user):
    return PointsLedgerEntry.objects.filter(user=user).select_related("booking")
