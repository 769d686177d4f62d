from __future__ import annotations

import logging

from celery import shared_task
from django.contrib.auth import get_user_model
from django.utils import timezone

from .config import load_points_settings
from .models import PointsLedgerEntry
from .services import expire_points_for_user

logger = logging.getLogger(__name__)


@shared_task(name="loyalty.expire_points")
def expire_points() -> dict:
    """Write ``expire`` entries for earned points past their expiry date."""
    if not load_points_settings().expiration_enabled:
        return {"users": 0, "expired": 0}
    now = timezone.now()
    User = get_user_model()
    user_ids = (
        PointsLedgerEntry.objects.filter(
            type=PointsLedgerEntry.Type.EARN,
            expires_at__lte=now,
            user__points_balance__gt=0,
        )
        .values_list("user_id", flat=True)
        .distinct()
    )
    users = 0
    expired = 0
    for user in User.objects.filter(pk__in=list(user_ids)):
        points = expire_points_for_user(user, now=now)
        if points:
            users += 1
            expired += points
            logger.info("loyalty: expired %s points for user %s", points, user.pk)
    return {"users": users, "expired": expired}
