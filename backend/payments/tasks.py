from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from payments.models import DepositHold
from payments.stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
    sync_deposit_status,
)

logger = logging.getLogger(__name__)


@shared_task(name="payments.sync_authorized_holds")
def sync_authorized_holds():
    """
    Reconcile holds that may have changed at Stripe without a webhook.

    Checks authorized holds that are expiring soon or past expiry, and holds
    left in ``authorizing`` (for example after 3DS). Safe to run repeatedly.
    """
    now = timezone.now()
    horizon = now + timedelta(days=settings.DEPOSIT_EXPIRING_SOON_DAYS)
    holds = list(
        DepositHold.objects.filter(
            Q(status=DepositHold.Status.AUTHORIZED, expires_at__lte=horizon)
            | Q(status=DepositHold.Status.AUTHORIZING)
        )
        .exclude(stripe_payment_intent_id="")
        .select_related("booking")
    )

    changed = 0
    for hold in holds:
        before = hold.status
        try:
            synced = sync_deposit_status(hold.booking)
        except StripeConfigurationError:
            logger.exception("sync_authorized_holds: Stripe is not configured")
            raise
        except (StripeTransientError, StripePaymentError) as exc:
            logger.warning(
                "sync_authorized_holds: hold %s failed to sync: %s",
                hold.id,
                exc,
                extra={"booking_id": hold.booking_id},
            )
            continue
        if synced.status != before:
            changed += 1
    return {"checked": len(holds), "changed": changed}
