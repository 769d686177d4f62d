"""Celery tasks for bookings."""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone

from closeout.services import settlement_for_booking
from core.money import ZERO
from fleet.models import DamageReport
from payments.models import DepositHold
from payments.stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
    release_deposit_hold,
)

from .models import Booking, BookingEvent

logger = logging.getLogger(__name__)

AUTO_RELEASE_REASON = "automatic release after return"


def _review_reasons(booking: Booking) -> list[str]:
    reasons = []
    if DamageReport.objects.filter(booking=booking, status=DamageReport.Status.OPEN).exists():
        reasons.append("open damage report")
    if settlement_for_booking(booking).amount_due > ZERO:
        reasons.append("balance outstanding")
    return reasons


def _flag_for_review(booking: Booking, reasons: list[str]) -> bool:
    """Record a review event once per booking. Returns True if a new flag was written."""
    if booking.events.filter(type=BookingEvent.Type.DEPOSIT_REVIEW_REQUIRED).exists():
        return False
    BookingEvent.objects.create(
        booking=booking,
        type=BookingEvent.Type.DEPOSIT_REVIEW_REQUIRED,
        payload={"reasons": reasons},
    )
    logger.info(
        "auto_release_deposits: booking %s needs review (%s)",
        booking.id,
        ", ".join(reasons),
        extra={"booking_id": booking.id},
    )
    return True


@shared_task(name="bookings.auto_release_deposits")
def auto_release_deposits() -> dict:
    """
    Release deposit holds of returned bookings that owe nothing.

    Bookings with an open damage report or an outstanding balance keep their
    hold and are flagged for staff review instead. Closed accounts are left to
    the closeout flow. Safe to run repeatedly.
    """
    cutoff = timezone.now() - timedelta(hours=settings.DEPOSIT_AUTO_RELEASE_AFTER_HOURS)
    bookings = list(
        Booking.objects.filter(
            status=Booking.Status.COMPLETED,
            account_closed_at__isnull=True,
            actual_return_at__lte=cutoff,
            deposit_hold__status=DepositHold.Status.AUTHORIZED,
        )
        .select_related("renter")
        .prefetch_related("add_ons")
    )

    released = 0
    flagged = 0
    for booking in bookings:
        reasons = _review_reasons(booking)
        if reasons:
            flagged += int(_flag_for_review(booking, reasons))
            continue
        try:
            release_deposit_hold(booking=booking, reason=AUTO_RELEASE_REASON)
        except StripeConfigurationError:
            logger.exception("auto_release_deposits: Stripe is not configured")
            raise
        except (StripeTransientError, StripePaymentError, ValidationError) as exc:
            logger.warning(
                "auto_release_deposits: release failed for booking %s: %s",
                booking.id,
                exc,
                extra={"booking_id": booking.id},
            )
            continue
        released += 1

    return {"checked": len(bookings), "released": released, "flagged": flagged}
