from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task
from django.apps import apps
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string

from core.money import format_money
from notifications.models import NotificationLog

logger = logging.getLogger(__name__)


def _render(template: str, context: dict) -> str:
    """Render a template relative to the notifications app."""
    return render_to_string(template, context).strip()


def _build_email_context(extra: Optional[dict]) -> dict:
    frontend_origin = (getattr(settings, "FRONTEND_ORIGIN", "") or "").rstrip("/")
    context = {
        "site_name": getattr(settings, "SITE_NAME", "FleetOps Rentals"),
        "site_url": frontend_origin,
        "currency": (getattr(settings, "STRIPE_CURRENCY", "cad") or "cad").upper(),
    }
    if extra:
        context.update(extra)
    return context


def _log_notification(
    type_: str,
    status: str,
    *,
    to_email: str = "",
    user_id: int | None = None,
    booking_id: int | None = None,
    error: str | None = None,
) -> None:
    try:
        NotificationLog.objects.create(
            type=type_,
            status=status,
            to_email=to_email or "",
            user_id=user_id,
            booking_id=booking_id,
            error=error or "",
        )
    except Exception:
        logger.exception(
            "notifications: failed to persist notification log",
            extra={"type": type_, "status": status, "booking_id": booking_id},
        )


def _prepare_email_bodies(subject: str, template: str, context: dict) -> tuple[str, str | None]:
    context_with_site = _build_email_context(context)
    context_with_site["subject"] = subject
    body = _render(f"email/{template}.txt", context_with_site)
    try:
        html_body = _render(f"email/{template}.html", context_with_site)
    except TemplateDoesNotExist:
        html_body = None
    return body, html_body


def _send_email_logged(
    type_: str,
    *,
    to_email: str | None,
    subject: str,
    template: str,
    context: dict,
    user_id: int | None = None,
    booking_id: int | None = None,
) -> bool:
    if not to_email:
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            user_id=user_id,
            booking_id=booking_id,
            error="missing recipient email",
        )
        logger.warning(
            "notifications: cannot send email without recipient",
            extra={"type": type_, "booking_id": booking_id},
        )
        return False

    text_body, html_body = _prepare_email_bodies(subject, template, context)
    message = EmailMultiAlternatives(
        subject=subject,
        body=text_body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[to_email],
    )
    if html_body:
        message.attach_alternative(html_body, "text/html")

    try:
        message.send(fail_silently=False)
    except Exception as exc:
        error_text = str(exc) or exc.__class__.__name__
        logger.exception(
            "notifications: email send failed",
            extra={"type": type_, "booking_id": booking_id, "user_id": user_id},
        )
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            to_email=to_email,
            user_id=user_id,
            booking_id=booking_id,
            error=error_text,
        )
        return False

    _log_notification(
        type_,
        NotificationLog.Status.SENT,
        to_email=to_email,
        user_id=user_id,
        booking_id=booking_id,
    )
    return True


def _get_booking(booking_id: int):
    Booking = apps.get_model("bookings", "Booking")
    booking = Booking.objects.select_related("renter").filter(pk=booking_id).first()
    if booking is None:
        logger.warning("notifications: booking %s no longer exists", booking_id)
    return booking


def _renter_name(user) -> str:
    full_name = (user.get_full_name() or "").strip()
    return full_name or user.username or "there"


@shared_task(name="notifications.send_deposit_captured_email")
def send_deposit_captured_email(booking_id: int) -> bool:
    booking = _get_booking(booking_id)
    if booking is None:
        return False
    hold = booking.deposit_hold
    renter = booking.renter
    return _send_email_logged(
        "deposit_captured",
        to_email=renter.email,
        subject=f"Deposit charge for booking #{booking.id}",
        template="deposit_captured",
        context={
            "renter_name": _renter_name(renter),
            "booking_id": booking.id,
            "held_amount": format_money(hold.amount),
            "captured_amount": format_money(hold.captured_amount),
            "released_amount": format_money(hold.amount - hold.captured_amount),
            "reason": hold.capture_reason,
        },
        user_id=renter.id,
        booking_id=booking.id,
    )


@shared_task(name="notifications.send_deposit_released_email")
def send_deposit_released_email(booking_id: int) -> bool:
    booking = _get_booking(booking_id)
    if booking is None:
        return False
    hold = booking.deposit_hold
    renter = booking.renter
    return _send_email_logged(
        "deposit_released",
        to_email=renter.email,
        subject=f"Your deposit for booking #{booking.id} has been released",
        template="deposit_released",
        context={
            "renter_name": _renter_name(renter),
            "booking_id": booking.id,
            "released_amount": format_money(hold.amount),
            "card_last4": hold.card_last4,
        },
        user_id=renter.id,
        booking_id=booking.id,
    )


@shared_task(name="notifications.send_final_receipt_email")
def send_final_receipt_email(invoice_id: int) -> bool:
    FinalInvoice = apps.get_model("closeout", "FinalInvoice")
    invoice = (
        FinalInvoice.objects.select_related("booking", "booking__renter")
        .filter(pk=invoice_id)
        .first()
    )
    if invoice is None:
        logger.warning("notifications: invoice %s no longer exists", invoice_id)
        return False
    booking = invoice.booking
    renter = booking.renter
    return _send_email_logged(
        "final_receipt",
        to_email=renter.email,
        subject=f"Receipt {invoice.invoice_number} for booking #{booking.id}",
        template="final_receipt",
        context={
            "renter_name": _renter_name(renter),
            "booking_id": booking.id,
            "invoice_number": invoice.invoice_number,
            "rental_subtotal": format_money(invoice.rental_subtotal),
            "add_ons_total": format_money(invoice.add_ons_total),
            "tax_amount": format_money(invoice.tax_amount),
            "late_fee": format_money(invoice.late_fee),
            "additional_charges": invoice.additional_charges,
            "total_charges": format_money(invoice.total_charges),
            "payments_received": format_money(invoice.payments_received),
            "deposit_to_capture": format_money(invoice.deposit_to_capture),
            "deposit_to_release": format_money(invoice.deposit_to_release),
            "final_amount_due": format_money(invoice.final_amount_due),
        },
        user_id=renter.id,
        booking_id=booking.id,
    )
