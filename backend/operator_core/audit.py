"""
Operator audit trail.

Every state change an operator makes goes through ``audit`` (or
``audit_request`` from a view) with a non-empty reason. Snapshots are stored
as JSON, so money and timestamps are converted to strings first.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from operator_core.models import OperatorAuditEvent


class MissingAuditReason(ValueError):
    pass


def json_safe(value: Any) -> Any:
    """Convert Decimals and datetimes nested in ``value`` to strings."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(item) for item in value]
    return value


def request_ip_and_ua(request) -> tuple[str, str]:
    forwarded = (request.META.get("HTTP_X_FORWARDED_FOR") or "").split(",")[0].strip()
    ip = forwarded or request.META.get("REMOTE_ADDR", "")
    return ip, request.META.get("HTTP_USER_AGENT", "")


def audit(
    *,
    actor,
    action: str,
    entity_type: str,
    entity_id,
    reason: str,
    before=None,
    after=None,
    meta=None,
    ip: str | None = None,
    user_agent: str | None = None,
) -> OperatorAuditEvent:
    """Persist an operator audit event. Raises ``MissingAuditReason`` without a reason."""
    reason = (reason or "").strip()
    if not reason:
        raise MissingAuditReason("reason is required for audit events")

    return OperatorAuditEvent.objects.create(
        actor=actor if getattr(actor, "pk", None) else None,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
        before_json=json_safe(before),
        after_json=json_safe(after),
        meta_json=json_safe(meta),
        ip=ip or "",
        user_agent=user_agent or "",
    )


def audit_request(request, **fields) -> OperatorAuditEvent:
    """``audit`` on behalf of the requesting operator, with client IP and user agent."""
    ip, user_agent = request_ip_and_ua(request)
    return audit(actor=request.user, ip=ip, user_agent=user_agent, **fields)
