from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.test import override_settings

from operator_core.audit import MissingAuditReason, audit, json_safe
from operator_core.models import OperatorAuditEvent
from operator_core.permissions import operator_roles

pytestmark = pytest.mark.django_db


def test_audit_requires_reason(support_user):
    with pytest.raises(MissingAuditReason):
        audit(
            actor=support_user,
            action="operator.booking.cancelled",
            entity_type=OperatorAuditEvent.EntityType.BOOKING,
            entity_id=1,
            reason="   ",
        )
    assert not OperatorAuditEvent.objects.exists()


def test_audit_stores_json_safe_snapshots(support_user):
    event = audit(
        actor=support_user,
        action="operator.deposit.capture",
        entity_type=OperatorAuditEvent.EntityType.DEPOSIT_HOLD,
        entity_id=7,
        reason="damage",
        before={"amount": Decimal("350.00")},
        after={"captured": [Decimal("75.50")]},
    )

    event.refresh_from_db()
    assert event.entity_id == "7"
    assert event.before_json == {"amount": "350.00"}
    assert event.after_json == {"captured": ["75.50"]}


def test_json_safe_datetimes():
    moment = datetime(2025, 3, 3, 10, 0, tzinfo=dt_timezone.utc)

    assert json_safe({"at": moment}) == {"at": "2025-03-03T10:00:00+00:00"}


def test_operator_roles(support_user, renter_user, operator_factory):
    multi = operator_factory("lead", "operator_counter", "operator_finance")

    assert operator_roles(support_user) == ["operator_support"]
    assert operator_roles(multi) == ["operator_counter", "operator_finance"]
    assert operator_roles(renter_user) == []


def test_me_view(api_client, counter_user):
    api_client.force_authenticate(counter_user)

    resp = api_client.get("/api/operator/me/")

    assert resp.status_code == 200
    assert resp.data["roles"] == ["operator_counter"]
    assert resp.data["is_staff"] is True


def test_audit_list_filters_by_entity(api_client, support_user):
    for entity_type, entity_id in (("booking", 1), ("booking", 2), ("deposit_hold", 1)):
        audit(
            actor=support_user,
            action="operator.test",
            entity_type=entity_type,
            entity_id=entity_id,
            reason="check",
        )
    api_client.force_authenticate(support_user)

    resp = api_client.get("/api/operator/audit/", {"entity_type": "booking", "entity_id": "2"})

    assert resp.status_code == 200
    assert len(resp.data) == 1
    assert resp.data[0]["actor"] == {"id": support_user.id, "name": "support"}


def test_operator_routes_hidden_off_ops_hosts(api_client, support_user):
    api_client.force_authenticate(support_user)

    with override_settings(OPS_ALLOWED_HOSTS=["ops.example.com"]):
        assert api_client.get("/api/operator/me/").status_code == 404
    with override_settings(ENABLE_OPERATOR=False):
        assert api_client.get("/api/operator/me/").status_code == 404


def test_bootstrap_operator_roles(renter_user):
    call_command("bootstrap_operator_roles", "--username", "renter", "--role", "operator_finance")

    assert Group.objects.filter(name__startswith="operator_").count() == 4
    renter_user.refresh_from_db()
    assert renter_user.is_staff
    assert operator_roles(renter_user) == ["operator_finance"]
