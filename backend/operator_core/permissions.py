"""
Operator roles.

A role is a Django group held by a staff user. Roles nest by what a desk may
do: support reads, the counter moves bookings and takes payments, finance
moves money held at Stripe, and admin changes tunable settings.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from rest_framework.permissions import BasePermission

SUPPORT = "operator_support"
COUNTER = "operator_counter"
FINANCE = "operator_finance"
ADMIN = "operator_admin"

ALL_ROLES = (SUPPORT, COUNTER, FINANCE, ADMIN)
SUPPORT_ROLES = ALL_ROLES
COUNTER_ROLES = (COUNTER, ADMIN)
FINANCE_ROLES = (FINANCE, ADMIN)
ADMIN_ROLES = (ADMIN,)


def is_operator(user) -> bool:
    return bool(user and user.is_authenticated and user.is_staff)


def operator_roles(user) -> list[str]:
    """Role names held by ``user``; empty for anyone who is not staff."""
    if not is_operator(user):
        return []
    return sorted(user.groups.filter(name__in=ALL_ROLES).values_list("name", flat=True))


class IsOperator(BasePermission):
    def has_permission(self, request, view):
        return is_operator(getattr(request, "user", None))


class HasOperatorRole(BasePermission):
    """Staff users holding any of ``required_roles``; no roles configured means no access."""

    required_roles: Sequence[str] = ()

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not is_operator(user) or not self.required_roles:
            return False
        return user.groups.filter(name__in=self.required_roles).exists()

    @classmethod
    def with_roles(cls, roles: Iterable[str]):
        role_tuple = tuple(roles)

        class _HasOperatorRole(cls):
            required_roles = role_tuple

        _HasOperatorRole.__name__ = f"{cls.__name__}WithRoles"
        return _HasOperatorRole
