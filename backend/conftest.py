"""Shared pytest configuration and fixtures."""

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from bookings.tests.conftest import (  # noqa: F401
    add_on,
    authorized_hold_factory,
    booking_factory,
    category,
    counter_user,
    finance_user,
    operator_factory,
    other_user,
    renter_user,
    support_user,
    unit,
)
from core.settings_resolver import clear_settings_cache


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()


@pytest.fixture(autouse=True)
def _clear_caches():
    cache.clear()
    clear_settings_cache()
    yield
    cache.clear()
    clear_settings_cache()
