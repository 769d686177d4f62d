"""Operator-tunable settings backed by operator_settings.DbSetting."""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)

_CACHE_TTL_SECONDS = 5.0
_MISSING = object()


@dataclass(frozen=True)
class _CacheEntry:
    expires_at: float
    value: object


_cache: dict[str, _CacheEntry] = {}
_cache_lock = Lock()


def clear_settings_cache(key: str | None = None) -> None:
    """Drop one cached key, or everything when no key is given."""
    with _cache_lock:
        if key is None:
            _cache.clear()
        else:
            _cache.pop(key, None)


def _cache_lookup(key: str, now: float) -> object | None:
    with _cache_lock:
        entry = _cache.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            _cache.pop(key, None)
            return None
        return entry.value


def _cache_store(key: str, now: float, value: object) -> None:
    with _cache_lock:
        _cache[key] = _CacheEntry(expires_at=now + _CACHE_TTL_SECONDS, value=value)


def _load_from_db(key: str) -> object:
    from django.apps import apps as django_apps

    if not django_apps.ready or not django_apps.is_installed("operator_settings"):
        return _MISSING

    DbSetting = django_apps.get_model("operator_settings", "DbSetting")
    from django.db.models import F, Q
    from django.utils import timezone

    value = (
        DbSetting.objects.filter(key=key)
        .filter(Q(effective_at__isnull=True) | Q(effective_at__lte=timezone.now()))
        .order_by(F("effective_at").desc(nulls_last=True), "-updated_at")
        .values_list("value_json", flat=True)
        .first()
    )
    return _MISSING if value is None else value


def get_setting(key: str, default: Any) -> Any:
    """
    Resolve the currently effective value for ``key``.

    The newest row whose effective_at is empty or already reached wins. When the
    table is unavailable (app not installed, migrations pending, database down)
    the default is returned. Lookups, misses included, are cached in-process for
    a few seconds.
    """
    now_mono = time.monotonic()
    cached = _cache_lookup(key, now_mono)
    if cached is not None:
        return default if cached is _MISSING else _copy(cached)

    try:
        value = _load_from_db(key)
    except Exception:
        logger.debug("settings_resolver: lookup failed for %s", key, exc_info=True)
        value = _MISSING

    _cache_store(key, now_mono, value)
    return default if value is _MISSING else _copy(value)


def _copy(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return copy.deepcopy(value)
    return value


def get_bool(key: str, default: bool = False) -> bool:
    value = get_setting(key, default)
    return value if type(value) is bool else default


def get_int(key: str, default: int = 0) -> int:
    value = get_setting(key, default)
    return value if type(value) is int else default


def as_decimal(value: Any, default: Decimal) -> Decimal:
    """Coerce a JSON scalar (str, int, float) into a Decimal, else ``default``."""
    if isinstance(value, Decimal):
        return value
    if type(value) is bool:
        return default
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            return default
    return default


def get_decimal(key: str, default: Decimal = Decimal("0")) -> Decimal:
    return as_decimal(get_setting(key, default), default)


def get_str(key: str, default: str = "") -> str:
    value = get_setting(key, default)
    return value if isinstance(value, str) else default


def get_json(key: str, default: Any | None = None) -> Any:
    if default is None:
        default = {}
    value = get_setting(key, default)
    return value if isinstance(value, (dict, list)) else default
