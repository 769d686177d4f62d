"""
Versioned cache keys per entity, bumped by model signals.

Callers never build cache keys by hand: they ask for ``cache_key(Entity.X, id, view)``
and models register which entity id a saved row invalidates with ``track_model``.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Iterable

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.db.models.signals import post_delete, post_save

logger = logging.getLogger(__name__)


class Entity(enum.Enum):
    BOOKING = "booking"
    POINTS_ACCOUNT = "points_account"
    VEHICLE_UNIT = "vehicle_unit"


Listener = Callable[[Entity, int], None]

_listeners: dict[Entity, list[Listener]] = {entity: [] for entity in Entity}


def _version_key(entity: Entity, entity_id: int) -> str:
    return f"{entity.value}:{int(entity_id)}:version"


def _get_version(entity: Entity, entity_id: int) -> int:
    key = _version_key(entity, entity_id)
    version = cache.get(key)
    if version is None:
        cache.add(key, 1, timeout=None)
        return 1
    try:
        return int(version)
    except (TypeError, ValueError):
        return 1


def _bump_version(entity: Entity, entity_id: int) -> None:
    key = _version_key(entity, entity_id)
    try:
        cache.incr(key)
    except ValueError:
        cache.set(key, _get_version(entity, entity_id) + 1, timeout=None)


def cache_key(entity: Entity, entity_id: int, view: str) -> str:
    return f"{entity.value}:{int(entity_id)}:v{_get_version(entity, entity_id)}:{view}"


def cached(
    entity: Entity,
    entity_id: int,
    view: str,
    builder: Callable[[], Any],
    *,
    timeout: int | None = None,
) -> Any:
    """Return the cached ``view`` for an entity, building it on a miss."""
    if timeout is None:
        timeout = getattr(settings, "CACHE_TTL_BOOKING_SUMMARY", 120)
    key = cache_key(entity, entity_id, view)
    value = cache.get(key)
    if value is None:
        value = builder()
        cache.set(key, value, timeout=timeout)
    return value


def subscribe(entity: Entity, listener: Listener) -> None:
    """Register a callback run after an entity id is invalidated."""
    if listener not in _listeners[entity]:
        _listeners[entity].append(listener)


def unsubscribe(entity: Entity, listener: Listener) -> None:
    if listener in _listeners[entity]:
        _listeners[entity].remove(listener)


def invalidate(entity: Entity, entity_ids: Iterable[int | None]) -> None:
    unique_ids = {int(entity_id) for entity_id in entity_ids if entity_id}
    for entity_id in unique_ids:
        _bump_version(entity, entity_id)
        for listener in list(_listeners[entity]):
            try:
                listener(entity, entity_id)
            except Exception:
                logger.exception(
                    "cache: invalidation listener failed",
                    extra={"entity": entity.value, "entity_id": entity_id},
                )


def track_model(model, entity: Entity, id_getter: Callable[[Any], int | None]) -> None:
    """
    Invalidate ``entity`` whenever a ``model`` row is saved or deleted.

    ``id_getter`` maps the changed instance to the entity id it belongs to, e.g.
    ``lambda payment: payment.booking_id``. The bump runs after commit so readers
    in other transactions never re-cache stale rows.
    """

    def _handler(sender, instance, **kwargs):
        entity_id = id_getter(instance)
        transaction.on_commit(lambda: invalidate(entity, [entity_id]))

    uid = f"cache:{entity.value}:{model._meta.label_lower}"
    post_save.connect(_handler, sender=model, weak=False, dispatch_uid=f"{uid}:save")
    post_delete.connect(_handler, sender=model, weak=False, dispatch_uid=f"{uid}:delete")
