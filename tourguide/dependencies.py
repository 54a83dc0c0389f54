from __future__ import annotations

from fastapi import Request

from tourguide.cache.ttl_lru import TTLCache
from tourguide.context.dispatcher import ContextualUpdateDispatcher
from tourguide.proximity.events import NotificationBus


def get_dispatcher(request: Request) -> ContextualUpdateDispatcher:
    return request.app.state.dispatcher


def get_notification_bus(request: Request) -> NotificationBus:
    return request.app.state.notification_bus


def get_lookup_cache(request: Request) -> TTLCache:
    return request.app.state.lookup_cache
