import logging
from contextlib import asynccontextmanager

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from tourguide.api.router import router as sessions_router
from tourguide.cache.ttl_lru import TTLCache
from tourguide.config import Settings
from tourguide.context.dispatcher import ContextualUpdateDispatcher, DispatcherConfig
from tourguide.conversation.channel import HttpConversationChannel
from tourguide.health.router import router as health_router
from tourguide.logging_config import configure_logging
from tourguide.places.catalog import load_catalog
from tourguide.places.client import GooglePlacesClient
from tourguide.proximity.events import NotificationBus

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()

    configure_logging(level=settings.log_level, json_format=settings.log_json, log_file=settings.log_file)

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.lookup_timeout_seconds, connect=5.0))

    lookup_cache = TTLCache(
        capacity=settings.cache_capacity,
        positive_ttl=settings.cache_positive_ttl_seconds,
        negative_ttl=settings.cache_negative_ttl_seconds,
        name="lookups",
    )
    notification_bus = NotificationBus()

    async def _cleanup_cache() -> None:
        lookup_cache.cleanup_expired()

    scheduler = AsyncIOScheduler()
    scheduler.start()
    scheduler.add_job(_cleanup_cache, "interval", minutes=5, id="cache_cleanup")

    dispatcher = ContextualUpdateDispatcher(
        config=DispatcherConfig.from_settings(settings),
        places=GooglePlacesClient(http_client=http_client, api_key=settings.google_places_api_key),
        channel=HttpConversationChannel(
            http_client=http_client,
            base_url=settings.conversation_channel_url,
            access_token=settings.conversation_channel_token,
            timeout=settings.channel_timeout_seconds,
        ),
        cache=lookup_cache,
        bus=notification_bus,
        scheduler=scheduler,
        catalog=load_catalog(settings.poi_catalog_path),
    )

    app.state.settings = settings
    app.state.http_client = http_client
    app.state.lookup_cache = lookup_cache
    app.state.notification_bus = notification_bus
    app.state.scheduler = scheduler
    app.state.dispatcher = dispatcher
    logger.info("Proximity engine ready")

    yield

    await dispatcher.shutdown()
    scheduler.shutdown()
    await http_client.aclose()


app = FastAPI(title="Tour Guide Proximity Engine", lifespan=lifespan)
app.include_router(health_router)
app.include_router(sessions_router)
