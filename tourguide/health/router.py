from fastapi import APIRouter, Request

from tourguide.dependencies import get_dispatcher, get_lookup_cache
from tourguide.models import CacheCheck, HealthResponse
from tourguide.proximity.grace import preset_name

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    cache = get_lookup_cache(request)
    dispatcher = get_dispatcher(request)
    cache.cleanup_expired()
    return HealthResponse(
        status="ok",
        active_sessions=dispatcher.active_sessions,
        grace_preset=preset_name(dispatcher.config.grace),
        cache=CacheCheck(
            size=len(cache),
            hits=cache.stats.hits,
            misses=cache.stats.misses,
            evictions=cache.stats.evictions,
            hit_rate=round(cache.stats.hit_rate, 4),
        ),
    )
