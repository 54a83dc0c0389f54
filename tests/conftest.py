import asyncio
import math
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tourguide.api.router import router as sessions_router
from tourguide.cache.ttl_lru import TTLCache
from tourguide.config import Settings
from tourguide.context.dispatcher import ContextualUpdateDispatcher, DispatcherConfig
from tourguide.exceptions import ChannelUnavailable, LookupFailure
from tourguide.health.router import router as health_router
from tourguide.models import PlaceDetails, PointOfInterest, Position
from tourguide.proximity.events import NotificationBus

TEST_SETTINGS = Settings(
    google_places_api_key="test_key",
    conversation_channel_url="http://channel.test",
    log_json=False,
)

METERS_PER_DEGREE = 6_371_000.0 * math.pi / 180


def offset(lat: float, lon: float, north_m: float, east_m: float) -> tuple[float, float]:
    """Shift a coordinate by a small number of meters."""
    dlat = north_m / METERS_PER_DEGREE
    dlon = east_m / (METERS_PER_DEGREE * math.cos(math.radians(lat)))
    return lat + dlat, lon + dlon


def position_near(poi: PointOfInterest, distance_m: float, bearing_deg: float = 0.0) -> Position:
    """A position ``distance_m`` from ``poi`` in direction ``bearing_deg`` (0 = north)."""
    theta = math.radians(bearing_deg)
    lat, lon = offset(
        poi.latitude, poi.longitude, distance_m * math.cos(theta), distance_m * math.sin(theta)
    )
    return Position(latitude=lat, longitude=lon, accuracy_m=10.0)


def make_poi(poi_id: str, lat: float = 48.8584, lon: float = 2.2945, **kwargs) -> PointOfInterest:
    kwargs.setdefault("name", f"Place {poi_id}")
    kwargs.setdefault("category", "tourist_attraction")
    return PointOfInterest(id=poi_id, latitude=lat, longitude=lon, **kwargs)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePlaces:
    def __init__(self, pois: list[PointOfInterest] | None = None):
        self.pois = list(pois or [])
        self.details_by_id: dict[str, PlaceDetails] = {}
        self.fail_nearby = False
        self.fail_details = False
        self.nearby_calls = 0
        self.details_calls: list[str] = []

    async def nearby(self, latitude, longitude, radius_m, included_types=None, max_results=10):
        self.nearby_calls += 1
        if self.fail_nearby:
            raise LookupFailure("places down")
        return list(self.pois)

    async def details(self, poi_id, fields=None):
        self.details_calls.append(poi_id)
        if self.fail_details:
            raise LookupFailure("details down")
        if poi_id in self.details_by_id:
            return self.details_by_id[poi_id]
        return PlaceDetails(name=f"Place {poi_id}", category="museum", editorial_summary=f"Fact about {poi_id}.")


class RecordingChannel:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send_contextual_update(self, session_id: str, text: str) -> None:
        if self.fail:
            raise ChannelUnavailable(session_id, "offline")
        self.sent.append((session_id, text))


class FakeProvider:
    """Platform location provider returning queued results (Position or exception)."""

    def __init__(self, results=None, permission=None, delay: float = 0.0):
        self.results = list(results or [])
        self.permission = permission
        self.delay = delay
        self.calls = 0

    async def get_current_position(self, timeout, high_accuracy=True):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def query_permission(self):
        return self.permission


@pytest.fixture
def settings() -> Settings:
    return TEST_SETTINGS


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def places() -> FakePlaces:
    return FakePlaces()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def scheduler() -> MagicMock:
    return MagicMock()


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def lookup_cache(clock) -> TTLCache:
    return TTLCache(capacity=50, positive_ttl=1800, negative_ttl=300, clock=clock)


@pytest.fixture
async def dispatcher(places, channel, lookup_cache, bus, scheduler, clock):
    d = ContextualUpdateDispatcher(
        config=DispatcherConfig(),
        places=places,
        channel=channel,
        cache=lookup_cache,
        bus=bus,
        scheduler=scheduler,
        clock=clock,
    )
    yield d
    await d.shutdown()


# --- Sync fixture for TestClient-based tests ---


@pytest.fixture
def client(settings, places, channel, lookup_cache, bus, scheduler, clock):
    app = FastAPI()
    app.include_router(health_router)
    app.include_router(sessions_router)

    app.state.settings = settings
    app.state.lookup_cache = lookup_cache
    app.state.notification_bus = bus
    app.state.dispatcher = ContextualUpdateDispatcher(
        config=DispatcherConfig.from_settings(settings),
        places=places,
        channel=channel,
        cache=lookup_cache,
        bus=bus,
        scheduler=scheduler,
        clock=clock,
    )

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
        test_client.portal.call(app.state.dispatcher.shutdown)
