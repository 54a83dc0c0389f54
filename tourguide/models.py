from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_m: float = 0.0
    captured_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PointOfInterest(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str = "point_of_interest"
    latitude: float
    longitude: float
    summary: str | None = None
    rating: float | None = None


class PlaceDetails(BaseModel):
    name: str
    category: str = "point_of_interest"
    editorial_summary: str | None = None
    rating: float | None = None


# --- HTTP schemas ---


class LocationReport(BaseModel):
    """A pushed location sample, or a platform error in place of one."""

    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    accuracy_m: float = 0.0
    captured_at: datetime | None = None
    error: Literal["permission_denied", "timeout", "unavailable"] | None = None


class VisibilityReport(BaseModel):
    visible: bool


class GraceWindowOut(BaseModel):
    kind: str
    remaining_seconds: float


class SessionSnapshot(BaseModel):
    conversation_id: str
    active: bool
    mentioned_pois: list[str]
    tracked_distances: dict[str, float]
    open_grace_windows: list[GraceWindowOut]
    last_position: Position | None = None
    permission_state: str = "unknown"


class NotificationOut(BaseModel):
    kind: str
    tier: str | None = None
    poi_id: str | None = None
    poi_name: str | None = None
    distance_m: float | None = None


class CacheCheck(BaseModel):
    size: int
    hits: int
    misses: int
    evictions: int
    hit_rate: float


class HealthResponse(BaseModel):
    status: str
    active_sessions: int
    grace_preset: str
    cache: CacheCheck
