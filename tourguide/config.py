from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    # Location source
    location_poll_interval_seconds: float = 20.0
    location_fix_timeout_seconds: float = 12.0
    location_max_accuracy_m: float = 200.0  # 0 disables the accuracy filter
    permission_cache_seconds: float = 10.0
    permission_max_retries: int = 3

    # Proximity
    contextual_radius_m: float = 150.0
    proximity_tiers: Annotated[list[tuple[str, float]], NoDecode] = [
        ("very_close", 50.0),
        ("close", 100.0),
        ("nearby", 250.0),
    ]
    location_change_epsilon_m: float = 50.0

    @field_validator("proximity_tiers", mode="before")
    @classmethod
    def parse_tiers(cls, v: object) -> object:
        # "very_close:50,close:100,nearby:250"
        if isinstance(v, str):
            tiers = []
            for part in v.split(","):
                part = part.strip()
                if not part:
                    continue
                name, _, meters = part.partition(":")
                tiers.append((name.strip(), float(meters)))
            return tiers
        return v

    @field_validator("proximity_tiers")
    @classmethod
    def check_tier_order(cls, v: list[tuple[str, float]]) -> list[tuple[str, float]]:
        if not v:
            raise ValueError("at least one proximity tier is required")
        limits = [meters for _, meters in v]
        if any(b <= a for a, b in zip(limits, limits[1:])):
            raise ValueError("proximity tiers must be listed closest-first with increasing distances")
        return v

    # Grace periods
    grace_enabled: bool = True
    grace_initialization_seconds: float = 15.0
    grace_movement_seconds: float = 8.0
    grace_resume_seconds: float = 5.0
    significant_movement_m: float = 150.0
    resume_min_background_seconds: float = 10.0

    # Mention ledger
    reapproach_ratio: float = 0.8  # must be at least 20% closer to re-announce

    # Periodic pitch
    periodic_pitch_interval_seconds: float = 50.0
    periodic_pitch_cooldown_seconds: float = 600.0
    periodic_pitch_candidates: int = 3
    periodic_pitch_quiet_seconds: float = 30.0

    # Places lookup
    google_places_api_key: str = ""
    places_max_results: int = 10
    places_included_types: Annotated[list[str], NoDecode] = [
        "tourist_attraction",
        "museum",
        "park",
        "art_gallery",
        "church",
        "library",
        "restaurant",
        "cafe",
    ]
    lookup_timeout_seconds: float = 8.0
    poi_catalog_path: str = ""  # optional JSON list of known POIs

    @field_validator("places_included_types", mode="before")
    @classmethod
    def parse_types(cls, v: object) -> object:
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    # Conversation channel
    conversation_channel_url: str = ""
    conversation_channel_token: str = ""
    channel_timeout_seconds: float = 5.0

    # Cache
    cache_capacity: int = 500
    cache_positive_ttl_seconds: float = 1800.0
    cache_negative_ttl_seconds: float = 300.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True
    log_file: str = "data/tourguide.log"

    model_config = {"env_file": ".env"}
