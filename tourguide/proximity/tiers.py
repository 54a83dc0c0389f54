from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from tourguide.proximity.distance import ProximityReading

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tier:
    name: str
    max_distance_m: float


class TierEventKind(StrEnum):
    ENTERED = "entered"
    CLEARED = "cleared"


@dataclass(frozen=True)
class TierEvent:
    kind: TierEventKind
    tier: Tier | None = None
    reading: ProximityReading | None = None


def tiers_from_config(pairs: Sequence[tuple[str, float]]) -> list[Tier]:
    return [Tier(name=name, max_distance_m=float(meters)) for name, meters in pairs]


class TierEvaluator:
    """Fires at most one tier event each time the closest POI changes.

    Tiers are ordered closest-first; the first tier whose boundary contains
    the closest POI wins. While the closest POI stays the same nothing fires.
    A closest POI outside every tier is not claimed, so it fires once it
    crosses into the outermost tier.
    """

    def __init__(self, tiers: Sequence[Tier]):
        if not tiers:
            raise ValueError("at least one tier is required")
        self._tiers = list(tiers)
        self.previous_closest_id: str | None = None

    @property
    def tiers(self) -> list[Tier]:
        return list(self._tiers)

    def tier_for(self, distance_m: float) -> Tier | None:
        for tier in self._tiers:
            if distance_m <= tier.max_distance_m:
                return tier
        return None

    def evaluate(self, readings: Sequence[ProximityReading]) -> TierEvent | None:
        if not readings:
            if self.previous_closest_id is None:
                return None
            logger.debug("Closest POI %s cleared", self.previous_closest_id)
            self.previous_closest_id = None
            return TierEvent(kind=TierEventKind.CLEARED)

        closest = readings[0]
        if closest.poi.id == self.previous_closest_id:
            return None

        tier = self.tier_for(closest.distance_m)
        if tier is None:
            if self.previous_closest_id is not None:
                self.previous_closest_id = None
                return TierEvent(kind=TierEventKind.CLEARED)
            return None

        self.previous_closest_id = closest.poi.id
        logger.debug(
            "Tier %s entered for %s (%.0fm)", tier.name, closest.poi.id, closest.distance_m
        )
        return TierEvent(kind=TierEventKind.ENTERED, tier=tier, reading=closest)

    def reset(self) -> None:
        self.previous_closest_id = None
