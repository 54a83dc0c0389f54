from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    conversation_id: str
    mentioned_pois: set[str] = field(default_factory=set)
    last_distance_by_poi: dict[str, float] = field(default_factory=dict)
    mentioned_at: dict[str, float] = field(default_factory=dict)
    last_periodic_pitch_at: dict[str, float] = field(default_factory=dict)
    last_overall_update_at: float | None = None
    active: bool = True


class MentionLedger:
    """Decides whether a POI is worth announcing in this conversation.

    A POI qualifies on first encounter within the contextual radius, or when
    it was already mentioned but the user is now markedly closer than the
    distance it was last announced (or first seen again) at.
    """

    def __init__(self, state: SessionState, contextual_radius_m: float, reapproach_ratio: float = 0.8):
        self._state = state
        self._radius = contextual_radius_m
        self._ratio = reapproach_ratio

    @property
    def state(self) -> SessionState:
        return self._state

    def observe(self, poi_id: str, distance_m: float) -> None:
        """Seed the baseline for a mentioned POI seen in range again after pruning."""
        if distance_m > self._radius:
            return
        if poi_id in self._state.mentioned_pois and poi_id not in self._state.last_distance_by_poi:
            self._state.last_distance_by_poi[poi_id] = distance_m

    def should_announce(self, poi_id: str, distance_m: float) -> bool:
        if distance_m > self._radius:
            return False
        if poi_id not in self._state.mentioned_pois:
            return True
        last = self._state.last_distance_by_poi.get(poi_id)
        if last is None:
            return False
        return distance_m < last * self._ratio

    def record_dispatch(self, poi_id: str, distance_m: float, now: float) -> None:
        self._state.mentioned_pois.add(poi_id)
        self._state.last_distance_by_poi[poi_id] = distance_m
        self._state.mentioned_at[poi_id] = now
        self._state.last_overall_update_at = now

    def prune(self, nearby_ids: Iterable[str]) -> None:
        """Drop distance tracking for POIs no longer nearby. Mention flags are kept."""
        keep = set(nearby_ids)
        stale = [pid for pid in self._state.last_distance_by_poi if pid not in keep]
        for pid in stale:
            del self._state.last_distance_by_poi[pid]
        if stale:
            logger.debug("Pruned distance tracking for %d POIs", len(stale))

    def pitch_eligible(self, poi_id: str, now: float, cooldown_s: float) -> bool:
        """A POI can be pitched if neither mentioned nor pitched within the cooldown."""
        last_activity = max(
            self._state.mentioned_at.get(poi_id, float("-inf")),
            self._state.last_periodic_pitch_at.get(poi_id, float("-inf")),
        )
        return now - last_activity >= cooldown_s

    def record_pitch(self, poi_id: str, distance_m: float, now: float) -> None:
        self._state.last_periodic_pitch_at[poi_id] = now
        self._state.mentioned_pois.add(poi_id)
        if distance_m <= self._radius:
            self._state.last_distance_by_poi[poi_id] = distance_m
        self._state.last_overall_update_at = now
