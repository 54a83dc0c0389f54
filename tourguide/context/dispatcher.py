"""Contextual update dispatcher.

Turns location samples into short context messages for the live
conversation. Two triggers feed it:

- location change: a sample further than ``location_change_epsilon_m`` from
  the last processed one runs a full cycle (places lookup, tier evaluation,
  mention ledger, dispatch) unless a grace window is open
- periodic pitch: an interval job that, when the conversation has been quiet,
  surfaces one of the closest POIs not mentioned or pitched within the cooldown

Every session's work runs on its own worker in arrival order, so a slow
lookup never reorders samples and sessions never share state.
"""
from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from apscheduler.triggers.interval import IntervalTrigger

from tourguide.cache.ttl_lru import MISSING, TTLCache
from tourguide.context.ledger import MentionLedger, SessionState
from tourguide.context.messages import location_update_text, periodic_pitch_text
from tourguide.context.session import TourSession, WorkKind
from tourguide.exceptions import ChannelUnavailable, LookupFailure
from tourguide.location.permissions import PERMISSION_CHECK_TIMEOUT, PermissionMonitor
from tourguide.location.source import LocationFailure, LocationProvider, LocationResult, LocationSource
from tourguide.models import PlaceDetails, PointOfInterest, Position
from tourguide.places.client import DETAIL_FIELDS
from tourguide.proximity.distance import ProximityReading, classify, distance_between
from tourguide.proximity.events import NotificationBus, ProximityNotification
from tourguide.proximity.grace import GraceConfig, GracePeriodController
from tourguide.proximity.tiers import Tier, TierEvaluator, tiers_from_config

if TYPE_CHECKING:
    from apscheduler.schedulers.base import BaseScheduler

    from tourguide.config import Settings
    from tourguide.conversation.channel import ConversationChannel
    from tourguide.places.client import PlacesLookup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatcherConfig:
    contextual_radius_m: float = 150.0
    tiers: tuple[Tier, ...] = (
        Tier("very_close", 50.0),
        Tier("close", 100.0),
        Tier("nearby", 250.0),
    )
    location_change_epsilon_m: float = 50.0
    reapproach_ratio: float = 0.8
    grace: GraceConfig = GraceConfig()
    pitch_interval_s: float = 50.0
    pitch_cooldown_s: float = 600.0
    pitch_candidates: int = 3
    pitch_quiet_s: float = 30.0
    places_included_types: tuple[str, ...] = ()
    places_max_results: int = 10
    lookup_timeout_s: float = 8.0
    channel_timeout_s: float = 5.0
    poll_interval_s: float = 20.0
    fix_timeout_s: float = 12.0
    max_accuracy_m: float = 0.0
    permission_cache_s: float = 10.0
    permission_max_retries: int = 3

    @property
    def lookup_radius_m(self) -> float:
        return max(self.contextual_radius_m, self.tiers[-1].max_distance_m)

    @classmethod
    def from_settings(cls, settings: Settings) -> DispatcherConfig:
        return cls(
            contextual_radius_m=settings.contextual_radius_m,
            tiers=tuple(tiers_from_config(settings.proximity_tiers)),
            location_change_epsilon_m=settings.location_change_epsilon_m,
            reapproach_ratio=settings.reapproach_ratio,
            grace=GraceConfig(
                enabled=settings.grace_enabled,
                initialization_seconds=settings.grace_initialization_seconds,
                movement_seconds=settings.grace_movement_seconds,
                resume_seconds=settings.grace_resume_seconds,
                significant_movement_m=settings.significant_movement_m,
                resume_min_background_seconds=settings.resume_min_background_seconds,
            ),
            pitch_interval_s=settings.periodic_pitch_interval_seconds,
            pitch_cooldown_s=settings.periodic_pitch_cooldown_seconds,
            pitch_candidates=settings.periodic_pitch_candidates,
            pitch_quiet_s=settings.periodic_pitch_quiet_seconds,
            places_included_types=tuple(settings.places_included_types),
            places_max_results=settings.places_max_results,
            lookup_timeout_s=settings.lookup_timeout_seconds,
            channel_timeout_s=settings.channel_timeout_seconds,
            poll_interval_s=settings.location_poll_interval_seconds,
            fix_timeout_s=settings.location_fix_timeout_seconds,
            max_accuracy_m=settings.location_max_accuracy_m,
            permission_cache_s=settings.permission_cache_seconds,
            permission_max_retries=settings.permission_max_retries,
        )


class ContextualUpdateDispatcher:
    def __init__(
        self,
        config: DispatcherConfig,
        places: PlacesLookup,
        channel: ConversationChannel,
        cache: TTLCache,
        bus: NotificationBus,
        scheduler: BaseScheduler | None = None,
        catalog: Iterable[PointOfInterest] = (),
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        self._config = config
        self._places = places
        self._channel = channel
        self._cache = cache
        self._bus = bus
        self._scheduler = scheduler
        self._catalog = list(catalog)
        self._clock = clock
        self._rng = rng or random.Random()
        self._sessions: dict[str, TourSession] = {}

    @property
    def config(self) -> DispatcherConfig:
        return self._config

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def get(self, conversation_id: str) -> TourSession | None:
        return self._sessions.get(conversation_id)

    # --- Session lifecycle ---

    async def start(
        self, conversation_id: str, provider: LocationProvider | None = None
    ) -> TourSession:
        """Create a fresh session, discarding any previous one with the same id."""
        previous = self._sessions.pop(conversation_id, None)
        if previous is not None:
            logger.info("Restarting session %s, previous state discarded", conversation_id)
            await self._discard(previous)
        self._bus.forget(conversation_id)

        cfg = self._config
        permissions = None
        if provider is not None:
            permissions = PermissionMonitor(
                provider,
                TTLCache(
                    capacity=1,
                    positive_ttl=cfg.permission_cache_s,
                    negative_ttl=cfg.permission_cache_s,
                    clock=self._clock,
                    name=f"permission:{conversation_id}",
                ),
                max_retries=cfg.permission_max_retries,
                check_timeout=min(PERMISSION_CHECK_TIMEOUT, cfg.fix_timeout_s),
            )
        location = LocationSource(
            provider=provider,
            permission_monitor=permissions,
            poll_interval=cfg.poll_interval_s,
            fix_timeout=cfg.fix_timeout_s,
            max_accuracy_m=cfg.max_accuracy_m,
        )

        pitch_job_id = f"pitch_{conversation_id}"
        session = TourSession(
            conversation_id=conversation_id,
            ledger=MentionLedger(
                SessionState(conversation_id=conversation_id),
                contextual_radius_m=cfg.contextual_radius_m,
                reapproach_ratio=cfg.reapproach_ratio,
            ),
            grace=GracePeriodController(cfg.grace, clock=self._clock),
            tiers=TierEvaluator(cfg.tiers),
            location=location,
            handler=self._handle,
            scheduler=self._scheduler,
            pitch_job_id=pitch_job_id,
        )
        session.attach(location.subscribe(lambda result: self._on_location(session, result)))
        session.grace.start_initialization(self._clock())
        self._sessions[conversation_id] = session

        if self._scheduler is not None:
            self._scheduler.add_job(
                self._pitch_tick,
                IntervalTrigger(seconds=cfg.pitch_interval_s),
                args=[conversation_id],
                id=pitch_job_id,
                name=f"periodic pitch {conversation_id}",
                replace_existing=True,
            )

        failure = await session.start()
        if failure is not None:
            session.last_failure = failure
        logger.info("Session %s started", conversation_id)
        return session

    async def stop(self, conversation_id: str) -> bool:
        session = self._sessions.pop(conversation_id, None)
        if session is None:
            return False
        await self._discard(session)
        self._bus.forget(conversation_id)
        return True

    async def _discard(self, session: TourSession) -> None:
        await session.cancel()
        state = session.state
        state.mentioned_pois.clear()
        state.last_distance_by_poi.clear()
        state.mentioned_at.clear()
        state.last_periodic_pitch_at.clear()
        state.last_overall_update_at = None

    async def shutdown(self) -> None:
        for conversation_id in list(self._sessions):
            await self.stop(conversation_id)

    # --- Inputs ---

    def _on_location(self, session: TourSession, result: LocationResult) -> None:
        if isinstance(result, LocationFailure):
            session.last_failure = result
            return
        session.last_failure = None
        session.submit(WorkKind.POSITION, result)

    def push_position(self, conversation_id: str, position: Position) -> bool:
        session = self._sessions.get(conversation_id)
        if session is None:
            return False
        return session.location.push(position)

    def set_visibility(self, conversation_id: str, visible: bool) -> bool:
        session = self._sessions.get(conversation_id)
        if session is None:
            return False
        now = self._clock()
        if visible:
            session.grace.notify_resumed(now)
        else:
            session.grace.notify_backgrounded(now)
        return True

    def refresh(self, conversation_id: str) -> bool:
        session = self._sessions.get(conversation_id)
        if session is None:
            return False
        return session.submit(WorkKind.REFRESH)

    async def _pitch_tick(self, conversation_id: str) -> None:
        session = self._sessions.get(conversation_id)
        if session is not None:
            session.submit(WorkKind.PITCH)

    async def _handle(self, session: TourSession, kind: WorkKind, position: Position | None) -> object:
        if kind is WorkKind.POSITION and position is not None:
            return await self.process_position(session.conversation_id, position)
        if kind is WorkKind.PITCH:
            return await self.run_periodic_pitch(session.conversation_id)
        if kind is WorkKind.REFRESH:
            return await self.process_refresh(session.conversation_id)
        return None

    # --- Location-change trigger ---

    async def process_position(self, conversation_id: str, position: Position) -> list[PointOfInterest]:
        """Run one location-triggered cycle. Returns the POIs that were dispatched."""
        session = self._sessions.get(conversation_id)
        if session is None or not session.state.active:
            return []

        now = self._clock()
        session.last_position = position
        if session.grace.observe_position(position, now):
            session.location.request_refresh()

        if session.grace.is_suppressed(now):
            logger.debug(
                "Session %s in grace period (%s), skipping",
                conversation_id,
                ", ".join(w.kind for w in session.grace.open_windows(now)),
            )
            return []

        previous = session.last_processed
        if previous is not None:
            moved = distance_between(previous, position)
            if moved <= self._config.location_change_epsilon_m:
                logger.debug("Moved %.0fm since last cycle, checking re-approach only", moved)
                return await self._check_reapproach(session, position, now)

        session.last_processed = position
        return await self._run_cycle(session, position, now)

    async def process_refresh(self, conversation_id: str) -> list[PointOfInterest]:
        """Re-run the cycle at the last known position, ignoring the epsilon check."""
        session = self._sessions.get(conversation_id)
        if session is None or session.last_position is None:
            return []
        now = self._clock()
        if session.grace.is_suppressed(now):
            return []
        session.last_processed = session.last_position
        return await self._run_cycle(session, session.last_position, now)

    async def _run_cycle(self, session: TourSession, position: Position, now: float) -> list[PointOfInterest]:
        cfg = self._config
        pois = await self._nearby(position)
        session.last_nearby = pois
        readings = classify(position, pois, cfg.lookup_radius_m, computed_at=now)

        outer_tier = cfg.tiers[-1].max_distance_m
        event = session.tiers.evaluate([r for r in readings if r.distance_m <= outer_tier])
        if event is not None:
            self._bus.publish(ProximityNotification(session.conversation_id, event))

        in_range = [r for r in readings if r.distance_m <= cfg.contextual_radius_m]
        ledger = session.ledger
        ledger.prune(r.poi.id for r in in_range)

        eligible: list[ProximityReading] = []
        for reading in in_range:
            ledger.observe(reading.poi.id, reading.distance_m)
            if ledger.should_announce(reading.poi.id, reading.distance_m):
                eligible.append(reading)
        return await self._dispatch(session, eligible, now)

    async def _check_reapproach(
        self, session: TourSession, position: Position, now: float
    ) -> list[PointOfInterest]:
        """Small move: re-check already mentioned POIs against the last lookup result.

        No lookup, tier evaluation or pruning happens here, and the sample does
        not become the new reference for the movement gate.
        """
        readings = classify(position, session.last_nearby, self._config.contextual_radius_m, computed_at=now)
        state = session.state
        eligible = [
            r
            for r in readings
            if r.poi.id in state.mentioned_pois and session.ledger.should_announce(r.poi.id, r.distance_m)
        ]
        return await self._dispatch(session, eligible, now)

    async def _dispatch(
        self, session: TourSession, eligible: list[ProximityReading], now: float
    ) -> list[PointOfInterest]:
        ledger = session.ledger
        dispatched = []
        for reading in eligible:
            if session.cancelled.is_set():
                break
            details = await self._enrich(reading.poi)
            text = location_update_text(reading.poi, details, reading.distance_m)
            if await self._send(session, text):
                ledger.record_dispatch(reading.poi.id, reading.distance_m, now)
                dispatched.append(reading.poi)
                logger.info(
                    "Announced %s (%.0fm) to %s",
                    reading.poi.name,
                    reading.distance_m,
                    session.conversation_id,
                )
        return dispatched

    # --- Periodic pitch ---

    async def run_periodic_pitch(self, conversation_id: str) -> PointOfInterest | None:
        session = self._sessions.get(conversation_id)
        if session is None or not session.state.active:
            return None
        position = session.last_position
        if position is None:
            return None

        cfg = self._config
        now = self._clock()
        if session.grace.is_suppressed(now):
            return None
        last_update = session.state.last_overall_update_at
        if last_update is not None and now - last_update < cfg.pitch_quiet_s:
            logger.debug("Recent update for %s, skipping periodic pitch", conversation_id)
            return None

        pois = await self._nearby(position)
        readings = classify(position, pois, cfg.lookup_radius_m, computed_at=now)
        candidates = [
            r for r in readings if session.ledger.pitch_eligible(r.poi.id, now, cfg.pitch_cooldown_s)
        ][: cfg.pitch_candidates]
        if not candidates:
            return None

        choice = self._rng.choice(candidates)
        details = await self._enrich(choice.poi)
        text = periodic_pitch_text(choice.poi, details, choice.distance_m)
        if not await self._send(session, text):
            return None
        session.ledger.record_pitch(choice.poi.id, choice.distance_m, now)
        logger.info("Pitched %s to %s", choice.poi.name, conversation_id)
        return choice.poi

    # --- External calls ---

    async def _nearby(self, position: Position) -> list[PointOfInterest]:
        cfg = self._config
        key = ("nearby", round(position.latitude, 4), round(position.longitude, 4), cfg.lookup_radius_m)
        found = self._cache.get(key)
        if found is MISSING:
            try:
                found = await asyncio.wait_for(
                    self._places.nearby(
                        position.latitude,
                        position.longitude,
                        cfg.lookup_radius_m,
                        included_types=list(cfg.places_included_types) or None,
                        max_results=cfg.places_max_results,
                    ),
                    timeout=cfg.lookup_timeout_s,
                )
                self._cache.set(key, found, is_positive=True)
            except (LookupFailure, TimeoutError) as e:
                logger.warning("Nearby lookup failed, no POIs this cycle: %s", str(e) or "timeout")
                found = []
                self._cache.set(key, found, is_positive=False)

        merged = {poi.id: poi for poi in self._catalog}
        merged.update({poi.id: poi for poi in found})
        return list(merged.values())

    async def _enrich(self, poi: PointOfInterest) -> PlaceDetails | None:
        key = ("details", poi.id)
        details = self._cache.get(key)
        if details is not MISSING:
            return details
        try:
            details = await asyncio.wait_for(
                self._places.details(poi.id, DETAIL_FIELDS),
                timeout=self._config.lookup_timeout_s,
            )
        except (LookupFailure, TimeoutError) as e:
            logger.warning("Enrichment failed for %s, using local summary: %s", poi.id, str(e) or "timeout")
            self._cache.set(key, None, is_positive=False)
            return None
        self._cache.set(key, details, is_positive=True)
        return details

    async def _send(self, session: TourSession, text: str) -> bool:
        try:
            await asyncio.wait_for(
                self._channel.send_contextual_update(session.conversation_id, text),
                timeout=self._config.channel_timeout_s,
            )
        except ChannelUnavailable as e:
            logger.warning("Dropping contextual update: %s", e)
            return False
        except TimeoutError:
            logger.warning("Dropping contextual update for %s: channel timed out", session.conversation_id)
            return False
        return True
