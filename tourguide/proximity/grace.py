"""Grace periods: time spans during which proximity firing is suppressed.

Three kinds of window are tracked independently:

- initialization: opened when a session starts, hides the first noisy fix
- movement: opened when consecutive samples jump further than the
  significant-movement threshold, lets the position settle
- resume: opened when the app comes back to the foreground

A decision may proceed only when no window covers the current instant.
Windows close on their own once their duration elapses.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from tourguide.models import Position
from tourguide.proximity.distance import distance_between

logger = logging.getLogger(__name__)


class GraceKind(StrEnum):
    INITIALIZATION = "initialization"
    MOVEMENT = "movement"
    RESUME = "resume"


@dataclass(frozen=True)
class GraceConfig:
    enabled: bool = True
    initialization_seconds: float = 15.0
    movement_seconds: float = 8.0
    resume_seconds: float = 5.0
    significant_movement_m: float = 150.0
    resume_min_background_seconds: float = 10.0

    def duration(self, kind: GraceKind) -> float:
        if kind is GraceKind.INITIALIZATION:
            return self.initialization_seconds
        if kind is GraceKind.MOVEMENT:
            return self.movement_seconds
        return self.resume_seconds


GRACE_PERIOD_PRESETS: dict[str, GraceConfig] = {
    "conservative": GraceConfig(
        initialization_seconds=20.0,
        movement_seconds=12.0,
        resume_seconds=8.0,
        significant_movement_m=200.0,
    ),
    "balanced": GraceConfig(
        initialization_seconds=15.0,
        movement_seconds=8.0,
        resume_seconds=5.0,
        significant_movement_m=150.0,
    ),
    "aggressive": GraceConfig(
        initialization_seconds=10.0,
        movement_seconds=5.0,
        resume_seconds=3.0,
        significant_movement_m=100.0,
    ),
}


def preset_name(config: GraceConfig) -> str:
    """Name of the preset ``config`` matches, or ``"custom"``."""
    for name, preset in GRACE_PERIOD_PRESETS.items():
        if (
            config.initialization_seconds == preset.initialization_seconds
            and config.movement_seconds == preset.movement_seconds
            and config.resume_seconds == preset.resume_seconds
            and config.significant_movement_m == preset.significant_movement_m
        ):
            return name
    return "custom"


@dataclass(frozen=True)
class GraceWindow:
    kind: GraceKind
    started_at: float
    duration_s: float

    def covers(self, now: float) -> bool:
        return self.started_at <= now < self.started_at + self.duration_s

    def remaining(self, now: float) -> float:
        return max(0.0, self.started_at + self.duration_s - now)


class GracePeriodController:
    def __init__(
        self,
        config: GraceConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config or GraceConfig()
        self._clock = clock
        self._windows: dict[GraceKind, GraceWindow] = {}
        self._last_position: Position | None = None
        self._backgrounded_at: float | None = None

    @property
    def config(self) -> GraceConfig:
        return self._config

    def now(self) -> float:
        return self._clock()

    def _open(self, kind: GraceKind, now: float) -> bool:
        if not self._config.enabled:
            return False
        current = self._windows.get(kind)
        if current is not None and current.covers(now):
            # An open window is not extended by a repeated trigger
            return False
        self._windows[kind] = GraceWindow(
            kind=kind, started_at=now, duration_s=self._config.duration(kind)
        )
        logger.debug("Grace window %s opened for %.1fs", kind, self._config.duration(kind))
        return True

    def start_initialization(self, now: float | None = None) -> bool:
        return self._open(GraceKind.INITIALIZATION, self._clock() if now is None else now)

    def observe_position(self, position: Position, now: float | None = None) -> bool:
        """Record a sample; opens the movement window on a significant jump.

        Returns True if the sample moved further than the significant-movement
        threshold from the previous one.
        """
        now = self._clock() if now is None else now
        previous = self._last_position
        self._last_position = position
        if previous is None:
            return False
        moved = distance_between(previous, position)
        if moved <= self._config.significant_movement_m:
            return False
        logger.info("Significant movement detected: %.0fm", moved)
        self._open(GraceKind.MOVEMENT, now)
        return True

    def notify_backgrounded(self, now: float | None = None) -> None:
        self._backgrounded_at = self._clock() if now is None else now

    def notify_resumed(self, now: float | None = None) -> bool:
        """App regained foreground. Opens the resume window if it was away long enough."""
        now = self._clock() if now is None else now
        backgrounded_at = self._backgrounded_at
        self._backgrounded_at = None
        if backgrounded_at is not None:
            away = now - backgrounded_at
            if away < self._config.resume_min_background_seconds:
                logger.debug("Resume after %.1fs in background, no grace window", away)
                return False
        return self._open(GraceKind.RESUME, now)

    def open_windows(self, now: float | None = None) -> list[GraceWindow]:
        now = self._clock() if now is None else now
        return [w for w in self._windows.values() if w.covers(now)]

    def is_open(self, kind: GraceKind, now: float | None = None) -> bool:
        window = self._windows.get(kind)
        return window is not None and window.covers(self._clock() if now is None else now)

    def is_suppressed(self, now: float | None = None) -> bool:
        now = self._clock() if now is None else now
        return (
            self.is_open(GraceKind.INITIALIZATION, now)
            or self.is_open(GraceKind.MOVEMENT, now)
            or self.is_open(GraceKind.RESUME, now)
        )

    def reset_all(self) -> None:
        self._windows.clear()
        self._last_position = None
        self._backgrounded_at = None
