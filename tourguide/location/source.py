from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from tourguide.exceptions import LocationError
from tourguide.location.permissions import PermissionMonitor, PermissionState
from tourguide.models import Position

logger = logging.getLogger(__name__)


class FailureKind(StrEnum):
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class LocationFailure:
    kind: FailureKind
    message: str = ""


LocationResult = Position | LocationFailure
Subscriber = Callable[[LocationResult], None]


class LocationProvider(Protocol):
    async def get_current_position(self, timeout: float, high_accuracy: bool = True) -> Position:
        """Return a fix or raise a ``LocationError`` subclass."""
        ...

    async def query_permission(self) -> PermissionState | None:
        """Return the platform permission state, or None if it cannot be queried."""
        ...


class LocationSource:
    """Produces position samples for subscribers, by polling a provider or by push.

    Failures are delivered to subscribers as ``LocationFailure`` values and
    never raised; the polling loop keeps trying on its fixed cadence.
    """

    def __init__(
        self,
        provider: LocationProvider | None = None,
        permission_monitor: PermissionMonitor | None = None,
        poll_interval: float = 20.0,
        fix_timeout: float = 12.0,
        max_accuracy_m: float = 0.0,
    ):
        self._provider = provider
        self._permissions = permission_monitor
        self._poll_interval = poll_interval
        self._fix_timeout = fix_timeout
        self._max_accuracy_m = max_accuracy_m
        self._subscribers: list[Subscriber] = []
        self._task: asyncio.Task | None = None
        self._wake = asyncio.Event()
        self._last_position: Position | None = None
        self._running = False

    @property
    def last_position(self) -> Position | None:
        return self._last_position

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def permission_state(self) -> PermissionState:
        if self._permissions is None:
            return PermissionState.UNKNOWN
        return self._permissions.state

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def _emit(self, result: LocationResult) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(result)
            except Exception:
                logger.exception("Location subscriber failed")

    def _acceptable(self, position: Position) -> bool:
        if self._max_accuracy_m > 0 and position.accuracy_m > self._max_accuracy_m:
            logger.debug(
                "Discarding fix with accuracy %.0fm (max %.0fm)",
                position.accuracy_m,
                self._max_accuracy_m,
            )
            return False
        return True

    async def start(self) -> LocationFailure | None:
        """Begin emitting samples. Returns a failure if permission is already denied."""
        if self._running:
            return None
        if self._permissions is not None:
            state = await self._permissions.check()
            if state is PermissionState.DENIED:
                failure = LocationFailure(FailureKind.PERMISSION_DENIED, "location permission denied")
                self._emit(failure)
                return failure

        self._running = True
        if self._provider is not None:
            self._task = asyncio.create_task(self._poll_loop(), name="location-poll")
            logger.info("Location polling started (every %.0fs)", self._poll_interval)
        return None

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Location polling stopped")

    def request_refresh(self) -> None:
        """Wake the polling loop for an out-of-band fix."""
        self._wake.set()

    async def _poll_loop(self) -> None:
        while True:
            result = await self.get_current_position()
            if isinstance(result, LocationFailure) or self._acceptable(result):
                self._emit(result)
            self._wake.clear()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._poll_interval)
            except TimeoutError:
                pass

    async def get_current_position(self, timeout: float | None = None) -> LocationResult:
        timeout = self._fix_timeout if timeout is None else timeout
        if self._provider is None:
            if self._last_position is not None:
                return self._last_position
            return LocationFailure(FailureKind.UNAVAILABLE, "no location provider")

        try:
            position = await asyncio.wait_for(
                self._provider.get_current_position(timeout=timeout, high_accuracy=True),
                timeout=timeout,
            )
        except TimeoutError:
            logger.warning("No location fix within %.0fs", timeout)
            return LocationFailure(FailureKind.TIMEOUT, f"no fix within {timeout:.0f}s")
        except LocationError as e:
            return self._failure_from_code(e.code, str(e))
        except Exception as e:
            logger.exception("Location provider failed unexpectedly")
            return LocationFailure(FailureKind.UNAVAILABLE, str(e) or type(e).__name__)

        if self._acceptable(position):
            self._last_position = position
            if self._permissions is not None:
                self._permissions.record(PermissionState.GRANTED)
        return position

    def _failure_from_code(self, code: str, message: str = "") -> LocationFailure:
        try:
            kind = FailureKind(code)
        except ValueError:
            kind = FailureKind.UNAVAILABLE
        if kind is FailureKind.PERMISSION_DENIED and self._permissions is not None:
            self._permissions.record(PermissionState.DENIED)
        logger.warning("Location failure: %s %s", kind, message)
        return LocationFailure(kind, message)

    def push(self, position: Position) -> bool:
        """Deliver a sample reported by the client. Returns False if it was discarded."""
        if not self._acceptable(position):
            return False
        self._last_position = position
        if self._permissions is not None:
            self._permissions.record(PermissionState.GRANTED)
        self._emit(position)
        return True

    def report_failure(self, code: str, message: str = "") -> LocationFailure:
        failure = self._failure_from_code(code, message)
        self._emit(failure)
        return failure
