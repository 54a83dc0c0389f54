from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from tourguide.cache.ttl_lru import MISSING, TTLCache
from tourguide.exceptions import LocationError, LocationPermissionDenied

if TYPE_CHECKING:
    from tourguide.location.source import LocationProvider

logger = logging.getLogger(__name__)

PERMISSION_CACHE_KEY = "geolocation"
PERMISSION_CHECK_TIMEOUT = 8.0


class PermissionState(StrEnum):
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"
    UNKNOWN = "unknown"


class PermissionMonitor:
    """Tracks location permission with a short cache in front of the platform.

    When the platform cannot answer a permission query directly, a
    low-accuracy fix is requested and its error code decides the state.
    Ambiguous failures (timeout, unavailable) count as retries and settle on
    ``unknown`` once ``max_retries`` is reached, instead of prompting forever.
    """

    def __init__(
        self,
        provider: LocationProvider,
        cache: TTLCache[PermissionState],
        max_retries: int = 3,
        check_timeout: float = PERMISSION_CHECK_TIMEOUT,
    ):
        self._provider = provider
        self._cache = cache
        self._max_retries = max_retries
        self._check_timeout = check_timeout
        self._retries = 0
        self.state = PermissionState.UNKNOWN

    @property
    def retries(self) -> int:
        return self._retries

    def record(self, state: PermissionState) -> None:
        definitive = state in (PermissionState.GRANTED, PermissionState.DENIED)
        if definitive:
            self._retries = 0
        self._cache.set(PERMISSION_CACHE_KEY, state, is_positive=definitive)
        self.state = state

    def invalidate(self) -> None:
        self._cache.clear()

    async def check(self) -> PermissionState:
        cached = self._cache.get(PERMISSION_CACHE_KEY)
        if cached is not MISSING:
            logger.debug("Using cached permission state: %s", cached)
            return cached

        queried = await self._provider.query_permission()
        if queried is not None:
            self.record(queried)
            return queried

        logger.debug("Permission query unavailable, falling back to a low-accuracy fix")
        try:
            await asyncio.wait_for(
                self._provider.get_current_position(
                    timeout=self._check_timeout, high_accuracy=False
                ),
                timeout=self._check_timeout,
            )
        except LocationPermissionDenied:
            self.record(PermissionState.DENIED)
            return PermissionState.DENIED
        except (LocationError, TimeoutError) as e:
            code = e.code if isinstance(e, LocationError) else "timeout"
            self._retries += 1
            state = (
                PermissionState.UNKNOWN
                if self._retries >= self._max_retries
                else PermissionState.PROMPT
            )
            logger.info(
                "Permission check inconclusive (%s), %s after %d retries",
                code,
                state,
                self._retries,
            )
            self.record(state)
            return state

        self.record(PermissionState.GRANTED)
        return PermissionState.GRANTED
