from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING

from tourguide.context.ledger import MentionLedger, SessionState
from tourguide.location.source import LocationFailure, LocationSource
from tourguide.models import PointOfInterest, Position
from tourguide.proximity.grace import GracePeriodController
from tourguide.proximity.tiers import TierEvaluator

if TYPE_CHECKING:
    from apscheduler.schedulers.base import BaseScheduler

logger = logging.getLogger(__name__)


class WorkKind(StrEnum):
    POSITION = "position"
    PITCH = "pitch"
    REFRESH = "refresh"


WorkHandler = Callable[["TourSession", WorkKind, Position | None], Awaitable[object]]


class TourSession:
    """Everything one conversation owns: state, gates, location feed and timers.

    All mutation happens on the session's single worker task, which consumes
    work items in arrival order. ``cancel()`` is the one cancellation point:
    it stops the worker, the location feed and the periodic job together.
    """

    def __init__(
        self,
        conversation_id: str,
        ledger: MentionLedger,
        grace: GracePeriodController,
        tiers: TierEvaluator,
        location: LocationSource,
        handler: WorkHandler,
        scheduler: BaseScheduler | None = None,
        pitch_job_id: str | None = None,
    ):
        self.conversation_id = conversation_id
        self.ledger = ledger
        self.grace = grace
        self.tiers = tiers
        self.location = location
        self.last_position: Position | None = None
        self.last_processed: Position | None = None
        self.last_failure: LocationFailure | None = None
        self.last_nearby: list[PointOfInterest] = []
        self.cancelled = asyncio.Event()
        self._handler = handler
        self._scheduler = scheduler
        self._pitch_job_id = pitch_job_id
        self._queue: asyncio.Queue[tuple[WorkKind, Position | None]] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def state(self) -> SessionState:
        return self.ledger.state

    def attach(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe

    async def start(self) -> LocationFailure | None:
        self._worker = asyncio.create_task(self._run(), name=f"session-{self.conversation_id}")
        return await self.location.start()

    def submit(self, kind: WorkKind, position: Position | None = None) -> bool:
        if self.cancelled.is_set():
            return False
        self._queue.put_nowait((kind, position))
        return True

    async def drain(self) -> None:
        """Wait until every submitted work item has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            kind, position = await self._queue.get()
            try:
                await self._handler(self, kind, position)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Session %s failed handling %s", self.conversation_id, kind)
            finally:
                self._queue.task_done()

    async def cancel(self) -> None:
        if self.cancelled.is_set():
            return
        self.cancelled.set()
        self.state.active = False

        if self._scheduler is not None and self._pitch_job_id is not None:
            try:
                self._scheduler.remove_job(self._pitch_job_id)
            except LookupError:
                # JobLookupError: job already gone
                pass
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        await self.location.stop()
        self.grace.reset_all()
        self.tiers.reset()

        worker, self._worker = self._worker, None
        if worker is not None and worker is not asyncio.current_task():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        logger.info("Session %s stopped", self.conversation_id)
