"""
PURGE SWEEPER - permanent removal of expired soft deletes
=========================================================

A soft-deleted priority older than PURGE_GRACE_HOURS is physically removed.
Selection and removal are one guarded DELETE, so:
- running two sweeps at once is harmless (second one finds nothing)
- a restore that lands first takes the row out of the DELETE's reach

Triggers:
- on demand: PurgeSweeper.sweep() (API POST /priorities/cleanup)
- Celery beat: periodic_tasks.purge_expired_priorities (hourly)
- in-process loop: PurgeSweeper.run_periodically()

Author: Daily Priorities Core Team
Date: 2026-09-14
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from logging_config import get_logger, log_error
from infrastructure.uow import PriorityRepository
from priority_config import PURGE_GRACE_HOURS, PURGE_SWEEP_INTERVAL_SECONDS
from schemas import SweepReport

logger = get_logger(__name__)

GRACE_WINDOW = timedelta(hours=PURGE_GRACE_HOURS)


class PurgeSweeper:

    def __init__(self, uow_factory):
        self._uow_factory = uow_factory
        self._repository = PriorityRepository()

    async def sweep(self, now: Optional[datetime] = None, owner_id: Optional[str] = None) -> SweepReport:
        """
        Purge every soft-deleted priority with deleted_at <= now - 24h.

        Args:
            now: reference time (UTC); defaults to the current time
            owner_id: restrict to one owner (on-demand cleanup)
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - GRACE_WINDOW

        async with self._uow_factory() as uow:
            purged = await self._repository.purge_expired(uow.session, cutoff, owner_id=owner_id)

        logger.info(
            "purge_sweep_completed",
            purged=purged,
            cutoff=cutoff.isoformat(),
            owner_id=owner_id,
        )
        return SweepReport(purged=purged, cutoff=cutoff, owner_id=owner_id)

    async def run_periodically(
        self,
        interval_seconds: float = PURGE_SWEEP_INTERVAL_SECONDS,
        stop_event: Optional[asyncio.Event] = None,
    ) -> int:
        """
        Sweep every `interval_seconds` until stop_event is set.
        A failed sweep is logged and retried on the next tick.

        Returns the number of sweeps that completed.
        """
        stop_event = stop_event or asyncio.Event()
        completed = 0

        logger.info("purge_sweeper_started", interval_seconds=interval_seconds)
        while not stop_event.is_set():
            try:
                await self.sweep()
                completed += 1
            except Exception as e:
                log_error(e, {"operation": "purge_sweep"})

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("purge_sweeper_stopped", sweeps=completed)
        return completed
