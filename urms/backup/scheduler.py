"""Scheduled backups as an asyncio background task.

Usage:
    scheduler = BackupScheduler(orchestrator, poll_interval=60)
    await scheduler.start()
    # ... app runs ...
    await scheduler.stop()
"""

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from .._utils import logger, utc_now

if TYPE_CHECKING:
    from .manager import BackupOrchestrator


class BackupScheduler:
    """Fire backups whenever the schedule's ``next_run`` has passed.

    The loop polls rather than sleeping until ``next_run`` so schedule
    changes take effect on the next tick. After a run the next slot is one
    period after the slot that fired, not after the time the backup finished,
    so the cadence does not drift.
    """

    def __init__(self, orchestrator: "BackupOrchestrator", poll_interval: float = 60.0):
        self.orchestrator = orchestrator
        self.poll_interval = poll_interval
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.last_tick: Optional[datetime] = None

    async def start(self) -> None:
        """Start the scheduler as a background task."""
        if self._running:
            logger.warning("Backup scheduler already running")
            return

        self.orchestrator.ensure_next_run()
        self._running = True
        self._task = asyncio.create_task(self._loop())
        schedule = self.orchestrator.schedule
        logger.info(
            f"Backup scheduler started ({schedule.frequency.value} at {schedule.run_time} UTC, "
            f"next run: {schedule.next_run})"
        )

    async def stop(self) -> None:
        """Stop the scheduler and wait for the loop to exit."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Backup scheduler stopped")
        self._task = None

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # One failure must not kill the scheduler
                logger.error(f"Backup scheduler error: {e}", exc_info=True)
            await asyncio.sleep(self.poll_interval)

    async def tick(self, now: Optional[datetime] = None) -> bool:
        """Run one scheduling step.

        Args:
            now: Current time, defaults to the UTC clock

        Returns:
            True if a scheduled backup was attempted
        """
        now = now or utc_now()
        self.last_tick = now
        schedule = self.orchestrator.schedule
        if not schedule.enabled or schedule.next_run is None or now < schedule.next_run:
            return False

        fired_for = schedule.next_run
        logger.info(f"Scheduled backup due (slot {fired_for.isoformat()})")
        try:
            result = await self.orchestrator.perform_full_backup(trigger="scheduled")
            if result.success:
                logger.info(f"Scheduled backup created: {result.backup_id}")
            else:
                logger.warning(f"Scheduled backup did not run: {result.error}")
        finally:
            self.orchestrator.advance_schedule(fired_for)
        return True

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    def get_status(self) -> dict:
        """Get scheduler status for health checks."""
        schedule = self.orchestrator.schedule
        return {
            "running": self.is_running,
            "enabled": schedule.enabled,
            "frequency": schedule.frequency.value,
            "run_time": schedule.run_time,
            "next_run": schedule.next_run.isoformat() if schedule.next_run else None,
            "poll_interval_seconds": self.poll_interval,
        }
