import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from vehicle_sales.core.config import settings
from vehicle_sales.core.logging import set_job_name, set_run_id
from vehicle_sales.schemas.sale import SweepReport
from vehicle_sales.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


class ReconciliationScheduler:
    """
    Periodic driver of the reconciliation sweeps.

    Each instance owns its APScheduler; nothing is module-global, so several
    schedulers can live side by side. Ticks never overlap: a tick that finds
    the previous one still running is skipped.
    """

    JOB_ID = "reconciliation_sweep"

    def __init__(self, reconciliation: ReconciliationService, timezone: str | None = None):
        self.reconciliation = reconciliation
        self.timezone = timezone or settings.SCHEDULER_TIMEZONE
        self.interval_seconds: int | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Task | None = None

    def start(self, interval_seconds: int | None = None) -> None:
        """Starts the timer and schedules one immediate sweep. Must be called from a running event loop."""
        if self.is_active():
            logger.info("Reconciliation scheduler already running", extra={"extra": {"interval_seconds": self.interval_seconds}})
            return

        interval = interval_seconds or settings.SCHEDULER_INTERVAL_SECONDS
        scheduler = AsyncIOScheduler(timezone=self.timezone)
        scheduler.add_job(
            self._tick,
            "interval",
            seconds=interval,
            id=self.JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        # First sweep right away instead of waiting a full interval
        scheduler.add_job(self._tick, "date", id=f"{self.JOB_ID}_initial")
        scheduler.start()

        self._scheduler = scheduler
        self.interval_seconds = interval
        logger.info("Reconciliation scheduler started, every %d second(s)", interval,
                    extra={"extra": {"interval_seconds": interval}})

    def stop(self) -> None:
        """No further ticks after this returns; a sweep already running is left to finish."""
        if not self.is_active():
            logger.info("Reconciliation scheduler is not running")
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Reconciliation scheduler stopped")

    def is_active(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def join(self) -> None:
        """Waits for the sweep in flight, if any."""
        if self._inflight is not None and not self._inflight.done():
            await asyncio.shield(self._inflight)

    async def run_once(self) -> SweepReport:
        """Runs both sweeps now, waiting for a running tick first. Errors propagate."""
        async with self._lock:
            set_run_id()
            set_job_name("reconciliation_manual")
            logger.info("Manual reconciliation run")
            return await self.reconciliation.run_sweeps()

    async def _tick(self) -> None:
        if not self.is_active():
            # Wakeup queued before stop() fired late
            return
        task = asyncio.ensure_future(self._guarded_sweep())
        self._inflight = task
        # Shutdown cancels the executor's job future, not the sweep itself
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.info("Reconciliation tick cancelled, sweep left to finish")

    async def _guarded_sweep(self) -> SweepReport | None:
        if self._lock.locked():
            logger.info("Previous reconciliation sweep still running, skipping tick")
            return None

        async with self._lock:
            set_run_id()
            set_job_name(self.JOB_ID)
            report = SweepReport()
            # Each phase is isolated so one failing does not stop the other
            try:
                report.pending_resolved = await self.reconciliation.resolve_pending()
            except Exception as e:
                logger.error("Pending resolution sweep failed: %s", e, exc_info=True)
            try:
                report.webhooks_delivered, report.webhooks_failed = await self.reconciliation.deliver_webhooks()
            except Exception as e:
                logger.error("Webhook sweep failed: %s", e, exc_info=True)
            return report
