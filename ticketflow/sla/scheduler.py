from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .monitor import SlaMonitor

logger = logging.getLogger(__name__)


class SlaScheduler:
    """Run the SLA sweeps as APScheduler interval jobs on the running event loop."""

    def __init__(
        self,
        monitor: SlaMonitor,
        *,
        warning_interval_minutes: int = 30,
        breach_interval_minutes: int = 15,
    ) -> None:
        self._monitor = monitor
        self.warning_interval_minutes = warning_interval_minutes
        self.breach_interval_minutes = breach_interval_minutes
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        if self._scheduler is not None:
            logger.warning("SLA scheduler already running")
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.run_warning_check,
            "interval",
            minutes=self.warning_interval_minutes,
            id="sla_warnings",
            name="SLA warning sweep",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True,
        )
        scheduler.add_job(
            self.run_breach_check,
            "interval",
            minutes=self.breach_interval_minutes,
            id="sla_breaches",
            name="SLA breach sweep",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "SLA scheduler started (warnings every %d min, breaches every %d min)",
            self.warning_interval_minutes,
            self.breach_interval_minutes,
        )

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("SLA scheduler stopped")

    async def run_warning_check(self) -> None:
        try:
            await self._monitor.check_warnings()
        except Exception:
            logger.exception("SLA warning sweep failed")

    async def run_breach_check(self) -> None:
        try:
            await self._monitor.check_breaches()
        except Exception:
            logger.exception("SLA breach sweep failed")
