"""Background scheduler orchestration."""

from __future__ import annotations

import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import AppConfig
from .exporter import CSVExporter
from .manager import ProbeManager

LOGGER = logging.getLogger(__name__)


class SchedulerService:
    def __init__(
        self,
        config: AppConfig,
        probe_manager: ProbeManager,
        exporter: CSVExporter,
    ) -> None:
        self.config = config
        self.probes = probe_manager
        self.exporter = exporter
        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.started = False

    def start(self) -> None:
        if self.started:
            LOGGER.warning("Scheduler already started, ignoring duplicate start request")
            return

        if not self.config.scheduler.enabled:
            LOGGER.info("Scheduler is disabled in configuration, probes run on demand only")
            return

        try:
            interval = self.config.scheduler.interval_minutes
            trigger = IntervalTrigger(minutes=interval)
            self.scheduler.add_job(self._run_cycle, trigger=trigger, id="scheduled-probes")
            self.scheduler.start()
            self.started = True
            LOGGER.info("Scheduler started with interval %s minutes", interval)
        except Exception as exc:
            LOGGER.error("Failed to start scheduler: %s", exc, exc_info=True)
            LOGGER.error("Scheduled probes will not run automatically")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False

    def _run_cycle(self) -> None:
        LOGGER.info("Starting scheduled probe cycle at %s", datetime.utcnow().isoformat())
        try:
            summary = self.probes.run_probe()
            self.exporter.write_snapshot()
            LOGGER.info(
                "Scheduled probe run %s: sent %s, received %s, missing %s",
                summary["run_id"],
                summary["sent"],
                summary["received"],
                summary["missing"],
            )
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Scheduled probe failed: %s", exc)
