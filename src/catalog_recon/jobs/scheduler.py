"""
APScheduler-based periodic reconciliation.

A scheduled reconciliation is a mappings file (and optional manifest) plus
a trigger. Inputs are re-read at every run, runs of the same schedule never
overlap, and runs missed while the process was busy collapse into one.
"""

import logging
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from catalog_recon.inputs import load_manifest, load_mappings
from catalog_recon.models import Job, ReconciliationMode

from .controller import JobController

logger = logging.getLogger(__name__)


def build_trigger(interval_seconds: int | None = None, cron_expression: str | None = None) -> BaseTrigger:
    """
    Trigger for a cron expression when given, else a fixed interval.

    Raises:
        ValueError: If the cron expression is not five fields or the interval is not positive
    """
    if cron_expression is not None:
        return CronTrigger.from_crontab(cron_expression)
    if interval_seconds is None or interval_seconds <= 0:
        raise ValueError(f"Interval must be a positive number of seconds, got {interval_seconds}")
    return IntervalTrigger(seconds=interval_seconds)


def run_scheduled_reconciliation(
    controller: JobController,
    mappings_path: str,
    manifest_path: str | None = None,
) -> Job:
    """One reconciliation from files; three-way when a manifest is given."""
    mode = ReconciliationMode.THREE_WAY if manifest_path else ReconciliationMode.TWO_WAY
    mappings = load_mappings(mappings_path)
    manifest = load_manifest(manifest_path) if manifest_path else None

    job = controller.create_job(mode)
    logger.info(f"Starting scheduled reconciliation {job.id}")
    result = controller.run_job(job.id, mappings, manifest)

    if result.error:
        logger.error(f"Scheduled reconciliation {job.id} failed: {result.error}")
    else:
        logger.info(
            f"Scheduled reconciliation {job.id} completed: "
            f"{result.summary.processed} objects, {result.summary.diffs} differences"
        )
    return result


class ReconciliationScheduler:
    """
    Runs reconciliations of one controller on triggers.

    ``start`` blocks until interrupted unless a non-blocking APScheduler
    backend is passed in.
    """

    def __init__(
        self,
        controller: JobController,
        scheduler: BaseScheduler | None = None,
        misfire_grace_time: int = 300,
    ):
        self.controller = controller
        self.misfire_grace_time = misfire_grace_time
        self.scheduler = scheduler or BlockingScheduler()
        self.scheduler.add_listener(self._on_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)

    def add_reconciliation(
        self,
        schedule_id: str,
        trigger: BaseTrigger,
        mappings_path: str,
        manifest_path: str | None = None,
    ) -> None:
        """Register (or replace) a recurring reconciliation under ``schedule_id``."""
        self.scheduler.add_job(
            run_scheduled_reconciliation,
            trigger=trigger,
            id=schedule_id,
            name=f"reconcile {mappings_path}",
            kwargs={
                "controller": self.controller,
                "mappings_path": mappings_path,
                "manifest_path": manifest_path,
            },
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_time,
        )
        logger.info(f"Scheduled reconciliation '{schedule_id}' on {trigger}")

    def remove(self, schedule_id: str) -> None:
        self.scheduler.remove_job(schedule_id)
        logger.info(f"Removed scheduled reconciliation '{schedule_id}'")

    def _on_event(self, event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_MISSED:
            logger.warning(f"Scheduled reconciliation '{event.job_id}' missed its run at {event.scheduled_run_time}")
        else:
            logger.error(f"Scheduled reconciliation '{event.job_id}' raised: {event.exception!r}")

    def start(self) -> None:
        logger.info(f"Starting reconciliation scheduler with {len(self.scheduler.get_jobs())} schedule(s)")
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler interrupted")
            self.stop()

    def stop(self) -> None:
        """Stop triggering; a running reconciliation is left to finish."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.controller.shutdown(wait=False)
        logger.info("Scheduler stopped")

    def describe(self) -> list[dict[str, Any]]:
        schedules = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            schedules.append({
                "id": job.id,
                "name": job.name,
                "trigger": str(job.trigger),
                "next_run_time": next_run.isoformat() if next_run else None,
            })
        return schedules
