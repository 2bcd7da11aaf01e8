"""
Job controller.

Owns the lifecycle of reconciliation jobs:

    STARTING -> PREPARING -> RUNNING -> COMPLETED | ERROR

``start_job`` registers a job and hands it to a background scheduler, returning
the job id immediately. ``run_job`` is the only routine that mutates a job; it
works on a private copy and publishes snapshots to the job store, which is
what pollers read through ``get_job``.
"""

import logging
import random
import string
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO

from apscheduler.schedulers.background import BackgroundScheduler

from catalog_recon.config import ReconcileSettings
from catalog_recon.engine import TaskRunner
from catalog_recon.errors import CancellationError, JobNotReadyError, SinkError
from catalog_recon.metrics import ACTIVE_JOBS, JOB_TIME
from catalog_recon.models import (
    CatalogEntry,
    Conclusion,
    Job,
    JobStatus,
    OwnerMapping,
    ReconciliationMode,
)
from catalog_recon.partition import partition_tasks
from catalog_recon.report import ResultSink
from catalog_recon.sources import deduplicate_manifest

from .joblog import JobLogger
from .store import JobStore, create_job_store

logger = logging.getLogger(__name__)

JOB_ID_PREFIX = {
    ReconciliationMode.THREE_WAY: "analysis",
    ReconciliationMode.TWO_WAY: "twoway",
}

RESULT_FILE_NAME = "result.csv"
RESULT_CONTENT_TYPE = "text/csv"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_job_id(mode: ReconciliationMode, now: datetime | None = None) -> str:
    """Build ``{prefix}_{YYYYMMDDHHMMSS}_{5 random base36 chars}``."""
    now = now or datetime.now()
    suffix = "".join(random.choices(_ID_ALPHABET, k=5))
    return f"{JOB_ID_PREFIX[mode]}_{now.strftime('%Y%m%d%H%M%S')}_{suffix}"


def result_filename(job: Job) -> str:
    return f"{JOB_ID_PREFIX[job.mode]}_result_{job.id}.csv"


@dataclass
class ResultDownload:
    stream: BinaryIO
    content_type: str
    filename: str


class JobController:
    """
    Starts, runs and reports on reconciliation jobs.

    Example:
        >>> controller = JobController(ReconcileSettings.from_env())
        >>> job_id = controller.start_job(ReconciliationMode.TWO_WAY, mappings)
        >>> controller.get_job(job_id).status
        <JobStatus.RUNNING: 'RUNNING'>
    """

    def __init__(
        self,
        settings: ReconcileSettings | None = None,
        store: JobStore | None = None,
        scheduler: BackgroundScheduler | None = None,
        task_runner_factory: Callable[..., TaskRunner] = TaskRunner,
        publish_every: int = 100,
    ):
        """
        Initialize job controller.

        Args:
            settings: Engine settings (default: ReconcileSettings())
            store: Job registry (default: per ``settings.job_store``)
            scheduler: Background scheduler used to dispatch jobs; created
                and started lazily when not given
            task_runner_factory: Builds the TaskRunner for each task
            publish_every: Publish a snapshot at least every N conclusions
        """
        self.settings = settings or ReconcileSettings()
        self.store = store or create_job_store(self.settings.job_store, self.settings.state_dir)
        self.task_runner_factory = task_runner_factory
        self.publish_every = max(1, publish_every)

        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._cancel_events: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Client operations
    # ------------------------------------------------------------------

    def create_job(self, mode: ReconciliationMode) -> Job:
        """Register a new job in STARTING state with its own result directory."""
        job_id = generate_job_id(mode)
        result_location = str(Path(self.settings.result_dir) / job_id / RESULT_FILE_NAME)
        job = Job(
            id=job_id,
            mode=mode,
            result_location=result_location,
            created_at=datetime.now(UTC),
        )
        self.store.create(job)
        with self._lock:
            self._cancel_events[job_id] = threading.Event()
        logger.info(f"Created job {job_id} ({mode.value})")
        return job.snapshot()

    def start_job(
        self,
        mode: ReconciliationMode,
        mappings: dict[str, OwnerMapping],
        manifest: Iterable[CatalogEntry] | None = None,
    ) -> str:
        """
        Create a job and run it in the background.

        Returns:
            The job id; the job itself has not necessarily started yet
        """
        job = self.create_job(mode)
        manifest_list = list(manifest) if manifest is not None else None

        scheduler = self._get_scheduler()
        scheduler.add_job(
            self.run_job,
            args=[job.id, mappings, manifest_list],
            id=job.id,
            name=f"reconcile {job.id}",
            misfire_grace_time=None,
        )
        return job.id

    def get_job(self, job_id: str) -> Job:
        """
        Poll a job.

        Raises:
            JobNotFoundError: If the id is unknown
        """
        return self.store.get(job_id)

    def open_result(self, job_id: str) -> ResultDownload:
        """
        Open the result file of a completed job.

        Raises:
            JobNotFoundError: If the id is unknown
            JobNotReadyError: If the job is not COMPLETED
        """
        job = self.store.get(job_id)
        if job.status is not JobStatus.COMPLETED:
            raise JobNotReadyError(job_id, job.status.value)

        try:
            stream = open(job.result_location, "rb")
        except OSError as e:
            raise SinkError(f"Result file of job {job_id} is not readable: {e}") from e

        return ResultDownload(stream=stream, content_type=RESULT_CONTENT_TYPE, filename=result_filename(job))

    def cancel_job(self, job_id: str) -> bool:
        """
        Request cancellation. The job stops at its next merge step or batch.

        Returns:
            True if a cancellation was signalled
        """
        job = self.store.get(job_id)
        if job.status.is_terminal:
            return False
        with self._lock:
            event = self._cancel_events.setdefault(job_id, threading.Event())
        event.set()
        logger.info(f"Cancellation requested for job {job_id}")
        return True

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler is not None and self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)

    def _get_scheduler(self) -> BackgroundScheduler:
        with self._lock:
            if self._scheduler is None:
                self._scheduler = BackgroundScheduler()
            if not self._scheduler.running:
                self._scheduler.start()
            return self._scheduler

    # ------------------------------------------------------------------
    # Job processing
    # ------------------------------------------------------------------

    def _publish(self, job: Job) -> None:
        self.store.update(job)

    def _advance_progress(self, job: Job, value: float) -> bool:
        new_progress = max(job.progress, min(99, int(value)))
        changed = new_progress != job.progress
        job.progress = new_progress
        return changed

    def _conclusion_listener(self, job: Job) -> Callable[[Conclusion], None]:
        def on_write(conclusion: Conclusion) -> None:
            job.summary.record(conclusion)
            changed = False
            if job.total > 0:
                changed = self._advance_progress(job, job.summary.processed / job.total * 100)
            if changed or job.summary.processed % self.publish_every == 0:
                self._publish(job)

        return on_write

    def run_job(
        self,
        job_id: str,
        mappings: dict[str, OwnerMapping],
        manifest: Iterable[CatalogEntry] | None = None,
    ) -> Job:
        """
        Process a registered job to completion.

        Never raises for job failures: they end the job in ERROR with the
        message in ``job.error``.

        Returns:
            Final snapshot of the job
        """
        job = self.store.get(job_id)
        if job.status is not JobStatus.STARTING:
            logger.warning(f"Job {job_id} is already {job.status.value}, not running it again")
            return job

        with self._lock:
            cancel_event = self._cancel_events.setdefault(job_id, threading.Event())

        jlog = JobLogger(job)
        three_way = job.mode is ReconciliationMode.THREE_WAY
        sink = ResultSink(
            job.result_location,
            include_manifest=three_way,
            on_write=self._conclusion_listener(job),
            mode=job.mode.value,
        )
        start = time.time()
        ACTIVE_JOBS.inc()

        try:
            job.status = JobStatus.PREPARING
            jlog.info(f"Preparing {job.mode.value.replace('_', '-')} reconciliation")
            self._publish(job)

            manifest_entries = None
            manifest_owners = None
            if three_way and manifest is not None:
                manifest_entries, dropped = deduplicate_manifest(manifest)
                if dropped:
                    jlog.warning(f"Removed {dropped} duplicate items")
                job.total = len(manifest_entries)
                manifest_owners = {entry.owner for entry in manifest_entries}
                job.summary.manifest_rows = len(manifest_entries)
                jlog.info(f"Manifest holds {job.total} objects")

            tasks = partition_tasks(mappings, manifest_owners)
            job.total_tasks = len(tasks)
            jlog.info(f"Created {len(tasks)} tasks from {len(mappings)} owner mappings")

            sink.open()
            job.status = JobStatus.RUNNING
            self._publish(job)

            for index, task in enumerate(tasks, 1):
                if cancel_event.is_set():
                    raise CancellationError("cancelled")

                prefix = f"[Task {index}/{len(tasks)}]"
                jlog.update_context(task=index)
                jlog.info(f"{prefix} Processing Owners: {task.describe_owners()}")
                job.summary.active_tasks = 1
                self._publish(job)

                runner = self.task_runner_factory(
                    mode=job.mode,
                    settings=self.settings,
                    emit=sink.write,
                    log=jlog,
                    cancel_event=cancel_event,
                )
                try:
                    stats = runner.run(task, manifest_entries)
                except (SinkError, CancellationError):
                    raise
                except Exception as e:
                    job.summary.failed_tasks += 1
                    jlog.error(f"{prefix} Failed: {type(e).__name__}: {e}")
                else:
                    job.summary.master_rows += stats.master_rows
                    job.summary.slave_rows += stats.slave_rows
                    jlog.info(f"{prefix} Done: {stats.conclusions} objects")

                sink.flush()
                job.processed_task_index = index
                job.summary.active_tasks = 0
                if job.total == 0:
                    self._advance_progress(job, index / len(tasks) * 100)
                self._publish(job)

            jlog.context.pop("task", None)
            sink.close()
            job.status = JobStatus.COMPLETED
            job.progress = 100
            jlog.info(
                f"Completed: {job.summary.processed} objects, {job.summary.diffs} differences, "
                f"{job.summary.missing} missing, {job.summary.new} new"
            )
            if job.summary.failed_tasks:
                jlog.warning(
                    f"Warning: {job.summary.failed_tasks} of {len(tasks)} tasks failed, "
                    f"the result is incomplete"
                )

        except CancellationError:
            job.status = JobStatus.ERROR
            job.error = "cancelled"
            jlog.warning("Job cancelled")
        except Exception as e:
            job.status = JobStatus.ERROR
            job.error = str(e) or type(e).__name__
            jlog.error(f"Job failed: {type(e).__name__}: {e}", exc_info=True)

        finally:
            try:
                sink.close()
            except SinkError as e:
                jlog.error(f"Failed to close result file: {e}")
            job.summary.active_tasks = 0
            job.finished_at = datetime.now(UTC)
            self._publish(job)

            ACTIVE_JOBS.dec()
            JOB_TIME.labels(mode=job.mode.value, status=job.status.value).observe(time.time() - start)
            with self._lock:
                self._cancel_events.pop(job_id, None)

        return job.snapshot()
