"""Job-scoped logging."""

import logging
from datetime import datetime

from catalog_recon.models import Job
from catalog_recon.utils.logging import ContextLogger


class JobLogger(ContextLogger):
    """
    Logger that appends ``[HH:MM:SS] message`` lines to a job's log list and
    forwards every message to the standard logger with ``job_id`` context.

    Only the job-processing routine may use it, since it mutates the job.
    """

    def __init__(self, job: Job, name: str = "catalog_recon.jobs", clock=datetime.now):
        super().__init__(name, job_id=job.id)
        self.job = job
        self.clock = clock

    def _log(self, level: int, msg: str, *args, exc_info=None, **kwargs) -> None:
        text = msg % args if args else msg
        self.job.logs.append(f"[{self.clock().strftime('%H:%M:%S')}] {text}")
        super()._log(level, text, exc_info=exc_info, **kwargs)

    def __call__(self, msg: str) -> None:
        if msg.startswith("Warning:"):
            self.warning(msg)
        else:
            self.info(msg)
