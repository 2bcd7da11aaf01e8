"""
Job lifecycle: controller, registry, job logging and periodic scheduling.
"""

from .controller import JobController, ResultDownload, generate_job_id, result_filename
from .joblog import JobLogger
from .scheduler import ReconciliationScheduler, build_trigger, run_scheduled_reconciliation
from .store import FileJobStore, InMemoryJobStore, JobStore, create_job_store

__all__ = [
    "JobController",
    "ResultDownload",
    "JobLogger",
    "JobStore",
    "InMemoryJobStore",
    "FileJobStore",
    "ReconciliationScheduler",
    "build_trigger",
    "create_job_store",
    "generate_job_id",
    "run_scheduled_reconciliation",
    "result_filename",
]
