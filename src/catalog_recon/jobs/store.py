"""
Job registry.

The job-processing routine publishes its working copy of a Job with
``update``; pollers read independent snapshots with ``get``. Both
implementations copy on the way in and on the way out, so no caller ever
shares a Job instance with another thread.
"""

import json
import logging
import os
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from catalog_recon.errors import JobNotFoundError
from catalog_recon.models import Job

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Registry of jobs keyed by job id."""

    @abstractmethod
    def create(self, job: Job) -> None:
        """Register a new job. Raises ValueError if the id already exists."""

    @abstractmethod
    def get(self, job_id: str) -> Job:
        """Return a snapshot of the job. Raises JobNotFoundError."""

    @abstractmethod
    def update(self, job: Job) -> None:
        """Replace the stored state of an existing job. Raises JobNotFoundError."""

    @abstractmethod
    def list_ids(self) -> list[str]:
        """Ids of all known jobs."""


class InMemoryJobStore(JobStore):
    """Process-local job registry guarded by a lock."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job already exists: {job.id}")
            self._jobs[job.id] = job.snapshot()

    def get(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.snapshot()

    def update(self, job: Job) -> None:
        snapshot = job.snapshot()
        with self._lock:
            if job.id not in self._jobs:
                raise JobNotFoundError(job.id)
            self._jobs[job.id] = snapshot

    def list_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._jobs)


class FileJobStore(JobStore):
    """
    Job registry persisted as one JSON file per job.

    Writes go to a temporary file that is renamed over the job file, so a
    reader never observes a half-written state.
    """

    def __init__(self, state_dir: str = "./reconciliation_state"):
        """
        Initialize file job store.

        Args:
            state_dir: Directory to store job state files
        """
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        logger.info(f"Initialized file job store with state dir: {self.state_dir}")

    def _get_state_file(self, job_id: str) -> Path:
        safe_id = re.sub(r'[/\\:*?"<>|]', '_', job_id)
        return self.state_dir / f"{safe_id}_job.json"

    def _write(self, job: Job) -> None:
        state_file = self._get_state_file(job.id)
        tmp_file = state_file.with_suffix(".json.tmp")
        with open(tmp_file, "w") as f:
            json.dump(job.to_dict(), f, indent=2)
        os.replace(tmp_file, state_file)

    def create(self, job: Job) -> None:
        with self._lock:
            if self._get_state_file(job.id).exists():
                raise ValueError(f"Job already exists: {job.id}")
            self._write(job)

    def get(self, job_id: str) -> Job:
        state_file = self._get_state_file(job_id)
        with self._lock:
            if not state_file.exists():
                raise JobNotFoundError(job_id)
            try:
                with open(state_file) as f:
                    return Job.from_dict(json.load(f))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                logger.error(f"Failed to load job state for {job_id}: {e}")
                raise

    def update(self, job: Job) -> None:
        with self._lock:
            if not self._get_state_file(job.id).exists():
                raise JobNotFoundError(job.id)
            self._write(job)

    def list_ids(self) -> list[str]:
        ids = []
        for state_file in self.state_dir.glob("*_job.json"):
            ids.append(state_file.name[:-len("_job.json")])
        return sorted(ids)


def create_job_store(kind: str, state_dir: str = "./reconciliation_state") -> JobStore:
    if kind == "file":
        return FileJobStore(state_dir)
    return InMemoryJobStore()
