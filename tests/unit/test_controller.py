"""
Unit tests for the job controller

Tests verify:
- Job lifecycle from STARTING to COMPLETED
- Result file contents and download metadata
- Progress is monotonic and ends at 100
- ERROR handling for sink failures and cancellation
- Per-task failures do not end the job
- Background dispatch through the scheduler
"""

import re
import time
from dataclasses import replace
from datetime import datetime

import pytest

from catalog_recon.errors import JobNotFoundError, JobNotReadyError
from catalog_recon.jobs import InMemoryJobStore, JobController, generate_job_id, result_filename
from catalog_recon.models import JobStatus, ObjectKey, ReconciliationMode
from catalog_recon.report import read_results


@pytest.fixture
def populated(databases, fake_database, make_entry):
    """prod holds A, B, C and stage holds B, C, D; B matches, C differs."""
    databases["prod"] = fake_database(
        [make_entry("HR", "A"), make_entry("HR", "B"), make_entry("HR", "C")],
        {
            ObjectKey.of("HR", "B", "TABLE"): "CREATE TABLE B (X NUMBER)",
            ObjectKey.of("HR", "C", "TABLE"): "CREATE TABLE C (X NUMBER)",
        },
    )
    databases["stage"] = fake_database(
        [make_entry("HR", "B"), make_entry("HR", "C"), make_entry("HR", "D")],
        {
            ObjectKey.of("HR", "B", "TABLE"): "CREATE TABLE B (X NUMBER)",
            ObjectKey.of("HR", "C", "TABLE"): "CREATE TABLE C (X VARCHAR2(10))",
        },
    )
    return databases


class RecordingStore(InMemoryJobStore):
    """Keeps every published snapshot for progress assertions."""

    def __init__(self):
        super().__init__()
        self.published = []

    def update(self, job):
        super().update(job)
        self.published.append(job.snapshot())


class TestJobIds:
    """Test job id and file name generation"""

    def test_job_id_format(self):
        job_id = generate_job_id(ReconciliationMode.THREE_WAY, now=datetime(2024, 3, 5, 14, 7, 9))
        assert re.fullmatch(r"analysis_20240305140709_[a-z0-9]{5}", job_id)

    def test_two_way_prefix(self):
        assert generate_job_id(ReconciliationMode.TWO_WAY).startswith("twoway_")

    def test_result_filename(self, controller):
        job = controller.create_job(ReconciliationMode.TWO_WAY)
        assert result_filename(job) == f"twoway_result_{job.id}.csv"


class TestJobLifecycle:
    """Test synchronous job processing"""

    def test_create_job_is_starting(self, controller, settings):
        job = controller.create_job(ReconciliationMode.TWO_WAY)

        assert job.status is JobStatus.STARTING
        assert job.progress == 0
        assert job.result_location.startswith(settings.result_dir)
        assert job.result_location.endswith(f"{job.id}/result.csv")

    def test_two_way_job_completes(self, controller, populated, two_sided_mapping):
        job = controller.create_job(ReconciliationMode.TWO_WAY)

        final = controller.run_job(job.id, two_sided_mapping("HR"))

        assert final.status is JobStatus.COMPLETED
        assert final.progress == 100
        assert final.error is None
        assert final.summary.processed == 4
        assert final.summary.diffs == 3
        assert final.summary.missing == 1
        assert final.summary.new == 1
        assert final.total_tasks == 1
        assert final.processed_task_index == 1
        assert controller.get_job(job.id).status is JobStatus.COMPLETED

        rows = {row["OBJECT_NAME"]: row for row in read_results(final.result_location)}
        assert rows["A"]["CONCLUSION"] == "Missing in slave"
        assert rows["B"]["CONCLUSION"] == "Match"
        assert rows["C"]["CONCLUSION_TYPE"] == "warning"
        assert rows["D"]["IN_MASTER"] == "NO"
        assert rows["D"]["MASTER_STATUS"] == "-"
        assert "IN_MANIFEST" not in rows["A"]

    def test_three_way_job_completes(self, controller, populated, two_sided_mapping, make_entry):
        job = controller.create_job(ReconciliationMode.THREE_WAY)
        manifest = [make_entry("HR", "A"), make_entry("HR", "D"), make_entry("hr", "a")]

        final = controller.run_job(job.id, two_sided_mapping("HR", "FIN"), manifest)

        assert final.status is JobStatus.COMPLETED
        assert final.total == 2
        assert final.summary.manifest_rows == 2
        assert any("Removed 1 duplicate items" in line for line in final.logs)

        rows = {row["OBJECT_NAME"]: row for row in read_results(final.result_location)}
        assert rows["A"]["CONCLUSION_TYPE"] == "error"
        assert rows["A"]["IN_MANIFEST"] == "YES"
        assert rows["B"]["CONCLUSION"] == "Identical (not in manifest)"
        assert rows["C"]["CONCLUSION"] == "Changed but not declared in manifest"
        assert rows["D"]["CONCLUSION_TYPE"] == "info"

    def test_logs_are_timestamped(self, controller, populated, two_sided_mapping):
        job = controller.create_job(ReconciliationMode.TWO_WAY)

        final = controller.run_job(job.id, two_sided_mapping("HR"))

        assert all(re.match(r"\[\d{2}:\d{2}:\d{2}\] ", line) for line in final.logs)
        assert any("[Task 1/1] Processing Owners: HR" in line for line in final.logs)

    def test_progress_is_monotonic(self, settings, runner_factory, populated, two_sided_mapping, make_entry):
        store = RecordingStore()
        controller = JobController(settings, store=store, task_runner_factory=runner_factory, publish_every=1)
        job = controller.create_job(ReconciliationMode.THREE_WAY)

        controller.run_job(job.id, two_sided_mapping("HR"), [make_entry("HR", n) for n in "ABCD"])

        progress = [snapshot.progress for snapshot in store.published]
        assert progress == sorted(progress)
        assert progress[-1] == 100
        assert all(s.progress <= 99 for s in store.published if s.status is not JobStatus.COMPLETED)

    def test_no_tasks_completes_empty(self, controller):
        job = controller.create_job(ReconciliationMode.TWO_WAY)

        final = controller.run_job(job.id, {})

        assert final.status is JobStatus.COMPLETED
        assert list(read_results(final.result_location)) == []

    def test_unreachable_side_is_logged(self, controller, databases, fake_database, make_entry, two_sided_mapping):
        databases["prod"] = fake_database([make_entry("HR", "A")])

        final = controller.run_job(controller.create_job(ReconciliationMode.TWO_WAY).id, two_sided_mapping("HR"))

        assert final.status is JobStatus.COMPLETED
        assert any("Warning: cannot connect to slave" in line for line in final.logs)

    def test_task_failure_does_not_end_job(self, settings, two_sided_mapping):
        class FailingRunner:
            def __init__(self, **kwargs):
                pass

            def run(self, task, manifest_entries=None):
                raise RuntimeError("catalog query failed")

        controller = JobController(settings, store=InMemoryJobStore(), task_runner_factory=FailingRunner)
        job = controller.create_job(ReconciliationMode.TWO_WAY)

        final = controller.run_job(job.id, two_sided_mapping("HR"))

        assert final.status is JobStatus.COMPLETED
        assert any("[Task 1/1] Failed: RuntimeError: catalog query failed" in line for line in final.logs)
        assert final.summary.failed_tasks == 1
        assert any("1 of 1 tasks failed, the result is incomplete" in line for line in final.logs)

    def test_dropped_stream_keeps_rows_already_read(
        self, controller, databases, fake_database, make_entry, two_sided_mapping
    ):
        databases["prod"] = fake_database([make_entry("HR", n) for n in "ABC"], fail_after=2)
        databases["stage"] = fake_database([make_entry("HR", n) for n in "ABCD"])

        final = controller.run_job(controller.create_job(ReconciliationMode.TWO_WAY).id, two_sided_mapping("HR"))

        rows = list(read_results(final.result_location))
        assert [row["OBJECT_NAME"] for row in rows] == ["A", "B"]
        assert final.status is JobStatus.COMPLETED
        assert final.summary.failed_tasks == 1
        assert any("Failed: ConnectionError: ORA-03113" in line for line in final.logs)

    def test_side_and_comparison_lines_in_job_log(
        self, controller, populated, make_entry, two_sided_mapping
    ):
        populated["prod"].entries.append(make_entry("HR", "X"))
        populated["stage"].entries.append(make_entry("HR", "X"))

        final = controller.run_job(controller.create_job(ReconciliationMode.TWO_WAY).id, two_sided_mapping("HR"))

        logs = "\n".join(final.logs)
        assert "Connecting to master" in logs
        assert "Connecting to slave" in logs
        assert "Info: HR.C (TABLE) has different definitions" in logs
        assert "Warning: Failed to fetch definition for HR.X (TABLE)" in logs

    def test_missing_side_logged(self, controller, databases, fake_database, make_entry, two_sided_mapping):
        databases["prod"] = fake_database([make_entry("HR", "A")])

        final = controller.run_job(
            controller.create_job(ReconciliationMode.TWO_WAY).id, two_sided_mapping("HR", slave=None)
        )

        assert any("No slave connection configured" in line for line in final.logs)

    def test_sink_failure_ends_in_error(self, settings, runner_factory, populated, two_sided_mapping, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        controller = JobController(
            replace(settings, result_dir=str(blocker)),
            store=InMemoryJobStore(),
            task_runner_factory=runner_factory,
        )
        job = controller.create_job(ReconciliationMode.TWO_WAY)

        final = controller.run_job(job.id, two_sided_mapping("HR"))

        assert final.status is JobStatus.ERROR
        assert "Cannot open result file" in final.error
        assert final.finished_at is not None

    def test_cancelled_job(self, controller, populated, two_sided_mapping):
        job = controller.create_job(ReconciliationMode.TWO_WAY)

        assert controller.cancel_job(job.id) is True
        final = controller.run_job(job.id, two_sided_mapping("HR"))

        assert final.status is JobStatus.ERROR
        assert final.error == "cancelled"
        assert controller.cancel_job(job.id) is False

    def test_job_is_not_run_twice(self, controller, populated, two_sided_mapping):
        job = controller.create_job(ReconciliationMode.TWO_WAY)
        controller.run_job(job.id, two_sided_mapping("HR"))

        again = controller.run_job(job.id, two_sided_mapping("HR"))

        assert again.status is JobStatus.COMPLETED
        assert again.summary.processed == 4


class TestResultAccess:
    """Test polling and result download"""

    def test_unknown_job(self, controller):
        with pytest.raises(JobNotFoundError):
            controller.get_job("twoway_20240101000000_zzzzz")

    def test_result_before_completion(self, controller):
        job = controller.create_job(ReconciliationMode.TWO_WAY)

        with pytest.raises(JobNotReadyError):
            controller.open_result(job.id)

    def test_result_of_failed_job(self, settings, runner_factory, two_sided_mapping, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        controller = JobController(replace(settings, result_dir=str(blocker)), store=InMemoryJobStore(),
                                   task_runner_factory=runner_factory)
        job = controller.create_job(ReconciliationMode.TWO_WAY)
        controller.run_job(job.id, two_sided_mapping("HR"))

        with pytest.raises(JobNotReadyError):
            controller.open_result(job.id)

    def test_download(self, controller, populated, two_sided_mapping):
        job = controller.create_job(ReconciliationMode.THREE_WAY)
        controller.run_job(job.id, two_sided_mapping("HR"), [])

        download = controller.open_result(job.id)
        with download.stream as stream:
            content = stream.read()

        assert download.content_type == "text/csv"
        assert download.filename == f"analysis_result_{job.id}.csv"
        assert content.startswith(b"OWNER,OBJECT_NAME,OBJECT_TYPE,IN_MASTER,IN_SLAVE,IN_MANIFEST,")


class TestBackgroundDispatch:
    """Test start_job with the background scheduler"""

    def test_start_job_runs_in_background(self, controller, populated, two_sided_mapping):
        job_id = controller.start_job(ReconciliationMode.TWO_WAY, two_sided_mapping("HR"))
        try:
            deadline = time.time() + 10
            while controller.get_job(job_id).status not in (JobStatus.COMPLETED, JobStatus.ERROR):
                assert time.time() < deadline, "job did not finish"
                time.sleep(0.05)
        finally:
            controller.shutdown()

        assert controller.get_job(job_id).status is JobStatus.COMPLETED
