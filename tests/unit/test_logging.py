"""
Unit tests for logging configuration

Tests verify:
- JSON and console formatters carry extra context
- setup_logging handler configuration
- ContextLogger context merging
- JobLogger appends timestamped lines to the job
"""

import json
import logging
import sys
from datetime import datetime
from unittest.mock import patch

import pytest

from catalog_recon.jobs import JobLogger
from catalog_recon.models import Job, ReconciliationMode
from catalog_recon.utils.logging import (
    ConsoleFormatter,
    ContextLogger,
    JSONFormatter,
    configure_from_env,
    setup_logging,
)


def _record(msg="Task finished", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="catalog_recon.test",
        level=level,
        pathname="merge.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


class TestJSONFormatter:
    """Test JSONFormatter"""

    def test_format_basic_log_record(self):
        """Test standard fields are present"""
        data = json.loads(JSONFormatter(app_name="recon-test").format(_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Task finished"
        assert data["app"] == "recon-test"
        assert data["source"]["line"] == 42
        assert "timestamp" in data

    def test_format_with_extra_context(self):
        """Test job fields are grouped apart from other context"""
        data = json.loads(JSONFormatter().format(_record(job_id="twoway_1", task=2, batch=10)))

        assert data["job"] == {"job_id": "twoway_1", "task": 2}
        assert data["context"] == {"batch": 10}
        assert "thread" in data

    def test_format_with_exception_info(self):
        """Test exception details are serialized"""
        try:
            raise ValueError("bad definition")
        except ValueError:
            record = _record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad definition"

    def test_format_without_hostname(self):
        data = json.loads(JSONFormatter(include_hostname=False, include_timestamp=False).format(_record()))

        assert "hostname" not in data
        assert "timestamp" not in data


class TestConsoleFormatter:
    """Test ConsoleFormatter"""

    def test_format_without_colors(self):
        """Test plain output with appended context"""
        output = ConsoleFormatter(use_colors=False).format(_record(job_id="twoway_1"))

        assert "[INFO] catalog_recon.test: Task finished" in output
        assert output.endswith("[job_id=twoway_1]")

    @patch("sys.stderr.isatty", return_value=True)
    def test_format_with_colors_enabled(self, mock_isatty):
        record = _record(level=logging.WARNING)

        output = ConsoleFormatter(use_colors=True).format(record)

        assert "\033[33mWARNING\033[0m" in output
        assert record.levelname == "WARNING"


class TestSetupLogging:
    """Test setup_logging"""

    def test_setup_logging_with_custom_level(self, restore_root_logger):
        setup_logging(level="DEBUG")

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1

    def test_invalid_level_defaults_to_info(self, restore_root_logger):
        setup_logging(level="LOUD")

        assert restore_root_logger.level == logging.INFO

    def test_setup_logging_with_file(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "recon.log"

        setup_logging(level="INFO", log_file=str(log_file), console_output=False, json_format=True)
        logging.getLogger("catalog_recon.test").info("hello")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert log_file.exists()
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)
        for handler in restore_root_logger.handlers:
            handler.close()

    def test_driver_loggers_quieted(self, restore_root_logger):
        setup_logging(level="DEBUG")

        assert logging.getLogger("apscheduler").level == logging.WARNING
        assert logging.getLogger("oracledb").level == logging.WARNING

    @patch("catalog_recon.utils.logging.config.setup_logging")
    def test_configure_from_env(self, mock_setup, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        monkeypatch.setenv("LOG_JSON", "yes")

        configure_from_env()

        kwargs = mock_setup.call_args.kwargs
        assert kwargs["level"] == "WARNING"
        assert kwargs["json_format"] is True
        assert kwargs["log_file"] is None

    @patch("catalog_recon.utils.logging.config.setup_logging")
    def test_explicit_arguments_win_over_env(self, mock_setup, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        monkeypatch.setenv("LOG_JSON", "yes")
        monkeypatch.setenv("LOG_FILE", "/var/log/recon.log")

        configure_from_env(level="DEBUG", json_format=False)

        kwargs = mock_setup.call_args.kwargs
        assert kwargs["level"] == "DEBUG"
        assert kwargs["json_format"] is False
        assert kwargs["log_file"] == "/var/log/recon.log"


class TestContextLogger:
    """Test ContextLogger"""

    @patch("logging.Logger.log")
    def test_info_adds_context(self, mock_log):
        logger = ContextLogger("catalog_recon.test", job_id="twoway_1")

        logger.info("Processing", task=3)

        assert mock_log.call_args.kwargs["extra"] == {"job_id": "twoway_1", "task": 3}

    def test_update_context(self):
        logger = ContextLogger("catalog_recon.test", job_id="twoway_1")
        logger.update_context(task=1)

        context = logger.get_context()
        context["task"] = 99

        assert logger.get_context() == {"job_id": "twoway_1", "task": 1}

    @patch("logging.Logger.log")
    def test_call_fields_win_for_one_record(self, mock_log):
        """Test per-call fields override the fixed context without changing it"""
        logger = ContextLogger("catalog_recon.test", job_id="twoway_1", side="master")

        logger.error("Fetch failed", side="slave", exc_info=True)

        assert mock_log.call_args.kwargs["extra"] == {"job_id": "twoway_1", "side": "slave"}
        assert mock_log.call_args.kwargs["exc_info"] is True
        assert logger.get_context()["side"] == "master"


class TestJobLogger:
    """Test JobLogger"""

    def _job(self):
        return Job(id="analysis_20240101000000_abcde", mode=ReconciliationMode.THREE_WAY, result_location="r.csv")

    def test_appends_timestamped_lines(self):
        job = self._job()
        jlog = JobLogger(job, clock=lambda: datetime(2024, 1, 1, 9, 5, 7))

        jlog.info("Created 2 tasks")

        assert job.logs == ["[09:05:07] Created 2 tasks"]

    def test_forwards_with_job_id(self, caplog):
        job = self._job()
        jlog = JobLogger(job)

        with caplog.at_level(logging.INFO, logger="catalog_recon.jobs"):
            jlog.info("Preparing")

        [record] = caplog.records
        assert record.job_id == job.id
        assert record.getMessage() == "Preparing"

    def test_call_routes_warnings(self, caplog):
        job = self._job()
        jlog = JobLogger(job)

        with caplog.at_level(logging.INFO, logger="catalog_recon.jobs"):
            jlog("Warning: cannot connect to slave stage")
            jlog("[Task 1/1] Done")

        assert [r.levelno for r in caplog.records] == [logging.WARNING, logging.INFO]
        assert len(job.logs) == 2
