"""
CLI command implementations.

This module contains the implementation of the three CLI commands:
- run: One reconciliation, executed in the foreground
- schedule: Periodic scheduled reconciliation
- report: Console summary of a previous result file
"""

import argparse
import logging
import sys
from dataclasses import replace

from prometheus_client import start_http_server

from catalog_recon.config import ReconcileSettings
from catalog_recon.errors import CatalogReconError
from catalog_recon.inputs import load_manifest, load_mappings
from catalog_recon.jobs import JobController, ReconciliationScheduler, build_trigger
from catalog_recon.models import JobStatus, ReconciliationMode
from catalog_recon.report import (
    format_job_console,
    format_job_json,
    format_results_console,
    read_results,
    summarize_results,
)

logger = logging.getLogger(__name__)


def _settings(args: argparse.Namespace) -> ReconcileSettings:
    settings = ReconcileSettings.from_env()
    if getattr(args, "result_dir", None):
        settings = replace(settings, result_dir=args.result_dir)
    return settings


def cmd_run(args: argparse.Namespace) -> None:
    """
    Run one reconciliation and print the final job state

    Exit code 0 when the job completed, 1 when it failed.

    Args:
        args: Parsed command-line arguments
    """
    try:
        settings = _settings(args)
        mappings = load_mappings(args.mappings)
        manifest = load_manifest(args.manifest) if args.manifest else None
    except CatalogReconError as e:
        logger.error(f"Invalid input: {e}")
        sys.exit(2)

    mode = ReconciliationMode.THREE_WAY if manifest is not None else ReconciliationMode.TWO_WAY
    controller = JobController(settings)
    job = controller.create_job(mode)
    logger.info(f"Starting {mode.value} reconciliation {job.id}")

    final = controller.run_job(job.id, mappings, manifest)

    if args.format == "json":
        print(format_job_json(final))
    else:
        print(format_job_console(final))

    if final.status is JobStatus.COMPLETED:
        logger.info(f"Result written to {final.result_location}")
        sys.exit(0)

    logger.error(f"Reconciliation failed: {final.error}")
    sys.exit(1)


def cmd_schedule(args: argparse.Namespace) -> None:
    """
    Schedule periodic reconciliation jobs

    Args:
        args: Parsed command-line arguments
    """
    logger.info("Setting up reconciliation scheduler")

    try:
        settings = _settings(args)
        # Fail fast on unreadable inputs; they are re-read at every run
        load_mappings(args.mappings)
        if args.manifest:
            load_manifest(args.manifest)
    except CatalogReconError as e:
        logger.error(f"Invalid input: {e}")
        sys.exit(2)

    try:
        trigger = build_trigger(interval_seconds=args.interval, cron_expression=args.cron)
    except ValueError as e:
        logger.error(f"Invalid schedule: {e}")
        sys.exit(2)

    if args.metrics_port:
        start_http_server(args.metrics_port)
        logger.info(f"Serving metrics on port {args.metrics_port}")

    scheduler = ReconciliationScheduler(JobController(settings))
    scheduler.add_reconciliation("catalog_reconciliation", trigger, args.mappings, args.manifest)

    logger.info("Starting scheduler (press Ctrl+C to stop)")
    scheduler.start()


def cmd_report(args: argparse.Namespace) -> None:
    """
    Print a console summary of a result file

    Args:
        args: Parsed command-line arguments
    """
    logger.info(f"Loading reconciliation result from {args.input}")

    try:
        summary = summarize_results(read_results(args.input))
    except CatalogReconError as e:
        logger.error(f"Report generation failed: {e}")
        sys.exit(1)

    print(format_results_console(summary, max_issues=args.max_issues))
    sys.exit(0)
