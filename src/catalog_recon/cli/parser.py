"""
Command-line argument parser configuration.

This module sets up the argument parser for the catalog-reconcile CLI tool,
defining all commands and their options.
"""

import argparse


def _input_options() -> argparse.ArgumentParser:
    """Options shared by the commands that start reconciliations."""
    inputs = argparse.ArgumentParser(add_help=False)
    inputs.add_argument(
        '--mappings',
        required=True,
        help='JSON file mapping owners to master/slave connections'
    )
    inputs.add_argument(
        '--manifest',
        help='Manifest file (JSON or CSV); enables three-way reconciliation'
    )
    inputs.add_argument(
        '--result-dir',
        help='Directory for job result files (default: RECON_RESULT_DIR or ./temp_jobs)'
    )
    return inputs


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="catalog-reconcile",
        description="Reconcile database object catalogs between master, slave and a manifest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Two-way reconciliation of master against slave
  catalog-reconcile run --mappings mappings.json

  # Three-way reconciliation against an approved manifest
  catalog-reconcile run --mappings mappings.json --manifest release.csv

  # Nightly three-way run at 02:00, exposing metrics on port 9108
  catalog-reconcile schedule --mappings mappings.json --manifest release.json \\
      --cron "0 2 * * *" --metrics-port 9108

  # Summarize a previous result file
  catalog-reconcile report --input temp_jobs/analysis_20240101020000_ab12c/result.csv
        """
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: $LOG_LEVEL or INFO)'
    )
    parser.add_argument(
        '--log-file',
        help='Also write logs to this rotating file (default: $LOG_FILE)'
    )
    parser.add_argument(
        '--log-json',
        action='store_true',
        help='Emit structured JSON log lines'
    )
    parser.add_argument(
        '--otlp-endpoint',
        help='Export traces to this OTLP collector (e.g. http://localhost:4317)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')
    inputs = _input_options()

    # ========== Run command ==========
    run_parser = subparsers.add_parser(
        'run', parents=[inputs], help='Run one reconciliation and wait for it'
    )
    run_parser.add_argument(
        '--format',
        choices=['console', 'json'],
        default='console',
        help='Output format of the final job state (default: console)'
    )

    # ========== Schedule command ==========
    schedule_parser = subparsers.add_parser(
        'schedule', parents=[inputs], help='Schedule periodic reconciliation'
    )
    trigger = schedule_parser.add_mutually_exclusive_group()
    trigger.add_argument(
        '--cron',
        help='Cron expression (e.g., "0 2 * * *" for daily at 02:00)'
    )
    trigger.add_argument(
        '--interval',
        type=int,
        default=3600,
        help='Interval in seconds (default: 3600 = 1 hour)'
    )
    schedule_parser.add_argument(
        '--metrics-port',
        type=int,
        help='Serve Prometheus metrics on this port'
    )

    # ========== Report command ==========
    report_parser = subparsers.add_parser('report', help='Summarize a result file')
    report_parser.add_argument(
        '--input',
        required=True,
        help='Result CSV file of a previous run'
    )
    report_parser.add_argument(
        '--max-issues',
        type=int,
        default=50,
        help='Maximum non-success rows listed (default: 50)'
    )

    return parser
