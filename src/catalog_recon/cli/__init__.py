"""
Command-line interface for catalog reconciliation.

Available commands:
- run: Execute one reconciliation
- schedule: Set up periodic reconciliation jobs
- report: Summarize a previous result file
"""

import sys

from catalog_recon.utils.logging import configure_from_env
from catalog_recon.utils.tracing import initialize_tracing, shutdown_tracing

from .commands import cmd_report, cmd_run, cmd_schedule
from .parser import create_parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the catalog-reconcile CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_from_env(
        level=args.log_level,
        log_file=args.log_file,
        json_format=True if args.log_json else None,
    )
    if args.otlp_endpoint:
        initialize_tracing(otlp_endpoint=args.otlp_endpoint)

    try:
        if args.command == 'run':
            cmd_run(args)
        elif args.command == 'schedule':
            cmd_schedule(args)
        elif args.command == 'report':
            cmd_report(args)
        else:
            parser.print_help()
            sys.exit(1)
    finally:
        shutdown_tracing()


__all__ = [
    'main',
    'cmd_run',
    'cmd_schedule',
    'cmd_report',
    'create_parser',
]


if __name__ == '__main__':
    main()
