"""Entry point for ``python -m famcal`` and the ``famcal`` script.

Runs one batch workflow against the household's Google calendars.  Uses
stdlib :mod:`argparse` for argument parsing (no extra dependencies).

Subcommands:
    migrate   -- Push eligible local events that start today or later.
    cleanup   -- Propagate local cancellations, prune orphaned mappings,
                 remove duplicates.
    dedup     -- Remove duplicates from one or all calendars.
    diagnose  -- Read-only health report.
    delete    -- Delete the remote copies of the given local uids.

The run report is printed to stdout even when the run aborts.

Exit codes:
    0 -- Workflow completed (item failures are in the report).
    1 -- Fatal error (configuration, credentials, local events file), or
         any item failed while strict mode is on.
    2 -- Argument parsing error (handled by argparse).
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable

from famcal.calendar.exceptions import CalendarAuthError
from famcal.config import ConfigError, load_settings
from famcal.exceptions import LocalEventsError, MappingStoreError
from famcal.log import setup_logging
from famcal.models.calendar import RunReport
from famcal.report import print_run_report
from famcal.workflows import (
    SyncContext,
    build_context,
    run_cleanup,
    run_dedup,
    run_delete,
    run_diagnostics,
    run_migration,
)

logger = logging.getLogger(__name__)

_CALENDAR_CHOICES = ("family", "person_a", "person_b")


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="famcal",
        description="Reconcile household events with Google Calendar.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "-v",
            "--verbose",
            action="store_true",
            default=False,
            help="Enable debug-level logging.",
        )
        sub.add_argument(
            "--strict",
            action="store_true",
            default=False,
            help="Exit 1 when any item failed (also SYNC_STRICT=true).",
        )

    add_common(subparsers.add_parser("migrate", help="Push eligible future local events."))
    add_common(
        subparsers.add_parser(
            "cleanup",
            help="Propagate cancellations, prune orphaned mappings, remove duplicates.",
        )
    )

    dedup_parser = subparsers.add_parser("dedup", help="Remove duplicate events.")
    add_common(dedup_parser)
    dedup_parser.add_argument(
        "--calendar",
        type=str,
        default=None,
        help=(
            f"Calendar to scan: one of {', '.join(_CALENDAR_CHOICES)} "
            "or a calendar ID (default: all)."
        ),
    )
    dedup_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Report duplicates without deleting them.",
    )

    add_common(subparsers.add_parser("diagnose", help="Read-only health report."))

    delete_parser = subparsers.add_parser(
        "delete", help="Delete the remote copies of local events."
    )
    add_common(delete_parser)
    delete_parser.add_argument("uids", nargs="+", help="Local event uids.")

    return parser


def _workflow(args: argparse.Namespace) -> Callable[[SyncContext, RunReport], RunReport]:
    """The workflow function for the parsed subcommand."""
    if args.command == "migrate":
        return lambda context, report: run_migration(context, report=report)
    if args.command == "cleanup":
        return lambda context, report: run_cleanup(context, report=report)
    if args.command == "dedup":
        return lambda context, report: run_dedup(
            context, calendar=args.calendar, dry_run=args.dry_run, report=report
        )
    if args.command == "diagnose":
        return lambda context, report: run_diagnostics(context, report=report)
    return lambda context, report: run_delete(context, args.uids, report=report)


def main(argv: list[str] | None = None) -> int:
    """Run the famcal CLI.

    Args:
        argv: Command-line arguments.  Defaults to ``sys.argv[1:]``
            when ``None`` (the normal case).

    Returns:
        Exit code (see module docstring).
    """
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    report = RunReport(workflow=args.command)
    strict = args.strict
    exit_code = 0

    try:
        settings = load_settings()
        strict = strict or settings.strict
        setup_logging("DEBUG" if args.verbose else settings.log_level)
        context = build_context(settings)
        _workflow(args)(context, report)
    except (ConfigError, CalendarAuthError, LocalEventsError, MappingStoreError) as exc:
        setup_logging("DEBUG" if args.verbose else "INFO")
        logger.error("%s aborted: %s", args.command, exc)
        report.aborted = str(exc)
        exit_code = 1
    finally:
        print_run_report(report)

    if exit_code == 0 and strict and report.errors > 0:
        exit_code = 1
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
