"""Console rendering of a workflow :class:`~famcal.models.calendar.RunReport`.

The report is the operator's view of a run: counters first, then one line
per failed item with enough context (uid, title, calendar, error) to fix it
by hand, then per-calendar deduplication results and diagnostic notes.

:func:`format_run_report` returns the text; :func:`print_run_report`
writes it to stdout.
"""

from __future__ import annotations

import sys

from famcal.models.calendar import DedupReport, RunReport

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BANNER_WIDTH = 60
_SEPARATOR = "=" * _BANNER_WIDTH


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def format_run_report(report: RunReport) -> str:
    """Render *report* as a multi-line string ready for console display."""
    lines: list[str] = []

    lines.append(_SEPARATOR)
    lines.append(f"  FAMCAL SYNC: {report.workflow.upper()}")
    lines.append(_SEPARATOR)

    if report.aborted:
        lines.append("")
        lines.append(f"  ABORTED: {report.aborted}")

    _append_counters(lines, report)
    _append_failures(lines, report)
    _append_dedup(lines, report.dedup)

    if report.notes:
        lines.append("")
        lines.append("--- NOTES ---")
        for note in report.notes:
            lines.append(f"  {note}")

    lines.append("")
    lines.append(f"  Duration: {report.duration_seconds:.1f}s")
    lines.append(_SEPARATOR)
    return "\n".join(lines)


def print_run_report(report: RunReport) -> None:
    """Format and print *report* to stdout."""
    sys.stdout.write(format_run_report(report) + "\n")


# ---------------------------------------------------------------------------
# Internal formatters
# ---------------------------------------------------------------------------


def _append_counters(lines: list[str], report: RunReport) -> None:
    lines.append("")
    lines.append("--- SUMMARY ---")
    lines.append(f"  Pushed: {report.pushed}")
    lines.append(f"  Skipped (already synced): {report.skipped}")
    lines.append(f"  Skipped (not eligible): {report.ineligible}")
    lines.append(f"  Deleted: {report.deleted}")
    lines.append(f"  Pruned mappings: {report.pruned}")
    lines.append(f"  Errors: {report.errors}")


def _append_failures(lines: list[str], report: RunReport) -> None:
    if not report.failures:
        return
    lines.append("")
    lines.append("--- FAILURES ---")
    for failure in report.failures:
        title = failure.get("summary") or "(no title)"
        lines.append(
            f'  [FAILED] {failure.get("uid") or "?"} "{title}" '
            f'on {failure.get("calendar") or "?"} -> {failure.get("error", "")}'
        )


def _append_dedup(lines: list[str], results: list[DedupReport]) -> None:
    if not results:
        return
    lines.append("")
    lines.append("--- DEDUPLICATION ---")
    for result in results:
        verb = "would delete" if result.dry_run else "deleted"
        lines.append(
            f"  {result.calendar_id}: scanned {result.total_scanned}, "
            f"{result.duplicate_groups} duplicate group(s), {verb} {result.deleted}, "
            f"failed {result.failed}"
        )
