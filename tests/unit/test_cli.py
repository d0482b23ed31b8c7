"""Unit tests for the CLI entrypoint.

Tests cover: each subcommand dispatching to its workflow, argument
passing (--calendar, --dry-run, uids), --verbose, fatal errors exiting 1
with the report still printed, strict mode, and argparse usage errors.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from famcal.__main__ import build_parser, main
from famcal.calendar.exceptions import CalendarAuthError
from famcal.exceptions import LocalEventsError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _with_errors(count: int):
    """Workflow stand-in that records *count* item failures."""

    def run(context, *args, report, **kwargs):
        for index in range(count):
            report.record_failure(f"uid-{index}", "Match", "cal", "HTTP 500")
        return report

    return run


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestCLI:
    """Unit tests for ``famcal.__main__.main``."""

    def test_migrate_runs_workflow(
        self, monkeypatch_env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        context = MagicMock()

        with (
            patch("famcal.__main__.build_context", return_value=context) as mock_build,
            patch("famcal.__main__.run_migration", side_effect=_with_errors(0)) as mock_run,
        ):
            exit_code = main(["migrate"])

        assert exit_code == 0
        mock_build.assert_called_once()
        assert mock_run.call_args.args[0] is context
        assert "FAMCAL SYNC: MIGRATE" in capsys.readouterr().out

    def test_dedup_arguments(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("famcal.__main__.build_context"),
            patch("famcal.__main__.run_dedup", side_effect=_with_errors(0)) as mock_run,
            patch("famcal.__main__.print_run_report"),
        ):
            main(["dedup", "--calendar", "family", "--dry-run"])

        assert mock_run.call_args.kwargs["calendar"] == "family"
        assert mock_run.call_args.kwargs["dry_run"] is True

    def test_delete_uids(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("famcal.__main__.build_context"),
            patch("famcal.__main__.run_delete", side_effect=_with_errors(0)) as mock_run,
            patch("famcal.__main__.print_run_report"),
        ):
            main(["delete", "ev-1", "ev-2"])

        assert mock_run.call_args.args[1] == ["ev-1", "ev-2"]

    @pytest.mark.parametrize(
        ("command", "target"),
        [("cleanup", "run_cleanup"), ("diagnose", "run_diagnostics")],
    )
    def test_other_subcommands(
        self, monkeypatch_env: dict[str, str], command: str, target: str
    ) -> None:
        with (
            patch("famcal.__main__.build_context"),
            patch(f"famcal.__main__.{target}", side_effect=_with_errors(0)) as mock_run,
            patch("famcal.__main__.print_run_report") as mock_print,
        ):
            assert main([command]) == 0

        mock_run.assert_called_once()
        assert mock_print.call_args.args[0].workflow == command

    def test_verbose_flag_sets_debug_logging(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("famcal.__main__.build_context"),
            patch("famcal.__main__.run_migration", side_effect=_with_errors(0)),
            patch("famcal.__main__.print_run_report"),
            patch("famcal.__main__.setup_logging") as mock_setup,
        ):
            main(["migrate", "-v"])

        mock_setup.assert_called_once_with("DEBUG")

    def test_log_level_from_settings(self, monkeypatch_env: dict[str, str], monkeypatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "warning")

        with (
            patch("famcal.__main__.build_context"),
            patch("famcal.__main__.run_migration", side_effect=_with_errors(0)),
            patch("famcal.__main__.print_run_report"),
            patch("famcal.__main__.setup_logging") as mock_setup,
        ):
            main(["migrate"])

        mock_setup.assert_called_once_with("WARNING")


class TestFatalErrors:
    def test_config_error_prints_report(
        self, clean_env: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch("famcal.__main__.build_context") as mock_build:
            exit_code = main(["migrate"])

        assert exit_code == 1
        mock_build.assert_not_called()
        out = capsys.readouterr().out
        assert "ABORTED" in out
        assert "GOOGLE_CREDENTIALS_PATH" in out

    def test_auth_error_exits_1(
        self, monkeypatch_env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch(
            "famcal.__main__.build_context", side_effect=CalendarAuthError("token revoked")
        ):
            exit_code = main(["cleanup"])

        assert exit_code == 1
        assert "ABORTED: token revoked" in capsys.readouterr().out

    def test_local_events_error_exits_1(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("famcal.__main__.build_context"),
            patch(
                "famcal.__main__.run_migration",
                side_effect=LocalEventsError("Local events file not found: x"),
            ),
            patch("famcal.__main__.print_run_report") as mock_print,
        ):
            exit_code = main(["migrate"])

        assert exit_code == 1
        assert mock_print.call_args.args[0].aborted == "Local events file not found: x"


class TestStrictMode:
    def test_item_failures_exit_0_by_default(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("famcal.__main__.build_context"),
            patch("famcal.__main__.run_migration", side_effect=_with_errors(2)),
            patch("famcal.__main__.print_run_report"),
        ):
            assert main(["migrate"]) == 0

    def test_strict_flag(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("famcal.__main__.build_context"),
            patch("famcal.__main__.run_migration", side_effect=_with_errors(1)),
            patch("famcal.__main__.print_run_report"),
        ):
            assert main(["migrate", "--strict"]) == 1

    def test_strict_from_environment(self, monkeypatch_env: dict[str, str], monkeypatch) -> None:
        monkeypatch.setenv("SYNC_STRICT", "true")

        with (
            patch("famcal.__main__.build_context"),
            patch("famcal.__main__.run_migration", side_effect=_with_errors(1)),
            patch("famcal.__main__.print_run_report"),
        ):
            assert main(["migrate"]) == 1

    def test_strict_without_failures(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("famcal.__main__.build_context"),
            patch("famcal.__main__.run_migration", side_effect=_with_errors(0)),
            patch("famcal.__main__.print_run_report"),
        ):
            assert main(["migrate", "--strict"]) == 0


class TestArguments:
    def test_missing_subcommand_shows_usage(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 2
        assert "usage" in capsys.readouterr().err.lower()

    def test_delete_requires_uid(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["delete"])

    def test_dedup_defaults(self) -> None:
        args = build_parser().parse_args(["dedup"])

        assert args.calendar is None
        assert args.dry_run is False
        assert args.strict is False
