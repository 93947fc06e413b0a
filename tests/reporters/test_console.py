"""Tests for ConsoleReporter.

Tests the Rich-based console output reporter.
"""

from io import StringIO
from unittest.mock import patch

import pytest
from rich.console import Console

from blob_loader.models import (
    Phase,
    PhaseResult,
    ResultStatus,
    ScenarioResult,
    ScenarioSpec,
    ScenarioState,
    UploadSpec,
)
from blob_loader.reporters.base import Reporter
from blob_loader.reporters.console import ConsoleReporter, format_failures
from blob_loader.runner import RunResult


def make_reporter(quiet=False):
    buffer = StringIO()
    console = Console(file=buffer, width=200, color_system=None)
    return ConsoleReporter(quiet=quiet, console=console), buffer


SPEC = ScenarioSpec(index=0, name="smoke", upload=UploadSpec(blob_count=4, blob_size_mb=0.0001))


class TestConsoleReporterInterface:
    """Tests that ConsoleReporter implements Reporter interface."""

    def test_inherits_from_reporter(self):
        """ConsoleReporter should inherit from Reporter."""
        assert isinstance(ConsoleReporter(), Reporter)


class TestFormatFailures:
    """Tests for failure breakdown rendering."""

    def test_sorted_breakdown(self):
        result = PhaseResult(Phase.UPLOAD, failures={"transient": 1, "gas": 3})
        assert format_failures(result) == "gas=3 transient=1"

    def test_no_failures(self):
        assert format_failures(PhaseResult(Phase.UPLOAD)) == "-"


class TestConsoleReporterProgress:
    """Tests for scenario and phase progress output."""

    def test_scenario_start_header(self):
        """The header names the scenario and its workload."""
        reporter, buffer = make_reporter()

        reporter.on_scenario_start(SPEC)

        text = buffer.getvalue()
        assert "smoke" in text
        assert "4 x 100 bytes" in text

    @pytest.mark.parametrize("result,marker", [
        (PhaseResult(Phase.UPLOAD, attempted=4, succeeded=4), "[ OK ]"),
        (PhaseResult(Phase.UPLOAD, attempted=4, succeeded=3, failures={"gas": 1},
                     first_error="out of gas"), "[FAIL]"),
        (PhaseResult(Phase.DELETE, failures={"backend": 1}, skipped=True), "[SKIP]"),
    ])
    def test_phase_markers(self, result, marker):
        """Each phase line carries its outcome marker."""
        reporter, buffer = make_reporter()

        reporter.on_phase_complete(SPEC, result)

        assert marker in buffer.getvalue()

    def test_phase_failure_detail(self):
        """Failed phases show the breakdown and first error."""
        reporter, buffer = make_reporter()
        result = PhaseResult(Phase.UPLOAD, attempted=4, succeeded=3, failures={"gas": 1},
                             first_error="out of gas")

        reporter.on_phase_complete(SPEC, result)

        assert "gas=1: out of gas" in buffer.getvalue()

    def test_quiet_suppresses_progress(self):
        """Quiet mode prints nothing per phase."""
        reporter, buffer = make_reporter(quiet=True)

        reporter.on_scenario_start(SPEC)
        reporter.on_phase_complete(SPEC, PhaseResult(Phase.UPLOAD, attempted=1, succeeded=1))

        assert buffer.getvalue() == ""

    @pytest.mark.parametrize("status,text", [
        (ResultStatus.PASS, "PASSED"),
        (ResultStatus.FAIL, "FAILED"),
        (ResultStatus.ERROR, "ABORTED"),
    ])
    def test_scenario_complete(self, status, text):
        reporter, buffer = make_reporter(quiet=True)
        result = ScenarioResult(index=0, name="smoke", state=ScenarioState.DONE)

        reporter.on_scenario_complete(result, status)

        assert f"smoke: {text}" in buffer.getvalue()

    def test_aborted_scenario_shows_phase_and_error(self):
        reporter, buffer = make_reporter()
        result = ScenarioResult(index=0, name="smoke", state=ScenarioState.ABORTED,
                                error="faucet down", failed_phase="funding")

        reporter.on_scenario_complete(result, ResultStatus.ERROR)

        assert "funding: faucet down" in buffer.getvalue()


class TestConsoleReporterRunComplete:
    """Tests for on_run_complete method."""

    def test_prints_summary_and_statistics(self):
        """The summary table lists scenarios and the operations table follows."""
        reporter, buffer = make_reporter()
        upload = PhaseResult(Phase.UPLOAD, attempted=4, succeeded=3, failures={"gas": 1})
        result = RunResult(
            scenarios=[ScenarioResult(index=0, name="smoke", state=ScenarioState.DONE,
                                      bucket="t2bucket", phases={Phase.UPLOAD: upload},
                                      failed_phase="upload")],
            total_duration=2.5,
            statistics={
                "put": {
                    "total": 4, "errors": 1, "concurrency": 2, "duration_seconds": 1.0,
                    "bytes": 300, "throughput_bytes_per_sec": 300.0, "objects_per_sec": 4.0,
                    "min_duration_seconds": 0.1, "avg_duration_seconds": 0.2,
                    "max_duration_seconds": 0.3,
                },
            },
        )

        reporter.on_run_complete(result)

        text = buffer.getvalue()
        assert "Scenario Summary" in text
        assert "t2bucket" in text
        assert "3/4" in text
        assert "upload: gas=1" in text
        assert "Operations" in text
        assert "300.0B/s" in text
        assert "FAILED in 2.500s" in text

    def test_empty_results(self):
        """Should handle empty results gracefully."""
        reporter, _ = make_reporter()

        with patch.object(reporter.console, "print") as mock_print:
            reporter.on_run_complete(RunResult(scenarios=[], total_duration=0.0))

        mock_print.assert_called_once()
