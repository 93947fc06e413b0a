"""Console reporter using Rich library for formatted CLI output.

Provides colorful, formatted output during a run including:
- Scenario headers and per-phase progress
- Final summary table comparing all scenarios
- Per-operation statistics table
"""

from typing import Optional

from rich import box
from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from blob_loader.models import PhaseResult, ResultStatus, ScenarioResult, ScenarioSpec
from blob_loader.reporters.base import Reporter
from blob_loader.stats import format_duration, format_throughput

STATUS_MARKUP = {
    ResultStatus.PASS: "[green]PASS[/green]",
    ResultStatus.FAIL: "[red]FAIL[/red]",
    ResultStatus.ERROR: "[yellow]ABORTED[/yellow]",
}


def format_failures(result: PhaseResult) -> str:
    """Render failure counts like ``already_exists=3 gas=1``."""
    if not result.failures:
        return "-"
    return " ".join(f"{kind}={count}" for kind, count in sorted(result.failures.items()))


class ConsoleReporter(Reporter):
    """Rich-based console reporter for CLI output.

    Args:
        quiet: If True, suppress per-phase output (only show summary)
        console: Console to print to (defaults to stdout)
    """

    def __init__(self, quiet: bool = False, console: Optional[Console] = None):
        # Use legacy_windows=True for ASCII-safe output on Windows consoles
        self.console = console or Console(legacy_windows=True)
        self.quiet = quiet

    def on_scenario_start(self, scenario: ScenarioSpec) -> None:
        if self.quiet:
            return
        upload = scenario.upload
        self.console.print(
            Rule(
                f"[bold cyan]Starting: {scenario.label}[/bold cyan] "
                f"[dim]({upload.blob_count} x {upload.blob_size_bytes} bytes, "
                f"{scenario.broadcast_mode.value})[/dim]",
                style="cyan",
                characters="-",
            )
        )

    def on_phase_complete(self, scenario: ScenarioSpec, result: PhaseResult) -> None:
        """Displays the phase counts with a pass/fail indicator."""
        if self.quiet:
            return

        if result.skipped:
            status_text = "[yellow][SKIP][/yellow]"
        elif result.failed:
            status_text = "[red][FAIL][/red]"
        else:
            status_text = "[green][ OK ][/green]"

        self.console.print(
            f"  {status_text} {scenario.label} {result.phase.value}: "
            f"{result.succeeded}/{result.attempted} in {format_duration(result.duration_seconds)}"
        )
        if result.failed:
            self.console.print(f"     [dim]{format_failures(result)}: {result.first_error}[/dim]")

    def on_scenario_complete(self, result: ScenarioResult, status: ResultStatus) -> None:
        if status == ResultStatus.PASS:
            status_text = "[bold green]PASSED[/bold green]"
        elif status == ResultStatus.FAIL:
            status_text = "[bold red]FAILED[/bold red]"
        else:
            status_text = "[bold yellow]ABORTED[/bold yellow]"

        self.console.print(
            f"{result.name}: {status_text} in {format_duration(result.duration_seconds)}"
        )
        if result.error:
            self.console.print(f"   [dim red]{result.failed_phase}: {result.error}[/dim red]")

    def on_run_complete(self, result) -> None:
        """Displays the scenario summary and the operation statistics."""
        if not result.scenarios:
            self.console.print("[yellow]No results to display.[/yellow]")
            return

        self.console.print()
        self.console.print(Rule("[bold]Scenario Summary[/bold]", style="magenta", characters="-"))

        table = Table(show_header=True, header_style="bold magenta", border_style="dim", box=box.ASCII)
        table.add_column("Scenario", style="cyan", no_wrap=True)
        table.add_column("Bucket", no_wrap=True)
        table.add_column("Uploaded", justify="right")
        table.add_column("Downloaded", justify="right")
        table.add_column("Deleted", justify="right")
        table.add_column("Failures")
        table.add_column("Failed phase", no_wrap=True)
        table.add_column("Status", justify="center", no_wrap=True)

        for scenario in result.scenarios:
            failures = "; ".join(
                f"{phase.value}: {format_failures(phase_result)}"
                for phase, phase_result in scenario.phases.items()
                if phase_result.failed
            )
            table.add_row(
                scenario.name,
                scenario.bucket or "-",
                f"{scenario.uploaded}/{scenario.attempted}",
                str(scenario.downloaded),
                str(scenario.deleted),
                failures or "-",
                scenario.failed_phase or "-",
                STATUS_MARKUP[result.status_of(scenario)],
            )

        self.console.print(table)

        if result.statistics:
            self.console.print(self._statistics_table(result.statistics))

        verdict = "[bold green]ALL PASSED[/bold green]" if result.all_passed else "[bold red]FAILED[/bold red]"
        self.console.print(f"{verdict} in {format_duration(result.total_duration)}")
        self.console.print()

    @staticmethod
    def _statistics_table(statistics: dict) -> Table:
        table = Table(title="Operations", header_style="bold magenta", border_style="dim", box=box.ASCII)
        for column in ("Op", "Total", "Errors", "Concurrency", "Duration", "Throughput",
                       "Obj/s", "Min", "Avg", "Max"):
            table.add_column(column, justify="right" if column != "Op" else "left", no_wrap=True)

        for op_type, stats in statistics.items():
            def duration(name):
                value = stats.get(name)
                return "-" if value is None else format_duration(value)

            table.add_row(
                op_type,
                str(stats["total"]),
                str(stats["errors"]),
                str(stats["concurrency"]),
                format_duration(stats["duration_seconds"]),
                format_throughput(stats["throughput_bytes_per_sec"]),
                f"{stats['objects_per_sec']:.1f}",
                duration("min_duration_seconds"),
                duration("avg_duration_seconds"),
                duration("max_duration_seconds"),
            )
        return table
