"""Scenario runner and orchestrator.

Coordinates test execution across the scenarios of a plan:
- One ScenarioRunner per scenario, stepping through an explicit state machine
- All runners executed concurrently, each fully isolated from the others
- Reporter callbacks for progress
- Aggregation into a RunResult with the overall pass/fail verdict
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from blob_loader.clients.base import ChainClient, Identity
from blob_loader.errors import ScenarioAbort, ScenarioCancelled
from blob_loader.models import (
    Phase,
    PhaseResult,
    ResultStatus,
    ScenarioResult,
    ScenarioSpec,
    ScenarioState,
    Target,
    TestPlan,
)
from blob_loader.provisioning import buy_credits, fund_account, resolve_account, resolve_bucket
from blob_loader.stats import Collector
from blob_loader.workloads import DeleteDriver, DownloadDriver, UploadDriver, WorkloadContext

logger = logging.getLogger(__name__)

# States whose handlers spend money or create resources
SETUP_STATES = frozenset(
    {ScenarioState.FUNDING, ScenarioState.BUYING_CREDIT, ScenarioState.RESOLVING_BUCKET}
)


def next_state(state: ScenarioState, scenario: ScenarioSpec) -> ScenarioState:
    """The state that follows ``state`` for this scenario.

    Credit purchase, download and delete are skipped when not configured.
    """
    if state == ScenarioState.PENDING:
        return ScenarioState.FUNDING
    if state == ScenarioState.FUNDING:
        return ScenarioState.BUYING_CREDIT if scenario.buy_credit else ScenarioState.RESOLVING_BUCKET
    if state == ScenarioState.BUYING_CREDIT:
        return ScenarioState.RESOLVING_BUCKET
    if state == ScenarioState.RESOLVING_BUCKET:
        return ScenarioState.UPLOADING
    if state == ScenarioState.UPLOADING and scenario.download is not None:
        return ScenarioState.DOWNLOADING
    if state in (ScenarioState.UPLOADING, ScenarioState.DOWNLOADING) and scenario.delete:
        return ScenarioState.DELETING
    if state in (ScenarioState.UPLOADING, ScenarioState.DOWNLOADING, ScenarioState.DELETING):
        return ScenarioState.DONE
    raise ValueError(f"no transition out of terminal state {state.value}")


@dataclass
class RunResult:
    """Result of running every scenario of a plan."""

    scenarios: list[ScenarioResult]
    total_duration: float
    max_error_rate: float = 0.0
    statistics: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()))

    def status_of(self, result: ScenarioResult) -> ResultStatus:
        return result.status(self.max_error_rate)

    @property
    def all_passed(self) -> bool:
        """True when no scenario aborted and every phase is within the error budget."""
        return bool(self.scenarios) and all(
            self.status_of(s) == ResultStatus.PASS for s in self.scenarios
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.all_passed else 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        scenarios = []
        for result in self.scenarios:
            phases = {}
            for phase, phase_result in result.phases.items():
                phases[phase.value] = {
                    "attempted": phase_result.attempted,
                    "succeeded": phase_result.succeeded,
                    "failed": phase_result.failed,
                    "failures": dict(phase_result.failures),
                    "first_error": phase_result.first_error,
                    "duration_seconds": round(phase_result.duration_seconds, 3),
                    "skipped": phase_result.skipped,
                }

            scenarios.append({
                "index": result.index,
                "name": result.name,
                "status": self.status_of(result).value,
                "state": result.state.value,
                "bucket": result.bucket,
                "failed_phase": result.failed_phase,
                "error": result.error,
                "counts": {
                    "attempted": result.attempted,
                    "uploaded": result.uploaded,
                    "downloaded": result.downloaded,
                    "deleted": result.deleted,
                },
                "phases": phases,
                "duration_seconds": round(result.duration_seconds, 3),
            })

        statuses = [self.status_of(s) for s in self.scenarios]
        return {
            "timestamp": self.timestamp,
            "scenarios": scenarios,
            "statistics": self.statistics,
            "summary": {
                "total_scenarios": len(self.scenarios),
                "passed": statuses.count(ResultStatus.PASS),
                "failed": statuses.count(ResultStatus.FAIL),
                "aborted": statuses.count(ResultStatus.ERROR),
                "max_error_rate": self.max_error_rate,
                "total_duration_seconds": round(self.total_duration, 3),
                "all_passed": self.all_passed,
            },
        }


class ScenarioRunner:
    """Runs one scenario: setup, then upload, then optional download and delete.

    Owns all mutable progress state of its scenario and publishes a single
    immutable ScenarioResult from run().
    """

    def __init__(
        self,
        scenario: ScenarioSpec,
        client: ChainClient,
        plan: Optional[TestPlan] = None,
        collector: Optional[Collector] = None,
        stop: Optional[threading.Event] = None,
        reporter: Optional[Any] = None,
    ):
        self.scenario = scenario
        self.client = client
        self.plan = plan
        self.collector = collector or Collector()
        self.stop = stop or threading.Event()
        self.reporter = reporter

        self.state = ScenarioState.PENDING
        self.history: list[ScenarioState] = [ScenarioState.PENDING]
        self.identity: Optional[Identity] = None
        self.bucket: Optional[str] = None
        self.uploaded: list[str] = []
        self.phases: dict[Phase, PhaseResult] = {}

        self._handlers: dict[ScenarioState, Callable[[], None]] = {
            ScenarioState.FUNDING: self._fund,
            ScenarioState.BUYING_CREDIT: self._buy_credit,
            ScenarioState.RESOLVING_BUCKET: self._resolve_bucket,
            ScenarioState.UPLOADING: self._upload,
            ScenarioState.DOWNLOADING: self._download,
            ScenarioState.DELETING: self._delete,
        }

    def _context(self) -> WorkloadContext:
        return WorkloadContext(
            client=self.client,
            identity=self.identity,
            bucket=self.bucket,
            scenario=self.scenario,
            collector=self.collector,
            stop=self.stop,
        )

    def _record(self, result: PhaseResult) -> None:
        self.phases[result.phase] = result
        if self.reporter:
            self.reporter.on_phase_complete(self.scenario, result)

    def _fund(self) -> None:
        self.identity = resolve_account(self.client, self.scenario, self.plan)
        fund_account(self.client, self.scenario, self.identity, self.plan)

    def _buy_credit(self) -> None:
        buy_credits(self.client, self.scenario, self.identity)

    def _resolve_bucket(self) -> None:
        self.bucket = resolve_bucket(self.client, self.scenario, self.identity)

    def _upload(self) -> None:
        result, self.uploaded = UploadDriver(self._context()).run()
        self._record(result)

    def _download(self) -> None:
        self._record(DownloadDriver(self._context()).run(self.uploaded))

    def _delete(self) -> None:
        self._record(DeleteDriver(self._context()).run(self.uploaded))

    def _transition(self, state: ScenarioState) -> None:
        logger.debug("%s: %s -> %s", self.scenario.label, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def run(self) -> ScenarioResult:
        """Drive the state machine to a terminal state."""
        start = time.monotonic()
        error: Optional[str] = None
        failed_phase: Optional[str] = None

        if self.reporter:
            self.reporter.on_scenario_start(self.scenario)

        try:
            while not self.state.terminal:
                self._transition(next_state(self.state, self.scenario))
                if self.stop.is_set() and self.state in SETUP_STATES:
                    raise ScenarioCancelled(f"shutdown requested before {self.state.value}")
                handler = self._handlers.get(self.state)
                if handler:
                    handler()
        except ScenarioAbort as e:
            failed_phase = self.state.value
            error = str(e)
            logger.error("%s: aborted during %s: %s", self.scenario.label, failed_phase, e)
            self._transition(ScenarioState.ABORTED)
        except Exception as e:
            failed_phase = "internal"
            error = f"unexpected error: {e}"
            logger.exception("%s: crashed during %s", self.scenario.label, self.state.value)
            self._transition(ScenarioState.ABORTED)

        if self.state == ScenarioState.DONE:
            for phase_result in self.phases.values():
                if phase_result.failed and failed_phase is None:
                    failed_phase = phase_result.phase.value

        result = ScenarioResult(
            index=self.scenario.index,
            name=self.scenario.label,
            state=self.state,
            bucket=self.bucket,
            phases=dict(self.phases),
            error=error,
            failed_phase=failed_phase,
            duration_seconds=time.monotonic() - start,
        )
        logger.info(
            "%s: %s (uploaded %d/%d, downloaded %d, deleted %d, errors %d)",
            self.scenario.label,
            self.state.value,
            result.uploaded,
            result.attempted,
            result.downloaded,
            result.deleted,
            result.error_count,
        )
        return result


class Orchestrator:
    """Runs every scenario of a plan concurrently and aggregates the results.

    Args:
        plan: Validated test plan
        clients: One chain client per target used by the plan
        reporter: Optional reporter for progress callbacks
        collector: Shared operation statistics sink
        stop: Shutdown event shared with every worker pool
        max_error_rate: Overrides the plan's error budget when set
    """

    def __init__(
        self,
        plan: TestPlan,
        clients: Mapping[Target, ChainClient],
        reporter: Optional[Any] = None,
        collector: Optional[Collector] = None,
        stop: Optional[threading.Event] = None,
        max_error_rate: Optional[float] = None,
    ):
        self.plan = plan
        self.clients = clients
        self.reporter = reporter
        self.collector = collector or Collector()
        self.stop = stop or threading.Event()
        self.max_error_rate = plan.max_error_rate if max_error_rate is None else max_error_rate

    def shutdown(self) -> None:
        """Stop issuing new requests; in-flight calls are left to finish."""
        logger.warning("shutdown requested, draining in-flight requests")
        self.stop.set()

    def _run_scenario(self, scenario: ScenarioSpec) -> ScenarioResult:
        try:
            runner = ScenarioRunner(
                scenario,
                self.clients[scenario.target],
                plan=self.plan,
                collector=self.collector,
                stop=self.stop,
                reporter=self.reporter,
            )
        except Exception as e:
            logger.exception("%s: runner could not be created", scenario.label)
            result = ScenarioResult(
                index=scenario.index,
                name=scenario.label,
                state=ScenarioState.ABORTED,
                error=f"unexpected error: {e}",
                failed_phase="internal",
            )
        else:
            result = runner.run()

        if self.reporter:
            self.reporter.on_scenario_complete(result, result.status(self.max_error_rate))
        return result

    def run(self) -> RunResult:
        """Run all scenarios and wait for every one to reach a terminal state."""
        start = time.monotonic()
        scenarios = self.plan.scenarios
        logger.info("running %d scenarios on %s", len(scenarios), self.plan.network.value)

        with ThreadPoolExecutor(max_workers=len(scenarios), thread_name_prefix="scenario") as executor:
            futures = [executor.submit(self._run_scenario, scenario) for scenario in scenarios]
            results = [future.result() for future in futures]

        run_result = RunResult(
            scenarios=sorted(results, key=lambda r: r.index),
            total_duration=time.monotonic() - start,
            max_error_rate=self.max_error_rate,
            statistics=self.collector.to_dict(),
        )

        if self.reporter:
            self.reporter.on_run_complete(run_result)

        return run_result
