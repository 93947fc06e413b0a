"""Base reporter interface.

Callbacks arrive from scenario threads, so implementations must tolerate
concurrent calls.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from blob_loader.models import PhaseResult, ResultStatus, ScenarioResult, ScenarioSpec
    from blob_loader.runner import RunResult


class Reporter(ABC):
    """Abstract base class for run reporters."""

    @abstractmethod
    def on_scenario_start(self, scenario: "ScenarioSpec") -> None:
        """Called when a scenario starts."""
        pass

    @abstractmethod
    def on_phase_complete(self, scenario: "ScenarioSpec", result: "PhaseResult") -> None:
        """Called when a workload phase of a scenario completes."""
        pass

    @abstractmethod
    def on_scenario_complete(self, result: "ScenarioResult", status: "ResultStatus") -> None:
        """Called when a scenario reaches a terminal state."""
        pass

    @abstractmethod
    def on_run_complete(self, result: "RunResult") -> None:
        """Called when every scenario has finished."""
        pass
