"""Tests for data models."""

import pytest

from blob_loader.models import (
    DownloadSpec,
    Phase,
    PhaseResult,
    ResultStatus,
    ScenarioResult,
    ScenarioSpec,
    ScenarioState,
    TestPlan,
    Target,
    UploadSpec,
    normalize_prefix,
)


class TestUploadSpec:
    """Tests for UploadSpec."""

    def test_keys_follow_prefix_and_sequence(self):
        """Keys are prefix/0 .. prefix/N-1."""
        spec = UploadSpec(prefix="foo", blob_count=3)
        assert spec.keys() == ["foo/0", "foo/1", "foo/2"]

    def test_trailing_slash_is_not_doubled(self):
        """A prefix ending in '/' still yields prefix/i."""
        assert UploadSpec(prefix="foo/").key_for(7) == "foo/7"
        assert normalize_prefix("a/b/") == "a/b"
        assert normalize_prefix("a/b") == "a/b"

    @pytest.mark.parametrize("mb,expected", [
        (1.0, 1_000_000),
        (0.5, 500_000),
        (0.0001, 100),
        (1e-9, 1),
    ])
    def test_blob_size_bytes(self, mb, expected):
        """Sizes use decimal megabytes and never drop below one byte."""
        assert UploadSpec(blob_size_mb=mb).blob_size_bytes == expected


class TestDownloadSpec:
    """Tests for DownloadSpec index selection."""

    def test_default_is_full(self):
        """The default range covers every key."""
        spec = DownloadSpec()
        assert spec.full is True
        assert list(spec.indices(4)) == [0, 1, 2, 3]
        assert spec.describe() == "all"

    def test_half_open_range(self):
        """[start, end) excludes end."""
        assert list(DownloadSpec(start=1, end=3).indices(10)) == [1, 2]

    def test_end_clamped_to_count(self):
        """An end past the last key is clamped."""
        assert list(DownloadSpec(start=2, end=50).indices(4)) == [2, 3]

    def test_start_past_count_is_empty(self):
        """A start past the last key selects nothing."""
        assert list(DownloadSpec(start=8).indices(4)) == []

    def test_describe(self):
        """describe renders the range."""
        assert DownloadSpec(start=1, end=3).describe() == "[1, 3)"
        assert DownloadSpec(start=2).describe() == "[2, )"


class TestScenarioSpec:
    """Tests for ScenarioSpec."""

    def test_label_falls_back_to_index(self):
        """Unnamed scenarios are labelled by index."""
        assert ScenarioSpec(index=2, upload=UploadSpec()).label == "scenario-2"
        assert ScenarioSpec(index=2, upload=UploadSpec(), name="x").label == "x"

    def test_keys_hidden_from_repr(self):
        """Secrets never show up in repr."""
        spec = ScenarioSpec(index=0, upload=UploadSpec(), private_key="secret-key")
        assert "secret-key" not in repr(spec)

    def test_plan_targets(self):
        """targets collects the distinct targets of a plan."""
        plan = TestPlan(scenarios=(
            ScenarioSpec(index=0, upload=UploadSpec(), target=Target.MEMORY),
            ScenarioSpec(index=1, upload=UploadSpec(), target=Target.MEMORY),
            ScenarioSpec(index=2, upload=UploadSpec(), target=Target.S3),
        ))
        assert plan.targets == {Target.MEMORY, Target.S3}


class TestScenarioState:
    """Tests for ScenarioState."""

    @pytest.mark.parametrize("state", [ScenarioState.DONE, ScenarioState.ABORTED])
    def test_terminal_states(self, state):
        assert state.terminal is True

    def test_non_terminal_states(self):
        """Everything else is non-terminal."""
        terminal = {ScenarioState.DONE, ScenarioState.ABORTED}
        assert not any(s.terminal for s in ScenarioState if s not in terminal)


class TestPhaseResult:
    """Tests for PhaseResult."""

    def test_failed_sums_failure_kinds(self):
        """failed is the total over all failure kinds."""
        result = PhaseResult(Phase.UPLOAD, attempted=10, succeeded=7,
                             failures={"gas": 2, "transient": 1})
        assert result.failed == 3
        assert result.error_rate == pytest.approx(0.3)

    def test_error_rate_without_attempts(self):
        """A phase with failures but no attempts (listing failed) is fully failed."""
        assert PhaseResult(Phase.DELETE, failures={"backend": 1}).error_rate == 1.0
        assert PhaseResult(Phase.DELETE).error_rate == 0.0


class TestScenarioResult:
    """Tests for ScenarioResult status."""

    def _result(self, **failures):
        upload = PhaseResult(Phase.UPLOAD, attempted=10, succeeded=10 - sum(failures.values()),
                             failures=failures)
        return ScenarioResult(index=0, name="s", state=ScenarioState.DONE,
                              phases={Phase.UPLOAD: upload})

    def test_clean_run_passes(self):
        """No failures means PASS."""
        assert self._result().status() == ResultStatus.PASS

    def test_any_failure_fails_by_default(self):
        """With a zero error budget any failure is FAIL."""
        assert self._result(gas=1).status() == ResultStatus.FAIL

    def test_failures_within_budget_pass(self):
        """Failures at or below max_error_rate still PASS."""
        assert self._result(gas=1).status(max_error_rate=0.1) == ResultStatus.PASS
        assert self._result(gas=2).status(max_error_rate=0.1) == ResultStatus.FAIL

    def test_aborted_is_error(self):
        """An aborted scenario is ERROR regardless of the budget."""
        result = ScenarioResult(index=0, name="s", state=ScenarioState.ABORTED)
        assert result.status(max_error_rate=1.0) == ResultStatus.ERROR

    def test_counts(self):
        """Counts come from the matching phases."""
        result = ScenarioResult(
            index=0,
            name="s",
            state=ScenarioState.DONE,
            phases={
                Phase.UPLOAD: PhaseResult(Phase.UPLOAD, attempted=4, succeeded=3, failures={"gas": 1}),
                Phase.DOWNLOAD: PhaseResult(Phase.DOWNLOAD, attempted=3, succeeded=2,
                                            failures={"not_found_on_poll": 1}),
            },
        )
        assert result.attempted == 4
        assert result.uploaded == 3
        assert result.downloaded == 2
        assert result.deleted == 0
        assert result.error_count == 2
