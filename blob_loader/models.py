"""Data models for the blob loader."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

# 1 MB as used by blobSizeMb (decimal megabyte)
BYTES_PER_MB = 1000 * 1000

DEFAULT_PREFIX = "foo"
DEFAULT_BLOB_COUNT = 100
DEFAULT_BLOB_SIZE_MB = 1.0
DEFAULT_CONCURRENCY = 4
DEFAULT_POLL_ATTEMPTS = 10
DEFAULT_POLL_INTERVAL = 2.0


class Network(Enum):
    """Known storage networks."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    DEVNET = "devnet"
    LOCALNET = "localnet"


class BroadcastMode(Enum):
    """How eagerly a write is confirmed before the call returns."""

    # Return immediately after the transaction is broadcast
    ASYNC = "async"
    # Wait for the check results
    SYNC = "sync"
    # Wait for the delivery results
    COMMIT = "commit"


class Target(Enum):
    """Which client implementation a scenario drives."""

    SDK = "sdk"
    S3 = "s3"
    MEMORY = "memory"


class Phase(Enum):
    """Workload phases of a scenario."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE = "delete"


class ScenarioState(Enum):
    """States of the scenario runner."""

    PENDING = "pending"
    FUNDING = "funding"
    BUYING_CREDIT = "buying_credit"
    RESOLVING_BUCKET = "resolving_bucket"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"
    DELETING = "deleting"
    DONE = "done"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (ScenarioState.DONE, ScenarioState.ABORTED)


class ResultStatus(Enum):
    """Status of a scenario or of the whole run."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


def normalize_prefix(prefix: str) -> str:
    """Strip a single trailing slash so keys read ``prefix/i``."""
    if prefix.endswith("/"):
        return prefix[:-1]
    return prefix


@dataclass(frozen=True)
class UploadSpec:
    """Upload phase configuration."""

    bucket: Optional[str] = None
    prefix: str = DEFAULT_PREFIX
    blob_count: int = DEFAULT_BLOB_COUNT
    blob_size_mb: float = DEFAULT_BLOB_SIZE_MB
    overwrite: bool = True

    @property
    def blob_size_bytes(self) -> int:
        """Size of each blob in bytes, never less than one."""
        return max(1, round(self.blob_size_mb * BYTES_PER_MB))

    def key_for(self, index: int) -> str:
        return f"{normalize_prefix(self.prefix)}/{index}"

    def keys(self) -> list[str]:
        return [self.key_for(i) for i in range(self.blob_count)]


@dataclass(frozen=True)
class DownloadSpec:
    """Download phase configuration.

    Selects keys by their 0-based sequence number using a half-open range
    ``[start, end)``. ``end=None`` means "to the last key", so the default
    instance downloads everything.
    """

    start: int = 0
    end: Optional[int] = None

    @property
    def full(self) -> bool:
        return self.start == 0 and self.end is None

    def indices(self, blob_count: int) -> range:
        """Sequence numbers in ``[start, min(end, blob_count))``."""
        end = blob_count if self.end is None else min(self.end, blob_count)
        return range(self.start, max(self.start, end))

    def describe(self) -> str:
        if self.full:
            return "all"
        end = "" if self.end is None else str(self.end)
        return f"[{self.start}, {end})"


@dataclass(frozen=True)
class ScenarioSpec:
    """One independently configured test run within a plan."""

    index: int
    upload: UploadSpec
    name: str = ""
    private_key: Optional[str] = field(default=None, repr=False)
    funder_private_key: Optional[str] = field(default=None, repr=False)
    request_funds: Optional[int] = None
    buy_credit: Optional[int] = None
    download: Optional[DownloadSpec] = None
    delete: bool = False
    broadcast_mode: BroadcastMode = BroadcastMode.COMMIT
    target: Target = Target.SDK
    concurrency: int = DEFAULT_CONCURRENCY
    poll_attempts: int = DEFAULT_POLL_ATTEMPTS
    poll_interval: float = DEFAULT_POLL_INTERVAL

    @property
    def label(self) -> str:
        return self.name or f"scenario-{self.index}"


@dataclass(frozen=True)
class TestPlan:
    """Root configuration: plan defaults plus the ordered scenarios."""

    __test__ = False  # not a pytest test class

    scenarios: tuple[ScenarioSpec, ...]
    network: Network = Network.DEVNET
    private_key: Optional[str] = field(default=None, repr=False)
    funder_private_key: Optional[str] = field(default=None, repr=False)
    endpoint: Optional[str] = None
    region: str = "us-east-1"
    max_error_rate: float = 0.0

    @property
    def targets(self) -> set[Target]:
        return {scenario.target for scenario in self.scenarios}


@dataclass(frozen=True)
class PhaseResult:
    """Outcome of one workload phase."""

    phase: Phase
    attempted: int = 0
    succeeded: int = 0
    failures: dict[str, int] = field(default_factory=dict)
    first_error: Optional[str] = None
    duration_seconds: float = 0.0
    skipped: bool = False

    @property
    def failed(self) -> int:
        return sum(self.failures.values())

    @property
    def error_rate(self) -> float:
        if self.attempted == 0:
            return 1.0 if self.failed else 0.0
        return self.failed / self.attempted


@dataclass(frozen=True)
class ScenarioResult:
    """Immutable outcome of one scenario, published by its runner."""

    index: int
    name: str
    state: ScenarioState
    bucket: Optional[str] = None
    phases: dict[Phase, PhaseResult] = field(default_factory=dict)
    error: Optional[str] = None
    failed_phase: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def aborted(self) -> bool:
        return self.state == ScenarioState.ABORTED

    def _count(self, phase: Phase, attr: str) -> int:
        result = self.phases.get(phase)
        return getattr(result, attr) if result else 0

    @property
    def attempted(self) -> int:
        return self._count(Phase.UPLOAD, "attempted")

    @property
    def uploaded(self) -> int:
        return self._count(Phase.UPLOAD, "succeeded")

    @property
    def downloaded(self) -> int:
        return self._count(Phase.DOWNLOAD, "succeeded")

    @property
    def deleted(self) -> int:
        return self._count(Phase.DELETE, "succeeded")

    @property
    def error_count(self) -> int:
        return sum(p.failed for p in self.phases.values())

    def status(self, max_error_rate: float = 0.0) -> ResultStatus:
        """PASS when not aborted and every phase is within the error budget."""
        if self.aborted:
            return ResultStatus.ERROR
        for phase_result in self.phases.values():
            if phase_result.failed and phase_result.error_rate > max_error_rate:
                return ResultStatus.FAIL
        return ResultStatus.PASS
