"""Exception hierarchy for the blob loader.

Three tiers, matching how far a failure is allowed to travel:

- ConfigError: raised before any network call, aborts the whole run.
- ScenarioAbort (AccountError, CreditError, BucketError, ScenarioCancelled):
  aborts only the scenario that raised it. Sibling scenarios keep running.
- BlobOpError: a single key failed. Recorded in the phase counters and
  never stops the phase.
"""

from enum import Enum
from typing import Optional


class FailureKind(Enum):
    """Category of a per-key failure, used for the report breakdown."""

    NOT_FOUND = "not_found"
    NOT_FOUND_ON_POLL = "not_found_on_poll"
    ALREADY_EXISTS = "already_exists"
    SIZE_MISMATCH = "size_mismatch"
    GAS = "gas"
    TRANSIENT = "transient"
    BACKEND = "backend"
    CANCELLED = "cancelled"


class LoaderError(Exception):
    """Base class for all blob loader errors."""

    pass


class ConfigError(LoaderError):
    """Raised when a test plan cannot be loaded or fails validation."""

    pass


class ScenarioAbort(LoaderError):
    """A failure that makes it unsafe to continue a scenario."""

    phase = "setup"


class AccountError(ScenarioAbort):
    """Signing identity could not be resolved or funded."""

    phase = "funding"


class CreditError(ScenarioAbort):
    """Credit purchase failed."""

    phase = "buying_credit"


class BucketError(ScenarioAbort):
    """Bucket creation failed."""

    phase = "resolving_bucket"


class ScenarioCancelled(ScenarioAbort):
    """Shutdown was requested before a setup step could start."""

    phase = "cancelled"


class UnsupportedOperation(LoaderError):
    """The selected target does not implement an operation."""

    pass


class BlobOpError(LoaderError):
    """A single blob operation failed.

    Args:
        message: Human readable description
        kind: Failure category
        key: The blob key involved, if any
    """

    def __init__(
        self,
        message: str,
        kind: FailureKind = FailureKind.BACKEND,
        key: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.key = key


class NotFound(BlobOpError):
    """The requested blob does not exist (yet)."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, kind=FailureKind.NOT_FOUND, key=key)


class NotFoundOnPoll(BlobOpError):
    """Existence polling ran out of attempts before the blob became visible."""

    def __init__(self, message: str, key: Optional[str] = None, attempts: int = 0):
        super().__init__(message, kind=FailureKind.NOT_FOUND_ON_POLL, key=key)
        self.attempts = attempts


class AlreadyExists(BlobOpError):
    """Upload collided with an existing key while overwrite is disabled."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, kind=FailureKind.ALREADY_EXISTS, key=key)
