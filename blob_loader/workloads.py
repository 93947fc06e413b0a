"""Upload, download and delete drivers.

Each driver runs one phase of a scenario over a bounded WorkerPool. A
failure on one key is recorded in the phase counters under its FailureKind
and never stops the phase.
"""

import logging
import os
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from blob_loader.clients.base import ChainClient, Identity
from blob_loader.errors import BlobOpError, FailureKind
from blob_loader.models import DownloadSpec, Phase, PhaseResult, ScenarioSpec, normalize_prefix
from blob_loader.pool import WorkerPool
from blob_loader.retry import poll_until_found
from blob_loader.stats import Collector, OperationType

logger = logging.getLogger(__name__)


def make_payload(size: int) -> bytes:
    """Random bytes of exactly ``size`` length."""
    return os.urandom(size)


def failure_kind(error: Exception) -> FailureKind:
    if isinstance(error, BlobOpError):
        return error.kind
    return FailureKind.BACKEND


class PhaseTracker:
    """Thread-safe counters for one phase, frozen into a PhaseResult at the end."""

    def __init__(self, phase: Phase):
        self.phase = phase
        self.attempted = 0
        self.succeeded = 0
        self.failures: Counter = Counter()
        self.first_error: Optional[str] = None
        self._lock = threading.Lock()
        self._start = time.monotonic()

    def attempt(self) -> None:
        with self._lock:
            self.attempted += 1

    def success(self) -> None:
        with self._lock:
            self.succeeded += 1

    def failure(self, error: Exception, count: int = 1) -> FailureKind:
        kind = failure_kind(error)
        with self._lock:
            self.failures[kind.value] += count
            if self.first_error is None:
                self.first_error = str(error)
        return kind

    def result(self, skipped: bool = False) -> PhaseResult:
        with self._lock:
            return PhaseResult(
                phase=self.phase,
                attempted=self.attempted,
                succeeded=self.succeeded,
                failures=dict(self.failures),
                first_error=self.first_error,
                duration_seconds=time.monotonic() - self._start,
                skipped=skipped,
            )


@dataclass
class WorkloadContext:
    """Everything a driver needs: the injected client and the resolved scenario setup."""

    client: ChainClient
    identity: Identity
    bucket: str
    scenario: ScenarioSpec
    collector: Collector = field(default_factory=Collector)
    stop: threading.Event = field(default_factory=threading.Event)

    @property
    def label(self) -> str:
        return self.scenario.label


class _Driver:
    phase: Phase
    op_type: OperationType

    def __init__(self, context: WorkloadContext):
        self.context = context
        self.tracker = PhaseTracker(self.phase)

    def _run_pool(self, handler: Callable[[str, object], None], items: Iterable) -> None:
        pool = WorkerPool(
            handler,
            workers=self.context.scenario.concurrency,
            name=f"{self.context.scenario.index}-{self.phase.value}",
            stop=self.context.stop,
        )
        unprocessed = pool.run(items)
        if pool.dropped:
            self.tracker.failure(
                BlobOpError("worker handler failed", kind=FailureKind.BACKEND), count=pool.dropped
            )
        if unprocessed:
            logger.warning("%s: %s stopped with %d keys left", self.context.label, self.phase.value, unprocessed)
            for _ in range(unprocessed):
                self.tracker.attempt()
            self.tracker.failure(
                BlobOpError("shutdown requested", kind=FailureKind.CANCELLED), count=unprocessed
            )

    def _call(self, worker_id: str, key: str, size: int, func: Callable[[], object]):
        """Run one blob operation, recording timing and outcome.

        Returns:
            The call's result, or None if it failed.
        """
        ctx = self.context
        self.tracker.attempt()
        start = time.time()
        try:
            value = func()
        except Exception as e:
            kind = self.tracker.failure(e)
            ctx.collector.record(worker_id, self.op_type, key, size, start, error=str(e))
            logger.warning("%s: %s %s failed (%s): %s", ctx.label, self.phase.value, key, kind.value, e)
            return None
        ctx.collector.record(worker_id, self.op_type, key, size, start)
        return value


class UploadDriver(_Driver):
    """Upload ``blob_count`` synthetic blobs under ``prefix/i``."""

    phase = Phase.UPLOAD
    op_type = OperationType.PUT

    def __init__(self, context: WorkloadContext):
        super().__init__(context)
        self._uploaded: dict[int, str] = {}
        self._lock = threading.Lock()

    def _upload(self, worker_id: str, item) -> None:
        index, key = item
        ctx = self.context
        upload = ctx.scenario.upload
        size = upload.blob_size_bytes
        data = make_payload(size)

        def put():
            ctx.client.put_blob(
                ctx.identity,
                ctx.bucket,
                key,
                data,
                broadcast_mode=ctx.scenario.broadcast_mode,
                overwrite=upload.overwrite,
            )
            return True

        if self._call(worker_id, key, size, put):
            self.tracker.success()
            with self._lock:
                self._uploaded[index] = key
            logger.debug("%s: uploaded %s (%d bytes) to %s", ctx.label, key, size, ctx.bucket)

    def run(self) -> tuple[PhaseResult, list[str]]:
        """Upload every key.

        Returns:
            The phase result and the successfully uploaded keys in sequence order.
        """
        upload = self.context.scenario.upload
        logger.info(
            "%s: uploading %d blobs of %d bytes to %s (%s)",
            self.context.label,
            upload.blob_count,
            upload.blob_size_bytes,
            self.context.bucket,
            self.context.scenario.broadcast_mode.value,
        )
        self._run_pool(self._upload, enumerate(upload.keys()))
        uploaded = [self._uploaded[i] for i in sorted(self._uploaded)]
        return self.tracker.result(), uploaded


class DownloadDriver(_Driver):
    """Poll for and fetch a subset of the uploaded keys, verifying their size."""

    phase = Phase.DOWNLOAD
    op_type = OperationType.GET

    def __init__(self, context: WorkloadContext, spec: Optional[DownloadSpec] = None):
        super().__init__(context)
        self.spec = spec or context.scenario.download or DownloadSpec()

    def targets(self, uploaded: Iterable[str]) -> list[str]:
        """Keys in the configured index range that were actually uploaded."""
        upload = self.context.scenario.upload
        uploaded = set(uploaded)
        return [
            key
            for key in (upload.key_for(i) for i in self.spec.indices(upload.blob_count))
            if key in uploaded
        ]

    def _download(self, worker_id: str, key) -> None:
        ctx = self.context
        expected = ctx.scenario.upload.blob_size_bytes

        def fetch():
            data = poll_until_found(
                lambda: ctx.client.get_blob(ctx.identity, ctx.bucket, key),
                attempts=ctx.scenario.poll_attempts,
                interval=ctx.scenario.poll_interval,
                key=key,
                stop=ctx.stop,
            )
            if len(data) != expected:
                raise BlobOpError(
                    f"{key}: expected {expected} bytes, got {len(data)}",
                    kind=FailureKind.SIZE_MISMATCH,
                    key=key,
                )
            return data

        data = self._call(worker_id, key, expected, fetch)
        if data is not None:
            self.tracker.success()
            logger.debug("%s: downloaded %s (%d bytes)", ctx.label, key, len(data))

    def run(self, uploaded: Iterable[str]) -> PhaseResult:
        targets = self.targets(uploaded)
        logger.info(
            "%s: downloading %d blobs (range %s) from %s",
            self.context.label,
            len(targets),
            self.spec.describe(),
            self.context.bucket,
        )
        self._run_pool(self._download, targets)
        return self.tracker.result()


class DeleteDriver(_Driver):
    """Delete keys, gated on a successful bucket listing."""

    phase = Phase.DELETE
    op_type = OperationType.DELETE

    def _delete(self, worker_id: str, key) -> None:
        ctx = self.context

        def delete():
            ctx.client.delete_blob(
                ctx.identity, ctx.bucket, key, broadcast_mode=ctx.scenario.broadcast_mode
            )
            return True

        if self._call(worker_id, key, 0, delete):
            self.tracker.success()
            logger.debug("%s: deleted %s", ctx.label, key)

    def list_keys(self) -> Optional[set[str]]:
        """List the scenario prefix. Returns None (and records the error) on failure."""
        ctx = self.context
        prefix = normalize_prefix(ctx.scenario.upload.prefix) + "/"
        start = time.time()
        try:
            listed = ctx.client.list_bucket(ctx.identity, ctx.bucket, prefix=prefix)
        except Exception as e:
            self.tracker.failure(e)
            ctx.collector.record(f"{ctx.scenario.index}-list", OperationType.LIST, prefix, 0, start, error=str(e))
            logger.error("%s: listing %s failed, skipping delete: %s", ctx.label, ctx.bucket, e)
            return None
        ctx.collector.record(f"{ctx.scenario.index}-list", OperationType.LIST, prefix, 0, start)
        return listed

    def run(self, keys: Optional[Iterable[str]] = None) -> PhaseResult:
        """Delete ``keys``, or every listed key under the prefix when keys is None.

        No delete call is issued if the listing fails. After shutdown neither
        the listing nor any delete is issued; the phase is skipped and the
        pending keys are counted as cancelled.
        """
        if self.context.stop.is_set():
            # Cleanup mode has no key list, so the whole phase counts once
            count = 1 if keys is None else len(list(keys))
            for _ in range(0 if keys is None else count):
                self.tracker.attempt()
            if count:
                self.tracker.failure(
                    BlobOpError("shutdown requested", kind=FailureKind.CANCELLED), count=count
                )
            logger.warning("%s: shutdown requested, skipping delete", self.context.label)
            return self.tracker.result(skipped=True)

        listed = self.list_keys()
        if listed is None:
            return self.tracker.result(skipped=True)

        targets = sorted(listed) if keys is None else list(keys)
        logger.info("%s: deleting %d blobs from %s", self.context.label, len(targets), self.context.bucket)
        self._run_pool(self._delete, targets)
        return self.tracker.result()
