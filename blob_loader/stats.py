"""Per-operation statistics.

Every blob operation issued by a driver is recorded as an Operation. The
Collector is shared by all scenarios and is safe to call from any worker
thread; the Aggregator folds the recorded operations into per-type totals
(throughput, objects per second, min/avg/max duration).
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class OperationType(Enum):
    GET = "get"
    PUT = "put"
    LIST = "list"
    DELETE = "delete"


@dataclass
class Operation:
    """One timed blob operation."""

    worker_id: str
    op_type: OperationType
    key: str = ""
    size: int = 0
    start: float = 0.0
    end: float = 0.0
    error: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def ok(self) -> bool:
        return self.error is None


def format_throughput(bytes_per_second: float) -> str:
    """Render a byte rate using binary units."""
    t = bytes_per_second
    if t < 1 << 10:
        return f"{t:.1f}B/s"
    if t < 1 << 20:
        return f"{t / (1 << 10):.1f}KiB/s"
    if t < 1 << 30:
        return f"{t / (1 << 20):.1f}MiB/s"
    if t < 1 << 40:
        return f"{t / (1 << 30):.2f}GiB/s"
    return f"{t / (1 << 40):.2f}TiB/s"


def format_duration(seconds: float) -> str:
    """Render a duration like ``850ms``, ``1.800s`` or ``2m 5.120s``."""
    total_ms = int(round(seconds * 1000))
    total_secs, millis = divmod(total_ms, 1000)

    if total_secs == 0:
        return f"{millis}ms"
    if total_secs < 60:
        if millis > 0:
            return f"{total_secs}.{millis:03d}s"
        return f"{total_secs}s"

    minutes, secs = divmod(total_secs, 60)
    if minutes < 60:
        return f"{minutes}m {secs}.{millis:03d}s"

    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {minutes}m {secs}.{millis:03d}s"

    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h {minutes}m {secs}.{millis:03d}s"


@dataclass
class AggregatedOperation:
    """Running totals for one operation type.

    Failed operations count toward ``total`` and ``errors`` only; timing and
    throughput figures cover successful operations.
    """

    total: int = 0
    errors: int = 0
    total_bytes: int = 0
    total_duration: float = 0.0
    start_time: float = float("inf")
    end_time: float = float("-inf")
    min_duration: float = float("inf")
    max_duration: float = 0.0
    workers: set[str] = field(default_factory=set)

    def insert(self, op: Operation) -> None:
        self.total += 1
        if not op.ok:
            self.errors += 1
            return
        self.total_bytes += op.size
        self.total_duration += op.duration
        self.workers.add(op.worker_id)
        self.start_time = min(self.start_time, op.start)
        self.end_time = max(self.end_time, op.end)
        self.min_duration = min(self.min_duration, op.duration)
        self.max_duration = max(self.max_duration, op.duration)

    @property
    def succeeded(self) -> int:
        return self.total - self.errors

    @property
    def duration(self) -> float:
        if self.succeeded == 0:
            return 0.0
        return self.end_time - self.start_time

    @property
    def concurrency(self) -> int:
        return len(self.workers)

    @property
    def throughput(self) -> float:
        if self.total_bytes == 0 or self.duration <= 0:
            return 0.0
        return self.total_bytes / self.duration

    @property
    def objects_per_sec(self) -> float:
        if self.duration <= 0:
            return 0.0
        return self.total / self.duration

    @property
    def avg_duration(self) -> float:
        if self.succeeded == 0:
            return 0.0
        return self.total_duration / self.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "errors": self.errors,
            "concurrency": self.concurrency,
            "duration_seconds": round(self.duration, 6),
            "bytes": self.total_bytes,
            "throughput_bytes_per_sec": round(self.throughput, 3),
            "objects_per_sec": round(self.objects_per_sec, 3),
            "min_duration_seconds": round(self.min_duration, 6) if self.succeeded else None,
            "avg_duration_seconds": round(self.avg_duration, 6) if self.succeeded else None,
            "max_duration_seconds": round(self.max_duration, 6) if self.succeeded else None,
        }


class Aggregator:
    """Fold operations into per-type AggregatedOperation totals."""

    def __init__(self) -> None:
        self.operations: dict[OperationType, AggregatedOperation] = {}

    def insert(self, op: Operation) -> None:
        self.operations.setdefault(op.op_type, AggregatedOperation()).insert(op)

    def to_dict(self) -> dict[str, Any]:
        return {
            op_type.value: aggregated.to_dict()
            for op_type, aggregated in sorted(
                self.operations.items(), key=lambda item: item[0].value
            )
        }


class Collector:
    """Thread-safe sink for Operation records.

    Only the running per-type totals are kept; individual operations are
    not retained.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._aggregator = Aggregator()

    def collect(self, op: Operation) -> None:
        with self._lock:
            self._aggregator.insert(op)

    def record(
        self,
        worker_id: str,
        op_type: OperationType,
        key: str,
        size: int,
        start: float,
        error: Optional[str] = None,
    ) -> Operation:
        """Build an Operation ending now and collect it."""
        op = Operation(
            worker_id=worker_id,
            op_type=op_type,
            key=key,
            size=size,
            start=start,
            end=time.time(),
            error=error,
        )
        self.collect(op)
        return op

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return self._aggregator.to_dict()
