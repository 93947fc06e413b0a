"""Bounded worker pool used by the workload drivers.

A fixed-capacity queue feeds a capped set of worker threads. The producer
blocks when the queue is full, so at most ``workers + queue_size`` items are
ever in flight for one phase. Setting the stop event makes workers stop
taking new items; calls already running are left to finish.
"""

import logging
import queue
import threading
from typing import Callable, Generic, Iterable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default queue capacity per worker
QUEUE_SLOTS_PER_WORKER = 2

# How often idle workers and a blocked producer re-check the stop event
_POLL_SECONDS = 0.2

_SENTINEL = object()


class WorkerPool(Generic[T]):
    """Run ``handler(worker_id, item)`` over items with bounded parallelism.

    Args:
        handler: Called once per item on a worker thread. Exceptions are
                 logged and counted in ``dropped``.
        workers: Number of worker threads
        name: Prefix for worker ids and thread names
        stop: Shared shutdown event
        queue_size: Queue capacity (defaults to 2 slots per worker)
    """

    def __init__(
        self,
        handler: Callable[[str, T], None],
        workers: int,
        name: str = "worker",
        stop: Optional[threading.Event] = None,
        queue_size: Optional[int] = None,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.handler = handler
        self.workers = workers
        self.name = name
        self.stop = stop or threading.Event()
        self._queue: "queue.Queue[object]" = queue.Queue(
            maxsize=queue_size or workers * QUEUE_SLOTS_PER_WORKER
        )
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self.submitted = 0
        self.unprocessed = 0
        self.dropped = 0

    def _worker(self, worker_id: str) -> None:
        while True:
            try:
                item = self._queue.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                if self.stop.is_set():
                    return
                continue

            try:
                if item is _SENTINEL:
                    return
                if self.stop.is_set():
                    with self._lock:
                        self.unprocessed += 1
                    continue
                try:
                    self.handler(worker_id, item)
                except Exception:
                    logger.exception("%s: handler failed", worker_id)
                    with self._lock:
                        self.dropped += 1
            finally:
                self._queue.task_done()

    def _put(self, item: object) -> bool:
        while True:
            try:
                self._queue.put(item, timeout=_POLL_SECONDS)
                return True
            except queue.Full:
                if self.stop.is_set():
                    return False

    def start(self) -> None:
        for i in range(self.workers):
            worker_id = f"{self.name}-{i}"
            thread = threading.Thread(
                target=self._worker, args=(worker_id,), name=worker_id, daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def run(self, items: Iterable[T]) -> int:
        """Process all items and wait for the workers to drain.

        Returns:
            Number of items that were never handed to the handler because
            the stop event was set. Items whose handler raised are counted
            separately in ``dropped``.
        """
        items = list(items)
        self.start()
        fed = 0
        for item in items:
            if self.stop.is_set() or not self._put(item):
                break
            fed += 1
        self.submitted = fed

        for _ in self._threads:
            # Workers exit on their own once stop is set and the queue is empty
            if not self._put(_SENTINEL):
                break
        for thread in self._threads:
            thread.join()

        with self._lock:
            return self.unprocessed + (len(items) - fed)
