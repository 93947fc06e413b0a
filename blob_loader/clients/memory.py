"""In-process chain client for dry runs and tests.

Keeps buckets, balances and credits in memory behind a lock. Writes issued
with a non-commit broadcast mode can be made invisible to reads for a while
(``visibility_delay``), which reproduces the read-after-write race the
download phase has to poll through. Faults can be injected per operation.
"""

import hashlib
import itertools
import threading
import time
from collections import Counter
from typing import Callable, Optional

from blob_loader.clients.base import ChainClient, Identity
from blob_loader.errors import AlreadyExists, BlobOpError, FailureKind, NotFound
from blob_loader.models import BroadcastMode

# fault(operation, key) -> exception to raise, or None
FaultHook = Callable[[str, Optional[str]], Optional[Exception]]


def address_for(secret: str) -> str:
    """Deterministic fake address for a secret."""
    return "0x" + hashlib.sha256(secret.encode("utf-8")).hexdigest()[:40]


class InMemoryChainClient(ChainClient):
    """Thread-safe in-memory storage network.

    Args:
        visibility_delay: Seconds a sync/async write stays invisible to reads
        require_credit: Reject writes from accounts that never bought credit
        fault: Optional hook returning an exception to raise for an operation
    """

    def __init__(
        self,
        visibility_delay: float = 0.0,
        require_credit: bool = False,
        fault: Optional[FaultHook] = None,
    ):
        self.visibility_delay = visibility_delay
        self.require_credit = require_credit
        self.fault = fault
        self.calls: Counter = Counter()
        self.balances: Counter = Counter()
        self.credits: Counter = Counter()
        self._lock = threading.Lock()
        self._buckets: dict[str, dict[str, tuple[bytes, float]]] = {}
        self._owners: dict[str, str] = {}
        self._bucket_ids = itertools.count()

    def _enter(self, operation: str, key: Optional[str] = None) -> None:
        with self._lock:
            self.calls[operation] += 1
        if self.fault is not None:
            error = self.fault(operation, key)
            if error is not None:
                raise error

    def _bucket(self, bucket: str, key: Optional[str] = None) -> dict[str, tuple[bytes, float]]:
        try:
            return self._buckets[bucket]
        except KeyError:
            raise BlobOpError(f"bucket {bucket} not found", kind=FailureKind.BACKEND, key=key) from None

    def add_bucket(self, address: str, owner: str = "") -> None:
        """Register an existing bucket address, as if created elsewhere."""
        with self._lock:
            self._buckets.setdefault(address, {})
            self._owners.setdefault(address, owner)

    def resolve_key(self, secret: str) -> Identity:
        self._enter("resolve_key")
        return Identity(address=address_for(secret), secret=secret)

    def transfer_funds(self, source: Identity, destination: Identity, amount: int) -> None:
        self._enter("transfer_funds")
        with self._lock:
            self.balances[destination.address] += amount

    def buy_credit(self, identity: Identity, amount: int) -> None:
        self._enter("buy_credit")
        with self._lock:
            self.credits[identity.address] += amount

    def create_bucket(self, identity: Identity) -> str:
        self._enter("create_bucket")
        with self._lock:
            address = f"t2mem{next(self._bucket_ids):06d}"
            self._buckets[address] = {}
            self._owners[address] = identity.address
        return address

    def put_blob(
        self,
        identity: Identity,
        bucket: str,
        key: str,
        data: bytes,
        broadcast_mode: BroadcastMode = BroadcastMode.COMMIT,
        overwrite: bool = True,
    ) -> None:
        self._enter("put_blob", key)
        visible_at = time.monotonic()
        if broadcast_mode != BroadcastMode.COMMIT:
            visible_at += self.visibility_delay

        with self._lock:
            if self.require_credit and self.credits[identity.address] <= 0:
                raise BlobOpError(
                    f"account {identity.address} has no credit", kind=FailureKind.GAS, key=key
                )
            objects = self._bucket(bucket, key)
            if not overwrite and key in objects:
                raise AlreadyExists(f"{key} already exists in {bucket}", key=key)
            objects[key] = (bytes(data), visible_at)

    def get_blob(self, identity: Identity, bucket: str, key: str) -> bytes:
        self._enter("get_blob", key)
        with self._lock:
            entry = self._bucket(bucket, key).get(key)
        if entry is None or entry[1] > time.monotonic():
            raise NotFound(f"{key} not found in {bucket}", key=key)
        return entry[0]

    def delete_blob(
        self,
        identity: Identity,
        bucket: str,
        key: str,
        broadcast_mode: BroadcastMode = BroadcastMode.COMMIT,
    ) -> None:
        self._enter("delete_blob", key)
        with self._lock:
            objects = self._bucket(bucket, key)
            if key not in objects:
                raise NotFound(f"{key} not found in {bucket}", key=key)
            del objects[key]

    def list_bucket(self, identity: Identity, bucket: str, prefix: Optional[str] = None) -> set[str]:
        self._enter("list_bucket")
        now = time.monotonic()
        with self._lock:
            return {
                key
                for key, (_, visible_at) in self._bucket(bucket).items()
                if visible_at <= now and (not prefix or key.startswith(prefix))
            }

    def blob(self, bucket: str, key: str) -> Optional[bytes]:
        """Stored content regardless of visibility, for assertions."""
        with self._lock:
            entry = self._buckets.get(bucket, {}).get(key)
        return entry[0] if entry else None
