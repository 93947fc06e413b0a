"""Chain client interface.

The engine never talks to the network directly. Each driver receives a
ChainClient and the resolved Identity, and every call is independent: a
client keeps no per-scenario state, so one instance can serve all scenarios
running against the same target.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from blob_loader.models import BroadcastMode


@dataclass(frozen=True)
class Identity:
    """A resolved signing identity."""

    address: str
    secret: str = field(repr=False)


class ChainClient(ABC):
    """Operations the engine consumes from the storage network."""

    @abstractmethod
    def resolve_key(self, secret: str) -> Identity:
        """Turn a secret key into a signing identity."""

    @abstractmethod
    def transfer_funds(self, source: Identity, destination: Identity, amount: int) -> None:
        """Move ``amount`` whole tokens from source to destination."""

    @abstractmethod
    def buy_credit(self, identity: Identity, amount: int) -> None:
        """Buy ``amount`` credits for identity."""

    @abstractmethod
    def create_bucket(self, identity: Identity) -> str:
        """Create a bucket owned by identity and return its address."""

    @abstractmethod
    def put_blob(
        self,
        identity: Identity,
        bucket: str,
        key: str,
        data: bytes,
        broadcast_mode: BroadcastMode = BroadcastMode.COMMIT,
        overwrite: bool = True,
    ) -> None:
        """Store data under key.

        Raises:
            AlreadyExists: overwrite is False and the key exists
            BlobOpError: Any other failure
        """

    @abstractmethod
    def get_blob(self, identity: Identity, bucket: str, key: str) -> bytes:
        """Fetch the full content of key.

        Raises:
            NotFound: The key is not (yet) visible
            BlobOpError: Any other failure
        """

    @abstractmethod
    def delete_blob(
        self,
        identity: Identity,
        bucket: str,
        key: str,
        broadcast_mode: BroadcastMode = BroadcastMode.COMMIT,
    ) -> None:
        """Delete key from bucket."""

    @abstractmethod
    def list_bucket(self, identity: Identity, bucket: str, prefix: Optional[str] = None) -> set[str]:
        """Return every key in bucket, optionally restricted to a prefix."""

    def close(self) -> None:
        """Release network resources. Default is a no-op."""
        pass
