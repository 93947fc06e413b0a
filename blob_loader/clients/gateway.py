"""HTTP client for the storage network's signing gateway.

The gateway exposes the chain operations as a small JSON/HTTP API and signs
transactions with the bearer key sent on each request:

    GET    /v1/accounts/self                      -> {"address": ...}
    POST   /v1/accounts/{address}/funds           {"amount": n}
    POST   /v1/accounts/{address}/credits         {"amount": n}
    POST   /v1/buckets                            -> {"address": ...}
    PUT    /v1/buckets/{bucket}/objects/{key}     ?overwrite=&broadcast_mode=
    GET    /v1/buckets/{bucket}/objects/{key}
    DELETE /v1/buckets/{bucket}/objects/{key}     ?broadcast_mode=
    GET    /v1/buckets/{bucket}/objects           ?prefix=&start_key=
                                                  -> {"keys": [...], "next_key": ...}

Status codes map onto the error taxonomy: 404 NotFound, 409/412
AlreadyExists, 402 or an out-of-gas message GAS, 429/5xx TRANSIENT.
Reads and listings are retried on transient failures; writes are not,
since a retried write could be applied twice.
"""

import logging
from typing import Optional, Sequence
from urllib.parse import quote

import httpx

from blob_loader.clients.base import ChainClient, Identity
from blob_loader.errors import AlreadyExists, BlobOpError, FailureKind, NotFound
from blob_loader.models import BroadcastMode
from blob_loader.retry import RETRYABLE_STATUS_CODES, RetryExhausted, retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

GAS_MARKERS = ("out of gas", "insufficient funds", "insufficient gas")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


def raise_for_response(response: httpx.Response, key: Optional[str] = None) -> None:
    """Translate a non-2xx gateway response into a BlobOpError."""
    if response.is_success:
        return

    status = response.status_code
    message = f"{response.request.method} {response.request.url.path}: {status} {_error_message(response)}"

    if status == 404:
        raise NotFound(message, key=key)
    if status in (409, 412):
        raise AlreadyExists(message, key=key)
    if status == 402 or any(marker in message.lower() for marker in GAS_MARKERS):
        raise BlobOpError(message, kind=FailureKind.GAS, key=key)
    if status in RETRYABLE_STATUS_CODES:
        raise BlobOpError(message, kind=FailureKind.TRANSIENT, key=key)
    raise BlobOpError(message, kind=FailureKind.BACKEND, key=key)


class GatewayChainClient(ChainClient):
    """ChainClient backed by the gateway HTTP API.

    Args:
        base_url: Gateway root URL
        timeout: Per-request timeout in seconds
        retry_delays: Backoff schedule for retried reads
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        retry_delays: Sequence[float] = (1.0, 3.0, 10.0),
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_delays = tuple(retry_delays)
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def _request(
        self,
        method: str,
        path: str,
        identity_secret: str,
        key: Optional[str] = None,
        **kwargs,
    ) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {identity_secret}"
        try:
            response = self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise BlobOpError(f"{method} {path}: {e}", kind=FailureKind.TRANSIENT, key=key) from e
        raise_for_response(response, key=key)
        return response

    def _read(self, method: str, path: str, identity_secret: str, key: Optional[str] = None, **kwargs):
        try:
            return retry_with_backoff(
                self._request,
                max_attempts=len(self.retry_delays) + 1,
                delays=self.retry_delays or (0.0,),
                args=(method, path, identity_secret, key),
                kwargs=kwargs,
            )
        except RetryExhausted as e:
            raise BlobOpError(
                f"{method} {path}: {e.last_error} (after {e.attempts} attempts)",
                kind=FailureKind.TRANSIENT,
                key=key,
            ) from e

    @staticmethod
    def _object_path(bucket: str, key: str) -> str:
        return f"/v1/buckets/{quote(bucket, safe='')}/objects/{quote(key, safe='/')}"

    def resolve_key(self, secret: str) -> Identity:
        response = self._read("GET", "/v1/accounts/self", secret)
        return Identity(address=response.json()["address"], secret=secret)

    def transfer_funds(self, source: Identity, destination: Identity, amount: int) -> None:
        self._request(
            "POST",
            f"/v1/accounts/{quote(destination.address, safe='')}/funds",
            source.secret,
            json={"amount": amount},
        )

    def buy_credit(self, identity: Identity, amount: int) -> None:
        self._request(
            "POST",
            f"/v1/accounts/{quote(identity.address, safe='')}/credits",
            identity.secret,
            json={"amount": amount},
        )

    def create_bucket(self, identity: Identity) -> str:
        response = self._request("POST", "/v1/buckets", identity.secret, json={})
        return response.json()["address"]

    def put_blob(
        self,
        identity: Identity,
        bucket: str,
        key: str,
        data: bytes,
        broadcast_mode: BroadcastMode = BroadcastMode.COMMIT,
        overwrite: bool = True,
    ) -> None:
        self._request(
            "PUT",
            self._object_path(bucket, key),
            identity.secret,
            key=key,
            content=data,
            params={
                "overwrite": str(overwrite).lower(),
                "broadcast_mode": broadcast_mode.value,
            },
            headers={"Content-Type": "application/octet-stream"},
        )

    def get_blob(self, identity: Identity, bucket: str, key: str) -> bytes:
        response = self._read("GET", self._object_path(bucket, key), identity.secret, key=key)
        return response.content

    def delete_blob(
        self,
        identity: Identity,
        bucket: str,
        key: str,
        broadcast_mode: BroadcastMode = BroadcastMode.COMMIT,
    ) -> None:
        self._request(
            "DELETE",
            self._object_path(bucket, key),
            identity.secret,
            key=key,
            params={"broadcast_mode": broadcast_mode.value},
        )

    def list_bucket(self, identity: Identity, bucket: str, prefix: Optional[str] = None) -> set[str]:
        keys: set[str] = set()
        params = {"prefix": prefix} if prefix else {}
        path = f"/v1/buckets/{quote(bucket, safe='')}/objects"

        while True:
            body = self._read("GET", path, identity.secret, params=dict(params)).json()
            keys.update(body.get("keys", []))
            next_key = body.get("next_key")
            if not next_key:
                return keys
            logger.debug("listing %s continues at %s", bucket, next_key)
            params["start_key"] = next_key

    def close(self) -> None:
        self._http.close()
