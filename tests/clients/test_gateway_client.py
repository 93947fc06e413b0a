"""Tests for the gateway HTTP client.

HTTP is faked with httpx.MockTransport, so no server is needed.
"""

import json

import httpx
import pytest

from blob_loader.clients.base import Identity
from blob_loader.clients.gateway import GatewayChainClient, raise_for_response
from blob_loader.errors import AlreadyExists, BlobOpError, FailureKind, NotFound
from blob_loader.models import BroadcastMode

IDENTITY = Identity(address="0xabc", secret="secret-key")


def make_client(handler, retry_delays=(0.0, 0.0)) -> GatewayChainClient:
    return GatewayChainClient(
        "http://gateway.test/",
        retry_delays=retry_delays,
        transport=httpx.MockTransport(handler),
    )


def response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("GET", "http://gateway.test/x"), **kwargs)


class TestRaiseForResponse:
    """Tests for status code translation."""

    def test_success_passes(self):
        raise_for_response(response(200))

    def test_404_is_not_found(self):
        with pytest.raises(NotFound):
            raise_for_response(response(404), key="k")

    @pytest.mark.parametrize("status_code", [409, 412])
    def test_conflict_is_already_exists(self, status_code):
        with pytest.raises(AlreadyExists):
            raise_for_response(response(status_code))

    def test_402_is_gas(self):
        with pytest.raises(BlobOpError) as exc_info:
            raise_for_response(response(402))
        assert exc_info.value.kind == FailureKind.GAS

    def test_gas_message_is_gas(self):
        """An out-of-gas message maps to GAS whatever the status."""
        with pytest.raises(BlobOpError) as exc_info:
            raise_for_response(response(400, json={"error": "tx failed: out of gas"}))
        assert exc_info.value.kind == FailureKind.GAS
        assert "out of gas" in str(exc_info.value)

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_transient(self, status_code):
        with pytest.raises(BlobOpError) as exc_info:
            raise_for_response(response(status_code))
        assert exc_info.value.kind == FailureKind.TRANSIENT

    def test_other_errors_are_backend(self):
        with pytest.raises(BlobOpError) as exc_info:
            raise_for_response(response(400, text="bad request"))
        assert exc_info.value.kind == FailureKind.BACKEND


class TestGatewayChainClient:
    """Tests for GatewayChainClient requests."""

    def test_resolve_key_sends_bearer(self):
        """The secret is sent as a bearer token and the address read back."""
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            return httpx.Response(200, json={"address": "0xabc"})

        identity = make_client(handler).resolve_key("secret-key")

        assert identity == IDENTITY
        assert seen == {"auth": "Bearer secret-key", "path": "/v1/accounts/self"}

    def test_transfer_funds(self):
        """Funds are posted to the destination account by the source."""
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        funder = Identity(address="0xf", secret="funder-key")
        make_client(handler).transfer_funds(funder, IDENTITY, 10)

        assert seen == {
            "path": "/v1/accounts/0xabc/funds",
            "auth": "Bearer funder-key",
            "body": {"amount": 10},
        }

    def test_buy_credit(self):
        def handler(request):
            assert request.url.path == "/v1/accounts/0xabc/credits"
            assert json.loads(request.content) == {"amount": 2}
            return httpx.Response(200, json={})

        make_client(handler).buy_credit(IDENTITY, 2)

    def test_create_bucket(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.path == "/v1/buckets"
            return httpx.Response(201, json={"address": "t2bucket"})

        assert make_client(handler).create_bucket(IDENTITY) == "t2bucket"

    def test_put_blob_params(self):
        """Uploads carry the body, overwrite flag and broadcast mode."""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["body"] = request.content
            return httpx.Response(200, json={})

        make_client(handler).put_blob(
            IDENTITY, "t2bucket", "foo/1", b"data",
            broadcast_mode=BroadcastMode.ASYNC, overwrite=False,
        )

        assert seen == {
            "method": "PUT",
            "path": "/v1/buckets/t2bucket/objects/foo/1",
            "params": {"overwrite": "false", "broadcast_mode": "async"},
            "body": b"data",
        }

    def test_put_conflict(self):
        client = make_client(lambda request: httpx.Response(409, json={"error": "key exists"}))

        with pytest.raises(AlreadyExists) as exc_info:
            client.put_blob(IDENTITY, "t2bucket", "foo/1", b"data", overwrite=False)
        assert exc_info.value.key == "foo/1"

    def test_writes_are_not_retried(self):
        """A transient failure on a write surfaces after one request."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(BlobOpError) as exc_info:
            make_client(handler).put_blob(IDENTITY, "t2bucket", "k", b"x")

        assert exc_info.value.kind == FailureKind.TRANSIENT
        assert len(calls) == 1

    def test_get_blob_retries_transient(self):
        """Reads are retried on transient failures."""
        responses = iter([httpx.Response(503), httpx.Response(200, content=b"blob")])

        client = make_client(lambda request: next(responses))

        assert client.get_blob(IDENTITY, "t2bucket", "foo/0") == b"blob"

    def test_get_blob_retry_exhausted(self):
        """Exhausted retries become a TRANSIENT BlobOpError."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        with pytest.raises(BlobOpError) as exc_info:
            make_client(handler, retry_delays=(0.0,)).get_blob(IDENTITY, "t2bucket", "foo/0")

        assert exc_info.value.kind == FailureKind.TRANSIENT
        assert len(calls) == 2

    def test_get_blob_not_found_is_not_retried(self):
        """NotFound is left for the caller's polling loop."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, json={"error": "not found"})

        with pytest.raises(NotFound):
            make_client(handler).get_blob(IDENTITY, "t2bucket", "foo/0")
        assert len(calls) == 1

    def test_connection_error_is_transient(self):
        """Transport failures map to TRANSIENT."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(BlobOpError) as exc_info:
            make_client(handler, retry_delays=()).delete_blob(IDENTITY, "t2bucket", "k")
        assert exc_info.value.kind == FailureKind.TRANSIENT

    def test_delete_blob(self):
        def handler(request):
            assert request.method == "DELETE"
            assert request.url.params["broadcast_mode"] == "sync"
            return httpx.Response(200, json={})

        make_client(handler).delete_blob(IDENTITY, "t2bucket", "foo/0", broadcast_mode=BroadcastMode.SYNC)

    def test_list_bucket_paginates(self):
        """Listing follows next_key until exhausted."""
        pages = []

        def handler(request):
            params = dict(request.url.params)
            pages.append(params)
            if "start_key" not in params:
                return httpx.Response(200, json={"keys": ["foo/0", "foo/1"], "next_key": "foo/2"})
            return httpx.Response(200, json={"keys": ["foo/2"], "next_key": None})

        keys = make_client(handler).list_bucket(IDENTITY, "t2bucket", prefix="foo/")

        assert keys == {"foo/0", "foo/1", "foo/2"}
        assert pages == [{"prefix": "foo/"}, {"prefix": "foo/", "start_key": "foo/2"}]
