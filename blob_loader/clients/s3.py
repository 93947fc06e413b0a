"""S3-compatible target.

Drives the same workload against any S3-compatible object gateway. The
identity secret is ``ACCESS_KEY_ID:SECRET_ACCESS_KEY``; the address is the
access key id. S3 has no accounts to fund and no credits, so those two
operations raise UnsupportedOperation (config validation rejects plans that
would call them).

The signature version is set to 's3v4', which every modern S3-compatible
provider accepts.
"""

import threading
import uuid
from typing import Any, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from blob_loader.clients.base import ChainClient, Identity
from blob_loader.errors import AlreadyExists, BlobOpError, FailureKind, NotFound, UnsupportedOperation
from blob_loader.models import BroadcastMode

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
EXISTS_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict"}
TRANSIENT_CODES = {"SlowDown", "ServiceUnavailable", "InternalError", "RequestTimeout", "503", "500"}

# Connection and timeout failures; every other botocore error is permanent
TRANSIENT_ERRORS = (BotoConnectionError, HTTPClientError)

BUCKET_NAME_PREFIX = "blob-loader-"


def build_s3_client(
    endpoint_url: Optional[str],
    access_key_id: str,
    secret_access_key: str,
    region_name: str,
    addressing_style: str = "path",
):
    """Build a boto3 S3 client for an S3-compatible gateway.

    Args:
        endpoint_url: Gateway URL, or None for AWS
        access_key_id: Access key id
        secret_access_key: Secret access key
        region_name: Region to sign for
        addressing_style: 'path' or 'virtual'

    Returns:
        A boto3 S3 client.
    """
    boto_config = Config(
        signature_version="s3v4",
        s3={"addressing_style": addressing_style},
    )

    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        region_name=region_name,
        config=boto_config,
    )


def split_secret(secret: str) -> tuple[str, str]:
    access_key, sep, secret_key = secret.partition(":")
    if not sep or not access_key or not secret_key:
        raise BlobOpError(
            "s3 target expects the key as ACCESS_KEY_ID:SECRET_ACCESS_KEY",
            kind=FailureKind.BACKEND,
        )
    return access_key, secret_key


def translate_error(error: Exception, key: Optional[str] = None) -> BlobOpError:
    """Map a botocore exception onto the error taxonomy."""
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        message = str(error)
        if code in NOT_FOUND_CODES:
            return NotFound(message, key=key)
        if code in EXISTS_CODES:
            return AlreadyExists(message, key=key)
        if code in TRANSIENT_CODES:
            return BlobOpError(message, kind=FailureKind.TRANSIENT, key=key)
        return BlobOpError(message, kind=FailureKind.BACKEND, key=key)
    if isinstance(error, TRANSIENT_ERRORS):
        return BlobOpError(str(error), kind=FailureKind.TRANSIENT, key=key)
    return BlobOpError(str(error), kind=FailureKind.BACKEND, key=key)


class S3ChainClient(ChainClient):
    """ChainClient over boto3.

    Args:
        endpoint_url: Gateway URL
        region_name: Region to sign for
        addressing_style: 'path' or 'virtual'
    """

    def __init__(
        self,
        endpoint_url: Optional[str],
        region_name: str = "us-east-1",
        addressing_style: str = "path",
    ):
        self.endpoint_url = endpoint_url
        self.region_name = region_name
        self.addressing_style = addressing_style
        self._clients: dict[str, Any] = {}
        self._lock = threading.Lock()

    def _client(self, identity: Identity):
        access_key, secret_key = split_secret(identity.secret)
        with self._lock:
            client = self._clients.get(access_key)
            if client is None:
                client = build_s3_client(
                    self.endpoint_url,
                    access_key,
                    secret_key,
                    self.region_name,
                    self.addressing_style,
                )
                self._clients[access_key] = client
            return client

    def resolve_key(self, secret: str) -> Identity:
        access_key, _ = split_secret(secret)
        return Identity(address=access_key, secret=secret)

    def transfer_funds(self, source: Identity, destination: Identity, amount: int) -> None:
        raise UnsupportedOperation("the s3 target has no accounts to fund")

    def buy_credit(self, identity: Identity, amount: int) -> None:
        raise UnsupportedOperation("the s3 target has no credits")

    def create_bucket(self, identity: Identity) -> str:
        name = BUCKET_NAME_PREFIX + uuid.uuid4().hex[:16]
        params: dict[str, Any] = {"Bucket": name}
        if self.region_name != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.region_name}
        try:
            self._client(identity).create_bucket(**params)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e) from e
        return name

    def put_blob(
        self,
        identity: Identity,
        bucket: str,
        key: str,
        data: bytes,
        broadcast_mode: BroadcastMode = BroadcastMode.COMMIT,
        overwrite: bool = True,
    ) -> None:
        params: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": data}
        if not overwrite:
            params["IfNoneMatch"] = "*"
        try:
            self._client(identity).put_object(**params)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, key=key) from e

    def get_blob(self, identity: Identity, bucket: str, key: str) -> bytes:
        try:
            response = self._client(identity).get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, key=key) from e

    def delete_blob(
        self,
        identity: Identity,
        bucket: str,
        key: str,
        broadcast_mode: BroadcastMode = BroadcastMode.COMMIT,
    ) -> None:
        try:
            self._client(identity).delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, key=key) from e

    def list_bucket(self, identity: Identity, bucket: str, prefix: Optional[str] = None) -> set[str]:
        keys: set[str] = set()
        params: dict[str, Any] = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix
        try:
            paginator = self._client(identity).get_paginator("list_objects_v2")
            for page in paginator.paginate(**params):
                keys.update(item["Key"] for item in page.get("Contents", []))
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e) from e
        return keys
