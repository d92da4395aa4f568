"""Amazon S3 (and S3-compatible) blob store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from deploystore.errors import (
    BlobNotFound,
    BlobStoreError,
    BlobStoreRejected,
    BlobStoreUnavailable,
)
from deploystore.storage.base import validate_key

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
_REJECTED_CODES = frozenset(
    {
        "AccessDenied",
        "403",
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
        "NoSuchBucket",
        "QuotaExceeded",
        "EntityTooLarge",
        "AccountProblem",
    }
)


class S3BlobStore:
    """Blob store backed by an S3 bucket.

    Objects are stored at ``<prefix><key>``; put, get and delete all use the
    same key so a blob written by ingestion is the one reclaimed by GC.
    boto3 is blocking, so each call runs in a worker thread.
    """

    def __init__(
        self,
        bucket: str,
        *,
        prefix: str = "",
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.rstrip("/") + "/" if prefix else ""
        self._client = client or boto3.client(
            "s3", region_name=region, endpoint_url=endpoint_url
        )

    def object_key(self, key: str) -> str:
        return f"{self.prefix}{validate_key(key)}"

    async def put(self, key: str, data: bytes, content_type: str = "") -> None:
        extra: dict[str, Any] = {}
        if content_type:
            extra["ContentType"] = content_type
        object_key = self.object_key(key)
        await self._call(
            key,
            self._client.put_object,
            Bucket=self.bucket,
            Key=object_key,
            Body=data,
            **extra,
        )
        logger.debug("Stored s3://%s/%s (%d bytes)", self.bucket, object_key, len(data))

    async def get(self, key: str) -> bytes:
        response = await self._call(
            key, self._client.get_object, Bucket=self.bucket, Key=self.object_key(key)
        )
        body = response["Body"]
        try:
            return await asyncio.to_thread(body.read)
        finally:
            body.close()

    async def delete(self, key: str) -> None:
        await self._call(
            key, self._client.delete_object, Bucket=self.bucket, Key=self.object_key(key)
        )

    async def _call(self, key: str, method: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(method, **kwargs)
        except ClientError as exc:
            raise _translate_client_error(exc, key) from exc
        except EndpointConnectionError as exc:
            raise BlobStoreUnavailable(str(exc), path=key) from exc
        except BotoCoreError as exc:
            raise BlobStoreUnavailable(str(exc), path=key) from exc


def _translate_client_error(exc: ClientError, key: str) -> BlobStoreError:
    error = exc.response.get("Error", {})
    code = str(error.get("Code", ""))
    message = error.get("Message") or code or str(exc)
    if code in _NOT_FOUND_CODES:
        return BlobNotFound("no such blob", path=key)
    if code in _REJECTED_CODES:
        return BlobStoreRejected(f"{code}: {message}", path=key)
    return BlobStoreUnavailable(f"{code}: {message}", path=key)
