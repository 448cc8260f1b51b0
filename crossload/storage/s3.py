# ============================================
# FILE: crossload/storage/s3.py
# ============================================

"""
S3 Object Storage

aioboto3-based access to any S3-compatible endpoint (AWS, MinIO, Ceph, ...).

Uploads stream through multipart upload so memory is bounded by one part,
downloads are exposed as a chunked reader over the response body.

Requires: pip install aioboto3
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from crossload.core.config import S3Settings
from crossload.core.exceptions import classify_error
from crossload.storage.base import LIST_PAGE_SIZE, ListPage, ObjectInfo, ObjectReader, ObjectStorage

logger = logging.getLogger(__name__)

_CLIENT_ERRORS = (ClientError, BotoCoreError, OSError)


async def _iter_parts(chunks: AsyncIterator[bytes], part_size: int) -> AsyncIterator[bytes]:
    """Regroup an arbitrary chunk stream into parts of exactly ``part_size`` (last may be short)."""
    buffer = bytearray()
    async for chunk in chunks:
        buffer.extend(chunk)
        while len(buffer) >= part_size:
            yield bytes(buffer[:part_size])
            del buffer[:part_size]
    if buffer:
        yield bytes(buffer)


class S3ObjectReader(ObjectReader):
    """Chunked reader over a GetObject response body."""

    def __init__(self, response: dict[str, Any], bucket: str, key: str):
        self._body = response["Body"]
        self._bucket = bucket
        self._key = key
        self.size = int(response.get("ContentLength") or 0)

    async def read(self, amount: int) -> bytes:
        try:
            return await self._body.read(amount)
        except _CLIENT_ERRORS as e:
            raise classify_error(e, path=self._key, bucket=self._bucket) from e

    async def close(self) -> None:
        self._body.close()


class S3Storage(ObjectStorage):
    """
    S3 implementation of object storage.

    Example:
        >>> storage = S3Storage(S3Settings(endpoint_url="http://localhost:9000"))
        >>> async with storage:
        ...     size = await storage.head("datasets", "models/config.json")
    """

    def __init__(self, settings: S3Settings | None = None, **client_kwargs):
        self.settings = settings or S3Settings()
        self.client_kwargs = {**self.settings.client_kwargs(), **client_kwargs}
        self._session = None
        self._s3_client = None
        self._lock = asyncio.Lock()

    async def _get_s3_client(self):
        """Get S3 client, creating if necessary"""
        if self._s3_client is None:
            async with self._lock:
                if self._s3_client is None:
                    self._session = aioboto3.Session()
                    self._s3_client = await self._session.client(
                        "s3", **self.client_kwargs
                    ).__aenter__()
        return self._s3_client

    async def list_page(
        self,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        max_keys: int = LIST_PAGE_SIZE,
    ) -> ListPage:
        s3 = await self._get_s3_client()
        params: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": max_keys}
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            response = await s3.list_objects_v2(**params)
        except _CLIENT_ERRORS as e:
            raise classify_error(e, path=prefix, kind="directory", bucket=bucket) from e

        return ListPage(
            objects=[
                ObjectInfo(key=obj["Key"], size=int(obj.get("Size") or 0))
                for obj in response.get("Contents", [])
            ],
            common_prefixes=[p["Prefix"] for p in response.get("CommonPrefixes", [])],
            next_token=(
                response.get("NextContinuationToken") if response.get("IsTruncated") else None
            ),
        )

    async def head(self, bucket: str, key: str) -> int:
        s3 = await self._get_s3_client()
        try:
            response = await s3.head_object(Bucket=bucket, Key=key)
        except _CLIENT_ERRORS as e:
            raise classify_error(e, path=key, bucket=bucket) from e
        return int(response.get("ContentLength") or 0)

    async def open_object(self, bucket: str, key: str) -> S3ObjectReader:
        s3 = await self._get_s3_client()
        try:
            response = await s3.get_object(Bucket=bucket, Key=key)
        except _CLIENT_ERRORS as e:
            raise classify_error(e, path=key, bucket=bucket) from e
        return S3ObjectReader(response, bucket, key)

    async def put_object(self, bucket: str, key: str, data: bytes) -> None:
        s3 = await self._get_s3_client()
        try:
            await s3.put_object(Bucket=bucket, Key=key, Body=data, ContentLength=len(data))
        except _CLIENT_ERRORS as e:
            raise classify_error(e, path=key, bucket=bucket) from e

    async def upload_stream(
        self,
        bucket: str,
        key: str,
        chunks: AsyncIterator[bytes],
        part_size: int,
    ) -> int:
        """
        Upload from a byte stream.

        Objects smaller than one part go out as a single PUT; anything
        larger becomes a multipart upload, aborted if the stream fails or
        is cancelled so no orphaned parts are left behind.
        """
        parts = _iter_parts(chunks, part_size)
        first = await anext(parts, None)
        second = await anext(parts, None) if first is not None else None

        if second is None:
            body = first or b""
            await self.put_object(bucket, key, body)
            return len(body)

        s3 = await self._get_s3_client()
        try:
            created = await s3.create_multipart_upload(Bucket=bucket, Key=key)
        except _CLIENT_ERRORS as e:
            raise classify_error(e, path=key, bucket=bucket) from e
        upload_id = created["UploadId"]

        completed: list[dict[str, Any]] = []
        total = 0
        try:
            for body in (first, second):
                part = await self._upload_part(s3, bucket, key, upload_id, len(completed) + 1, body)
                completed.append(part)
                total += len(body)
            async for body in parts:
                part = await self._upload_part(s3, bucket, key, upload_id, len(completed) + 1, body)
                completed.append(part)
                total += len(body)

            await s3.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": completed},
            )
        except BaseException as e:
            logger.debug(f"Aborting multipart upload {upload_id} for {key}: {e!r}")
            try:
                await s3.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)
            except _CLIENT_ERRORS as abort_error:
                logger.warning(f"Failed to abort multipart upload {upload_id}: {abort_error}")
            if isinstance(e, _CLIENT_ERRORS):
                raise classify_error(e, path=key, bucket=bucket) from e
            raise

        return total

    async def _upload_part(
        self, s3, bucket: str, key: str, upload_id: str, part_number: int, body: bytes
    ) -> dict[str, Any]:
        response = await s3.upload_part(
            Bucket=bucket, Key=key, UploadId=upload_id, PartNumber=part_number, Body=body
        )
        return {"ETag": response["ETag"], "PartNumber": part_number}

    async def copy_object(
        self, source_bucket: str, source_key: str, dest_bucket: str, dest_key: str
    ) -> None:
        s3 = await self._get_s3_client()
        try:
            await s3.copy_object(
                Bucket=dest_bucket,
                Key=dest_key,
                CopySource={"Bucket": source_bucket, "Key": source_key},
            )
        except _CLIENT_ERRORS as e:
            raise classify_error(e, path=source_key, bucket=source_bucket) from e

    async def delete_object(self, bucket: str, key: str) -> None:
        s3 = await self._get_s3_client()
        try:
            await s3.delete_object(Bucket=bucket, Key=key)
        except _CLIENT_ERRORS as e:
            raise classify_error(e, path=key, bucket=bucket) from e

    async def close(self) -> None:
        """Close S3 client"""
        if self._s3_client:
            await self._s3_client.__aexit__(None, None, None)
            self._s3_client = None
            self._session = None
