# ============================================
# FILE: crossload/storage/memory.py
# ============================================

"""
In-Memory Object Storage

Simple in-memory object store for testing and development.
Behaves like an S3 bucket set: flat keys, paged listings, no directories.
Not suitable for production use.
"""

import asyncio
from collections.abc import AsyncIterator

from crossload.core.exceptions import BucketNotFoundError, SourceFileNotFoundError
from crossload.storage.base import LIST_PAGE_SIZE, ListPage, ObjectInfo, ObjectReader, ObjectStorage


class InMemoryObjectReader(ObjectReader):
    def __init__(self, data: bytes):
        self._data = data
        self._offset = 0
        self.size = len(data)
        self.closed = False

    async def read(self, amount: int) -> bytes:
        # Yield control so cancellation can interleave like a real network read
        await asyncio.sleep(0)
        chunk = self._data[self._offset:self._offset + amount]
        self._offset += len(chunk)
        return chunk

    async def close(self) -> None:
        self.closed = True


class InMemoryObjectStorage(ObjectStorage):
    """In-memory implementation of object storage"""

    def __init__(self, buckets: list[str] | None = None):
        self._buckets: dict[str, dict[str, bytes]] = {name: {} for name in buckets or []}
        self.calls: list[tuple[str, str, str]] = []

    def create_bucket(self, bucket: str) -> None:
        self._buckets.setdefault(bucket, {})

    def _bucket(self, bucket: str) -> dict[str, bytes]:
        try:
            return self._buckets[bucket]
        except KeyError:
            raise BucketNotFoundError(bucket) from None

    def keys(self, bucket: str) -> list[str]:
        return sorted(self._bucket(bucket))

    def get_bytes(self, bucket: str, key: str) -> bytes:
        return self._bucket(bucket)[key]

    async def list_page(
        self,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        max_keys: int = LIST_PAGE_SIZE,
    ) -> ListPage:
        self.calls.append(("list", bucket, prefix))
        keys = sorted(k for k in self._bucket(bucket) if k.startswith(prefix))
        start = int(continuation_token) if continuation_token else 0
        page_keys = keys[start:start + max_keys]
        end = start + len(page_keys)
        return ListPage(
            objects=[ObjectInfo(key=k, size=len(self._buckets[bucket][k])) for k in page_keys],
            next_token=str(end) if end < len(keys) else None,
        )

    async def head(self, bucket: str, key: str) -> int:
        self.calls.append(("head", bucket, key))
        objects = self._bucket(bucket)
        if key not in objects:
            msg = f"Object not found: {key}"
            raise SourceFileNotFoundError(msg, path=key, bucket=bucket)
        return len(objects[key])

    async def open_object(self, bucket: str, key: str) -> InMemoryObjectReader:
        self.calls.append(("get", bucket, key))
        objects = self._bucket(bucket)
        if key not in objects:
            msg = f"Object not found: {key}"
            raise SourceFileNotFoundError(msg, path=key, bucket=bucket)
        return InMemoryObjectReader(objects[key])

    async def put_object(self, bucket: str, key: str, data: bytes) -> None:
        self.calls.append(("put", bucket, key))
        self._bucket(bucket)[key] = bytes(data)

    async def upload_stream(
        self,
        bucket: str,
        key: str,
        chunks: AsyncIterator[bytes],
        part_size: int,
    ) -> int:
        self.calls.append(("upload", bucket, key))
        objects = self._bucket(bucket)
        buffer = bytearray()
        async for chunk in chunks:
            buffer.extend(chunk)
        # Only visible once complete, like a multipart upload
        objects[key] = bytes(buffer)
        return len(buffer)

    async def copy_object(
        self, source_bucket: str, source_key: str, dest_bucket: str, dest_key: str
    ) -> None:
        self.calls.append(("copy", source_bucket, source_key))
        source = self._bucket(source_bucket)
        if source_key not in source:
            msg = f"Object not found: {source_key}"
            raise SourceFileNotFoundError(msg, path=source_key, bucket=source_bucket)
        self._bucket(dest_bucket)[dest_key] = source[source_key]

    async def delete_object(self, bucket: str, key: str) -> None:
        self.calls.append(("delete", bucket, key))
        self._bucket(bucket).pop(key, None)
