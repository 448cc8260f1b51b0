"""
Object storage interface.

Defines the primitives the transfer engine consumes from an object store:
list (paged), head, get (streamed), put, streaming upload, server-side copy
and delete. Local filesystems are served by ``LocalStorage`` directly.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from crossload.core.exceptions import NotFoundError

LIST_PAGE_SIZE = 1000


@dataclass
class ObjectInfo:
    key: str
    size: int = 0


@dataclass
class ListPage:
    """One page of a prefix listing."""

    objects: list[ObjectInfo] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    next_token: str | None = None


class ObjectReader(ABC):
    """Streamed body of an object being downloaded."""

    size: int = 0

    @abstractmethod
    async def read(self, amount: int) -> bytes:
        """Read up to ``amount`` bytes; ``b""`` at end of stream."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""

    async def iter_chunks(self, chunk_size: int) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read(chunk_size)
            if not chunk:
                return
            yield chunk


class ObjectStorage(ABC):
    """Abstract interface for an S3-compatible object store"""

    @abstractmethod
    async def list_page(
        self,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        max_keys: int = LIST_PAGE_SIZE,
    ) -> ListPage:
        """
        List one page of objects under ``prefix``.

        Raises:
            BucketNotFoundError: If the bucket does not exist
            AccessDeniedError: On permission failures
        """

    @abstractmethod
    async def head(self, bucket: str, key: str) -> int:
        """
        Return the size of an object.

        Raises:
            SourceFileNotFoundError: If the object does not exist
        """

    async def exists(self, bucket: str, key: str) -> bool:
        try:
            await self.head(bucket, key)
        except NotFoundError:
            return False
        return True

    @abstractmethod
    async def open_object(self, bucket: str, key: str) -> ObjectReader:
        """Start a streamed download."""

    @abstractmethod
    async def put_object(self, bucket: str, key: str, data: bytes) -> None:
        """Write a small object in a single request."""

    @abstractmethod
    async def upload_stream(
        self,
        bucket: str,
        key: str,
        chunks: AsyncIterator[bytes],
        part_size: int,
    ) -> int:
        """
        Upload an object from an async byte stream.

        Returns:
            Number of bytes uploaded
        """

    @abstractmethod
    async def copy_object(
        self, source_bucket: str, source_key: str, dest_bucket: str, dest_key: str
    ) -> None:
        """Server-side copy; no bytes pass through this process."""

    @abstractmethod
    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""

    async def close(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
