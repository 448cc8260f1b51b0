"""
Tests for the in-memory object store.
"""

import pytest

from crossload.core.exceptions import BucketNotFoundError, SourceFileNotFoundError
from crossload.storage.memory import InMemoryObjectStorage


async def stream(*parts: bytes):
    for part in parts:
        yield part


@pytest.fixture
async def store():
    store = InMemoryObjectStorage(buckets=["bucket"])
    for key in ("a/1.txt", "a/2.txt", "a/3.txt", "b/1.txt"):
        await store.put_object("bucket", key, key.encode())
    return store


class TestInMemoryObjectStorage:
    @pytest.mark.asyncio
    async def test_paged_listing(self, store):
        first = await store.list_page("bucket", "a/", max_keys=2)
        assert [o.key for o in first.objects] == ["a/1.txt", "a/2.txt"]
        assert first.next_token is not None

        second = await store.list_page("bucket", "a/", continuation_token=first.next_token)
        assert [o.key for o in second.objects] == ["a/3.txt"]
        assert second.next_token is None

    @pytest.mark.asyncio
    async def test_missing_bucket(self, store):
        with pytest.raises(BucketNotFoundError):
            await store.list_page("nope", "")

    @pytest.mark.asyncio
    async def test_head_and_exists(self, store):
        assert await store.head("bucket", "b/1.txt") == len(b"b/1.txt")
        assert await store.exists("bucket", "b/1.txt")
        assert not await store.exists("bucket", "b/2.txt")
        with pytest.raises(SourceFileNotFoundError):
            await store.head("bucket", "b/2.txt")

    @pytest.mark.asyncio
    async def test_streamed_read(self, store):
        reader = await store.open_object("bucket", "a/1.txt")
        chunks = [chunk async for chunk in reader.iter_chunks(3)]
        await reader.close()

        assert b"".join(chunks) == b"a/1.txt"
        assert reader.closed

    @pytest.mark.asyncio
    async def test_upload_stream_and_copy(self, store):
        size = await store.upload_stream("bucket", "c/new.bin", stream(b"ab", b"cd"), part_size=1)
        await store.copy_object("bucket", "c/new.bin", "bucket", "d/copy.bin")
        await store.delete_object("bucket", "c/new.bin")
        await store.delete_object("bucket", "c/never-existed.bin")

        assert size == 4
        assert store.get_bytes("bucket", "d/copy.bin") == b"abcd"
        assert "c/new.bin" not in store.keys("bucket")
