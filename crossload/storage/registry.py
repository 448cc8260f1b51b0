"""
Storage registry.

Holds the backends the engine can reach and hands out the right one for a
location type.
"""

from crossload.core.config import TransferConfig
from crossload.core.exceptions import UnsupportedTransferError
from crossload.storage.base import ObjectStorage
from crossload.storage.local import LocalStorage
from crossload.storage.s3 import S3Storage
from crossload.types import LocationType


class StorageRegistry:
    """
    Backends by location type.

    Example:
        >>> registry = StorageRegistry(LocalStorage({"data": "/mnt/data"}), S3Storage())
        >>> registry.object_store.head("bucket", "a.txt")
    """

    def __init__(
        self,
        local: LocalStorage | None = None,
        object_store: ObjectStorage | None = None,
    ):
        self.local = local or LocalStorage()
        self._object_store = object_store

    @classmethod
    def from_config(cls, config: TransferConfig) -> "StorageRegistry":
        return cls(LocalStorage(config.local_locations), S3Storage(config.s3))

    @property
    def object_store(self) -> ObjectStorage:
        if self._object_store is None:
            msg = "No object storage backend configured"
            raise UnsupportedTransferError(msg, details={"type": LocationType.S3.value})
        return self._object_store

    def supports(self, location_type: LocationType) -> bool:
        if location_type is LocationType.LOCAL:
            return True
        return self._object_store is not None

    async def close(self) -> None:
        if self._object_store is not None:
            await self._object_store.close()
