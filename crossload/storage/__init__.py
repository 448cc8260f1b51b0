"""
Storage backends for the transfer engine.

Quick Start:
    >>> from crossload.storage import LocalStorage, S3Storage, StorageRegistry
    >>> registry = StorageRegistry(
    ...     LocalStorage({"data": "/mnt/data"}),
    ...     S3Storage(S3Settings(endpoint_url="http://localhost:9000")),
    ... )
"""

from .base import LIST_PAGE_SIZE, ListPage, ObjectInfo, ObjectReader, ObjectStorage
from .local import LocalEntry, LocalStorage
from .memory import InMemoryObjectStorage
from .registry import StorageRegistry
from .s3 import S3Storage

__all__ = [
    # Interfaces
    "LIST_PAGE_SIZE",
    "ListPage",
    "ObjectInfo",
    "ObjectReader",
    "ObjectStorage",

    # Implementations
    "InMemoryObjectStorage",
    "LocalEntry",
    "LocalStorage",
    "S3Storage",

    "StorageRegistry",
]
