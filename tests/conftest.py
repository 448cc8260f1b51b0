"""
Pytest configuration and shared fixtures for transfer engine tests

Filesystem trees live under ``tmp_path``; the object store is the
in-memory implementation, so no network or container is needed.
"""

from pathlib import Path

import pytest

from crossload.core.config import TransferConfig
from crossload.storage.local import LocalStorage
from crossload.storage.memory import InMemoryObjectStorage
from crossload.storage.registry import StorageRegistry
from crossload.transfer.service import TransferService

# ============================================
# HELPERS
# ============================================


def make_tree(root: Path, files: dict[str, bytes | str | None]) -> Path:
    """
    Create files under ``root``.

    Keys are forward-slash relative paths; a key ending in ``/`` (or a None
    value) creates a directory instead of a file.
    """
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        target = root.joinpath(*rel.rstrip("/").split("/"))
        if rel.endswith("/") or content is None:
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode()
        target.write_bytes(content)
    return root


# ============================================
# FIXTURES
# ============================================


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def backup_dir(tmp_path) -> Path:
    path = tmp_path / "backup"
    path.mkdir()
    return path


@pytest.fixture
def config(data_dir, backup_dir) -> TransferConfig:
    return TransferConfig(
        local_locations={"data": str(data_dir), "backup": str(backup_dir)},
        retry_base_delay_seconds=0.01,
        chunk_size=4096,
    )


@pytest.fixture
def object_store() -> InMemoryObjectStorage:
    return InMemoryObjectStorage(buckets=["bucket", "archive"])


@pytest.fixture
def local_storage(config) -> LocalStorage:
    return LocalStorage(config.local_locations)


@pytest.fixture
def registry(local_storage, object_store) -> StorageRegistry:
    return StorageRegistry(local_storage, object_store)


@pytest.fixture
async def service(config, registry):
    service = TransferService(config, registry=registry)
    yield service
    await service.close()


@pytest.fixture
def tree():
    """The ``make_tree`` helper, for building filesystem fixtures inline."""
    return make_tree
