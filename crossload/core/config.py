"""
TransferConfig - Unified configuration for the transfer engine.

Wires together:
- Concurrency limits (data transfers and metadata calls)
- Streaming parameters (chunk size, progress throttle, multipart part size)
- Retry policy for network fetches
- Large-folder warning thresholds
- Storage locations (named local directories, S3 connection settings)

Example (environment):
    >>> import os
    >>> os.environ["CROSSLOAD_LOCAL_LOCATIONS"] = "data=/mnt/data"
    >>> os.environ["CROSSLOAD_S3_ENDPOINT_URL"] = "http://localhost:9000"
    >>> config = TransferConfig.from_env()

Example (YAML file):
    >>> config = TransferConfig.from_file("crossload.yaml")

    # In crossload.yaml:
    # transfers:
    #   max_concurrent: 4
    # locations:
    #   local:
    #     data: ${DATA_DIR:-/mnt/data}
    # s3:
    #   endpoint_url: ${S3_ENDPOINT}
    #   region_name: us-east-1
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MIB = 1024 * 1024
GIB = 1024 * MIB


@dataclass
class S3Settings:
    """Connection settings handed to the aioboto3 client."""

    endpoint_url: str | None = None
    region_name: str = "us-east-1"
    access_key_id: str | None = None
    secret_access_key: str | None = None

    def client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"region_name": self.region_name}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id:
            kwargs["aws_access_key_id"] = self.access_key_id
        if self.secret_access_key:
            kwargs["aws_secret_access_key"] = self.secret_access_key
        return kwargs


@dataclass
class TransferConfig:
    """
    Configuration for the transfer engine.

    Attributes:
        max_concurrent_transfers: Tasks streaming data at the same time (all jobs)
        max_metadata_operations: Concurrent HEAD/LIST calls (all jobs)
        progress_threshold_bytes: Minimum bytes between progress callbacks
        chunk_size: Read size for streamed copies
        multipart_part_size: Part size for object-store uploads
        max_retries: Retries for transient network errors
        retry_base_delay_seconds: First backoff delay, doubled on each retry
        large_folder_file_threshold: File count that triggers the warning
        large_folder_size_threshold: Total bytes that trigger the warning
        max_path_length: Longest composed path accepted while scanning
        job_ttl_seconds: How long finished jobs stay queryable
        local_locations: Location id -> base directory
        s3: Object-store connection settings
    """

    max_concurrent_transfers: int = 2
    max_metadata_operations: int = 10
    progress_threshold_bytes: int = MIB
    chunk_size: int = 256 * 1024
    multipart_part_size: int = 8 * MIB
    max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    large_folder_file_threshold: int = 1000
    large_folder_size_threshold: int = 10 * GIB
    max_path_length: int = 4096
    job_ttl_seconds: float = 3600.0
    local_locations: dict[str, str] = field(default_factory=dict)
    s3: S3Settings = field(default_factory=S3Settings)

    def __post_init__(self) -> None:
        for name in (
            "max_concurrent_transfers",
            "max_metadata_operations",
            "progress_threshold_bytes",
            "chunk_size",
            "large_folder_file_threshold",
            "large_folder_size_threshold",
            "max_path_length",
        ):
            if getattr(self, name) < 1:
                msg = f"{name} must be >= 1, got {getattr(self, name)}"
                raise ValueError(msg)
        if self.max_retries < 0:
            msg = f"max_retries must be >= 0, got {self.max_retries}"
            raise ValueError(msg)
        # S3 requires every part but the last to be at least 5 MiB
        if self.multipart_part_size < 5 * MIB:
            msg = f"multipart_part_size must be >= 5 MiB, got {self.multipart_part_size}"
            raise ValueError(msg)
        if isinstance(self.s3, dict):
            self.s3 = S3Settings(**self.s3)
        self.local_locations = {str(k): str(v) for k, v in self.local_locations.items()}

    @classmethod
    def from_env(cls, load_dotenv: bool = True) -> TransferConfig:
        """
        Create configuration from environment variables.

        Reads:
            CROSSLOAD_MAX_CONCURRENT_TRANSFERS, CROSSLOAD_MAX_METADATA_OPERATIONS,
            CROSSLOAD_MAX_RETRIES, CROSSLOAD_JOB_TTL_SECONDS,
            CROSSLOAD_LOCAL_LOCATIONS ("id=/path,id2=/path2"),
            CROSSLOAD_S3_ENDPOINT_URL, CROSSLOAD_S3_REGION,
            AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY
        """
        from crossload.core.env import get_env

        env = get_env()
        if load_dotenv:
            env.load()

        defaults = cls()
        return cls(
            max_concurrent_transfers=env.get_int(
                "CROSSLOAD_MAX_CONCURRENT_TRANSFERS", defaults.max_concurrent_transfers
            ),
            max_metadata_operations=env.get_int(
                "CROSSLOAD_MAX_METADATA_OPERATIONS", defaults.max_metadata_operations
            ),
            max_retries=env.get_int("CROSSLOAD_MAX_RETRIES", defaults.max_retries),
            job_ttl_seconds=env.get_float("CROSSLOAD_JOB_TTL_SECONDS", defaults.job_ttl_seconds),
            local_locations=env.get_mapping("CROSSLOAD_LOCAL_LOCATIONS"),
            s3=S3Settings(
                endpoint_url=env.get("CROSSLOAD_S3_ENDPOINT_URL") or None,
                region_name=env.get("CROSSLOAD_S3_REGION", "us-east-1") or "us-east-1",
                access_key_id=env.get("AWS_ACCESS_KEY_ID"),
                secret_access_key=env.get("AWS_SECRET_ACCESS_KEY"),
            ),
        )

    @classmethod
    def from_file(cls, file_path: str | Path, substitute_env: bool = True) -> TransferConfig:
        """
        Load configuration from a YAML file.

        Supports environment variable substitution using ${VAR} syntax.
        """
        import yaml

        from crossload.core.env import get_env

        path = Path(file_path)
        if not path.exists():
            msg = f"Configuration file not found: {file_path}"
            raise FileNotFoundError(msg)

        with path.open() as f:
            data = yaml.safe_load(f)

        if not data:
            return cls()

        if substitute_env:
            env = get_env()
            env.load()
            data = env.substitute_dict(data)

        return cls._from_sections(data)

    @classmethod
    def _from_sections(cls, data: dict[str, Any]) -> TransferConfig:
        transfers = data.get("transfers", {}) or {}
        warnings = data.get("warnings", {}) or {}
        locations = data.get("locations", {}) or {}
        retry = data.get("retry", {}) or {}

        kwargs: dict[str, Any] = {}
        mapping = {
            "max_concurrent": ("max_concurrent_transfers", int),
            "max_metadata_operations": ("max_metadata_operations", int),
            "chunk_size": ("chunk_size", int),
            "multipart_part_size": ("multipart_part_size", int),
            "progress_threshold_bytes": ("progress_threshold_bytes", int),
            "job_ttl_seconds": ("job_ttl_seconds", float),
            "max_path_length": ("max_path_length", int),
        }
        for key, (attr, cast) in mapping.items():
            if key in transfers:
                kwargs[attr] = cast(transfers[key])

        if "max_retries" in retry:
            kwargs["max_retries"] = int(retry["max_retries"])
        if "base_delay_seconds" in retry:
            kwargs["retry_base_delay_seconds"] = float(retry["base_delay_seconds"])
        if "file_count" in warnings:
            kwargs["large_folder_file_threshold"] = int(warnings["file_count"])
        if "total_size" in warnings:
            kwargs["large_folder_size_threshold"] = int(warnings["total_size"])

        kwargs["local_locations"] = dict(locations.get("local", {}) or {})
        s3_data = data.get("s3", {}) or {}
        if s3_data:
            kwargs["s3"] = S3Settings(**s3_data)

        config = cls(**kwargs)
        logger.debug(
            "Loaded transfer config with %d local location(s)", len(config.local_locations)
        )
        return config
