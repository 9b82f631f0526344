"""Configuration of the cache that several service instances can share."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Union

DEFAULT_MAX_CONCURRENT_UPLOADS = 20
DEFAULT_MAX_UPLOAD_QUEUE_SIZE = 400


@dataclass(frozen=True)
class FilesystemSharedCacheConfig:
    """A shared cache that lives in a directory on a (possibly network) filesystem."""

    path: Path

    @classmethod
    def _from_dict(cls, data: Any) -> "FilesystemSharedCacheConfig":
        if not isinstance(data, Mapping):
            raise ValueError("filesystem shared cache config must be a mapping")
        if "path" not in data or data["path"] is None:
            raise ValueError("filesystem shared cache config requires a 'path'")
        return cls(path=Path(data["path"]))


@dataclass(frozen=True)
class GcsSharedCacheConfig:
    """A shared cache stored in a GCS bucket.

    When no service account file is given, the credentials are looked up in the
    environment or from the platform the service runs on.
    """

    bucket: str
    service_account_path: Path | None = None

    @classmethod
    def _from_dict(cls, data: Any) -> "GcsSharedCacheConfig":
        if not isinstance(data, Mapping):
            raise ValueError("gcs shared cache config must be a mapping")
        bucket = data.get("bucket")
        if not isinstance(bucket, str):
            raise ValueError("gcs shared cache config requires a string 'bucket'")
        account = data.get("service_account_path")
        return cls(
            bucket=bucket,
            service_account_path=Path(account) if account is not None else None,
        )


SharedCacheBackend = Union[GcsSharedCacheConfig, FilesystemSharedCacheConfig]

_BACKENDS = {
    "gcs": GcsSharedCacheConfig,
    "filesystem": FilesystemSharedCacheConfig,
}


def _non_negative_int(data: Mapping[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
    return value


@dataclass(frozen=True)
class SharedCacheConfig:
    """A remote cache shared between service instances.

    Uploads are not critical: at most ``max_concurrent_uploads`` run at once and
    at most ``max_upload_queue_size`` wait; further uploads are dropped.
    """

    backend: SharedCacheBackend
    max_concurrent_uploads: int = DEFAULT_MAX_CONCURRENT_UPLOADS
    max_upload_queue_size: int = DEFAULT_MAX_UPLOAD_QUEUE_SIZE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SharedCacheConfig":
        """Build the config from a parsed mapping; the backend is keyed by its name."""
        if not isinstance(data, Mapping):
            raise ValueError("shared cache config must be a mapping")
        found = [name for name in _BACKENDS if name in data]
        if not found:
            raise ValueError(
                "shared cache config requires one of the backends: "
                + ", ".join(_BACKENDS)
            )
        if len(found) > 1:
            raise ValueError(
                "shared cache config names more than one backend: " + ", ".join(found)
            )
        name = found[0]
        backend = _BACKENDS[name]._from_dict(data[name])
        return cls(
            backend=backend,
            max_concurrent_uploads=_non_negative_int(
                data, "max_concurrent_uploads", DEFAULT_MAX_CONCURRENT_UPLOADS
            ),
            max_upload_queue_size=_non_negative_int(
                data, "max_upload_queue_size", DEFAULT_MAX_UPLOAD_QUEUE_SIZE
            ),
        )