from pathlib import Path

import pytest
import yaml

from symcachekit.shared_config import (
    FilesystemSharedCacheConfig,
    GcsSharedCacheConfig,
    SharedCacheConfig,
)


def _parse(text):
    return SharedCacheConfig.from_dict(yaml.safe_load(text))


def test_shared_cache_config_filesystem_common_defaults():
    cfg = _parse(
        """
        filesystem:
          path: "/path/to/somewhere"
        """
    )
    assert cfg.max_upload_queue_size == 400
    assert cfg.max_concurrent_uploads == 20
    assert isinstance(cfg.backend, FilesystemSharedCacheConfig)
    assert cfg.backend.path == Path("/path/to/somewhere")


def test_shared_cache_config_common_settings():
    cfg = _parse(
        """
        max_upload_queue_size: 50
        max_concurrent_uploads: 50
        filesystem:
          path: "/path/to/somewhere"
        """
    )
    assert cfg.max_upload_queue_size == 50
    assert cfg.max_concurrent_uploads == 50
    assert isinstance(cfg.backend, FilesystemSharedCacheConfig)


def test_shared_cache_config_gcs():
    cfg = _parse(
        """
        gcs:
          bucket: "some-bucket"
        """
    )
    assert isinstance(cfg.backend, GcsSharedCacheConfig)
    assert cfg.backend.bucket == "some-bucket"
    assert cfg.backend.service_account_path is None


def test_shared_cache_config_gcs_service_account():
    cfg = SharedCacheConfig.from_dict(
        {"gcs": {"bucket": "b", "service_account_path": "/creds.json"}}
    )
    assert cfg.backend.service_account_path == Path("/creds.json")


def test_unknown_fields_are_ignored():
    cfg = SharedCacheConfig.from_dict(
        {"filesystem": {"path": "/x"}, "something_else": 1}
    )
    assert cfg.backend == FilesystemSharedCacheConfig(path=Path("/x"))


def test_missing_backend_is_rejected():
    with pytest.raises(ValueError):
        SharedCacheConfig.from_dict({"max_concurrent_uploads": 3})


def test_two_backends_are_rejected():
    with pytest.raises(ValueError):
        SharedCacheConfig.from_dict(
            {"filesystem": {"path": "/x"}, "gcs": {"bucket": "b"}}
        )


def test_gcs_requires_bucket():
    with pytest.raises(ValueError):
        SharedCacheConfig.from_dict({"gcs": {}})


def test_filesystem_requires_path():
    with pytest.raises(ValueError):
        SharedCacheConfig.from_dict({"filesystem": {}})


@pytest.mark.parametrize("value", [-1, "ten", 1.5, True])
def test_bad_queue_size_is_rejected(value):
    with pytest.raises(ValueError):
        SharedCacheConfig.from_dict(
            {"filesystem": {"path": "/x"}, "max_upload_queue_size": value}
        )