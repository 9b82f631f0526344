import textwrap
from datetime import timedelta
from pathlib import Path

import pytest

from symcachekit.config import (
    CacheConfigs,
    Config,
    ConfigError,
    DerivedCacheConfig,
    DiagnosticsCacheConfig,
    DownloadedCacheConfig,
    LogFormat,
    LogLevel,
    Metrics,
    is_docker,
    parse_duration,
)
from symcachekit.shared_config import FilesystemSharedCacheConfig


def load(text):
    return Config.from_yaml(textwrap.dedent(text))


def test_cache_config():
    cfg = Config.load(None)
    assert cfg.caches.diagnostics.retention == timedelta(seconds=3600 * 24)

    cfg = load(
        """
        caches:
          diagnostics:
            retention: 1h
        """
    )
    assert cfg.caches.diagnostics.retention == timedelta(seconds=3600)
    assert cfg.caches.downloaded == DownloadedCacheConfig()
    assert cfg.caches.derived == DerivedCacheConfig()

    cfg = load(
        """
        caches:
          downloaded:
            max_unused_for: 500s
        """
    )
    assert cfg.caches.downloaded.max_unused_for == timedelta(seconds=500)
    assert cfg.caches.downloaded.retry_misses_after == timedelta(seconds=3600)
    assert cfg.caches.downloaded.retry_malformed_after == timedelta(seconds=3600 * 24)
    assert cfg.caches.derived == DerivedCacheConfig()
    assert cfg.caches.diagnostics == DiagnosticsCacheConfig()


def test_disabling_expiry():
    cfg = load(
        """
        caches:
          downloaded:
            max_unused_for: null
        """
    )
    default = DownloadedCacheConfig()
    assert cfg.caches.downloaded.max_unused_for is None
    assert cfg.caches.downloaded.retry_misses_after == default.retry_misses_after
    assert cfg.caches.downloaded.retry_malformed_after == default.retry_malformed_after


def test_unspecified_dl_timeouts():
    cfg = load(
        """
        sources: []
        """
    )
    default = Config()
    assert cfg.max_download_timeout == default.max_download_timeout
    assert cfg.connect_timeout == default.connect_timeout
    assert cfg.streaming_timeout == default.streaming_timeout


def test_zero_second_dl_timeouts():
    cfg = load(
        """
        max_download_timeout: 0s
        connect_timeout: 0s
        streaming_timeout: 0s
        """
    )
    assert cfg.max_download_timeout == timedelta(0)
    assert cfg.connect_timeout == timedelta(0)
    assert cfg.streaming_timeout == timedelta(0)


def test_unknown_fields():
    cfg = load(
        """
        caches:
          not_a_cache:
            max_unused_for: 1h
        """
    )
    assert cfg.caches == CacheConfigs()


def test_empty_file():
    with pytest.raises(ConfigError):
        Config.from_yaml("")


def test_default_values():
    cfg = Config()
    assert cfg.max_download_timeout == timedelta(seconds=315)
    assert cfg.connect_timeout == timedelta(seconds=15)
    assert cfg.streaming_timeout == timedelta(seconds=250)
    assert cfg.max_concurrent_requests == 120
    assert cfg.symstore_proxy is True
    assert cfg.connect_to_reserved_ips is False
    assert cfg.sources == ()
    assert cfg.shared_cache is None
    assert cfg.logging.level is LogLevel.INFO
    assert cfg.logging.format is LogFormat.AUTO
    assert cfg.logging.enable_backtraces is True
    assert cfg.metrics.prefix == "symbolicator"
    assert cfg.processing_pool_size >= 1


def test_default_bind_matches_environment():
    expected = "0.0.0.0:3021" if is_docker() else "127.0.0.1:3021"
    assert Config().bind == expected


def test_cache_defaults():
    downloaded = DownloadedCacheConfig()
    derived = DerivedCacheConfig()
    assert downloaded.max_unused_for == timedelta(seconds=3600 * 24)
    assert downloaded.max_lazy_redownloads == 50
    assert derived.max_unused_for == timedelta(seconds=3600 * 24 * 7)
    assert derived.max_lazy_recomputations == 20


def test_diagnostics_expiry_accessors():
    diagnostics = DiagnosticsCacheConfig(retention=timedelta(seconds=60))
    assert diagnostics.max_unused_for == timedelta(seconds=60)
    assert diagnostics.retry_misses_after is None
    assert diagnostics.retry_malformed_after is None


def test_metrics_statsd_from_environment(monkeypatch):
    monkeypatch.setenv("STATSD_SERVER", "127.0.0.1:8125")
    assert Metrics().statsd == "127.0.0.1:8125"
    monkeypatch.delenv("STATSD_SERVER")
    assert Metrics().statsd is None


def test_logging_section():
    cfg = load(
        """
        logging:
          level: trace
          format: json
          enable_backtraces: false
        """
    )
    assert cfg.logging.level is LogLevel.TRACE
    assert cfg.logging.format is LogFormat.JSON
    assert cfg.logging.enable_backtraces is False


def test_unknown_log_level():
    with pytest.raises(ConfigError, match="off"):
        load(
            """
            logging:
              level: loud
            """
        )


def test_metrics_section():
    cfg = load(
        """
        metrics:
          statsd: "127.0.0.1:8125"
          prefix: custom
          hostname_tag: host
          custom_tags:
            b: "2"
            a: "1"
        """
    )
    assert cfg.metrics.statsd == "127.0.0.1:8125"
    assert cfg.metrics.prefix == "custom"
    assert cfg.metrics.hostname_tag == "host"
    assert list(cfg.metrics.custom_tags.items()) == [("a", "1"), ("b", "2")]


def test_shared_cache_section():
    cfg = load(
        """
        shared_cache:
          filesystem:
            path: "/path/to/somewhere"
        """
    )
    assert cfg.shared_cache.max_upload_queue_size == 400
    assert cfg.shared_cache.backend == FilesystemSharedCacheConfig(Path("/path/to/somewhere"))


def test_invalid_shared_cache():
    with pytest.raises(ConfigError):
        load(
            """
            shared_cache:
              max_concurrent_uploads: 3
            """
        )


def test_crash_db_and_cache_dir():
    cfg = load(
        """
        cache_dir: /tmp/cache
        _crash_db: /tmp/crashes
        """
    )
    assert cfg.cache_dir == Path("/tmp/cache")
    assert cfg.crash_db == Path("/tmp/crashes")
    assert cfg.cache_dir_for("objects") == Path("/tmp/cache/objects")


def test_cache_dir_for_without_cache_dir():
    assert Config(cache_dir=None).cache_dir_for("tmp") is None


def test_default_sources():
    cfg = load(
        """
        sources:
          - id: one
            type: http
        """
    )
    assert cfg.default_sources() == ({"id": "one", "type": "http"},)


def test_wrong_types_are_rejected():
    with pytest.raises(ConfigError):
        load("symstore_proxy: maybe\n")
    with pytest.raises(ConfigError):
        load("processing_pool_size: -1\n")
    with pytest.raises(ConfigError):
        load("connect_timeout: null\n")


def test_non_mapping_document():
    with pytest.raises(ConfigError):
        Config.from_yaml("- a\n- b\n")


def test_load_from_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("connect_timeout: 2m\n", encoding="utf-8")
    assert Config.load(path).connect_timeout == timedelta(minutes=2)


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="failed to open"):
        Config.load(tmp_path / "missing.yml")


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1h", timedelta(hours=1)),
        ("500s", timedelta(seconds=500)),
        ("0s", timedelta(0)),
        ("100ms", timedelta(milliseconds=100)),
        ("1h 30m", timedelta(hours=1, minutes=30)),
        ("2days", timedelta(days=2)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "10", "5 parsecs", "1.5h"])
def test_parse_duration_invalid(text):
    with pytest.raises(ConfigError):
        parse_duration(text)