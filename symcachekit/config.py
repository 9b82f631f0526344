"""Service configuration, loaded from YAML."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from symcachekit.shared_config import SharedCacheConfig


class ConfigError(ValueError):
    """The configuration could not be read or is invalid."""


class LogLevel(Enum):
    """The maximum verbosity of the service's own logging."""

    OFF = "off"
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"
    TRACE = "trace"


class LogFormat(Enum):
    """How log lines are rendered."""

    AUTO = "auto"
    PRETTY = "pretty"
    SIMPLIFIED = "simplified"
    JSON = "json"


_NANOS_PER_SECOND = 1_000_000_000

_DURATION_UNITS = {
    **dict.fromkeys(("nsec", "ns"), 1),
    **dict.fromkeys(("usec", "us", "µs"), 1_000),
    **dict.fromkeys(("msec", "ms"), 1_000_000),
    **dict.fromkeys(("seconds", "second", "sec", "s"), _NANOS_PER_SECOND),
    **dict.fromkeys(("minutes", "minute", "min", "m"), 60 * _NANOS_PER_SECOND),
    **dict.fromkeys(("hours", "hour", "hr", "h"), 3600 * _NANOS_PER_SECOND),
    **dict.fromkeys(("days", "day", "d"), 86_400 * _NANOS_PER_SECOND),
    **dict.fromkeys(("weeks", "week", "w"), 604_800 * _NANOS_PER_SECOND),
    **dict.fromkeys(("months", "month", "M"), 2_630_016 * _NANOS_PER_SECOND),
    **dict.fromkeys(("years", "year", "y"), 31_557_600 * _NANOS_PER_SECOND),
}

_DURATION_PART = re.compile(r"\s*(\d+)\s*([^\d\s]+)\s*")


def parse_duration(value: Any) -> timedelta:
    """Parse a human readable duration such as ``"1h"``, ``"500s"`` or ``"1h 30m"``."""
    if isinstance(value, timedelta):
        return value
    if not isinstance(value, str):
        raise ConfigError(f"expected a duration string, got {value!r}")
    if not value.strip():
        raise ConfigError("empty duration string")
    total_nanos = 0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if match is None:
            raise ConfigError(f"invalid duration: {value!r}")
        number, unit = match.groups()
        if unit not in _DURATION_UNITS:
            raise ConfigError(f"unknown time unit {unit!r} in duration {value!r}")
        total_nanos += int(number) * _DURATION_UNITS[unit]
        pos = match.end()
    return timedelta(microseconds=total_nanos // 1_000)


# Value converters used while reading the configuration mapping.


def _to_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{key}: expected a boolean, got {value!r}")
    return value


def _to_str(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{key}: expected a string, got {value!r}")
    return value


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key}: expected an integer, got {value!r}")
    return value


def _to_uint(key: str, value: Any) -> int:
    number = _to_int(key, value)
    if number < 0:
        raise ConfigError(f"{key}: expected a non-negative integer, got {value!r}")
    return number


def _to_path(key: str, value: Any) -> Path:
    return Path(_to_str(key, value))


def _to_duration(key: str, value: Any) -> timedelta:
    try:
        return parse_duration(value)
    except ConfigError as exc:
        raise ConfigError(f"{key}: {exc}") from exc


def _optional(convert: Callable[[str, Any], Any]) -> Callable[[str, Any], Any]:
    def converter(key: str, value: Any) -> Any:
        return None if value is None else convert(key, value)

    return converter


def _to_mapping(key: str, value: Any) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigError(f"{key}: expected a mapping, got {value!r}")
    return value


def _build(cls: type, key: str, value: Any, fields: Mapping[str, tuple[str, Callable]]):
    """Create ``cls`` from the keys of ``value`` that ``fields`` knows; others are ignored."""
    data = _to_mapping(key, value)
    kwargs = {
        attr: convert(f"{key}.{name}" if key else name, data[name])
        for name, (attr, convert) in fields.items()
        if name in data
    }
    return cls(**kwargs)


def _to_level(key: str, value: Any) -> LogLevel:
    names = [level.value for level in LogLevel]
    try:
        return LogLevel(value)
    except ValueError:
        raise ConfigError(
            f"{key}: unknown variant {value!r}, expected one of "
            + ", ".join(f'"{name}"' for name in names)
        ) from None


def _to_format(key: str, value: Any) -> LogFormat:
    try:
        return LogFormat(value)
    except ValueError:
        raise ConfigError(f"{key}: unknown log format {value!r}") from None


def _to_tags(key: str, value: Any) -> dict[str, str]:
    data = _to_mapping(key, value)
    return {
        _to_str(key, name): _to_str(f"{key}.{name}", tag)
        for name, tag in sorted(data.items())
    }


@dataclass(frozen=True)
class Logging:
    """Controls the logging system."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.AUTO
    enable_backtraces: bool = True

    @classmethod
    def _from_dict(cls, key: str, value: Any) -> "Logging":
        return _build(
            cls,
            key,
            value,
            {
                "level": ("level", _to_level),
                "format": ("format", _to_format),
                "enable_backtraces": ("enable_backtraces", _to_bool),
            },
        )


def _statsd_from_env() -> str | None:
    return os.environ.get("STATSD_SERVER")


@dataclass(frozen=True)
class Metrics:
    """Controls reporting of metrics to a statsd server."""

    statsd: str | None = field(default_factory=_statsd_from_env)
    prefix: str = "symbolicator"
    hostname_tag: str | None = None
    environment_tag: str | None = None
    custom_tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def _from_dict(cls, key: str, value: Any) -> "Metrics":
        return _build(
            cls,
            key,
            value,
            {
                "statsd": ("statsd", _optional(_to_str)),
                "prefix": ("prefix", _to_str),
                "hostname_tag": ("hostname_tag", _optional(_to_str)),
                "environment_tag": ("environment_tag", _optional(_to_str)),
                "custom_tags": ("custom_tags", _to_tags),
            },
        )


_optional_duration = _optional(_to_duration)


@dataclass(frozen=True)
class DownloadedCacheConfig:
    """Expiry of downloaded cache items; ``None`` means never expire."""

    max_unused_for: timedelta | None = timedelta(days=1)
    retry_misses_after: timedelta | None = timedelta(hours=1)
    retry_malformed_after: timedelta | None = timedelta(days=1)
    max_lazy_redownloads: int = 50

    @classmethod
    def _from_dict(cls, key: str, value: Any) -> "DownloadedCacheConfig":
        return _build(
            cls,
            key,
            value,
            {
                "max_unused_for": ("max_unused_for", _optional_duration),
                "retry_misses_after": ("retry_misses_after", _optional_duration),
                "retry_malformed_after": ("retry_malformed_after", _optional_duration),
                "max_lazy_redownloads": ("max_lazy_redownloads", _to_int),
            },
        )


@dataclass(frozen=True)
class DerivedCacheConfig:
    """Expiry of caches derived from downloads; ``None`` means never expire."""

    max_unused_for: timedelta | None = timedelta(days=7)
    retry_misses_after: timedelta | None = timedelta(hours=1)
    retry_malformed_after: timedelta | None = timedelta(days=1)
    max_lazy_recomputations: int = 20

    @classmethod
    def _from_dict(cls, key: str, value: Any) -> "DerivedCacheConfig":
        return _build(
            cls,
            key,
            value,
            {
                "max_unused_for": ("max_unused_for", _optional_duration),
                "retry_misses_after": ("retry_misses_after", _optional_duration),
                "retry_malformed_after": ("retry_malformed_after", _optional_duration),
                "max_lazy_recomputations": ("max_lazy_recomputations", _to_int),
            },
        )


@dataclass(frozen=True)
class DiagnosticsCacheConfig:
    """How long diagnostics files are kept."""

    retention: timedelta | None = timedelta(days=1)

    @property
    def max_unused_for(self) -> timedelta | None:
        return self.retention

    @property
    def retry_misses_after(self) -> timedelta | None:
        return None

    @property
    def retry_malformed_after(self) -> timedelta | None:
        return None

    @classmethod
    def _from_dict(cls, key: str, value: Any) -> "DiagnosticsCacheConfig":
        return _build(cls, key, value, {"retention": ("retention", _optional_duration)})


@dataclass(frozen=True)
class CacheConfigs:
    """Expiry settings of all kinds of caches."""

    downloaded: DownloadedCacheConfig = field(default_factory=DownloadedCacheConfig)
    derived: DerivedCacheConfig = field(default_factory=DerivedCacheConfig)
    diagnostics: DiagnosticsCacheConfig = field(default_factory=DiagnosticsCacheConfig)

    @classmethod
    def _from_dict(cls, key: str, value: Any) -> "CacheConfigs":
        return _build(
            cls,
            key,
            value,
            {
                "downloaded": ("downloaded", DownloadedCacheConfig._from_dict),
                "derived": ("derived", DerivedCacheConfig._from_dict),
                "diagnostics": ("diagnostics", DiagnosticsCacheConfig._from_dict),
            },
        )


def is_docker() -> bool:
    """Tell whether the process runs inside a docker container."""
    if os.path.exists("/.dockerenv"):
        return True
    try:
        with open("/proc/self/cgroup", encoding="utf-8", errors="replace") as cgroup:
            return "/docker" in cgroup.read()
    except OSError:
        return False


def _default_bind() -> str:
    # Docker images rely on the service being reachable from outside.
    return "0.0.0.0:3021" if is_docker() else "127.0.0.1:3021"


def _default_cache_dir() -> Path | None:
    # The docker image defines /data as a persistent volume.
    return Path("/data") if is_docker() else None


def _default_pool_size() -> int:
    return os.cpu_count() or 1


def _to_sources(key: str, value: Any) -> tuple[Mapping[str, Any], ...]:
    if not isinstance(value, list):
        raise ConfigError(f"{key}: expected a list of sources, got {value!r}")
    return tuple(_to_mapping(f"{key}[{pos}]", source) for pos, source in enumerate(value))


def _to_shared_cache(key: str, value: Any) -> SharedCacheConfig:
    try:
        return SharedCacheConfig.from_dict(_to_mapping(key, value))
    except ValueError as exc:
        raise ConfigError(f"{key}: {exc}") from exc


@dataclass(frozen=True)
class Config:
    """The complete service configuration."""

    cache_dir: Path | None = field(default_factory=_default_cache_dir)
    bind: str = field(default_factory=_default_bind)
    logging: Logging = field(default_factory=Logging)
    metrics: Metrics = field(default_factory=Metrics)
    sentry_dsn: str | None = None
    caches: CacheConfigs = field(default_factory=CacheConfigs)
    symstore_proxy: bool = True
    sources: tuple[Mapping[str, Any], ...] = ()
    connect_to_reserved_ips: bool = False
    processing_pool_size: int = field(default_factory=_default_pool_size)
    # Lets a 4MB/s connection download 2GB without timing out.
    max_download_timeout: timedelta = timedelta(seconds=315)
    connect_timeout: timedelta = timedelta(seconds=15)
    # Lets a 4MB/s connection download 1GB without timing out.
    streaming_timeout: timedelta = timedelta(seconds=250)
    max_concurrent_requests: int | None = 120
    shared_cache: SharedCacheConfig | None = None
    crash_db: Path | None = None

    _FIELDS = {
        "cache_dir": ("cache_dir", _optional(_to_path)),
        "bind": ("bind", _to_str),
        "logging": ("logging", Logging._from_dict),
        "metrics": ("metrics", Metrics._from_dict),
        "sentry_dsn": ("sentry_dsn", _optional(_to_str)),
        "caches": ("caches", CacheConfigs._from_dict),
        "symstore_proxy": ("symstore_proxy", _to_bool),
        "sources": ("sources", _to_sources),
        "connect_to_reserved_ips": ("connect_to_reserved_ips", _to_bool),
        "processing_pool_size": ("processing_pool_size", _to_uint),
        "max_download_timeout": ("max_download_timeout", _to_duration),
        "connect_timeout": ("connect_timeout", _to_duration),
        "streaming_timeout": ("streaming_timeout", _to_duration),
        "max_concurrent_requests": ("max_concurrent_requests", _optional(_to_uint)),
        "shared_cache": ("shared_cache", _optional(_to_shared_cache)),
        "_crash_db": ("crash_db", _optional(_to_path)),
    }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """Build the config from a parsed mapping; missing keys take their defaults."""
        if not isinstance(data, Mapping):
            raise ConfigError("the configuration must be a mapping")
        return _build(cls, "", data, cls._FIELDS)

    @classmethod
    def from_yaml(cls, text: str) -> "Config":
        """Parse a YAML document; an empty document is an error."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError("failed to parse YAML") from exc
        if data is None:
            raise ConfigError("failed to parse YAML: the document is empty")
        if not isinstance(data, Mapping):
            raise ConfigError("failed to parse YAML: the document is not a mapping")
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None) -> "Config":
        """Load the config from ``path``, or return the defaults when it is ``None``."""
        if path is None:
            return cls()
        try:
            with open(path, encoding="utf-8") as handle:
                text = handle.read()
        except OSError as exc:
            raise ConfigError("failed to open configuration file") from exc
        return cls.from_yaml(text)

    def cache_dir_for(self, name: str | os.PathLike[str]) -> Path | None:
        """Return ``name`` below the cache directory, or ``None`` if caching is off."""
        if self.cache_dir is None:
            return None
        return self.cache_dir / name

    def default_sources(self) -> tuple[Mapping[str, Any], ...]:
        return self.sources