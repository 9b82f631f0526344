"""Configuration, cache item status markers, cache keys, metrics and HTTP error bodies."""

__version__ = "0.1.0"

__all__ = [
    "cache_status",
    "cachekey",
    "config",
    "errors",
    "metrics",
    "shared_config",
]