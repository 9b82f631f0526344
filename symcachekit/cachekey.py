"""Keys that identify cache items, and the paths they map to on disk."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

GLOBAL_SCOPE = "global"
"""The scope of items that are shared by every requester."""

_UNSAFE_CHARACTERS = (
    ".",  # protects against ".."
    "/",  # protects against absolute paths
    ":",  # harmless on POSIX, but confuses the macOS Finder
)


def safe_path_segment(s: str) -> str:
    """Turn ``s`` into a single harmless path component."""
    for char in _UNSAFE_CHARACTERS:
        s = s.replace(char, "_")
    return s


@dataclass(frozen=True, order=True)
class CacheKey:
    """Identifies one cache item within a scope."""

    cache_key: str
    scope: str = GLOBAL_SCOPE

    def __str__(self) -> str:
        return f"{self.cache_key} (scope {self.scope})"

    def relative_path(self) -> Path:
        """The path of the item relative to the cache directory."""
        return Path(safe_path_segment(str(self.scope))) / safe_path_segment(self.cache_key)

    def cache_path(self, cache_dir: str | os.PathLike[str], version: int) -> Path:
        """The full path of the item inside ``cache_dir`` for a cache version.

        Version 0 adds no directory, which matches unversioned cache files.
        """
        path = Path(cache_dir)
        if version != 0:
            path = path / str(version)
        return path / self.relative_path()


@dataclass(frozen=True)
class CacheVersions:
    """Cache versions used for lookup and generation.

    ``current`` is looked up first and is the only version written. The
    ``fallbacks`` are looked up next, in order, but never written.
    """

    current: int = 0
    fallbacks: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "fallbacks", tuple(self.fallbacks))

    def lookup_order(self) -> tuple[int, ...]:
        """All versions in the order they are tried."""
        return (self.current, *self.fallbacks)