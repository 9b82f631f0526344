"""The state a cache item is in, and how that state is stored in the item's file."""

from __future__ import annotations

import io
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO

MALFORMED_MARKER = b"malformed"
"""Starting content of cache items whose computation failed.

Such items expire after the next process restart, or once cleanup runs,
regardless of any age limits. Useful for failures unlikely to go away before
the next deploy, such as an object file that cannot be parsed yet.
"""

CACHE_SPECIFIC_ERROR_MARKER = b"cachespecificerror"
"""Starting content of cache items where a cache-specific operation failed.

For download caches these are download errors, for derived caches conversion
errors. This tells a file known to exist but not fetchable right now apart from
an absent file, which is a negative item.
"""


class CacheStatusKind(Enum):
    """The kinds of state a cache item can be in."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    MALFORMED = "malformed"
    CACHE_SPECIFIC_ERROR = "cache-specific error"


_MARKERS = {
    CacheStatusKind.MALFORMED: MALFORMED_MARKER,
    CacheStatusKind.CACHE_SPECIFIC_ERROR: CACHE_SPECIFIC_ERROR_MARKER,
}


@dataclass(frozen=True)
class CacheStatus:
    """The state of a cache item.

    Positive items hold data; negative items record that something is absent and
    are stored as empty files. Malformed and cache-specific error items carry a
    message describing what went wrong.
    """

    kind: CacheStatusKind
    details: str | None = None

    def __post_init__(self) -> None:
        if self.kind in _MARKERS:
            if not isinstance(self.details, str):
                raise TypeError(f"a {self.kind.value} status needs a message")
        elif self.details is not None:
            raise TypeError(f"a {self.kind.value} status carries no message")

    @classmethod
    def positive(cls) -> "CacheStatus":
        return cls(CacheStatusKind.POSITIVE)

    @classmethod
    def negative(cls) -> "CacheStatus":
        return cls(CacheStatusKind.NEGATIVE)

    @classmethod
    def malformed(cls, details: str) -> "CacheStatus":
        return cls(CacheStatusKind.MALFORMED, details)

    @classmethod
    def cache_specific_error(cls, details: str) -> "CacheStatus":
        return cls(CacheStatusKind.CACHE_SPECIFIC_ERROR, details)

    @classmethod
    def from_content(cls, data: bytes) -> "CacheStatus":
        """Classify a cache item by the bytes it starts with."""
        data = bytes(data)
        for kind, marker in _MARKERS.items():
            if data.startswith(marker):
                message = data[len(marker):].decode("utf-8", errors="replace")
                return cls(kind, message)
        if not data:
            return cls.negative()
        return cls.positive()

    @property
    def label(self) -> str:
        """The short name of the status, as used in metrics."""
        return self.kind.value

    def write(self, file: BinaryIO) -> None:
        """Store the status in ``file``, leaving the cursor at the end.

        A positive status only seeks to the end. Any other status replaces the
        whole content with its marker and message.
        """
        if self.kind is CacheStatusKind.POSITIVE:
            file.seek(0, io.SEEK_END)
        elif self.kind is CacheStatusKind.NEGATIVE:
            file.seek(0)
            file.truncate(0)
        else:
            file.seek(0)
            file.write(_MARKERS[self.kind])
            file.write(self.details.encode("utf-8"))
            file.truncate(file.tell())
        flush = getattr(file, "flush", None)
        if flush is not None:
            flush()