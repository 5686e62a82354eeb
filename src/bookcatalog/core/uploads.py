"""Cover image validation and storage key derivation."""

from __future__ import annotations

import base64
import mimetypes
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidType, TooLarge

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
KEY_PREFIX = "book-covers"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")

_clock_lock = threading.Lock()
_last_ms = 0


@dataclass(frozen=True)
class LocalFile:
    """A file picked by the user, held in memory until it is uploaded."""

    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path, content_type: str | None = None) -> LocalFile:
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, content_type=content_type, data=path.read_bytes())


def validate_image(content_type: str | None, size: int | None) -> None:
    """Reject anything that is not an image or is over MAX_UPLOAD_BYTES."""
    if not (content_type or "").startswith("image/"):
        raise InvalidType()
    if size is not None and size > MAX_UPLOAD_BYTES:
        raise TooLarge()


def sanitize_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


def next_timestamp_ms() -> int:
    """Wall-clock milliseconds, strictly increasing within this process."""
    global _last_ms
    with _clock_lock:
        now = time.time_ns() // 1_000_000
        _last_ms = max(now, _last_ms + 1)
        return _last_ms


def storage_key(filename: str, timestamp_ms: int | None = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = next_timestamp_ms()
    return f"{KEY_PREFIX}/{timestamp_ms}-{sanitize_filename(filename)}"


def preview_url(file: LocalFile) -> str:
    """Inline data: URL used for display before the upload finishes."""
    encoded = base64.b64encode(file.data).decode("ascii")
    return f"data:{file.content_type};base64,{encoded}"
