"""
SQLite data models (plain dataclasses) for the history store,
plus the row decoders that turn stored rows back into them.
"""

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ydhistory.core.constants import (
    ID, VIDEO_INFO, VIDEO_ID, TITLE, AUTHOR, DURATION_SECONDS, THUMBNAIL,
    AUDIO_AVAILABLE, VIDEO_FORMAT, CONTAINER, WIDTH, HEIGHT, FPS,
)
from ydhistory.core.error_codes import MalformedRowError


@dataclass
class RecordVariant:
    # Strings on purpose: sources report sentinels like "audio only" or "N/A"
    container: str
    width: str
    height: str
    fps: str


@dataclass
class RecordInfo:
    video_id: str
    title: str
    author: str
    duration_seconds: str            # verbatim, never parsed
    thumbnail: Optional[str] = None
    audio_available: bool = False
    variants: list[RecordVariant] = field(default_factory=list)


@dataclass
class ManagedRecord:
    """
    A persisted RecordInfo paired with its row id.
    content_size and the downloading flag live only in memory; copies share
    the same flag so a transfer thread and a UI reader see one status.
    """
    id: int
    info: RecordInfo
    content_size: Optional[int] = field(default=None, compare=False)
    downloading: threading.Event = field(
        default_factory=threading.Event, compare=False, repr=False,
    )

    def is_downloading(self) -> bool:
        return self.downloading.is_set()

    def set_downloading(self, value: bool):
        if value:
            self.downloading.set()
        else:
            self.downloading.clear()

    def __deepcopy__(self, memo):
        # The Event holds a lock and cannot be copied; the flag stays shared
        return ManagedRecord(
            self.id, copy.deepcopy(self.info, memo),
            content_size=self.content_size, downloading=self.downloading,
        )


# ── Row decoding ──────────────────────────────────────────────────────

def _column(row: Mapping[str, Any], table: str, name: str):
    try:
        return row[name]
    except (KeyError, IndexError):
        raise MalformedRowError(table, name, "column missing from row") from None


def _text(row, table: str, name: str, nullable: bool = False) -> Optional[str]:
    value = _column(row, table, name)
    if value is None and nullable:
        return None
    if not isinstance(value, str):
        raise MalformedRowError(
            table, name, f"expected text, got {type(value).__name__} {value!r}"
        )
    return value


def _flag(row, table: str, name: str) -> bool:
    value = _column(row, table, name)
    # SQLite has no boolean storage class; BOOLEAN columns come back as 0/1
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise MalformedRowError(table, name, f"expected 0 or 1, got {value!r}")


def _row_id(row, table: str, name: str = ID) -> int:
    value = _column(row, table, name)
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedRowError(table, name, f"expected integer id, got {value!r}")
    return value


def decode_info_row(row: Mapping[str, Any]) -> tuple[int, RecordInfo]:
    """Map a video_info row to (row id, RecordInfo) with no variants."""
    return _row_id(row, VIDEO_INFO), RecordInfo(
        video_id=_text(row, VIDEO_INFO, VIDEO_ID),
        title=_text(row, VIDEO_INFO, TITLE),
        author=_text(row, VIDEO_INFO, AUTHOR),
        duration_seconds=_text(row, VIDEO_INFO, DURATION_SECONDS),
        thumbnail=_text(row, VIDEO_INFO, THUMBNAIL, nullable=True),
        audio_available=_flag(row, VIDEO_INFO, AUDIO_AVAILABLE),
    )


def decode_variant_row(row: Mapping[str, Any]) -> RecordVariant:
    return RecordVariant(
        container=_text(row, VIDEO_FORMAT, CONTAINER),
        width=_text(row, VIDEO_FORMAT, WIDTH),
        height=_text(row, VIDEO_FORMAT, HEIGHT),
        fps=_text(row, VIDEO_FORMAT, FPS),
    )
