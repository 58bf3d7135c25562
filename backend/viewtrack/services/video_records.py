from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from viewtrack.models import CaptureSource

RawRecord = dict[str, Any]


def parse_dt(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def parse_int(val: Any) -> int | None:
    if val is None or isinstance(val, bool):
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def parse_unix(val: Any) -> datetime | None:
    ts = parse_int(val)
    if ts is None:
        return None
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def first_of(*values: Any) -> Any:
    """Return the first value that is not None or an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


@dataclass(frozen=True)
class VideoMetrics:
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    saves: int = 0

    @classmethod
    def from_values(cls, **values: Any) -> "VideoMetrics":
        return cls(**{key: parse_int(value) or 0 for key, value in values.items()})


@dataclass(frozen=True)
class FetchedVideo:
    """A provider record normalized to the fields the engine persists."""

    platform_video_id: str
    url: str | None = None
    thumbnail_source: str | None = None
    caption: str | None = None
    upload_date: datetime | None = None
    metrics: VideoMetrics = field(default_factory=VideoMetrics)


@dataclass
class NewVideoWrite:
    """Insert of a Video together with its initial snapshot."""

    organization_id: int
    project_id: int
    tracked_account_id: int
    platform: str
    video: FetchedVideo
    thumbnail: str
    capture: CaptureSource
    captured_at: datetime

    operations = 2


@dataclass
class VideoUpdateWrite:
    """Metric overwrite of an existing Video plus one appended snapshot."""

    video_id: int
    platform_video_id: str
    metrics: VideoMetrics
    capture: CaptureSource
    captured_at: datetime
    thumbnail: str | None = None
    caption: str | None = None

    operations = 2
