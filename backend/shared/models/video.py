"""Data models for the videos (VOD) table."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime


@dataclass
class Video:
    """Recording of a stream. At most one per ``stream_id``."""

    id: str
    stream_id: str
    user_id: str
    playback_url: str
    duration: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return asdict(self)
