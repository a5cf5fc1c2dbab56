"""Data models for the streams table."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

STREAM_CATEGORIES = ("gaming", "music", "coding")


@dataclass
class Stream:
    """One broadcast configuration, keyed for webhooks by ``playback_id``."""

    id: str
    user_id: str
    title: str
    stream_key: str = ""
    ingest_url: str = ""
    playback_id: str = ""
    is_live: bool = False
    category: str = "gaming"  # 'gaming' | 'music' | 'coding'
    last_event_at: datetime | None = None
    created_at: datetime | None = None

    def to_public(self, include_secrets: bool = False) -> dict:
        """Row as returned by the API. The stream key is owner-only."""
        data = asdict(self)
        if not include_secrets:
            data.pop("stream_key")
        return data
