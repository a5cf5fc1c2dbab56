"""Data models for the messages and profiles tables."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime


@dataclass
class Profile:
    """Public profile of an account."""

    id: str
    username: str
    avatar_url: str | None = None
    bio: str | None = None
    created_at: datetime | None = None

    def to_public(self) -> dict:
        return {"id": self.id, "username": self.username, "avatar_url": self.avatar_url}


@dataclass
class ChatMessage:
    """Chat line. ``hidden`` rows are stored but never read back."""

    id: str
    user_id: str
    stream_id: str
    content: str
    hidden: bool = False
    created_at: datetime | None = None

    def to_dict(self, profile: Profile | None = None) -> dict:
        data = asdict(self)
        data["profiles"] = profile.to_public() if profile else None
        return data
