"""Shared data models for the Livecast backend."""

from .message import ChatMessage, Profile
from .stream import STREAM_CATEGORIES, Stream
from .video import Video

__all__ = [
    "STREAM_CATEGORIES",
    "ChatMessage",
    "Profile",
    "Stream",
    "Video",
]
