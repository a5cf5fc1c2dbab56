"""Shared repository layer for the Livecast backend."""

from ._ids import as_uuid
from .message import MessageRepository, ProfileRepository
from .stream import StreamRepository
from .video import VideoRepository

__all__ = [
    "MessageRepository",
    "ProfileRepository",
    "StreamRepository",
    "VideoRepository",
    "as_uuid",
]
