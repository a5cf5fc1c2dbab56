"""API Routers package

Routers are organized by feature domain.
"""

from . import chat_router, livepeer_router, streams_router, videos_router

__all__ = [
    "chat_router",
    "livepeer_router",
    "streams_router",
    "videos_router",
]
