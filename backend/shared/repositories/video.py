"""Repository for the videos (VOD) table."""

from __future__ import annotations

import logging

from shared.database import PoolLike
from shared.models.video import Video

from ._ids import as_uuid

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id::text AS id, stream_id::text AS stream_id, user_id::text AS user_id, "
    "playback_url, duration, created_at, updated_at"
)


class VideoRepository:
    """Pure SQL operations for the videos table."""

    def __init__(self, pool: PoolLike) -> None:
        self.pool = pool

    async def get_by_stream(self, stream_id: str) -> Video | None:
        key = as_uuid(stream_id)
        if key is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM videos WHERE stream_id = $1 LIMIT 1", key
            )
            return Video(**dict(row)) if row else None

    async def add(
        self,
        stream_id: str,
        user_id: str,
        playback_url: str,
        duration: float | None = None,
    ) -> Video | None:
        """Insert a VOD row.

        Returns None when a row for the stream already exists (the unique
        index on stream_id absorbs concurrent inserts).
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO videos (stream_id, user_id, playback_url, duration)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (stream_id) DO NOTHING
                RETURNING {_COLUMNS}
                """,
                as_uuid(stream_id),
                as_uuid(user_id),
                playback_url,
                duration,
            )
            return Video(**dict(row)) if row else None

    async def update_recording(
        self,
        video_id: str,
        playback_url: str | None = None,
        duration: float | None = None,
    ) -> Video | None:
        """Refresh URL and/or duration. ``None`` arguments keep the stored value."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE videos SET
                    playback_url = COALESCE($2, playback_url),
                    duration     = COALESCE($3, duration),
                    updated_at   = NOW()
                WHERE id = $1
                RETURNING {_COLUMNS}
                """,
                as_uuid(video_id),
                playback_url,
                duration,
            )
            return Video(**dict(row)) if row else None

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Video]:
        key = as_uuid(user_id)
        if key is None:
            return []
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM videos WHERE user_id = $1 "
                "ORDER BY created_at DESC LIMIT $2",
                key,
                limit,
            )
            return [Video(**dict(row)) for row in rows]
