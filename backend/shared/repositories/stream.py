"""Repository for the streams table."""

from __future__ import annotations

import logging
from datetime import datetime

from shared.database import PoolLike
from shared.models.stream import Stream

from ._ids import as_uuid

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id::text AS id, user_id::text AS user_id, title, stream_key, ingest_url, "
    "playback_id, is_live, category, last_event_at, created_at"
)


class StreamRepository:
    """Pure SQL operations for the streams table."""

    def __init__(self, pool: PoolLike) -> None:
        self.pool = pool

    async def create(
        self,
        user_id: str,
        title: str,
        stream_key: str,
        ingest_url: str,
        playback_id: str,
        category: str = "gaming",
    ) -> Stream:
        """Insert a new offline stream configuration."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO streams
                    (user_id, title, stream_key, ingest_url, playback_id, category, is_live)
                VALUES ($1, $2, $3, $4, $5, $6, FALSE)
                RETURNING {_COLUMNS}
                """,
                as_uuid(user_id),
                title,
                stream_key,
                ingest_url,
                playback_id,
                category,
            )
            return Stream(**dict(row))

    async def get(self, stream_id: str) -> Stream | None:
        key = as_uuid(stream_id)
        if key is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM streams WHERE id = $1", key)
            return Stream(**dict(row)) if row else None

    async def get_by_playback_id(self, playback_id: str) -> Stream | None:
        """Newest stream carrying this playback id.

        Playback ids are not unique over time, so the most recent row wins.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM streams WHERE playback_id = $1 "
                "ORDER BY created_at DESC LIMIT 1",
                playback_id,
            )
            return Stream(**dict(row)) if row else None

    async def get_latest_for_user(self, user_id: str) -> Stream | None:
        key = as_uuid(user_id)
        if key is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM streams WHERE user_id = $1 "
                "ORDER BY created_at DESC LIMIT 1",
                key,
            )
            return Stream(**dict(row)) if row else None

    async def set_live(self, stream_id: str, is_live: bool) -> Stream | None:
        """Set is_live by internal id. Returns the updated row."""
        key = as_uuid(stream_id)
        if key is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"UPDATE streams SET is_live = $2 WHERE id = $1 RETURNING {_COLUMNS}",
                key,
                is_live,
            )
            return Stream(**dict(row)) if row else None

    async def set_live_by_playback_id(
        self,
        playback_id: str,
        is_live: bool,
        event_at: datetime | None = None,
    ) -> list[str]:
        """Apply a lifecycle transition. Returns the ids of the rows changed.

        With ``event_at`` the update only applies to rows whose last applied
        event is not newer, and records ``event_at`` on them.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE streams
                SET is_live = $2,
                    last_event_at = COALESCE(LEAST($3, NOW()), last_event_at)
                WHERE playback_id = $1
                  AND ($3::timestamptz IS NULL
                       OR last_event_at IS NULL
                       OR last_event_at <= $3)
                RETURNING id::text AS id
                """,
                playback_id,
                is_live,
                event_at,
            )
            return [row["id"] for row in rows]

    async def update_title(self, stream_id: str, title: str) -> Stream | None:
        key = as_uuid(stream_id)
        if key is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"UPDATE streams SET title = $2 WHERE id = $1 RETURNING {_COLUMNS}",
                key,
                title,
            )
            return Stream(**dict(row)) if row else None
