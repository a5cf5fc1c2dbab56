"""Repository for the messages and profiles tables."""

from __future__ import annotations

import logging

from shared.cache import AsyncTTLCache, cached
from shared.database import PoolLike
from shared.models.message import ChatMessage, Profile

from ._ids import as_uuid

logger = logging.getLogger(__name__)

_MESSAGE_COLUMNS = (
    "id::text AS id, user_id::text AS user_id, stream_id::text AS stream_id, "
    "content, hidden, created_at"
)

_PROFILE_COLUMNS = "id::text AS id, username, avatar_url, bio, created_at"

# Profiles change rarely; a short TTL keeps chat renders cheap.
_profile_cache = AsyncTTLCache(maxsize=512, ttl=60)


class MessageRepository:
    """Pure SQL operations for the messages table."""

    def __init__(self, pool: PoolLike) -> None:
        self.pool = pool

    async def add(self, user_id: str, stream_id: str, content: str, hidden: bool) -> ChatMessage:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO messages (user_id, stream_id, content, hidden)
                VALUES ($1, $2, $3, $4)
                RETURNING {_MESSAGE_COLUMNS}
                """,
                as_uuid(user_id),
                as_uuid(stream_id),
                content,
                hidden,
            )
            return ChatMessage(**dict(row))

    async def list_visible(self, stream_id: str, limit: int = 100) -> list[ChatMessage]:
        """Latest ``limit`` non-hidden messages, oldest first."""
        key = as_uuid(stream_id)
        if key is None:
            return []
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT * FROM (
                    SELECT {_MESSAGE_COLUMNS} FROM messages
                    WHERE stream_id = $1 AND hidden = FALSE
                    ORDER BY created_at DESC
                    LIMIT $2
                ) recent
                ORDER BY created_at ASC
                """,
                key,
                limit,
            )
            return [ChatMessage(**dict(row)) for row in rows]

    async def delete_for_stream(self, stream_id: str) -> int:
        """Delete every message of a stream. Returns the number of rows removed."""
        key = as_uuid(stream_id)
        if key is None:
            return 0
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM messages WHERE stream_id = $1", key)
            return int(result.split()[-1])


class ProfileRepository:
    """Read-only access to public profiles."""

    def __init__(self, pool: PoolLike) -> None:
        self.pool = pool

    @cached(cache=_profile_cache, key_func=lambda self, user_id: f"profile:{user_id}")
    async def get(self, user_id: str) -> Profile | None:
        key = as_uuid(user_id)
        if key is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE id = $1", key)
            return Profile(**dict(row)) if row else None

    async def get_by_username(self, username: str) -> Profile | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE username = $1", username
            )
            return Profile(**dict(row)) if row else None

    async def get_many(self, user_ids: list[str]) -> dict[str, Profile]:
        """Batch lookup keyed by user id; unknown ids are absent from the result."""
        keys = [k for k in (as_uuid(uid) for uid in set(user_ids)) if k is not None]
        if not keys:
            return {}
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE id = ANY($1::uuid[])", keys
            )
            return {row["id"]: Profile(**dict(row)) for row in rows}
