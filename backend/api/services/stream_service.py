"""Stream management on behalf of an authenticated broadcaster.

Also owns the VOD capture fallback: stopping a stream records a VOD row
immediately with the well-known recording URL, without waiting for the
provider's ``recording.ready`` webhook. The webhook later refreshes that
row in place with the confirmed URL and duration.
"""

import logging
from typing import Any

from shared.models import STREAM_CATEGORIES, Stream, Video
from shared.repositories import ProfileRepository, StreamRepository, VideoRepository

from .errors import Forbidden, NotFound, UpstreamError, ValidationFailed
from .livepeer_api import INGEST_URL, LivepeerAPIClient, recording_url_for

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100


class StreamService:
    def __init__(
        self,
        streams: StreamRepository,
        videos: VideoRepository,
        profiles: ProfileRepository,
    ) -> None:
        self.streams = streams
        self.videos = videos
        self.profiles = profiles

    # ==================== Create / read ====================

    async def create_stream(
        self,
        user_id: str,
        title: Any,
        category: Any,
        livepeer: LivepeerAPIClient,
    ) -> dict:
        """Create a recorded Livepeer stream and persist its configuration."""
        if not title or not isinstance(title, str) or not title.strip():
            raise ValidationFailed("Title is required")
        title = title.strip()
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationFailed(f"Title too long (max {MAX_TITLE_LENGTH} characters)")

        category = category or "gaming"
        if category not in STREAM_CATEGORIES:
            raise ValidationFailed(f"Invalid category: {category}")

        created = await livepeer.create_stream(name=title, record=True)
        if not created:
            raise UpstreamError("Failed to create stream in Livepeer")

        details = await livepeer.get_stream(created["id"])
        if not details:
            raise UpstreamError("Failed to get stream details")

        stream_key = details.get("streamKey") or created.get("streamKey") or ""
        playback_id = created.get("playbackId") or details.get("playbackId") or ""

        try:
            stream = await self.streams.create(
                user_id=user_id,
                title=title,
                stream_key=stream_key,
                ingest_url=INGEST_URL,
                playback_id=playback_id,
                category=category,
            )
        except Exception as e:
            logger.exception(f"Failed to save stream for user {user_id}: {e}")
            raise UpstreamError("Failed to save stream to database") from None

        logger.info(f"Stream created for user {user_id}: {stream.id} (playback_id={playback_id})")
        return {
            "id": stream.id,
            "streamKey": stream_key,
            "playbackId": playback_id,
            "ingestUrl": INGEST_URL,
            "stream": stream.to_public(include_secrets=True),
        }

    async def get_stream(
        self,
        viewer_id: str | None,
        stream_id: str | None = None,
        username: str | None = None,
        user_id: str | None = None,
    ) -> dict:
        """Look up a stream by id, else the latest of a username or user id."""
        if stream_id:
            stream = await self.streams.get(stream_id)
        elif username:
            profile = await self.profiles.get_by_username(username)
            if profile is None:
                raise NotFound("User not found")
            stream = await self.streams.get_latest_for_user(profile.id)
        elif user_id:
            stream = await self.streams.get_latest_for_user(user_id)
        else:
            raise ValidationFailed("username, userId, or streamId is required")

        if stream is None:
            raise NotFound("Stream not found")

        owner = await self.profiles.get(stream.user_id)
        data = stream.to_public(include_secrets=viewer_id == stream.user_id)
        data["profiles"] = owner.to_public() if owner else None
        return data

    async def list_videos(self, user_id: str, limit: int = 50) -> list[Video]:
        return await self.videos.list_for_user(user_id, max(1, min(limit, 100)))

    # ==================== Owner actions ====================

    async def update_title(self, user_id: str, stream_id: Any, title: Any) -> Stream:
        if not stream_id or not title:
            raise ValidationFailed("streamId and title are required")
        if not isinstance(stream_id, str) or not isinstance(title, str):
            raise ValidationFailed("Invalid request format")
        if not title.strip():
            raise ValidationFailed("Title cannot be empty")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationFailed(f"Title too long (max {MAX_TITLE_LENGTH} characters)")

        await self._get_owned(user_id, stream_id, "update")

        try:
            updated = await self.streams.update_title(stream_id, title.strip())
        except Exception as e:
            logger.exception(f"Failed to update title of stream {stream_id}: {e}")
            raise UpstreamError("Failed to update stream title") from None
        if updated is None:
            raise NotFound("Stream not found")
        return updated

    async def stop_stream(self, user_id: str, stream_id: Any) -> Stream:
        """Take an owned live stream offline, then run the VOD fallback.

        Raises:
            ValidationFailed: missing/invalid id, or stream already offline.
            NotFound: no such stream.
            Forbidden: caller does not own the stream.
            UpstreamError: the is_live update failed.
        """
        if not stream_id:
            raise ValidationFailed("streamId is required")
        if not isinstance(stream_id, str):
            raise ValidationFailed("Invalid request format")

        stream = await self._get_owned(user_id, stream_id, "stop")
        if not stream.is_live:
            raise ValidationFailed("Stream is already offline")

        try:
            updated = await self.streams.set_live(stream_id, False)
        except Exception as e:
            logger.exception(f"Failed to stop stream {stream_id}: {e}")
            raise UpstreamError("Failed to stop stream") from None
        if updated is None:
            raise NotFound("Stream not found")

        logger.info(f"Stream {stream_id} stopped by owner {user_id}")
        await self.capture_vod_fallback(updated)
        return updated

    async def capture_vod_fallback(self, stream: Stream) -> Video | None:
        """Record a VOD row with the constructed URL if none exists yet.

        Best effort: errors are logged and swallowed so stopping never fails here.
        """
        if not stream.playback_id:
            logger.debug(f"Stream {stream.id} has no playback_id, skipping VOD fallback")
            return None

        try:
            existing = await self.videos.get_by_stream(stream.id)
            if existing is not None:
                logger.debug(f"VOD already exists for stream {stream.id}")
                return existing

            video = await self.videos.add(
                stream_id=stream.id,
                user_id=stream.user_id,
                playback_url=recording_url_for(stream.playback_id),
                duration=None,
            )
            if video is not None:
                logger.info(f"VOD fallback created for stream {stream.id}")
            return video
        except Exception as e:
            logger.error(f"VOD fallback failed for stream {stream.id}: {e}")
            return None

    async def _get_owned(self, user_id: str, stream_id: str, action: str) -> Stream:
        stream = await self.streams.get(stream_id)
        if stream is None:
            raise NotFound("Stream not found")
        if stream.user_id != user_id:
            logger.warning(f"User {user_id} tried to {action} stream {stream_id} they do not own")
            raise Forbidden(f"Unauthorized: You can only {action} your own streams")
        return stream
