"""Stream lifecycle reconciliation driven by Livepeer webhooks.

State machine over a stream, correlated by ``playback_id``::

    OFFLINE --stream.started--> LIVE      (chat for the stream is cleared)
    LIVE    --stream.idle-----> OFFLINE
    LIVE    --stream.ended----> OFFLINE
    any     --recording.ready-> unchanged (VOD row created or refreshed)

Delivery is at-least-once and unordered, so every transition is safe to
re-apply. Side-effect failures are logged and never surface to the
provider: the webhook is always acknowledged once decoded.

The repositories handed to this class must be bound to the admin pool; the
webhook caller has no end-user session.
"""

import logging

from shared.repositories import MessageRepository, StreamRepository, VideoRepository

from .livepeer_api import recording_url_for
from .webhook_envelope import (
    RECORDING_READY,
    STREAM_ENDED,
    STREAM_IDLE,
    STREAM_STARTED,
    LifecycleEvent,
)

logger = logging.getLogger(__name__)


class LifecycleReconciler:
    """Apply lifecycle events to streams, messages and videos."""

    def __init__(
        self,
        streams: StreamRepository,
        messages: MessageRepository,
        videos: VideoRepository,
    ) -> None:
        self.streams = streams
        self.messages = messages
        self.videos = videos

    async def handle(self, event: LifecycleEvent) -> str:
        """Process one event and return a short outcome label. Never raises."""
        logger.info(
            f"Webhook received: event={event.event_type}, playback_id={event.playback_id}, "
            f"has_recording_url={event.recording_url is not None}"
        )

        if not event.is_known:
            logger.info(f"Unhandled webhook event type: {event.event_type}")
            return "ignored"

        if not event.playback_id:
            logger.warning(f"{event.event_type} without a playbackId, nothing to correlate")
            return "missing_playback_id"

        try:
            if event.event_type == STREAM_STARTED:
                return await self._set_live(event, True)
            if event.event_type in (STREAM_IDLE, STREAM_ENDED):
                return await self._set_live(event, False)
            if event.event_type == RECORDING_READY:
                return await self._recording_ready(event)
        except Exception as e:
            logger.exception(
                f"Error processing {event.event_type} for playback_id={event.playback_id}: {e}"
            )
            return "failed"

        return "ignored"

    # ==================== Live / offline ====================

    async def _set_live(self, event: LifecycleEvent, is_live: bool) -> str:
        playback_id = event.playback_id or ""
        updated_ids = await self.streams.set_live_by_playback_id(
            playback_id, is_live, event.timestamp
        )

        if not updated_ids:
            existing = await self.streams.get_by_playback_id(playback_id)
            if existing is None:
                logger.warning(f"No stream found with playback_id: {playback_id}")
                return "unknown_stream"
            logger.info(
                f"Ignoring stale {event.event_type} for playback_id={playback_id} "
                f"(event_at={event.timestamp}, last_event_at={existing.last_event_at})"
            )
            return "stale"

        state = "live" if is_live else "offline"
        logger.info(f"Stream {playback_id} is now {state} ({len(updated_ids)} row(s))")

        if is_live:
            for stream_id in updated_ids:
                await self._reset_chat(stream_id)

        return state

    async def _reset_chat(self, stream_id: str) -> None:
        """Best effort: a failed reset must not fail the transition."""
        try:
            deleted = await self.messages.delete_for_stream(stream_id)
            logger.info(f"Cleared {deleted} chat message(s) for stream {stream_id}")
        except Exception as e:
            logger.error(f"Failed to clear chat for stream {stream_id}: {e}")

    # ==================== Recordings ====================

    async def _recording_ready(self, event: LifecycleEvent) -> str:
        playback_id = event.playback_id or ""
        stream = await self.streams.get_by_playback_id(playback_id)
        if stream is None:
            # May be a stream this deployment does not track (stale/test stream)
            logger.info(f"No stream found for recording with playback_id: {playback_id}")
            return "unknown_stream"

        existing = await self.videos.get_by_stream(stream.id)
        if existing is not None:
            return await self._refresh_video(existing.id, existing.playback_url, event)

        playback_url = event.recording_url or recording_url_for(playback_id)
        created = await self.videos.add(
            stream_id=stream.id,
            user_id=stream.user_id,
            playback_url=playback_url,
            duration=event.session_duration,
        )
        if created is None:
            # Lost an insert race with the stop-stream fallback
            raced = await self.videos.get_by_stream(stream.id)
            if raced is None:
                logger.error(f"VOD insert for stream {stream.id} returned nothing")
                return "failed"
            return await self._refresh_video(raced.id, raced.playback_url, event)

        logger.info(f"VOD created for stream {stream.id}: {playback_url}")
        return "vod_created"

    async def _refresh_video(self, video_id: str, current_url: str, event: LifecycleEvent) -> str:
        """Update URL (only with a provider-confirmed one) and duration in place."""
        new_url = event.recording_url if event.recording_url != current_url else None
        if new_url is None and event.session_duration is None:
            logger.info(f"VOD {video_id} already up to date")
            return "vod_unchanged"

        await self.videos.update_recording(video_id, new_url, event.session_duration)
        logger.info(
            f"VOD {video_id} refreshed (url_changed={new_url is not None}, "
            f"duration={event.session_duration})"
        )
        return "vod_updated"
