"""Chat ingestion: validate, moderate, persist.

Moderated messages are stored with ``hidden = true`` and the call still
succeeds. Every read filters on ``hidden = false``, so nobody sees them,
the sender included, and realtime subscribers filtering the same way are
never notified.
"""

import logging
from dataclasses import dataclass
from typing import Any

from shared.models import ChatMessage, Profile
from shared.repositories import MessageRepository, ProfileRepository, as_uuid

from .errors import UpstreamError, ValidationFailed
from .moderation_service import ModerationService

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 500
MAX_HISTORY = 200


@dataclass
class SendResult:
    message: ChatMessage
    profile: Profile | None
    moderated: bool
    reason: str | None = None

    def to_response(self) -> dict:
        return {
            "message": self.message.to_dict(self.profile),
            "moderated": self.moderated,
            "reason": self.reason,
        }


class ChatService:
    def __init__(
        self,
        messages: MessageRepository,
        profiles: ProfileRepository,
        moderation: ModerationService,
    ) -> None:
        self.messages = messages
        self.profiles = profiles
        self.moderation = moderation

    async def send(self, user_id: str, stream_id: Any, content: Any) -> SendResult:
        """Validate, moderate and store a chat message.

        Raises:
            ValidationFailed: missing, non-string or oversized fields, or a
                malformed stream id.
            UpstreamError: the insert failed.
        """
        if not stream_id or not content:
            raise ValidationFailed("stream_id and content are required")
        if not isinstance(stream_id, str) or not isinstance(content, str):
            raise ValidationFailed("Invalid request format")

        text = content.strip()
        if not text:
            raise ValidationFailed("stream_id and content are required")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationFailed(f"Message too long (max {MAX_MESSAGE_LENGTH} characters)")
        if as_uuid(stream_id) is None:
            raise ValidationFailed("Invalid stream_id")

        verdict = await self.moderation.moderate(text)

        try:
            message = await self.messages.add(
                user_id=user_id,
                stream_id=stream_id,
                content=text,
                hidden=not verdict.appropriate,
            )
        except Exception as e:
            logger.exception(f"Failed to store chat message for stream {stream_id}: {e}")
            raise UpstreamError("Failed to send message") from None

        profile = None
        if verdict.appropriate:
            profile = await self._resolve_profile(user_id)
        else:
            logger.info(f"Message {message.id} hidden by moderation: {verdict.reason}")

        return SendResult(
            message=message,
            profile=profile,
            moderated=not verdict.appropriate,
            reason=verdict.reason,
        )

    async def history(self, stream_id: str, limit: int = 100) -> list[dict]:
        """Visible messages for a stream, oldest first, with sender profiles."""
        limit = max(1, min(limit, MAX_HISTORY))
        messages = await self.messages.list_visible(stream_id, limit)
        if not messages:
            return []

        try:
            profiles = await self.profiles.get_many([m.user_id for m in messages])
        except Exception as e:
            logger.error(f"Profile lookup failed for chat history of {stream_id}: {e}")
            profiles = {}

        return [m.to_dict(profiles.get(m.user_id)) for m in messages]

    async def _resolve_profile(self, user_id: str) -> Profile | None:
        """The message is already stored; a missing profile only degrades display."""
        try:
            return await self.profiles.get(user_id)
        except Exception as e:
            logger.error(f"Profile lookup failed for user {user_id}: {e}")
            return None
