"""Chat API routes"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from core.dependencies import get_chat_service, get_current_user_id
from services import ChatService, ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


# ============================================
# Request/Response Models
# ============================================


class ChatSendRequest(BaseModel):
    # Loosely typed on purpose: type errors are reported as 400 by the service
    stream_id: Any = None
    content: Any = None


# ============================================
# Endpoints
# ============================================


async def _send(body: ChatSendRequest, user_id: str, chat_service: ChatService) -> dict:
    try:
        result = await chat_service.send(user_id, body.stream_id, body.content)
        return result.to_response()
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Send message error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error") from None


@router.post("/chat/send")
async def send_message(
    body: ChatSendRequest,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
) -> dict:
    """Moderate and store a chat message.

    Hidden (moderated) messages still return 200 with ``moderated: true``.
    """
    return await _send(body, user_id, chat_service)


@router.post("/moderate")
async def moderate_message(
    body: ChatSendRequest,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
) -> dict:
    """Alias of ``/api/chat/send`` kept for older clients."""
    return await _send(body, user_id, chat_service)


@router.get("/chat/messages")
async def get_messages(
    stream_id: str = Query(..., min_length=1),
    limit: int = Query(default=100, ge=1, le=200),
    chat_service: ChatService = Depends(get_chat_service),
) -> dict:
    """Visible chat history of a stream, oldest first."""
    try:
        messages = await chat_service.history(stream_id, limit)
        return {"messages": messages}
    except Exception as e:
        logger.exception(f"Failed to fetch messages for stream {stream_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch messages") from None
