"""Stream owner actions"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from core.dependencies import get_current_user_id, get_stream_service
from services import ServiceError, StreamService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/streams", tags=["streams"])


class StopStreamRequest(BaseModel):
    streamId: Any = None


class UpdateTitleRequest(BaseModel):
    streamId: Any = None
    title: Any = None


@router.patch("/stop-stream")
async def stop_stream(
    body: StopStreamRequest,
    user_id: str = Depends(get_current_user_id),
    stream_service: StreamService = Depends(get_stream_service),
) -> dict:
    """Take the caller's stream offline and record its VOD right away."""
    try:
        stream = await stream_service.stop_stream(user_id, body.streamId)
        return {"stream": stream.to_public(include_secrets=True)}
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Stop stream error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error") from None


@router.patch("/update-title")
async def update_title(
    body: UpdateTitleRequest,
    user_id: str = Depends(get_current_user_id),
    stream_service: StreamService = Depends(get_stream_service),
) -> dict:
    try:
        stream = await stream_service.update_title(user_id, body.streamId, body.title)
        logger.info(f"User {user_id} renamed stream {stream.id}")
        return {"stream": stream.to_public(include_secrets=True)}
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Update title error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error") from None
