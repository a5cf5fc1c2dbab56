"""Recorded broadcasts (VOD) API routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from core.dependencies import get_stream_service
from services import StreamService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["videos"])


@router.get("")
async def list_videos(
    user_id: str = Query(..., min_length=1),
    limit: int = Query(default=50, ge=1, le=100),
    stream_service: StreamService = Depends(get_stream_service),
) -> dict:
    """A user's recordings, newest first."""
    try:
        videos = await stream_service.list_videos(user_id, limit)
        return {"videos": [v.to_dict() for v in videos]}
    except Exception as e:
        logger.exception(f"Failed to list videos for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch videos") from None
