"""Livepeer integration: stream creation and lifecycle webhooks"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from core.config import get_settings
from core.dependencies import (
    get_current_user_id,
    get_lifecycle_reconciler,
    get_livepeer_api,
    get_optional_user_id,
    get_stream_service,
)
from services import (
    EnvelopeError,
    LifecycleReconciler,
    LivepeerAPIClient,
    ServiceError,
    StreamService,
    decode_envelope,
)
from services.livepeer_api import verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/livepeer", tags=["livepeer"])

SIGNATURE_HEADER = "Livepeer-Signature"


class CreateStreamRequest(BaseModel):
    title: Any = None
    category: Any = None


# ============================================
# Webhook
# ============================================


@router.post("/webhook")
async def livepeer_webhook(
    request: Request,
    reconciler: LifecycleReconciler | None = Depends(get_lifecycle_reconciler),
) -> dict:
    """Receive stream lifecycle events.

    Any envelope carrying an event type is acknowledged with 200, whatever
    happens downstream; anything else would make the provider retry.
    """
    raw = await request.body()

    secret = get_settings().livepeer_webhook_secret
    if secret and not verify_webhook_signature(secret, raw, request.headers.get(SIGNATURE_HEADER)):
        logger.warning("Webhook rejected: bad or missing signature")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("Webhook body is not valid JSON")
        raise HTTPException(status_code=400, detail="Invalid JSON") from None

    try:
        event = decode_envelope(body)
    except EnvelopeError as e:
        logger.error(f"Webhook missing event/type: {str(body)[:200]}")
        raise HTTPException(status_code=400, detail=str(e)) from None

    if reconciler is None:
        logger.error(f"Admin database unavailable, dropping {event.event_type} event")
        return {"received": True}

    outcome = await reconciler.handle(event)
    logger.debug(f"Webhook {event.event_type} handled: {outcome}")
    return {"received": True}


# ============================================
# Streams
# ============================================


@router.post("/create-stream")
async def create_stream(
    body: CreateStreamRequest,
    user_id: str = Depends(get_current_user_id),
    stream_service: StreamService = Depends(get_stream_service),
    livepeer: LivepeerAPIClient = Depends(get_livepeer_api),
) -> dict:
    """Create a recorded stream with the provider and save it for the caller."""
    try:
        return await stream_service.create_stream(user_id, body.title, body.category, livepeer)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Create stream error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error") from None


@router.get("/get-stream")
async def get_stream(
    streamId: str | None = Query(default=None),
    username: str | None = Query(default=None),
    userId: str | None = Query(default=None),
    viewer_id: str | None = Depends(get_optional_user_id),
    stream_service: StreamService = Depends(get_stream_service),
) -> dict:
    """Fetch a stream by id, or the latest stream of a username / user id."""
    try:
        stream = await stream_service.get_stream(
            viewer_id, stream_id=streamId, username=username, user_id=userId
        )
        return {"stream": stream}
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from None
    except Exception as e:
        logger.exception(f"Get stream error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error") from None
