"""Dependency injection utilities for FastAPI"""

import logging

import asyncpg
from fastapi import Cookie, Depends, Header, HTTPException, Request

from core.config import get_settings
from core.database import get_database_manager
from services import (
    AuthService,
    ChatService,
    LifecycleReconciler,
    LivepeerAPIClient,
    ModerationService,
    StreamService,
)
from shared.database import ScopedPool
from shared.repositories import (
    MessageRepository,
    ProfileRepository,
    StreamRepository,
    VideoRepository,
)

logger = logging.getLogger(__name__)


# ============================================
# Database
# ============================================


def get_db_pool() -> asyncpg.Pool:
    """Pool of the API login role. Request code wraps it with get_user_pool."""
    db_manager = get_database_manager()
    if not db_manager.is_connected:
        raise HTTPException(status_code=503, detail="Database not ready")
    return db_manager.pool


def _get_admin_pool(request: Request) -> asyncpg.Pool | None:
    """Service-role pool, held on ``app.state`` only. None until connected."""
    admin_db = getattr(request.app.state, "admin_db", None)
    if admin_db is None or not admin_db.is_connected:
        return None
    return admin_db.pool


# ============================================
# Shared clients
# ============================================


_moderation: ModerationService | None = None


def get_moderation_service() -> ModerationService:
    """Shared ModerationService (connection reuse + fail-open counters)."""
    global _moderation
    if _moderation is None:
        settings = get_settings()
        _moderation = ModerationService(
            openai_api_key=settings.openai_api_key,
            groq_api_key=settings.groq_api_key,
            model=settings.moderation_model,
            timeout=settings.moderation_timeout,
        )
    return _moderation


async def close_moderation_service() -> None:
    global _moderation
    if _moderation is not None:
        await _moderation.close()
        _moderation = None


_livepeer_api: LivepeerAPIClient | None = None


def get_livepeer_api() -> LivepeerAPIClient:
    """Shared LivepeerAPIClient. 503 when no API key is configured."""
    global _livepeer_api
    if _livepeer_api is None:
        settings = get_settings()
        if not settings.livepeer_api_key:
            logger.error("LIVEPEER_API_KEY is not set, cannot create streams")
            raise HTTPException(status_code=503, detail="Video provider not configured")
        _livepeer_api = LivepeerAPIClient(
            api_key=settings.livepeer_api_key,
            base_url=settings.livepeer_api_url,
        )
    return _livepeer_api


async def close_livepeer_api() -> None:
    global _livepeer_api
    if _livepeer_api is not None:
        await _livepeer_api.close()
        _livepeer_api = None


# ============================================
# Authentication Dependencies
# ============================================


def get_auth_service() -> AuthService:
    settings = get_settings()
    return AuthService(
        secret_key=settings.supabase_jwt_secret,
        algorithm=settings.jwt_algorithm,
        audience=settings.jwt_audience or None,
    )


def _extract_token(authorization: str | None, auth_token: str | None) -> str | None:
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return auth_token or None


def _resolve_claims(authorization: str | None, auth_token: str | None) -> dict | None:
    token = _extract_token(authorization, auth_token)
    if not token:
        return None
    return get_auth_service().verify_token(token)


async def get_current_user_id(
    authorization: str | None = Header(None),
    auth_token: str | None = Cookie(None),
) -> str:
    """Return the Supabase user id (JWT ``sub``) or fail with 401."""
    claims = _resolve_claims(authorization, auth_token)
    if claims is None:
        logger.debug("Request without a valid session")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return str(claims["sub"])


async def get_optional_user_id(
    authorization: str | None = Header(None),
    auth_token: str | None = Cookie(None),
) -> str | None:
    """Like get_current_user_id but anonymous callers get None."""
    claims = _resolve_claims(authorization, auth_token)
    return str(claims["sub"]) if claims else None


async def get_optional_claims(
    authorization: str | None = Header(None),
    auth_token: str | None = Cookie(None),
) -> dict | None:
    """Verified JWT claims of the caller, None when anonymous."""
    return _resolve_claims(authorization, auth_token)


def get_user_pool(
    pool: asyncpg.Pool = Depends(get_db_pool),
    claims: dict | None = Depends(get_optional_claims),
) -> ScopedPool:
    """The API pool acting as the caller, so row-level security applies."""
    return ScopedPool(pool, claims)


# ============================================
# Service Dependencies
# ============================================


def get_chat_service(
    pool: ScopedPool = Depends(get_user_pool),
    moderation: ModerationService = Depends(get_moderation_service),
) -> ChatService:
    return ChatService(MessageRepository(pool), ProfileRepository(pool), moderation)


def get_stream_service(pool: ScopedPool = Depends(get_user_pool)) -> StreamService:
    return StreamService(StreamRepository(pool), VideoRepository(pool), ProfileRepository(pool))


def get_lifecycle_reconciler(request: Request) -> LifecycleReconciler | None:
    """Reconciler bound to the admin pool: webhooks carry no user session.

    Returns None while the admin pool is down so the webhook can still be
    acknowledged instead of triggering provider retries.
    """
    admin_pool = _get_admin_pool(request)
    if admin_pool is None:
        return None
    return LifecycleReconciler(
        StreamRepository(admin_pool),
        MessageRepository(admin_pool),
        VideoRepository(admin_pool),
    )
