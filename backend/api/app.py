"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import get_settings
from core.database import build_admin_manager, get_database_manager, init_database_manager
from core.dependencies import (
    close_livepeer_api,
    close_moderation_service,
    get_moderation_service,
)
from core.logging import setup_logging
from routers import chat_router, livepeer_router, streams_router, videos_router
from shared.database import DatabaseManager
from shared.migrations.runner import MigrationRunner

logger = logging.getLogger(__name__)

# Track server start time
_start_time: float = 0.0


async def _heartbeat(app: FastAPI, interval: int = 300) -> None:
    """Periodic heartbeat: uptime, DB status and moderation fail-opens"""
    while True:
        await asyncio.sleep(interval)
        uptime = int(time.time() - _start_time)
        db_ok = await get_database_manager().check_health()
        admin_ok = await app.state.admin_db.check_health()
        stats = get_moderation_service().stats
        logger.info(
            f"Heartbeat: uptime={uptime}s, db={db_ok}, admin_db={admin_ok}, "
            f"moderation_checked={stats.checked}, moderation_failed_open={stats.failed_open}"
        )


async def _db_retry_loop(db_manager: DatabaseManager) -> None:
    """Keep retrying a pool that could not connect during startup."""
    delay = 5
    max_delay = 60
    while True:
        await asyncio.sleep(delay)
        if db_manager.is_connected:
            return
        try:
            await db_manager.connect()
            logger.info(f"Database '{db_manager.name}' connected (background retry)")
            return
        except asyncio.CancelledError:
            return
        except Exception as e:
            delay = min(delay * 2, max_delay)
            logger.warning(
                f"DB '{db_manager.name}' background retry failed: {type(e).__name__}: {e}, "
                f"next retry in {delay}s"
            )


async def _connect_or_retry(db_manager: DatabaseManager, tasks: list[asyncio.Task]) -> bool:
    """Wait up to 30s for a pool, else hand it to a background retry loop."""
    try:
        await asyncio.wait_for(db_manager.connect(), timeout=30)
        return True
    except TimeoutError:
        logger.warning(f"DB '{db_manager.name}' timed out during startup, retrying in background")
    except Exception as e:
        logger.error(
            f"DB '{db_manager.name}' failed during startup: {type(e).__name__}: {e}, "
            "retrying in background"
        )
    tasks.append(asyncio.create_task(_db_retry_loop(db_manager)))
    return False


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    global _start_time
    _start_time = time.time()

    settings = get_settings()
    tasks: list[asyncio.Task] = []

    logger.info("Starting Livecast API server")
    logger.info(f"Environment: {settings.environment}")

    db_manager = init_database_manager(settings.database_url)
    # The admin pool is reachable only through app.state (webhook dependency)
    app.state.admin_db = build_admin_manager(settings.admin_database_url)

    await _connect_or_retry(db_manager, tasks)
    admin_ok = await _connect_or_retry(app.state.admin_db, tasks)

    if admin_ok and settings.run_migrations_on_startup:
        try:
            await MigrationRunner(app.state.admin_db.pool).run_pending()
        except Exception as e:
            logger.exception(f"Startup migrations failed: {e}")

    # Build the classifier client eagerly so misconfiguration shows up in startup logs
    get_moderation_service()

    if settings.enable_keep_alive:
        tasks.append(asyncio.create_task(_heartbeat(app, settings.keep_alive_interval)))
        logger.info(f"Heartbeat started (interval={settings.keep_alive_interval}s)")

    yield

    logger.info("Shutting down Livecast API server")
    for task in tasks:
        task.cancel()
    try:
        await close_moderation_service()
        await close_livepeer_api()
        await db_manager.disconnect()
        await app.state.admin_db.disconnect()
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug(f"Request validation failed on {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": "Invalid request format"})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    settings = get_settings()

    setup_logging(settings)

    app = FastAPI(
        title="Livecast API",
        description="Live stream lifecycle, VOD capture and moderated chat",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Every error body is {"error": "..."}
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]

    app.include_router(chat_router.router)
    app.include_router(streams_router.router)
    app.include_router(livepeer_router.router)
    app.include_router(videos_router.router)

    @app.get("/")
    async def root():
        """Root endpoint - minimal service info"""
        return {"service": "livecast-api", "status": "running"}

    # Liveness probe: always 200, no external dependency
    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - _start_time) if _start_time else 0,
        }

    @app.get("/status")
    async def status():
        """Readiness: DB pools plus moderation counters (fail-opens included)"""
        try:
            db_ok = await get_database_manager().check_health()
        except RuntimeError:
            db_ok = False
        admin_db = getattr(app.state, "admin_db", None)
        admin_ok = await admin_db.check_health() if admin_db is not None else False
        moderation = get_moderation_service()
        return {
            "service": "livecast-api",
            "version": "1.0.0",
            "uptime_seconds": int(time.time() - _start_time) if _start_time else 0,
            "db_connected": db_ok,
            "admin_db_connected": admin_ok,
            "moderation": {"provider": moderation.provider, **moderation.stats.as_dict()},
            "environment": settings.environment,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        return "pong"

    logger.info("FastAPI application configured")

    return app
