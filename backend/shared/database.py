"""Database connection management for the Livecast backend.

Supabase connection modes:
  - Session Pooler  (port 5432) : persistent servers, supports prepared statements
  - Transaction Pooler (port 6543) : serverless/edge, no prepared statement support

Two pools are opened per process:
  - ``api``   : the API login role. Request code reaches it only through
    ``ScopedPool``, which switches each transaction to the caller's
    Supabase role and claims so row-level security applies.
  - ``admin`` : the service role, bypasses row-level security. Only the
    webhook handler receives it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, fields
from typing import Any, ClassVar
from urllib.parse import urlparse

import asyncpg

logger = logging.getLogger(__name__)


@dataclass
class PoolConfig:
    """Database pool configuration with sensible defaults."""

    min_size: int = 1
    max_size: int = 5
    timeout: float = 5.0
    command_timeout: float = 15.0
    max_inactive_connection_lifetime: float = 30.0
    max_retries: int = 3
    retry_delay: float = 3.0

    # Keep-alive settings (Session Pooler only)
    tcp_keepalives_idle: int = 30
    tcp_keepalives_interval: int = 10
    tcp_keepalives_count: int = 3

    # - api: request burst from browsers, borrow/return
    # - admin: webhook traffic only, a handful of connections is plenty
    _SERVICE_PRESETS: ClassVar[dict[str, dict]] = {
        "api": {"min_size": 0, "max_size": 10},
        "admin": {"min_size": 0, "max_size": 3},
    }

    @classmethod
    def for_service(cls, service: str, **overrides) -> PoolConfig:
        """Create a PoolConfig with service-specific presets."""
        valid_keys = {f.name for f in fields(cls) if not f.name.startswith("_")}
        preset = dict(cls._SERVICE_PRESETS.get(service, {}))
        preset.update(overrides)
        filtered = {k: v for k, v in preset.items() if k in valid_keys}
        return cls(**filtered)


class DatabaseManager:
    """Manages one asyncpg pool.

    Detects Supabase Transaction vs Session Pooler from the port and
    connects with retry and exponential backoff.
    """

    def __init__(self, database_url: str, config: PoolConfig | None = None, name: str = "api"):
        self.database_url = database_url
        self.config = config or PoolConfig.for_service(name)
        self.name = name
        self._pool: asyncpg.Pool | None = None
        self._pooler_mode: str = "transaction" if ":6543" in database_url else "session"

    async def _init_session_connection(self, conn: asyncpg.Connection) -> None:
        """Set a session-level statement timeout (Session Pooler only)."""
        timeout_ms = int(self.config.command_timeout * 1000)
        await conn.execute(f"SET statement_timeout = {timeout_ms}")

    def _session_pool_kwargs(self) -> dict[str, Any]:
        cfg = self.config
        return {
            "dsn": self.database_url,
            "min_size": cfg.min_size,
            "max_size": cfg.max_size,
            "timeout": cfg.timeout,
            "command_timeout": cfg.command_timeout,
            "ssl": "require",
            "statement_cache_size": 100,
            "max_inactive_connection_lifetime": cfg.max_inactive_connection_lifetime,
            "server_settings": {
                "tcp_keepalives_idle": str(cfg.tcp_keepalives_idle),
                "tcp_keepalives_interval": str(cfg.tcp_keepalives_interval),
                "tcp_keepalives_count": str(cfg.tcp_keepalives_count),
            },
            "init": self._init_session_connection,
        }

    def _transaction_pool_kwargs(self) -> dict[str, Any]:
        """PgBouncer in transaction mode keeps no session state.

        No prepared statements, no server_settings, no init callback,
        and no idle connections held.
        """
        cfg = self.config
        return {
            "dsn": self.database_url,
            "min_size": 0,
            "max_size": cfg.max_size,
            "timeout": cfg.timeout,
            "command_timeout": cfg.command_timeout,
            "ssl": "require",
            "statement_cache_size": 0,
            "max_inactive_connection_lifetime": 0,
        }

    @property
    def host(self) -> str:
        parsed = urlparse(self.database_url)
        return f"{parsed.hostname or 'unknown'}:{parsed.port or 5432}"

    # ── Lifecycle ────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Initialize the connection pool with retry."""
        if self._pool is not None:
            logger.warning(f"[{self.name}] Database pool already initialized")
            return

        _builders = {
            "session": self._session_pool_kwargs,
            "transaction": self._transaction_pool_kwargs,
        }
        pool_kwargs = _builders[self._pooler_mode]()
        logger.info(f"[{self.name}] Connecting to {self.host} ({self._pooler_mode} pooler)")

        cfg = self.config
        for attempt in range(1, cfg.max_retries + 1):
            try:
                self._pool = await asyncpg.create_pool(**pool_kwargs)

                async with self._pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")

                logger.info(
                    f"[{self.name}] Database pool ready "
                    f"(size={pool_kwargs.get('min_size', 0)}-{cfg.max_size}, "
                    f"cache={pool_kwargs.get('statement_cache_size', 0)})"
                )
                return
            except Exception as e:
                if self._pool is not None:
                    await self._pool.close()
                    self._pool = None
                if attempt >= cfg.max_retries:
                    logger.exception(
                        f"[{self.name}] Database connection failed after {cfg.max_retries} "
                        f"attempts: {type(e).__name__}: {e or repr(e)}"
                    )
                    raise
                delay = cfg.retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"[{self.name}] Connection attempt {attempt}/{cfg.max_retries} failed: "
                    f"{type(e).__name__}: {e or repr(e)}, retrying in {delay}s..."
                )
                await asyncio.sleep(delay)

    async def disconnect(self) -> None:
        if self._pool is None:
            return

        try:
            await self._pool.close()
            self._pool = None
            logger.info(f"[{self.name}] Database pool closed")
        except Exception as e:
            logger.exception(f"[{self.name}] Error closing database pool: {e}")

    async def check_health(self) -> bool:
        """Test if the pool can actually execute a query."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=2.0) as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            return False

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool. Raises if not initialized."""
        if self._pool is None:
            raise RuntimeError(f"Database pool '{self.name}' not initialized. Call connect() first.")
        return self._pool


class ScopedPool:
    """Pool view whose connections act as one Supabase end user.

    Every ``acquire()`` runs inside a transaction that first sets
    ``request.jwt.claims`` and ``role`` the way PostgREST does, so policies
    written against ``auth.uid()`` / ``auth.role()`` see the caller. Both
    settings are transaction-local and disappear when the connection goes
    back to the pool. No claims means the ``anon`` role.

    The login role of the underlying pool must be allowed to ``SET ROLE``
    to ``authenticated`` and ``anon`` (Supabase's ``authenticator`` and
    ``postgres`` roles are).
    """

    def __init__(self, pool: asyncpg.Pool, claims: dict[str, Any] | None = None):
        self._pool = pool
        self.claims: dict[str, Any] = claims or {"role": "anon"}
        # Fixed role names only; the JWT's own role claim is never trusted here
        self.role = "authenticated" if claims else "anon"

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "SELECT set_config('request.jwt.claims', $1, true), "
                    "set_config('role', $2, true)",
                    json.dumps(self.claims, default=str),
                    self.role,
                )
                yield conn


# What repositories accept: the admin pool directly, or a caller-scoped view
PoolLike = asyncpg.Pool | ScopedPool
