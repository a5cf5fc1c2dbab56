"""Process-wide handle on the user-scoped database manager.

The admin (RLS-bypassing) manager is deliberately not kept here; it lives
on ``app.state`` and is only read by the webhook dependency.
"""

from shared.database import DatabaseManager, PoolConfig

_db_manager: DatabaseManager | None = None


def get_database_manager() -> DatabaseManager:
    """Get the global user-scoped database manager"""
    if _db_manager is None:
        raise RuntimeError("Database manager not initialized")
    return _db_manager


def init_database_manager(database_url: str) -> DatabaseManager:
    """Initialize the global user-scoped database manager"""
    global _db_manager
    _db_manager = DatabaseManager(database_url, PoolConfig.for_service("api"), name="api")
    return _db_manager


def build_admin_manager(admin_database_url: str) -> DatabaseManager:
    """Create the service-role manager. The caller owns where it is stored."""
    return DatabaseManager(admin_database_url, PoolConfig.for_service("admin"), name="admin")
