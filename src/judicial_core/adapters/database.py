"""Primary database engine and session management.

Key exports:
- init_database(...)     — Call at startup to initialize the primary engine
- close_database()       — Call at shutdown to dispose the engine
- get_session_factory()  — Session factory for code running outside a request
- get_db_session()       — FastAPI dependency yielding a primary DB session

The audit database has its own engine in audit_wall.py.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from judicial_core.observability import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(database_url: str, pool_size: int = 10, max_overflow: int = 5) -> AsyncEngine:
    """Create an async engine, passing pool options only where the dialect pools connections.

    Args:
        database_url: SQLAlchemy async URL.
        pool_size: Connection pool size.
        max_overflow: Overflow connections above pool_size.

    Returns:
        A configured AsyncEngine.
    """
    options: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        options.update(pool_size=pool_size, max_overflow=max_overflow)
    return create_async_engine(database_url, **options)


async def init_database(database_url: str, pool_size: int = 10, max_overflow: int = 5) -> None:
    """Initialize the primary database engine and session factory.

    Args:
        database_url: SQLAlchemy async URL for the primary database.
        pool_size: Connection pool size.
        max_overflow: Overflow connections above pool_size.
    """
    global _engine, _session_factory  # noqa: PLW0603

    logger.info("Initializing primary database engine", pool_size=pool_size)
    _engine = build_engine(database_url, pool_size=pool_size, max_overflow=max_overflow)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def close_database() -> None:
    """Dispose the primary database engine."""
    global _engine, _session_factory  # noqa: PLW0603

    if _engine is not None:
        logger.info("Disposing primary database engine")
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the primary session factory.

    Raises:
        RuntimeError: If init_database() has not been called yet.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Primary database has not been initialized. "
            "Call init_database() in the application lifespan handler."
        )
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a primary database session.

    Services commit their own units of work; anything still pending when the
    request finishes is committed here, and any exception rolls back.

    Yields:
        AsyncSession: A session connected to the primary database.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
