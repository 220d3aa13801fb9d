"""Database engine and session lifecycle for the host database.

The Interval Store lives in the same database as the monitored objects, so
capture writes can share the transaction of the object mutation.

Key exports:
- init_database(...)    : Call at startup to initialize the engine
- close_database()      : Call at shutdown to dispose the engine
- get_session_factory() : Session factory for units of work outside a request
- get_db_session()      : FastAPI dependency yielding a request-scoped session
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from asset_user_history.observability import get_logger

logger = get_logger(__name__)

# Module-level engine and session factory: initialized by init_database()
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_database(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 5,
    pool_timeout: int = 30,
) -> None:
    """Initialize the database engine and session factory.

    Must be called once at application startup (in the lifespan handler)
    before any session is requested.

    Args:
        database_url: Async SQLAlchemy URL of the host database.
        pool_size: Connection pool size.
        max_overflow: Max overflow connections above pool_size.
        pool_timeout: Seconds to wait for a connection before raising.
    """
    global _engine, _session_factory  # noqa: PLW0603

    logger.info("Initializing database engine", pool_size=pool_size, max_overflow=max_overflow)

    _engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        echo=False,
        pool_pre_ping=True,
    )
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("Database engine initialized")


async def close_database() -> None:
    """Dispose the database engine. Call at application shutdown."""
    global _engine, _session_factory  # noqa: PLW0603

    if _engine is not None:
        logger.info("Disposing database engine")
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory.

    Raises:
        RuntimeError: If init_database() has not been called yet.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database has not been initialized. Call init_database() in the application lifespan handler."
        )
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a database session.

    The session is committed when the request handler returns and rolled
    back when it raises.

    Yields:
        AsyncSession: A session bound to the host database.

    Raises:
        RuntimeError: If init_database() has not been called yet.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
