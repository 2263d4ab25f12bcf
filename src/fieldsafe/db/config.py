"""Database configuration and session management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from fieldsafe.config.settings import Settings, get_settings
from fieldsafe.core.logging import get_logger
from fieldsafe.db.models import Base
from fieldsafe.utils.exceptions import ConfigurationError

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _async_url(database_url: str) -> URL:
    try:
        url = make_url(database_url)
        dialect = url.get_dialect()
    except (ArgumentError, NoSuchModuleError) as e:
        raise ConfigurationError(f"Invalid DATABASE_URL: {e}") from e
    if not dialect.is_async:
        raise ConfigurationError(
            f"DATABASE_URL must use an async driver (e.g. sqlite+aiosqlite), got {url.drivername}"
        )
    return url


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create an async engine from settings.

    Args:
        settings: Settings to use (default: cached settings)

    Raises:
        ConfigurationError: If DATABASE_URL is malformed or not async
    """
    settings = settings or get_settings()
    return create_async_engine(
        _async_url(settings.DATABASE_URL),
        echo=settings.DATABASE_ECHO,
        poolclass=NullPool if settings.ENVIRONMENT == "test" else None,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    """Get the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet.

    Args:
        engine: Engine to use (default: process-wide engine)
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", url=engine.url.render_as_string(hide_password=True))


async def close_db() -> None:
    """Dispose of the process-wide engine and its connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for obtaining a database session.

    Usage:
        async with get_async_session() as session:
            accessor = SQLEntityAccessor(session)

    Yields:
        AsyncSession: A database session that will be automatically closed
    """
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()
