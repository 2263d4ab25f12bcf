"""Database layer: models, engine configuration and repositories."""

from fieldsafe.db.config import (
    close_db,
    create_engine,
    create_session_factory,
    get_async_session,
    get_engine,
    get_session_factory,
    init_db,
)

__all__ = [
    "close_db",
    "create_engine",
    "create_session_factory",
    "get_async_session",
    "get_engine",
    "get_session_factory",
    "init_db",
]
