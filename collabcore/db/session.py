"""
collabcore Database Session Management.

Single entry point for DB initialisation plus a context manager for
transactional access. Uses the global EngineRegistry.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy.orm import Session, sessionmaker

from collabcore.db.base import Base, engine_registry

CORE_ENGINE = "collab_core"


def init_db(
    db_url: str,
    create_tables: bool = False,
    engine_name: str = CORE_ENGINE,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
) -> sessionmaker:
    """
    Register the named engine and return its session factory.

    Args:
        db_url:        SQLAlchemy URL (postgresql://..., sqlite:///...).
        create_tables: Run Base.metadata.create_all(). Dev / ``collabcore init`` only.
        engine_name:   Registry name for the engine.

    Returns:
        A ``sessionmaker`` bound to the engine.
    """
    # Import so the tables are registered on Base.metadata
    from collabcore.db import models  # noqa: F401

    engine = engine_registry.register(
        engine_name, db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
    )

    if create_tables:
        Base.metadata.create_all(engine)

    return engine_registry.get_session_factory(engine_name)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for DB sessions with auto-commit/rollback.

    Usage:
        with session_scope(factory) as session:
            row = session.get(DocumentRow, "doc-1")
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_all_sessions() -> None:
    """Dispose all engines. Used during shutdown."""
    engine_registry.dispose()
