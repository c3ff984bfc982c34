"""
collabcore Database Base — SQLAlchemy declarative base and engine registry.

Provides:
- Base: SQLAlchemy declarative base for document and audit tables
- EngineRegistry: Named engines with per-engine session factories
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all collabcore models."""
    pass


class EngineRegistry:
    """
    Registry for SQLAlchemy engines.

    Usage:
        registry = EngineRegistry()
        registry.register("collab_core", "postgresql://...")
        factory = registry.get_session_factory("collab_core")
    """

    def __init__(self):
        self._engines: Dict[str, Engine] = {}
        self._session_factories: Dict[str, sessionmaker] = {}

    def register(
        self,
        name: str,
        url: str,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
        pool_pre_ping: bool = True,
        **kwargs: Any,
    ) -> Engine:
        """Register a new database engine. SQLite engines skip pool tuning."""
        if make_url(url).get_backend_name() == "sqlite":
            connect_args = kwargs.pop("connect_args", {})
            connect_args.setdefault("check_same_thread", False)
            engine = create_engine(url, connect_args=connect_args, **kwargs)
        else:
            engine = create_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=pool_pre_ping,
                **kwargs,
            )
        self.dispose(name)
        self._engines[name] = engine
        self._session_factories[name] = sessionmaker(bind=engine, expire_on_commit=False)
        return engine

    def get(self, name: str) -> Engine:
        if name not in self._engines:
            raise KeyError(f"Engine '{name}' not registered. Available: {list(self._engines.keys())}")
        return self._engines[name]

    def get_session_factory(self, name: str) -> sessionmaker:
        if name not in self._session_factories:
            raise KeyError(
                f"Session factory '{name}' not found. Available: {list(self._session_factories.keys())}"
            )
        return self._session_factories[name]

    def dispose(self, name: Optional[str] = None) -> None:
        """Dispose one or all engines (close connection pools)."""
        if name:
            engine = self._engines.pop(name, None)
            self._session_factories.pop(name, None)
            if engine is not None:
                engine.dispose()
        else:
            for engine in self._engines.values():
                engine.dispose()
            self._engines.clear()
            self._session_factories.clear()

    def health_check(self, name: str) -> bool:
        """Check if an engine can connect."""
        try:
            with self.get(name).connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except (KeyError, SQLAlchemyError):
            return False


# Global engine registry singleton
engine_registry = EngineRegistry()
