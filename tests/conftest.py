"""
collabcore Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest

from collabcore.documents.models import AuditLogEntry, FieldChange


T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; each call returns the current instant."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class SequentialIds:
    def __init__(self, prefix: str = "chg"):
        self._prefix = prefix
        self._n = 0

    def __call__(self) -> str:
        self._n += 1
        return f"{self._prefix}-{self._n:04d}"


def make_entry(
    editor: str,
    at: datetime,
    version: int,
    summary: str = "Title changed",
    change_type: str = "title",
    fields: tuple = ("title",),
    document_id: str = "sp-1",
    name: Optional[str] = None,
) -> AuditLogEntry:
    """Literal audit entry for session fixtures."""
    return AuditLogEntry(
        change_id=f"{document_id}-v{version}",
        document_id=document_id,
        change_type=change_type,
        field_changes=[FieldChange(field=f, old_value="a", new_value="b") for f in fields],
        edited_by=editor,
        edited_by_name=name,
        edited_at=at,
        version=version,
        summary=summary,
    )


# ---------------------------------------------------------------------------
# Global singletons (reset between tests)
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset config and structured-log singletons between tests."""
    import collabcore.engine.config as cfg_mod
    from collabcore.engine.logging import shutdown_logging

    cfg_mod._config = None
    yield
    shutdown_logging()
    cfg_mod._config = None


# ---------------------------------------------------------------------------
# Stores and services
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    from collabcore.documents.store import InMemoryDocumentStore

    return InMemoryDocumentStore(clock=clock, id_factory=SequentialIds())


@pytest.fixture
def sql_session_factory(tmp_path):
    from collabcore.db.session import close_all_sessions, init_db

    factory = init_db(f"sqlite:///{tmp_path / 'collab.db'}", create_tables=True)
    yield factory
    close_all_sessions()


@pytest.fixture
def sql_store(sql_session_factory, clock):
    from collabcore.documents.sql_store import SqlDocumentStore

    return SqlDocumentStore(sql_session_factory, clock=clock, id_factory=SequentialIds())


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Every VersionedDocumentStore backend."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def identities() -> Dict[str, Dict[str, Any]]:
    return {
        "user-x": {"name": "Xena Writer", "email": "x@example.com"},
        "user-y": {"email": "y@example.com"},
    }


@pytest.fixture
def service(store, identities):
    from collabcore.documents.identity import StaticIdentityResolver
    from collabcore.documents.service import DocumentService

    return DocumentService(store, identity_resolver=StaticIdentityResolver(identities))


@pytest.fixture
def memory_service(memory_store, identities):
    from collabcore.documents.identity import StaticIdentityResolver
    from collabcore.documents.service import DocumentService

    return DocumentService(memory_store, identity_resolver=StaticIdentityResolver(identities))


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def entry():
    """Factory for literal AuditLogEntry fixtures (see make_entry)."""
    return make_entry
