"""
collabcore SQL Document Store — SQLAlchemy backend for VersionedDocumentStore.

Compare-and-swap is a conditional UPDATE:

    UPDATE collab_documents SET version = :new, fields = :fields, ...
    WHERE id = :id AND version = :expected

executed in the same transaction as the audit-log INSERT. A rowcount of 0
means another writer won the race; the transaction is rolled back and the
caller receives WriteRejected. The row is also read ``FOR UPDATE`` where the
dialect supports it, so competing writers queue instead of racing.

Infrastructure failures (OperationalError / DBAPIError) surface as
StorageUnavailableError.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from collabcore.db.models import AuditLogRow, DocumentRow
from collabcore.db.session import session_scope
from collabcore.documents.models import (
    Document,
    StoreWriteResult,
    WriteAccepted,
    WriteRejected,
    as_utc,
)
from collabcore.documents.store import Clock, Mutation, VersionedDocumentStore
from collabcore.engine.errors import (
    CollabValidationError,
    DocumentNotFoundError,
    StorageUnavailableError,
)

logger = logging.getLogger("collabcore.documents.sql_store")


class _StaleVersion(Exception):
    """Conditional update matched no row; rolls the transaction back."""


def _row_to_document(row: DocumentRow) -> Document:
    return Document(
        id=row.id,
        version=row.version,
        fields=copy.deepcopy(row.fields or {}),
        is_deleted=bool(row.is_deleted),
        created_at=as_utc(row.created_at) if row.created_at else None,
        updated_at=as_utc(row.updated_at) if row.updated_at else None,
        updated_by=row.updated_by,
    )


def _row_to_record(row: AuditLogRow) -> Dict[str, Any]:
    return {
        "change_id": row.change_id,
        "document_id": row.document_id,
        "change_type": row.change_type,
        "field_changes": copy.deepcopy(row.field_changes),
        "edited_by": row.edited_by,
        "edited_by_name": row.edited_by_name,
        "edited_by_email": row.edited_by_email,
        "edited_at": as_utc(row.edited_at).isoformat() if row.edited_at else None,
        "version": row.version,
        "summary": row.summary,
    }


class SqlDocumentStore(VersionedDocumentStore):
    """
    SQLAlchemy-backed versioned store.

    Usage:
        factory = init_db("postgresql://...", create_tables=True)
        store = SqlDocumentStore(factory)
    """

    backend_name = "sql"

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[Clock] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        super().__init__(clock=clock, id_factory=id_factory)
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str, document_id: Optional[str] = None) -> Generator[Session, None, None]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except (OperationalError, DBAPIError) as e:
            if isinstance(e, IntegrityError):
                raise
            logger.error(f"Storage failure during {operation} on {document_id}: {e}")
            raise StorageUnavailableError(
                f"Storage unavailable during {operation}",
                document_id=document_id,
                operation=operation,
                backend=self.backend_name,
            ) from e

    def _load(self, session: Session, document_id: str, for_update: bool = False) -> Optional[DocumentRow]:
        stmt = select(DocumentRow).where(DocumentRow.id == document_id)
        if for_update and session.get_bind().dialect.name != "sqlite":
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    # -------------------------------------------------------------------
    # Reads / creation
    # -------------------------------------------------------------------

    def create(self, document_id: str, fields: Mapping[str, Any], actor: Optional[str] = None) -> Document:
        now = self._clock()
        try:
            with self._session("create", document_id) as session:
                if self._load(session, document_id) is not None:
                    raise CollabValidationError(
                        f"Document '{document_id}' already exists",
                        document_id=document_id,
                        operation="create",
                    )
                row = DocumentRow(
                    id=document_id,
                    version=1,
                    fields=copy.deepcopy(dict(fields)),
                    is_deleted=False,
                    created_at=now,
                    updated_at=now,
                    updated_by=actor,
                )
                session.add(row)
                session.flush()
                return _row_to_document(row)
        except IntegrityError as e:
            raise CollabValidationError(
                f"Document '{document_id}' already exists",
                document_id=document_id,
                operation="create",
            ) from e

    def get(self, document_id: str) -> Document:
        with self._session("get", document_id) as session:
            row = self._load(session, document_id)
            if row is None:
                raise DocumentNotFoundError(
                    f"Document '{document_id}' not found",
                    document_id=document_id,
                    operation="get",
                )
            return _row_to_document(row)

    def history_records(
        self,
        document_id: str,
        limit: int,
        cursor: Optional[str] = None,
    ) -> List[Any]:
        with self._session("read_history", document_id) as session:
            if self._load(session, document_id) is None:
                raise DocumentNotFoundError(
                    f"Document '{document_id}' not found",
                    document_id=document_id,
                    operation="read_history",
                )

            stmt = select(AuditLogRow).where(AuditLogRow.document_id == document_id)
            if cursor is not None:
                anchor = session.get(AuditLogRow, cursor)
                if anchor is None or anchor.document_id != document_id:
                    raise CollabValidationError(
                        f"Unknown history cursor '{cursor}'",
                        document_id=document_id,
                        operation="read_history",
                    )
                stmt = stmt.where(or_(
                    AuditLogRow.edited_at < anchor.edited_at,
                    and_(AuditLogRow.edited_at == anchor.edited_at, AuditLogRow.version < anchor.version),
                ))

            stmt = stmt.order_by(AuditLogRow.edited_at.desc(), AuditLogRow.version.desc()).limit(limit)
            return [_row_to_record(row) for row in session.execute(stmt).scalars()]

    def records_after(self, document_id: str, version: int) -> List[Any]:
        with self._session("records_after", document_id) as session:
            stmt = (
                select(AuditLogRow)
                .where(AuditLogRow.document_id == document_id, AuditLogRow.version > version)
                .order_by(AuditLogRow.version.asc())
            )
            return [_row_to_record(row) for row in session.execute(stmt).scalars()]

    # -------------------------------------------------------------------
    # Compare-and-swap
    # -------------------------------------------------------------------

    def _compare_and_swap(
        self,
        document_id: str,
        expected_version: int,
        mutate: Mutation,
    ) -> StoreWriteResult:
        try:
            with self._session("write", document_id) as session:
                row = self._load(session, document_id, for_update=True)
                current = self._require_writable(
                    _row_to_document(row) if row is not None else None,
                    document_id,
                )
                if current.version != expected_version:
                    return WriteRejected(expected_version=expected_version, current=current)

                post, entry = mutate(current)
                result = session.execute(
                    update(DocumentRow)
                    .where(DocumentRow.id == document_id, DocumentRow.version == expected_version)
                    .values(
                        version=post.version,
                        fields=post.fields,
                        is_deleted=post.is_deleted,
                        updated_at=post.updated_at,
                        updated_by=post.updated_by,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise _StaleVersion()

                record = entry.to_record()
                session.add(AuditLogRow(
                    change_id=entry.change_id,
                    document_id=entry.document_id,
                    change_type=entry.change_type,
                    field_changes=record["field_changes"],
                    edited_by=entry.edited_by,
                    edited_by_name=entry.edited_by_name,
                    edited_by_email=entry.edited_by_email,
                    edited_at=entry.edited_at,
                    version=entry.version,
                    summary=entry.summary,
                ))
        except (_StaleVersion, IntegrityError):
            # Lost the race after the read: report the winner's state
            logger.info(f"Concurrent write detected on {document_id} at v{expected_version}")
            return WriteRejected(expected_version=expected_version, current=self.get(document_id))

        return WriteAccepted(version=post.version, document=post, entry=entry)
