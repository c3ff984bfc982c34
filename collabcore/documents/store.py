"""
collabcore Versioned Document Store — Compare-and-swap writes with audit append.

VersionedDocumentStore holds the write semantics shared by every backend:
merge the proposed fields, bump the version by exactly one, diff pre/post
images, and build the AuditLogEntry. Backends only supply atomicity:

    _compare_and_swap(document_id, expected_version, mutate)

must run ``mutate(current)`` and persist its (document, entry) result such
that no other writer can interleave between the version check and the
commit, and so the audit entry becomes visible together with the version.

InMemoryDocumentStore implements this with a single mutex.
SqlDocumentStore (sql_store.py) uses a conditional UPDATE in one transaction.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from collabcore.documents.diff import classify_change_type, diff_snapshots, summarize
from collabcore.documents.models import (
    AuditLogEntry,
    Document,
    StoreWriteResult,
    WriteAccepted,
    WriteRejected,
    as_utc,
    utcnow,
)
from collabcore.engine.errors import CollabValidationError, DocumentNotFoundError

logger = logging.getLogger("collabcore.documents.store")

Clock = Callable[[], Any]
Mutation = Callable[[Document], Tuple[Document, AuditLogEntry]]


def new_change_id() -> str:
    return uuid.uuid4().hex


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _record_order(record: Any) -> Tuple[datetime, int]:
    """(edited_at, version) sort key for raw records; unparseable parts sort oldest."""
    if not isinstance(record, dict):
        return _EPOCH, -1
    try:
        edited_at = as_utc(datetime.fromisoformat(record["edited_at"]))
    except (KeyError, TypeError, ValueError):
        edited_at = _EPOCH
    version = record.get("version")
    return edited_at, version if isinstance(version, int) else -1


class VersionedDocumentStore(ABC):
    """
    Abstract versioned store.

    Args:
        clock:       Returns the current timezone-aware datetime.
        id_factory:  Returns a unique change_id for each audit entry.
    """

    backend_name = "abstract"

    def __init__(
        self,
        clock: Optional[Clock] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._clock = clock or utcnow
        self._id_factory = id_factory or new_change_id

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    def write(
        self,
        document_id: str,
        proposed_fields: Mapping[str, Any],
        expected_version: int,
        actor: str,
        *,
        delete: bool = False,
        actor_name: Optional[str] = None,
        actor_email: Optional[str] = None,
    ) -> StoreWriteResult:
        """
        Compare-and-swap write.

        Accepted iff expected_version equals the stored version at the
        instant of write. On mismatch nothing is mutated and WriteRejected
        carries the current document.

        Raises:
            DocumentNotFoundError: unknown or deleted document.
        """
        if not actor:
            raise CollabValidationError("actor is required", document_id=document_id, operation="write")
        proposed = copy.deepcopy(dict(proposed_fields))

        def mutate(current: Document) -> Tuple[Document, AuditLogEntry]:
            return self._build_write(current, proposed, actor, delete, actor_name, actor_email)

        result = self._compare_and_swap(document_id, expected_version, mutate)
        if isinstance(result, WriteAccepted):
            logger.debug(
                "Accepted write on %s: v%d -> v%d (%s)",
                document_id, expected_version, result.version, result.entry.change_type,
            )
        else:
            logger.debug(
                "Rejected write on %s: expected v%d, stored v%d",
                document_id, expected_version, result.current.version,
            )
        return result

    @abstractmethod
    def create(self, document_id: str, fields: Mapping[str, Any], actor: Optional[str] = None) -> Document:
        """Create a version-1 document. Creation is not recorded as a write."""

    @abstractmethod
    def get(self, document_id: str) -> Document:
        """Return the current document (deleted documents included)."""

    @abstractmethod
    def history_records(
        self,
        document_id: str,
        limit: int,
        cursor: Optional[str] = None,
    ) -> List[Any]:
        """
        Raw audit records for one document, newest first by edited_at.

        cursor is the change_id of the last record the caller has seen;
        only strictly older records are returned.
        """

    @abstractmethod
    def records_after(self, document_id: str, version: int) -> List[Any]:
        """Raw audit records with version > ``version``, oldest first."""

    # -------------------------------------------------------------------
    # Backend hook
    # -------------------------------------------------------------------

    @abstractmethod
    def _compare_and_swap(
        self,
        document_id: str,
        expected_version: int,
        mutate: Mutation,
    ) -> StoreWriteResult:
        """Atomically check the version, apply ``mutate`` and persist."""

    # -------------------------------------------------------------------
    # Shared write semantics
    # -------------------------------------------------------------------

    def _build_write(
        self,
        current: Document,
        proposed: Dict[str, Any],
        actor: str,
        delete: bool,
        actor_name: Optional[str],
        actor_email: Optional[str],
    ) -> Tuple[Document, AuditLogEntry]:
        before = current.snapshot()
        after = dict(before)
        after.update(proposed)

        changes = diff_snapshots(before, after)
        change_type = classify_change_type(
            [c.field for c in changes],
            list(proposed.keys()),
            deleted=delete,
        )
        now = self._clock()

        post = current.model_copy(
            update={
                "version": current.version + 1,
                "fields": after,
                "is_deleted": current.is_deleted or delete,
                "updated_at": now,
                "updated_by": actor,
            },
            deep=True,
        )
        entry = AuditLogEntry(
            change_id=self._id_factory(),
            document_id=current.id,
            change_type=change_type,
            field_changes=changes,
            edited_by=actor,
            edited_by_name=actor_name,
            edited_by_email=actor_email,
            edited_at=now,
            version=post.version,
            summary=summarize(change_type, changes),
        )
        return post, entry

    @staticmethod
    def _require_writable(document: Optional[Document], document_id: str) -> Document:
        if document is None:
            raise DocumentNotFoundError(
                f"Document '{document_id}' not found",
                document_id=document_id,
                operation="write",
            )
        if document.is_deleted:
            raise DocumentNotFoundError(
                f"Document '{document_id}' has been deleted",
                document_id=document_id,
                operation="write",
            )
        return document

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} backend='{self.backend_name}'>"


class InMemoryDocumentStore(VersionedDocumentStore):
    """
    Process-local store guarded by one mutex.

    Audit entries are kept as JSON records, the same format the SQL backend
    persists, so history parsing behaves identically.
    """

    backend_name = "memory"

    def __init__(
        self,
        clock: Optional[Clock] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        super().__init__(clock=clock, id_factory=id_factory)
        self._lock = threading.Lock()
        self._documents: Dict[str, Document] = {}
        self._records: Dict[str, List[Any]] = {}

    def create(self, document_id: str, fields: Mapping[str, Any], actor: Optional[str] = None) -> Document:
        now = self._clock()
        doc = Document(
            id=document_id,
            version=1,
            fields=copy.deepcopy(dict(fields)),
            created_at=now,
            updated_at=now,
            updated_by=actor,
        )
        with self._lock:
            if document_id in self._documents:
                raise CollabValidationError(
                    f"Document '{document_id}' already exists",
                    document_id=document_id,
                    operation="create",
                )
            self._documents[document_id] = doc
            self._records[document_id] = []
        return doc.model_copy(deep=True)

    def get(self, document_id: str) -> Document:
        with self._lock:
            doc = self._documents.get(document_id)
            if doc is None:
                raise DocumentNotFoundError(
                    f"Document '{document_id}' not found",
                    document_id=document_id,
                    operation="get",
                )
            return doc.model_copy(deep=True)

    def _compare_and_swap(
        self,
        document_id: str,
        expected_version: int,
        mutate: Mutation,
    ) -> StoreWriteResult:
        with self._lock:
            current = self._require_writable(self._documents.get(document_id), document_id)
            if current.version != expected_version:
                return WriteRejected(
                    expected_version=expected_version,
                    current=current.model_copy(deep=True),
                )
            post, entry = mutate(current)
            self._documents[document_id] = post
            self._records[document_id].append(entry.to_record())
        return WriteAccepted(version=post.version, document=post.model_copy(deep=True), entry=entry)

    def history_records(
        self,
        document_id: str,
        limit: int,
        cursor: Optional[str] = None,
    ) -> List[Any]:
        with self._lock:
            if document_id not in self._documents:
                raise DocumentNotFoundError(
                    f"Document '{document_id}' not found",
                    document_id=document_id,
                    operation="read_history",
                )
            records = list(self._records[document_id])

        records.sort(key=_record_order, reverse=True)
        if cursor is not None:
            index = next(
                (i for i, r in enumerate(records) if isinstance(r, dict) and r.get("change_id") == cursor),
                None,
            )
            if index is None:
                raise CollabValidationError(
                    f"Unknown history cursor '{cursor}'",
                    document_id=document_id,
                    operation="read_history",
                )
            records = records[index + 1:]
        return copy.deepcopy(records[:limit])

    def records_after(self, document_id: str, version: int) -> List[Any]:
        with self._lock:
            records = list(self._records.get(document_id, []))
        return copy.deepcopy([
            r for r in records
            if not isinstance(r, dict) or not isinstance(r.get("version"), int) or r["version"] > version
        ])

    def inject_record(self, document_id: str, record: Any) -> None:
        """Append a raw record as-is (imports of externally produced history)."""
        with self._lock:
            self._records.setdefault(document_id, []).append(record)
