"""
collabcore Document Service — The external interface of the edit/audit core.

Handles:
- Versioned writes: compare-and-swap, audit append, conflict details
- Deletion as a recorded change type
- Paginated history reads with identity enrichment
- Session reconstruction over a history page

Write() returns the authoritative post-write document synchronously, so
callers never need to poll for read-after-write consistency.

Platform config:
    collabcore.yaml → history.default_page_size, history.max_page_size,
                      sessions.gap_minutes
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional

from collabcore.documents.conflicts import ConflictDetector
from collabcore.documents.identity import IdentityResolver, NullIdentityResolver
from collabcore.documents.models import (
    ActivitySession,
    AuditLogEntry,
    Document,
    WriteAccepted,
    WriteResult,
    parse_audit_record,
)
from collabcore.documents.sessions import DEFAULT_GAP_MINUTES, reconstruct_sessions
from collabcore.documents.store import VersionedDocumentStore
from collabcore.engine.errors import CollabValidationError, MalformedAuditEntryError
from collabcore.engine.logging import (
    log,
    log_conflict_event,
    log_history_read,
    log_write_event,
)

logger = logging.getLogger("collabcore.documents.service")


class DocumentService:
    """
    Versioned document writes and audit-history reads over one store.

    Usage:
        service = DocumentService(InMemoryDocumentStore())
        service.create_document("sp-1", {"content": "FADE IN:"}, actor_id="u1")
        result = service.write("sp-1", "u1", expected_version=1, fields={"title": "Pilot"})
        if not result.accepted:
            ...  # hand result to ConflictResolutionPolicy
    """

    def __init__(
        self,
        store: VersionedDocumentStore,
        identity_resolver: Optional[IdentityResolver] = None,
        default_page_size: int = 50,
        max_page_size: int = 500,
        gap_minutes: float = DEFAULT_GAP_MINUTES,
    ):
        self._store = store
        self._identity = identity_resolver or NullIdentityResolver()
        self._detector = ConflictDetector(store)
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size
        self._gap_minutes = gap_minutes

    @classmethod
    def from_config(
        cls,
        store: VersionedDocumentStore,
        config: Any,
        identity_resolver: Optional[IdentityResolver] = None,
    ) -> "DocumentService":
        """Build a service from a CollabConfig."""
        return cls(
            store,
            identity_resolver=identity_resolver,
            default_page_size=config.history.default_page_size,
            max_page_size=config.history.max_page_size,
            gap_minutes=config.sessions.gap_minutes,
        )

    @property
    def store(self) -> VersionedDocumentStore:
        return self._store

    # -------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------

    def create_document(
        self,
        document_id: str,
        fields: Mapping[str, Any],
        actor_id: Optional[str] = None,
    ) -> Document:
        doc = self._store.create(document_id, fields, actor=actor_id)
        logger.info(f"Created document {document_id} (v{doc.version})")
        return doc

    def get_document(self, document_id: str) -> Document:
        return self._store.get(document_id)

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    def write(
        self,
        document_id: str,
        actor_id: str,
        expected_version: int,
        fields: Mapping[str, Any],
        *,
        base_fields: Optional[Mapping[str, Any]] = None,
    ) -> WriteResult:
        """
        The only mutating entry point.

        Args:
            expected_version: The version the caller last observed.
            fields:           Partial update; only changed keys need be present.
            base_fields:      The snapshot the caller started editing from.
                              Rebuilt from the audit log when omitted.

        Returns:
            WriteAccepted with the post-write document, or WriteConflicted.

        Raises:
            DocumentNotFoundError, StorageUnavailableError
        """
        return self._write(document_id, actor_id, expected_version, fields, base_fields=base_fields)

    def delete(self, document_id: str, actor_id: str, expected_version: int) -> WriteResult:
        """Record a delete write. Later writes raise DocumentNotFoundError."""
        return self._write(document_id, actor_id, expected_version, {}, delete=True)

    def _write(
        self,
        document_id: str,
        actor_id: str,
        expected_version: int,
        fields: Mapping[str, Any],
        *,
        base_fields: Optional[Mapping[str, Any]] = None,
        delete: bool = False,
    ) -> WriteResult:
        identity = self._identity.resolve(actor_id)
        start = time.monotonic()

        result = self._store.write(
            document_id,
            fields,
            expected_version,
            actor_id,
            delete=delete,
            actor_name=identity.name,
            actor_email=identity.email,
        )

        if isinstance(result, WriteAccepted):
            duration_ms = round((time.monotonic() - start) * 1000, 3)
            logger.info(
                f"Write accepted: {document_id} v{expected_version} -> v{result.version} "
                f"by {actor_id} ({result.entry.change_type}: {result.entry.summary})"
            )
            log(log_write_event(
                document_id=document_id,
                actor_id=actor_id,
                expected_version=expected_version,
                version=result.version,
                change_type=result.entry.change_type,
                change_id=result.entry.change_id,
                fields_changed=result.entry.changed_field_names,
                duration_ms=duration_ms,
            ))
            return result

        conflict = self._detector.detect(result, base_fields=base_fields)
        details = conflict.details
        if details.last_edited_by and not details.last_edited_by_name:
            details.last_edited_by_name = self._identity.resolve(details.last_edited_by).name
        log(log_conflict_event(
            document_id=document_id,
            actor_id=actor_id,
            your_version=details.your_version,
            current_version=details.current_version,
            last_edited_by=details.last_edited_by,
            fields_changed=details.changed_field_names,
        ))
        return conflict

    # -------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------

    def read_history(
        self,
        document_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> List[AuditLogEntry]:
        """
        At most ``limit`` audit entries, newest first by edited_at.

        cursor is the change_id of the last entry already seen ("Load More").
        Malformed stored records are logged and skipped; history is review
        data, so one bad record never aborts the page.
        """
        limit = self._resolve_limit(limit)
        records = self._store.history_records(document_id, limit, cursor)

        entries: List[AuditLogEntry] = []
        skipped = 0
        for record in records:
            try:
                entries.append(self._enrich(parse_audit_record(record)))
            except MalformedAuditEntryError as e:
                skipped += 1
                logger.warning(f"Skipping malformed audit record on {document_id}: {e.message}")

        log(log_history_read(
            document_id=document_id,
            limit=limit,
            returned=len(entries),
            skipped=skipped,
            cursor=cursor,
        ))
        return entries

    def read_sessions(
        self,
        document_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        oldest_first: bool = False,
        gap_minutes: Optional[float] = None,
    ) -> List[ActivitySession]:
        """Read one history page and group it into editing sessions."""
        entries = self.read_history(document_id, limit=limit, cursor=cursor)
        return reconstruct_sessions(
            entries,
            oldest_first=oldest_first,
            gap_minutes=gap_minutes if gap_minutes is not None else self._gap_minutes,
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _resolve_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self._default_page_size
        if limit < 1:
            raise CollabValidationError(
                f"limit must be >= 1, got {limit}",
                operation="read_history",
            )
        return min(limit, self._max_page_size)

    def _enrich(self, entry: AuditLogEntry) -> AuditLogEntry:
        if entry.edited_by_name or entry.edited_by_email:
            return entry
        identity = self._identity.resolve(entry.edited_by)
        if not identity.name and not identity.email:
            return entry
        update: Dict[str, Any] = {}
        if identity.name:
            update["edited_by_name"] = identity.name
        if identity.email:
            update["edited_by_email"] = identity.email
        return entry.model_copy(update=update)

    def __repr__(self) -> str:
        return f"<DocumentService store={self._store!r}>"
