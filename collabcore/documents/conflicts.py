"""
collabcore Conflict Detection — Turn a rejected compare-and-swap into ConflictDetails.

The diff shown to the user is taken between *their* base snapshot (the
version they started editing from) and the *current* server document.
When the caller does not supply the base snapshot it is rebuilt by
reverse-applying every audit entry newer than the caller's version onto
the current document.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from collabcore.documents.diff import diff_snapshots, revert_field_changes
from collabcore.documents.models import (
    AuditLogEntry,
    ConflictDetails,
    Document,
    WriteConflicted,
    WriteRejected,
    parse_audit_record,
)
from collabcore.documents.store import VersionedDocumentStore
from collabcore.engine.errors import MalformedAuditEntryError

logger = logging.getLogger("collabcore.documents.conflicts")


class ConflictDetector:
    """Builds ConflictDetails for rejected writes against one store."""

    def __init__(self, store: VersionedDocumentStore):
        self._store = store

    def detect(
        self,
        rejected: WriteRejected,
        base_fields: Optional[Mapping[str, Any]] = None,
    ) -> WriteConflicted:
        current = rejected.current
        your_version = rejected.expected_version
        newer = self._entries_after(current.id, your_version, current.version)

        if base_fields is None:
            base_fields = self.reconstruct_snapshot(current, your_version, newer)

        last = newer[-1] if newer else None
        details = ConflictDetails(
            current_version=current.version,
            your_version=your_version,
            last_edited_by=last.edited_by if last else current.updated_by,
            last_edited_by_name=last.edited_by_name if last else None,
            last_edited_at=last.edited_at if last else current.updated_at,
            field_changes=diff_snapshots(base_fields, current.fields),
        )
        logger.info(
            f"Conflict on {current.id}: your v{your_version}, current v{current.version}, "
            f"changed: {details.field_change_summary()}"
        )
        return WriteConflicted(details=details, current=current)

    def reconstruct_snapshot(
        self,
        current: Document,
        version: int,
        newer: Optional[List[AuditLogEntry]] = None,
    ) -> Dict[str, Any]:
        """
        Rebuild the document fields as they were at ``version``.

        Versions at or above the current one (a caller ahead of the server)
        yield the current fields.
        """
        if version >= current.version:
            return current.snapshot()
        if newer is None:
            newer = self._entries_after(current.id, version, current.version)

        snapshot = current.snapshot()
        for entry in reversed(newer):
            snapshot = revert_field_changes(snapshot, reversed(entry.field_changes))
        return snapshot

    def _entries_after(self, document_id: str, version: int, up_to: int) -> List[AuditLogEntry]:
        """Parsed entries with version in (version, up_to], oldest first."""
        entries: List[AuditLogEntry] = []
        for record in self._store.records_after(document_id, version):
            try:
                entry = parse_audit_record(record)
            except MalformedAuditEntryError as e:
                logger.warning(f"Skipping malformed audit record during conflict detection: {e.message}")
                continue
            if entry.version <= up_to:
                entries.append(entry)
        entries.sort(key=lambda e: e.version)
        return entries
