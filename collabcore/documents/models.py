"""
collabcore Document Models — Pydantic definitions for the edit/audit core.

Document: Current fields plus a monotonically increasing version.
FieldChange: One field-level difference between two snapshots.
AuditLogEntry: Immutable record of one accepted write.
ConflictDetails: Transient payload describing a rejected write.
ActivitySession: Derived grouping of audit entries for review.
WriteAccepted / WriteRejected / WriteConflicted: Write outcomes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from collabcore.engine.errors import MalformedAuditEntryError

# Change types in dominance order: a write touching several of these fields
# is classified by the first one present.
CHANGE_TYPE_PRIORITY = (
    "content",
    "title",
    "author",
    "collaborators",
    "metadata",
    "status",
    "relationships",
)
DELETE_CHANGE_TYPE = "delete"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------

class Document(BaseModel):
    """
    Current state of a collaboratively edited document.

    The version starts at 1 on creation and is incremented exactly once per
    accepted write. Deletion is a recorded write that sets is_deleted.
    """

    id: str = Field(min_length=1, description="Document identifier")
    version: int = Field(default=1, ge=1, description="Current version number")
    fields: Dict[str, Any] = Field(default_factory=dict, description="Field name -> value")
    is_deleted: bool = Field(default=False, description="Set by a delete write")

    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)
    updated_by: Optional[str] = Field(default=None, description="Actor of the last accepted write")

    def snapshot(self) -> Dict[str, Any]:
        """Return a deep copy of the document fields."""
        return self.model_copy(deep=True).fields


# ---------------------------------------------------------------------------
# FieldChange
# ---------------------------------------------------------------------------

class FieldChange(BaseModel):
    """
    A single field difference.

    An unset old_value means the field did not exist before; an unset
    new_value means it does not exist after. An explicit None is a real
    null value.
    """

    model_config = ConfigDict(frozen=True)

    field: str
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None

    @property
    def existed_before(self) -> bool:
        return "old_value" in self.model_fields_set

    @property
    def exists_after(self) -> bool:
        return "new_value" in self.model_fields_set

    def to_record(self) -> Dict[str, Any]:
        """JSON record with absent values omitted."""
        return self.model_dump(mode="json", exclude_unset=True)


# ---------------------------------------------------------------------------
# AuditLogEntry
# ---------------------------------------------------------------------------

class AuditLogEntry(BaseModel):
    """
    One accepted write. Write-once.

    version is the version the document became after this write, so the
    versions for a document are strictly increasing and gapless.
    """

    model_config = ConfigDict(frozen=True)

    change_id: str = Field(min_length=1)
    document_id: str = Field(min_length=1)
    change_type: str = Field(min_length=1)
    field_changes: List[FieldChange] = Field(default_factory=list)
    edited_by: str = Field(min_length=1)
    edited_by_name: Optional[str] = None
    edited_by_email: Optional[str] = None
    edited_at: datetime
    version: int = Field(ge=1)
    summary: str = ""

    @field_validator("edited_at")
    @classmethod
    def normalize_edited_at(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def changed_field_names(self) -> List[str]:
        return [c.field for c in self.field_changes]

    @property
    def is_relevant(self) -> bool:
        """True unless the entry is a no-op write."""
        return bool(self.field_changes) or self.change_type == DELETE_CHANGE_TYPE

    def to_record(self) -> Dict[str, Any]:
        """JSON record matching the stored audit-log format."""
        record = self.model_dump(mode="json", exclude={"field_changes"})
        record["field_changes"] = [c.to_record() for c in self.field_changes]
        return record


def parse_audit_record(record: Any) -> AuditLogEntry:
    """
    Parse a stored audit record.

    Raises:
        MalformedAuditEntryError: the record is not a valid AuditLogEntry.
    """
    change_id = record.get("change_id") if isinstance(record, dict) else None
    if not isinstance(record, dict):
        raise MalformedAuditEntryError(
            f"Audit record must be a mapping, got {type(record).__name__}",
            operation="parse_audit_record",
        )
    try:
        return AuditLogEntry.model_validate(record)
    except ValidationError as e:
        raise MalformedAuditEntryError(
            f"Malformed audit record {change_id or '<no change_id>'}",
            change_id=change_id,
            document_id=record.get("document_id"),
            operation="parse_audit_record",
            validation_errors=[err.get("msg") for err in e.errors()],
        ) from e


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------

class ConflictDetails(BaseModel):
    """
    Transient description of a rejected write.

    field_changes is the diff between the caller's base snapshot and the
    current server document: exactly what changed underneath them.
    """

    current_version: int
    your_version: int
    last_edited_by: Optional[str] = None
    last_edited_by_name: Optional[str] = None
    last_edited_at: Optional[datetime] = None
    field_changes: List[FieldChange] = Field(default_factory=list)

    @property
    def changed_field_names(self) -> List[str]:
        return [c.field for c in self.field_changes]

    def field_change_summary(self) -> str:
        """Comma-separated changed field names, or "Various fields"."""
        names = self.changed_field_names
        if not names:
            return "Various fields"
        return ", ".join(names)


# ---------------------------------------------------------------------------
# Write outcomes
# ---------------------------------------------------------------------------

class WriteAccepted(BaseModel):
    """Accepted write. document is the authoritative post-write state."""

    status: Literal["accepted"] = "accepted"
    version: int
    document: Document
    entry: AuditLogEntry

    @property
    def accepted(self) -> bool:
        return True


class WriteRejected(BaseModel):
    """Raw compare-and-swap failure from a store; nothing was mutated."""

    status: Literal["rejected"] = "rejected"
    expected_version: int
    current: Document

    @property
    def accepted(self) -> bool:
        return False


class WriteConflicted(BaseModel):
    """Rejected write with the details a user needs to resolve it."""

    status: Literal["conflicted"] = "conflicted"
    details: ConflictDetails
    current: Document

    @property
    def accepted(self) -> bool:
        return False


StoreWriteResult = Union[WriteAccepted, WriteRejected]
WriteResult = Union[WriteAccepted, WriteConflicted]


# ---------------------------------------------------------------------------
# ActivitySession
# ---------------------------------------------------------------------------

class ActivitySession(BaseModel):
    """
    A run of audit entries by one editor with no gap above the threshold.

    Derived on every read, never persisted. end_at is the newest entry,
    start_at the oldest.
    """

    edited_by: str
    edited_by_name: Optional[str] = None
    edited_by_email: Optional[str] = None
    start_at: datetime
    end_at: datetime
    edit_count: int = 1
    summaries: List[str] = Field(default_factory=list)
    changed_fields: Set[str] = Field(default_factory=set)
    word_delta: int = 0
    change_ids: List[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.edited_by_name or self.edited_by_email or self.edited_by

    @property
    def duration_seconds(self) -> float:
        return (self.end_at - self.start_at).total_seconds()
