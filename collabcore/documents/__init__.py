"""
collabcore Documents — Versioned writes, conflict handling, audit history.

Write path:   DocumentService.write → VersionedDocumentStore (CAS + audit append)
              → ConflictDetector on rejection → ConflictResolutionPolicy
History path: DocumentService.read_history → reconstruct_sessions
"""

from collabcore.documents.conflicts import ConflictDetector
from collabcore.documents.identity import (
    HttpIdentityResolver,
    Identity,
    StaticIdentityResolver,
    display_name,
)
from collabcore.documents.models import (
    ActivitySession,
    AuditLogEntry,
    ConflictDetails,
    Document,
    FieldChange,
    WriteAccepted,
    WriteConflicted,
    WriteRejected,
)
from collabcore.documents.resolution import (
    ConflictResolutionPolicy,
    ResolutionOutcome,
    ResolutionStrategy,
)
from collabcore.documents.service import DocumentService
from collabcore.documents.sessions import SessionReconstructor, reconstruct_sessions
from collabcore.documents.sql_store import SqlDocumentStore
from collabcore.documents.store import InMemoryDocumentStore, VersionedDocumentStore

__all__ = [
    "ActivitySession",
    "AuditLogEntry",
    "ConflictDetails",
    "ConflictDetector",
    "ConflictResolutionPolicy",
    "Document",
    "DocumentService",
    "FieldChange",
    "HttpIdentityResolver",
    "Identity",
    "InMemoryDocumentStore",
    "ResolutionOutcome",
    "ResolutionStrategy",
    "SessionReconstructor",
    "SqlDocumentStore",
    "StaticIdentityResolver",
    "VersionedDocumentStore",
    "WriteAccepted",
    "WriteConflicted",
    "WriteRejected",
    "display_name",
    "reconstruct_sessions",
]
