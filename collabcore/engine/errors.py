"""
collabcore Error Hierarchy — Structured exceptions for the edit/audit core.

A version conflict is NOT an exception: it is an expected outcome of
concurrent editing and is returned as ``WriteConflicted`` by
``DocumentService.write``. Everything below propagates to the caller.

Hierarchy:
    CollabError
    ├── DocumentNotFoundError     — Document id unknown (or deleted)
    ├── StorageUnavailableError   — Transient persistence failure, retryable
    ├── MalformedAuditEntryError  — Stored audit record failed to parse
    ├── CollabValidationError     — Invalid arguments
    ├── CollabConfigError         — Invalid collabcore.yaml
    └── IdentityLookupError       — Identity service call failed
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class CollabError(Exception):
    """
    Base error for all collabcore failures.
    All context is serializable to JSON for the structured event log.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.document_id: Optional[str] = context.get("document_id")
        self.actor_id: Optional[str] = context.get("actor_id")
        self.operation: Optional[str] = context.get("operation")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "document_id": self.document_id,
            "actor_id": self.actor_id,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("document_id", "actor_id", "operation")
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.document_id:
            parts.append(f"document_id={self.document_id}")
        if self.operation:
            parts.append(f"operation={self.operation}")
        return " | ".join(parts)


class DocumentNotFoundError(CollabError):
    """Document id is unknown to the store, or the document was deleted."""
    pass


class StorageUnavailableError(CollabError):
    """
    Transient infrastructure failure.

    Safe to retry the whole write with the same expected_version: the
    compare-and-swap either already happened (retry conflicts) or did not.
    """

    def __init__(self, message: str, **context: Any):
        self.backend: Optional[str] = context.get("backend")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["backend"] = self.backend
        return d


class MalformedAuditEntryError(CollabError):
    """A stored audit record could not be parsed into an AuditLogEntry."""

    def __init__(self, message: str, **context: Any):
        self.change_id: Optional[str] = context.get("change_id")
        self.validation_errors: Optional[List[Any]] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["change_id"] = self.change_id
        d["validation_errors"] = self.validation_errors
        return d


class CollabValidationError(CollabError):
    """Invalid arguments (page size, cursor, strategy, duplicate id)."""
    pass


class CollabConfigError(CollabError):
    """Configuration error — invalid collabcore.yaml."""
    pass


class IdentityLookupError(CollabError):
    """Identity service call failed."""

    def __init__(self, message: str, **context: Any):
        self.status_code: Optional[int] = context.get("status_code")
        super().__init__(message, **context)
