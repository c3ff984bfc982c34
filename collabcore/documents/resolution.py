"""
collabcore Conflict Resolution — The three whole-document resolution strategies.

    keep-mine       Overwrite: re-issue the caller's full local state at the
                    server's current version. The overwritten change stays
                    in the audit log.
    keep-theirs     Discard local changes and adopt the server document.
                    No write is issued.
    merge-manually  Same write path as keep-mine. The user has compared both
                    versions (diff view) and edited their local state; there
                    is no automatic field-level merge.

Every resolution that writes uses ConflictDetails.current_version, never
the version from the failed attempt.
"""

from __future__ import annotations

import copy
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, Field

from collabcore.documents.diff import content_identical
from collabcore.documents.models import Document, WriteAccepted, WriteConflicted, WriteResult
from collabcore.documents.service import DocumentService
from collabcore.engine.errors import CollabValidationError
from collabcore.engine.logging import log, log_resolution_event

logger = logging.getLogger("collabcore.documents.resolution")


class ResolutionStrategy(str, Enum):
    KEEP_MINE = "keep-mine"
    KEEP_THEIRS = "keep-theirs"
    MERGE_MANUALLY = "merge-manually"

    @classmethod
    def parse(cls, value: Union[str, "ResolutionStrategy"]) -> "ResolutionStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise CollabValidationError(
                f"Unknown resolution strategy '{value}'. "
                f"Expected one of: {', '.join(s.value for s in cls)}",
                operation="resolve",
            ) from e


class ResolutionPlan(BaseModel):
    """The write a resolution re-issues."""

    expected_version: int
    fields: Dict[str, Any] = Field(default_factory=dict)


class ResolutionOutcome(BaseModel):
    """
    Result of applying a strategy.

    result is None when no write was issued (keep-theirs). document is the
    state the editor should show afterwards.
    """

    strategy: ResolutionStrategy
    result: Optional[Union[WriteAccepted, WriteConflicted]] = None
    document: Document
    manual_review: bool = False

    @property
    def wrote(self) -> bool:
        return self.result is not None

    @property
    def resolved(self) -> bool:
        """False only when the re-issued write hit yet another conflict."""
        return self.result is None or self.result.accepted


class ConflictResolutionPolicy:
    """Decision table plus execution of the three strategies."""

    def __init__(self, service: DocumentService):
        self._service = service

    @staticmethod
    def plan(
        conflict: WriteConflicted,
        strategy: Union[str, ResolutionStrategy],
        local_fields: Mapping[str, Any],
    ) -> Optional[ResolutionPlan]:
        """Pure decision: the write to re-issue, or None for no write."""
        strategy = ResolutionStrategy.parse(strategy)
        if strategy is ResolutionStrategy.KEEP_THEIRS:
            return None
        return ResolutionPlan(
            expected_version=conflict.details.current_version,
            fields=copy.deepcopy(dict(local_fields)),
        )

    def resolve(
        self,
        conflict: WriteConflicted,
        strategy: Union[str, ResolutionStrategy],
        local_fields: Mapping[str, Any],
        actor_id: str,
    ) -> ResolutionOutcome:
        """
        Apply a strategy to a conflict.

        A re-issued write that conflicts again (a third writer got in first)
        is returned unresolved; resolve that new conflict the same way.
        """
        strategy = ResolutionStrategy.parse(strategy)
        document_id = conflict.current.id
        plan = self.plan(conflict, strategy, local_fields)

        if plan is None:
            logger.info(
                f"{actor_id} kept server version v{conflict.current.version} of {document_id}"
            )
            log(log_resolution_event(
                document_id=document_id,
                actor_id=actor_id,
                strategy=strategy.value,
                wrote=False,
                outcome="discarded_local",
                version=conflict.current.version,
            ))
            return ResolutionOutcome(strategy=strategy, document=conflict.current)

        result: WriteResult = self._service.write(
            document_id,
            actor_id,
            plan.expected_version,
            plan.fields,
            base_fields=conflict.current.fields,
        )
        if result.accepted:
            document = result.document
            outcome = "accepted"
        else:
            document = result.current
            outcome = "conflicted"

        logger.info(f"{actor_id} resolved conflict on {document_id} with {strategy.value}: {outcome}")
        log(log_resolution_event(
            document_id=document_id,
            actor_id=actor_id,
            strategy=strategy.value,
            wrote=True,
            outcome=outcome,
            version=document.version,
        ))
        return ResolutionOutcome(
            strategy=strategy,
            result=result,
            document=document,
            manual_review=strategy is ResolutionStrategy.MERGE_MANUALLY,
        )

    @staticmethod
    def content_identical(conflict: WriteConflicted, local_fields: Mapping[str, Any]) -> bool:
        """True when only non-content fields differ (title, author, metadata...)."""
        return content_identical(local_fields, conflict.current.fields)
