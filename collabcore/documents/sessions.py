"""
collabcore Session Reconstruction — Group audit entries into editing sessions.

A session approximates one sitting of editing by one author: consecutive
entries (walking newest to oldest) by the same editor with no gap above
the threshold. Grouping is always computed newest-first because the gap is
measured against the previously visited (newer) entry; oldest-first display
only reverses the finished list.

Pure functions over an immutable slice of the log. A page boundary may cut
a session in two; that is an accepted approximation.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Iterable, List, Optional

from collabcore.documents.models import ActivitySession, AuditLogEntry

DEFAULT_GAP_MINUTES = 15

_WORDS_ADDED = re.compile(r"(\d+)\s+words?\s+added", re.IGNORECASE)
_WORDS_REMOVED = re.compile(r"(\d+)\s+words?\s+removed", re.IGNORECASE)


def parse_word_delta(summary: Optional[str]) -> int:
    """'42 words added' -> 42, '5 words removed' -> -5, anything else -> 0."""
    if not summary:
        return 0
    match = _WORDS_ADDED.search(summary)
    if match:
        return int(match.group(1))
    match = _WORDS_REMOVED.search(summary)
    if match:
        return -int(match.group(1))
    return 0


def _seed(entry: AuditLogEntry) -> ActivitySession:
    return ActivitySession(
        edited_by=entry.edited_by,
        edited_by_name=entry.edited_by_name,
        edited_by_email=entry.edited_by_email,
        start_at=entry.edited_at,
        end_at=entry.edited_at,
        edit_count=1,
        summaries=[entry.summary] if entry.summary else [],
        changed_fields=set(entry.changed_field_names) | {entry.change_type},
        word_delta=parse_word_delta(entry.summary),
        change_ids=[entry.change_id],
    )


def _merge(session: ActivitySession, entry: AuditLogEntry) -> None:
    session.start_at = entry.edited_at
    session.edit_count += 1
    if entry.summary and entry.summary not in session.summaries:
        session.summaries.append(entry.summary)
    session.changed_fields |= set(entry.changed_field_names) | {entry.change_type}
    session.word_delta += parse_word_delta(entry.summary)
    session.change_ids.append(entry.change_id)
    # Keep the freshest display enrichment available
    if not session.edited_by_name and entry.edited_by_name:
        session.edited_by_name = entry.edited_by_name
    if not session.edited_by_email and entry.edited_by_email:
        session.edited_by_email = entry.edited_by_email


def reconstruct_sessions(
    entries: Iterable[AuditLogEntry],
    *,
    oldest_first: bool = False,
    gap_minutes: float = DEFAULT_GAP_MINUTES,
) -> List[ActivitySession]:
    """
    Group audit entries into ActivitySessions.

    Args:
        entries:      One page of audit entries, in any order.
        oldest_first: Display order of the returned sessions.
        gap_minutes:  A gap strictly greater than this starts a new session.

    Returns:
        Sessions in the requested display order.
    """
    relevant = [e for e in entries if e.is_relevant]
    relevant.sort(key=lambda e: (e.edited_at, e.version), reverse=True)

    gap_limit = timedelta(minutes=gap_minutes)
    sessions: List[ActivitySession] = []
    active: Optional[ActivitySession] = None
    previous: Optional[AuditLogEntry] = None

    for entry in relevant:
        if active is None or active.edited_by != entry.edited_by:
            starts_new = True
        else:
            starts_new = (previous.edited_at - entry.edited_at) > gap_limit

        if starts_new:
            active = _seed(entry)
            sessions.append(active)
        else:
            _merge(active, entry)
        previous = entry

    if oldest_first:
        sessions.reverse()
    return sessions


class SessionReconstructor:
    """Configured wrapper around reconstruct_sessions()."""

    def __init__(self, gap_minutes: float = DEFAULT_GAP_MINUTES):
        self.gap_minutes = gap_minutes

    def reconstruct(
        self,
        entries: Iterable[AuditLogEntry],
        oldest_first: bool = False,
    ) -> List[ActivitySession]:
        return reconstruct_sessions(entries, oldest_first=oldest_first, gap_minutes=self.gap_minutes)
