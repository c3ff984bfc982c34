"""
collabcore Audit Diffing — Field-level snapshot diffs, change classification, summaries.

Handles:
- Minimal FieldChange lists between two snapshots (strict deep equality)
- Re-applying / reverting a diff onto a snapshot
- Dominant change_type for a write
- Plain-text summaries ("12 words added") stored on audit entries

Values are stored in full; truncation for display lives in preview_value().
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from collabcore.documents.models import (
    CHANGE_TYPE_PRIORITY,
    DELETE_CHANGE_TYPE,
    FieldChange,
)

CONTENT_FIELD = "content"
DEFAULT_PREVIEW_CHARS = 200


def values_equal(a: Any, b: Any) -> bool:
    """
    Structural equality that does not conflate bool/int/float.

    Lists and tuples compare element-wise, mappings key-wise.
    """
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(values_equal(x, y) for x, y in zip(a, b))
    if type(a) is not type(b):
        return False
    return a == b


def diff_snapshots(before: Mapping[str, Any], after: Mapping[str, Any]) -> List[FieldChange]:
    """
    Produce the minimal FieldChange list between two snapshots.

    Iterates the union of field names (keys of before first, then keys only
    in after) and emits a change only where the values differ.
    """
    changes: List[FieldChange] = []
    names = list(before.keys()) + [k for k in after.keys() if k not in before]

    for name in names:
        in_before = name in before
        in_after = name in after
        if in_before and in_after and values_equal(before[name], after[name]):
            continue

        kwargs: Dict[str, Any] = {"field": name}
        if in_before:
            kwargs["old_value"] = copy.deepcopy(before[name])
        if in_after:
            kwargs["new_value"] = copy.deepcopy(after[name])
        changes.append(FieldChange(**kwargs))

    return changes


def apply_field_changes(snapshot: Mapping[str, Any], changes: Iterable[FieldChange]) -> Dict[str, Any]:
    """Apply new_values to a snapshot. Fields absent after the change are removed."""
    result = copy.deepcopy(dict(snapshot))
    for change in changes:
        if change.exists_after:
            result[change.field] = copy.deepcopy(change.new_value)
        else:
            result.pop(change.field, None)
    return result


def revert_field_changes(snapshot: Mapping[str, Any], changes: Iterable[FieldChange]) -> Dict[str, Any]:
    """Reverse-apply old_values, recovering the snapshot before the changes."""
    result = copy.deepcopy(dict(snapshot))
    for change in changes:
        if change.existed_before:
            result[change.field] = copy.deepcopy(change.old_value)
        else:
            result.pop(change.field, None)
    return result


def classify_change_type(
    changed_fields: Sequence[str],
    proposed_fields: Sequence[str] = (),
    deleted: bool = False,
) -> str:
    """
    Pick the dominant change_type for a write.

    delete supersedes everything; otherwise the highest-priority known field
    among the changed fields wins, then the first changed field name. A
    write with no observable change is typed from its proposed keys, and
    falls back to "metadata".
    """
    if deleted:
        return DELETE_CHANGE_TYPE

    for candidates in (changed_fields, proposed_fields):
        for change_type in CHANGE_TYPE_PRIORITY:
            if change_type in candidates:
                return change_type
        if candidates:
            return candidates[0]

    return "metadata"


def count_words(value: Any) -> int:
    if not isinstance(value, str):
        return 0
    return len(value.split())


def word_delta(changes: Iterable[FieldChange], field: str = CONTENT_FIELD) -> int:
    """Net word count difference for one field across a diff."""
    for change in changes:
        if change.field == field:
            before = count_words(change.old_value) if change.existed_before else 0
            after = count_words(change.new_value) if change.exists_after else 0
            return after - before
    return 0


def _field_label(name: str) -> str:
    return name.replace("_", " ").capitalize()


def summarize(change_type: str, changes: Sequence[FieldChange]) -> str:
    """Build the one-line human-readable summary stored on an audit entry."""
    if change_type == DELETE_CHANGE_TYPE:
        return "Document deleted"
    if not changes:
        return "No changes"

    if change_type == CONTENT_FIELD:
        delta = word_delta(changes)
        if delta > 0:
            return f"{delta} word{'s' if delta != 1 else ''} added"
        if delta < 0:
            return f"{-delta} word{'s' if delta != -1 else ''} removed"
        return "Content edited"

    if change_type == "collaborators":
        return "Collaborators updated"
    if change_type == "status":
        for change in changes:
            if change.field == "status" and change.exists_after:
                return f"Status changed to {change.new_value}"
    if change_type in ("metadata", "relationships"):
        return f"{_field_label(change_type)} updated"

    names = [c.field for c in changes]
    if len(names) > 1:
        return f"{_field_label(change_type)} and {len(names) - 1} more field{'s' if len(names) > 2 else ''} changed"
    return f"{_field_label(change_type)} changed"


def preview_value(value: Any, limit: int = DEFAULT_PREVIEW_CHARS) -> str:
    """
    Display preview of a stored value.

    Strings longer than limit are cut with "..."; other values are shown as
    JSON.
    """
    if isinstance(value, str):
        if len(value) > limit:
            return value[:limit] + "..."
        return value
    return json.dumps(value, default=str)


def content_identical(local: Optional[Mapping[str, Any]], server: Optional[Mapping[str, Any]]) -> bool:
    """True when both snapshots carry the same content value."""
    local_content = (local or {}).get(CONTENT_FIELD)
    server_content = (server or {}).get(CONTENT_FIELD)
    return values_equal(local_content, server_content)
