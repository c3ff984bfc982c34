"""Unit tests for collabcore.documents.diff — snapshot diffs, classification, summaries."""

import pytest

from collabcore.documents.diff import (
    apply_field_changes,
    classify_change_type,
    content_identical,
    diff_snapshots,
    preview_value,
    revert_field_changes,
    summarize,
    values_equal,
    word_delta,
)
from collabcore.documents.models import FieldChange


class TestValuesEqual:
    def test_nested_structures(self):
        assert values_equal({"a": [1, {"b": "c"}]}, {"a": [1, {"b": "c"}]})
        assert not values_equal({"a": [1, {"b": "c"}]}, {"a": [1, {"b": "d"}]})

    def test_bool_is_not_int(self):
        assert not values_equal(True, 1)
        assert not values_equal([0], [False])

    def test_list_order_matters(self):
        assert not values_equal(["u1", "u2"], ["u2", "u1"])


class TestDiffSnapshots:
    def test_unchanged_fields_are_not_emitted(self):
        before = {"content": "A", "title": "Pilot", "collaborators": ["u1", "u2"]}
        after = {"content": "AB", "title": "Pilot", "collaborators": ["u1", "u2"]}
        changes = diff_snapshots(before, after)
        assert [c.field for c in changes] == ["content"]
        assert changes[0].old_value == "A"
        assert changes[0].new_value == "AB"

    def test_identical_snapshots(self):
        assert diff_snapshots({"a": 1}, {"a": 1}) == []

    def test_added_field_has_no_old_value(self):
        changes = diff_snapshots({}, {"status": "draft"})
        assert len(changes) == 1
        assert changes[0].existed_before is False
        assert changes[0].exists_after is True
        assert changes[0].to_record() == {"field": "status", "new_value": "draft"}

    def test_removed_field_has_no_new_value(self):
        changes = diff_snapshots({"status": "draft"}, {})
        assert changes[0].existed_before is True
        assert changes[0].exists_after is False
        assert changes[0].to_record() == {"field": "status", "old_value": "draft"}

    def test_explicit_none_is_a_value(self):
        changes = diff_snapshots({"author": None}, {"author": "Sam"})
        assert changes[0].existed_before is True
        assert changes[0].to_record() == {"field": "author", "old_value": None, "new_value": "Sam"}

    def test_field_order_before_then_new(self):
        changes = diff_snapshots({"b": 1, "a": 1}, {"a": 2, "c": 3, "b": 2})
        assert [c.field for c in changes] == ["b", "a", "c"]

    def test_values_are_copied(self):
        before = {"collaborators": ["u1"]}
        after = {"collaborators": ["u1", "u2"]}
        changes = diff_snapshots(before, after)
        after["collaborators"].append("u3")
        assert changes[0].new_value == ["u1", "u2"]

    @pytest.mark.parametrize("before,after", [
        ({"content": "A", "title": "T"}, {"content": "AB", "title": "T"}),
        ({"content": "A"}, {"content": "A", "metadata": {"draft": 2}}),
        ({"content": "A", "status": "draft"}, {"content": "A"}),
        ({"collaborators": ["u1"]}, {"collaborators": ["u1", "u2"], "title": None}),
        ({}, {}),
    ])
    def test_reapplying_reproduces_after(self, before, after):
        changes = diff_snapshots(before, after)
        assert apply_field_changes(before, changes) == after
        assert revert_field_changes(after, changes) == before


class TestClassifyChangeType:
    def test_content_dominates(self):
        assert classify_change_type(["title", "content", "author"]) == "content"

    def test_priority_order(self):
        assert classify_change_type(["status", "author"]) == "author"
        assert classify_change_type(["relationships", "metadata"]) == "metadata"

    def test_delete_supersedes_everything(self):
        assert classify_change_type(["content"], deleted=True) == "delete"

    def test_unknown_field_uses_its_name(self):
        assert classify_change_type(["logline"]) == "logline"

    def test_noop_write_typed_from_proposed_keys(self):
        assert classify_change_type([], ["title"]) == "title"

    def test_noop_fallback(self):
        assert classify_change_type([], []) == "metadata"


class TestSummaries:
    def test_words_added(self):
        changes = diff_snapshots({"content": "INT. HOUSE"}, {"content": "INT. HOUSE - NIGHT rain falls"})
        assert word_delta(changes) == 4
        assert summarize("content", changes) == "4 words added"

    def test_single_word_removed(self):
        changes = diff_snapshots({"content": "FADE IN now"}, {"content": "FADE IN"})
        assert summarize("content", changes) == "1 word removed"

    def test_content_edited_without_delta(self):
        changes = diff_snapshots({"content": "A"}, {"content": "B"})
        assert summarize("content", changes) == "Content edited"

    def test_new_content_field(self):
        changes = diff_snapshots({}, {"content": "one two"})
        assert summarize("content", changes) == "2 words added"

    def test_title(self):
        changes = diff_snapshots({"title": "A"}, {"title": "B"})
        assert summarize("title", changes) == "Title changed"

    def test_status(self):
        changes = diff_snapshots({"status": "draft"}, {"status": "final"})
        assert summarize("status", changes) == "Status changed to final"

    def test_collaborators(self):
        changes = diff_snapshots({"collaborators": []}, {"collaborators": ["u2"]})
        assert summarize("collaborators", changes) == "Collaborators updated"

    def test_delete_and_noop(self):
        assert summarize("delete", []) == "Document deleted"
        assert summarize("metadata", []) == "No changes"


class TestPresentationHelpers:
    def test_preview_truncates_long_strings(self):
        text = "x" * 250
        assert preview_value(text) == "x" * 200 + "..."
        assert preview_value("short") == "short"

    def test_preview_non_strings_as_json(self):
        assert preview_value(["u1", "u2"]) == '["u1", "u2"]'

    def test_content_identical(self):
        assert content_identical({"content": "A", "title": "X"}, {"content": "A", "title": "Y"})
        assert not content_identical({"content": "A"}, {"content": "B"})

    def test_full_values_stored(self):
        long_text = "word " * 500
        changes = diff_snapshots({"content": ""}, {"content": long_text})
        assert changes[0].new_value == long_text

    def test_field_change_record_roundtrip_keeps_absence(self):
        change = FieldChange.model_validate({"field": "status", "new_value": "draft"})
        assert change.existed_before is False
        assert change.to_record() == {"field": "status", "new_value": "draft"}
