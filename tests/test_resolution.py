"""Tests for collabcore.documents.resolution — keep-mine / keep-theirs / merge-manually."""

import pytest

from collabcore.documents.resolution import (
    ConflictResolutionPolicy,
    ResolutionPlan,
    ResolutionStrategy,
)
from collabcore.engine.errors import CollabValidationError
from collabcore.engine.logging import FileLogger, init_logging, shutdown_logging


@pytest.fixture
def conflict(service, clock):
    """user-x loses a race against user-y at v3 -> v4."""
    service.create_document("sp-1", {"content": "A", "title": "Pilot"})
    service.write("sp-1", "user-x", 1, {"title": "Pilot II"})
    service.write("sp-1", "user-x", 2, {"status": "draft"})
    clock.advance(minutes=1)
    service.write("sp-1", "user-y", 3, {"content": "AC"})
    clock.advance(minutes=1)
    result = service.write("sp-1", "user-x", 3, {"content": "AB"})
    assert not result.accepted
    return result


@pytest.fixture
def policy(service):
    return ConflictResolutionPolicy(service)


LOCAL = {"content": "AB", "title": "Pilot II", "status": "draft"}


class TestStrategyParsing:
    @pytest.mark.parametrize("value,expected", [
        ("keep-mine", ResolutionStrategy.KEEP_MINE),
        ("keep-theirs", ResolutionStrategy.KEEP_THEIRS),
        ("merge-manually", ResolutionStrategy.MERGE_MANUALLY),
        (ResolutionStrategy.KEEP_MINE, ResolutionStrategy.KEEP_MINE),
    ])
    def test_parse(self, value, expected):
        assert ResolutionStrategy.parse(value) is expected

    def test_unknown(self):
        with pytest.raises(CollabValidationError, match="keep-mine, keep-theirs, merge-manually"):
            ResolutionStrategy.parse("auto-merge")


class TestPlan:
    def test_keep_theirs_issues_no_write(self, conflict):
        assert ConflictResolutionPolicy.plan(conflict, "keep-theirs", LOCAL) is None

    @pytest.mark.parametrize("strategy", ["keep-mine", "merge-manually"])
    def test_writes_use_current_version(self, conflict, strategy):
        plan = ConflictResolutionPolicy.plan(conflict, strategy, LOCAL)
        assert plan == ResolutionPlan(expected_version=4, fields=LOCAL)

    def test_plan_copies_local_state(self, conflict):
        local = {"collaborators": ["u1"]}
        plan = ConflictResolutionPolicy.plan(conflict, "keep-mine", local)
        local["collaborators"].append("u2")
        assert plan.fields == {"collaborators": ["u1"]}


class TestResolve:
    def test_keep_mine_overwrites(self, policy, service, conflict):
        outcome = policy.resolve(conflict, "keep-mine", LOCAL, "user-x")
        assert outcome.wrote and outcome.resolved
        assert outcome.manual_review is False
        assert outcome.result.version == 5
        assert outcome.document.fields["content"] == "AB"
        assert service.get_document("sp-1").version == 5

        # The overwritten change is still reviewable
        history = service.read_history("sp-1", limit=2)
        assert [(e.version, e.edited_by) for e in history] == [(5, "user-x"), (4, "user-y")]

    def test_keep_theirs_adopts_server(self, policy, service, conflict):
        outcome = policy.resolve(conflict, ResolutionStrategy.KEEP_THEIRS, LOCAL, "user-x")
        assert outcome.wrote is False
        assert outcome.resolved is True
        assert outcome.result is None
        assert outcome.document.version == 4
        assert outcome.document.fields["content"] == "AC"
        assert service.get_document("sp-1").version == 4

    def test_merge_manually_writes_edited_local_state(self, policy, service, conflict):
        merged = dict(LOCAL, content="ABC")
        outcome = policy.resolve(conflict, "merge-manually", merged, "user-x")
        assert outcome.manual_review is True
        assert outcome.resolved
        assert service.get_document("sp-1").fields["content"] == "ABC"

    def test_third_writer_conflicts_again(self, policy, service, conflict):
        service.write("sp-1", "user-y", 4, {"content": "ACD"})
        outcome = policy.resolve(conflict, "keep-mine", LOCAL, "user-x")
        assert outcome.wrote is True
        assert outcome.resolved is False
        assert outcome.result.details.current_version == 5
        assert outcome.result.details.your_version == 4
        assert outcome.result.details.changed_field_names == ["content"]
        assert outcome.document.fields["content"] == "ACD"

        again = policy.resolve(outcome.result, "keep-mine", LOCAL, "user-x")
        assert again.resolved
        assert again.document.version == 6

    def test_resolution_events_logged(self, policy, conflict, tmp_path):
        log_dir = str(tmp_path / "logs")
        init_logging(log_dir=log_dir, flush_interval_ms=10)
        policy.resolve(conflict, "keep-theirs", LOCAL, "user-x")
        policy.resolve(conflict, "keep-mine", LOCAL, "user-x")
        shutdown_logging()

        events = FileLogger(log_dir=log_dir).read_today("documents", "resolutions")
        assert [(e["strategy"], e["wrote"], e["outcome"]) for e in events] == [
            ("keep-theirs", False, "discarded_local"),
            ("keep-mine", True, "accepted"),
        ]


class TestStaleRetry:
    def test_retry_with_failed_version_is_rejected(self, service, conflict):
        again = service.write("sp-1", "user-x", conflict.details.your_version, LOCAL)
        assert again.accepted is False
        assert service.get_document("sp-1").version == 4

    def test_sessions_never_merge_across_editors(self, policy, service, conflict):
        policy.resolve(conflict, "keep-mine", LOCAL, "user-x")
        sessions = service.read_sessions("sp-1")
        assert [s.edited_by for s in sessions] == ["user-x", "user-y", "user-x"]


class TestContentIdentical:
    def test_only_metadata_differs(self, conflict):
        assert ConflictResolutionPolicy.content_identical(conflict, {"content": "AC", "title": "Other"})

    def test_content_differs(self, conflict):
        assert not ConflictResolutionPolicy.content_identical(conflict, LOCAL)
