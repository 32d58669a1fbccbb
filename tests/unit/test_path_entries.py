"""
Unit tests for the path entry manager.

Selection and resolution are pure; insertion and progress use an in-memory
store stand-in.
"""

from datetime import UTC, datetime, timedelta

import pytest

from learnpath.adaptive.models import (
    EntryMetadata,
    EntryStatus,
    EntryType,
    PathEntry,
)
from learnpath.adaptive.path_entries import (
    PathEntryManager,
    choose_adaptive_next,
    needs_remediation_entry,
    resolve_entry_from_payload,
)
from learnpath.adaptive.runtime_config import AdaptiveConfig
from learnpath.errors import StoreError

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


def entry(id, position, type=EntryType.LESSON, status=EntryStatus.NOT_STARTED, standards=(), reason=None, **kwargs):
    return PathEntry(
        id=id,
        path_id=1,
        position=position,
        type=type,
        status=status,
        target_standard_codes=list(standards),
        metadata=EntryMetadata(reason=reason),
        **kwargs,
    )


class MockStore:
    """Minimal in-memory entry store."""

    def __init__(self, entries=None, fail_insert=False):
        self.entries = {e.id: e for e in entries or []}
        self.fail_insert = fail_insert
        self.inserted = []
        self._next_id = 100

    def insert_path_entries(self, entries):
        if self.fail_insert:
            raise StoreError("insert failed")
        stored = []
        for item in entries:
            self._next_id += 1
            saved = item.model_copy(update={"id": self._next_id})
            self.entries[saved.id] = saved
            stored.append(saved)
        self.inserted.extend(stored)
        return stored

    def get_path_entry(self, entry_id):
        return self.entries.get(entry_id)

    def upsert_path_entry(self, item):
        self.entries[item.id] = item
        return item


# =============================================================================
# Selection
# =============================================================================


class TestChooseAdaptiveNext:
    def test_review_beats_practice_beats_lesson(self):
        entries = [
            entry(1, 1),
            entry(2, 2, type=EntryType.PRACTICE),
            entry(3, 3, type=EntryType.REVIEW),
        ]
        assert choose_adaptive_next(entries).id == 3

    def test_reason_counts_like_type(self):
        entries = [
            entry(1, 1, type=EntryType.PRACTICE),
            entry(2, 5, type=EntryType.LESSON, reason="remediation"),
        ]
        assert choose_adaptive_next(entries).id == 2

    def test_ties_break_on_lowest_position(self):
        entries = [entry(1, 4, type=EntryType.PRACTICE), entry(2, 2, type=EntryType.PRACTICE, reason="stretch")]
        assert choose_adaptive_next(entries).id == 2

    def test_completed_entries_are_skipped(self):
        entries = [
            entry(1, 1, type=EntryType.REVIEW, status=EntryStatus.COMPLETED),
            entry(2, 2, status=EntryStatus.IN_PROGRESS),
        ]
        assert choose_adaptive_next(entries).id == 2

    def test_nothing_pending(self):
        assert choose_adaptive_next([entry(1, 1, status=EntryStatus.COMPLETED)]) is None
        assert choose_adaptive_next([]) is None


class TestNeedsRemediation:
    def test_pending_review_for_standard_blocks(self):
        entries = [entry(1, 1, type=EntryType.REVIEW, standards=["A"])]
        assert needs_remediation_entry(entries, "A") is False
        assert needs_remediation_entry(entries, "B") is True

    def test_completed_review_does_not_block(self):
        entries = [entry(1, 1, type=EntryType.REVIEW, standards=["A"], status=EntryStatus.COMPLETED)]
        assert needs_remediation_entry(entries, "A") is True


class TestResolveEntryFromPayload:
    def test_matches_lesson_then_assessment_then_module(self):
        entries = [
            entry(1, 1, module_id=7),
            entry(2, 2, lesson_id=42),
            entry(3, 3, assessment_id=9),
        ]
        assert resolve_entry_from_payload(entries, {"lesson_id": 42, "module_id": 7}) == 2
        assert resolve_entry_from_payload(entries, {"assessment_id": "9"}) == 3
        assert resolve_entry_from_payload(entries, {"module_id": 7}) == 1

    def test_only_pending_entries_match(self):
        entries = [entry(1, 1, lesson_id=42, status=EntryStatus.COMPLETED)]
        assert resolve_entry_from_payload(entries, {"lesson_id": 42}) is None

    def test_no_ids(self):
        assert resolve_entry_from_payload([entry(1, 1, lesson_id=1)], {"foo": "bar"}) is None


# =============================================================================
# Insertion
# =============================================================================


class TestAppendAdaptiveEntry:
    def test_appends_after_max_position(self):
        store = MockStore()
        manager = PathEntryManager(store)
        entries = [entry(1, 1), entry(2, 7)]
        inserted = manager.append_adaptive_entry(
            1, entries, EntryType.REVIEW, ["A"], EntryMetadata(reason="remediation"), AdaptiveConfig()
        )
        assert inserted.position == 8
        assert inserted.status == EntryStatus.NOT_STARTED
        assert inserted.target_standard_codes == ["A"]

    def test_review_cap(self):
        store = MockStore()
        manager = PathEntryManager(store)
        entries = [
            entry(1, 1, type=EntryType.REVIEW, standards=["A"]),
            entry(2, 2, type=EntryType.REVIEW, standards=["B"]),
        ]
        result = manager.append_adaptive_entry(
            1, entries, EntryType.REVIEW, ["C"], EntryMetadata(), AdaptiveConfig()
        )
        assert result is None
        assert store.inserted == []

    def test_practice_cap_uses_config(self):
        manager = PathEntryManager(MockStore())
        entries = [entry(1, 1, type=EntryType.PRACTICE, standards=["A"])]
        config = AdaptiveConfig(max_practice_pending=1)
        assert manager.append_adaptive_entry(1, entries, EntryType.PRACTICE, ["B"], EntryMetadata(), config) is None

    def test_duplicate_standard_is_skipped(self):
        manager = PathEntryManager(MockStore())
        entries = [entry(1, 1, type=EntryType.REVIEW, standards=["A", "B"])]
        assert (
            manager.append_adaptive_entry(1, entries, EntryType.REVIEW, ["B"], EntryMetadata(), AdaptiveConfig())
            is None
        )

    def test_same_standard_other_type_is_allowed(self):
        manager = PathEntryManager(MockStore())
        entries = [entry(1, 1, type=EntryType.REVIEW, standards=["A"])]
        inserted = manager.append_adaptive_entry(
            1, entries, EntryType.PRACTICE, ["A"], EntryMetadata(), AdaptiveConfig()
        )
        assert inserted is not None

    def test_store_failure_returns_none(self):
        manager = PathEntryManager(MockStore(fail_insert=True))
        assert manager.append_adaptive_entry(1, [], EntryType.REVIEW, ["A"], EntryMetadata(), AdaptiveConfig()) is None


# =============================================================================
# Progress
# =============================================================================


class TestUpdateProgress:
    @pytest.fixture
    def store(self):
        return MockStore([entry(1, 1)])

    def test_start_stamps_times_once(self, store):
        manager = PathEntryManager(store)
        updated = manager.update_path_entry_progress(1, status=EntryStatus.IN_PROGRESS, now=NOW)
        assert updated.status == EntryStatus.IN_PROGRESS
        assert updated.metadata.first_started_at == NOW
        assert updated.metadata.last_started_at == NOW

    def test_completion_uses_wall_clock_since_start(self, store):
        manager = PathEntryManager(store)
        manager.update_path_entry_progress(1, status=EntryStatus.IN_PROGRESS, now=NOW)
        done = manager.update_path_entry_progress(
            1, status=EntryStatus.COMPLETED, now=NOW + timedelta(seconds=90)
        )
        assert done.metadata.completed_at == NOW + timedelta(seconds=90)
        assert done.metadata.time_spent_s == 90
        assert done.time_spent_s == 90

    def test_explicit_time_wins(self, store):
        manager = PathEntryManager(store)
        manager.update_path_entry_progress(1, status=EntryStatus.IN_PROGRESS, now=NOW)
        done = manager.update_path_entry_progress(
            1, status=EntryStatus.COMPLETED, time_spent_seconds=30, now=NOW + timedelta(seconds=500)
        )
        assert done.metadata.time_spent_s == 30

    def test_recompleting_does_not_double_count(self, store):
        manager = PathEntryManager(store)
        manager.update_path_entry_progress(1, status=EntryStatus.IN_PROGRESS, now=NOW)
        manager.update_path_entry_progress(1, status=EntryStatus.COMPLETED, now=NOW + timedelta(seconds=60))
        again = manager.update_path_entry_progress(
            1, status=EntryStatus.COMPLETED, now=NOW + timedelta(seconds=600)
        )
        assert again.metadata.time_spent_s == 60
        assert again.metadata.completed_at == NOW + timedelta(seconds=60)

        extra = manager.update_path_entry_progress(1, status=EntryStatus.COMPLETED, time_spent_seconds=15)
        assert extra.metadata.time_spent_s == 75

    def test_status_never_regresses(self, store):
        manager = PathEntryManager(store)
        manager.update_path_entry_progress(1, status=EntryStatus.COMPLETED, now=NOW)
        back = manager.update_path_entry_progress(1, status=EntryStatus.IN_PROGRESS, now=NOW)
        assert back.status == EntryStatus.COMPLETED

    def test_attempt_counters_merge(self, store, make_attempt):
        manager = PathEntryManager(store)
        manager.update_path_entry_progress(1, attempt=make_attempt(correct=False, difficulty=2), now=NOW)
        updated = manager.update_path_entry_progress(1, score=80, attempt=make_attempt(correct=True), now=NOW)
        assert updated.metadata.attempts == 2
        assert updated.metadata.last_correct is True
        assert updated.metadata.last_standards == ["6.EE.A.2"]
        assert updated.score == 80

    def test_missing_entry(self, store):
        assert PathEntryManager(store).update_path_entry_progress(999, status=EntryStatus.COMPLETED) is None

    def test_entry_of_another_path_is_left_alone(self, store):
        manager = PathEntryManager(store)
        assert manager.update_path_entry_progress(1, path_id=2, status=EntryStatus.COMPLETED, now=NOW) is None
        assert store.entries[1].status == EntryStatus.NOT_STARTED

        owned = manager.update_path_entry_progress(1, path_id=1, status=EntryStatus.COMPLETED, now=NOW)
        assert owned.status == EntryStatus.COMPLETED
