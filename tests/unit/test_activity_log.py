"""
Unit tests for decoding the event log into attempts.
"""

from datetime import UTC, datetime

from learnpath.adaptive.activity_log import ActivityLogReader, decode_event, normalize_standards
from learnpath.adaptive.models import (
    AttemptSource,
    EventRecord,
    LessonCompleted,
    PracticeAnswered,
    QuizSubmitted,
)
from learnpath.adaptive.runtime_config import AdaptiveConfig
from learnpath.errors import StoreError

WHEN = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def event(event_type, **payload):
    return EventRecord(student_id="s-1", event_type=event_type, payload=payload, created_at=WHEN)


class TestNormalizeStandards:
    def test_trims_and_dedupes(self):
        assert normalize_standards([" A ", "A", "B", ""]) == ("A", "B")

    def test_caps_at_four(self):
        assert normalize_standards(["A", "B", "C", "D", "E"]) == ("A", "B", "C", "D")

    def test_scalar_and_numbers(self):
        assert normalize_standards("6.RP.A.1") == ("6.RP.A.1",)
        assert normalize_standards([7, True, None, {"x": 1}]) == ("7",)

    def test_non_iterables(self):
        assert normalize_standards(None) == ()
        assert normalize_standards({"A": 1}) == ()


class TestDecodePractice:
    def test_correct_answer(self, config):
        attempt = decode_event(event("practice_answered", correct=True, standards=["A"], difficulty=4), config)
        assert isinstance(attempt, PracticeAnswered)
        assert attempt.correct is True
        assert attempt.accuracy == 1.0
        assert attempt.difficulty == 4.0
        assert attempt.standards == ("A",)
        assert attempt.created_at == WHEN

    def test_truthy_non_bool_is_a_miss(self, config):
        attempt = decode_event(event("practice_answered", correct="yes"), config)
        assert attempt.correct is False
        assert attempt.accuracy == 0.0

    def test_standard_codes_alias_and_general_fallback(self, config):
        aliased = decode_event(event("practice_answered", standard_codes=["B"]), config)
        assert aliased.standards == ("B",)

        untagged = decode_event(event("practice_answered", correct=True), config)
        assert untagged.standards == ()
        assert untagged.standard_codes == ("general",)

    def test_difficulty_clamped(self, config):
        assert decode_event(event("practice_answered", difficulty=9), config).difficulty == 5.0
        assert decode_event(event("practice_answered", difficulty="0"), config).difficulty == 1.0
        assert decode_event(event("practice_answered", difficulty="hard"), config).difficulty is None


class TestDecodeQuiz:
    def test_score_becomes_accuracy(self, config):
        attempt = decode_event(event("quiz_submitted", score=70), config)
        assert isinstance(attempt, QuizSubmitted)
        assert attempt.accuracy == 0.7
        assert attempt.correct is True
        assert attempt.score == 70

    def test_below_band_is_a_miss(self, config):
        assert decode_event(event("quiz_submitted", score=60), config).correct is False

    def test_score_clamped(self, config):
        assert decode_event(event("quiz_submitted", score=140), config).accuracy == 1.0
        assert decode_event(event("quiz_submitted", score=-5), config).accuracy == 0.0

    def test_breakdown_keys_are_standards(self, config):
        attempt = decode_event(
            event("quiz_submitted", score=90, standard_breakdown={"A": 100, "B": 80}, standards=["Z"]),
            config,
        )
        assert attempt.standards == ("A", "B")

    def test_unscored_quiz_counts_as_miss_by_default(self, config):
        attempt = decode_event(event("quiz_submitted"), config)
        assert attempt.correct is False
        assert attempt.accuracy is None

    def test_unscored_quiz_skipped_when_flag_off(self):
        config = AdaptiveConfig(unscored_quiz_is_miss=False)
        assert decode_event(event("quiz_submitted", score="n/a"), config) is None


class TestDecodeOther:
    def test_lesson_is_always_correct(self, config):
        attempt = decode_event(event("lesson_completed", correct=False, standards=["A"]), config)
        assert isinstance(attempt, LessonCompleted)
        assert attempt.correct is True
        assert attempt.accuracy == 1.0
        assert attempt.source == AttemptSource.LESSON

    def test_non_attempt_events_ignored(self, config):
        assert decode_event(event("misconception_tagged", standard_code="A"), config) is None
        assert decode_event(event("diagnostic_completed", score=50), config) is None

    def test_non_dict_payload(self, config):
        record = EventRecord(student_id="s-1", event_type="practice_answered", payload=None, created_at=WHEN)
        attempt = decode_event(record, config)
        assert attempt.correct is False


class TestActivityLogReader:
    def test_skips_undecodable_rows(self):
        class Store:
            def query_events(self, student_id, event_types, limit):
                assert limit == 5
                return [event("quiz_submitted"), event("practice_answered", correct=True)]

        config = AdaptiveConfig(unscored_quiz_is_miss=False)
        attempts = ActivityLogReader(Store()).fetch_recent_attempts("s-1", 5, config)
        assert [a.source for a in attempts] == [AttemptSource.PRACTICE]

    def test_store_failure_yields_empty(self, config):
        class Store:
            def query_events(self, student_id, event_types, limit):
                raise StoreError("down")

        assert ActivityLogReader(Store()).fetch_recent_attempts("s-1", 5, config) == []
