"""
Integration tests for the weekly insight rollup.
"""

from datetime import UTC, datetime, timedelta

from learnpath.adaptive.insights import compute_student_insights
from learnpath.adaptive.models import EventRecord

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)
STUDENT = "student-i"


def record(event_type, age, **payload):
    return EventRecord(student_id=STUDENT, event_type=event_type, payload=payload, created_at=NOW - age)


class TestStudentInsights:
    def test_weekly_rollup(self, store, settings):
        store.insert_events(
            [
                record("lesson_completed", timedelta(hours=1)),
                record("practice_answered", timedelta(days=1), correct=True, standards=["A"], time_spent_s=120),
                record("practice_answered", timedelta(days=2), correct=False, standards=["A"], time_spent_s=60),
                record("quiz_submitted", timedelta(days=3), score=50, standard_breakdown={"B": 40}),
                record("practice_answered", timedelta(days=9), correct=True, time_spent_s=300),
                record("misconception_tagged", timedelta(days=1), standard_code="A"),
            ]
        )

        insights = compute_student_insights(store, STUDENT, settings=settings, now=NOW)

        assert insights.avg_accuracy == 50.0
        assert insights.avg_accuracy_prior_week == 100.0
        assert insights.avg_accuracy_delta == -50.0
        assert insights.weekly_time_minutes == 3
        assert insights.weekly_time_minutes_prior_week == 5
        assert insights.weekly_time_minutes_delta == -2
        assert insights.lessons_completed == 1
        assert insights.latest_quiz_score == 50.0
        assert insights.latest_quiz_at == NOW - timedelta(days=3)
        assert [item.code for item in insights.focus_standards] == ["B", "A"]
        assert insights.struggle is True

    def test_no_history(self, store, settings):
        insights = compute_student_insights(store, STUDENT, settings=settings, now=NOW)
        assert insights.avg_accuracy is None
        assert insights.weekly_time_minutes == 0
        assert insights.weekly_time_minutes_delta is None
        assert insights.focus_standards == []
        assert insights.struggle is False

    def test_consecutive_misses_flag_struggle(self, store, settings):
        store.insert_events(
            [
                record("practice_answered", timedelta(minutes=minute), correct=False, standards=[f"S{minute}"])
                for minute in range(3)
            ]
            + [
                record("practice_answered", timedelta(minutes=10 + minute), correct=True)
                for minute in range(10)
            ]
        )
        insights = compute_student_insights(store, STUDENT, settings=settings, now=NOW)
        assert insights.struggle is True
