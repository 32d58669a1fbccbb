"""
Weekly Student Insights.

Rolls the last 200 attempt events into a parent/educator-facing snapshot:
current vs prior week accuracy, weekly minutes, lessons completed, latest
quiz score, the three weakest standards and the struggle flag.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, Field

from learnpath.adaptive.activity_log import decode_event, normalize_standards
from learnpath.adaptive.aggregator import detect_struggle
from learnpath.adaptive.models import EventRecord, EventType, utc_now
from learnpath.adaptive.runtime_config import AdaptiveConfig, RuntimeConfigProvider
from learnpath.config import Settings, get_settings
from learnpath.errors import StoreError

if TYPE_CHECKING:
    from learnpath.db.store import ActivityStore

WEEKLY_LOOKBACK = timedelta(days=7)
FOCUS_STANDARDS_RETURNED = 3
TIME_KEYS = ("time_spent_s", "time_spent", "timeSpentSeconds", "duration_seconds", "duration")
SCORE_KEYS = ("score", "percentage", "result")


class FocusStandard(BaseModel):
    code: str
    accuracy: float
    samples: int


class StudentInsights(BaseModel):
    """Weekly rollup. Percentages are 0-100 with one decimal."""

    avg_accuracy: float | None = None
    avg_accuracy_prior_week: float | None = None
    avg_accuracy_delta: float | None = None
    weekly_time_minutes: int = 0
    weekly_time_minutes_prior_week: int = 0
    weekly_time_minutes_delta: int | None = None
    lessons_completed: int = 0
    latest_quiz_score: float | None = None
    latest_quiz_at: datetime | None = None
    focus_standards: list[FocusStandard] = Field(default_factory=list)
    struggle: bool = False


def _safe_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _first_number(payload: dict[str, Any], keys: tuple[str, ...]) -> float | None:
    for key in keys:
        if payload.get(key) is not None:
            return _safe_number(payload[key])
    return None


def _as_fraction(value: float) -> float:
    """Scores above 1 are percentages."""
    return value / 100 if value > 1 else value


def _pct(samples: list[float]) -> float | None:
    if not samples:
        return None
    return round(sum(samples) / len(samples) * 100, 1)


def summarize_events(
    events: list[EventRecord],
    config: AdaptiveConfig,
    now: datetime | None = None,
) -> StudentInsights:
    """
    Build insights from attempt events, most recent first.

    Args:
        events: Attempt events (practice_answered, quiz_submitted, lesson_completed)
        config: Thresholds for the struggle flag
        now: Reference time for the weekly windows

    Returns:
        StudentInsights
    """
    now = now or utc_now()
    week_start = now - WEEKLY_LOOKBACK
    prior_start = now - 2 * WEEKLY_LOOKBACK

    current: list[float] = []
    prior: list[float] = []
    seconds_current = 0.0
    seconds_prior = 0.0
    lessons_completed = 0
    latest_quiz: float | None = None
    latest_quiz_at: datetime | None = None
    by_standard: dict[str, list[float]] = {}

    def sample(created_at: datetime, value: float) -> None:
        if created_at >= week_start:
            current.append(value)
        elif created_at >= prior_start:
            prior.append(value)

    for event in events:
        payload = event.payload if isinstance(event.payload, dict) else {}
        created_at = event.created_at

        spent = _first_number(payload, TIME_KEYS)
        if spent is not None and created_at >= prior_start:
            if created_at >= week_start:
                seconds_current += max(0.0, spent)
            else:
                seconds_prior += max(0.0, spent)

        if event.event_type == EventType.LESSON_COMPLETED.value:
            lessons_completed += 1

        elif event.event_type == EventType.PRACTICE_ANSWERED.value:
            value = 1.0 if payload.get("correct") is True else 0.0
            sample(created_at, value)
            for code in normalize_standards(payload.get("standards") or payload.get("standard_codes")):
                by_standard.setdefault(code, []).append(value)

        elif event.event_type == EventType.QUIZ_SUBMITTED.value:
            score = _first_number(payload, SCORE_KEYS)
            if score is not None:
                fraction = max(0.0, min(1.0, _as_fraction(score)))
                sample(created_at, fraction)
                if latest_quiz is None:
                    latest_quiz = round(fraction * 100, 1)
                    latest_quiz_at = created_at
            breakdown = payload.get("standard_breakdown")
            if isinstance(breakdown, dict):
                for code, raw in breakdown.items():
                    pct = _safe_number(raw)
                    if pct is not None:
                        by_standard.setdefault(str(code), []).append(max(0.0, min(1.0, _as_fraction(pct))))

    avg_current = _pct(current)
    avg_prior = _pct(prior)
    delta = round(avg_current - avg_prior, 1) if avg_current is not None and avg_prior is not None else None

    minutes_current = round(seconds_current / 60)
    minutes_prior = round(seconds_prior / 60)

    focus = sorted(
        (
            FocusStandard(code=code, accuracy=round(sum(values) / len(values) * 100, 1), samples=len(values))
            for code, values in by_standard.items()
        ),
        key=lambda item: item.accuracy,
    )[:FOCUS_STANDARDS_RETURNED]

    attempts = [attempt for attempt in (decode_event(event, config) for event in events) if attempt]
    struggle = detect_struggle(attempts, config)

    return StudentInsights(
        avg_accuracy=avg_current if avg_current is not None else _pct(current + prior),
        avg_accuracy_prior_week=avg_prior,
        avg_accuracy_delta=delta,
        weekly_time_minutes=max(0, minutes_current),
        weekly_time_minutes_prior_week=max(0, minutes_prior),
        weekly_time_minutes_delta=minutes_current - minutes_prior if seconds_prior > 0 else None,
        lessons_completed=lessons_completed,
        latest_quiz_score=latest_quiz,
        latest_quiz_at=latest_quiz_at,
        focus_standards=focus,
        struggle=struggle.struggling,
    )


def compute_student_insights(
    store: ActivityStore,
    student_id: str,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> StudentInsights:
    """Load the event window and summarize it; store failures yield an empty snapshot."""
    settings = settings or get_settings()
    config = RuntimeConfigProvider(store, settings).load()
    try:
        events = store.query_events(
            student_id,
            [event_type.value for event_type in EventType.attempt_types()],
            settings.insight_event_window,
        )
    except StoreError as exc:
        logger.warning(f"Could not load events for insights on {student_id}: {exc}")
        return StudentInsights()
    return summarize_events(events, config, now=now)
