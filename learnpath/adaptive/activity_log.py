"""
Activity Log Reader.

Turns raw student events into normalized Attempts, most recent first.

Event mapping:
- practice_answered: correct from payload, accuracy 1/0
- quiz_submitted: accuracy = score/100 clamped to [0, 1], correct when the
  accuracy reaches the lower band edge
- lesson_completed: always correct, accuracy 1
Everything else in the log is ignored here.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from loguru import logger

from learnpath.adaptive.models import (
    MAX_STANDARDS_TRACKED,
    Attempt,
    EventRecord,
    EventType,
    LessonCompleted,
    PracticeAnswered,
    QuizSubmitted,
)
from learnpath.adaptive.runtime_config import AdaptiveConfig
from learnpath.errors import StoreError

if TYPE_CHECKING:
    from learnpath.db.store import ActivityStore


def normalize_standards(raw: Any) -> tuple[str, ...]:
    """Keep strings/numbers, trimmed and deduplicated, at most four."""
    if raw is None:
        return ()
    if isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
        raw = [raw]
    if not isinstance(raw, Iterable) or isinstance(raw, dict):
        return ()

    codes: list[str] = []
    for item in raw:
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            continue
        code = str(item).strip()
        if code and code not in codes:
            codes.append(code)
        if len(codes) >= MAX_STANDARDS_TRACKED:
            break
    return tuple(codes)


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _difficulty(payload: dict[str, Any]) -> float | None:
    value = _number(payload.get("difficulty"))
    if value is None:
        return None
    return max(1.0, min(5.0, value))


def decode_event(event: EventRecord, config: AdaptiveConfig) -> Attempt | None:
    """
    Decode one log row into an Attempt.

    Returns None for event types that carry no learning evidence, and for
    unscored quizzes when ``config.unscored_quiz_is_miss`` is off.
    """
    payload = event.payload if isinstance(event.payload, dict) else {}
    difficulty = _difficulty(payload)

    if event.event_type == EventType.PRACTICE_ANSWERED.value:
        correct = payload.get("correct") is True
        standards = normalize_standards(payload.get("standards") or payload.get("standard_codes"))
        return PracticeAnswered(
            standards=standards,
            correct=correct,
            difficulty=difficulty,
            accuracy=1.0 if correct else 0.0,
            created_at=event.created_at,
        )

    if event.event_type == EventType.QUIZ_SUBMITTED.value:
        score = _number(payload.get("score"))
        accuracy = max(0.0, min(1.0, score / 100)) if score is not None else None
        if accuracy is None and not config.unscored_quiz_is_miss:
            logger.debug("Skipping unscored quiz event for {}", event.student_id)
            return None
        breakdown = payload.get("standard_breakdown")
        if isinstance(breakdown, dict) and breakdown:
            standards = normalize_standards(list(breakdown.keys()))
        else:
            standards = normalize_standards(payload.get("standards"))
        return QuizSubmitted(
            standards=standards,
            correct=accuracy is not None and accuracy >= config.target_accuracy_min,
            difficulty=difficulty,
            accuracy=accuracy,
            created_at=event.created_at,
            score=score,
        )

    if event.event_type == EventType.LESSON_COMPLETED.value:
        return LessonCompleted(
            standards=normalize_standards(payload.get("standards") or payload.get("standard_codes")),
            correct=True,
            difficulty=difficulty,
            accuracy=1.0,
            created_at=event.created_at,
        )

    logger.debug("Ignoring non-attempt event type {!r}", event.event_type)
    return None


class ActivityLogReader:
    """Read recent attempts for a student from the event log."""

    def __init__(self, store: ActivityStore):
        self._store = store

    def fetch_recent_attempts(
        self,
        student_id: str,
        limit: int,
        config: AdaptiveConfig,
    ) -> list[Attempt]:
        """
        Fetch up to ``limit`` recent attempts, most recent first.

        Store failures degrade to an empty list.
        """
        try:
            events = self._store.query_events(
                student_id,
                [event_type.value for event_type in EventType.attempt_types()],
                limit,
            )
        except StoreError as exc:
            logger.warning(f"Could not load recent attempts for {student_id}: {exc}")
            return []

        attempts = [decode_event(event, config) for event in events]
        return [attempt for attempt in attempts if attempt is not None]
