"""
Adaptive Learning-Path Models.

Domain types shared by the adaptive engine:
- Enums for event types, entry types/statuses and path status
- Attempt: closed sum type (PracticeAnswered | QuizSubmitted | LessonCompleted)
  decoded from the raw event log, never persisted
- Metadata schemas (AdaptiveState, PathMetadata, EntryMetadata) for the JSON
  blobs stored on paths and entries. Decoding is lenient: missing or malformed
  fields fall back to defaults so records written by older code still load.
- View models (PathEntry, PathSummary, PathView, AdaptiveResult) that the
  HTTP layer serializes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

METADATA_SCHEMA_VERSION = 1
GENERAL_STANDARD = "general"
MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5
MAX_STANDARDS_TRACKED = 4


# =============================================================================
# Enums
# =============================================================================


class EventType(str, Enum):
    """Event types in the student activity log."""

    PRACTICE_ANSWERED = "practice_answered"
    QUIZ_SUBMITTED = "quiz_submitted"
    LESSON_COMPLETED = "lesson_completed"
    MISCONCEPTION_TAGGED = "misconception_tagged"
    DIAGNOSTIC_COMPLETED = "diagnostic_completed"

    @classmethod
    def attempt_types(cls) -> tuple[EventType, ...]:
        """Event types that decode into an Attempt."""
        return (cls.PRACTICE_ANSWERED, cls.QUIZ_SUBMITTED, cls.LESSON_COMPLETED)


class AttemptSource(str, Enum):
    PRACTICE = "practice"
    QUIZ = "quiz"
    LESSON = "lesson"


class EntryType(str, Enum):
    """Kind of work a path entry represents."""

    LESSON = "lesson"
    REVIEW = "review"
    PRACTICE = "practice"
    ASSESSMENT = "assessment"


class EntryStatus(str, Enum):
    """Entry progress. Transitions only move forward."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    EntryStatus.NOT_STARTED: 0,
    EntryStatus.IN_PROGRESS: 1,
    EntryStatus.COMPLETED: 2,
}


class PathStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"


class EntryReason(str, Enum):
    """Why an entry was added to a path."""

    REMEDIATION = "remediation"
    STRETCH = "stretch"
    PLACEMENT = "placement"
    ADAPTIVE_SUGGESTION = "adaptive_suggestion"


# =============================================================================
# Lenient coercion helpers
# =============================================================================


def _finite_number(value: Any) -> float | None:
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


def _coerce_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def _coerce_str_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    codes: list[str] = []
    for item in value:
        if isinstance(item, str) and item.strip() and item.strip() not in codes:
            codes.append(item.strip())
    return codes


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def utc_now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Attempt (closed sum type)
# =============================================================================


@dataclass(frozen=True)
class Attempt:
    """
    One normalized learning observation.

    Instances are always one of the three subclasses below; decode them with
    ``learnpath.adaptive.activity_log.decode_event``.
    """

    standards: tuple[str, ...]
    correct: bool
    difficulty: float | None
    accuracy: float | None
    created_at: datetime

    source: ClassVar[AttemptSource]

    @property
    def standard_codes(self) -> tuple[str, ...]:
        """Standards used for grouping (``general`` when none were tagged)."""
        return self.standards or (GENERAL_STANDARD,)

    @property
    def bounded_difficulty(self) -> int | None:
        if self.difficulty is None:
            return None
        return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, round(self.difficulty)))

    def to_view(self) -> AttemptView:
        return AttemptView(
            standards=list(self.standards),
            correct=self.correct,
            difficulty=self.difficulty,
            accuracy=self.accuracy,
            source=self.source,
            created_at=self.created_at,
        )


@dataclass(frozen=True)
class PracticeAnswered(Attempt):
    source: ClassVar[AttemptSource] = AttemptSource.PRACTICE


@dataclass(frozen=True)
class QuizSubmitted(Attempt):
    source: ClassVar[AttemptSource] = AttemptSource.QUIZ
    score: float | None = None


@dataclass(frozen=True)
class LessonCompleted(Attempt):
    source: ClassVar[AttemptSource] = AttemptSource.LESSON


class AttemptView(BaseModel):
    """Serializable form of an Attempt."""

    standards: list[str]
    correct: bool
    difficulty: float | None
    accuracy: float | None
    source: AttemptSource
    created_at: datetime


# =============================================================================
# Metadata schemas
# =============================================================================


class _LenientModel(BaseModel):
    """Keeps unknown keys so older/newer writers round-trip untouched."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class AdaptiveState(_LenientModel):
    """Difficulty controller state stored on the active path."""

    schema_version: int = METADATA_SCHEMA_VERSION
    current_difficulty: int = MIN_DIFFICULTY
    difficulty_streak: int = 0
    target_accuracy_min: float | None = None
    target_accuracy_max: float | None = None
    misconceptions: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None

    @field_validator("schema_version", mode="before")
    @classmethod
    def _version(cls, value: Any) -> int:
        number = _finite_number(value)
        return int(number) if number is not None else METADATA_SCHEMA_VERSION

    @field_validator("current_difficulty", mode="before")
    @classmethod
    def _bounded_difficulty(cls, value: Any) -> int:
        number = _finite_number(value)
        if number is None:
            return MIN_DIFFICULTY
        return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, round(number)))

    @field_validator("difficulty_streak", mode="before")
    @classmethod
    def _non_negative_streak(cls, value: Any) -> int:
        number = _finite_number(value)
        return max(0, round(number)) if number is not None else 0

    @field_validator("target_accuracy_min", "target_accuracy_max", mode="before")
    @classmethod
    def _band_edge(cls, value: Any) -> float | None:
        return _finite_number(value)

    @field_validator("misconceptions", mode="before")
    @classmethod
    def _codes(cls, value: Any) -> list[str]:
        return _coerce_str_list(value)[:MAX_STANDARDS_TRACKED]

    @field_validator("updated_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return _coerce_datetime(value)


class PathMetadata(_LenientModel):
    """Provenance and adaptive state attached to a path."""

    schema_version: int = METADATA_SCHEMA_VERSION
    source: str | None = None
    grade_band: str | None = None
    goal_focus: str | None = None
    adaptive_state: AdaptiveState | None = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return {}
        data = dict(data)
        state = data.get("adaptive_state")
        if not isinstance(state, dict):
            legacy = data.get("adaptive")
            data["adaptive_state"] = legacy if isinstance(legacy, dict) else None
        for key in ("source", "grade_band", "goal_focus"):
            data[key] = _optional_str(data.get(key))
        version = _finite_number(data.get("schema_version"))
        data["schema_version"] = int(version) if version is not None else METADATA_SCHEMA_VERSION
        return data

    @property
    def adaptive(self) -> AdaptiveState:
        """Adaptive state, defaulted when the path has none yet."""
        return self.adaptive_state or AdaptiveState()


class EntryMetadata(_LenientModel):
    """Display info, provenance, attempt counters and timing for an entry."""

    schema_version: int = METADATA_SCHEMA_VERSION
    reason: str | None = None
    source: str | None = None
    module_title: str | None = None
    module_slug: str | None = None
    standard_code: str | None = None
    target_difficulty: int | None = None

    attempts: int = 0
    last_event_at: datetime | None = None
    last_difficulty: float | None = None
    last_accuracy: float | None = None
    last_correct: bool | None = None
    last_standards: list[str] = Field(default_factory=list)

    first_started_at: datetime | None = None
    last_started_at: datetime | None = None
    completed_at: datetime | None = None
    time_spent_s: int = 0

    @model_validator(mode="before")
    @classmethod
    def _lenient(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return {}
        data = dict(data)
        for key in ("reason", "source", "module_title", "module_slug", "standard_code"):
            data[key] = _optional_str(data.get(key))
        for key in ("last_event_at", "first_started_at", "last_started_at", "completed_at"):
            data[key] = _coerce_datetime(data.get(key))
        for key in ("last_difficulty", "last_accuracy"):
            data[key] = _finite_number(data.get(key))

        target = _finite_number(data.get("target_difficulty"))
        data["target_difficulty"] = (
            max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, round(target))) if target is not None else None
        )
        attempts = _finite_number(data.get("attempts"))
        data["attempts"] = max(0, int(attempts)) if attempts is not None else 0
        spent = _finite_number(data.get("time_spent_s"))
        data["time_spent_s"] = max(0, round(spent)) if spent is not None else 0
        last_correct = data.get("last_correct")
        data["last_correct"] = last_correct if isinstance(last_correct, bool) else None
        data["last_standards"] = _coerce_str_list(data.get("last_standards"))
        version = _finite_number(data.get("schema_version"))
        data["schema_version"] = int(version) if version is not None else METADATA_SCHEMA_VERSION
        return data

    @property
    def reason_kind(self) -> EntryReason | None:
        try:
            return EntryReason(self.reason) if self.reason else None
        except ValueError:
            return None


# =============================================================================
# Path view models
# =============================================================================


class PathEntry(BaseModel):
    """One ordered unit of work within a path."""

    id: int | None = None
    path_id: int
    position: int
    type: EntryType
    module_id: int | None = None
    lesson_id: int | None = None
    assessment_id: int | None = None
    status: EntryStatus = EntryStatus.NOT_STARTED
    score: float | None = None
    time_spent_s: int | None = None
    target_standard_codes: list[str] = Field(default_factory=list)
    metadata: EntryMetadata = Field(default_factory=EntryMetadata)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, value: Any) -> Any:
        if isinstance(value, EntryMetadata):
            return value
        return value if isinstance(value, dict) else {}

    @field_validator("target_standard_codes", mode="before")
    @classmethod
    def _standards(cls, value: Any) -> list[str]:
        return _coerce_str_list(value)

    @property
    def is_pending(self) -> bool:
        return self.status != EntryStatus.COMPLETED

    @property
    def priority(self) -> int:
        """Selection priority: remediation/review 3, stretch/practice 2, else 1."""
        reason = self.metadata.reason_kind
        if reason == EntryReason.REMEDIATION or self.type == EntryType.REVIEW:
            return 3
        if reason == EntryReason.STRETCH or self.type == EntryType.PRACTICE:
            return 2
        return 1


class PathSummary(BaseModel):
    id: int
    student_id: str
    status: PathStatus
    started_at: datetime | None = None
    updated_at: datetime | None = None
    metadata: PathMetadata = Field(default_factory=PathMetadata)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, value: Any) -> Any:
        if isinstance(value, PathMetadata):
            return value
        return value if isinstance(value, dict) else {}


class PathView(BaseModel):
    path: PathSummary
    entries: list[PathEntry] = Field(default_factory=list)


class AdaptiveSnapshot(BaseModel):
    target_difficulty: int = MIN_DIFFICULTY
    misconceptions: list[str] = Field(default_factory=list)
    recent_attempts: list[AttemptView] = Field(default_factory=list)


class AdaptiveResult(BaseModel):
    """View model returned for every adaptive event."""

    path: PathView | None = None
    next: PathEntry | None = None
    adaptive: AdaptiveSnapshot = Field(default_factory=AdaptiveSnapshot)


class AdaptiveEvent(BaseModel):
    """An incoming learning event as handed over by the HTTP layer."""

    event_type: str
    path_entry_id: int | None = None
    status: EntryStatus | None = None
    score: float | None = None
    time_spent_seconds: float | None = Field(default=None, ge=0)
    payload: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime | None = None


# =============================================================================
# Store records
# =============================================================================


@dataclass
class EventRecord:
    """One row of the append-only student event log."""

    student_id: str
    event_type: str
    payload: dict[str, Any]
    created_at: datetime
    points_awarded: int = 0
    id: int | None = None


@dataclass
class ModuleRecord:
    """A curriculum module as returned by the curriculum queries."""

    id: int
    slug: str
    title: str
    subject: str | None = None
    grade_band: str | None = None
    standard_codes: list[str] = field(default_factory=list)
