"""
Placement Scoring.

Everything needed to turn a placement attempt into a first learning path:
- validate_placement_questions: drop unusable bank questions before scoring
- select_placement_assessment_id: pick the placement (or diagnostic)
  assessment for a grade band and optional goal focus
- PlacementScorer: weighted mastery percentage plus per-strand estimates
- PlacementService: validate, score, seed the path, log the diagnostic event
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, Field, field_validator

from learnpath.adaptive.models import EventRecord, EventType, utc_now
from learnpath.adaptive.path_builder import PathBuilder, PathBuildResult, derive_grade_band
from learnpath.errors import MissingIdentifierError, PlacementContentError, StoreError

if TYPE_CHECKING:
    from learnpath.db.store import ActivityStore

GENERAL_STRAND = "general"
SUPPORTED_QUESTION_TYPES = frozenset({"multiple_choice", "true_false"})
MAX_OPTIONS = 6
MAX_REPORTED_REASONS = 20

PLACEHOLDER_OPTION_TEXTS = frozenset(
    {
        "common misconception",
        "partially correct idea",
        "off topic choice",
        "off-topic choice",
        "mostly correct",
        "correct grade level",
    }
)

CORE_SUBJECTS = ("math", "ela", "science")
FOCUS_SUBJECTS = frozenset({"math", "ela", "science", "social_studies", "computer_science"})
GRADE_BAND_MEMBERS = {
    "k-2": ("k", "1", "2", "k-2"),
    "3-5": ("3", "4", "5", "3-5"),
    "6-8": ("6", "7", "8", "6-8"),
    "9-12": ("9", "10", "11", "12", "9-12"),
}


# =============================================================================
# Content models
# =============================================================================


class PlacementOption(BaseModel):
    id: int
    text: str = ""
    is_correct: bool = False
    feedback: str | None = None

    @field_validator("text", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""


class PlacementQuestion(BaseModel):
    """A bank question as used during placement. Read-only."""

    bank_question_id: int
    prompt: str = ""
    type: str = "multiple_choice"
    options: list[PlacementOption] = Field(default_factory=list)
    weight: float = 1.0
    difficulty: int = 3
    strand: str | None = None
    target_standards: list[str] = Field(default_factory=list)

    @field_validator("weight", mode="before")
    @classmethod
    def _weight(cls, value: Any) -> float:
        return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 1.0

    @field_validator("difficulty", mode="before")
    @classmethod
    def _difficulty(cls, value: Any) -> int:
        return value if isinstance(value, int) and not isinstance(value, bool) else 3

    def find_option(self, option_id: int | None) -> PlacementOption | None:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


class PlacementResponse(BaseModel):
    bank_question_id: int
    option_id: int | None = None
    time_spent_seconds: float | None = None


class StrandEstimate(BaseModel):
    strand: str
    correct: int
    total: int
    accuracy_pct: int


class PlacementScore(BaseModel):
    mastery_pct: int
    earned_weight: float
    total_weight: float
    strand_estimates: list[StrandEstimate] = Field(default_factory=list)


class AssessmentCandidate(BaseModel):
    """An assessment row considered for placement."""

    id: int
    module_id: int | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class InvalidQuestion:
    bank_question_id: int
    reason: str


@dataclass
class ValidationResult:
    questions: list[PlacementQuestion]
    invalid: list[InvalidQuestion] = field(default_factory=list)

    @property
    def filtered_out_count(self) -> int:
        return len(self.invalid)


# =============================================================================
# Validation
# =============================================================================

_PUNCTUATION = re.compile(r"[().,:;!?'\"\[\]{}]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    lowered = _PUNCTUATION.sub(" ", value.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def is_placeholder_option_text(value: str) -> bool:
    """True for blank or template filler option texts."""
    normalized = normalize_text(value)
    if not normalized:
        return True
    return normalized in PLACEHOLDER_OPTION_TEXTS or normalized.startswith("correct answer")


def _validate_question(question: PlacementQuestion) -> tuple[PlacementQuestion | None, str | None]:
    if not question.prompt.strip():
        return None, "empty_prompt"

    question_type = question.type.strip().lower()
    if question_type not in SUPPORTED_QUESTION_TYPES:
        return None, "unsupported_type"

    options = [option for option in question.options if option.text]
    if any(is_placeholder_option_text(option.text) for option in options):
        return None, "placeholder_options"

    seen: set[str] = set()
    distinct: list[PlacementOption] = []
    for option in options:
        key = normalize_text(option.text)
        if not key or key in seen:
            continue
        seen.add(key)
        distinct.append(option)

    capped = distinct[:MAX_OPTIONS]
    if len(capped) < 2:
        return None, "insufficient_options"

    correct_count = sum(1 for option in capped if option.is_correct)
    if correct_count < 1 or correct_count >= len(capped):
        return None, "invalid_correctness"

    return question.model_copy(update={"type": question_type, "options": capped}), None


def validate_placement_questions(
    questions: Sequence[PlacementQuestion],
    assessment_id: int | None = None,
) -> ValidationResult:
    """
    Filter placement questions down to ones that can be scored fairly.

    Raises:
        PlacementContentError: When the assessment has no questions
            (``placement_content_missing``) or none survives validation
    """
    if not questions:
        raise PlacementContentError(
            "Placement assessment has no questions configured.",
            code="placement_content_missing",
            details={"assessment_id": assessment_id},
        )

    valid: list[PlacementQuestion] = []
    invalid: list[InvalidQuestion] = []
    for question in questions:
        cleaned, reason = _validate_question(question)
        if cleaned is None:
            invalid.append(InvalidQuestion(question.bank_question_id, reason or "invalid"))
        else:
            valid.append(cleaned)

    if invalid:
        logger.warning(
            "Filtered {} invalid placement question(s) from assessment {}", len(invalid), assessment_id
        )

    if not valid:
        raise PlacementContentError(
            "Placement assessment content is incomplete.",
            details={
                "assessment_id": assessment_id,
                "invalid_count": len(invalid),
                "reasons": [
                    {"bank_question_id": item.bank_question_id, "reason": item.reason}
                    for item in invalid[:MAX_REPORTED_REASONS]
                ],
            },
        )
    return ValidationResult(questions=valid, invalid=invalid)


# =============================================================================
# Assessment selection
# =============================================================================


def _normalize_key(value: str) -> str:
    return re.sub(r"[\s-]+", "_", value.strip().lower())


def canonical_subject(value: str) -> str:
    key = _normalize_key(value)
    if key in ("english", "english_language_arts"):
        return "ela"
    if key == "cs":
        return "computer_science"
    return key


def _focus_subject(goal_focus: str | None) -> str | None:
    if not goal_focus or not goal_focus.strip():
        return None
    key = canonical_subject(goal_focus)
    return key if key in FOCUS_SUBJECTS else None


def _first_string(metadata: dict[str, Any], keys: Sequence[str]) -> str | None:
    for key in keys:
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def grade_band_matches(target_band: str, assessment_band: str) -> bool:
    target = target_band.strip().lower()
    band = assessment_band.strip().lower()
    if not band or band == target:
        return True
    members = GRADE_BAND_MEMBERS.get(target)
    return band in members if members else False


@dataclass
class _Candidate:
    id: int
    purpose: str
    subject_key: str | None
    subjects: list[str]


def _candidate(row: AssessmentCandidate, target_band: str) -> _Candidate | None:
    if row.module_id is not None or not row.metadata:
        return None
    metadata = row.metadata
    purpose = _normalize_key(_first_string(metadata, ("purpose", "type", "kind")) or "")
    if purpose not in ("placement", "diagnostic"):
        return None

    band = _first_string(metadata, ("grade_band", "gradeBand", "grade"))
    if band and not grade_band_matches(target_band, band):
        return None

    subject_raw = _first_string(metadata, ("subject_key", "subjectKey"))
    subjects = metadata.get("subjects")
    subject_list = (
        [canonical_subject(item) for item in subjects if isinstance(item, str) and item.strip()]
        if isinstance(subjects, list)
        else []
    )
    return _Candidate(
        id=row.id,
        purpose=purpose,
        subject_key=canonical_subject(subject_raw) if subject_raw else None,
        subjects=subject_list,
    )


def _pick_by_subject(candidates: Sequence[_Candidate], subject: str) -> int | None:
    for candidate in candidates:
        if candidate.subject_key == subject:
            return candidate.id
    for candidate in candidates:
        if subject in candidate.subjects:
            return candidate.id
    return None


def _pick_core(candidates: Sequence[_Candidate]) -> int | None:
    for subject in CORE_SUBJECTS:
        match = _pick_by_subject(candidates, subject)
        if match is not None:
            return match
    for candidate in candidates:
        if candidate.subject_key is None and any(key in CORE_SUBJECTS for key in candidate.subjects):
            return candidate.id
    return None


def select_placement_assessment_id(
    rows: Sequence[AssessmentCandidate],
    target_grade_band: str,
    goal_focus: str | None = None,
) -> int | None:
    """
    Choose the assessment to place a student with.

    Only module-independent assessments whose purpose is placement or
    diagnostic (never baseline) and whose grade band matches are considered.
    Placement beats diagnostic. With a recognised goal focus only that subject
    qualifies; otherwise core subjects are tried in order math, ela, science.
    """
    candidates = [c for c in (_candidate(row, target_grade_band) for row in rows) if c is not None]
    placements = [c for c in candidates if c.purpose == "placement"]
    diagnostics = [c for c in candidates if c.purpose == "diagnostic"]

    focus = _focus_subject(goal_focus)
    if focus:
        found = _pick_by_subject(placements, focus)
        return found if found is not None else _pick_by_subject(diagnostics, focus)

    for picked in (_pick_core(placements), _pick_core(diagnostics)):
        if picked is not None:
            return picked
    if placements:
        return placements[0].id
    if diagnostics:
        return diagnostics[0].id
    return None


# =============================================================================
# Scoring
# =============================================================================


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class PlacementScorer:
    """Weighted placement scoring."""

    def score_attempt(
        self,
        responses: Sequence[PlacementResponse],
        questions: Sequence[PlacementQuestion],
    ) -> PlacementScore:
        """
        Score responses against the question set.

        A later response to the same question replaces an earlier one.
        Responses to unknown questions are skipped; an option id that is not
        on the question counts as incorrect.

        Args:
            responses: Student responses in submission order
            questions: Validated questions of the assessment

        Returns:
            PlacementScore with mastery_pct in [0, 100]
        """
        by_id = {question.bank_question_id: question for question in questions}
        latest: dict[int, PlacementResponse] = {}
        for response in responses:
            if response.bank_question_id not in by_id:
                logger.debug("Skipping response to unknown question {}", response.bank_question_id)
                continue
            latest.pop(response.bank_question_id, None)
            latest[response.bank_question_id] = response

        total_weight = 0.0
        earned_weight = 0.0
        strands: dict[str, list[int]] = {}
        for question_id, response in latest.items():
            question = by_id[question_id]
            option = question.find_option(response.option_id)
            correct = bool(option and option.is_correct)
            weight = max(0.0, question.weight)

            total_weight += weight
            if correct:
                earned_weight += weight

            totals = strands.setdefault(question.strand or GENERAL_STRAND, [0, 0])
            totals[0] += 1 if correct else 0
            totals[1] += 1

        mastery = round_half_up(100 * earned_weight / total_weight) if total_weight > 0 else 0
        estimates = [
            StrandEstimate(
                strand=strand,
                correct=correct,
                total=total,
                accuracy_pct=round_half_up(100 * correct / total) if total else 0,
            )
            for strand, (correct, total) in strands.items()
        ]
        return PlacementScore(
            mastery_pct=max(0, min(100, mastery)),
            earned_weight=earned_weight,
            total_weight=total_weight,
            strand_estimates=estimates,
        )


@dataclass
class PlacementOutcome:
    path: PathBuildResult
    score: PlacementScore
    grade_band: str
    invalid_questions: list[InvalidQuestion] = field(default_factory=list)


class PlacementService:
    """Submit a placement attempt and seed the student's path from it."""

    def __init__(self, store: ActivityStore, builder: PathBuilder | None = None):
        self._store = store
        self._builder = builder or PathBuilder(store)
        self._scorer = PlacementScorer()

    def submit_placement(
        self,
        student_id: str,
        assessment_id: int,
        attempt_id: int,
        questions: Sequence[PlacementQuestion],
        responses: Sequence[PlacementResponse],
        grade_level: int | None = None,
        grade_band: str | None = None,
        goal_focus: str | None = None,
    ) -> PlacementOutcome:
        if not student_id:
            raise MissingIdentifierError("student_id is required")
        if not assessment_id:
            raise MissingIdentifierError("assessment_id is required", code="assessment_id_required")
        if not attempt_id:
            raise MissingIdentifierError("attempt_id is required", code="attempt_id_required")

        validation = validate_placement_questions(questions, assessment_id=assessment_id)
        score = self._scorer.score_attempt(responses, validation.questions)
        resolved_band = derive_grade_band(grade_level, grade_band)
        strand_payload = [estimate.model_dump() for estimate in score.strand_estimates]

        logger.info(
            "Placement for {}: mastery {}% over {} question(s)",
            student_id,
            score.mastery_pct,
            len(validation.questions),
        )

        event = EventRecord(
            student_id=student_id,
            event_type=EventType.DIAGNOSTIC_COMPLETED.value,
            payload={
                "assessment_id": assessment_id,
                "attempt_id": attempt_id,
                "score": score.mastery_pct,
                "strand_estimates": strand_payload,
            },
            created_at=utc_now(),
        )
        try:
            self._store.insert_events([event])
        except StoreError as exc:
            logger.warning(f"Could not record diagnostic event for {student_id}: {exc}")

        result = self._builder.build_student_path(
            student_id,
            grade_band=resolved_band,
            grade_level=grade_level,
            goal_focus=goal_focus,
            source="placement",
            metadata={
                "assessment_id": assessment_id,
                "attempt_id": attempt_id,
                "strand_estimates": strand_payload,
            },
        )
        return PlacementOutcome(
            path=result,
            score=score,
            grade_band=resolved_band,
            invalid_questions=validation.invalid,
        )
