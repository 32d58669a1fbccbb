"""
Path Builder.

(Re)builds a student's active path:
1. Pause any active path for the student
2. Create a new active path carrying provenance metadata
3. Seed lesson entries from the curriculum, falling back tier by tier:
   canonical sequence for the grade band -> modules tagged with the band's
   grades (closest to the student's grade first) -> any modules

The last tier trades alignment for a non-empty path; it logs a warning
instead of failing.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from learnpath.adaptive.models import (
    EntryMetadata,
    EntryStatus,
    EntryType,
    ModuleRecord,
    PathEntry,
    PathMetadata,
    PathSummary,
)
from learnpath.config import get_settings
from learnpath.errors import MissingIdentifierError, StoreError

if TYPE_CHECKING:
    from learnpath.db.store import ActivityStore

DEFAULT_GRADE_BAND = "6-8"
DEFAULT_TARGET_GRADE = 5
BAND_LEVELS = {"K-2": 2, "3-5": 4, "6-8": 7, "9-12": 10}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_RANGE = re.compile(r"^(\d+)-(\d+)$")


def _leading_int(value: str | None) -> int | None:
    if not value:
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def derive_grade_band(grade_level: int | None, grade_band: str | None) -> str:
    """Explicit band wins; otherwise bucket the grade level (default 6-8)."""
    if grade_band and grade_band.strip():
        return grade_band
    if not grade_level:
        return DEFAULT_GRADE_BAND
    if grade_level <= 2:
        return "K-2"
    if grade_level <= 5:
        return "3-5"
    if grade_level <= 8:
        return "6-8"
    return "9-12"


def grade_band_to_level(grade_band: str | None) -> int | None:
    """Representative grade for a band ('3-5' -> 4), or the band parsed as a grade."""
    if not grade_band:
        return None
    normalized = grade_band.strip().upper()
    if normalized in BAND_LEVELS:
        return BAND_LEVELS[normalized]
    return _leading_int(normalized)


def expand_grade_band(grade_band: str) -> list[str]:
    """
    Expand a band into grade tags.

    'K-2' -> ['K', '1', '2'], '3-5' -> ['3', '4', '5'], '4' -> ['4'];
    anything else is returned as a single tag.
    """
    normalized = grade_band.strip()
    if normalized.lower() in ("k-2", "k"):
        return ["K", "1", "2"]

    match = _RANGE.match(normalized)
    if match:
        start, end = int(match.group(1)), int(match.group(2))
        return [str(grade) for grade in range(start, end + 1)]

    grade = _leading_int(normalized)
    if grade is not None and 1 <= grade <= 12:
        return [str(grade)]
    return [normalized]


@dataclass
class PathBuildResult:
    path: PathSummary
    entries: list[PathEntry] = field(default_factory=list)
    tier: str = "sequence"

    @property
    def path_id(self) -> int:
        return self.path.id


class PathBuilder:
    """Create a fresh active path seeded from the curriculum."""

    def __init__(self, store: ActivityStore, default_limit: int | None = None):
        self._store = store
        self._default_limit = default_limit or get_settings().default_path_length

    def build_student_path(
        self,
        student_id: str,
        grade_band: str | None = None,
        grade_level: int | None = None,
        goal_focus: str | None = None,
        source: str = "placement",
        limit: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PathBuildResult:
        """
        Pause existing active paths and create a new seeded one.

        Args:
            student_id: Student to build for
            grade_band: Explicit band (derived from grade_level when missing)
            grade_level: Student's grade, used to order fallback modules
            goal_focus: Stored on the path for later selection
            source: Provenance recorded on the path and its entries
            limit: Maximum number of seeded entries
            metadata: Extra provenance merged into the path metadata

        Returns:
            PathBuildResult with the new path, its entries and the curriculum tier used

        Raises:
            MissingIdentifierError: If student_id is empty
            StoreError: If the path itself cannot be created
        """
        if not student_id:
            raise MissingIdentifierError("student_id is required")

        limit = limit or self._default_limit
        band = derive_grade_band(grade_level, grade_band)

        paused = self._store.pause_active_paths(student_id)
        if paused:
            logger.info("Paused {} active path(s) for {}", paused, student_id)

        path_metadata = PathMetadata.model_validate(
            {
                **(metadata or {}),
                "source": source,
                "grade_band": band,
                "goal_focus": goal_focus,
            }
        )
        path = self._store.create_path(student_id, path_metadata)

        modules, tier = self._curriculum(band, grade_level, limit)
        seeds = [
            PathEntry(
                path_id=path.id,
                position=index + 1,
                type=EntryType.LESSON,
                module_id=module.id,
                status=EntryStatus.NOT_STARTED,
                target_standard_codes=module.standard_codes if tier == "sequence" else [],
                metadata=EntryMetadata(
                    module_slug=module.slug,
                    module_title=module.title,
                    source=source,
                ),
            )
            for index, module in enumerate(modules)
        ]
        entries = self._store.insert_path_entries(seeds) if seeds else []

        logger.info(
            "Built path {} for {} ({} band, {} entries from {})",
            path.id,
            student_id,
            band,
            len(entries),
            tier,
        )
        return PathBuildResult(path=path, entries=entries, tier=tier)

    def _curriculum(
        self, grade_band: str, grade_level: int | None, limit: int
    ) -> tuple[list[ModuleRecord], str]:
        sequence = self._store.fetch_learning_sequence(grade_band, limit)
        if sequence:
            return sequence[:limit], "sequence"

        grades = expand_grade_band(grade_band)
        preferred = None
        if grade_level is not None and 1 <= grade_level <= 12:
            preferred = str(grade_level)
            grades = [preferred] + [grade for grade in grades if grade != preferred]

        tagged = self._store.fetch_modules_for_grades(grades, preferred, limit * 2)
        if tagged:
            return self._closest_first(tagged, grade_band, grade_level)[:limit], "grade_modules"

        logger.warning(f"No modules found for grade band {grade_band}, expanding search")
        try:
            return self._store.fetch_modules(limit), "any_modules"
        except StoreError as exc:
            logger.warning(f"Fallback module listing failed: {exc}")
            return [], "any_modules"

    @staticmethod
    def _closest_first(
        modules: Sequence[ModuleRecord], grade_band: str, grade_level: int | None
    ) -> list[ModuleRecord]:
        if grade_level is not None:
            target = grade_level
        else:
            target = grade_band_to_level(grade_band) or DEFAULT_TARGET_GRADE
        return sorted(modules, key=lambda module: abs((_leading_int(module.grade_band) or 0) - target))
