"""
Mastery/Accuracy Aggregator.

Pure functions over a most-recent-first list of Attempts:
- rolling_accuracy: mean of known accuracies
- standard_accuracy: per-standard attempt counts and accuracy
- detect_misconceptions: standards with >= 2 misses in their last 3 attempts
- pick_stretch_standard: least-covered standard for stretch practice
- detect_struggle: consecutive-miss / low-accuracy flag for insights

Nothing here touches the store, so results depend only on the inputs.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from learnpath.adaptive.models import MAX_STANDARDS_TRACKED, Attempt
from learnpath.adaptive.runtime_config import AdaptiveConfig

MISCONCEPTION_WINDOW = 3
MISCONCEPTION_MIN_MISSES = 2
STRUGGLE_ACCURACY_FLOOR = 0.60


@dataclass
class StandardAccuracy:
    """Running totals for one standard."""

    standard_code: str
    attempts: int = 0
    accuracy_sum: float = 0.0
    first_seen: int = 0

    @property
    def accuracy(self) -> float:
        return self.accuracy_sum / self.attempts if self.attempts else 0.0


@dataclass
class StruggleReport:
    struggling: bool
    consecutive_misses: int
    rolling_accuracy: float | None
    weakest_standard: str | None = None
    weakest_accuracy: float | None = None
    reasons: list[str] = field(default_factory=list)


def rolling_accuracy(attempts: Sequence[Attempt]) -> float | None:
    """Mean of all non-null accuracies, or None when no attempt has one."""
    values = [attempt.accuracy for attempt in attempts if attempt.accuracy is not None]
    if not values:
        return None
    return sum(values) / len(values)


def _attempt_score(attempt: Attempt) -> float:
    if attempt.accuracy is not None:
        return attempt.accuracy
    return 1.0 if attempt.correct else 0.0


def standard_accuracy(attempts: Sequence[Attempt]) -> dict[str, StandardAccuracy]:
    """Per-standard totals in first-seen order (walking most recent first)."""
    totals: dict[str, StandardAccuracy] = {}
    for attempt in attempts:
        for code in attempt.standard_codes:
            stats = totals.get(code)
            if stats is None:
                stats = StandardAccuracy(standard_code=code, first_seen=len(totals))
                totals[code] = stats
            stats.attempts += 1
            stats.accuracy_sum += _attempt_score(attempt)
    return totals


def detect_misconceptions(attempts: Sequence[Attempt], config: AdaptiveConfig) -> list[str]:
    """
    Flag standards with repeated recent misses.

    For each standard, its three most recent attempts are inspected; the
    standard is flagged when at least two were incorrect with an accuracy
    (unknown counts as 0) below ``config.target_accuracy_max``.

    Args:
        attempts: Attempts, most recent first
        config: Thresholds for this call

    Returns:
        Up to four standard codes, most recently evidenced first
    """
    recent_by_standard: dict[str, list[Attempt]] = {}
    for attempt in attempts:
        for code in attempt.standard_codes:
            bucket = recent_by_standard.setdefault(code, [])
            if len(bucket) < MISCONCEPTION_WINDOW:
                bucket.append(attempt)

    flagged: list[str] = []
    for code, recent in recent_by_standard.items():
        if len(recent) < MISCONCEPTION_MIN_MISSES:
            continue
        misses = sum(
            1
            for attempt in recent
            if not attempt.correct and (attempt.accuracy or 0.0) < config.target_accuracy_max
        )
        if misses >= MISCONCEPTION_MIN_MISSES:
            flagged.append(code)
        if len(flagged) >= MAX_STANDARDS_TRACKED:
            break
    return flagged


def pick_stretch_standard(attempts: Sequence[Attempt]) -> str | None:
    """Least-covered standard; ties go to the lowest accuracy, then first seen."""
    totals = standard_accuracy(attempts)
    if not totals:
        return None
    best = min(
        totals.values(),
        key=lambda stats: (stats.attempts, stats.accuracy, stats.first_seen),
    )
    return best.standard_code


def count_consecutive_misses(attempts: Sequence[Attempt]) -> int:
    misses = 0
    for attempt in attempts:
        if attempt.correct:
            break
        misses += 1
    return misses


def detect_struggle(attempts: Sequence[Attempt], config: AdaptiveConfig) -> StruggleReport:
    """Flag a struggling student from recent attempts."""
    misses = count_consecutive_misses(attempts)
    rolling = rolling_accuracy(attempts)
    totals = standard_accuracy(attempts)

    weakest = min(totals.values(), key=lambda stats: (stats.accuracy, stats.first_seen), default=None)

    reasons: list[str] = []
    if misses >= config.struggle_consecutive_misses:
        reasons.append("consecutive_misses")
    if rolling is not None and rolling < STRUGGLE_ACCURACY_FLOOR:
        reasons.append("low_rolling_accuracy")
    if weakest is not None and weakest.accuracy < STRUGGLE_ACCURACY_FLOOR:
        reasons.append("weak_standard")

    return StruggleReport(
        struggling=bool(reasons),
        consecutive_misses=misses,
        rolling_accuracy=rolling,
        weakest_standard=weakest.standard_code if weakest else None,
        weakest_accuracy=weakest.accuracy if weakest else None,
        reasons=reasons,
    )
