"""
Difficulty Controller.

State machine over (current_difficulty, difficulty_streak), stepped once
per adaptive event:

1. Per-attempt rule on the latest attempt:
   - correct at the current (or unknown) difficulty: streak + 1; at 2 the
     difficulty rises by one and the streak resets
   - incorrect: streak resets; difficulty drops by one when rolling accuracy
     is below the band
   - correct at another difficulty: streak = 1
2. Band correction when rolling accuracy leaves the band by more than 0.05.
   Only applied when step 1 left the difficulty where it was, so a single
   step never moves more than one level, and only once the rolling window
   holds at least MIN_BAND_SAMPLES scored attempts.
"""

from __future__ import annotations

from loguru import logger

from learnpath.adaptive.models import MAX_DIFFICULTY, MIN_DIFFICULTY, AdaptiveState, Attempt, utc_now
from learnpath.adaptive.runtime_config import AdaptiveConfig

STREAK_TO_RAISE = 2
BAND_MARGIN = 0.05
MIN_BAND_SAMPLES = 5


def attempt_succeeded(attempt: Attempt, config: AdaptiveConfig) -> bool:
    if attempt.correct:
        return True
    return attempt.accuracy is not None and attempt.accuracy >= config.target_accuracy_min


class DifficultyController:
    """Step the adaptive difficulty state for one event."""

    def update(
        self,
        state: AdaptiveState,
        latest: Attempt | None,
        rolling_accuracy: float | None,
        config: AdaptiveConfig,
        scored_attempts: int | None = None,
    ) -> AdaptiveState:
        """
        Return the next AdaptiveState.

        Args:
            state: Current state (not mutated)
            latest: Most recent attempt, if any
            rolling_accuracy: Rolling accuracy including ``latest``
            config: Thresholds for this call
            scored_attempts: Attempts behind ``rolling_accuracy``; below
                MIN_BAND_SAMPLES the band correction is skipped

        Returns:
            New state carrying the band used for this step
        """
        difficulty = state.current_difficulty
        streak = state.difficulty_streak

        if latest is None and rolling_accuracy is None:
            return state

        if latest is not None:
            attempt_difficulty = latest.bounded_difficulty
            if attempt_succeeded(latest, config):
                if attempt_difficulty is None or attempt_difficulty == difficulty:
                    streak += 1
                    if streak >= STREAK_TO_RAISE:
                        difficulty = min(MAX_DIFFICULTY, difficulty + 1)
                        streak = 0
                else:
                    streak = 1
            else:
                streak = 0
                if rolling_accuracy is not None and rolling_accuracy < config.target_accuracy_min:
                    difficulty = max(MIN_DIFFICULTY, difficulty - 1)

        band_ready = scored_attempts is None or scored_attempts >= MIN_BAND_SAMPLES
        if rolling_accuracy is not None and band_ready and difficulty == state.current_difficulty:
            if rolling_accuracy > config.target_accuracy_max + BAND_MARGIN and difficulty < MAX_DIFFICULTY:
                difficulty += 1
                streak = 0
            elif rolling_accuracy < config.target_accuracy_min - BAND_MARGIN and difficulty > MIN_DIFFICULTY:
                difficulty -= 1
                streak = 0

        if difficulty != state.current_difficulty:
            logger.info(
                "Difficulty {} -> {} (rolling accuracy {})",
                state.current_difficulty,
                difficulty,
                "n/a" if rolling_accuracy is None else f"{rolling_accuracy:.2f}",
            )

        return state.model_copy(
            update={
                "current_difficulty": difficulty,
                "difficulty_streak": streak,
                "target_accuracy_min": config.target_accuracy_min,
                "target_accuracy_max": config.target_accuracy_max,
                "updated_at": utc_now(),
            }
        )
