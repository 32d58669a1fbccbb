"""
Adaptive Learning-Path Engine.

Components:
- ActivityLogReader: Normalizes recent events into Attempts
- Aggregator functions: Rolling accuracy, misconceptions, stretch and struggle
- DifficultyController: Bounded difficulty/streak state machine
- PathEntryManager: Capped insertion and forward-only entry progress
- PlacementScorer / PlacementService: Placement scoring and path seeding
- PathBuilder: Three-tier curriculum fallback for new paths
- AdaptiveOrchestrator: Per-event entry point
"""
from learnpath.adaptive.activity_log import ActivityLogReader, decode_event
from learnpath.adaptive.aggregator import (
    detect_misconceptions,
    detect_struggle,
    pick_stretch_standard,
    rolling_accuracy,
    standard_accuracy,
)
from learnpath.adaptive.difficulty import DifficultyController
from learnpath.adaptive.insights import StudentInsights, compute_student_insights
from learnpath.adaptive.models import (
    AdaptiveEvent,
    AdaptiveResult,
    AdaptiveSnapshot,
    AdaptiveState,
    Attempt,
    EntryMetadata,
    EntryStatus,
    EntryType,
    LessonCompleted,
    PathEntry,
    PathMetadata,
    PathSummary,
    PathView,
    PracticeAnswered,
    QuizSubmitted,
)
from learnpath.adaptive.orchestrator import AdaptiveOrchestrator
from learnpath.adaptive.path_builder import PathBuilder, PathBuildResult
from learnpath.adaptive.path_entries import PathEntryManager, choose_adaptive_next
from learnpath.adaptive.placement import (
    PlacementScorer,
    PlacementService,
    select_placement_assessment_id,
    validate_placement_questions,
)
from learnpath.adaptive.runtime_config import AdaptiveConfig, RuntimeConfigProvider

__all__ = [
    # Main entry point
    "AdaptiveOrchestrator",
    # Components
    "ActivityLogReader",
    "DifficultyController",
    "PathEntryManager",
    "PathBuilder",
    "PlacementScorer",
    "PlacementService",
    "RuntimeConfigProvider",
    # Functions
    "choose_adaptive_next",
    "compute_student_insights",
    "decode_event",
    "detect_misconceptions",
    "detect_struggle",
    "pick_stretch_standard",
    "rolling_accuracy",
    "select_placement_assessment_id",
    "standard_accuracy",
    "validate_placement_questions",
    # Data models
    "AdaptiveConfig",
    "AdaptiveEvent",
    "AdaptiveResult",
    "AdaptiveSnapshot",
    "AdaptiveState",
    "Attempt",
    "EntryMetadata",
    "EntryStatus",
    "EntryType",
    "LessonCompleted",
    "PathBuildResult",
    "PathEntry",
    "PathMetadata",
    "PathSummary",
    "PathView",
    "PracticeAnswered",
    "QuizSubmitted",
    "StudentInsights",
]
