"""
Adaptive Event Orchestrator.

Per-event entry point for the adaptive loop:

    event -> load config & active path -> resolve target entry
          -> update entry progress/counters -> recent attempts (+ this one)
          -> rolling accuracy & misconceptions -> difficulty step
          -> persist adaptive_state -> tag new misconceptions
          -> remediation reviews -> optional stretch practice
          -> reload path -> AdaptiveResult

Only a failure to load the active path fails the call. Everything after
that degrades to a logged warning; the next event re-derives misconceptions
and difficulty from the log, so a dropped write heals itself.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from learnpath.adaptive.activity_log import ActivityLogReader, decode_event
from learnpath.adaptive.aggregator import detect_misconceptions, pick_stretch_standard, rolling_accuracy
from learnpath.adaptive.difficulty import DifficultyController
from learnpath.adaptive.models import (
    MAX_DIFFICULTY,
    MAX_STANDARDS_TRACKED,
    AdaptiveEvent,
    AdaptiveResult,
    AdaptiveSnapshot,
    Attempt,
    EntryMetadata,
    EntryReason,
    EntryStatus,
    EntryType,
    EventRecord,
    EventType,
    PathEntry,
    PathView,
    utc_now,
)
from learnpath.adaptive.path_entries import (
    PathEntryManager,
    choose_adaptive_next,
    needs_remediation_entry,
    resolve_entry_from_payload,
)
from learnpath.adaptive.runtime_config import AdaptiveConfig, RuntimeConfigProvider
from learnpath.config import Settings, get_settings
from learnpath.errors import MissingIdentifierError, StoreError

if TYPE_CHECKING:
    from learnpath.db.store import ActivityStore

RECENT_ATTEMPTS_RETURNED = 8
ADAPTIVE_SOURCE = "adaptive_selector"
DETECTOR_SOURCE = "adaptive_detector"


def standard_label(code: str) -> str:
    """Display label for a standard code ('ccss:6.EE.A.2' -> '6.EE.A.2')."""
    if ":" in code:
        label = code.split(":", 1)[1]
        return label or code
    return code


class AdaptiveOrchestrator:
    """Thread one learning event through the adaptive engine."""

    def __init__(
        self,
        store: ActivityStore,
        settings: Settings | None = None,
        config_provider: RuntimeConfigProvider | None = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._config = config_provider or RuntimeConfigProvider(store, self._settings)
        self._reader = ActivityLogReader(store)
        self._entries = PathEntryManager(store)
        self._controller = DifficultyController()

    # ========================================
    # Read-only views
    # ========================================

    def get_student_path(self, student_id: str) -> PathView | None:
        """Active path with its entries, or None. Store failures propagate."""
        path = self._store.get_active_path(student_id)
        if path is None:
            return None
        return PathView(path=path, entries=self._store.list_path_entries(path.id))

    def get_adaptive_context(self, student_id: str) -> AdaptiveSnapshot:
        """Current difficulty, live misconceptions and the most recent attempts."""
        if not student_id:
            raise MissingIdentifierError("student_id is required")
        config = self._config.load()
        view = self.get_student_path(student_id)
        attempts = self._reader.fetch_recent_attempts(
            student_id, self._settings.context_attempt_window, config
        )
        state = view.path.metadata.adaptive if view else None
        return AdaptiveSnapshot(
            target_difficulty=state.current_difficulty if state else 1,
            misconceptions=detect_misconceptions(attempts, config),
            recent_attempts=[attempt.to_view() for attempt in attempts[:RECENT_ATTEMPTS_RETURNED]],
        )

    def select_next_entry(self, student_id: str) -> PathEntry | None:
        """Adaptive pick from the active path, else the store's next-lesson suggestion."""
        if not student_id:
            raise MissingIdentifierError("student_id is required")
        view = self.get_student_path(student_id)
        if view is None:
            return None

        pending = choose_adaptive_next(view.entries)
        if pending is not None:
            return pending

        suggestions = self._store.suggest_next_lessons(student_id, 1)
        if not suggestions:
            return None
        module = suggestions[0]
        return PathEntry(
            id=0,
            path_id=view.path.id,
            position=max((entry.position for entry in view.entries), default=0) + 1,
            type=EntryType.LESSON,
            module_id=module.id,
            status=EntryStatus.NOT_STARTED,
            target_standard_codes=module.standard_codes,
            metadata=EntryMetadata(
                reason=EntryReason.ADAPTIVE_SUGGESTION.value,
                module_slug=module.slug,
                module_title=module.title,
            ),
        )

    # ========================================
    # Event application
    # ========================================

    def apply_adaptive_event(
        self,
        student_id: str,
        event: AdaptiveEvent,
        record_event: bool = False,
    ) -> AdaptiveResult:
        """
        Apply one learning event and return the refreshed path view.

        Args:
            student_id: Student the event belongs to
            event: Incoming event
            record_event: Also append the event to the log first

        Returns:
            AdaptiveResult (path is None when the student has no active path)

        Raises:
            MissingIdentifierError: If student_id is empty
            StoreError: If the active path cannot be loaded
        """
        if not student_id:
            raise MissingIdentifierError("student_id is required")

        config = self._config.load()
        occurred_at = event.occurred_at or utc_now()
        record = EventRecord(
            student_id=student_id,
            event_type=event.event_type,
            payload=dict(event.payload),
            created_at=occurred_at,
        )
        if record_event:
            self._record(record)

        view = self.get_student_path(student_id)
        if view is None:
            logger.debug("No active path for {}; nothing to adapt", student_id)
            return AdaptiveResult()

        path = view.path
        snapshot = decode_event(record, config)

        entry_id = self._owned_entry_id(view, event.path_entry_id)
        entry_id = entry_id or resolve_entry_from_payload(view.entries, event.payload)
        if entry_id:
            self._entries.update_path_entry_progress(
                entry_id,
                path_id=path.id,
                status=event.status,
                score=event.score,
                time_spent_seconds=event.time_spent_seconds,
                attempt=snapshot,
                now=occurred_at,
            )

        attempts = self._recent_with_current(student_id, snapshot, config)
        rolling = rolling_accuracy(attempts)
        misconceptions = detect_misconceptions(attempts, config)

        # Only attempts step the controller; other events refresh misconceptions.
        previous_state = path.metadata.adaptive
        state = previous_state
        if snapshot is not None:
            scored = sum(1 for attempt in attempts if attempt.accuracy is not None)
            state = self._controller.update(previous_state, snapshot, rolling, config, scored_attempts=scored)
        state = state.model_copy(update={"misconceptions": misconceptions, "updated_at": utc_now()})

        metadata = path.metadata.model_copy(update={"adaptive_state": state})
        try:
            self._store.update_path_metadata(path.id, metadata)
        except StoreError as exc:
            logger.warning(f"Could not persist adaptive state on path {path.id}: {exc}")

        newly_tagged = [code for code in misconceptions if code not in previous_state.misconceptions]
        self._tag_misconceptions(student_id, newly_tagged[:MAX_STANDARDS_TRACKED], occurred_at)

        working = list(view.entries)
        for standard in misconceptions:
            if not needs_remediation_entry(working, standard):
                continue
            inserted = self._entries.append_adaptive_entry(
                path.id,
                working,
                EntryType.REVIEW,
                [standard],
                EntryMetadata(
                    reason=EntryReason.REMEDIATION.value,
                    module_title=f"Review {standard_label(standard)}",
                    standard_code=standard,
                    source=ADAPTIVE_SOURCE,
                ),
                config,
            )
            if inserted is not None:
                working.append(inserted)

        if rolling is not None and rolling > config.target_accuracy_max:
            stretch = pick_stretch_standard(attempts)
            inserted = self._entries.append_adaptive_entry(
                path.id,
                working,
                EntryType.PRACTICE,
                [stretch] if stretch else [],
                EntryMetadata(
                    reason=EntryReason.STRETCH.value,
                    module_title=standard_label(stretch) if stretch else "Stretch practice",
                    standard_code=stretch,
                    target_difficulty=min(state.current_difficulty + 1, MAX_DIFFICULTY),
                    source=ADAPTIVE_SOURCE,
                ),
                config,
            )
            if inserted is not None:
                working.append(inserted)

        refreshed = self._reload(student_id, view.model_copy(update={"entries": working}))
        return AdaptiveResult(
            path=refreshed,
            next=choose_adaptive_next(refreshed.entries),
            adaptive=AdaptiveSnapshot(
                target_difficulty=state.current_difficulty,
                misconceptions=misconceptions,
                recent_attempts=[attempt.to_view() for attempt in attempts[:RECENT_ATTEMPTS_RETURNED]],
            ),
        )

    @staticmethod
    def _owned_entry_id(view: PathView, entry_id: int | None) -> int | None:
        if not entry_id:
            return None
        if any(entry.id == entry_id for entry in view.entries):
            return entry_id
        logger.debug("Entry {} is not on active path {}; ignoring explicit id", entry_id, view.path.id)
        return None

    def _record(self, record: EventRecord) -> None:
        try:
            self._store.insert_events([record])
        except StoreError as exc:
            logger.warning(f"Could not record {record.event_type} event for {record.student_id}: {exc}")

    def _recent_with_current(
        self, student_id: str, snapshot: Attempt | None, config: AdaptiveConfig
    ) -> list[Attempt]:
        window = self._settings.adaptive_attempt_window
        attempts = self._reader.fetch_recent_attempts(student_id, window, config)
        if snapshot is None:
            return attempts
        already_logged = any(
            attempt.created_at == snapshot.created_at and attempt.source == snapshot.source
            for attempt in attempts
        )
        if already_logged:
            return attempts
        return [snapshot, *attempts][:window]

    def _tag_misconceptions(self, student_id: str, codes: list[str], occurred_at: datetime) -> None:
        if not codes:
            return
        events = [
            EventRecord(
                student_id=student_id,
                event_type=EventType.MISCONCEPTION_TAGGED.value,
                payload={"standard_code": code, "source": DETECTOR_SOURCE},
                created_at=occurred_at,
                points_awarded=0,
            )
            for code in codes
        ]
        try:
            self._store.insert_events(events)
            logger.info("Tagged misconception(s) {} for {}", codes, student_id)
        except StoreError as exc:
            logger.warning(f"Could not record misconception events for {student_id}: {exc}")

    def _reload(self, student_id: str, fallback: PathView) -> PathView:
        try:
            refreshed = self.get_student_path(student_id)
        except StoreError as exc:
            logger.warning(f"Could not reload path for {student_id}: {exc}")
            return fallback
        return refreshed or fallback
