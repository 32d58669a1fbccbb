"""
Path Entry Manager.

Owns the ordered entries of a student's active path:
- choose_adaptive_next: priority pick among pending entries
- append_adaptive_entry: capped, de-duplicated insertion of review/practice
- update_path_entry_progress: forward-only status, timing and attempt counters
- resolve_entry_from_payload: infer the target entry from event ids

Skipped insertions (caps, duplicates) are normal outcomes and return None.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from learnpath.adaptive.models import (
    Attempt,
    EntryMetadata,
    EntryReason,
    EntryStatus,
    EntryType,
    PathEntry,
    utc_now,
)
from learnpath.adaptive.runtime_config import AdaptiveConfig
from learnpath.errors import StoreError

if TYPE_CHECKING:
    from learnpath.db.store import ActivityStore

PAYLOAD_ID_KEYS = ("lesson_id", "assessment_id", "module_id")


def pending_entries(entries: Sequence[PathEntry]) -> list[PathEntry]:
    return [entry for entry in entries if entry.is_pending]


def choose_adaptive_next(entries: Sequence[PathEntry]) -> PathEntry | None:
    """Highest-priority pending entry, lowest position first among equals."""
    pending = pending_entries(entries)
    if not pending:
        return None
    return min(pending, key=lambda entry: (-entry.priority, entry.position))


def needs_remediation_entry(entries: Sequence[PathEntry], standard_code: str) -> bool:
    """True unless a pending review/remediation entry already targets the standard."""
    for entry in pending_entries(entries):
        is_remediation = entry.type == EntryType.REVIEW or entry.metadata.reason_kind == EntryReason.REMEDIATION
        if is_remediation and standard_code in entry.target_standard_codes:
            return False
    return True


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def resolve_entry_from_payload(entries: Sequence[PathEntry], payload: Mapping[str, Any]) -> int | None:
    """Id of the first pending entry whose lesson/assessment/module id matches the payload."""
    for key in PAYLOAD_ID_KEYS:
        wanted = _as_int(payload.get(key))
        if wanted is None:
            continue
        for entry in pending_entries(entries):
            if getattr(entry, key) == wanted:
                return entry.id
    return None


class PathEntryManager:
    """Store-backed entry mutations for one path at a time."""

    def __init__(self, store: ActivityStore):
        self._store = store

    def append_adaptive_entry(
        self,
        path_id: int,
        entries: Sequence[PathEntry],
        entry_type: EntryType,
        target_standards: Sequence[str],
        metadata: EntryMetadata,
        config: AdaptiveConfig,
    ) -> PathEntry | None:
        """
        Append a review/practice entry unless capped or duplicated.

        Args:
            path_id: Owning path
            entries: Current entries of the path (not mutated)
            entry_type: Type of the new entry
            target_standards: Standards the entry targets
            metadata: Entry metadata (reason, display title, source)
            config: Caps for this call

        Returns:
            The stored entry, or None when the insert was skipped or failed
        """
        pending = pending_entries(entries)

        if entry_type == EntryType.REVIEW:
            in_flight = sum(1 for entry in pending if entry.type == EntryType.REVIEW)
            if in_flight >= config.max_remediation_pending:
                logger.debug("Review cap reached on path {} ({} pending)", path_id, in_flight)
                return None
        elif entry_type == EntryType.PRACTICE:
            in_flight = sum(1 for entry in pending if entry.type == EntryType.PRACTICE)
            if in_flight >= config.max_practice_pending:
                logger.debug("Practice cap reached on path {} ({} pending)", path_id, in_flight)
                return None

        targets = set(target_standards)
        for entry in pending:
            if entry.type == entry_type and targets.intersection(entry.target_standard_codes):
                logger.debug(
                    "Pending {} entry {} already targets {}", entry_type.value, entry.id, sorted(targets)
                )
                return None

        position = max((entry.position for entry in entries), default=0) + 1
        candidate = PathEntry(
            path_id=path_id,
            position=position,
            type=entry_type,
            status=EntryStatus.NOT_STARTED,
            target_standard_codes=list(target_standards),
            metadata=metadata,
        )
        try:
            inserted = self._store.insert_path_entries([candidate])
        except StoreError as exc:
            logger.warning(f"Could not append {entry_type.value} entry to path {path_id}: {exc}")
            return None

        logger.info(
            "Appended {} entry at position {} on path {} ({})",
            entry_type.value,
            position,
            path_id,
            metadata.reason,
        )
        return inserted[0] if inserted else None

    def update_path_entry_progress(
        self,
        entry_id: int,
        path_id: int | None = None,
        status: EntryStatus | None = None,
        score: float | None = None,
        time_spent_seconds: float | None = None,
        attempt: Attempt | None = None,
        now: datetime | None = None,
    ) -> PathEntry | None:
        """
        Apply one event to an entry in a single read-modify-write.

        Status only moves forward. Moving from not_started to in_progress
        stamps the start times; the first move into completed stamps
        ``completed_at`` and adds the explicit time, or the wall-clock time
        since ``last_started_at``. Later events add only explicit time.
        When ``path_id`` is given, entries owned by another path are left alone.

        Returns:
            The stored entry, or None when the entry is missing, belongs to
            another path, or the store failed
        """
        now = now or utc_now()
        try:
            entry = self._store.get_path_entry(entry_id)
        except StoreError as exc:
            logger.warning(f"Could not load path entry {entry_id}: {exc}")
            return None
        if entry is None:
            logger.debug("Path entry {} not found; skipping progress update", entry_id)
            return None
        if path_id is not None and entry.path_id != path_id:
            logger.debug("Path entry {} belongs to path {}, not {}; skipping", entry_id, entry.path_id, path_id)
            return None

        metadata = entry.metadata.model_copy(deep=True)
        previous = entry.status
        next_status = previous
        if status is not None:
            if status.rank > previous.rank:
                next_status = status
            elif status.rank < previous.rank:
                logger.debug("Ignoring status regression {} -> {} on entry {}", previous.value, status.value, entry_id)

        if previous == EntryStatus.NOT_STARTED and next_status == EntryStatus.IN_PROGRESS:
            if metadata.first_started_at is None:
                metadata.first_started_at = now
            metadata.last_started_at = now

        explicit = round(time_spent_seconds) if time_spent_seconds is not None else None
        if next_status == EntryStatus.COMPLETED and previous != EntryStatus.COMPLETED:
            metadata.completed_at = now
            if explicit is not None:
                metadata.time_spent_s += explicit
            elif metadata.last_started_at is not None:
                elapsed = (now - metadata.last_started_at).total_seconds()
                metadata.time_spent_s += max(1, round(elapsed))
        elif explicit is not None:
            metadata.time_spent_s += explicit

        if attempt is not None:
            metadata.attempts += 1
            metadata.last_event_at = attempt.created_at
            metadata.last_difficulty = attempt.difficulty
            metadata.last_accuracy = attempt.accuracy
            metadata.last_correct = attempt.correct
            metadata.last_standards = list(attempt.standards)

        updated = entry.model_copy(
            update={
                "status": next_status,
                "score": score if score is not None else entry.score,
                "time_spent_s": metadata.time_spent_s,
                "metadata": metadata,
            }
        )
        try:
            return self._store.upsert_path_entry(updated)
        except StoreError as exc:
            logger.warning(f"Could not save progress for path entry {entry_id}: {exc}")
            return None
