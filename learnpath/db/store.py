"""
Activity Store.

The engine talks to persistence only through the ActivityStore protocol:
- event log reads/writes (most recent first, limit respected)
- path and entry CRUD
- curriculum lookups for path seeding
- runtime config rows

SqlActivityStore implements it on SQLAlchemy. Every SQLAlchemyError is
re-raised as StoreError so callers can decide which failures are fatal.
Metadata writes replace the whole JSON blob (last write wins).
"""

from __future__ import annotations

from collections.abc import Generator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Protocol

from loguru import logger
from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from learnpath.adaptive.models import (
    EntryStatus,
    EventRecord,
    ModuleRecord,
    PathEntry,
    PathMetadata,
    PathStatus,
    PathSummary,
)
from learnpath.db.database import session_scope
from learnpath.db.models import (
    LearningSequence,
    Module,
    PlatformConfig,
    StudentEvent,
    StudentPath,
    StudentPathEntry,
)
from learnpath.errors import StoreError


class ActivityStore(Protocol):
    """Persistence collaborator for the adaptive engine."""

    def query_events(
        self, student_id: str, event_types: Sequence[str] | None, limit: int
    ) -> list[EventRecord]: ...

    def insert_events(self, events: Sequence[EventRecord]) -> None: ...

    def get_active_path(self, student_id: str) -> PathSummary | None: ...

    def pause_active_paths(self, student_id: str) -> int: ...

    def create_path(self, student_id: str, metadata: PathMetadata) -> PathSummary: ...

    def update_path_metadata(self, path_id: int, metadata: PathMetadata) -> None: ...

    def list_path_entries(self, path_id: int) -> list[PathEntry]: ...

    def get_path_entry(self, entry_id: int) -> PathEntry | None: ...

    def insert_path_entries(self, entries: Sequence[PathEntry]) -> list[PathEntry]: ...

    def upsert_path_entry(self, entry: PathEntry) -> PathEntry: ...

    def fetch_learning_sequence(self, grade_band: str, limit: int) -> list[ModuleRecord]: ...

    def fetch_modules_for_grades(
        self, grades: Sequence[str], preferred_grade: str | None, limit: int
    ) -> list[ModuleRecord]: ...

    def fetch_modules(self, limit: int) -> list[ModuleRecord]: ...

    def fetch_config_rows(self, prefix: str) -> dict[str, Any]: ...

    def suggest_next_lessons(self, student_id: str, limit: int) -> list[ModuleRecord]: ...


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored timestamps are UTC."""
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _path_summary(row: StudentPath) -> PathSummary:
    return PathSummary(
        id=row.id,
        student_id=row.student_id,
        status=PathStatus(row.status),
        started_at=_aware(row.started_at),
        updated_at=_aware(row.updated_at),
        metadata=row.path_metadata or {},
    )


def _path_entry(row: StudentPathEntry) -> PathEntry:
    return PathEntry(
        id=row.id,
        path_id=row.path_id,
        position=row.position,
        type=row.type,
        module_id=row.module_id,
        lesson_id=row.lesson_id,
        assessment_id=row.assessment_id,
        status=row.status,
        score=row.score,
        time_spent_s=row.time_spent_s,
        target_standard_codes=row.target_standard_codes or [],
        metadata=row.entry_metadata or {},
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _module_record(row: Module) -> ModuleRecord:
    return ModuleRecord(
        id=row.id,
        slug=row.slug,
        title=row.title,
        subject=row.subject,
        grade_band=row.grade_band,
        standard_codes=list(row.standard_codes or []),
    )


def _apply_entry(row: StudentPathEntry, entry: PathEntry) -> None:
    row.path_id = entry.path_id
    row.position = entry.position
    row.type = entry.type.value
    row.module_id = entry.module_id
    row.lesson_id = entry.lesson_id
    row.assessment_id = entry.assessment_id
    row.status = entry.status.value
    row.score = entry.score
    row.time_spent_s = entry.time_spent_s
    row.target_standard_codes = list(entry.target_standard_codes)
    row.entry_metadata = entry.metadata.to_json_dict()


class SqlActivityStore:
    """ActivityStore backed by SQLAlchemy sessions."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._factory = session_factory

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        try:
            with session_scope(self._factory) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.debug(f"Store operation failed: {exc}")
            raise StoreError(str(exc)) from exc

    # ========================================
    # Event log
    # ========================================

    def query_events(
        self, student_id: str, event_types: Sequence[str] | None, limit: int
    ) -> list[EventRecord]:
        stmt = select(StudentEvent).where(StudentEvent.student_id == student_id)
        if event_types:
            stmt = stmt.where(StudentEvent.event_type.in_(list(event_types)))
        stmt = stmt.order_by(StudentEvent.created_at.desc(), StudentEvent.id.desc()).limit(limit)

        with self._session() as session:
            return [
                EventRecord(
                    id=row.id,
                    student_id=row.student_id,
                    event_type=row.event_type,
                    payload=row.payload or {},
                    points_awarded=row.points_awarded or 0,
                    created_at=_aware(row.created_at),
                )
                for row in session.scalars(stmt)
            ]

    def insert_events(self, events: Sequence[EventRecord]) -> None:
        if not events:
            return
        with self._session() as session:
            session.add_all(
                StudentEvent(
                    student_id=event.student_id,
                    event_type=event.event_type,
                    payload=event.payload,
                    points_awarded=event.points_awarded,
                    created_at=event.created_at,
                )
                for event in events
            )

    # ========================================
    # Paths
    # ========================================

    def get_active_path(self, student_id: str) -> PathSummary | None:
        stmt = (
            select(StudentPath)
            .where(StudentPath.student_id == student_id, StudentPath.status == PathStatus.ACTIVE.value)
            .order_by(StudentPath.started_at.desc(), StudentPath.id.desc())
            .limit(1)
        )
        with self._session() as session:
            row = session.scalars(stmt).first()
            return _path_summary(row) if row else None

    def pause_active_paths(self, student_id: str) -> int:
        stmt = (
            update(StudentPath)
            .where(StudentPath.student_id == student_id, StudentPath.status == PathStatus.ACTIVE.value)
            .values(status=PathStatus.PAUSED.value, updated_at=datetime.now(UTC))
        )
        with self._session() as session:
            return session.execute(stmt).rowcount or 0

    def create_path(self, student_id: str, metadata: PathMetadata) -> PathSummary:
        now = datetime.now(UTC)
        with self._session() as session:
            row = StudentPath(
                student_id=student_id,
                status=PathStatus.ACTIVE.value,
                path_metadata=metadata.to_json_dict(),
                started_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            return _path_summary(row)

    def update_path_metadata(self, path_id: int, metadata: PathMetadata) -> None:
        stmt = (
            update(StudentPath)
            .where(StudentPath.id == path_id)
            .values(path_metadata=metadata.to_json_dict(), updated_at=datetime.now(UTC))
        )
        with self._session() as session:
            session.execute(stmt)

    # ========================================
    # Entries
    # ========================================

    def list_path_entries(self, path_id: int) -> list[PathEntry]:
        stmt = (
            select(StudentPathEntry)
            .where(StudentPathEntry.path_id == path_id)
            .order_by(StudentPathEntry.position, StudentPathEntry.id)
        )
        with self._session() as session:
            return [_path_entry(row) for row in session.scalars(stmt)]

    def get_path_entry(self, entry_id: int) -> PathEntry | None:
        with self._session() as session:
            row = session.get(StudentPathEntry, entry_id)
            return _path_entry(row) if row else None

    def insert_path_entries(self, entries: Sequence[PathEntry]) -> list[PathEntry]:
        if not entries:
            return []
        now = datetime.now(UTC)
        with self._session() as session:
            rows = []
            for entry in entries:
                row = StudentPathEntry(created_at=now, updated_at=now)
                _apply_entry(row, entry)
                rows.append(row)
            session.add_all(rows)
            session.flush()
            return [_path_entry(row) for row in rows]

    def upsert_path_entry(self, entry: PathEntry) -> PathEntry:
        now = datetime.now(UTC)
        with self._session() as session:
            row = session.get(StudentPathEntry, entry.id) if entry.id is not None else None
            if row is None:
                row = StudentPathEntry(created_at=now)
                session.add(row)
            _apply_entry(row, entry)
            row.updated_at = now
            session.flush()
            return _path_entry(row)

    # ========================================
    # Curriculum
    # ========================================

    def fetch_learning_sequence(self, grade_band: str, limit: int) -> list[ModuleRecord]:
        stmt = (
            select(Module)
            .join(LearningSequence, LearningSequence.module_id == Module.id)
            .where(LearningSequence.grade_band == grade_band)
            .order_by(LearningSequence.position, LearningSequence.id)
            .limit(limit)
        )
        with self._session() as session:
            return [_module_record(row) for row in session.scalars(stmt)]

    def fetch_modules_for_grades(
        self, grades: Sequence[str], preferred_grade: str | None, limit: int
    ) -> list[ModuleRecord]:
        if not grades:
            return []
        stmt = select(Module).where(Module.grade_band.in_(list(grades)))
        if preferred_grade is not None:
            stmt = stmt.order_by(case((Module.grade_band == preferred_grade, 0), else_=1), Module.id)
        else:
            stmt = stmt.order_by(Module.id)
        with self._session() as session:
            return [_module_record(row) for row in session.scalars(stmt.limit(limit))]

    def fetch_modules(self, limit: int) -> list[ModuleRecord]:
        with self._session() as session:
            return [_module_record(row) for row in session.scalars(select(Module).order_by(Module.id).limit(limit))]

    def suggest_next_lessons(self, student_id: str, limit: int) -> list[ModuleRecord]:
        """Modules the student has not completed in any path, in catalog order."""
        completed = (
            select(StudentPathEntry.module_id)
            .join(StudentPath, StudentPath.id == StudentPathEntry.path_id)
            .where(
                StudentPath.student_id == student_id,
                StudentPathEntry.status == EntryStatus.COMPLETED.value,
                StudentPathEntry.module_id.is_not(None),
            )
        )
        stmt = select(Module).where(Module.id.not_in(completed)).order_by(Module.id).limit(limit)
        with self._session() as session:
            return [_module_record(row) for row in session.scalars(stmt)]

    # ========================================
    # Runtime config
    # ========================================

    def fetch_config_rows(self, prefix: str) -> dict[str, Any]:
        stmt = select(PlatformConfig).where(PlatformConfig.key.startswith(prefix))
        with self._session() as session:
            return {row.key: row.value for row in session.scalars(stmt)}

    def set_config_value(self, key: str, value: Any) -> None:
        with self._session() as session:
            row = session.get(PlatformConfig, key)
            if row is None:
                session.add(PlatformConfig(key=key, value=value))
            else:
                row.value = value
