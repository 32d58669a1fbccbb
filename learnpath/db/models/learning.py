"""
Learning Path Models.

SQLAlchemy models for the adaptive learning-path store:
- Student paths and their ordered entries
- Append-only student event log
- Operator-tunable platform config rows
- Curriculum: modules and canonical per-grade-band sequences
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType


class StudentPath(Base):
    """
    A student's learning path.

    At most one row per student has status 'active'; older ones are 'paused'.
    ``metadata`` carries provenance plus the serialized adaptive state.
    """

    __tablename__ = "student_paths"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")
    # "metadata" is reserved on declarative classes
    path_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    entries: Mapped[list[StudentPathEntry]] = relationship(
        back_populates="path", order_by="StudentPathEntry.position"
    )

    __table_args__ = (Index("idx_student_paths_status", "student_id", "status"),)

    def __repr__(self) -> str:
        return f"<StudentPath id={self.id} student={self.student_id} status={self.status}>"


class StudentPathEntry(Base):
    """One ordered unit of work within a path. Never deleted."""

    __tablename__ = "student_path_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path_id: Mapped[int] = mapped_column(
        ForeignKey("student_paths.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)  # lesson, review, practice, assessment

    module_id: Mapped[int | None] = mapped_column(Integer)
    lesson_id: Mapped[int | None] = mapped_column(Integer)
    assessment_id: Mapped[int | None] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="not_started")
    score: Mapped[float | None] = mapped_column(Float)
    time_spent_s: Mapped[int | None] = mapped_column(Integer)
    target_standard_codes: Mapped[list[str]] = mapped_column(JSONType, default=list)
    entry_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    path: Mapped[StudentPath] = relationship(back_populates="entries")

    __table_args__ = (UniqueConstraint("path_id", "position", name="uq_path_entry_position"),)

    def __repr__(self) -> str:
        return f"<StudentPathEntry id={self.id} path={self.path_id} pos={self.position} {self.type}/{self.status}>"


class StudentEvent(Base):
    """Append-only learning event."""

    __tablename__ = "student_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(Text, nullable=False)
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    points_awarded: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (
        Index("idx_student_events_recent", "student_id", "created_at"),
        Index("idx_student_events_type", "student_id", "event_type"),
    )


class PlatformConfig(Base):
    """Key/value runtime configuration (e.g. adaptive.target_accuracy_min)."""

    __tablename__ = "platform_config"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[Any] = mapped_column(JSONType)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )


class Module(Base):
    """Curriculum module. ``grade_band`` is a single grade tag such as 'K' or '4'."""

    __tablename__ = "modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str | None] = mapped_column(Text)
    grade_band: Mapped[str | None] = mapped_column(Text, index=True)
    standard_codes: Mapped[list[str]] = mapped_column(JSONType, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())


class LearningSequence(Base):
    """One slot in the canonical module sequence for a grade band."""

    __tablename__ = "learning_sequences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    grade_band: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str | None] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    module_id: Mapped[int] = mapped_column(ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)

    module: Mapped[Module] = relationship()

    __table_args__ = (Index("idx_learning_sequences_band", "grade_band", "position"),)
