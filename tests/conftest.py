"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Integration tests run SqlActivityStore against in-memory SQLite.
"""

from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from learnpath.adaptive.models import (
    LessonCompleted,
    ModuleRecord,
    PracticeAnswered,
    QuizSubmitted,
)
from learnpath.adaptive.runtime_config import AdaptiveConfig
from learnpath.config import Settings
from learnpath.db.database import build_engine, init_db
from learnpath.db.models import LearningSequence, Module
from learnpath.db.store import SqlActivityStore

BASE_TIME = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite-backed store)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        path = str(item.fspath)
        if "unit" in path:
            item.add_marker(pytest.mark.unit)
        elif "integration" in path:
            item.add_marker(pytest.mark.integration)
        elif "smoke" in path:
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Config
# =============================================================================


@pytest.fixture
def settings():
    """Settings with defaults only (no .env, no environment overrides)."""
    return Settings(_env_file=None, database_url="sqlite://")


@pytest.fixture
def config():
    return AdaptiveConfig()


# =============================================================================
# Attempts
# =============================================================================


@pytest.fixture
def make_attempt():
    """
    Build attempts most-recent-first.

    ``index`` 0 is the newest; each step back is one minute older.
    """

    def _make(
        correct: bool = True,
        standards: tuple[str, ...] = ("6.EE.A.2",),
        difficulty: float | None = None,
        accuracy: float | None = None,
        source: str = "practice",
        index: int = 0,
    ):
        created_at = BASE_TIME - timedelta(minutes=index)
        if source == "quiz":
            return QuizSubmitted(
                standards=standards,
                correct=correct,
                difficulty=difficulty,
                accuracy=accuracy,
                created_at=created_at,
            )
        if source == "lesson":
            return LessonCompleted(
                standards=standards,
                correct=True,
                difficulty=difficulty,
                accuracy=1.0 if accuracy is None else accuracy,
                created_at=created_at,
            )
        return PracticeAnswered(
            standards=standards,
            correct=correct,
            difficulty=difficulty,
            accuracy=(1.0 if correct else 0.0) if accuracy is None else accuracy,
            created_at=created_at,
        )

    return _make


# =============================================================================
# Store
# =============================================================================


@pytest.fixture
def session_factory():
    engine = build_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlActivityStore(session_factory)


@pytest.fixture
def seed_modules(session_factory):
    """Insert modules (and optionally a canonical sequence); returns ModuleRecords."""

    def _seed(
        modules: list[tuple[str, str | None]],
        sequence_band: str | None = None,
        standards: dict[str, list[str]] | None = None,
    ) -> list[ModuleRecord]:
        standards = standards or {}
        with session_factory() as session:
            rows = [
                Module(
                    slug=slug,
                    title=slug.replace("-", " ").title(),
                    grade_band=grade,
                    subject="math",
                    standard_codes=standards.get(slug, []),
                )
                for slug, grade in modules
            ]
            session.add_all(rows)
            session.flush()
            if sequence_band:
                session.add_all(
                    LearningSequence(grade_band=sequence_band, position=index + 1, module_id=row.id)
                    for index, row in enumerate(rows)
                )
            session.commit()
            return [
                ModuleRecord(
                    id=row.id,
                    slug=row.slug,
                    title=row.title,
                    subject=row.subject,
                    grade_band=row.grade_band,
                    standard_codes=list(row.standard_codes or []),
                )
                for row in rows
            ]

    return _seed
