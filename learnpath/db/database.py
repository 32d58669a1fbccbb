from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from learnpath.config import get_settings
from learnpath.db.models.base import Base

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def build_engine(url: str, echo: bool = False, **kwargs) -> Engine:
    """Create an engine; pool_pre_ping only where the driver pools connections."""
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, echo=echo, **kwargs)


def get_engine() -> Engine:
    """Get the database engine, created lazily from settings."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, echo=settings.database_echo)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)
    return _session_factory


def init_db(engine: Engine | None = None) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Database tables initialized")


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()
