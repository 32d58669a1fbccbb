# SQLAlchemy models
from .base import Base, JSONType
from .learning import (
    LearningSequence,
    Module,
    PlatformConfig,
    StudentEvent,
    StudentPath,
    StudentPathEntry,
)

__all__ = [
    "Base",
    "JSONType",
    "LearningSequence",
    "Module",
    "PlatformConfig",
    "StudentEvent",
    "StudentPath",
    "StudentPathEntry",
]
