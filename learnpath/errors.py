"""
Engine error taxonomy.

Only fatal-to-request conditions raise. Each error carries a machine-readable
``code`` and the HTTP ``status`` the (external) HTTP layer should answer with.
Degraded store reads and skipped inserts are logged, never raised.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base class for errors that should fail the current request."""

    status: int = 400
    code: str = "bad_request"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the HTTP layer."""
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class MissingIdentifierError(EngineError):
    """A required identifier (student, assessment, attempt) was not supplied."""

    status = 400
    code = "student_id_required"


class PlacementContentError(EngineError):
    """Placement content is missing or has no usable questions."""

    status = 409
    code = "placement_content_invalid"


class StoreError(Exception):
    """Raised by ActivityStore implementations when a read or write fails."""
