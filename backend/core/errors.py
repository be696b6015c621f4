from __future__ import annotations

from typing import Any


class TimetableError(Exception):
    """Base class for errors surfaced to API callers as ``{code, message}``."""

    code = "unknown_error"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidInputError(TimetableError):
    """Malformed grid or scope parameters, or an inconsistent slot payload."""

    code = "invalid_input"
    status_code = 400


class InvalidTemplateError(TimetableError):
    """A fixed-day template block is inconsistent (end not after start)."""

    code = "invalid_template"
    status_code = 400


class MissingSubjectsError(TimetableError):
    code = "missing_subjects"
    status_code = 400

    def __init__(self, missing_codes: list[str]):
        super().__init__(
            f"Missing core subjects: {', '.join(missing_codes)}",
            details={"missing_codes": list(missing_codes)},
        )
        self.missing_codes = list(missing_codes)


class NoClassesError(TimetableError):
    code = "no_classes"
    status_code = 400


class TeacherConflictError(TimetableError):
    code = "teacher_conflict"
    status_code = 409


class ClassConflictError(TimetableError):
    code = "class_conflict"
    status_code = 409


class ForbiddenError(TimetableError):
    code = "forbidden"
    status_code = 403


class NotAuthenticatedError(TimetableError):
    code = "not_authenticated"
    status_code = 401


class NotFoundError(TimetableError):
    code = "not_found"
    status_code = 404
