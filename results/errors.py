# results/errors.py
"""
Error taxonomy for the results engine.

Row-level input problems are *values* (``RowError``) collected and handed
back to the caller; everything else is raised.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


# ============================================================================
# ROW-LEVEL VALIDATION ERRORS (returned, never raised)
# ============================================================================

class ValidationErrorKind(str, Enum):
    STUDENT_NOT_FOUND = "StudentNotFound"
    INVALID_VALUE = "InvalidValue"
    NEGATIVE = "Negative"
    EXCEEDS_MAXIMUM = "ExceedsMaximum"
    MISSING_COLUMN = "MissingColumn"


@dataclass(frozen=True)
class RowError:
    """One problem with one row (and optionally one question cell)."""
    row_number: int
    kind: ValidationErrorKind
    question_number: Optional[int] = None
    student_ref: Optional[str] = None
    value: Optional[str] = None
    limit: Optional[float] = None

    def __str__(self) -> str:
        text = f"Row {self.row_number}: {self.kind.value}"
        if self.kind == ValidationErrorKind.STUDENT_NOT_FOUND and self.student_ref:
            return f"{text} ({self.student_ref})"
        if self.question_number is not None:
            text += f" for Q{self.question_number}"
        if self.kind == ValidationErrorKind.EXCEEDS_MAXIMUM and self.limit is not None:
            text += f" ({self.limit:g})"
        elif self.kind == ValidationErrorKind.INVALID_VALUE and self.value is not None:
            text += f" ({self.value!r})"
        elif self.kind == ValidationErrorKind.MISSING_COLUMN and self.value:
            text += f" ({self.value})"
        return text

    def as_dict(self) -> dict:
        return {
            "row": self.row_number,
            "error": self.kind.value,
            "question_number": self.question_number,
            "student_ref": self.student_ref,
            "message": str(self),
        }


# ============================================================================
# RAISED ERRORS
# ============================================================================

class ResultsError(Exception):
    """Base class for every error raised by the results engine."""


class StateError(ResultsError):
    """Lifecycle violations. Never retried automatically."""


class InvalidTransition(StateError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot {requested} a result in status '{current}'")


class PublishPreconditionNotMet(StateError):
    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Publish preconditions not met: {', '.join(self.missing)}")


class ResultFinalized(StateError):
    def __init__(self, course_offering_id=None, requested: str = "modify"):
        self.course_offering_id = course_offering_id
        self.requested = requested
        super().__init__(
            f"Result for offering {course_offering_id} is finalized; cannot {requested}"
        )


class ResultNotCalculated(StateError):
    def __init__(self, course_offering_id=None, status: str = "draft"):
        self.course_offering_id = course_offering_id
        self.status = status
        super().__init__(
            f"Result for offering {course_offering_id} is '{status}'; calculate it first"
        )


class ComputationError(ResultsError):
    """Missing configuration; the caller must supply it before retrying."""


class MissingGradeScale(ComputationError):
    def __init__(self, grade_scale_id):
        self.grade_scale_id = grade_scale_id
        super().__init__(f"Grade scale {grade_scale_id!r} not found")


class UnknownOffering(ComputationError):
    def __init__(self, course_offering_id):
        self.course_offering_id = course_offering_id
        super().__init__(f"Course offering {course_offering_id!r} not found")


class NoMappedCLOs(ComputationError):
    def __init__(self, plo_code: str):
        self.plo_code = plo_code
        super().__init__(f"PLO {plo_code} has no mapped CLOs")


class ConcurrencyError(ResultsError):
    """The caller may retry after a backoff."""


class RecalculationInProgress(ConcurrencyError):
    def __init__(self, course_offering_id):
        self.course_offering_id = course_offering_id
        super().__init__(
            f"Another operation is running for course offering {course_offering_id}"
        )


class CalculationTimeout(ResultsError, TimeoutError):
    def __init__(self, course_offering_id, seconds: float):
        self.course_offering_id = course_offering_id
        self.seconds = seconds
        super().__init__(
            f"Calculation for offering {course_offering_id} exceeded {seconds:g}s; result left unchanged"
        )
