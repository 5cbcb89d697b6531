# results/validation.py
"""
Validation unit: turns one loosely-typed marks cell into either a
normalized ``MarksEntry`` or a ``RowError``.

Blank cells mean "not attempted" and yield ``None``; a literal 0 is a real
score. The two must never be conflated: only attempted questions count
toward a student's maximum marks.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from results.directory import Roster, normalize_ref
from results.errors import RowError, ValidationErrorKind
from results.models import MarksEntry, Question, Student

ValidationResult = Union[MarksEntry, RowError]

IDENTITY_COLUMNS = ("roll_number", "student_id")


class _Invalid:
    """Marker for a cell that is present but not a number."""

    def __repr__(self) -> str:
        return "INVALID"


INVALID = _Invalid()


def is_blank(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, str):
        return raw.strip() == ""
    try:
        return bool(pd.isna(raw))
    except (TypeError, ValueError):
        return False


def parse_marks(raw: Any):
    """Return float marks, ``None`` for a blank cell, or ``INVALID``."""
    if is_blank(raw):
        return None
    if isinstance(raw, bool):
        return INVALID
    if isinstance(raw, str):
        raw = raw.strip()
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return INVALID
    if not math.isfinite(value):
        return INVALID
    return value


@dataclass(frozen=True)
class Candidate:
    """One marks cell before validation."""
    row_number: int
    question: Question
    raw_value: Any
    roll_number: Any = None
    student_id: Any = None

    @property
    def student_ref(self) -> str:
        return normalize_ref(self.roll_number) or normalize_ref(self.student_id)


def validate_candidate(candidate: Candidate, roster: Roster) -> Optional[ValidationResult]:
    """
    Validate a single cell.

    Returns ``None`` for a blank cell (skipped, not an error), a
    ``MarksEntry`` when the value is acceptable, or a ``RowError``.
    """
    student = roster.resolve(candidate.roll_number, candidate.student_id)
    if student is None:
        return RowError(candidate.row_number, ValidationErrorKind.STUDENT_NOT_FOUND,
                        student_ref=candidate.student_ref or None)
    return _check_value(candidate.row_number, student, candidate.question, candidate.raw_value)


def _check_value(row_number: int, student: Student, question: Question,
                 raw: Any) -> Optional[ValidationResult]:
    value = parse_marks(raw)
    if value is None:
        return None
    qn = question.question_number
    if value is INVALID:
        return RowError(row_number, ValidationErrorKind.INVALID_VALUE, question_number=qn,
                        student_ref=student.roll_number, value=str(raw))
    if value < 0:
        return RowError(row_number, ValidationErrorKind.NEGATIVE, question_number=qn,
                        student_ref=student.roll_number, value=str(raw))
    if value > question.total_marks:
        return RowError(row_number, ValidationErrorKind.EXCEEDS_MAXIMUM, question_number=qn,
                        student_ref=student.roll_number, value=str(raw),
                        limit=question.total_marks)
    return MarksEntry(
        student_id=student.student_id,
        question_id=question.id,
        assessment_component_id=question.assessment_component_id,
        marks_obtained=value,
    )


def validate_row(row_number: int, row: Mapping[str, Any], roster: Roster,
                 questions: Sequence[Question]) -> Tuple[List[MarksEntry], List[RowError]]:
    """
    Validate every question cell of one sheet row.

    An unmatched student yields exactly one ``StudentNotFound`` for the row;
    otherwise every bad cell is reported (no short-circuit).
    """
    roll = row.get("roll_number")
    sid = row.get("student_id")
    cells = [row.get(q.column) for q in questions]

    if is_blank(roll) and is_blank(sid) and all(is_blank(c) for c in cells):
        return [], []

    student = roster.resolve(roll, sid)
    if student is None:
        ref = normalize_ref(roll) if not is_blank(roll) else normalize_ref(sid) if not is_blank(sid) else None
        return [], [RowError(row_number, ValidationErrorKind.STUDENT_NOT_FOUND, student_ref=ref)]

    entries: List[MarksEntry] = []
    errors: List[RowError] = []
    for question, raw in zip(questions, cells):
        outcome = _check_value(row_number, student, question, raw)
        if outcome is None:
            continue
        if isinstance(outcome, RowError):
            errors.append(outcome)
        else:
            entries.append(outcome)
    return entries, errors
