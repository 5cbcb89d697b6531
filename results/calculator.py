# results/calculator.py
"""
Result calculator: aggregates each enrolled student's marks into a total,
percentage, letter grade, grade point and pass/fail status.

Algorithm (per student):
1. Per assessment component, sum marks obtained and the total marks of the
   questions the student has an entry for (blank cells do not count toward
   the maximum; a recorded 0 does).
2. Combine components by calculation method:
   - simple:    raw sums, unweighted
   - weighted:  each component's sums multiplied by its weight
   - best_of_n: weighted, but only the N components where the student's
                weighted score is highest (ties: earlier sequence first)
3. percentage = total / max * 100, clamped to [0, 100].
4. Letter grade / grade point from the grade scale band containing the
   unrounded percentage; Pass when it is >= the offering's passing
   threshold. Only the stored percentage is rounded to 2 decimals.

The calculator never writes; the manager persists the returned snapshot
in one transaction so a failed or timed-out run leaves no trace.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from results.directory import GradeScaleStore, OfferingRegistry, StudentDirectory
from results.errors import CalculationTimeout, MissingGradeScale, UnknownOffering
from results.ledger import MarksLedger
from results.models import (
    AssessmentComponent, CalculationMethod, CourseResult, FAIL, PASS, ResultStatus,
    StudentResult,
)

logger = logging.getLogger(__name__)

DEFAULT_PASSING_PERCENTAGE = 50.0


def _round(value: float) -> float:
    return round(float(value), 2)


def component_sums(component: AssessmentComponent,
                   marks: Dict[int, float]) -> Tuple[float, float]:
    """(obtained, attempted maximum) for one component; ``marks`` is question_id → value."""
    obtained = 0.0
    maximum = 0.0
    for question in component.questions:
        if question.id in marks:
            obtained += marks[question.id]
            maximum += question.total_marks
    return obtained, maximum


def score_student(components: Sequence[AssessmentComponent], marks: Dict[int, float],
                  method: CalculationMethod, best_of: Optional[int] = None) -> Tuple[float, float]:
    """Total and maximum marks for one student under ``method``.

    For best_of_n, "highest" means the student's own weighted score per
    component, not the configured component weight.
    """
    method = CalculationMethod(method)
    parts = []
    for component in components:
        obtained, maximum = component_sums(component, marks)
        weight = 1.0 if method == CalculationMethod.SIMPLE else component.weight
        parts.append((obtained * weight, maximum * weight, component.sequence, component.id))

    if method == CalculationMethod.BEST_OF_N:
        parts.sort(key=lambda p: (-p[0], p[2], p[3]))
        parts = parts[:best_of]

    total = sum(p[0] for p in parts)
    maximum = sum(p[1] for p in parts)
    return total, maximum


def raw_percentage(total: float, maximum: float) -> float:
    """Unrounded percentage clamped to [0, 100]; grades and pass/fail use this."""
    if maximum <= 0:
        return 0.0
    return min(100.0, max(0.0, total / maximum * 100.0))


def to_percentage(total: float, maximum: float) -> float:
    return _round(raw_percentage(total, maximum))


class ResultCalculator:
    """Builds a ``calculated`` CourseResult snapshot from the ledger."""

    def __init__(self, offerings: OfferingRegistry, students: StudentDirectory,
                 grade_scales: GradeScaleStore, ledger: MarksLedger,
                 default_passing_percentage: float = DEFAULT_PASSING_PERCENTAGE,
                 clock: Callable[[], datetime] = datetime.now,
                 monotonic: Callable[[], float] = time.monotonic):
        self.offerings = offerings
        self.students = students
        self.grade_scales = grade_scales
        self.ledger = ledger
        self.default_passing_percentage = default_passing_percentage
        self.clock = clock
        self.monotonic = monotonic

    def calculate(self, course_offering_id: int, grade_scale_id: int,
                  method: CalculationMethod | str = CalculationMethod.WEIGHTED,
                  best_of: Optional[int] = None,
                  timeout: Optional[float] = None) -> CourseResult:
        deadline = self.monotonic() + timeout if timeout else None

        method = CalculationMethod(method)
        if method == CalculationMethod.BEST_OF_N:
            if best_of is None or int(best_of) < 1:
                raise ValueError("best_of_n requires best_of >= 1")
            best_of = int(best_of)

        offering = self.offerings.lookup(course_offering_id)
        if offering is None:
            raise UnknownOffering(course_offering_id)

        scale = self.grade_scales.lookup(grade_scale_id)
        if scale is None:
            raise MissingGradeScale(grade_scale_id)
        scale_errors = scale.validate()
        if scale_errors:
            raise ValueError(f"Grade scale {grade_scale_id} is invalid: {'; '.join(scale_errors)}")

        passing = (offering.passing_percentage
                   if offering.passing_percentage is not None
                   else self.default_passing_percentage)

        roster = sorted(self.students.list(course_offering_id),
                        key=lambda s: (s.roll_number, s.student_id))
        if not roster:
            logger.warning(f"Offering {course_offering_id} has no enrolled students; empty result")

        components = self.offerings.components(course_offering_id)
        question_ids = [q.id for c in components for q in c.questions]
        marks_by_student: Dict[str, Dict[int, float]] = defaultdict(dict)
        if roster and question_ids:
            for entry in self.ledger.query(question_ids=question_ids):
                marks_by_student[entry.student_id][entry.question_id] = entry.marks_obtained

        rows: List[StudentResult] = []
        for student in roster:
            if deadline is not None and self.monotonic() > deadline:
                raise CalculationTimeout(course_offering_id, timeout)
            total, maximum = score_student(components, marks_by_student.get(student.student_id, {}),
                                           method, best_of)
            raw = raw_percentage(total, maximum)
            band = scale.band_for(raw)
            rows.append(StudentResult(
                student_id=student.student_id,
                roll_number=student.roll_number,
                name=student.name,
                total_marks=_round(total),
                max_marks=_round(maximum),
                percentage=_round(raw),
                letter_grade=band.letter_grade,
                grade_point=band.grade_point,
                pass_status=PASS if raw >= passing else FAIL,
            ))

        if deadline is not None and self.monotonic() > deadline:
            raise CalculationTimeout(course_offering_id, timeout)

        logger.info(f"Calculated offering {course_offering_id} ({method.value}): {len(rows)} students")
        return CourseResult(
            course_offering_id=course_offering_id,
            grade_scale_id=grade_scale_id,
            calculation_method=method,
            method_params={"best_of": best_of} if method == CalculationMethod.BEST_OF_N else {},
            status=ResultStatus.CALCULATED,
            calculation_date=self.clock(),
            rows=rows,
        )
