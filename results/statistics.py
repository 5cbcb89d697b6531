# results/statistics.py
"""
Course-level and per-question descriptive statistics.

Statistics are projections of a calculated CourseResult and are recomputed
on demand; nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

import pandas as pd

from results.errors import ResultNotCalculated
from results.models import CourseResult, MarksEntry, PASS, Question, ResultStatus

QUESTION_PASS_FRACTION = 0.5


def _r(value) -> float:
    return round(float(value), 2)


@dataclass
class QuestionStats:
    question_id: int
    question_number: int
    assessment_component_id: int
    total_marks: float
    attempts: int = 0
    average: float = 0.0
    highest: float = 0.0
    lowest: float = 0.0
    pass_rate: float = 0.0  # fraction of attempting students at >= 50% of total_marks

    def to_report(self) -> Dict[str, Any]:
        return {
            "question_number": self.question_number,
            "assessment_component_id": self.assessment_component_id,
            "average": self.average,
            "highest": self.highest,
            "lowest": self.lowest,
            "pass_rate": self.pass_rate,
        }


@dataclass
class CourseStatistics:
    total_students: int = 0
    average_marks: float = 0.0
    highest_marks: float = 0.0
    lowest_marks: float = 0.0
    median_marks: float = 0.0
    std_deviation: float = 0.0
    average_percentage: float = 0.0
    passed: int = 0
    failed: int = 0
    grade_counts: Dict[str, int] = field(default_factory=dict)
    question_stats: List[QuestionStats] = field(default_factory=list)

    @property
    def pass_percentage(self) -> float:
        if not self.total_students:
            return 0.0
        return _r(self.passed / self.total_students * 100)

    def to_report(self) -> Dict[str, Any]:
        return {
            "total_students": self.total_students,
            "average_marks": self.average_marks,
            "highest_marks": self.highest_marks,
            "lowest_marks": self.lowest_marks,
            "std_deviation": self.std_deviation,
            "median_marks": self.median_marks,
            "passed": self.passed,
            "failed": self.failed,
            "pass_percentage": self.pass_percentage,
            "grade_counts": dict(self.grade_counts),
            "question_stats": [q.to_report() for q in self.question_stats],
        }


def _question_stats(questions: Iterable[Question], entries: Iterable[MarksEntry],
                    students: set) -> List[QuestionStats]:
    frame = pd.DataFrame(
        [(e.question_id, e.marks_obtained) for e in entries if e.student_id in students],
        columns=["question_id", "marks"],
    )
    stats = []
    for q in sorted(questions, key=lambda q: (q.assessment_component_id, q.question_number)):
        qs = QuestionStats(q.id, q.question_number, q.assessment_component_id, q.total_marks)
        marks = frame.loc[frame["question_id"] == q.id, "marks"].astype(float)
        if not marks.empty:
            qs.attempts = int(marks.size)
            qs.average = _r(marks.mean())
            qs.highest = _r(marks.max())
            qs.lowest = _r(marks.min())
            passed = int((marks >= q.total_marks * QUESTION_PASS_FRACTION).sum())
            qs.pass_rate = round(passed / qs.attempts, 4)
        stats.append(qs)
    return stats


def compute_statistics(result: CourseResult, questions: Iterable[Question] = (),
                       entries: Iterable[MarksEntry] = ()) -> CourseStatistics:
    """
    Derive statistics from a calculated/published/finalized result.

    ``questions`` and ``entries`` feed the per-question section; entries of
    students outside the result are ignored.
    """
    if ResultStatus(result.status) == ResultStatus.DRAFT:
        raise ResultNotCalculated(result.course_offering_id, ResultStatus.DRAFT.value)

    stats = CourseStatistics()
    students = {r.student_id for r in result.rows}
    stats.question_stats = _question_stats(questions, entries, students)
    if not result.rows:
        return stats

    totals = pd.Series([r.total_marks for r in result.rows], dtype=float)
    stats.total_students = int(totals.size)
    stats.average_marks = _r(totals.mean())
    stats.highest_marks = _r(totals.max())
    stats.lowest_marks = _r(totals.min())
    stats.median_marks = _r(totals.median())
    stats.std_deviation = _r(totals.std(ddof=0))
    stats.average_percentage = _r(pd.Series([r.percentage for r in result.rows], dtype=float).mean())
    stats.passed = sum(1 for r in result.rows if r.pass_status == PASS)
    stats.failed = stats.total_students - stats.passed

    letters = pd.Series([r.letter_grade or "N/A" for r in result.rows])
    stats.grade_counts = {str(k): int(v) for k, v in letters.value_counts().sort_index().items()}
    return stats


def grade_distribution(result: CourseResult) -> List[Dict[str, Any]]:
    """Letter grade counts with their share of the class, best grade first."""
    if not result.rows:
        return []
    frame = pd.DataFrame([r.as_dict() for r in result.rows])
    grouped = (frame.groupby(["letter_grade", "grade_point"], dropna=False)
               .size().reset_index(name="students")
               .sort_values(["grade_point", "letter_grade"], ascending=[False, True]))
    total = len(result.rows)
    return [
        {"letter_grade": row.letter_grade, "grade_point": float(row.grade_point),
         "count": int(row.students), "percentage": _r(row.students / total * 100)}
        for row in grouped.itertuples(index=False)
    ]
