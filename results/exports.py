# results/exports.py
"""
Tabular exports: marks sheets (the inverse of the bulk upload shape) and
result sheets. Both return pandas DataFrames; writing files is left to
the caller.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

import pandas as pd

from results.models import CourseResult, MarksEntry, Question, Student

RESULT_COLUMNS = [
    "roll_number", "student_id", "name", "total_marks", "max_marks", "percentage",
    "letter_grade", "grade_point", "pass_status",
]


def marks_sheet(roster: Iterable[Student], questions: Sequence[Question],
                entries: Iterable[MarksEntry] = (), template: bool = False) -> pd.DataFrame:
    """
    One row per student with ``roll_number``, ``name`` and a ``q<n>`` column
    per question. Existing marks are filled in unless ``template`` is set;
    missing entries stay blank (NaN), never 0.
    """
    questions = sorted(questions, key=lambda q: q.question_number)
    columns = ["roll_number", "name"] + [q.column for q in questions]
    by_question = {q.id: q.column for q in questions}

    marks: Dict[str, Dict[str, float]] = {}
    if not template:
        for e in entries:
            col = by_question.get(e.question_id)
            if col is not None:
                marks.setdefault(e.student_id, {})[col] = e.marks_obtained

    records: List[dict] = []
    for s in sorted(roster, key=lambda s: (s.roll_number, s.student_id)):
        row = {"roll_number": s.roll_number, "name": s.name}
        row.update(marks.get(s.student_id, {}))
        records.append(row)

    frame = pd.DataFrame.from_records(records, columns=columns)
    for q in questions:
        frame[q.column] = pd.to_numeric(frame[q.column], errors="coerce")
    return frame


def results_sheet(result: CourseResult) -> pd.DataFrame:
    return pd.DataFrame.from_records([r.as_dict() for r in result.rows], columns=RESULT_COLUMNS)
