"""Tests for course and question statistics."""

import pytest

from results.errors import ResultNotCalculated
from results.models import (
    CalculationMethod, CourseResult, MarksEntry, Question, ResultStatus, StudentResult,
)
from results.statistics import compute_statistics, grade_distribution


def _row(sid, total, pct, letter, gp, status="Pass"):
    return StudentResult(sid, total, 10.0, pct, letter, gp, status)


def _result(rows, status=ResultStatus.CALCULATED):
    return CourseResult(1, CalculationMethod.SIMPLE, grade_scale_id=1, status=status, rows=rows)


def test_two_student_statistics():
    result = _result([_row("a", 8.0, 80.0, "A+", 4.0), _row("b", 6.0, 60.0, "B", 3.0)])
    q = Question(11, 1, 1, 10)
    entries = [MarksEntry("a", 11, 1, 8), MarksEntry("b", 11, 1, 6)]

    report = compute_statistics(result, [q], entries).to_report()

    assert report["total_students"] == 2
    assert report["average_marks"] == 7.0
    assert report["std_deviation"] == 1.0
    assert report["median_marks"] == 7.0
    assert (report["highest_marks"], report["lowest_marks"]) == (8.0, 6.0)
    assert report["grade_counts"] == {"A+": 1, "B": 1}
    assert report["pass_percentage"] == 100.0
    assert report["question_stats"] == [{
        "question_number": 1, "assessment_component_id": 1,
        "average": 7.0, "highest": 8.0, "lowest": 6.0, "pass_rate": 1.0,
    }]


def test_question_pass_rate_counts_attempts_only():
    result = _result([_row("a", 8.0, 80.0, "A+", 4.0), _row("b", 2.0, 20.0, "F", 0.0, "Fail"),
                      _row("c", 0.0, 0.0, "F", 0.0, "Fail")])
    q = Question(11, 1, 1, 10)
    entries = [MarksEntry("a", 11, 1, 8), MarksEntry("b", 11, 1, 2), MarksEntry("x", 11, 1, 10)]

    stats = compute_statistics(result, [q], entries)

    assert stats.question_stats[0].attempts == 2
    assert stats.question_stats[0].pass_rate == 0.5
    assert (stats.passed, stats.failed) == (1, 2)


def test_unattempted_question_reports_zeros():
    stats = compute_statistics(_result([_row("a", 0.0, 0.0, "F", 0.0, "Fail")]), [Question(11, 1, 1, 10)], [])
    assert stats.question_stats[0].attempts == 0
    assert stats.question_stats[0].pass_rate == 0.0


def test_draft_result_is_refused():
    with pytest.raises(ResultNotCalculated):
        compute_statistics(_result([], status=ResultStatus.DRAFT))


def test_empty_result():
    report = compute_statistics(_result([])).to_report()
    assert report["total_students"] == 0
    assert report["pass_percentage"] == 0.0
    assert report["grade_counts"] == {}


def test_grade_distribution_best_first():
    result = _result([_row("a", 8.0, 80.0, "A+", 4.0), _row("b", 6.0, 60.0, "B", 3.0),
                      _row("c", 6.0, 60.0, "B", 3.0)])
    dist = grade_distribution(result)
    assert [(d["letter_grade"], d["count"]) for d in dist] == [("A+", 1), ("B", 2)]
    assert dist[1]["percentage"] == 66.67
