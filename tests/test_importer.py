"""Tests for bulk marks ingestion."""

import pandas as pd

from results.errors import ValidationErrorKind
from results.exports import marks_sheet
from results.models import ImportPolicy


def _sheet(rows):
    return pd.DataFrame(rows, columns=["roll_number", "q1"])


def test_atomic_rejects_whole_sheet(manager, offering):
    result = manager.ingest(offering.id, offering.component_id, _sheet([["S1", 8], ["S2", 12]]))

    assert result.committed is False
    assert result.imported == 0
    assert result.error_messages() == ["Row 3: ExceedsMaximum for Q1 (10)"]
    assert result.errors[0].row_number == 3
    assert manager.ledger.query(question_id=offering.q1) == []


def test_atomic_commits_clean_sheet(manager, offering):
    result = manager.ingest(offering.id, offering.component_id, _sheet([["S1", 8], ["S2", 6]]))

    assert result.committed is True
    assert result.summary() == {"imported": 2, "failed": 0, "errors": []}
    assert {e.student_id: e.marks_obtained for e in manager.ledger.query(question_id=offering.q1)} == {
        "stu-1": 8.0, "stu-2": 6.0,
    }


def test_best_effort_keeps_good_rows(manager, offering):
    rows = [{"roll_number": "S1", "q1": "8"},
            {"roll_number": "S9", "q1": "5"},
            {"roll_number": "S2", "q1": "-2"}]
    result = manager.ingest(offering.id, offering.component_id, rows, ImportPolicy.BEST_EFFORT)

    assert result.imported == 1
    assert result.failed == 2
    assert [e.kind for e in result.errors] == [ValidationErrorKind.STUDENT_NOT_FOUND,
                                               ValidationErrorKind.NEGATIVE]
    assert [e.row_number for e in result.errors] == [3, 4]
    assert [e.student_id for e in manager.ledger.query(question_id=offering.q1)] == ["stu-1"]


def test_missing_identity_column(manager, offering):
    result = manager.ingest(offering.id, offering.component_id, [{"name": "Asha", "q1": 5}])

    assert result.committed is False
    assert result.errors[0].kind == ValidationErrorKind.MISSING_COLUMN
    assert manager.ledger.query() == []


def test_column_names_are_normalised_and_blank_is_not_zero(manager, offering):
    frame = pd.DataFrame({"Roll Number": ["S1", "S2"], "Q1": [None, 0]})
    result = manager.ingest(offering.id, offering.component_id, frame)

    assert result.committed is True
    entries = manager.ledger.query(question_id=offering.q1)
    assert [(e.student_id, e.marks_obtained) for e in entries] == [("stu-2", 0.0)]


def test_unknown_columns_warn(manager, offering):
    result = manager.preview_import(offering.id, offering.component_id,
                                    [{"roll_number": "S1", "q1": 1, "q7": 3}])
    assert result.warnings == ["Ignored columns: q7"]


def test_preview_diff_and_round_trip(manager, offering):
    manager.ingest(offering.id, offering.component_id, _sheet([["S1", 8], ["S2", 6]]))

    preview = manager.preview_import(offering.id, offering.component_id, _sheet([["S1", 9], ["S2", 6]]))
    assert preview.dry_run is True
    assert preview.diff_counts() == {"new": 0, "changed": 1, "unchanged": 1}
    assert manager.ledger.query(student_id="stu-1")[0].marks_obtained == 8.0

    exported = manager.export_marks_sheet(offering.id, offering.component_id)
    round_trip = manager.preview_import(offering.id, offering.component_id, exported)
    assert round_trip.errors == []
    assert round_trip.diff_counts()["unchanged"] == 2
    assert round_trip.diff_counts()["changed"] == round_trip.diff_counts()["new"] == 0


def test_marks_sheet_template_is_blank():
    from results.models import MarksEntry, Question, Student

    q = Question(1, 1, 1, 10)
    roster = [Student("b", "S2", "Bilal"), Student("a", "S1", "Asha")]
    filled = marks_sheet(roster, [q], [MarksEntry("a", 1, 1, 7)])
    template = marks_sheet(roster, [q], [MarksEntry("a", 1, 1, 7)], template=True)

    assert list(filled.columns) == ["roll_number", "name", "q1"]
    assert list(filled["roll_number"]) == ["S1", "S2"]
    assert filled.loc[0, "q1"] == 7
    assert pd.isna(filled.loc[1, "q1"])
    assert template["q1"].isna().all()
