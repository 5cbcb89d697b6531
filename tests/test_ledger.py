"""Tests for the marks ledger."""

import pytest
from sqlalchemy.exc import IntegrityError

from results.ledger import MarksLedger
from results.models import MarksEntry, MarksKey


def test_upsert_is_last_write_wins(engine, offering):
    ledger = MarksLedger(engine)
    ledger.upsert(MarksEntry("stu-1", offering.q1, offering.component_id, 4))
    ledger.upsert(MarksEntry("stu-1", offering.q1, offering.component_id, 7))

    entries = ledger.query(question_id=offering.q1)
    assert len(entries) == 1
    assert entries[0].marks_obtained == 7.0


def test_get_and_delete(engine, offering):
    ledger = MarksLedger(engine)
    key = MarksKey("stu-2", offering.q1, offering.component_id)
    assert ledger.get(key) is None

    ledger.upsert(MarksEntry("stu-2", offering.q1, offering.component_id, 0))
    assert ledger.get(key).marks_obtained == 0.0
    assert ledger.delete(key) is True
    assert ledger.delete(key) is False


def test_query_filters(engine, offering):
    ledger = MarksLedger(engine)
    ledger.upsert_batch([
        MarksEntry("stu-1", offering.q1, offering.component_id, 8),
        MarksEntry("stu-2", offering.q1, offering.component_id, 6),
    ])
    assert [e.student_id for e in ledger.query(assessment_component_id=offering.component_id)] == ["stu-1", "stu-2"]
    assert [e.marks_obtained for e in ledger.query(student_id="stu-2")] == [6.0]
    assert ledger.query(question_ids=[]) == []


def test_batch_is_all_or_nothing(engine, offering):
    ledger = MarksLedger(engine)
    good = MarksEntry("stu-1", offering.q1, offering.component_id, 5)
    bad = MarksEntry("stu-2", offering.q1, offering.component_id, -3)  # violates CHECK

    with pytest.raises(IntegrityError):
        ledger.upsert_batch([good, bad])
    assert ledger.query(question_id=offering.q1) == []
