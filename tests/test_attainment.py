"""Tests for CLO / PLO attainment."""

import pytest
from sqlalchemy import text as sa_text

from results.attainment import (
    FOUR_TIER, THREE_TIER, ThresholdTable, combine, compute_clo_attainment,
    indirect_from_survey, require_plo_attainment, rollup_plo_attainment,
)
from results.errors import NoMappedCLOs
from results.models import CLO, MarksEntry, PLO, Question

Q1 = Question(1, 1, 1, 10, clo_codes=["CLO1"])
Q2 = Question(2, 1, 2, 10, clo_codes=["CLO1", "CLO2"])
Q3 = Question(3, 1, 3, 5)


def test_direct_attainment_uses_attempted_questions():
    entries = [MarksEntry("a", 1, 1, 8), MarksEntry("a", 2, 1, 6), MarksEntry("b", 1, 1, 4)]
    clos = compute_clo_attainment([Q1, Q2, Q3], entries, clos=[CLO(1, "CLO1", "Design")])

    by_code = {c.clo_code: c for c in clos}
    assert list(by_code) == ["CLO1", "CLO2"]
    assert by_code["CLO1"].obtained_marks == 18.0
    assert by_code["CLO1"].total_marks == 30.0
    assert by_code["CLO1"].direct_attainment == 60.0
    assert by_code["CLO1"].overall_attainment == 60.0
    assert by_code["CLO1"].description == "Design"
    assert by_code["CLO2"].direct_attainment == 60.0


def test_indirect_blend_and_status():
    entries = [MarksEntry("a", 1, 1, 10)]
    (clo,) = compute_clo_attainment([Q1], entries, indirect={"CLO1": 50.0}, direct_weight=0.8)

    assert clo.indirect_attainment == 50.0
    assert clo.overall_attainment == 90.0
    assert clo.status == "Excellent"


def test_students_filter_and_unattempted_clo():
    entries = [MarksEntry("dropped", 1, 1, 10)]
    (clo,) = compute_clo_attainment([Q1], entries, students=["a"])
    assert clo.direct_attainment is None
    assert clo.overall_attainment is None
    assert clo.status is None


def test_combine():
    assert combine(70.0, None) == 70.0
    assert combine(None, 40.0) == 40.0
    assert combine(None, None) is None
    with pytest.raises(ValueError):
        combine(50, 50, direct_weight=1.5)


def test_survey_conversion():
    assert indirect_from_survey(4) == 80.0
    assert indirect_from_survey(3.5, scale_max=5) == 70.0
    with pytest.raises(ValueError):
        indirect_from_survey(6)


def test_threshold_tables():
    assert FOUR_TIER.label(80) == "Excellent"
    assert FOUR_TIER.label(79.99) == "Good"
    assert FOUR_TIER.label(49) == "Needs Improvement"
    assert THREE_TIER.label(70) == "Achieved"
    assert THREE_TIER.label(55) == "Partially Achieved"

    custom = ThresholdTable.from_config({"name": "binary", "tiers": [[0, "No"], [65, "Yes"]]})
    assert custom.label(65) == "Yes"
    with pytest.raises(ValueError):
        ThresholdTable.from_config({"tiers": [[50, "Half"]]})


def test_plo_rollup_mean_and_unmapped():
    entries = [MarksEntry("a", 1, 1, 8), MarksEntry("a", 2, 1, 4)]
    clos = compute_clo_attainment([Q1, Q2], entries)
    plos = [PLO(1, "PLO1", "Engineering knowledge"), PLO(2, "PLO2", "Ethics")]

    results, errors = rollup_plo_attainment(plos, {"PLO1": ["CLO1", "CLO2"]}, clos, THREE_TIER)

    plo1, plo2 = results
    assert plo1.mapped_clos == ["CLO1", "CLO2"]
    assert plo1.attainment == pytest.approx((60.0 + 40.0) / 2)
    assert plo1.status == "Partially Achieved"
    assert plo2.attainment is None
    assert plo2.mapped_clos == []
    assert [e.plo_code for e in errors] == ["PLO2"]
    assert require_plo_attainment(plo1) == 50.0
    with pytest.raises(NoMappedCLOs):
        require_plo_attainment(plo2)


# ---------------------------------------------------------------------------
# through the manager
# ---------------------------------------------------------------------------

def _map_outcomes(engine, offering):
    with engine.begin() as conn:
        clo_id = conn.execute(sa_text("""
            INSERT INTO course_learning_outcomes (course_offering_id, code, description)
            VALUES (:co, 'CLO1', 'Write programs')
        """), {"co": offering.id}).lastrowid
        plo1 = conn.execute(sa_text("""
            INSERT INTO program_learning_outcomes (program_code, code, description, sort_order)
            VALUES ('BSCS', 'PLO1', 'Problem solving', 1)
        """)).lastrowid
        conn.execute(sa_text("""
            INSERT INTO program_learning_outcomes (program_code, code, description, sort_order)
            VALUES ('BSCS', 'PLO2', 'Communication', 2)
        """))
        conn.execute(sa_text("INSERT INTO question_clo_mapping (question_id, clo_id) VALUES (:q, :c)"),
                     {"q": offering.q1, "c": clo_id})
        conn.execute(sa_text("INSERT INTO clo_plo_mapping (clo_id, plo_id) VALUES (:c, :p)"),
                     {"c": clo_id, "p": plo1})


def test_manager_attainment_report(manager, engine, offering):
    _map_outcomes(engine, offering)
    manager.ingest(offering.id, offering.component_id, [{"roll_number": "S1", "q1": 8},
                                                        {"roll_number": "S2", "q1": 6}])
    manager.record_indirect(offering.id, "clo1", survey_average=4.0, source="exit survey")

    report = manager.attainment(offering.id).to_report()

    (clo,) = report["clo_attainment"]
    assert clo["direct_attainment"] == 70.0
    assert clo["indirect_attainment"] == 80.0
    assert clo["overall_attainment"] == 72.0
    plo1, plo2 = report["plo_attainment"]
    assert (plo1["plo_code"], plo1["attainment"], plo1["mapped_clos"]) == ("PLO1", 72.0, ["CLO1"])
    assert plo2["attainment"] is None
    assert report["errors"] == ["PLO PLO2 has no mapped CLOs"]
    assert report["threshold_table"] == "four_tier"


def test_program_threshold_override(manager, engine, offering):
    _map_outcomes(engine, offering)
    manager.save_threshold_table("BSCS", THREE_TIER, reason="accreditation body uses three tiers")

    assert manager.threshold_table("BSCS").name == "three_tier"
    assert manager.threshold_table("OTHER").name == "four_tier"
    assert manager.attainment(offering.id).threshold_table == "three_tier"
    assert manager.attainment(offering.id, threshold_table_name="four_tier").threshold_table == "four_tier"
