# results/attainment.py
"""
Outcome attainment roll-up.

CLO direct attainment is the cohort's obtained marks on the questions mapped
to the CLO over the total marks of those questions, counting only questions
each student has an entry for:

    direct = sum(marks_obtained) / sum(question.total_marks) * 100

When indirect (survey) attainment is supplied it is blended in:

    overall = w * direct + (1 - w) * indirect      (w = direct weight)

otherwise overall = direct. A PLO's attainment is the arithmetic mean of
the overall attainment of the CLOs mapped to it; a PLO without mapped CLOs
reports ``None`` and a ``NoMappedCLOs`` error instead of dividing by zero.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from results.errors import ComputationError, NoMappedCLOs
from results.models import CLO, CLOAttainment, MarksEntry, PLO, PLOAttainment, Question

logger = logging.getLogger(__name__)

DEFAULT_DIRECT_WEIGHT = 0.8
SURVEY_SCALE_MAX = 5.0


# ============================================================================
# THRESHOLD TABLES
# ============================================================================

@dataclass(frozen=True)
class ThresholdTable:
    """Status labels by minimum attainment, highest tier first."""
    name: str
    tiers: Tuple[Tuple[float, str], ...]

    def __post_init__(self):
        object.__setattr__(self, "tiers",
                           tuple(sorted(((float(t), str(lbl)) for t, lbl in self.tiers), reverse=True)))

    def validate(self) -> List[str]:
        errors = []
        if not self.tiers:
            errors.append("Threshold table has no tiers")
            return errors
        bounds = [t for t, _ in self.tiers]
        if any(b < 0 or b > 100 for b in bounds):
            errors.append("Thresholds must lie within [0, 100]")
        if len(set(bounds)) != len(bounds):
            errors.append("Thresholds must be unique")
        if min(bounds) != 0:
            errors.append("Lowest tier must start at 0")
        return errors

    def label(self, value: Optional[float]) -> Optional[str]:
        if value is None:
            return None
        for minimum, label in self.tiers:
            if value >= minimum:
                return label
        return self.tiers[-1][1]

    def to_config(self) -> Dict[str, Any]:
        return {"name": self.name, "tiers": [[t, lbl] for t, lbl in self.tiers]}

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "ThresholdTable":
        table = cls(name=cfg.get("name", "custom"), tiers=tuple(tuple(t) for t in cfg.get("tiers", [])))
        errors = table.validate()
        if errors:
            raise ValueError("; ".join(errors))
        return table


FOUR_TIER = ThresholdTable("four_tier", (
    (80, "Excellent"),
    (60, "Good"),
    (50, "Satisfactory"),
    (0, "Needs Improvement"),
))

THREE_TIER = ThresholdTable("three_tier", (
    (70, "Achieved"),
    (50, "Partially Achieved"),
    (0, "Not Achieved"),
))

THRESHOLD_TABLES: Dict[str, ThresholdTable] = {
    FOUR_TIER.name: FOUR_TIER,
    THREE_TIER.name: THREE_TIER,
}


def threshold_table(name: str) -> ThresholdTable:
    try:
        return THRESHOLD_TABLES[name]
    except KeyError:
        raise ValueError(f"Unknown threshold table '{name}' (choose from {', '.join(THRESHOLD_TABLES)})")


# ============================================================================
# HELPERS
# ============================================================================

def _r(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(float(value), 2)


def indirect_from_survey(avg_score: float, scale_max: float = SURVEY_SCALE_MAX) -> float:
    """Convert an average Likert score (1..scale_max) to a percentage."""
    if scale_max <= 0:
        raise ValueError("scale_max must be positive")
    if avg_score < 0 or avg_score > scale_max:
        raise ValueError(f"Survey average {avg_score} outside 0..{scale_max}")
    return round(avg_score / scale_max * 100.0, 2)


def combine(direct: Optional[float], indirect: Optional[float],
            direct_weight: float = DEFAULT_DIRECT_WEIGHT) -> Optional[float]:
    if not 0 <= direct_weight <= 1:
        raise ValueError("direct_weight must lie within [0, 1]")
    if indirect is None:
        return _r(direct)
    if direct is None:
        return _r(indirect)
    return _r(direct_weight * direct + (1 - direct_weight) * indirect)


# ============================================================================
# CLO / PLO
# ============================================================================

def compute_clo_attainment(questions: Iterable[Question], entries: Iterable[MarksEntry],
                           clos: Sequence[CLO] = (), students: Optional[Iterable[str]] = None,
                           indirect: Optional[Mapping[str, float]] = None,
                           direct_weight: float = DEFAULT_DIRECT_WEIGHT,
                           thresholds: ThresholdTable = FOUR_TIER) -> List[CLOAttainment]:
    """Attainment for every CLO referenced by at least one question, ordered by code."""
    indirect = dict(indirect or {})
    allowed = set(students) if students is not None else None
    descriptions = {c.code: c.description for c in clos}

    by_question: Dict[int, Question] = {}
    clo_questions: Dict[str, List[int]] = defaultdict(list)
    for q in questions:
        by_question[q.id] = q
        for code in q.clo_codes:
            clo_questions[code].append(q.id)

    obtained: Dict[int, float] = defaultdict(float)
    possible: Dict[int, float] = defaultdict(float)
    for e in entries:
        if allowed is not None and e.student_id not in allowed:
            continue
        q = by_question.get(e.question_id)
        if q is None:
            continue
        obtained[q.id] += e.marks_obtained
        possible[q.id] += q.total_marks

    results = []
    for code in sorted(clo_questions):
        qids = clo_questions[code]
        got = sum(obtained[qid] for qid in qids)
        total = sum(possible[qid] for qid in qids)
        direct = _r(got / total * 100.0) if total > 0 else None
        ind = _r(indirect.get(code)) if code in indirect else None
        overall = combine(direct, ind, direct_weight)
        results.append(CLOAttainment(
            clo_code=code,
            description=descriptions.get(code, ""),
            direct_attainment=direct,
            indirect_attainment=ind,
            overall_attainment=overall,
            obtained_marks=_r(got),
            total_marks=_r(total),
            status=thresholds.label(overall),
        ))
    return results


def rollup_plo_attainment(plos: Sequence[PLO], clo_plo_map: Mapping[str, Sequence[str]],
                          clo_attainments: Iterable[CLOAttainment],
                          thresholds: ThresholdTable = FOUR_TIER
                          ) -> Tuple[List[PLOAttainment], List[NoMappedCLOs]]:
    """
    PLO attainment as the mean of its mapped CLOs' overall attainment.

    ``clo_plo_map`` is PLO code → CLO codes. Only CLOs present in
    ``clo_attainments`` count as mapped.
    """
    by_code = {c.clo_code: c for c in clo_attainments}
    results: List[PLOAttainment] = []
    errors: List[NoMappedCLOs] = []
    for plo in plos:
        mapped = [code for code in clo_plo_map.get(plo.code, []) if code in by_code]
        if not mapped:
            errors.append(NoMappedCLOs(plo.code))
            results.append(PLOAttainment(plo.code, plo.description, None, []))
            continue
        values = [by_code[c].overall_attainment for c in mapped
                  if by_code[c].overall_attainment is not None]
        value = _r(sum(values) / len(values)) if values else None
        results.append(PLOAttainment(plo.code, plo.description, value, mapped,
                                     status=thresholds.label(value)))
    if errors:
        logger.warning(f"PLOs without mapped CLOs: {', '.join(e.plo_code for e in errors)}")
    return results, errors


def require_plo_attainment(plo: PLOAttainment) -> float:
    """Attainment value, raising ``NoMappedCLOs`` where there is none."""
    if not plo.mapped_clos or plo.attainment is None:
        raise NoMappedCLOs(plo.plo_code)
    return plo.attainment


@dataclass
class AttainmentReport:
    clo_attainment: List[CLOAttainment] = field(default_factory=list)
    plo_attainment: List[PLOAttainment] = field(default_factory=list)
    errors: List[ComputationError] = field(default_factory=list)
    threshold_table: str = FOUR_TIER.name

    def to_report(self) -> Dict[str, Any]:
        return {
            "threshold_table": self.threshold_table,
            "clo_attainment": [c.as_dict() for c in self.clo_attainment],
            "plo_attainment": [p.as_dict() for p in self.plo_attainment],
            "errors": [str(e) for e in self.errors],
        }
