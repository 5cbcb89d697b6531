# results/models.py
"""
Data models for assessment results and outcome attainment.
Contains enums, dataclasses, and validation logic.
"""

from __future__ import annotations
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


# ============================================================================
# ENUMS
# ============================================================================

class CalculationMethod(str, Enum):
    """How assessment components combine into a course total."""
    WEIGHTED = "weighted"
    SIMPLE = "simple"
    BEST_OF_N = "best_of_n"


class ResultStatus(str, Enum):
    """Lifecycle status of a course result."""
    DRAFT = "draft"
    CALCULATED = "calculated"
    PUBLISHED = "published"
    FINALIZED = "finalized"


class ImportPolicy(str, Enum):
    """Commit strategy for bulk marks import."""
    ATOMIC = "atomic"            # all rows or nothing
    BEST_EFFORT = "best_effort"  # row by row


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    WITHDRAWN = "withdrawn"
    DROPPED = "dropped"


ROSTER_STATUSES = (EnrollmentStatus.ACTIVE.value, EnrollmentStatus.COMPLETED.value)

PASS = "Pass"
FAIL = "Fail"


# ============================================================================
# ACADEMIC STRUCTURE
# ============================================================================

@dataclass(frozen=True)
class Student:
    student_id: str
    roll_number: str
    name: str = ""


@dataclass
class Question:
    id: int
    assessment_component_id: int
    question_number: int
    total_marks: float
    question_type: str = "descriptive"
    clo_codes: List[str] = field(default_factory=list)

    @property
    def column(self) -> str:
        """Column name used in marks sheets (q1, q2, ...)."""
        return f"q{self.question_number}"


@dataclass
class AssessmentComponent:
    id: int
    course_offering_id: int
    name: str
    weight: float = 1.0
    sequence: int = 100
    questions: List[Question] = field(default_factory=list)


@dataclass
class CourseOffering:
    id: int
    course_code: str
    title: Optional[str] = None
    program_code: Optional[str] = None
    passing_percentage: Optional[float] = None


# ============================================================================
# MARKS
# ============================================================================

@dataclass(frozen=True)
class MarksKey:
    student_id: str
    question_id: int
    assessment_component_id: int


@dataclass(frozen=True)
class MarksEntry:
    """One student's marks on one question. Identity is ``key``."""
    student_id: str
    question_id: int
    assessment_component_id: int
    marks_obtained: float

    @property
    def key(self) -> MarksKey:
        return MarksKey(self.student_id, self.question_id, self.assessment_component_id)


# ============================================================================
# GRADE SCALE
# ============================================================================

@dataclass(frozen=True)
class GradeBand:
    lower_bound: float
    letter_grade: str
    grade_point: float
    remarks: Optional[str] = None


@dataclass
class GradeScale:
    """Ordered percentage → letter/grade point mapping. Lower bounds are inclusive."""
    id: int
    name: str
    bands: List[GradeBand] = field(default_factory=list)

    def __post_init__(self):
        self.bands = sorted(self.bands, key=lambda b: b.lower_bound, reverse=True)

    def validate(self) -> List[str]:
        """Validate band layout and return list of errors."""
        errors = []

        if not self.bands:
            errors.append("Grade scale has no bands")
            return errors

        bounds = [b.lower_bound for b in self.bands]
        if any(b < 0 or b > 100 for b in bounds):
            errors.append("Band lower bounds must lie within [0, 100]")
        if len(set(bounds)) != len(bounds):
            errors.append("Band lower bounds must be unique")
        if min(bounds) != 0:
            errors.append("Lowest band must start at 0 so every percentage is covered")

        letters = [b.letter_grade for b in self.bands]
        duplicates = sorted({lg for lg in letters if letters.count(lg) > 1})
        if duplicates:
            errors.append(f"Duplicate letter grades: {', '.join(duplicates)}")

        return errors

    def band_for(self, percentage: float) -> GradeBand:
        """Band whose range contains ``percentage``: highest lower bound <= percentage."""
        for band in self.bands:
            if percentage >= band.lower_bound:
                return band
        # below the lowest band; only reachable for scales that fail validate()
        return self.bands[-1]


# ============================================================================
# RESULTS
# ============================================================================

@dataclass
class StudentResult:
    student_id: str
    total_marks: float
    max_marks: float
    percentage: float
    letter_grade: Optional[str]
    grade_point: Optional[float]
    pass_status: str
    roll_number: Optional[str] = None
    name: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "roll_number": self.roll_number,
            "name": self.name,
            "total_marks": self.total_marks,
            "max_marks": self.max_marks,
            "percentage": self.percentage,
            "letter_grade": self.letter_grade,
            "grade_point": self.grade_point,
            "pass_status": self.pass_status,
        }


@dataclass
class CourseResult:
    course_offering_id: int
    calculation_method: CalculationMethod
    grade_scale_id: Optional[int] = None
    status: ResultStatus = ResultStatus.DRAFT
    method_params: Dict[str, Any] = field(default_factory=dict)
    rows: List[StudentResult] = field(default_factory=list)
    id: Optional[int] = None
    calculation_date: Optional[datetime] = None
    publish_date: Optional[datetime] = None
    finalized_date: Optional[datetime] = None

    def row_for(self, student_id: str) -> Optional[StudentResult]:
        for row in self.rows:
            if row.student_id == student_id:
                return row
        return None


# ============================================================================
# OUTCOMES
# ============================================================================

@dataclass(frozen=True)
class CLO:
    id: int
    code: str
    description: str = ""


@dataclass(frozen=True)
class PLO:
    id: int
    code: str
    description: str = ""


@dataclass
class CLOAttainment:
    clo_code: str
    description: str
    direct_attainment: Optional[float]
    indirect_attainment: Optional[float]
    overall_attainment: Optional[float]
    obtained_marks: float
    total_marks: float
    status: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "clo_code": self.clo_code,
            "description": self.description,
            "direct_attainment": self.direct_attainment,
            "indirect_attainment": self.indirect_attainment,
            "overall_attainment": self.overall_attainment,
            "obtained_marks": self.obtained_marks,
            "total_marks": self.total_marks,
            "status": self.status,
        }


@dataclass
class PLOAttainment:
    plo_code: str
    description: str
    attainment: Optional[float]
    mapped_clos: List[str] = field(default_factory=list)
    status: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "plo_code": self.plo_code,
            "description": self.description,
            "attainment": self.attainment,
            "mapped_clos": list(self.mapped_clos),
            "status": self.status,
        }
