# results/directory.py
"""
Read-only collaborators the engine consumes: the student roster, grade
scale configuration, and the course offering registry (components,
questions, CLO/PLO definitions), plus the notification hook used on
publish.

Each collaborator is a Protocol so tests can inject plain fakes; the
``Sql*`` classes are the implementations backed by the application
database.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy import text as sa_text
from sqlalchemy.engine import Engine

from results.models import (
    AssessmentComponent, CLO, CourseOffering, GradeBand, GradeScale, PLO,
    Question, ROSTER_STATUSES, Student,
)

logger = logging.getLogger(__name__)


# ===========================================================================
# DATABASE HELPERS
# ===========================================================================

def _exec(conn, sql: str, params: dict = None):
    """Execute SQL with parameters."""
    return conn.execute(sa_text(sql), params or {})


def _fetch_one(engine: Engine, sql: str, params: dict = None) -> Optional[Dict]:
    """Fetch single row."""
    with engine.begin() as conn:
        result = _exec(conn, sql, params).fetchone()
        return dict(result._mapping) if result else None


def _fetch_all(engine: Engine, sql: str, params: dict = None) -> List[Dict]:
    """Fetch all rows."""
    with engine.begin() as conn:
        results = _exec(conn, sql, params).fetchall()
        return [dict(r._mapping) for r in results]


def normalize_ref(value) -> str:
    """
    Canonical text form of a student reference.

    Spreadsheets hand back numeric roll numbers as floats (2024001.0); those
    are folded to their integer spelling.
    """
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


# ===========================================================================
# INTERFACES
# ===========================================================================

class StudentDirectory(Protocol):
    def lookup(self, course_offering_id: int, ref: str) -> Optional[Student]: ...

    def list(self, course_offering_id: int) -> List[Student]: ...


class GradeScaleStore(Protocol):
    def lookup(self, grade_scale_id: int) -> Optional[GradeScale]: ...

    def list(self) -> List[GradeScale]: ...


class OfferingRegistry(Protocol):
    def lookup(self, course_offering_id: int) -> Optional[CourseOffering]: ...

    def components(self, course_offering_id: int) -> List[AssessmentComponent]: ...

    def component(self, assessment_component_id: int) -> Optional[AssessmentComponent]: ...

    def clos(self, course_offering_id: int) -> List[CLO]: ...

    def plos(self, program_code: str) -> List[PLO]: ...

    def clo_plo_map(self, program_code: str,
                    course_offering_id: Optional[int] = None) -> Dict[str, List[str]]: ...

    def indirect_attainment(self, course_offering_id: int) -> Dict[str, float]: ...


class Notifier(Protocol):
    def notify(self, request) -> None: ...


# ===========================================================================
# ROSTER
# ===========================================================================

class Roster:
    """In-memory index of an offering's enrolled students by roll number and id."""

    def __init__(self, students: Iterable[Student]):
        self.students: List[Student] = list(students)
        self._by_roll = {s.roll_number.strip().lower(): s for s in self.students}
        self._by_id = {str(s.student_id).strip(): s for s in self.students}

    def __len__(self) -> int:
        return len(self.students)

    def __iter__(self):
        return iter(self.students)

    def resolve(self, roll_number=None, student_id=None) -> Optional[Student]:
        roll = normalize_ref(roll_number)
        if roll:
            hit = self._by_roll.get(roll.lower())
            if hit:
                return hit
        sid = normalize_ref(student_id)
        if sid:
            return self._by_id.get(sid)
        return None

    def __contains__(self, student_id) -> bool:
        return normalize_ref(student_id) in self._by_id


# ===========================================================================
# SQL IMPLEMENTATIONS
# ===========================================================================

class SqlStudentDirectory:
    """Roster of active/completed enrollments for a course offering."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def list(self, course_offering_id: int) -> List[Student]:
        rows = _fetch_all(self.engine, f"""
            SELECT s.student_id, s.roll_number, s.name
            FROM students s
            JOIN course_enrollments ce ON ce.student_id = s.student_id
            WHERE ce.course_offering_id = :co
              AND ce.status IN ({", ".join(repr(st) for st in ROSTER_STATUSES)})
            ORDER BY s.roll_number, s.student_id
        """, {"co": course_offering_id})
        return [Student(str(r["student_id"]), r["roll_number"], r["name"] or "") for r in rows]

    def lookup(self, course_offering_id: int, ref: str) -> Optional[Student]:
        return Roster(self.list(course_offering_id)).resolve(roll_number=ref, student_id=ref)


class SqlGradeScaleStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def _bands(self, grade_scale_id: int) -> List[GradeBand]:
        rows = _fetch_all(self.engine, """
            SELECT lower_bound, letter_grade, grade_point, remarks
            FROM grade_bands WHERE grade_scale_id = :sid
            ORDER BY lower_bound DESC
        """, {"sid": grade_scale_id})
        return [GradeBand(float(r["lower_bound"]), r["letter_grade"], float(r["grade_point"]), r["remarks"])
                for r in rows]

    def lookup(self, grade_scale_id: int) -> Optional[GradeScale]:
        if grade_scale_id is None:
            return None
        row = _fetch_one(self.engine, "SELECT id, name FROM grade_scales WHERE id = :sid",
                         {"sid": grade_scale_id})
        if not row:
            return None
        return GradeScale(id=row["id"], name=row["name"], bands=self._bands(row["id"]))

    def list(self) -> List[GradeScale]:
        rows = _fetch_all(self.engine, "SELECT id, name FROM grade_scales WHERE is_active = 1 ORDER BY id")
        return [GradeScale(id=r["id"], name=r["name"], bands=self._bands(r["id"])) for r in rows]

    def create(self, name: str, bands: List[GradeBand]) -> int:
        """Insert a new grade scale after validating its band layout."""
        scale = GradeScale(id=0, name=name, bands=bands)
        errors = scale.validate()
        if errors:
            raise ValueError("; ".join(errors))
        with self.engine.begin() as conn:
            scale_id = _exec(conn, "INSERT INTO grade_scales (name, is_active) VALUES (:n, 1)",
                             {"n": name}).lastrowid
            for b in scale.bands:
                _exec(conn, """
                    INSERT INTO grade_bands (grade_scale_id, lower_bound, letter_grade, grade_point, remarks)
                    VALUES (:sid, :lb, :lg, :gp, :rm)
                """, {"sid": scale_id, "lb": b.lower_bound, "lg": b.letter_grade,
                      "gp": b.grade_point, "rm": b.remarks})
        logger.info(f"Created grade scale {scale_id} '{name}'")
        return scale_id


class SqlOfferingRegistry:
    def __init__(self, engine: Engine):
        self.engine = engine

    def lookup(self, course_offering_id: int) -> Optional[CourseOffering]:
        row = _fetch_one(self.engine, """
            SELECT id, course_code, title, program_code, passing_percentage
            FROM course_offerings WHERE id = :co
        """, {"co": course_offering_id})
        return CourseOffering(**row) if row else None

    def _questions(self, component_ids: List[int]) -> Dict[int, List[Question]]:
        if not component_ids:
            return {}
        ids = ",".join(str(int(i)) for i in component_ids)
        rows = _fetch_all(self.engine, f"""
            SELECT id, assessment_component_id, question_number, total_marks, question_type
            FROM questions WHERE assessment_component_id IN ({ids})
            ORDER BY assessment_component_id, question_number
        """)
        clo_rows = _fetch_all(self.engine, f"""
            SELECT qcm.question_id, clo.code
            FROM question_clo_mapping qcm
            JOIN course_learning_outcomes clo ON clo.id = qcm.clo_id
            JOIN questions q ON q.id = qcm.question_id
            WHERE q.assessment_component_id IN ({ids})
            ORDER BY clo.code
        """)
        clo_codes: Dict[int, List[str]] = defaultdict(list)
        for r in clo_rows:
            clo_codes[r["question_id"]].append(r["code"])

        grouped: Dict[int, List[Question]] = defaultdict(list)
        for r in rows:
            grouped[r["assessment_component_id"]].append(Question(
                id=r["id"],
                assessment_component_id=r["assessment_component_id"],
                question_number=r["question_number"],
                total_marks=float(r["total_marks"]),
                question_type=r["question_type"],
                clo_codes=clo_codes.get(r["id"], []),
            ))
        return grouped

    def components(self, course_offering_id: int) -> List[AssessmentComponent]:
        rows = _fetch_all(self.engine, """
            SELECT id, course_offering_id, name, weight, sequence
            FROM assessment_components WHERE course_offering_id = :co
            ORDER BY sequence, id
        """, {"co": course_offering_id})
        questions = self._questions([r["id"] for r in rows])
        return [
            AssessmentComponent(
                id=r["id"], course_offering_id=r["course_offering_id"], name=r["name"],
                weight=float(r["weight"]), sequence=r["sequence"],
                questions=questions.get(r["id"], []),
            )
            for r in rows
        ]

    def component(self, assessment_component_id: int) -> Optional[AssessmentComponent]:
        row = _fetch_one(self.engine, """
            SELECT id, course_offering_id, name, weight, sequence
            FROM assessment_components WHERE id = :id
        """, {"id": assessment_component_id})
        if not row:
            return None
        return AssessmentComponent(
            id=row["id"], course_offering_id=row["course_offering_id"], name=row["name"],
            weight=float(row["weight"]), sequence=row["sequence"],
            questions=self._questions([row["id"]]).get(row["id"], []),
        )

    def clos(self, course_offering_id: int) -> List[CLO]:
        rows = _fetch_all(self.engine, """
            SELECT id, code, description FROM course_learning_outcomes
            WHERE course_offering_id = :co ORDER BY code
        """, {"co": course_offering_id})
        return [CLO(r["id"], r["code"], r["description"] or "") for r in rows]

    def plos(self, program_code: str) -> List[PLO]:
        rows = _fetch_all(self.engine, """
            SELECT id, code, description FROM program_learning_outcomes
            WHERE program_code = :p ORDER BY sort_order, code
        """, {"p": program_code})
        return [PLO(r["id"], r["code"], r["description"] or "") for r in rows]

    def clo_plo_map(self, program_code: str,
                    course_offering_id: Optional[int] = None) -> Dict[str, List[str]]:
        """PLO code → CLO codes mapped to it, optionally limited to one offering."""
        sql = """
            SELECT plo.code AS plo_code, clo.code AS clo_code
            FROM clo_plo_mapping m
            JOIN program_learning_outcomes plo ON plo.id = m.plo_id
            JOIN course_learning_outcomes clo ON clo.id = m.clo_id
            WHERE plo.program_code = :p
        """
        params = {"p": program_code}
        if course_offering_id is not None:
            sql += " AND clo.course_offering_id = :co"
            params["co"] = course_offering_id
        rows = _fetch_all(self.engine, sql + " ORDER BY plo.code, clo.code", params)
        mapping: Dict[str, List[str]] = defaultdict(list)
        for r in rows:
            if r["clo_code"] not in mapping[r["plo_code"]]:
                mapping[r["plo_code"]].append(r["clo_code"])
        return dict(mapping)

    def indirect_attainment(self, course_offering_id: int) -> Dict[str, float]:
        rows = _fetch_all(self.engine, """
            SELECT clo.code, ia.attainment
            FROM indirect_attainment ia
            JOIN course_learning_outcomes clo ON clo.id = ia.clo_id
            WHERE clo.course_offering_id = :co
        """, {"co": course_offering_id})
        return {r["code"]: float(r["attainment"]) for r in rows}

    def record_indirect_attainment(self, course_offering_id: int, clo_code: str,
                                   attainment: float, source: str = None,
                                   recorded_by: str = None) -> None:
        if attainment < 0 or attainment > 100:
            raise ValueError("Indirect attainment must lie within [0, 100]")
        with self.engine.begin() as conn:
            clo = _exec(conn, """
                SELECT id FROM course_learning_outcomes
                WHERE course_offering_id = :co AND lower(code) = lower(:code)
            """, {"co": course_offering_id, "code": clo_code}).fetchone()
            if not clo:
                raise ValueError(f"CLO '{clo_code}' not found for offering {course_offering_id}")
            _exec(conn, """
                INSERT INTO indirect_attainment (clo_id, attainment, source, recorded_by)
                VALUES (:cid, :a, :src, :by)
                ON CONFLICT(clo_id) DO UPDATE SET
                    attainment = excluded.attainment,
                    source = excluded.source,
                    recorded_by = excluded.recorded_by,
                    recorded_at = CURRENT_TIMESTAMP
            """, {"cid": clo[0], "a": attainment, "src": source, "by": recorded_by})


class LoggingNotifier:
    """Default notifier: records that a notification is due; delivery lives elsewhere."""

    def __init__(self):
        self.sent = []

    def notify(self, request) -> None:
        self.sent.append(request)
        logger.info(f"Notification due: {request.event} for offering {request.course_offering_id} "
                    f"({len(request.recipients)} recipients)")
