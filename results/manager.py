# results/manager.py
"""
Results Manager - entry point for every results operation.

Wires the collaborators (roster, grade scales, offering registry, ledger,
notifier) together, serializes work per course offering, persists result
snapshots and writes the lifecycle audit trail.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import text as sa_text
from sqlalchemy.engine import Engine

from core import config_store
from core.locks import KeyedLocks
from core.settings import Settings
from results.attainment import (
    AttainmentReport, ThresholdTable, compute_clo_attainment, indirect_from_survey,
    rollup_plo_attainment, threshold_table,
)
from results.calculator import ResultCalculator
from results.directory import (
    GradeScaleStore, LoggingNotifier, Notifier, OfferingRegistry, Roster,
    SqlGradeScaleStore, SqlOfferingRegistry, SqlStudentDirectory, StudentDirectory,
)
from results.errors import (
    MissingGradeScale, RecalculationInProgress, ResultFinalized, ResultNotCalculated, RowError,
    UnknownOffering, ValidationErrorKind,
)
from results.exports import marks_sheet
from results.importer import ImportResult, MarksImporter, Rows
from results.ledger import MarksLedger
from results.lifecycle import (
    Action, PublishConfirmation, check_publish, next_status, publish_notification,
)
from results.models import (
    AssessmentComponent, CalculationMethod, CourseResult, ImportPolicy, MarksKey, ResultStatus,
    StudentResult,
)
from results.statistics import CourseStatistics, compute_statistics
from results.validation import Candidate, ValidationResult, validate_candidate

logger = logging.getLogger(__name__)

THRESHOLDS_NAMESPACE = "attainment_thresholds"

# shared by every manager in the process so two managers on one engine still serialize
_OFFERING_LOCKS = KeyedLocks()


def _iso(value: Optional[datetime | date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class ResultsManager:
    """Main manager for course results and outcome attainment."""

    def __init__(self, engine: Engine, settings: Settings, actor: str = "system",
                 students: Optional[StudentDirectory] = None,
                 registry: Optional[OfferingRegistry] = None,
                 grade_scales: Optional[GradeScaleStore] = None,
                 notifier: Optional[Notifier] = None,
                 locks: Optional[KeyedLocks] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 monotonic: Callable[[], float] = time.monotonic):
        self.engine = engine
        self.settings = settings
        self.actor = actor
        self.students = students or SqlStudentDirectory(engine)
        self.registry = registry or SqlOfferingRegistry(engine)
        self.grade_scales = grade_scales or SqlGradeScaleStore(engine)
        self.notifier = notifier or LoggingNotifier()
        self.locks = locks or _OFFERING_LOCKS
        self.clock = clock
        self.ledger = MarksLedger(engine)
        self.calculator = ResultCalculator(
            self.registry, self.students, self.grade_scales, self.ledger,
            default_passing_percentage=settings.grading.passing_percentage,
            clock=clock, monotonic=monotonic,
        )

    def _locked(self, course_offering_id: int):
        return self.locks.hold(course_offering_id,
                               wait_seconds=self.settings.engine.lock_wait_seconds,
                               busy_error=RecalculationInProgress)

    # ========================================================================
    # SNAPSHOT PERSISTENCE
    # ========================================================================

    def get_result(self, course_offering_id: int) -> Optional[CourseResult]:
        """Current result snapshot for an offering, or None if never calculated."""
        with self.engine.connect() as conn:
            head = conn.execute(sa_text("""
                SELECT id, course_offering_id, grade_scale_id, calculation_method, method_params,
                       status, calculation_date, publish_date, finalized_date
                FROM course_results WHERE course_offering_id = :co
            """), {"co": course_offering_id}).fetchone()
            if not head:
                return None
            head = dict(head._mapping)
            rows = conn.execute(sa_text("""
                SELECT student_id, roll_number, name, total_marks, max_marks, percentage,
                       letter_grade, grade_point, pass_status
                FROM course_result_rows WHERE course_result_id = :rid
                ORDER BY sort_order
            """), {"rid": head["id"]}).fetchall()

        return CourseResult(
            id=head["id"],
            course_offering_id=head["course_offering_id"],
            grade_scale_id=head["grade_scale_id"],
            calculation_method=CalculationMethod(head["calculation_method"]),
            method_params=json.loads(head["method_params"] or "{}"),
            status=ResultStatus(head["status"]),
            calculation_date=_parse_dt(head["calculation_date"]),
            publish_date=_parse_dt(head["publish_date"]),
            finalized_date=_parse_dt(head["finalized_date"]),
            rows=[StudentResult(**dict(r._mapping)) for r in rows],
        )

    def _status(self, course_offering_id: int) -> ResultStatus:
        with self.engine.connect() as conn:
            row = conn.execute(sa_text(
                "SELECT status FROM course_results WHERE course_offering_id = :co"
            ), {"co": course_offering_id}).fetchone()
        return ResultStatus(row[0]) if row else ResultStatus.DRAFT

    def _audit(self, conn, result_id: int, action: Action, from_status: ResultStatus,
               to_status: ResultStatus, note: Optional[str] = None) -> None:
        conn.execute(sa_text("""
            INSERT INTO course_result_audit (course_result_id, action, from_status, to_status, actor, note)
            VALUES (:rid, :a, :f, :t, :actor, :note)
        """), {"rid": result_id, "a": action.value, "f": from_status.value, "t": to_status.value,
               "actor": self.actor, "note": note})

    def _save_snapshot(self, result: CourseResult, previous: ResultStatus) -> int:
        """Replace the offering's snapshot and its rows in one transaction."""
        with self.engine.begin() as conn:
            conn.execute(sa_text("""
                INSERT INTO course_results
                    (course_offering_id, grade_scale_id, calculation_method, method_params,
                     status, calculation_date, publish_date, finalized_date, confirmation)
                VALUES (:co, :gs, :m, :mp, :st, :cd, NULL, NULL, NULL)
                ON CONFLICT(course_offering_id) DO UPDATE SET
                    grade_scale_id = excluded.grade_scale_id,
                    calculation_method = excluded.calculation_method,
                    method_params = excluded.method_params,
                    status = excluded.status,
                    calculation_date = excluded.calculation_date,
                    updated_at = CURRENT_TIMESTAMP
            """), {
                "co": result.course_offering_id,
                "gs": result.grade_scale_id,
                "m": result.calculation_method.value,
                "mp": json.dumps(result.method_params),
                "st": result.status.value,
                "cd": _iso(result.calculation_date),
            })
            result_id = conn.execute(sa_text(
                "SELECT id FROM course_results WHERE course_offering_id = :co"
            ), {"co": result.course_offering_id}).fetchone()[0]

            conn.execute(sa_text("DELETE FROM course_result_rows WHERE course_result_id = :rid"),
                         {"rid": result_id})
            if result.rows:
                conn.execute(sa_text("""
                    INSERT INTO course_result_rows
                        (course_result_id, student_id, roll_number, name, total_marks, max_marks,
                         percentage, letter_grade, grade_point, pass_status, sort_order)
                    VALUES (:rid, :sid, :roll, :name, :tot, :max, :pct, :lg, :gp, :ps, :ord)
                """), [
                    {"rid": result_id, "sid": r.student_id, "roll": r.roll_number, "name": r.name,
                     "tot": r.total_marks, "max": r.max_marks, "pct": r.percentage,
                     "lg": r.letter_grade, "gp": r.grade_point, "ps": r.pass_status, "ord": i}
                    for i, r in enumerate(result.rows)
                ])
            self._audit(conn, result_id, Action.CALCULATE, previous, result.status,
                        note=f"{result.calculation_method.value}, {len(result.rows)} students")
        return result_id

    def _move(self, course_offering_id: int, action: Action, note: Optional[str] = None,
              **columns: Any) -> CourseResult:
        """Apply a status-only transition plus any extra column updates."""
        current = self._status(course_offering_id)
        target = next_status(current, action, course_offering_id)
        assignments = ", ".join(f"{c} = :{c}" for c in columns)
        with self.engine.begin() as conn:
            result_id = conn.execute(sa_text(
                "SELECT id FROM course_results WHERE course_offering_id = :co"
            ), {"co": course_offering_id}).fetchone()[0]
            conn.execute(sa_text(f"""
                UPDATE course_results
                SET status = :st, {assignments + ', ' if assignments else ''}updated_at = CURRENT_TIMESTAMP
                WHERE id = :rid
            """), {"st": target.value, "rid": result_id, **columns})
            self._audit(conn, result_id, action, current, target, note)
        logger.info(f"Offering {course_offering_id}: {current.value} -> {target.value} by {self.actor}")
        return self.get_result(course_offering_id)

    def audit_trail(self, course_offering_id: int) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            rows = conn.execute(sa_text("""
                SELECT a.action, a.from_status, a.to_status, a.actor, a.note, a.occurred_at
                FROM course_result_audit a
                JOIN course_results r ON r.id = a.course_result_id
                WHERE r.course_offering_id = :co
                ORDER BY a.id
            """), {"co": course_offering_id}).fetchall()
        return [dict(r._mapping) for r in rows]

    # ========================================================================
    # INGESTION
    # ========================================================================

    def _component(self, course_offering_id: int, assessment_component_id: int) -> AssessmentComponent:
        if self.registry.lookup(course_offering_id) is None:
            raise UnknownOffering(course_offering_id)
        component = self.registry.component(assessment_component_id)
        if component is None or component.course_offering_id != course_offering_id:
            raise ValueError(
                f"Assessment component {assessment_component_id} does not belong to "
                f"offering {course_offering_id}"
            )
        return component

    def _importer(self, course_offering_id: int, assessment_component_id: int) -> MarksImporter:
        component = self._component(course_offering_id, assessment_component_id)
        roster = Roster(self.students.list(course_offering_id))
        return MarksImporter(self.ledger, roster, component.questions, assessment_component_id)

    def preview_import(self, course_offering_id: int, assessment_component_id: int,
                       rows: Rows) -> ImportResult:
        """Validate a sheet and diff it against the ledger without writing."""
        return self._importer(course_offering_id, assessment_component_id).preview(rows)

    def ingest(self, course_offering_id: int, assessment_component_id: int, rows: Rows,
               policy: ImportPolicy | str = ImportPolicy.ATOMIC) -> ImportResult:
        with self._locked(course_offering_id):
            if self._status(course_offering_id) == ResultStatus.FINALIZED:
                raise ResultFinalized(course_offering_id, "import marks into")
            importer = self._importer(course_offering_id, assessment_component_id)
            return importer.apply(rows, ImportPolicy(policy))

    def _manual_candidate(self, course_offering_id: int, assessment_component_id: int,
                          student_ref: str, question_number: int, raw_value: Any) -> Candidate:
        component = self._component(course_offering_id, assessment_component_id)
        question = next((q for q in component.questions if q.question_number == question_number), None)
        if question is None:
            raise ValueError(f"Component {assessment_component_id} has no question {question_number}")
        return Candidate(row_number=1, question=question, raw_value=raw_value,
                         roll_number=student_ref, student_id=student_ref)

    def record_marks(self, course_offering_id: int, assessment_component_id: int,
                     student_ref: str, question_number: int,
                     raw_value: Any) -> Optional[ValidationResult]:
        """
        Manual entry of one cell. Returns the stored ``MarksEntry``, the
        ``RowError`` that rejected it, or None for a blank value (nothing written).
        """
        with self._locked(course_offering_id):
            if self._status(course_offering_id) == ResultStatus.FINALIZED:
                raise ResultFinalized(course_offering_id, "enter marks for")
            candidate = self._manual_candidate(course_offering_id, assessment_component_id,
                                               student_ref, question_number, raw_value)
            roster = Roster(self.students.list(course_offering_id))
            outcome = validate_candidate(candidate, roster)
            if isinstance(outcome, RowError):
                logger.warning(f"Manual entry rejected for offering {course_offering_id}: {outcome}")
            elif outcome is not None:
                self.ledger.upsert(outcome)
                logger.info(f"Manual entry by {self.actor}: {outcome.student_id} Q{question_number} "
                            f"= {outcome.marks_obtained:g}")
            return outcome

    def delete_marks(self, course_offering_id: int, assessment_component_id: int,
                     student_ref: str, question_number: int) -> bool | RowError:
        """Remove one entry; returns whether a row was deleted, or StudentNotFound."""
        with self._locked(course_offering_id):
            if self._status(course_offering_id) == ResultStatus.FINALIZED:
                raise ResultFinalized(course_offering_id, "delete marks from")
            candidate = self._manual_candidate(course_offering_id, assessment_component_id,
                                               student_ref, question_number, None)
            student = Roster(self.students.list(course_offering_id)).resolve(
                candidate.roll_number, candidate.student_id)
            if student is None:
                return RowError(candidate.row_number, ValidationErrorKind.STUDENT_NOT_FOUND,
                                student_ref=candidate.student_ref or None)
            deleted = self.ledger.delete(MarksKey(student.student_id, candidate.question.id,
                                                  assessment_component_id))
            if deleted:
                logger.info(f"Manual delete by {self.actor}: {student.student_id} Q{question_number}")
            return deleted

    # ========================================================================
    # CALCULATION & LIFECYCLE
    # ========================================================================

    def _default_grade_scale(self, course_offering_id: int) -> int:
        existing = self.get_result(course_offering_id)
        if existing is not None and existing.grade_scale_id is not None:
            return existing.grade_scale_id
        scales = self.grade_scales.list()
        if not scales:
            raise MissingGradeScale(None)
        return scales[0].id

    def calculate(self, course_offering_id: int, grade_scale_id: Optional[int] = None,
                  method: Optional[CalculationMethod | str] = None,
                  best_of: Optional[int] = None) -> CourseResult:
        """
        Compute and store a fresh snapshot. Allowed from draft and calculated;
        a failure or timeout leaves the previous snapshot untouched.

        With unchanged inputs the stored rows and the statistics derived from
        them are identical; ``calculation_date`` records the latest run.
        """
        grading = self.settings.grading
        with self._locked(course_offering_id):
            previous = self._status(course_offering_id)
            next_status(previous, Action.CALCULATE, course_offering_id)

            if grade_scale_id is None:
                grade_scale_id = self._default_grade_scale(course_offering_id)
            method = CalculationMethod(method or grading.default_method)
            if method == CalculationMethod.BEST_OF_N and best_of is None:
                best_of = grading.default_best_of

            result = self.calculator.calculate(
                course_offering_id, grade_scale_id, method, best_of,
                timeout=self.settings.engine.calculation_timeout_seconds,
            )
            result.id = self._save_snapshot(result, previous)
            return result

    def revert_to_draft(self, course_offering_id: int, note: Optional[str] = None) -> CourseResult:
        with self._locked(course_offering_id):
            return self._move(course_offering_id, Action.REVERT, note)

    def publish(self, course_offering_id: int, confirmation: Optional[PublishConfirmation],
                publish_date: Optional[date | datetime] = None,
                recipients: Optional[Sequence[str]] = None) -> CourseResult:
        with self._locked(course_offering_id):
            next_status(self._status(course_offering_id), Action.PUBLISH, course_offering_id)
            check_publish(confirmation, publish_date)
            result = self._move(course_offering_id, Action.PUBLISH, confirmation.note,
                                publish_date=_iso(publish_date),
                                confirmation=json.dumps(confirmation.to_dict()))

        offering = self.registry.lookup(course_offering_id)
        request = publish_notification(
            course_offering_id,
            list(recipients) if recipients is not None else [r.student_id for r in result.rows],
            publish_date, len(result.rows),
            course_code=offering.course_code if offering else None,
        )
        try:
            self.notifier.notify(request)
        except Exception:
            logger.exception(f"Publish notification failed for offering {course_offering_id}")
        return result

    def finalize(self, course_offering_id: int, note: Optional[str] = None) -> CourseResult:
        with self._locked(course_offering_id):
            return self._move(course_offering_id, Action.FINALIZE, note,
                              finalized_date=_iso(self.clock()))

    # ========================================================================
    # REPORTS
    # ========================================================================

    def statistics(self, course_offering_id: int) -> CourseStatistics:
        result = self.get_result(course_offering_id)
        if result is None:
            raise ResultNotCalculated(course_offering_id, ResultStatus.DRAFT.value)
        questions = [q for c in self.registry.components(course_offering_id) for q in c.questions]
        entries = self.ledger.query(question_ids=[q.id for q in questions])
        return compute_statistics(result, questions, entries)

    def threshold_table(self, program_code: Optional[str] = None,
                        name: Optional[str] = None) -> ThresholdTable:
        """Named table, else the program's stored override, else the configured default."""
        if name:
            return threshold_table(name)
        if program_code:
            cfg = config_store.get(self.engine, program_code, THRESHOLDS_NAMESPACE)
            if cfg:
                return ThresholdTable.from_config(cfg)
        return threshold_table(self.settings.attainment.threshold_table)

    def save_threshold_table(self, program_code: str, table: ThresholdTable, reason: str = "") -> int:
        errors = table.validate()
        if errors:
            raise ValueError("; ".join(errors))
        version, _ = config_store.save(self.engine, program_code, THRESHOLDS_NAMESPACE,
                                       table.to_config(), saved_by=self.actor, reason=reason)
        return version

    def attainment(self, course_offering_id: int, threshold_table_name: Optional[str] = None,
                   direct_weight: Optional[float] = None) -> AttainmentReport:
        offering = self.registry.lookup(course_offering_id)
        if offering is None:
            raise UnknownOffering(course_offering_id)
        thresholds = self.threshold_table(offering.program_code, threshold_table_name)
        weight = self.settings.attainment.direct_weight if direct_weight is None else direct_weight

        questions = [q for c in self.registry.components(course_offering_id) for q in c.questions]
        entries = self.ledger.query(question_ids=[q.id for q in questions])
        students = [s.student_id for s in self.students.list(course_offering_id)]

        clo_attainment = compute_clo_attainment(
            questions, entries,
            clos=self.registry.clos(course_offering_id),
            students=students,
            indirect=self.registry.indirect_attainment(course_offering_id),
            direct_weight=weight,
            thresholds=thresholds,
        )
        plo_attainment, errors = [], []
        if offering.program_code:
            plo_attainment, errors = rollup_plo_attainment(
                self.registry.plos(offering.program_code),
                self.registry.clo_plo_map(offering.program_code, course_offering_id),
                clo_attainment, thresholds,
            )
        return AttainmentReport(clo_attainment, plo_attainment, list(errors), thresholds.name)

    def record_indirect(self, course_offering_id: int, clo_code: str,
                        attainment: Optional[float] = None, survey_average: Optional[float] = None,
                        source: Optional[str] = None) -> float:
        """Store indirect attainment given directly as a percentage or as a 1-5 survey average."""
        if (attainment is None) == (survey_average is None):
            raise ValueError("Give exactly one of attainment or survey_average")
        if survey_average is not None:
            attainment = indirect_from_survey(survey_average)
        self.registry.record_indirect_attainment(course_offering_id, clo_code, attainment,
                                                 source=source, recorded_by=self.actor)
        logger.info(f"Indirect attainment for {clo_code} (offering {course_offering_id}): {attainment}")
        return attainment

    def export_marks_sheet(self, course_offering_id: int, assessment_component_id: int,
                           template: bool = False):
        component = self._component(course_offering_id, assessment_component_id)
        entries = self.ledger.query(assessment_component_id=assessment_component_id)
        return marks_sheet(self.students.list(course_offering_id), component.questions,
                           entries, template=template)
