# schemas/course_results_schema.py
"""
Course result snapshots: one current result per course offering, its
per-student rows, and an audit trail of lifecycle transitions.
"""

from __future__ import annotations
from sqlalchemy import text as sa_text
from sqlalchemy.engine import Engine
from core.schema_registry import register


def _exec(conn, sql: str):
    """Execute SQL with SQLAlchemy text wrapper."""
    conn.execute(sa_text(sql))


def create_course_results(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS course_results(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_offering_id INTEGER NOT NULL UNIQUE,
            grade_scale_id INTEGER,
            calculation_method TEXT NOT NULL CHECK(calculation_method IN ('weighted','simple','best_of_n')),
            method_params TEXT NOT NULL DEFAULT '{}',
            status TEXT NOT NULL CHECK(status IN ('draft','calculated','published','finalized')) DEFAULT 'draft',
            calculation_date TIMESTAMP,
            publish_date TIMESTAMP,
            finalized_date TIMESTAMP,
            confirmation TEXT,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(course_offering_id) REFERENCES course_offerings(id) ON DELETE CASCADE
        )
        """)


def create_course_result_rows(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS course_result_rows(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_result_id INTEGER NOT NULL,
            student_id TEXT NOT NULL,
            roll_number TEXT,
            name TEXT,
            total_marks REAL NOT NULL,
            max_marks REAL NOT NULL,
            percentage REAL NOT NULL CHECK(percentage >= 0 AND percentage <= 100),
            letter_grade TEXT,
            grade_point REAL,
            pass_status TEXT NOT NULL CHECK(pass_status IN ('Pass','Fail')),
            sort_order INTEGER NOT NULL,
            UNIQUE(course_result_id, student_id),
            FOREIGN KEY(course_result_id) REFERENCES course_results(id) ON DELETE CASCADE
        )
        """)


def create_course_result_audit(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS course_result_audit(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_result_id INTEGER NOT NULL,
            action TEXT NOT NULL,
            from_status TEXT,
            to_status TEXT NOT NULL,
            actor TEXT,
            note TEXT,
            occurred_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)
        _exec(conn, "CREATE INDEX IF NOT EXISTS ix_cra_result ON course_result_audit(course_result_id)")


@register
def ensure_course_results_schema(engine: Engine):
    create_course_results(engine)
    create_course_result_rows(engine)
    create_course_result_audit(engine)
