# schemas/academics_schema.py
"""
Academic structure consumed by the results engine: students, course
offerings, enrollments, assessment components and their questions.

These tables are owned by other parts of the institution's system; the
engine only reads them.
"""

from __future__ import annotations
from sqlalchemy import text as sa_text
from sqlalchemy.engine import Engine
from core.schema_registry import register


def _exec(conn, sql: str):
    """Execute SQL with SQLAlchemy text wrapper."""
    conn.execute(sa_text(sql))


def create_students(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS students(
            student_id TEXT PRIMARY KEY,
            roll_number TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)
        _exec(conn, "CREATE INDEX IF NOT EXISTS ix_students_roll ON students(lower(roll_number))")


def create_course_offerings(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS course_offerings(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_code TEXT NOT NULL,
            title TEXT,
            program_code TEXT,
            term TEXT,
            passing_percentage REAL CHECK(passing_percentage IS NULL OR
                                          (passing_percentage >= 0 AND passing_percentage <= 100)),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)
        _exec(conn, "CREATE INDEX IF NOT EXISTS ix_co_program ON course_offerings(program_code)")


def create_enrollments(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS course_enrollments(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_offering_id INTEGER NOT NULL,
            student_id TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('active','completed','withdrawn','dropped')) DEFAULT 'active',
            enrolled_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(course_offering_id, student_id),
            FOREIGN KEY(course_offering_id) REFERENCES course_offerings(id) ON DELETE CASCADE,
            FOREIGN KEY(student_id) REFERENCES students(student_id) ON DELETE CASCADE
        )
        """)
        _exec(conn, "CREATE INDEX IF NOT EXISTS ix_ce_offering ON course_enrollments(course_offering_id, status)")


def create_assessment_components(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS assessment_components(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_offering_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            weight REAL NOT NULL DEFAULT 1 CHECK(weight >= 0),
            sequence INTEGER NOT NULL DEFAULT 100,
            FOREIGN KEY(course_offering_id) REFERENCES course_offerings(id) ON DELETE CASCADE
        )
        """)
        _exec(conn, "CREATE INDEX IF NOT EXISTS ix_ac_offering ON assessment_components(course_offering_id, sequence)")


def create_questions(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS questions(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            assessment_component_id INTEGER NOT NULL,
            question_number INTEGER NOT NULL,
            total_marks REAL NOT NULL CHECK(total_marks > 0),
            question_type TEXT NOT NULL DEFAULT 'descriptive',
            UNIQUE(assessment_component_id, question_number),
            FOREIGN KEY(assessment_component_id) REFERENCES assessment_components(id) ON DELETE CASCADE
        )
        """)


@register
def ensure_academics_schema(engine: Engine):
    create_students(engine)
    create_course_offerings(engine)
    create_enrollments(engine)
    create_assessment_components(engine)
    create_questions(engine)
