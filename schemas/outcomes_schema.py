# schemas/outcomes_schema.py
"""
Learning outcomes schema: CLOs per course offering, PLOs per program,
question→CLO and CLO→PLO mappings, and externally supplied indirect
(survey) attainment.
"""

from __future__ import annotations
from sqlalchemy import text as sa_text
from sqlalchemy.engine import Engine
from core.schema_registry import register


def _exec(conn, sql: str):
    """Execute SQL with SQLAlchemy text wrapper."""
    conn.execute(sa_text(sql))


def create_clos(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS course_learning_outcomes(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_offering_id INTEGER NOT NULL,
            code TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            FOREIGN KEY(course_offering_id) REFERENCES course_offerings(id) ON DELETE CASCADE
        )
        """)
        _exec(conn, """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_clo_offering_code
        ON course_learning_outcomes(course_offering_id, lower(code))
        """)


def create_plos(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS program_learning_outcomes(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            program_code TEXT NOT NULL,
            code TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            sort_order INTEGER NOT NULL DEFAULT 100
        )
        """)
        _exec(conn, """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_plo_program_code
        ON program_learning_outcomes(program_code, lower(code))
        """)


def create_mappings(engine: Engine):
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS question_clo_mapping(
            question_id INTEGER NOT NULL,
            clo_id INTEGER NOT NULL,
            PRIMARY KEY(question_id, clo_id),
            FOREIGN KEY(question_id) REFERENCES questions(id) ON DELETE CASCADE,
            FOREIGN KEY(clo_id) REFERENCES course_learning_outcomes(id) ON DELETE CASCADE
        )
        """)
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS clo_plo_mapping(
            clo_id INTEGER NOT NULL,
            plo_id INTEGER NOT NULL,
            PRIMARY KEY(clo_id, plo_id),
            FOREIGN KEY(clo_id) REFERENCES course_learning_outcomes(id) ON DELETE CASCADE,
            FOREIGN KEY(plo_id) REFERENCES program_learning_outcomes(id) ON DELETE CASCADE
        )
        """)
        _exec(conn, "CREATE INDEX IF NOT EXISTS ix_cpm_plo ON clo_plo_mapping(plo_id)")


def create_indirect_attainment(engine: Engine):
    """Survey-derived CLO attainment, already converted to percent."""
    with engine.begin() as conn:
        _exec(conn, """
        CREATE TABLE IF NOT EXISTS indirect_attainment(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            clo_id INTEGER NOT NULL UNIQUE,
            attainment REAL NOT NULL CHECK(attainment >= 0 AND attainment <= 100),
            source TEXT,
            recorded_by TEXT,
            recorded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(clo_id) REFERENCES course_learning_outcomes(id) ON DELETE CASCADE
        )
        """)


@register
def ensure_outcomes_schema(engine: Engine):
    """Creates CLO/PLO tables and their mappings."""
    create_clos(engine)
    create_plos(engine)
    create_mappings(engine)
    create_indirect_attainment(engine)
