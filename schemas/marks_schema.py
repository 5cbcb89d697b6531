from __future__ import annotations
from sqlalchemy import text as sa_text
from core.schema_registry import register


@register
def ensure_marks_schema(engine):
    with engine.begin() as conn:
        conn.execute(sa_text("""
        CREATE TABLE IF NOT EXISTS marks_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL,
            question_id INTEGER NOT NULL,
            assessment_component_id INTEGER NOT NULL,
            marks_obtained REAL NOT NULL CHECK(marks_obtained >= 0),
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(student_id, question_id, assessment_component_id),
            FOREIGN KEY(question_id) REFERENCES questions(id) ON DELETE CASCADE,
            FOREIGN KEY(assessment_component_id) REFERENCES assessment_components(id) ON DELETE CASCADE
        )"""))
        conn.execute(sa_text(
            "CREATE INDEX IF NOT EXISTS ix_me_component ON marks_entries(assessment_component_id)"
        ))
        conn.execute(sa_text(
            "CREATE INDEX IF NOT EXISTS ix_me_question ON marks_entries(question_id)"
        ))
