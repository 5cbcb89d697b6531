from __future__ import annotations
from sqlalchemy import text as sa_text
from core.schema_registry import register


@register
def ensure_grade_scales_schema(engine):
    with engine.begin() as conn:
        conn.execute(sa_text("""
        CREATE TABLE IF NOT EXISTS grade_scales (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )"""))
        conn.execute(sa_text("""
        CREATE TABLE IF NOT EXISTS grade_bands (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            grade_scale_id INTEGER NOT NULL,
            lower_bound REAL NOT NULL CHECK(lower_bound >= 0 AND lower_bound <= 100),
            letter_grade TEXT NOT NULL,
            grade_point REAL NOT NULL DEFAULT 0,
            remarks TEXT,
            UNIQUE(grade_scale_id, lower_bound),
            FOREIGN KEY(grade_scale_id) REFERENCES grade_scales(id) ON DELETE CASCADE
        )"""))
