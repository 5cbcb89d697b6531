# schemas/_seed.py
from __future__ import annotations

import os
import logging
from sqlalchemy import text as sa_text
from core.schema_registry import register
from schemas.grade_scales_schema import ensure_grade_scales_schema

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# Default grade scale (4.0 scale, lower bound inclusive)
# ──────────────────────────────────────────────────────────────────────────────

DEFAULT_SCALE_NAME = os.getenv("SEED_GRADE_SCALE_NAME", "Standard 4.0 Scale")

DEFAULT_BANDS = [
    # (lower_bound, letter, grade_point, remarks)
    (80.0, "A+", 4.00, "Outstanding"),
    (75.0, "A", 3.75, "Excellent"),
    (70.0, "A-", 3.50, "Very Good"),
    (65.0, "B+", 3.25, "Good"),
    (60.0, "B", 3.00, "Above Average"),
    (55.0, "B-", 2.75, "Average"),
    (50.0, "C+", 2.50, "Below Average"),
    (45.0, "C", 2.25, "Pass"),
    (40.0, "D", 2.00, "Conditional Pass"),
    (0.0, "F", 0.00, "Fail"),
]

SEED_SHOULD_RUN = os.getenv("SEED_RUN", "1").lower() not in ("0", "false")


@register
def seed_default_grade_scale(engine):
    """Idempotent: insert the default grade scale when no scale exists yet."""
    if not SEED_SHOULD_RUN:
        return
    ensure_grade_scales_schema(engine)
    with engine.begin() as conn:
        count = conn.execute(sa_text("SELECT COUNT(*) FROM grade_scales")).scalar()
        if count:
            return
        scale_id = conn.execute(sa_text(
            "INSERT INTO grade_scales (name, is_active) VALUES (:n, 1)"
        ), {"n": DEFAULT_SCALE_NAME}).lastrowid
        for lower, letter, point, remarks in DEFAULT_BANDS:
            conn.execute(sa_text("""
                INSERT INTO grade_bands (grade_scale_id, lower_bound, letter_grade, grade_point, remarks)
                VALUES (:sid, :lb, :lg, :gp, :rm)
            """), {"sid": scale_id, "lb": lower, "lg": letter, "gp": point, "rm": remarks})
    logger.info(f"Seeded grade scale '{DEFAULT_SCALE_NAME}' with {len(DEFAULT_BANDS)} bands")
