# results/ledger.py
"""Marks ledger: keyed store of marks entries with last-write-wins upserts."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import text as sa_text
from sqlalchemy.engine import Connection, Engine

from results.models import MarksEntry, MarksKey

logger = logging.getLogger(__name__)

_UPSERT_SQL = sa_text("""
    INSERT INTO marks_entries (student_id, question_id, assessment_component_id, marks_obtained)
    VALUES (:s, :q, :c, :m)
    ON CONFLICT(student_id, question_id, assessment_component_id) DO UPDATE
    SET marks_obtained = excluded.marks_obtained,
        updated_at = CURRENT_TIMESTAMP
""")


def _params(entry: MarksEntry) -> dict:
    return dict(s=entry.student_id, q=entry.question_id, c=entry.assessment_component_id,
                m=float(entry.marks_obtained))


def _row_to_entry(r) -> MarksEntry:
    return MarksEntry(
        student_id=str(r[0]),
        question_id=int(r[1]),
        assessment_component_id=int(r[2]),
        marks_obtained=float(r[3]),
    )


class MarksLedger:
    """
    SQL-backed ledger. No two entries share a (student, question, component)
    key; ``upsert_batch`` runs in a single transaction.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def upsert(self, entry: MarksEntry, conn: Optional[Connection] = None) -> None:
        if conn is not None:
            conn.execute(_UPSERT_SQL, _params(entry))
            return
        with self.engine.begin() as conn:
            conn.execute(_UPSERT_SQL, _params(entry))

    def upsert_batch(self, entries: Iterable[MarksEntry]) -> int:
        """Apply every entry or none of them. Returns the number applied."""
        entries = list(entries)
        if not entries:
            return 0
        with self.engine.begin() as conn:
            conn.execute(_UPSERT_SQL, [_params(e) for e in entries])
        logger.info(f"Ledger batch upsert: {len(entries)} entries")
        return len(entries)

    def get(self, key: MarksKey) -> Optional[MarksEntry]:
        with self.engine.begin() as conn:
            row = conn.execute(sa_text("""
                SELECT student_id, question_id, assessment_component_id, marks_obtained
                FROM marks_entries
                WHERE student_id = :s AND question_id = :q AND assessment_component_id = :c
            """), dict(s=key.student_id, q=key.question_id, c=key.assessment_component_id)).fetchone()
        return _row_to_entry(row) if row else None

    def query(self, student_id: Optional[str] = None, question_id: Optional[int] = None,
              assessment_component_id: Optional[int] = None,
              question_ids: Optional[Sequence[int]] = None) -> List[MarksEntry]:
        """Entries matching every given filter, in a stable order."""
        clauses = []
        params = {}
        if student_id is not None:
            clauses.append("student_id = :s")
            params["s"] = str(student_id)
        if question_id is not None:
            clauses.append("question_id = :q")
            params["q"] = question_id
        if assessment_component_id is not None:
            clauses.append("assessment_component_id = :c")
            params["c"] = assessment_component_id
        if question_ids is not None:
            ids = [int(i) for i in question_ids]
            if not ids:
                return []
            clauses.append(f"question_id IN ({','.join(str(i) for i in ids)})")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self.engine.begin() as conn:
            rows = conn.execute(sa_text(f"""
                SELECT student_id, question_id, assessment_component_id, marks_obtained
                FROM marks_entries {where}
                ORDER BY assessment_component_id, question_id, student_id
            """), params).fetchall()
        return [_row_to_entry(r) for r in rows]

    def delete(self, key: MarksKey) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(sa_text("""
                DELETE FROM marks_entries
                WHERE student_id = :s AND question_id = :q AND assessment_component_id = :c
            """), dict(s=key.student_id, q=key.question_id, c=key.assessment_component_id))
        return result.rowcount > 0
