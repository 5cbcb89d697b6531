# results/importer.py
"""
Bulk marks ingestion.

Sheet rows (a pandas DataFrame or any iterable of mappings) are converted
into validated marks entries for one assessment component, then committed
under one of two policies:

- ATOMIC: validate everything, report every error, commit only when the
  sheet is clean, in a single transaction.
- BEST_EFFORT: validate and commit row by row; earlier successes stay.

Row 1 is the header, so the first data row is reported as row 2.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from results.directory import Roster
from results.errors import RowError, ValidationErrorKind
from results.ledger import MarksLedger
from results.models import ImportPolicy, MarksEntry, Question
from results.validation import IDENTITY_COLUMNS, validate_row

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2

Rows = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass
class RowDiff:
    """How one validated entry compares with the ledger."""
    row_number: int
    entry: MarksEntry
    previous: Optional[float]

    @property
    def change(self) -> str:
        if self.previous is None:
            return "new"
        return "unchanged" if self.previous == self.entry.marks_obtained else "changed"


@dataclass
class ImportResult:
    """Results of an import operation."""
    assessment_component_id: int
    policy: Optional[ImportPolicy] = None
    dry_run: bool = False
    committed: bool = False
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    imported_rows: int = 0
    failed_rows: int = 0
    entries_written: int = 0
    errors: List[RowError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    diff: List[RowDiff] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return self.imported_rows

    @property
    def failed(self) -> int:
        return self.failed_rows

    def error_messages(self) -> List[str]:
        return [str(e) for e in self.errors]

    def diff_counts(self) -> Dict[str, int]:
        counts = {"new": 0, "changed": 0, "unchanged": 0}
        for d in self.diff:
            counts[d.change] += 1
        return counts

    def summary(self) -> Dict[str, Any]:
        return {
            "imported": self.imported_rows,
            "failed": self.failed_rows,
            "errors": self.error_messages(),
        }


# ============================================================================
# ROW NORMALISATION
# ============================================================================

def _normalise_column(name: Any) -> str:
    return str(name).strip().lower().replace(" ", "_")


def iter_sheet_rows(rows: Rows) -> Tuple[List[str], Iterator[Tuple[int, Dict[str, Any]]]]:
    """Column names plus (row_number, row) pairs with normalised column names."""
    if isinstance(rows, pd.DataFrame):
        columns = [_normalise_column(c) for c in rows.columns]
        records = [dict(zip(columns, values)) for values in rows.itertuples(index=False, name=None)]
    else:
        records = [{_normalise_column(k): v for k, v in r.items()} for r in rows]
        columns = []
        for r in records:
            for k in r:
                if k not in columns:
                    columns.append(k)

    def _gen():
        for offset, record in enumerate(records):
            yield FIRST_DATA_ROW + offset, record

    return columns, _gen()


# ============================================================================
# IMPORTER
# ============================================================================

class MarksImporter:
    """Validates and commits marks sheets for one assessment component."""

    def __init__(self, ledger: MarksLedger, roster: Roster, questions: Sequence[Question],
                 assessment_component_id: int):
        self.ledger = ledger
        self.roster = roster
        self.questions = sorted(questions, key=lambda q: q.question_number)
        self.assessment_component_id = assessment_component_id

    def _check_columns(self, columns: List[str], result: ImportResult) -> bool:
        if not any(c in columns for c in IDENTITY_COLUMNS):
            result.errors.append(RowError(1, ValidationErrorKind.MISSING_COLUMN,
                                          value=" or ".join(IDENTITY_COLUMNS)))
            return False
        known = {q.column for q in self.questions} | set(IDENTITY_COLUMNS) | {"name"}
        unknown = [c for c in columns if c not in known]
        if unknown:
            result.warnings.append(f"Ignored columns: {', '.join(unknown)}")
        missing = [q.column for q in self.questions if q.column not in columns]
        if missing:
            result.warnings.append(f"No column for: {', '.join(missing)}")
        return True

    def _validate_all(self, rows: Rows, result: ImportResult):
        columns, records = iter_sheet_rows(rows)
        if not self._check_columns(columns, result):
            return None
        validated = []
        for row_number, record in records:
            result.total_rows += 1
            entries, errors = validate_row(row_number, record, self.roster, self.questions)
            if errors:
                result.invalid_rows += 1
            else:
                result.valid_rows += 1
            validated.append((row_number, entries, errors))
        return validated

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    def preview(self, rows: Rows) -> ImportResult:
        """Validate without committing and diff valid entries against the ledger."""
        result = ImportResult(assessment_component_id=self.assessment_component_id, dry_run=True)
        validated = self._validate_all(rows, result)
        if validated is None:
            return result

        existing = {e.key: e.marks_obtained
                    for e in self.ledger.query(assessment_component_id=self.assessment_component_id)}
        for row_number, entries, errors in validated:
            result.errors.extend(errors)
            for entry in entries:
                result.diff.append(RowDiff(row_number, entry, existing.get(entry.key)))
        return result

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def apply(self, rows: Rows, policy: ImportPolicy = ImportPolicy.ATOMIC) -> ImportResult:
        policy = ImportPolicy(policy)
        result = ImportResult(assessment_component_id=self.assessment_component_id, policy=policy)
        validated = self._validate_all(rows, result)
        if validated is None:
            result.failed_rows = result.total_rows
            return result

        if policy == ImportPolicy.ATOMIC:
            self._apply_atomic(validated, result)
        else:
            self._apply_best_effort(validated, result)

        logger.info(
            f"Marks import ({policy.value}) for component {self.assessment_component_id}: "
            f"{result.imported_rows} imported, {result.failed_rows} failed, "
            f"{len(result.errors)} errors"
        )
        return result

    def _apply_atomic(self, validated, result: ImportResult) -> None:
        for _, _, errors in validated:
            result.errors.extend(errors)
        if result.errors:
            result.failed_rows = result.invalid_rows
            return
        entries = [e for _, row_entries, _ in validated for e in row_entries]
        result.entries_written = self.ledger.upsert_batch(entries)
        result.imported_rows = result.valid_rows
        result.committed = True

    def _apply_best_effort(self, validated, result: ImportResult) -> None:
        for row_number, entries, errors in validated:
            if errors:
                result.failed_rows += 1
                result.errors.extend(errors)
                continue
            result.entries_written += self.ledger.upsert_batch(entries)
            result.imported_rows += 1
        result.committed = result.imported_rows > 0
