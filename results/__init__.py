# results/__init__.py
"""
Assessment Results & Outcome Attainment

Main components:
- models: Data models and enums
- validation: Per-cell marks validation
- ledger: Marks store (upsert / query)
- importer: Bulk marks ingestion (atomic or best-effort)
- calculator: Course totals, percentages and grades
- statistics: Course and per-question statistics
- attainment: CLO / PLO attainment roll-up
- lifecycle: draft → calculated → published → finalized
- manager: ResultsManager tying it all together

Usage:
    from results.manager import ResultsManager
    manager = ResultsManager(engine, load_settings(), actor="registrar")
    manager.ingest(offering_id, component_id, frame)
    manager.calculate(offering_id)
"""

from .models import (
    CalculationMethod,
    ResultStatus,
    ImportPolicy,
    MarksEntry,
    GradeScale,
    GradeBand,
    CourseResult,
    StudentResult,
)

from .lifecycle import PublishConfirmation

from .manager import ResultsManager

__all__ = [
    # Data models
    'CalculationMethod',
    'ResultStatus',
    'ImportPolicy',
    'MarksEntry',
    'GradeScale',
    'GradeBand',
    'CourseResult',
    'StudentResult',

    # Lifecycle
    'PublishConfirmation',

    # Manager
    'ResultsManager',
]
