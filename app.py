# app.py
"""Command line entry point for the results engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from core.db import get_engine, init_db
from core.settings import load_settings
from results.errors import ResultsError, RowError
from results.exports import results_sheet
from results.lifecycle import PublishConfirmation
from results.manager import ResultsManager
from results.statistics import grade_distribution

logger = logging.getLogger("results.app")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Assessment results and outcome attainment")
    parser.add_argument("--settings", default=None, help="Path to settings.yaml (default: RESULTS_SETTINGS or config/settings.yaml)")
    parser.add_argument("--actor", default="cli", help="Name recorded in the audit trail")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and seed the default grade scale")

    for name in ("import", "preview"):
        p = sub.add_parser(name, help=f"{name.capitalize()} a marks sheet (CSV or Excel)")
        p.add_argument("offering", type=int)
        p.add_argument("component", type=int)
        p.add_argument("path")
        if name == "import":
            p.add_argument("--policy", choices=["atomic", "best_effort"], default="atomic")

    p = sub.add_parser("enter", help="Enter (or clear with --delete) one student's marks for a question")
    p.add_argument("offering", type=int)
    p.add_argument("component", type=int)
    p.add_argument("student", help="Roll number or student id")
    p.add_argument("question", type=int)
    p.add_argument("marks", nargs="?", default=None)
    p.add_argument("--delete", action="store_true")

    p = sub.add_parser("calculate", help="Calculate course results")
    p.add_argument("offering", type=int)
    p.add_argument("--grade-scale", type=int, default=None)
    p.add_argument("--method", choices=["weighted", "simple", "best_of_n"], default=None)
    p.add_argument("--best-of", type=int, default=None)
    p.add_argument("--output", default=None, help="Write the per-student results to this CSV")

    p = sub.add_parser("revert", help="Send a calculated result back to draft")
    p.add_argument("offering", type=int)
    p.add_argument("--note", default=None)

    p = sub.add_parser("publish", help="Publish a calculated result")
    p.add_argument("offering", type=int)
    p.add_argument("--marks-verified", action="store_true")
    p.add_argument("--grades-reviewed", action="store_true")
    p.add_argument("--approval-obtained", action="store_true")
    p.add_argument("--publish-date", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    p.add_argument("--note", default=None)

    p = sub.add_parser("finalize", help="Lock a published result")
    p.add_argument("offering", type=int)
    p.add_argument("--note", default=None)

    p = sub.add_parser("stats", help="Course statistics report")
    p.add_argument("offering", type=int)

    p = sub.add_parser("attainment", help="CLO/PLO attainment report")
    p.add_argument("offering", type=int)
    p.add_argument("--thresholds", default=None, help="four_tier or three_tier")

    p = sub.add_parser("indirect", help="Record indirect (survey) attainment for a CLO")
    p.add_argument("offering", type=int)
    p.add_argument("clo")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--attainment", type=float)
    group.add_argument("--survey-average", type=float)
    p.add_argument("--source", default=None)

    p = sub.add_parser("export", help="Export a marks sheet or blank template")
    p.add_argument("offering", type=int)
    p.add_argument("component", type=int)
    p.add_argument("path")
    p.add_argument("--template", action="store_true")
    return parser


def _read_sheet(path: str) -> pd.DataFrame:
    # roll numbers stay text so leading zeros survive
    if Path(path).suffix.lower() == ".xlsx":
        return pd.read_excel(path, engine="openpyxl", dtype={"roll_number": str, "student_id": str})
    return pd.read_csv(path, dtype={"roll_number": str, "student_id": str})


def _print(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def run(args: argparse.Namespace) -> int:
    settings = load_settings(args.settings)
    logging.basicConfig(level=getattr(logging, settings.app.log_level.upper(), logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    engine = get_engine(settings.db.url)
    init_db(engine)

    if args.command == "init-db":
        logger.info(f"Database ready at {settings.db.url}")
        return 0

    manager = ResultsManager(engine, settings, actor=args.actor)

    if args.command == "preview":
        result = manager.preview_import(args.offering, args.component, _read_sheet(args.path))
        _print({**result.summary(), "changes": result.diff_counts(), "warnings": result.warnings})
        return 0 if not result.errors else 1

    if args.command == "import":
        result = manager.ingest(args.offering, args.component, _read_sheet(args.path), args.policy)
        _print({**result.summary(), "warnings": result.warnings})
        return 0 if not result.errors else 1

    if args.command == "enter":
        if args.delete:
            outcome = manager.delete_marks(args.offering, args.component, args.student, args.question)
        else:
            outcome = manager.record_marks(args.offering, args.component, args.student, args.question,
                                           args.marks)
        if isinstance(outcome, RowError):
            logger.error(str(outcome))
            return 1
        _print({"student": args.student, "question": args.question,
                "marks": getattr(outcome, "marks_obtained", None), "deleted": outcome is True})
        return 0

    if args.command == "calculate":
        result = manager.calculate(args.offering, args.grade_scale, args.method, args.best_of)
        if args.output:
            results_sheet(result).to_csv(args.output, index=False)
        _print({"status": result.status.value, "students": len(result.rows),
                "grades": grade_distribution(result)})
        return 0

    if args.command == "revert":
        _print({"status": manager.revert_to_draft(args.offering, args.note).status.value})
        return 0

    if args.command == "publish":
        confirmation = PublishConfirmation(args.marks_verified, args.grades_reviewed,
                                           args.approval_obtained, note=args.note)
        result = manager.publish(args.offering, confirmation, args.publish_date)
        _print({"status": result.status.value, "publish_date": result.publish_date})
        return 0

    if args.command == "finalize":
        _print({"status": manager.finalize(args.offering, args.note).status.value})
        return 0

    if args.command == "stats":
        _print(manager.statistics(args.offering).to_report())
        return 0

    if args.command == "attainment":
        _print(manager.attainment(args.offering, args.thresholds).to_report())
        return 0

    if args.command == "indirect":
        value = manager.record_indirect(args.offering, args.clo, args.attainment,
                                        args.survey_average, source=args.source)
        _print({"clo_code": args.clo, "indirect_attainment": value})
        return 0

    if args.command == "export":
        frame = manager.export_marks_sheet(args.offering, args.component, template=args.template)
        if Path(args.path).suffix.lower() == ".xlsx":
            frame.to_excel(args.path, index=False, engine="openpyxl")
        else:
            frame.to_csv(args.path, index=False)
        logger.info(f"Wrote {len(frame)} rows to {args.path}")
        return 0

    return 2


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        return run(args)
    except (ResultsError, ValueError) as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
