"""Tests for the command line entry point."""

import json

import pandas as pd
from sqlalchemy import text as sa_text

import app
from core.db import get_engine


def _settings_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        f"app: {{name: cli-test}}\ndb: {{url: 'sqlite:///{tmp_path / 'cli.db'}'}}\n",
        encoding="utf-8",
    )
    return str(path)


def test_cli_import_calculate_and_stats(tmp_path, capsys):
    settings = _settings_file(tmp_path)
    assert app.main(["--settings", settings, "init-db"]) == 0

    engine = get_engine(f"sqlite:///{tmp_path / 'cli.db'}")
    with engine.begin() as conn:
        co = conn.execute(sa_text(
            "INSERT INTO course_offerings (course_code, program_code) VALUES ('CS101', 'BSCS')"
        )).lastrowid
        for sid, roll in (("stu-1", "S1"), ("stu-2", "S2")):
            conn.execute(sa_text("INSERT INTO students (student_id, roll_number, name) VALUES (:s, :r, :r)"),
                         {"s": sid, "r": roll})
            conn.execute(sa_text("INSERT INTO course_enrollments (course_offering_id, student_id) VALUES (:co, :s)"),
                         {"co": co, "s": sid})
        component_id = conn.execute(sa_text(
            "INSERT INTO assessment_components (course_offering_id, name) VALUES (:co, 'Midterm')"
        ), {"co": co}).lastrowid
        conn.execute(sa_text(
            "INSERT INTO questions (assessment_component_id, question_number, total_marks) VALUES (:c, 1, 10)"
        ), {"c": component_id})
    engine.dispose()

    sheet = tmp_path / "marks.csv"
    pd.DataFrame({"roll_number": ["S1", "S2"], "q1": [8, 6]}).to_csv(sheet, index=False)
    assert app.main(["--settings", settings, "import", str(co), str(component_id), str(sheet)]) == 0

    out = tmp_path / "results.csv"
    assert app.main(["--settings", settings, "calculate", str(co), "--method", "simple",
                     "--output", str(out)]) == 0
    assert list(pd.read_csv(out)["percentage"]) == [80.0, 60.0]

    capsys.readouterr()
    assert app.main(["--settings", settings, "stats", str(co)]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["average_marks"] == 7.0


def test_cli_reports_state_errors(tmp_path):
    settings = _settings_file(tmp_path)
    app.main(["--settings", settings, "init-db"])
    assert app.main(["--settings", settings, "finalize", "1"]) == 1


def test_cli_manual_entry_rejects_out_of_range(tmp_path):
    settings = _settings_file(tmp_path)
    app.main(["--settings", settings, "init-db"])
    engine = get_engine(f"sqlite:///{tmp_path / 'cli.db'}")
    with engine.begin() as conn:
        co = conn.execute(sa_text("INSERT INTO course_offerings (course_code) VALUES ('CS101')")).lastrowid
        conn.execute(sa_text("INSERT INTO students (student_id, roll_number, name) VALUES ('stu-1', 'S1', 'Asha')"))
        conn.execute(sa_text("INSERT INTO course_enrollments (course_offering_id, student_id) VALUES (:co, 'stu-1')"),
                     {"co": co})
        component_id = conn.execute(sa_text(
            "INSERT INTO assessment_components (course_offering_id, name) VALUES (:co, 'Quiz')"
        ), {"co": co}).lastrowid
        conn.execute(sa_text(
            "INSERT INTO questions (assessment_component_id, question_number, total_marks) VALUES (:c, 1, 10)"
        ), {"c": component_id})
    engine.dispose()

    args = ["--settings", settings, "enter", str(co), str(component_id), "S1", "1"]
    assert app.main(args + ["12"]) == 1
    assert app.main(args + ["9"]) == 0
    assert app.main(args + ["--delete"]) == 0
