import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy import text as sa_text

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.db import get_engine, init_db
from core.locks import KeyedLocks
from core.settings import AppConfig, DBConfig, EngineConfig, Settings


def insert(conn, sql, **params):
    return conn.execute(sa_text(sql), params).lastrowid


def add_student(conn, offering_id, student_id, roll_number, name="", status="active"):
    conn.execute(sa_text("INSERT OR IGNORE INTO students (student_id, roll_number, name) VALUES (:s, :r, :n)"),
                 dict(s=student_id, r=roll_number, n=name or roll_number))
    conn.execute(sa_text("""
        INSERT INTO course_enrollments (course_offering_id, student_id, status) VALUES (:co, :s, :st)
    """), dict(co=offering_id, s=student_id, st=status))


def add_component(conn, offering_id, name, weight=1.0, sequence=1, question_marks=(10,)):
    component_id = insert(conn, """
        INSERT INTO assessment_components (course_offering_id, name, weight, sequence)
        VALUES (:co, :n, :w, :seq)
    """, co=offering_id, n=name, w=weight, seq=sequence)
    question_ids = [
        insert(conn, """
            INSERT INTO questions (assessment_component_id, question_number, total_marks)
            VALUES (:c, :n, :t)
        """, c=component_id, n=i, t=total)
        for i, total in enumerate(question_marks, start=1)
    ]
    return component_id, question_ids


@pytest.fixture
def engine(tmp_path):
    eng = get_engine(f"sqlite:///{tmp_path / 'results.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        app=AppConfig(name="test"),
        db=DBConfig(url=f"sqlite:///{tmp_path / 'results.db'}"),
        engine=EngineConfig(calculation_timeout_seconds=None, lock_wait_seconds=0.0),
    )


@pytest.fixture
def offering(engine):
    """CS101 with students S1/S2 and one component holding Q1 (10 marks)."""
    with engine.begin() as conn:
        offering_id = insert(conn, """
            INSERT INTO course_offerings (course_code, title, program_code, passing_percentage)
            VALUES ('CS101', 'Programming Fundamentals', 'BSCS', 50)
        """)
        add_student(conn, offering_id, "stu-1", "S1", "Asha")
        add_student(conn, offering_id, "stu-2", "S2", "Bilal")
        component_id, (q1,) = add_component(conn, offering_id, "Midterm")
    return SimpleNamespace(id=offering_id, component_id=component_id, q1=q1)


@pytest.fixture
def manager(engine, settings):
    from results.manager import ResultsManager
    return ResultsManager(engine, settings, actor="tester", locks=KeyedLocks())
