# core/db.py
from __future__ import annotations
from pathlib import Path
from sqlalchemy import create_engine, event, text as sa_text
from sqlalchemy.engine import Engine

from core.schema_registry import auto_discover, run_all


def get_engine(db_url: str) -> Engine:
    if db_url.startswith("sqlite:///"):
        db_file = db_url.replace("sqlite:///", "")
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(db_url, future=True)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

    return engine


def init_db(engine: Engine):
    # 0) config store table that other modules may rely on
    with engine.begin() as conn:
        conn.execute(sa_text("""
        CREATE TABLE IF NOT EXISTS configs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            scope TEXT NOT NULL DEFAULT 'default',
            namespace TEXT NOT NULL,
            config_json TEXT NOT NULL,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(scope, namespace)
        )"""))

    # 1) auto-discover schema modules (schemas/*.py)
    auto_discover("schemas")

    # 2) run all registered ensure_*_schema(engine) functions
    run_all(engine)
