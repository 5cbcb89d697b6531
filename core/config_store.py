"""Versioned JSON configuration keyed by (scope, namespace).

A scope is usually a program code; namespaces group one kind of setting
(e.g. ``attainment_thresholds``). Every save archives the value it replaces
in ``configs_versions`` so it can be rolled back.
"""
from __future__ import annotations
import json
import logging
from typing import Optional, Tuple, List
from sqlalchemy import text as sql_text

logger = logging.getLogger(__name__)

MAX_VERSIONS = 50  # cap history per (scope, namespace)


def ensure_schema(engine):
    with engine.begin() as conn:
        conn.execute(sql_text("""
        CREATE TABLE IF NOT EXISTS configs_versions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            scope TEXT NOT NULL,
            namespace TEXT NOT NULL,
            version INTEGER NOT NULL,
            config_json TEXT NOT NULL,
            saved_by TEXT,
            reason TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(scope, namespace, version)
        );
        """))


def _key(scope: str, namespace: str) -> dict:
    return {"s": scope, "ns": namespace}


def _next_version(conn, scope: str, namespace: str) -> int:
    latest = conn.execute(sql_text(
        "SELECT COALESCE(MAX(version), 0) FROM configs_versions WHERE scope=:s AND namespace=:ns"
    ), _key(scope, namespace)).scalar()
    return (latest or 0) + 1


def _archive(conn, scope: str, namespace: str, config_json: str,
             saved_by: Optional[str], reason: str) -> int:
    version = _next_version(conn, scope, namespace)
    conn.execute(sql_text("""
        INSERT INTO configs_versions (scope, namespace, version, config_json, saved_by, reason)
        VALUES (:s, :ns, :v, :cfg, :by, :why)
    """), {**_key(scope, namespace), "v": version, "cfg": config_json, "by": saved_by, "why": reason})
    return version


def _write_current(conn, scope: str, namespace: str, config_json: str) -> None:
    conn.execute(sql_text("""
        INSERT INTO configs (scope, namespace, config_json)
        VALUES (:s, :ns, :cfg)
        ON CONFLICT(scope, namespace) DO UPDATE
        SET config_json=excluded.config_json, updated_at=CURRENT_TIMESTAMP
    """), {**_key(scope, namespace), "cfg": config_json})


def _prune(conn, scope: str, namespace: str) -> None:
    stale = conn.execute(sql_text("""
        SELECT id FROM configs_versions WHERE scope=:s AND namespace=:ns
        ORDER BY version DESC LIMIT -1 OFFSET :keep
    """), {**_key(scope, namespace), "keep": MAX_VERSIONS}).fetchall()
    if stale:
        conn.execute(sql_text(
            "DELETE FROM configs_versions WHERE id IN (%s)" % ",".join(str(r[0]) for r in stale)
        ))


def get(engine, scope: str, namespace: str) -> dict:
    with engine.begin() as conn:
        row = conn.execute(sql_text(
            "SELECT config_json FROM configs WHERE scope=:s AND namespace=:ns"
        ), _key(scope, namespace)).fetchone()
    if not row:
        return {}
    return json.loads(row[0]) or {}


def save(engine, scope: str, namespace: str, new_cfg: dict, saved_by: Optional[str] = None,
         reason: str = "") -> Tuple[int, dict]:
    """Store ``new_cfg``; returns (version of the archived copy or 0, previous config)."""
    ensure_schema(engine)
    current = get(engine, scope, namespace)
    version = 0
    with engine.begin() as conn:
        if current:
            version = _archive(conn, scope, namespace, json.dumps(current, ensure_ascii=False),
                               saved_by, reason or "auto-version")
        _write_current(conn, scope, namespace, json.dumps(new_cfg, ensure_ascii=False))
        _prune(conn, scope, namespace)
    logger.info(f"Saved config {scope}/{namespace} by {saved_by or 'unknown'}")
    return version, current


def history(engine, scope: str, namespace: str) -> List[dict]:
    ensure_schema(engine)
    with engine.begin() as conn:
        rows = conn.execute(sql_text("""
            SELECT version, saved_by, reason, created_at, config_json
            FROM configs_versions
            WHERE scope=:s AND namespace=:ns
            ORDER BY version DESC
        """), _key(scope, namespace)).fetchall()
    return [
        {"version": r[0], "saved_by": r[1], "reason": r[2], "created_at": r[3],
         "config": json.loads(r[4]) if r[4] else {}}
        for r in rows
    ]


def rollback(engine, scope: str, namespace: str, version: int, saved_by: Optional[str] = None,
             reason: str = "rollback") -> bool:
    """Make an archived version current again; the rollback itself is archived too."""
    ensure_schema(engine)
    with engine.begin() as conn:
        row = conn.execute(sql_text("""
            SELECT config_json FROM configs_versions
            WHERE scope=:s AND namespace=:ns AND version=:v
        """), {**_key(scope, namespace), "v": version}).fetchone()
        if not row:
            return False
        _write_current(conn, scope, namespace, row[0])
        _archive(conn, scope, namespace, row[0], saved_by, reason)
        _prune(conn, scope, namespace)
    logger.info(f"Rolled back config {scope}/{namespace} to version {version}")
    return True
