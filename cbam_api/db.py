"""
db.py – Lightweight Postgres helper for the CBAM service.

Reads DATABASE_URL from the environment (or .env via cbam_calculator.config).
Call get_conn() to get a short-lived connection; always close it.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, TypeVar

import psycopg2
from psycopg2.extras import RealDictCursor

import cbam_calculator.config  # noqa: F401 – loads .env so DATABASE_URL is available

T = TypeVar("T")

SCHEMA_PATH = Path(__file__).resolve().parent / "schema" / "cbam_reports.sql"


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL environment variable is not set. "
            "Add it to .env at the repo root."
        )
    return url


def get_conn():
    """Return a new psycopg2 connection (caller must close)."""
    return psycopg2.connect(get_database_url())


def query(sql: str, params: tuple = ()) -> list[dict]:
    """Execute a SELECT and return rows as a list of dicts."""
    conn = get_conn()
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params)
            return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


def with_connection(fn: Callable[..., T]) -> T:
    """Open a connection, call fn(conn), close it. fn is responsible for commit."""
    conn = get_conn()
    try:
        return fn(conn)
    finally:
        conn.close()


def test_connection(database_url: str | None = None) -> tuple[bool, str | None]:
    """
    Connect and run SELECT 1. Return (True, None) on success,
    (False, error_message) on failure.
    """
    try:
        conn = psycopg2.connect(database_url or get_database_url())
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        finally:
            conn.close()
        return True, None
    except (psycopg2.Error, RuntimeError) as e:
        return False, str(e)


def apply_schema(database_url: str | None = None, schema_path: Path | None = None) -> tuple[bool, str | None]:
    """
    Execute the schema SQL file (profiles + cbam_reports).
    Returns (True, None) on success, (False, error_message) on failure.
    """
    schema_path = schema_path or SCHEMA_PATH
    if not schema_path.exists():
        return False, f"Schema file not found: {schema_path}"
    sql = schema_path.read_text(encoding="utf-8")
    try:
        conn = psycopg2.connect(database_url or get_database_url())
        conn.autocommit = True
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
        finally:
            conn.close()
        return True, None
    except (psycopg2.Error, RuntimeError) as e:
        return False, str(e)
