"""
reports.py – Saved CBAM reports (cbam_reports table).

Rows are append-only: one insert per successful export, never updated or
deleted from here. Every read and write is scoped to one user id.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

import psycopg2
from dateutil import parser as dateutil_parser
from psycopg2.extras import Json, RealDictCursor

from cbam_calculator.calculations import CalculationResult
from cbam_calculator.schemas import CalculationInput, InputSnapshot, PersistedReport

from . import db
from .errors import PersistenceError, ServiceUnavailableError, UnauthenticatedError

logger = logging.getLogger(__name__)

_REPORT_COLUMNS = """
    id, user_id, cn_code, product_type, production_qty,
    input_data, total_emissions, intensity, created_at
"""


def build_snapshot(calc_input: CalculationInput | None) -> InputSnapshot:
    """Input snapshot stored with a report; absent values become 0 / []."""
    if calc_input is None:
        return InputSnapshot()
    return InputSnapshot(
        electricity=calc_input.electricity or 0.0,
        diesel=calc_input.diesel or 0.0,
        coal=calc_input.coal or 0.0,
        precursors=list(calc_input.precursors or []),
    )


def save_report(
    calc_input: CalculationInput | None,
    result: CalculationResult,
    owner_user_id: str | None,
) -> PersistedReport:
    """
    Insert one cbam_reports row and return it with its new id.

    Raises
    ------
    UnauthenticatedError
        No owner id; raised before any connection is opened.
    ServiceUnavailableError
        The database could not be reached.
    PersistenceError
        The insert failed, or the row came back without an id.
    """
    if not owner_user_id:
        raise UnauthenticatedError()

    snapshot = build_snapshot(calc_input)

    def do_insert(conn):
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                INSERT INTO cbam_reports
                    (user_id, cn_code, product_type, production_qty,
                     input_data, total_emissions, intensity)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING {_REPORT_COLUMNS}
                """,
                (
                    owner_user_id,
                    result.cn_code,
                    result.product_type,
                    result.production_qty,
                    Json(snapshot.model_dump()),
                    result.total,
                    result.intensity,
                ),
            )
            row = cur.fetchone()
        conn.commit()
        return row

    try:
        row = db.with_connection(do_insert)
    except psycopg2.OperationalError as exc:
        logger.error("Report save failed, database unreachable: %s", exc)
        raise ServiceUnavailableError(f"Database unavailable: {exc}") from exc
    except psycopg2.Error as exc:
        logger.error("Report save failed: %s", exc)
        raise PersistenceError(str(exc).strip() or "Failed to save report") from exc
    except RuntimeError as exc:   # DATABASE_URL not configured
        raise ServiceUnavailableError(str(exc)) from exc

    if not row or not row.get("id"):
        raise PersistenceError("Failed to get report ID from server")

    report = _row_to_report(dict(row))
    logger.info("Saved report %s for user %s (CN %s)", report.id, owner_user_id, report.cn_code)
    return report


def list_reports(owner_user_id: str) -> list[PersistedReport]:
    """Return the user's reports, newest first. No rows → []."""
    if not owner_user_id:
        raise UnauthenticatedError()
    try:
        rows = db.query(
            f"""
            SELECT {_REPORT_COLUMNS}
            FROM cbam_reports
            WHERE user_id = %s
            ORDER BY created_at DESC
            """,
            (owner_user_id,),
        )
    except psycopg2.OperationalError as exc:
        raise ServiceUnavailableError(f"Database unavailable: {exc}") from exc
    except psycopg2.Error as exc:
        logger.error("Report listing failed for %s: %s", owner_user_id, exc)
        raise PersistenceError(str(exc).strip() or "Failed to load reports") from exc
    except RuntimeError as exc:
        raise ServiceUnavailableError(str(exc)) from exc

    reports = [_row_to_report(r) for r in rows]
    _oldest = datetime.min.replace(tzinfo=timezone.utc)
    reports.sort(key=lambda r: r.created_at or _oldest, reverse=True)
    return reports


def _row_to_report(r: dict) -> PersistedReport:
    """Convert a DB row (Decimal numerics, uuid ids) to a PersistedReport."""
    created = r.get("created_at")
    if isinstance(created, str):
        created = dateutil_parser.isoparse(created)
    if isinstance(created, datetime) and created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return PersistedReport(
        id=str(r["id"]),
        user_id=str(r.get("user_id")),
        cn_code=r.get("cn_code") or "",
        product_type=r.get("product_type"),
        production_qty=float(r["production_qty"]) if r.get("production_qty") is not None else 0.0,
        input_data=InputSnapshot.model_validate(r.get("input_data") or {}),
        total_emissions=float(r["total_emissions"]) if r.get("total_emissions") is not None else 0.0,
        intensity=float(r["intensity"]) if r.get("intensity") is not None else 0.0,
        created_at=created,
    )
