"""
dashboard.py – Profile card, KPIs and report table for the signed-in user.
"""
from __future__ import annotations

import logging
from datetime import datetime

import psycopg2

from cbam_calculator.constants import (
    DEFAULT_COMPANY_NAME,
    DEFAULT_DISPLAY_NAME,
    LOW_IMPACT_THRESHOLD,
    STATUS_HIGH_IMPACT,
    STATUS_LOW_IMPACT,
)
from cbam_calculator.schemas import PersistedReport

from . import db
from .session import UserSession

logger = logging.getLogger(__name__)


def fetch_profile(user_id: str) -> dict | None:
    """Return the profiles row for *user_id*, or None when there is none."""
    try:
        rows = db.query(
            "SELECT id, full_name, company_name FROM profiles WHERE id = %s",
            (user_id,),
        )
    except psycopg2.Error as exc:
        logger.warning("Profile lookup failed for %s, using defaults: %s", user_id, exc)
        return None
    return rows[0] if rows else None


def impact_status(intensity: float | None) -> str:
    if intensity is not None and intensity < LOW_IMPACT_THRESHOLD:
        return STATUS_LOW_IMPACT
    return STATUS_HIGH_IMPACT


def format_date(value: datetime | None) -> str:
    """'Jan 05, 2026' style; empty for missing dates."""
    return value.strftime("%b %d, %Y") if value else ""


def build_kpis(reports: list[PersistedReport]) -> dict:
    total = len(reports)
    avg = round(sum(r.intensity for r in reports) / total, 3) if total else None
    return {"total_reports": total, "avg_intensity": avg}


def build_profile(user: UserSession, profile: dict | None) -> dict:
    profile = profile or {}
    local_part = (user.email or "").split("@")[0]
    display_name = profile.get("full_name") or local_part or DEFAULT_DISPLAY_NAME
    return {
        "display_name": display_name,
        "company_name": profile.get("company_name") or DEFAULT_COMPANY_NAME,
        "avatar_initial": display_name[0].upper(),
        "email": user.email,
    }


def build_dashboard(user: UserSession, reports: list[PersistedReport], profile: dict | None) -> dict:
    """
    Full dashboard payload: profile, KPIs and the report rows (newest first,
    as returned by reports.list_reports).
    """
    rows = [
        {
            "id": r.id,
            "cn_code": r.cn_code or "N/A",
            "product_type": r.product_type or "Unknown",
            "intensity": round(r.intensity, 3),
            "status": impact_status(r.intensity),
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "created_label": format_date(r.created_at),
        }
        for r in reports
    ]
    return {
        "profile": build_profile(user, profile),
        "kpis": build_kpis(reports),
        "reports": rows,
        "empty": not rows,
    }
