"""
schemas.py – Pydantic models for calculator input and persisted reports.

Quantities are floats in the units noted on each field. Fuel and electricity
figures are range-checked here; production quantity and the CN code are
checked by ``calculate`` so a rejected calculation can be reported inline.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────
# Calculator input
# ─────────────────────────────────────────────────────────────

class PrecursorInput(BaseModel):
    """One upstream material row."""

    type: str = Field("", description="Precursor material name, e.g. 'Iron Ore'")
    qty: float = Field(0.0, description="Quantity consumed in tonnes")


class CalculationInput(BaseModel):
    """Everything the emission calculation needs."""

    cn_code: str = Field("", description="8-digit Combined Nomenclature code")
    production_qty: float = Field(0.0, description="Production quantity in tonnes")
    electricity: float = Field(0.0, ge=0, description="Grid electricity consumed in kWh")
    diesel: float = Field(0.0, ge=0, description="Diesel consumed in litres")
    coal: float = Field(0.0, ge=0, description="Coal consumed in kg")
    precursors: list[PrecursorInput] = Field(default_factory=list, description="Precursor rows in display order")


# ─────────────────────────────────────────────────────────────
# Persisted report
# ─────────────────────────────────────────────────────────────

class InputSnapshot(BaseModel):
    """The raw inputs stored alongside a saved report."""

    electricity: float = 0.0
    diesel: float = 0.0
    coal: float = 0.0
    precursors: list[PrecursorInput] = Field(default_factory=list)


class PersistedReport(BaseModel):
    """One row of cbam_reports."""

    id: str = Field(..., description="Server-assigned report identifier (uuid)")
    user_id: str = Field(..., description="Owning user id from the identity provider")
    cn_code: str
    product_type: Optional[str] = None
    production_qty: float
    input_data: InputSnapshot = Field(default_factory=InputSnapshot)
    total_emissions: float
    intensity: float
    created_at: Optional[datetime] = None


# ─────────────────────────────────────────────────────────────
# Account forms
# ─────────────────────────────────────────────────────────────

class Credentials(BaseModel):
    email: str
    password: str
