"""
calculations.py – CBAM embedded-emission calculation.

Emission formula references
────────────────────────────
 Activity                  Scope  Formula
 ─────────────────────────────────────────────────────────────────────────
 Diesel combustion          1     (litres ÷ 1000) × diesel_factor (tCO₂e/kL)
 Coal combustion            1     (kg ÷ 1000) × coal_factor (tCO₂e/t)
 Purchased electricity      2     (kWh ÷ 1000) × grid_factor (tCO₂e/MWh)
 Precursor materials        3     Σ tonnes × material_factor (tCO₂e/t)

 Embedded intensity = (scope1 + scope2 + scope3) ÷ production tonnes

Precursor rows with an empty or unknown material, or a quantity ≤ 0, are
skipped. Nothing is rounded here; see ``format_result`` for display values.

Usage
──────
    from cbam_calculator.calculations import calculate
    from cbam_calculator.schemas import CalculationInput

    result = calculate(CalculationInput(cn_code="72031000", production_qty=100,
                                        diesel=2000, coal=1000, electricity=5000))
    result.intensity   # 0.12395
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from cbam_calculator.emission_factors import (
    DEFAULT_FACTORS,
    EmissionFactorTable,
    get_precursor_factor,
)
from cbam_calculator.schemas import CalculationInput, PrecursorInput
from cbam_calculator.validators import resolve_product_type, validate_cn_code

logger = logging.getLogger(__name__)


class CalculationError(ValueError):
    """Input rejected before any arithmetic ran."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


@dataclass(frozen=True)
class CalculationResult:
    """Result of one calculation; replaced wholesale by the next one."""
    scope1: float            # tCO₂e, direct fuel
    scope2: float            # tCO₂e, purchased electricity
    scope3: float            # tCO₂e, precursors
    total: float
    intensity: float         # tCO₂e per tonne of product
    cn_code: str
    production_qty: float
    product_type: str

    def to_dict(self) -> dict:
        return asdict(self)


# ─────────────────────────────────────────────────────────────────────────────
# Scope helpers
# ─────────────────────────────────────────────────────────────────────────────

def calc_scope1(diesel_litres: float, coal_kg: float, factors: EmissionFactorTable = DEFAULT_FACTORS) -> float:
    """Direct fuel combustion, tCO₂e."""
    return (diesel_litres / 1000) * factors.diesel_factor + (coal_kg / 1000) * factors.coal_factor


def calc_scope2(electricity_kwh: float, factors: EmissionFactorTable = DEFAULT_FACTORS) -> float:
    """Purchased grid electricity, tCO₂e."""
    return (electricity_kwh / 1000) * factors.grid_factor


def counted_precursors(
    precursors: list[PrecursorInput],
    factors: EmissionFactorTable = DEFAULT_FACTORS,
) -> list[PrecursorInput]:
    """Rows that contribute to scope 3, in input order."""
    return [
        p for p in precursors
        if p.qty > 0 and get_precursor_factor(factors, p.type) is not None
    ]


def calc_scope3(precursors: list[PrecursorInput], factors: EmissionFactorTable = DEFAULT_FACTORS) -> float:
    """Upstream precursor materials, tCO₂e."""
    total = 0.0
    for p in counted_precursors(precursors, factors):
        total += p.qty * factors.precursors[p.type]
    return total


# ─────────────────────────────────────────────────────────────────────────────
# Public entry point
# ─────────────────────────────────────────────────────────────────────────────

def calculate(inp: CalculationInput, factors: EmissionFactorTable = DEFAULT_FACTORS) -> CalculationResult:
    """
    Compute scope subtotals, total and embedded intensity for *inp*.

    Raises
    ------
    CalculationError
        If the CN code is not 8 digits, or production quantity is ≤ 0.
        The CN check runs first, then the quantity guard, so the division
        below never sees a non-positive denominator.
    """
    if not validate_cn_code(inp.cn_code).valid:
        raise CalculationError("cn_code", "Please enter a valid 8-digit CN Code")
    if not inp.production_qty > 0:
        raise CalculationError("production_qty", "Please enter production quantity")

    scope1 = calc_scope1(inp.diesel, inp.coal, factors)
    scope2 = calc_scope2(inp.electricity, factors)
    scope3 = calc_scope3(inp.precursors, factors)
    total = scope1 + scope2 + scope3

    result = CalculationResult(
        scope1=scope1,
        scope2=scope2,
        scope3=scope3,
        total=total,
        intensity=total / inp.production_qty,
        cn_code=inp.cn_code,
        production_qty=inp.production_qty,
        product_type=resolve_product_type(inp.cn_code),
    )
    logger.debug(
        "CN %s: scope1=%.4f scope2=%.4f scope3=%.4f intensity=%.5f",
        inp.cn_code, scope1, scope2, scope3, result.intensity,
    )
    return result


def format_result(result: CalculationResult) -> dict[str, str]:
    """Display strings: intensity to 3 dp, emissions to 2 dp."""
    return {
        "intensity": f"{result.intensity:.3f}",
        "scope1": f"{result.scope1:.2f} tCO₂e",
        "scope2": f"{result.scope2:.2f} tCO₂e",
        "scope3": f"{result.scope3:.2f} tCO₂e",
        "total": f"{result.total:.2f} tCO₂e",
    }
