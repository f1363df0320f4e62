"""
emission_factors.py – Emission factor table used by the CBAM calculator.

All factors are in tCO₂e per unit noted below (Jan 2026 values).
Sources: India CEA grid baseline (2026), IPCC 2006 default fuel factors.

The table is a plain value object so a caller can swap it out, e.g. via a
JSON override file pointed to by CBAM_FACTORS_FILE.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from cbam_calculator.constants import PRECURSOR_MATERIALS

# ─────────────────────────────────────────────────────────────
# Defaults
# ─────────────────────────────────────────────────────────────
GRID_FACTOR: float = 0.715     # tCO₂e / MWh (India CEA 2026)
DIESEL_FACTOR: float = 3.16    # tCO₂e / 1000 L
COAL_FACTOR: float = 2.5       # tCO₂e / 1000 kg

PRECURSOR_FACTORS: dict[str, float] = {
    "Iron Ore": 0.8,    # tCO₂e / t
    "Scrap":    0.9,
    "Aluminum": 0.4,
    "Coke":     3.6,
}

# CN code chapter (first two digits) → CBAM goods category
CBAM_GOODS: dict[str, str] = {
    "72": "Iron & Steel",
    "76": "Aluminum",
}


@dataclass(frozen=True)
class EmissionFactorTable:
    """Conversion factors applied by ``calculate``."""

    grid_factor: float = GRID_FACTOR
    diesel_factor: float = DIESEL_FACTOR
    coal_factor: float = COAL_FACTOR
    precursors: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(dict(PRECURSOR_FACTORS))
    )

    def to_dict(self) -> dict:
        return {
            "grid_factor": self.grid_factor,
            "diesel_factor": self.diesel_factor,
            "coal_factor": self.coal_factor,
            "precursors": dict(self.precursors),
        }


DEFAULT_FACTORS = EmissionFactorTable()


def get_precursor_factor(table: EmissionFactorTable, material: str | None) -> float | None:
    """Return tCO₂e per tonne for *material*, or None when it is not recognised."""
    if not material:
        return None
    return table.precursors.get(material)


def precursor_materials(table: EmissionFactorTable = DEFAULT_FACTORS) -> list[str]:
    """Material names in picker order; overrides that add materials go last."""
    known = [m for m in PRECURSOR_MATERIALS if m in table.precursors]
    extra = sorted(m for m in table.precursors if m not in PRECURSOR_MATERIALS)
    return known + extra


_SCALAR_KEYS = ("grid_factor", "diesel_factor", "coal_factor")


def _as_factor(key: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Factor '{key}' must be a number, got {value!r}")
    if value < 0:
        raise ValueError(f"Factor '{key}' must not be negative ({value})")
    return float(value)


def load_factor_table(path: Path | str, base: EmissionFactorTable = DEFAULT_FACTORS) -> EmissionFactorTable:
    """
    Read a JSON override file and apply it on top of *base*.

    Expected shape (every key optional)::

        {"grid_factor": 0.82, "diesel_factor": 3.16, "coal_factor": 2.5,
         "precursors": {"Iron Ore": 0.8, "Pig Iron": 1.9}}

    Precursor entries are merged into the base mapping.

    Raises
    ------
    ValueError
        On unknown keys, non-numeric or negative factors.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Factor file {path} must contain a JSON object")

    unknown = set(data) - {*_SCALAR_KEYS, "precursors"}
    if unknown:
        raise ValueError(f"Unknown factor key(s): {', '.join(sorted(unknown))}")

    updates: dict = {k: _as_factor(k, data[k]) for k in _SCALAR_KEYS if k in data}

    if "precursors" in data:
        raw = data["precursors"]
        if not isinstance(raw, dict):
            raise ValueError("'precursors' must be an object of material → factor")
        merged = dict(base.precursors)
        for material, value in raw.items():
            merged[str(material)] = _as_factor(f"precursors.{material}", value)
        updates["precursors"] = MappingProxyType(merged)

    return replace(base, **updates)
