"""
Unit tests for cbam_calculator/calculations.py and emission_factors.py

Pure arithmetic, no I/O except the factor override file written to tmp_path.
"""
import json

import pytest

from cbam_calculator.calculations import (
    CalculationError,
    CalculationResult,
    calc_scope1,
    calc_scope2,
    calc_scope3,
    calculate,
    counted_precursors,
    format_result,
)
from cbam_calculator.emission_factors import (
    DEFAULT_FACTORS,
    EmissionFactorTable,
    get_precursor_factor,
    load_factor_table,
    precursor_materials,
)
from cbam_calculator.schemas import CalculationInput, PrecursorInput


def make_input(**overrides):
    base = dict(cn_code="72031000", production_qty=100, electricity=5000, diesel=2000, coal=1000)
    base.update(overrides)
    return CalculationInput(**base)


# ─────────────────────────────────────────────────────────────────────────────
# 1. Scope helpers
# Scope 1: (L/1000) × 3.16 + (kg/1000) × 2.5
# Scope 2: (kWh/1000) × 0.715
# Scope 3: Σ t × material factor
# ─────────────────────────────────────────────────────────────────────────────

class TestScopeHelpers:

    def test_scope1_diesel_and_coal(self):
        # 2000 L → 6.32, 1000 kg → 2.5
        assert calc_scope1(2000, 1000) == pytest.approx(8.82)

    def test_scope2_electricity(self):
        # 5000 kWh → 5 MWh × 0.715
        assert calc_scope2(5000) == pytest.approx(3.575)

    def test_scope3_single_precursor(self):
        assert calc_scope3([PrecursorInput(type="Iron Ore", qty=10)]) == pytest.approx(8.0)

    def test_scope3_sums_all_known_materials(self):
        rows = [
            PrecursorInput(type="Scrap", qty=10),     # 9.0
            PrecursorInput(type="Coke", qty=2),       # 7.2
            PrecursorInput(type="Aluminum", qty=5),   # 2.0
        ]
        assert calc_scope3(rows) == pytest.approx(18.2)

    def test_scope3_skips_unknown_empty_and_non_positive_rows(self):
        rows = [
            PrecursorInput(type="Iron Ore", qty=10),
            PrecursorInput(type="", qty=50),
            PrecursorInput(type="Unobtainium", qty=5),
            PrecursorInput(type="Coke", qty=0),
            PrecursorInput(type="Scrap", qty=-3),
        ]
        assert calc_scope3(rows) == pytest.approx(8.0)

    def test_counted_precursors_keeps_order(self):
        rows = [
            PrecursorInput(type="Coke", qty=1),
            PrecursorInput(type="", qty=1),
            PrecursorInput(type="Iron Ore", qty=2),
        ]
        kept = counted_precursors(rows)
        assert [p.type for p in kept] == ["Coke", "Iron Ore"]

    def test_custom_factor_table_is_used(self):
        table = EmissionFactorTable(grid_factor=1.0)
        assert calc_scope2(2000, table) == pytest.approx(2.0)


# ─────────────────────────────────────────────────────────────────────────────
# 2. calculate
# ─────────────────────────────────────────────────────────────────────────────

class TestCalculate:

    def test_worked_example(self):
        result = calculate(make_input())

        assert isinstance(result, CalculationResult)
        assert result.scope1 == pytest.approx(8.82)
        assert result.scope2 == pytest.approx(3.575)
        assert result.scope3 == pytest.approx(0.0)
        assert result.total == pytest.approx(12.395)
        assert result.intensity == pytest.approx(0.12395)
        assert result.product_type == "Iron & Steel"
        assert result.cn_code == "72031000"
        assert result.production_qty == 100

    def test_total_is_sum_of_scopes(self):
        result = calculate(make_input(precursors=[PrecursorInput(type="Iron Ore", qty=10)]))
        assert result.total == pytest.approx(result.scope1 + result.scope2 + result.scope3)
        assert result.intensity == pytest.approx(result.total / 100)

    def test_aluminium_chapter(self):
        assert calculate(make_input(cn_code="76011000")).product_type == "Aluminum"

    def test_unlisted_chapter_is_unknown(self):
        assert calculate(make_input(cn_code="25232900")).product_type == "Unknown"

    def test_all_zero_activity(self):
        result = calculate(make_input(electricity=0, diesel=0, coal=0))
        assert result.total == 0.0
        assert result.intensity == 0.0

    @pytest.mark.parametrize("code", ["", "7203100", "720310001", "7203a000", " 72031000"])
    def test_rejects_bad_cn_code(self, code):
        with pytest.raises(CalculationError) as exc_info:
            calculate(make_input(cn_code=code))
        assert exc_info.value.field == "cn_code"
        assert exc_info.value.message == "Please enter a valid 8-digit CN Code"

    @pytest.mark.parametrize("qty", [0, -1, -0.001])
    def test_rejects_non_positive_production(self, qty):
        with pytest.raises(CalculationError) as exc_info:
            calculate(make_input(production_qty=qty))
        assert exc_info.value.field == "production_qty"
        assert exc_info.value.message == "Please enter production quantity"

    def test_cn_code_checked_before_production(self):
        with pytest.raises(CalculationError) as exc_info:
            calculate(make_input(cn_code="abc", production_qty=0))
        assert exc_info.value.field == "cn_code"

    def test_calculation_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            calculate(make_input(production_qty=0))


# ─────────────────────────────────────────────────────────────────────────────
# 3. format_result
# ─────────────────────────────────────────────────────────────────────────────

class TestFormatResult:

    def test_display_precision(self):
        shown = format_result(calculate(make_input()))
        assert shown["intensity"] == "0.124"
        assert shown["scope1"] == "8.82 tCO₂e"
        assert shown["scope3"] == "0.00 tCO₂e"
        assert set(shown) == {"intensity", "scope1", "scope2", "scope3", "total"}

    def test_two_decimal_emissions(self):
        result = calculate(make_input(electricity=10000, diesel=0, coal=0))
        shown = format_result(result)
        # 10 MWh × 0.715
        assert shown["scope2"] == "7.15 tCO₂e"
        assert shown["total"] == "7.15 tCO₂e"


# ─────────────────────────────────────────────────────────────────────────────
# 4. Emission factor table
# ─────────────────────────────────────────────────────────────────────────────

class TestEmissionFactors:

    def test_default_values(self):
        assert DEFAULT_FACTORS.grid_factor == 0.715
        assert DEFAULT_FACTORS.diesel_factor == 3.16
        assert DEFAULT_FACTORS.coal_factor == 2.5
        assert dict(DEFAULT_FACTORS.precursors) == {
            "Iron Ore": 0.8, "Scrap": 0.9, "Aluminum": 0.4, "Coke": 3.6,
        }

    def test_precursor_lookup(self):
        assert get_precursor_factor(DEFAULT_FACTORS, "Coke") == 3.6
        assert get_precursor_factor(DEFAULT_FACTORS, "Gold") is None
        assert get_precursor_factor(DEFAULT_FACTORS, "") is None
        assert get_precursor_factor(DEFAULT_FACTORS, None) is None

    def test_default_precursors_are_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_FACTORS.precursors["Coke"] = 0.0

    def test_material_picker_order(self):
        assert precursor_materials() == ["Iron Ore", "Scrap", "Aluminum", "Coke"]


class TestLoadFactorTable:

    def _write(self, tmp_path, data):
        path = tmp_path / "factors.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_overrides_scalars_and_merges_precursors(self, tmp_path):
        path = self._write(tmp_path, {"grid_factor": 0.82, "precursors": {"Pig Iron": 1.9}})
        table = load_factor_table(path)

        assert table.grid_factor == 0.82
        assert table.diesel_factor == DEFAULT_FACTORS.diesel_factor
        assert table.precursors["Pig Iron"] == 1.9
        assert table.precursors["Iron Ore"] == 0.8
        assert precursor_materials(table)[-1] == "Pig Iron"
        # default table untouched
        assert "Pig Iron" not in DEFAULT_FACTORS.precursors

    def test_override_changes_calculation(self, tmp_path):
        table = load_factor_table(self._write(tmp_path, {"grid_factor": 1.0}))
        assert calculate(make_input(), table).scope2 == pytest.approx(5.0)

    @pytest.mark.parametrize("data", [
        {"grid": 1.0},
        {"grid_factor": "high"},
        {"coal_factor": -1},
        {"grid_factor": True},
        {"precursors": {"Coke": -2}},
        {"precursors": ["Coke"]},
        [1, 2, 3],
    ])
    def test_rejects_bad_files(self, tmp_path, data):
        with pytest.raises(ValueError):
            load_factor_table(self._write(tmp_path, data))
