"""
main.py – CLI entry point for the CBAM calculator.

Usage
-----
Calculate from flags:
    python -m cbam_calculator.main calculate --cn-code 72031000 --production 100 \
        --electricity 5000 --diesel 2000 --coal 1000 --precursor "Iron Ore=10"

Calculate from the saved calculator form and export:
    python -m cbam_calculator.main calculate --from-draft --pdf out/report.pdf --xml out/report.xml

Other commands:
    python -m cbam_calculator.main validate --cn-code 72031000
    python -m cbam_calculator.main draft show | clear
    python -m cbam_calculator.main test-db
    python -m cbam_calculator.main init-db

Common options:
    --factors factors.json   (overrides CBAM_FACTORS_FILE)
    --verbose
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from cbam_calculator.calculations import CalculationError, calculate, format_result
from cbam_calculator.config import get_config
from cbam_calculator.emission_factors import load_factor_table
from cbam_calculator.export import to_pdf, to_xml
from cbam_calculator.form_state import DraftCorruptError, DraftStore, JsonFileStorage
from cbam_calculator.schemas import CalculationInput, PrecursorInput
from cbam_calculator.validators import CNState, parse_quantity, validate_cn_code

console = Console()


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

def _parse_precursor(raw: str) -> PrecursorInput:
    """'Iron Ore=10' → PrecursorInput(type='Iron Ore', qty=10.0)."""
    material, sep, qty = raw.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"Expected MATERIAL=TONNES, got {raw!r}")
    return PrecursorInput(type=material.strip(), qty=parse_quantity(qty))


def _draft_store(config) -> DraftStore:
    return DraftStore(JsonFileStorage(config.state_dir))


def _print_result(result) -> None:
    shown = format_result(result)
    table = Table(title=f"CN {result.cn_code} – {result.product_type}")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Scope 1 (direct fuel)", shown["scope1"])
    table.add_row("Scope 2 (electricity)", shown["scope2"])
    table.add_row("Scope 3 (precursors)", shown["scope3"])
    table.add_row("Total", shown["total"])
    table.add_row("Embedded intensity", f"{shown['intensity']} tCO₂e/t", style="green")
    console.print(table)


# ─────────────────────────────────────────────────────────────
# Sub-commands
# ─────────────────────────────────────────────────────────────

def cmd_calculate(args: argparse.Namespace) -> int:
    """Handle: calculate [--from-draft | flags] [--pdf PATH] [--xml PATH]"""
    config = get_config(required=[])
    try:
        factors = load_factor_table(args.factors) if args.factors else config.emission_factors()
    except (OSError, ValueError) as exc:
        console.print(f"[red]✗ Could not load emission factors:[/red] {exc}")
        return 1

    if args.from_draft:
        try:
            draft = _draft_store(config).load()
        except DraftCorruptError as exc:
            console.print(f"[red]✗ {exc}[/red]")
            return 1
        calc_input = draft.to_calculation_input()
    else:
        calc_input = CalculationInput(
            cn_code=args.cn_code or "",
            production_qty=args.production,
            electricity=args.electricity,
            diesel=args.diesel,
            coal=args.coal,
            precursors=args.precursor or [],
        )

    try:
        result = calculate(calc_input, factors)
    except CalculationError as exc:
        console.print(f"[red]✗ {exc.message}[/red]")
        return 1

    if args.json:
        console.print_json(json.dumps(result.to_dict()))
    else:
        _print_result(result)

    try:
        if args.pdf:
            path = Path(args.pdf)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(to_pdf(result))
            console.print(f"[green]✓[/green] PDF written to {path}")
        if args.xml:
            path = Path(args.xml)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(to_xml(result), encoding="utf-8")
            console.print(f"[green]✓[/green] XML written to {path}")
    except OSError as exc:
        console.print(f"[red]✗ Could not write report:[/red] {exc}")
        return 1
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle: validate --cn-code CODE"""
    status = validate_cn_code(args.cn_code)
    if status.state is CNState.INVALID:
        console.print(f"[red]✗ {status.label}[/red]")
        return 1
    if status.state is CNState.EMPTY:
        console.print("[yellow]No CN code given[/yellow]")
        return 1
    console.print(f"[green]✓ {status.label}[/green]")
    return 0


def cmd_draft(args: argparse.Namespace) -> int:
    """Handle: draft show | draft clear"""
    store = _draft_store(get_config(required=[]))
    if args.action == "clear":
        try:
            store.clear()
        except DraftCorruptError as exc:
            console.print(f"[red]✗ Could not clear saved form: {exc}[/red]")
            return 1
        console.print("[green]✓[/green] Saved calculator form cleared")
        return 0
    try:
        draft = store.load()
    except DraftCorruptError as exc:
        console.print(f"[red]✗ {exc}[/red]")
        return 1
    console.print_json(json.dumps(draft.to_dict()))
    return 0


def cmd_test_db(_args: argparse.Namespace) -> int:
    """Handle: test-db. Verify the PostgreSQL connection (DATABASE_URL)."""
    from cbam_api.db import test_connection  # noqa: PLC0415

    ok, err = test_connection()
    if ok:
        console.print("[green]✓ Database connection OK[/green]")
        return 0
    console.print(f"[red]✗ Database connection failed:[/red] {err}")
    return 1


def cmd_init_db(_args: argparse.Namespace) -> int:
    """Handle: init-db. Create the profiles and cbam_reports tables."""
    from cbam_api.db import apply_schema  # noqa: PLC0415

    ok, err = apply_schema()
    if ok:
        console.print("[green]✓ Schema applied[/green]")
        return 0
    console.print(f"[red]✗ Schema apply failed:[/red] {err}")
    return 1


# ─────────────────────────────────────────────────────────────
# Parser
# ─────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    """Construct and return the top-level argument parser."""
    root = argparse.ArgumentParser(
        prog="python -m cbam_calculator.main",
        description="CBAM embedded-emissions calculator – local CLI tool.",
    )
    root.add_argument("--verbose", action="store_true", default=False, help="Enable debug logging")
    sub = root.add_subparsers(dest="command", required=True)

    # ── calculate ──────────────────────────────────────────────
    p_calc = sub.add_parser("calculate", help="Calculate embedded emissions.")
    p_calc.add_argument("--from-draft", action="store_true", dest="from_draft",
                        help="Use the form saved by the calculator UI")
    p_calc.add_argument("--cn-code", dest="cn_code", help="8-digit CN code")
    p_calc.add_argument("--production", type=float, default=0.0, help="Production quantity (t)")
    p_calc.add_argument("--electricity", type=float, default=0.0, help="Grid electricity (kWh)")
    p_calc.add_argument("--diesel", type=float, default=0.0, help="Diesel (litres)")
    p_calc.add_argument("--coal", type=float, default=0.0, help="Coal (kg)")
    p_calc.add_argument("--precursor", type=_parse_precursor, action="append",
                        help='Precursor as "MATERIAL=TONNES"; repeatable')
    p_calc.add_argument("--factors", default=None, help="JSON file overriding emission factors")
    p_calc.add_argument("--pdf", default=None, help="Write a PDF report to this path")
    p_calc.add_argument("--xml", default=None, help="Write an XML report to this path")
    p_calc.add_argument("--json", action="store_true", help="Print the raw result as JSON")

    # ── validate ───────────────────────────────────────────────
    p_val = sub.add_parser("validate", help="Validate a CN code and detect its goods category.")
    p_val.add_argument("--cn-code", dest="cn_code", required=True)

    # ── draft ──────────────────────────────────────────────────
    p_draft = sub.add_parser("draft", help="Show or clear the saved calculator form.")
    p_draft.add_argument("action", choices=["show", "clear"])

    # ── database ───────────────────────────────────────────────
    sub.add_parser("test-db", help="Test PostgreSQL connection using DATABASE_URL.")
    sub.add_parser("init-db", help="Apply the cbam_reports schema. Requires DATABASE_URL.")

    return root


# ─────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    """Parse arguments and dispatch to the correct sub-command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(message)s",
    )

    dispatch = {
        "calculate": cmd_calculate,
        "validate": cmd_validate,
        "draft": cmd_draft,
        "test-db": cmd_test_db,
        "init-db": cmd_init_db,
    }
    handler = dispatch.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
