"""
export.py – PDF and XML renderings of a calculation result.

Both exports are pure transforms of the result. The PDF is built in
ReportLab's invariant mode, so for a fixed ``generated_at`` the bytes are
identical between runs. The XML carries no timestamp at all.
"""
from __future__ import annotations

import io
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from cbam_calculator.calculations import CalculationResult, format_result
from cbam_calculator.constants import REPORT_TITLE


def pdf_filename(report_id: str | None) -> str:
    return f"CBAM_Report_{report_id or 'draft'}.pdf"


def xml_filename(result: CalculationResult) -> str:
    return f"CBAM_{result.cn_code}.xml"


def _summary_rows(result: CalculationResult, report_id: str | None) -> list[list[str]]:
    rows = []
    if report_id:
        rows.append(["Report ID", report_id])
    rows += [
        ["CN Code", result.cn_code],
        ["Product Type", result.product_type],
        ["Production Quantity", f"{result.production_qty:g} t"],
    ]
    return rows


def to_pdf(
    result: CalculationResult,
    report_id: str | None = None,
    generated_at: datetime | None = None,
) -> bytes:
    """Render *result* as a one-page A4 PDF and return the bytes."""
    generated_at = generated_at or datetime.now(timezone.utc)
    # standard Type 1 fonts have no subscript glyphs
    shown = {k: v.replace("₂", "2") for k, v in format_result(result).items()}

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=2 * cm,
        leftMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2 * cm,
        title=REPORT_TITLE,
        invariant=1,
    )
    styles = getSampleStyleSheet()
    story = [
        Paragraph(REPORT_TITLE, styles["Title"]),
        Paragraph(f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M UTC')}", styles["Normal"]),
        Spacer(1, 0.5 * cm),
    ]

    summary = Table(_summary_rows(result, report_id), colWidths=[5 * cm, 11 * cm])
    summary.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    story += [summary, Spacer(1, 0.5 * cm)]

    story.append(Paragraph("Emissions Breakdown", styles["Heading2"]))
    breakdown = Table(
        [
            ["Source", "Emissions"],
            ["Scope 1 – Direct fuel", shown["scope1"]],
            ["Scope 2 – Electricity", shown["scope2"]],
            ["Scope 3 – Precursors", shown["scope3"]],
            ["Total", shown["total"]],
        ],
        colWidths=[9 * cm, 7 * cm],
    )
    breakdown.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#10b981")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("ALIGN", (1, 1), (1, -1), "RIGHT"),
    ]))
    story += [breakdown, Spacer(1, 0.5 * cm)]

    story.append(
        Paragraph(
            f"<b>Embedded Intensity:</b> {shown['intensity']} tCO2e / t",
            styles["Heading3"],
        )
    )

    doc.build(story)
    buffer.seek(0)
    return buffer.getvalue()


def _sub(parent: ET.Element, tag: str, text: str, **attrib: str) -> ET.Element:
    el = ET.SubElement(parent, tag, attrib)
    el.text = text
    return el


def to_xml(result: CalculationResult) -> str:
    """Render *result* as a CBAM XML document (UTF-8 declaration included)."""
    root = ET.Element("CBAMReport", {"version": "1.0"})

    product = ET.SubElement(root, "Product")
    _sub(product, "CNCode", result.cn_code)
    _sub(product, "ProductType", result.product_type)
    _sub(product, "ProductionQuantity", f"{result.production_qty:.3f}", unit="t")

    emissions = ET.SubElement(root, "Emissions", {"unit": "tCO2e"})
    _sub(emissions, "Scope1", f"{result.scope1:.4f}")
    _sub(emissions, "Scope2", f"{result.scope2:.4f}")
    _sub(emissions, "Scope3", f"{result.scope3:.4f}")
    _sub(emissions, "Total", f"{result.total:.4f}")

    _sub(root, "EmbeddedIntensity", f"{result.intensity:.5f}", unit="tCO2e/t")

    ET.indent(root)
    body = ET.tostring(root, encoding="unicode")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n"
