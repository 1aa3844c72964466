"""
Client Waste Report

Generates the sectioned CSV report a client downloads from the waste data
view: summary totals, estimated environmental impact and a month-by-month
breakdown, all labelled in Spanish.
"""

import re
from datetime import date
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from loguru import logger

from config.config import DATA_OUTPUTS_DIR, get_environmental_impact_factors, get_export_settings
from circularity.analysis.aggregation import monthly_waste_breakdown, waste_totals
from circularity.cleaning.data_corrections import apply_waste_summary_corrections
from circularity.models.records import Client, WasteRecord, WasteSummary
from circularity.utils.errors import EmptyInputError

SPANISH_MONTHS = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)

MONTHLY_HEADER = (
    "Fecha, Residuos Orgánicos (kg), Residuos Inorgánicos (kg), "
    "Residuos Reciclables (kg), Total (kg), Desviación (%)"
)


def format_month_year(year: int, month: int) -> str:
    return f"{SPANISH_MONTHS[month - 1]} de {year}"


def report_period(summary: WasteSummary) -> str:
    """Human-readable span, e.g. ``enero de 2024 - marzo de 2024``."""
    if summary.period_start is None or summary.period_end is None:
        return ""
    start = format_month_year(summary.period_start.year, summary.period_start.month)
    end = format_month_year(summary.period_end.year, summary.period_end.month)
    return f"{start} - {end}"


def summarize_waste(records: Sequence[WasteRecord]) -> WasteSummary:
    """Total each waste category and derive the landfill diversion index."""
    records = list(records)
    totals = waste_totals(records)
    dates = [record.date for record in records]

    return WasteSummary(
        organic_total=totals['organic'],
        inorganic_total=totals['inorganic'],
        recyclable_total=totals['recyclable'],
        total_waste=totals['total'],
        landfill_diversion_pct=totals['landfill_diversion_pct'],
        period_start=min(dates) if dates else None,
        period_end=max(dates) if dates else None,
        record_count=len(records),
    )


def environmental_impact(
    recyclable_kg: float,
    factors: Optional[Mapping[str, float]] = None,
) -> Dict[str, float]:
    """
    Estimate trees, water and energy saved by recycling.

    A configured share of recyclables is assumed to be paper; tree and water
    savings are per tonne of that paper, energy per kg of all recyclables.
    """
    factors = factors or get_environmental_impact_factors()
    paper_tonnes = recyclable_kg * factors['paper_share_of_recyclables'] / 1000

    return {
        'trees_saved': paper_tonnes * factors['trees_saved_per_tonne_paper'],
        'water_saved_litres': paper_tonnes * factors['water_saved_litres_per_tonne_paper'],
        'energy_saved_kwh': recyclable_kg * factors['energy_saved_kwh_per_kg_recyclable'],
    }


def generate_client_csv_report(
    client: Client,
    records: Sequence[WasteRecord],
    summary: WasteSummary,
    impact_factors: Optional[Mapping[str, float]] = None,
) -> str:
    """Render the sectioned CSV report text for one client."""
    impact = environmental_impact(summary.recyclable_total, impact_factors)

    lines = [
        "Reporte de Residuos",
        f"Cliente: {client.name}",
        f"Período: {report_period(summary)}",
        "",
        "RESUMEN DE RESIDUOS",
        f"Residuos Orgánicos, {summary.organic_total:.2f} kg",
        f"Residuos Inorgánicos, {summary.inorganic_total:.2f} kg",
        f"Residuos Reciclables, {summary.recyclable_total:.2f} kg",
        f"Total de Residuos, {summary.total_waste:.2f} kg",
        f"Índice de Desviación, {summary.landfill_diversion_pct:.2f}%",
        "",
        "IMPACTO AMBIENTAL",
        f"Árboles Salvados, {impact['trees_saved']:.2f}",
        f"Agua Ahorrada, {impact['water_saved_litres']:.2f} litros",
        f"Energía Ahorrada, {impact['energy_saved_kwh']:.2f} kWh",
        "",
        "DETALLE MENSUAL",
        MONTHLY_HEADER,
    ]

    monthly = monthly_waste_breakdown(records)
    for row in monthly.itertuples(index=False):
        year, month = (int(part) for part in row.month.split("-"))
        lines.append(
            f"{format_month_year(year, month)}, {row.organic_waste:.2f}, {row.inorganic_waste:.2f}, "
            f"{row.recyclable_waste:.2f}, {row.total_waste:.2f}, {row.landfill_diversion_pct:.2f}"
        )

    if summary.corrections:
        lines.extend(["", "NOTAS"])
        lines.extend(summary.corrections)

    return "\n".join(lines) + "\n"


def client_report_filename(client: Client, on_date: Optional[date] = None) -> str:
    """``Reporte_{Client_Name}_{YYYY-MM-DD}.csv`` with whitespace runs collapsed to underscores."""
    on_date = on_date or date.today()
    name = re.sub(r'\s+', '_', client.name)
    return f"Reporte_{name}_{on_date.isoformat()}.csv"


def generate_client_report(
    client: Optional[Client],
    records: Sequence[WasteRecord],
    output_dir: Optional[Path] = None,
    on_date: Optional[date] = None,
    corrections: Optional[Mapping[int, Mapping]] = None,
) -> Path:
    """
    Summarise, correct and write a client's waste report.

    Args:
        client: Client the report is for
        records: The client's waste records
        output_dir: Destination directory (defaults to outputs/reports)
        on_date: Date stamped into the filename (defaults to today)
        corrections: Per-client corrections (defaults to config)

    Returns:
        Path of the written CSV file

    Raises:
        EmptyInputError: If there is no client or no records
    """
    records = list(records)
    if client is None or not records:
        raise EmptyInputError("No data available to generate report")

    summary = summarize_waste(records)
    summary = apply_waste_summary_corrections(client.id, summary, corrections)
    content = generate_client_csv_report(client, records, summary)

    output_dir = Path(output_dir) if output_dir else DATA_OUTPUTS_DIR / "reports"
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / client_report_filename(client, on_date)

    with open(output_path, 'w', encoding=get_export_settings()['csv_encoding'], newline='') as f:
        f.write(content)

    logger.info(f"Client report for {client.name} saved to: {output_path}")
    return output_path
