from datetime import date
from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).parent.parent))

from circularity.models.records import Client, WasteRecord, WasteSummary
from circularity.reporting.client_report import (
    MONTHLY_HEADER,
    client_report_filename,
    environmental_impact,
    format_month_year,
    generate_client_csv_report,
    generate_client_report,
    report_period,
    summarize_waste,
)
from circularity.utils.errors import EmptyInputError

IMPACT_FACTORS = {
    'paper_share_of_recyclables': 0.3,
    'trees_saved_per_tonne_paper': 17,
    'water_saved_litres_per_tonne_paper': 26000,
    'energy_saved_kwh_per_kg_recyclable': 5.3,
}

CLUB = Client(id=4, name="Club Campestre")


def make_records():
    return [
        WasteRecord(id=1, client_id=4, date=date(2024, 1, 15), organic_waste=100.0,
                    inorganic_waste=50.0, recyclable_waste=30.0),
        WasteRecord(id=2, client_id=4, date=date(2024, 1, 28), organic_waste=20.0,
                    inorganic_waste=30.0, recyclable_waste=10.0),
        WasteRecord(id=3, client_id=4, date=date(2024, 2, 10), organic_waste=0.0,
                    inorganic_waste=20.0, recyclable_waste=0.0),
    ]


def test_format_month_year():
    assert format_month_year(2024, 1) == "enero de 2024"
    assert format_month_year(2023, 12) == "diciembre de 2023"


def test_summarize_waste():
    summary = summarize_waste(make_records())

    assert summary.organic_total == 120.0
    assert summary.inorganic_total == 100.0
    assert summary.recyclable_total == 40.0
    assert summary.total_waste == 260.0
    assert summary.landfill_diversion_pct == pytest.approx(40 / 220 * 100)
    assert summary.period_start == date(2024, 1, 15)
    assert summary.period_end == date(2024, 2, 10)
    assert summary.record_count == 3
    assert summary.corrections == ()


def test_report_period():
    assert report_period(summarize_waste(make_records())) == "enero de 2024 - febrero de 2024"
    assert report_period(summarize_waste([])) == ""


def test_environmental_impact():
    impact = environmental_impact(40.0, IMPACT_FACTORS)

    assert impact['trees_saved'] == pytest.approx(0.204)
    assert impact['water_saved_litres'] == pytest.approx(312.0)
    assert impact['energy_saved_kwh'] == pytest.approx(212.0)


def test_csv_report_sections():
    records = make_records()

    text = generate_client_csv_report(CLUB, records, summarize_waste(records), IMPACT_FACTORS)
    lines = text.split("\n")

    assert text.endswith("\n")
    assert lines[0] == "Reporte de Residuos"
    assert lines[1] == "Cliente: Club Campestre"
    assert lines[2] == "Período: enero de 2024 - febrero de 2024"
    assert "Total de Residuos, 260.00 kg" in lines
    assert "Índice de Desviación, 18.18%" in lines
    assert "Árboles Salvados, 0.20" in lines
    assert "Agua Ahorrada, 312.00 litros" in lines
    assert "Energía Ahorrada, 212.00 kWh" in lines

    detail = lines[lines.index("DETALLE MENSUAL") + 1:]
    assert detail[0] == MONTHLY_HEADER
    assert detail[1] == "enero de 2024, 120.00, 80.00, 40.00, 240.00, 20.00"
    assert detail[2] == "febrero de 2024, 0.00, 20.00, 0.00, 20.00, 0.00"
    assert "NOTAS" not in lines


def test_csv_report_lists_corrections():
    records = make_records()
    summary = WasteSummary(
        organic_total=120.0, inorganic_total=100.0, recyclable_total=40.0, total_waste=1000.0,
        landfill_diversion_pct=18.18, period_start=date(2024, 1, 15), period_end=date(2024, 2, 10),
        record_count=3, corrections=("Total de Residuos ajustado de 260.00 a 1000.00 kg (manual)",),
    )

    lines = generate_client_csv_report(CLUB, records, summary, IMPACT_FACTORS).split("\n")

    notes = lines[lines.index("NOTAS") + 1:]
    assert notes[0] == "Total de Residuos ajustado de 260.00 a 1000.00 kg (manual)"


def test_client_report_filename():
    assert client_report_filename(CLUB, date(2024, 5, 1)) == "Reporte_Club_Campestre_2024-05-01.csv"
    spaced = Client(id=9, name="Grupo   Norte  SA")
    assert client_report_filename(spaced, date(2024, 5, 1)) == "Reporte_Grupo_Norte_SA_2024-05-01.csv"


def test_generate_client_report_writes_file(tmp_path):
    path = generate_client_report(CLUB, make_records(), tmp_path, on_date=date(2024, 5, 1), corrections={})

    assert path == tmp_path / "Reporte_Club_Campestre_2024-05-01.csv"
    content = path.read_text(encoding="utf-8-sig")
    assert content.startswith("Reporte de Residuos\nCliente: Club Campestre\n")
    assert "Total de Residuos, 260.00 kg" in content


def test_generate_client_report_applies_corrections(tmp_path):
    corrections = {4: {'total_waste_kg': 1000, 'reason': 'reconciled'}}

    path = generate_client_report(CLUB, make_records(), tmp_path, on_date=date(2024, 5, 1),
                                  corrections=corrections)

    content = path.read_text(encoding="utf-8-sig")
    assert "Total de Residuos, 1000.00 kg" in content
    assert "NOTAS\nTotal de Residuos ajustado de 260.00 a 1000.00 kg (reconciled)\n" in content


def test_generate_client_report_requires_records(tmp_path):
    with pytest.raises(EmptyInputError, match="No data available to generate report"):
        generate_client_report(CLUB, [], tmp_path)
    with pytest.raises(EmptyInputError):
        generate_client_report(None, make_records(), tmp_path)
