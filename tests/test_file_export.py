import csv
import io
from datetime import date
from pathlib import Path
import sys
import time

import pandas as pd
import pytest
from openpyxl import load_workbook

sys.path.append(str(Path(__file__).parent.parent))

from circularity.models.records import Client, WasteRecord
from circularity.reporting import file_export
from circularity.reporting.file_export import (
    SpreadsheetTable,
    column_width,
    format_waste_records_for_export,
    spreadsheet_to_bytes,
    spreadsheet_to_workbook,
    to_csv,
    to_spreadsheet_table,
    write_csv,
    write_excel,
)
from circularity.utils.errors import EmptyInputError


def test_csv_quotes_commas_and_reparses():
    text = to_csv([{"a": "x,y", "b": 5}])

    assert text == 'a,b\n"x,y",5'
    rows = list(csv.DictReader(io.StringIO(text)))
    assert rows == [{"a": "x,y", "b": "5"}]


def test_csv_escapes_quotes_and_newlines():
    text = to_csv([{"note": 'say "hi"', "multi": "line1\nline2"}])

    rows = list(csv.reader(io.StringIO(text)))
    assert rows == [["note", "multi"], ['say "hi"', "line1\nline2"]]
    assert '"say ""hi"""' in text


def test_csv_projects_rows_onto_first_record_header():
    records = [
        {"id": 1, "name": "EGO", "city": "CDMX"},
        {"name": "Jarritos", "id": 2, "extra": "ignored"},
        {"id": 3, "name": None},
    ]

    lines = to_csv(records).split("\n")

    assert lines == ["id,name,city", "1,EGO,CDMX", "2,Jarritos,", "3,,"]


def test_csv_rejects_empty_input():
    with pytest.raises(EmptyInputError):
        to_csv([])


def test_csv_is_deterministic():
    records = [{"a": 1.5, "b": "z"}, {"a": 2, "b": "q"}]
    assert to_csv(records) == to_csv(records)


def test_column_width_clamps_to_floor_and_ceiling():
    assert column_width("ID", ["A1", "B2"]) == 10
    assert column_width("Notes", ["x" * 60]) == 50
    assert column_width("Observaciones", ["abc"]) == 15


def test_spreadsheet_table_shape():
    records = [
        {"ID": "A1", "Notes": "x" * 60},
        {"ID": "B2", "Notes": None},
    ]

    table = to_spreadsheet_table(records, "Hoja")

    assert table.sheet_name == "Hoja"
    assert table.headers == ("ID", "Notes")
    assert table.rows == (("A1", "x" * 60), ("B2", None))
    assert table.column_widths == (10, 50)


def test_spreadsheet_table_default_sheet_name_does_not_read_config(monkeypatch):
    def fail():
        raise AssertionError("config read")

    monkeypatch.setattr(file_export, "get_export_settings", fail)

    table = to_spreadsheet_table([{"a": 1}])
    assert table.sheet_name == "Datos de Residuos"


def test_spreadsheet_table_rejects_empty_input():
    with pytest.raises(EmptyInputError):
        to_spreadsheet_table([], "Hoja")


def test_workbook_applies_widths_and_header_style():
    table = to_spreadsheet_table([{"ID": "A1", "Notes": "x" * 60}], "Hoja")

    workbook = spreadsheet_to_workbook(table)
    sheet = workbook["Hoja"]

    assert sheet["A1"].value == "ID"
    assert sheet["B2"].value == "x" * 60
    assert sheet.column_dimensions["A"].width == 10
    assert sheet.column_dimensions["B"].width == 50
    assert sheet["A1"].font.bold
    assert sheet["A1"].fill.fgColor.rgb.endswith("EEEEEE")
    assert sheet["A1"].border.top.style == "thin"
    assert not sheet["A2"].font.bold


def test_workbook_without_decoration_leaves_header_plain():
    table = to_spreadsheet_table([{"ID": "A1"}], "Hoja")
    sheet = spreadsheet_to_workbook(table, decorate=False)["Hoja"]
    assert not sheet["A1"].font.bold


def test_spreadsheet_bytes_reload():
    table = SpreadsheetTable(
        sheet_name="Datos",
        headers=("Cliente", "Total"),
        rows=(("EGO", 10.5), ("Club Campestre", 20)),
        column_widths=(16, 10),
    )

    payload = spreadsheet_to_bytes(table)

    df = pd.read_excel(io.BytesIO(payload), sheet_name="Datos")
    assert df["Cliente"].tolist() == ["EGO", "Club Campestre"]
    assert df["Total"].tolist() == [10.5, 20]


def test_spreadsheet_bytes_are_identical_across_calls():
    table = to_spreadsheet_table([{"Cliente": "EGO", "Total": 10.5}], "Datos")

    first = spreadsheet_to_bytes(table)
    time.sleep(2.1)
    second = spreadsheet_to_bytes(table)

    assert first == second


def test_write_csv_adds_extension_and_bom(tmp_path):
    path = write_csv([{"Fecha": "15/01/2024", "Ubicación": "CDMX"}], "residuos", tmp_path)

    assert path == tmp_path / "residuos.csv"
    raw = path.read_bytes()
    assert raw.startswith(b"\xef\xbb\xbf")
    assert raw.decode("utf-8-sig") == "Fecha,Ubicación\n15/01/2024,CDMX"


def test_write_excel_adds_extension(tmp_path):
    path = write_excel([{"ID": "A1", "Notes": "x" * 60}], "residuos", tmp_path, sheet_name="Hoja")

    assert path == tmp_path / "residuos.xlsx"
    sheet = load_workbook(path)["Hoja"]
    assert sheet["A2"].value == "A1"
    assert sheet.column_dimensions["B"].width == 50
    assert sheet["B1"].font.bold


def test_format_waste_records_for_export():
    records = [
        WasteRecord(id=1, client_id=4, date=date(2024, 1, 15), organic_waste=100.0,
                    inorganic_waste=100.0, recyclable_waste=50.0, location="Club Campestre CDMX",
                    observations="Separación en origen"),
        WasteRecord(id=2, client_id=99, date=date(2024, 2, 1), organic_waste=0.0,
                    inorganic_waste=0.0, recyclable_waste=10.0),
    ]
    clients = [Client(id=4, name="Club Campestre")]

    rows = format_waste_records_for_export(records, clients, inorganic=False)

    assert list(rows[0]) == [
        "Fecha",
        "Cliente",
        "Residuos Orgánicos (kg)",
        "Residuos Reciclables (kg)",
        "Total Residuos (kg)",
        "Desviación de Relleno Sanitario (%)",
        "Ubicación",
        "Observaciones",
    ]
    assert rows[0]["Fecha"] == "15/01/2024"
    assert rows[0]["Cliente"] == "Club Campestre"
    assert rows[0]["Total Residuos (kg)"] == 250.0
    assert rows[0]["Desviación de Relleno Sanitario (%)"] == 25.0
    assert rows[1]["Cliente"] == "N/A"
    assert rows[1]["Ubicación"] == "N/A"
    assert rows[1]["Desviación de Relleno Sanitario (%)"] == 0


def test_write_excel_uses_configured_sheet_name(monkeypatch, tmp_path):
    monkeypatch.setattr(file_export, "get_export_settings", lambda: {"default_sheet_name": "Residuos 2024"})

    path = write_excel([{"ID": "A1"}], "residuos", tmp_path)

    assert load_workbook(path).sheetnames == ["Residuos 2024"]
