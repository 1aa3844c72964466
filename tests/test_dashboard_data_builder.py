import json
from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).parent.parent))

from circularity.acquisition.data_source import JsonRepository, LotFilter
from circularity.reporting.dashboard_data_builder import DashboardDataBuilder

FACTORS = {"virgin_material": 3.5, "business_as_usual": 4.2}


@pytest.fixture(scope="module")
def sample_records():
    repository = JsonRepository()
    return (
        repository.fetch_lots(LotFilter(client_owner="EGO")),
        repository.fetch_exhibitors(client_owner="EGO"),
        repository.fetch_waste_records(client_id=4),
    )


def test_summary_stats(tmp_path, sample_records):
    lots, exhibitors, waste_records = sample_records

    dataset = DashboardDataBuilder(tmp_path, FACTORS).build_dataset(lots, exhibitors, waste_records)
    stats = dataset["summaryStats"]

    assert stats["totalLots"] == 2
    assert stats["activeLots"] == 2
    assert stats["totalCycles"] == 12
    assert stats["avgCyclesPerLot"] == 6.0
    assert stats["totalEmissionsAvoided"] == pytest.approx(180.9)
    assert stats["totalPlasticRecycled"] == pytest.approx(93.6)
    assert stats["exhibitors"] == 1
    assert stats["graphicChanges"] == 4
    assert stats["exhibitorEmissionsAvoided"] == pytest.approx(1034.25)
    assert stats["exhibitorNetBalance"] == pytest.approx(999.21)


def test_flow_types_are_zero_filled_with_catalog_names(tmp_path, sample_records):
    lots, _, _ = sample_records

    flow_types = DashboardDataBuilder(tmp_path, FACTORS).build_dataset(lots)["flowTypeData"]

    counts = {entry["flowType"]: entry["count"] for entry in flow_types}
    assert counts == {
        "graficos-exhibidores": 1,
        "exhibidores-exhibidores": 1,
        "graficos-graficos": 0,
    }
    names = {entry["flowType"]: entry["name"] for entry in flow_types}
    assert names["graficos-exhibidores"] == "Gráficos → Exhibidores"


def test_emissions_series(tmp_path, sample_records):
    lots, exhibitors, _ = sample_records

    dataset = DashboardDataBuilder(tmp_path, FACTORS).build_dataset(lots, exhibitors)

    lot_entry = next(e for e in dataset["lotEmissionsData"] if e["lotId"] == "LOT-2024-1847")
    assert len(lot_entry["series"]) == 7
    assert lot_entry["series"][0] == {
        "cycleNumber": 1,
        "cumulativeGenerated": 9.0,
        "cumulativeAvoided": 27.3,
        "netBalance": 18.3,
    }

    exhibitor_entry = dataset["exhibitorEmissionsData"][0]
    assert exhibitor_entry["exhibitorId"] == "EXH-EGO-001"
    assert [point["cycleNumber"] for point in exhibitor_entry["series"]] == [1, 2, 3, 4]
    assert set(exhibitor_entry["summary"]) == {
        "totalBau", "totalEmissions", "totalAvoided", "netBalance", "savingsPct",
    }


def test_waste_data(tmp_path, sample_records):
    _, _, waste_records = sample_records

    dataset = DashboardDataBuilder(tmp_path, FACTORS).build_dataset(waste_records=waste_records)

    monthly = dataset["monthlyWasteData"]
    assert [row["month"] for row in monthly] == ["2024-01", "2024-02", "2024-03"]
    assert monthly[0]["organicWaste"] == pytest.approx(5000.5)

    composition = {entry["category"]: entry["value"] for entry in dataset["wasteCompositionData"]}
    assert composition["organic"] == pytest.approx(13000.75)


def test_empty_dataset(tmp_path):
    dataset = DashboardDataBuilder(tmp_path, FACTORS).build_dataset()

    assert dataset["summaryStats"]["totalLots"] == 0
    assert dataset["summaryStats"]["avgCyclesPerLot"] == 0
    assert dataset["lotEmissionsData"] == []
    assert dataset["monthlyWasteData"] == []
    assert [entry["value"] for entry in dataset["wasteCompositionData"]] == [0, 0, 0]


def test_write_dataset(tmp_path, sample_records):
    lots, exhibitors, waste_records = sample_records
    builder = DashboardDataBuilder(tmp_path, FACTORS)
    dataset = builder.build_dataset(lots, exhibitors, waste_records)

    path = builder.write_dataset(dataset)

    assert path == tmp_path / "dashboard" / "dashboard-data.json"
    assert json.loads(path.read_text(encoding="utf-8")) == dataset
