import json
from datetime import date
from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).parent.parent))

from circularity.acquisition.data_source import (
    DEFAULT_DATASET_PATH,
    InMemoryRepository,
    JsonRepository,
    LotFilter,
    parse_cycle,
    parse_dataset,
    parse_exhibitor,
    parse_lot,
    parse_waste_record,
)
from circularity.models.records import Client, FlowType
from circularity.utils.errors import RecordValidationError


def raw_cycle(number, end_date="2023-03-01", **overrides):
    raw = {
        "number": number,
        "startDate": "2023-01-01",
        "endDate": end_date,
        "client": "Coca-Cola",
        "brand": "Sprite",
        "campaign": f"Campaign {number}",
        "location": {"store": "OXXO Reforma", "address": "Paseo de la Reforma 222", "city": "CDMX"},
        "emissions": {"transport": 2.0, "processing": 3.0, "total": 5.0},
        "distance": 40,
    }
    raw.update(overrides)
    return raw


def raw_lot(lot_id="LOT-1", owner="EGO", **overrides):
    raw = {
        "id": lot_id,
        "flowType": "graficos-graficos",
        "productType": "Vinyl",
        "weight": 2.5,
        "recycledContent": 70,
        "originalDate": "2023-01-01",
        "currentCycle": 2,
        "totalCycles": 2,
        "totalEmissionsAvoided": 30.0,
        "totalPlasticRecycled": 12.0,
        "status": "active",
        "clientOwner": owner,
        "cycles": [raw_cycle(1), raw_cycle(2, end_date=None)],
    }
    raw.update(overrides)
    return raw


def raw_payload():
    return {
        "clients": [{"id": 1, "name": "EGO"}, {"id": 4, "name": "Club Campestre"}],
        "lots": [raw_lot("LOT-1"), raw_lot("LOT-2", owner="JARRITOS", status="collected")],
        "exhibitors": [],
        "wasteRecords": [
            {"id": 2, "clientId": 4, "date": "2024-02-01", "organicWaste": 1, "inorganicWaste": 2,
             "recyclableWaste": 3},
            {"id": 1, "clientId": 4, "date": "2024-01-01", "organicWaste": 1, "inorganicWaste": 2,
             "recyclables": 4, "location": "Club"},
            {"id": 3, "clientId": 1, "date": "2024-01-05", "organicWaste": -5, "inorganicWaste": 2,
             "recyclableWaste": 3},
        ],
    }


def test_parse_lot_maps_camel_case_fields():
    lot = parse_lot(raw_lot())

    assert lot.flow_type is FlowType.GRAPHICS_TO_GRAPHICS
    assert lot.original_date == date(2023, 1, 1)
    assert lot.current_cycle == 2
    assert lot.cycles[0].weight == 2.5
    assert lot.cycles[1].end_date is None
    assert lot.active_cycle.number == 2


def test_parse_lot_rejects_unknown_flow_type():
    with pytest.raises(RecordValidationError, match="Unknown flow type"):
        parse_lot(raw_lot(flowType="papel-papel"))


def test_parse_lot_requires_fields():
    raw = raw_lot()
    del raw["clientOwner"]

    with pytest.raises(RecordValidationError) as excinfo:
        parse_lot(raw)

    assert excinfo.value.record_id == "LOT-1"
    assert excinfo.value.field == "clientOwner"


def test_parse_cycle_rejects_bad_dates():
    with pytest.raises(RecordValidationError, match="not an ISO date"):
        parse_cycle(raw_cycle(1, startDate="15/01/2023"))


def test_parse_cycle_accepts_datetime_strings():
    cycle = parse_cycle(raw_cycle(1, startDate="2023-01-01T08:30:00Z"))
    assert cycle.start_date == date(2023, 1, 1)


def test_parse_exhibitor_graphic_history():
    graphic_cycle = raw_cycle(1, lotId="EXH-1-C01", weight=98.5, recycledInto="graphic", savingsVsVirgin=10.0)
    graphic_cycle["cycleNumber"] = graphic_cycle.pop("number")

    exhibitor = parse_exhibitor({
        "id": "EXH-1",
        "clientOwner": "EGO",
        "graphicChanges": 1,
        "recycledContent": 60,
        "currentGraphic": {"campaign": "C", "installedDate": "2024-01-01", "client": "EGO", "brand": "EGO"},
        "graphicHistory": [graphic_cycle],
    })

    cycle = exhibitor.graphic_history[0]
    assert cycle.number == 1
    assert exhibitor.condition == "good"
    assert cycle.lot_id == "EXH-1-C01"
    assert cycle.weight == 98.5
    assert cycle.recycled_into == "graphic"
    assert cycle.savings_vs_virgin == 10.0


def test_parse_waste_record_accepts_recyclables_alias():
    record = parse_waste_record({"id": 7, "clientId": 4, "date": "2024-01-01", "recyclables": 9})

    assert record.recyclable_waste == 9
    assert record.organic_waste == 0.0
    assert record.observations == ""


def test_parse_dataset_clients():
    parsed = parse_dataset(raw_payload())
    assert parsed["clients"] == (Client(1, "EGO"), Client(4, "Club Campestre"))


def test_in_memory_repository_filters():
    parsed = parse_dataset(raw_payload())
    repository = InMemoryRepository(parsed["lots"], (), parsed["waste_records"], parsed["clients"])

    assert [lot.id for lot in repository.fetch_lots(LotFilter(client_owner="EGO"))] == ["LOT-1"]
    assert [lot.id for lot in repository.fetch_lots(LotFilter(status="collected"))] == ["LOT-2"]
    assert repository.get_lot("LOT-2").client_owner == "JARRITOS"
    assert repository.get_lot("LOT-404") is None
    assert [r.id for r in repository.fetch_waste_records(client_id=4)] == [1, 2]
    assert repository.get_client(name="Club Campestre").id == 4
    assert repository.get_client(client_id=1).name == "EGO"
    assert repository.get_client(client_id=99) is None


def test_json_repository_drops_invalid_records(tmp_path):
    path = tmp_path / "records.json"
    path.write_text(json.dumps(raw_payload()), encoding="utf-8")

    repository = JsonRepository(path)

    assert len(repository.fetch_lots()) == 2
    assert [r.id for r in repository.fetch_waste_records()] == [1, 2]
    assert repository.validation_report["total_records"] == 5
    assert repository.validation_report["records_passed"] == 4


def test_json_repository_strict_mode(tmp_path):
    path = tmp_path / "records.json"
    path.write_text(json.dumps(raw_payload()), encoding="utf-8")

    with pytest.raises(RecordValidationError):
        JsonRepository(path, strict=True)


def payload_with_malformed_records():
    payload = raw_payload()
    lot_without_weight = raw_lot("LOT-3")
    del lot_without_weight["weight"]
    payload["lots"].append(lot_without_weight)
    payload["wasteRecords"].append({"id": 9, "clientId": 4, "date": "ayer"})
    return payload


def test_json_repository_drops_unparseable_records(tmp_path):
    path = tmp_path / "records.json"
    path.write_text(json.dumps(payload_with_malformed_records()), encoding="utf-8")

    repository = JsonRepository(path)

    assert [lot.id for lot in repository.fetch_lots()] == ["LOT-1", "LOT-2"]
    assert [r.id for r in repository.fetch_waste_records()] == [1, 2]
    assert repository.validation_report["unparseable_records"] == 2
    assert repository.validation_report["total_records"] == 7
    assert repository.validation_report["records_passed"] == 4


def test_json_repository_strict_mode_rejects_unparseable_records(tmp_path):
    payload = payload_with_malformed_records()
    payload["lots"].pop()
    path = tmp_path / "records.json"
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(RecordValidationError) as excinfo:
        JsonRepository(path, strict=True)

    assert excinfo.value.field == "date"


def test_parse_dataset_without_validator_raises_on_malformed_record():
    with pytest.raises(RecordValidationError, match="Missing field 'weight'"):
        parse_dataset(payload_with_malformed_records())


def test_json_repository_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        JsonRepository(tmp_path / "missing.json")


def test_sample_dataset_loads():
    repository = JsonRepository(DEFAULT_DATASET_PATH)

    assert repository.validation_report["records_passed"] == repository.validation_report["total_records"]
    assert {lot.id for lot in repository.fetch_lots(LotFilter(client_owner="EGO"))} == {
        "LOT-2024-1847",
        "LOT-2024-2156",
    }
    exhibitor = repository.fetch_exhibitors(client_owner="EGO")[0]
    assert exhibitor.graphic_changes == 4
    assert len(exhibitor.graphic_history) == 4
    assert len(repository.fetch_waste_records(client_id=4)) == 4
    assert repository.get_client(client_id=4).name == "Club Campestre"
